"""Render entry points: primary/bypass dispatch and per-format document rendering."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

from signprep.convert.converter import Converter
from signprep.render.bypass_renderer import bypass_render
from signprep.render.docx_renderer import TemplateValue, render_docx_template
from signprep.render.models import RenderResult, TemplateDataReport, build_summary
from signprep.sniff.format_sniffer import resolve_extension
from signprep.tags.classifier import mentions_provider_vocabulary
from signprep.utils.errors import TemplateSyntaxError, UnsupportedFormatError
from signprep.utils.events import log_event

logger = logging.getLogger("signprep.render")

_BYPASS_ERROR_IDS = frozenset({"unopened_tag", "unclosed_tag"})


def render_template(
    document_bytes: bytes,
    data: Mapping[str, TemplateValue],
    *,
    canonicalize_provider_tags: bool = True,
) -> RenderResult:
    """Render with the primary renderer, falling back to the bypass renderer.

    The bypass runs only for brace errors that are either unbalanced
    (``unopened_tag``/``unclosed_tag``) or sit on provider-tag text. Any other
    syntax error is re-raised.
    """

    try:
        return render_docx_template(
            document_bytes,
            data,
            canonicalize_provider_tags=canonicalize_provider_tags,
        )
    except TemplateSyntaxError as exc:
        if exc.error_id not in _BYPASS_ERROR_IDS and not mentions_provider_vocabulary(exc.tag):
            raise
        log_event(
            logger,
            logging.WARNING,
            "render_fallback",
            error_id=exc.error_id,
            tag=exc.tag,
            renderer="bypass",
        )
        return bypass_render(document_bytes, data)


async def render_document(
    path: str | Path,
    data: Mapping[str, TemplateValue],
    converter: Converter,
    *,
    canonicalize_provider_tags: bool = True,
) -> RenderResult:
    """Render the file at ``path`` according to its sniffed format.

    ``.doc`` is converted to ``.docx`` before rendering; ``.pdf`` is returned
    unchanged. The returned bytes are always the rendered artifact; writing
    them anywhere is left to the caller.
    """

    source = Path(path)
    extension = resolve_extension(source)
    data_bytes = source.read_bytes()

    if extension in {".docx", ".doc"}:
        docx_bytes = data_bytes
        if extension == ".doc":
            docx_bytes = await converter.convert(data_bytes, ".docx", source_ext=".doc")
        # python-docx work is blocking; keep it off the event loop.
        result = await asyncio.to_thread(
            render_template,
            docx_bytes,
            data,
            canonicalize_provider_tags=canonicalize_provider_tags,
        )
    elif extension == ".pdf":
        result = RenderResult(
            document_bytes=data_bytes,
            renderer="passthrough",
            provider_tags_before=0,
            provider_tags_after=0,
            summary=build_summary([], "passthrough"),
        )
    else:
        raise UnsupportedFormatError(
            f"Unsupported file format: {extension or '(none)'}",
            extension=extension,
            signature_hex=data_bytes[:8].hex(" "),
        )

    result.source_extension = extension
    log_event(
        logger,
        logging.INFO,
        "document_rendered",
        path=str(source),
        source_extension=extension,
        renderer=result.renderer,
        provider_tags_before=result.provider_tags_before,
        provider_tags_after=result.provider_tags_after,
        missing_variables=result.missing_variables,
    )
    return result


def validate_template_data(
    data: Mapping[str, TemplateValue],
    variables: Iterable[str],
) -> TemplateDataReport:
    """Compare supplied data keys with the ordinary variables a template uses."""

    required = list(dict.fromkeys(variables))
    missing = [name for name in required if name not in data]
    matched = [name for name in required if name in data]
    extra = [name for name in data if name not in set(required)]
    return TemplateDataReport(
        is_valid=not missing,
        missing_variables=missing,
        extra_variables=extra,
        matched_variables=matched,
    )
