"""Fallback renderer operating directly on the main document XML part.

Used when the primary renderer rejects a template whose braces are broken
around provider tags. Substitution is a literal ``{name}`` replacement in the
raw XML, so nothing is parsed and provider tags are left where they are.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from xml.sax.saxutils import escape

from signprep.render.docx_renderer import TemplateValue, format_value
from signprep.render.models import ReplaceLogEntry, RenderResult, build_summary
from signprep.tags.classifier import classify, count_provider_tags, looks_like_provider_name
from signprep.utils.docx_xml import DOCUMENT_PART, read_part_text, replace_part_text
from signprep.utils.events import log_event

logger = logging.getLogger("signprep.render")

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def escape_xml_text(value: str) -> str:
    """Escape ``& < > " '`` for insertion into XML text content."""

    return escape(value, _XML_ENTITIES)


def bypass_render(document_bytes: bytes, data: Mapping[str, TemplateValue]) -> RenderResult:
    xml_text = read_part_text(document_bytes, DOCUMENT_PART)
    provider_tags_before = count_provider_tags(xml_text)

    entries: list[ReplaceLogEntry] = []
    for key, value in data.items():
        if looks_like_provider_name(key):
            entries.append(ReplaceLogEntry(status="skipped", field_name=key, reason="provider-like key"))
            continue

        token = "{" + key + "}"
        occurrences = xml_text.count(token)
        if occurrences == 0:
            continue
        replacement = escape_xml_text(format_value(value))
        xml_text = xml_text.replace(token, replacement)
        entries.extend(
            ReplaceLogEntry(
                status="replaced",
                field_name=key,
                original_text=token,
                new_text=replacement,
            )
            for _ in range(occurrences)
        )

    remaining = classify(xml_text)
    missing: list[str] = []
    for tag in remaining:
        if tag.is_ordinary and tag.brace_style == "single" and tag.name not in missing:
            missing.append(tag.name)
            entries.append(
                ReplaceLogEntry(status="missing", field_name=tag.name, original_text=tag.raw)
            )
        elif tag.is_provider:
            entries.append(
                ReplaceLogEntry(status="preserved", original_text=tag.raw, reason=tag.provider_subtype)
            )

    provider_tags_after = count_provider_tags(xml_text)
    if provider_tags_after != provider_tags_before:
        log_event(
            logger,
            logging.WARNING,
            "provider_tag_count_mismatch",
            renderer="bypass",
            before=provider_tags_before,
            after=provider_tags_after,
        )

    return RenderResult(
        document_bytes=replace_part_text(document_bytes, xml_text, DOCUMENT_PART),
        renderer="bypass",
        provider_tags_before=provider_tags_before,
        provider_tags_after=provider_tags_after,
        missing_variables=missing,
        entries=entries,
        summary=build_summary(entries, "bypass"),
    )
