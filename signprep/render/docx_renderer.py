"""Primary docx renderer: classify first, then substitute ordinary tags only."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping

from signprep.render.models import ReplaceLogEntry, RenderResult, build_summary
from signprep.tags.classifier import classify, count_provider_tags
from signprep.tags.models import Tag
from signprep.tags.normalizer import canonical_form
from signprep.utils.docx_xml import (
    ParagraphContext,
    build_run_spans,
    iter_paragraph_contexts,
    load_document,
    save_document,
    splice_runs,
)
from signprep.utils.errors import TemplateSyntaxError
from signprep.utils.events import log_event

logger = logging.getLogger("signprep.render")

TemplateValue = str | int | float | None

_TOKEN_MASK_RE = re.compile(r"\{\{[^{}]*\}\}|\{[^{}]*\}")
_EXCERPT_LIMIT = 60


def render_docx_template(
    document_bytes: bytes,
    data: Mapping[str, TemplateValue],
    *,
    canonicalize_provider_tags: bool = True,
) -> RenderResult:
    """Substitute ordinary variables in body and table-cell paragraphs.

    Pass 1 classifies each paragraph's joined run text and validates brace
    syntax for the whole document before anything is modified. Pass 2 splices
    replacements right-to-left so tokens split across runs are handled.

    Provider tags are never substituted. With ``canonicalize_provider_tags``
    single-brace provider tags are written as ``{{body}}``; otherwise their
    raw text is left untouched.
    """

    document = load_document(document_bytes)
    contexts = list(iter_paragraph_contexts(document))

    classified: list[tuple[ParagraphContext, list[Tag]]] = []
    for context in contexts:
        issue = find_brace_issue(context.text)
        if issue is not None:
            error_id, tag_text = issue
            raise TemplateSyntaxError(
                _syntax_message(error_id, tag_text),
                error_id=error_id,
                tag=tag_text,
            )
        classified.append((context, classify(context.text)))

    provider_tags_before = sum(count_provider_tags(context.text) for context in contexts)

    entries: list[ReplaceLogEntry] = []
    missing: list[str] = []
    for context, tags in classified:
        entries.extend(
            _render_paragraph(
                context,
                tags,
                data,
                missing=missing,
                canonicalize_provider_tags=canonicalize_provider_tags,
            )
        )

    provider_tags_after = sum(
        count_provider_tags(build_run_spans(context.paragraph)[0]) for context in contexts
    )
    if provider_tags_after != provider_tags_before:
        log_event(
            logger,
            logging.WARNING,
            "provider_tag_count_mismatch",
            renderer="primary",
            before=provider_tags_before,
            after=provider_tags_after,
        )

    return RenderResult(
        document_bytes=save_document(document),
        renderer="primary",
        provider_tags_before=provider_tags_before,
        provider_tags_after=provider_tags_after,
        missing_variables=missing,
        entries=entries,
        summary=build_summary(entries, "primary"),
    )


def find_brace_issue(text: str) -> tuple[str, str] | None:
    """Return ``(error_id, offending_text)`` for the first malformed brace, if any."""

    duplicate_open = text.find("{{{")
    if duplicate_open >= 0:
        return "duplicate_open_tag", _excerpt_forward(text, duplicate_open)

    duplicate_close = text.find("}}}")
    if duplicate_close >= 0:
        return "duplicate_close_tag", _excerpt_backward(text, duplicate_close + 3)

    masked = _TOKEN_MASK_RE.sub(lambda match: " " * len(match.group(0)), text)
    open_index = masked.find("{")
    close_index = masked.find("}")
    if close_index >= 0 and (open_index < 0 or close_index < open_index):
        return "unopened_tag", _excerpt_backward(text, close_index + 1)
    if open_index >= 0:
        return "unclosed_tag", _excerpt_forward(text, open_index)
    return None


def _render_paragraph(
    context: ParagraphContext,
    tags: list[Tag],
    data: Mapping[str, TemplateValue],
    *,
    missing: list[str],
    canonicalize_provider_tags: bool,
) -> list[ReplaceLogEntry]:
    runs = list(context.paragraph.runs)
    entries: list[ReplaceLogEntry] = []

    for tag in reversed(tags):
        entry = ReplaceLogEntry(
            status="noise",
            field_name=None,
            paragraph_path=context.path,
            start=tag.start,
            end=tag.end,
            original_text=tag.raw,
        )

        if tag.is_provider:
            entry.status = "preserved"
            entry.reason = tag.provider_subtype
            if canonicalize_provider_tags and tag.brace_style == "single":
                replacement = canonical_form(tag)
                splice_runs(runs, context.run_spans, tag.start, tag.end, replacement)
                entry.new_text = replacement
        elif tag.is_ordinary:
            entry.field_name = tag.name
            if tag.name in data:
                replacement = format_value(data[tag.name])
                splice_runs(runs, context.run_spans, tag.start, tag.end, replacement)
                entry.status = "replaced"
                entry.new_text = replacement
            else:
                entry.status = "missing"
                entry.reason = "no value supplied"
                if tag.name not in missing:
                    missing.append(tag.name)
        else:
            entry.reason = "not a variable or provider tag"

        entries.append(entry)

    entries.reverse()
    return entries


def format_value(value: TemplateValue) -> str:
    if value is None:
        return ""
    return str(value)


def _syntax_message(error_id: str, tag_text: str) -> str:
    if error_id in {"duplicate_open_tag", "duplicate_close_tag"}:
        return (
            "Template format error: duplicated braces found. "
            f"Problematic tag: {tag_text}"
        )
    if error_id == "unopened_tag":
        return f"Template syntax error: closing brace without opening brace near {tag_text!r}"
    return f"Template syntax error: opening brace is never closed near {tag_text!r}"


def _excerpt_forward(text: str, start: int) -> str:
    end = text.find("}", start)
    end = len(text) if end < 0 else end + 1
    while end < len(text) and text[end] == "}":
        end += 1
    return text[start : min(end, start + _EXCERPT_LIMIT)]


def _excerpt_backward(text: str, end: int) -> str:
    start = text.rfind("{", 0, end)
    if start < 0:
        start = max(0, text.rfind(" ", 0, end - 1) + 1)
    while start > 0 and text[start - 1] == "{":
        start -= 1
    return text[max(start, end - _EXCERPT_LIMIT) : end]
