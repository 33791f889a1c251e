"""Rewrite single-brace provider tags into the canonical double-brace form."""

from __future__ import annotations

from signprep.tags.classifier import classify
from signprep.tags.models import NormalizationReport, Tag


def canonical_form(tag: Tag) -> str:
    """Canonical double-brace rendering of a provider tag (body kept verbatim)."""

    if not tag.is_provider:
        return tag.raw
    return "{{" + tag.body + "}}"


def normalize(text: str) -> str:
    """Convert every single-brace provider tag to ``{{body}}``.

    Ordinary and noise tokens are passed through unchanged, and text that is
    already canonical is returned as-is.
    """

    chunks: list[str] = []
    cursor = 0
    for tag in classify(text):
        if not tag.is_provider or tag.brace_style == "double":
            continue
        chunks.append(text[cursor : tag.start])
        chunks.append(canonical_form(tag))
        cursor = tag.end

    if not chunks:
        return text
    chunks.append(text[cursor:])
    return "".join(chunks)


def normalization_report(text: str) -> NormalizationReport:
    single = 0
    double = 0
    for tag in classify(text):
        if not tag.is_provider:
            continue
        if tag.brace_style == "double":
            double += 1
        else:
            single += 1
    return NormalizationReport(single_brace_count=single, double_brace_count=double)
