"""Data models for bracketed tag classification."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

BraceStyle = Literal["single", "double"]
TagKind = Literal["ordinary", "provider", "noise"]
ProviderSubtype = Literal["signature", "initial", "date", "text", "checkbox"]


@dataclass(frozen=True)
class Tag:
    """A bracket-delimited token found in document text.

    ``span`` is the half-open ``[start, end)`` range of ``raw`` in the scanned
    text; ``body`` is the text between the braces, unstripped.
    """

    raw: str
    body: str
    brace_style: BraceStyle
    kind: TagKind
    span: tuple[int, int]
    provider_subtype: ProviderSubtype | None = None
    recipient_index: int | None = None

    @property
    def start(self) -> int:
        return self.span[0]

    @property
    def end(self) -> int:
        return self.span[1]

    @property
    def name(self) -> str:
        """Variable name for ordinary tags (body without surrounding whitespace)."""

        return self.body.strip()

    @property
    def is_provider(self) -> bool:
        return self.kind == "provider"

    @property
    def is_ordinary(self) -> bool:
        return self.kind == "ordinary"


@dataclass(frozen=True)
class NormalizationReport:
    """Brace-style statistics of provider tags before normalization."""

    single_brace_count: int
    double_brace_count: int

    @property
    def has_provider_tags(self) -> bool:
        return (self.single_brace_count + self.double_brace_count) > 0

    @property
    def has_mixed_formats(self) -> bool:
        return self.single_brace_count > 0 and self.double_brace_count > 0
