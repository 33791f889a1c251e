"""Render report models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

RendererName = Literal["primary", "bypass", "passthrough"]


class ReplaceLogEntry(BaseModel):
    """Single replaced/missing/preserved/noise log item."""

    model_config = ConfigDict(extra="forbid")

    status: Literal["replaced", "missing", "preserved", "skipped", "noise"]
    field_name: str | None = None
    paragraph_path: str | None = None
    start: int | None = None
    end: int | None = None
    original_text: str | None = None
    new_text: str | None = None
    reason: str | None = None


class ReplaceSummary(BaseModel):
    """Aggregate replacement summary for observability."""

    model_config = ConfigDict(extra="forbid")

    total_tags: int
    replaced_count: int
    missing_count: int
    preserved_count: int
    noise_count: int
    renderer: RendererName


class RenderResult(BaseModel):
    """Rendered document bytes plus provider-tag diagnostics."""

    model_config = ConfigDict(extra="forbid")

    document_bytes: bytes = Field(exclude=True, repr=False)
    renderer: RendererName
    provider_tags_before: int
    provider_tags_after: int
    missing_variables: list[str] = Field(default_factory=list)
    entries: list[ReplaceLogEntry] = Field(default_factory=list)
    summary: ReplaceSummary
    source_extension: str = ".docx"

    @property
    def provider_tags_preserved(self) -> bool:
        return self.provider_tags_after == self.provider_tags_before


class TemplateDataReport(BaseModel):
    """Template data checked against the variables a document declares."""

    model_config = ConfigDict(extra="forbid")

    is_valid: bool
    missing_variables: list[str] = Field(default_factory=list)
    extra_variables: list[str] = Field(default_factory=list)
    matched_variables: list[str] = Field(default_factory=list)


def build_summary(entries: list[ReplaceLogEntry], renderer: RendererName) -> ReplaceSummary:
    return ReplaceSummary(
        total_tags=sum(1 for item in entries if item.status != "skipped"),
        replaced_count=sum(1 for item in entries if item.status == "replaced"),
        missing_count=sum(1 for item in entries if item.status == "missing"),
        preserved_count=sum(1 for item in entries if item.status == "preserved"),
        noise_count=sum(1 for item in entries if item.status == "noise"),
        renderer=renderer,
    )
