"""Signature-field descriptors, heuristic calibration and analysis reports."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

FieldType = Literal["SIGNATURE", "DATE", "TEXT", "INITIAL", "CHECKBOX"]
DetectionTier = Literal["provider_tags", "existing_fields", "heuristic", "default"]


class SignatureFieldDescriptor(BaseModel):
    """One proposed signing field.

    Provider-tag descriptors carry confidence 1.0 and no position estimate;
    heuristic ones carry rough page coordinates and lower confidence.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    type: FieldType
    page: int = 1
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0
    confidence: float = Field(ge=0.0, le=1.0)
    source_tag: str | None = None
    recipient_index: int | None = None
    match_text: str | None = None
    line_number: int | None = None
    pattern: str | None = None


class HeuristicCalibration(BaseModel):
    """Layout constants used by the heuristic detectors (points, 800pt page)."""

    model_config = ConfigDict(extra="forbid")

    provider_tag_confidence: float = 1.0
    heuristic_confidence: float = 0.5
    existing_field_confidence: float = 0.8

    # Keyword-count tier.
    signature_origin_x: int = 100
    signature_origin_y: int = 600
    signature_step_x: int = 50
    signature_step_y: int = 50
    signature_width: int = 200
    signature_height: int = 40
    date_origin_x: int = 350
    date_width: int = 100
    date_height: int = 20
    underline_min_length: int = 10
    underline_origin_y: int = 500
    underline_step_y: int = 30

    # Blank-idiom tier.
    lines_per_page: int = 50
    page_height: int = 800
    top_margin: int = 50
    bottom_margin: int = 50
    bottom_clearance: int = 60
    line_height: int = 15
    left_margin: int = 50
    indent_width: int = 8
    max_signature_x: int = 500
    date_x_offset: int = 250
    min_date_x: int = 300
    max_date_x: int = 600
    existing_signature_width: int = 200
    existing_signature_height: int = 50
    existing_date_width: int = 120
    existing_date_height: int = 30
    existing_underline_min_length: int = 5
    html_field_x: int = 100
    html_field_step_y: int = 40


class DocumentAnalysis(BaseModel):
    """Variables, provider tags and proposed fields found in one document."""

    model_config = ConfigDict(extra="forbid")

    source_extension: str
    tier: DetectionTier
    template_variables: list[str] = Field(default_factory=list)
    provider_tags: list[str] = Field(default_factory=list)
    signature_fields: list[SignatureFieldDescriptor] = Field(default_factory=list)
    signature_related_variables: list[str] = Field(default_factory=list)
    date_variables: list[str] = Field(default_factory=list)
    text_variables: list[str] = Field(default_factory=list)
    preview: str = ""

    @property
    def has_template_variables(self) -> bool:
        return bool(self.template_variables)

    @property
    def has_signature_fields(self) -> bool:
        return bool(self.signature_fields)
