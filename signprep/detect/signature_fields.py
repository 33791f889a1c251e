"""Heuristic signature/date field detection over extracted document text.

Two detectors are provided:

- ``detect_signature_fields``: provider tags when present (exact, confidence
  1.0), otherwise a keyword count that proposes a stack of fields.
- ``detect_existing_fields``: explicit blanks such as ``Signature: ____`` with
  a rough page/line position estimate.

Positions are estimates only; nothing here reads real layout.
"""

from __future__ import annotations

import math
import re

from signprep.detect.models import FieldType, HeuristicCalibration, SignatureFieldDescriptor
from signprep.tags.classifier import provider_tags

_SIGNATURE_KEYWORDS: tuple[re.Pattern[str], ...] = (
    re.compile(r"signature", re.IGNORECASE),
    re.compile(r"sign here", re.IGNORECASE),
    re.compile(r"signed by", re.IGNORECASE),
    re.compile(r"signatory", re.IGNORECASE),
    re.compile(r"contractor signature", re.IGNORECASE),
    re.compile(r"client signature", re.IGNORECASE),
    re.compile(r"authorized signature", re.IGNORECASE),
    re.compile(r"digital signature", re.IGNORECASE),
    re.compile(r"electronic signature", re.IGNORECASE),
    re.compile(r"___+"),
    re.compile(r"\.{5,}"),
    re.compile(r"\[signature\]", re.IGNORECASE),
    re.compile(r"\[sign\]", re.IGNORECASE),
)

_DATE_KEYWORDS: tuple[re.Pattern[str], ...] = (
    re.compile(r"date:", re.IGNORECASE),
    re.compile(r"dated", re.IGNORECASE),
    re.compile(r"date of", re.IGNORECASE),
    re.compile(r"date signed", re.IGNORECASE),
    re.compile(r"date of signature", re.IGNORECASE),
    re.compile(r"on this.*day", re.IGNORECASE),
    re.compile(r"__/__/__"),
    re.compile(r"mm/dd/yyyy", re.IGNORECASE),
    re.compile(r"dd/mm/yyyy", re.IGNORECASE),
    re.compile(r"\[date\]", re.IGNORECASE),
)

_SIGNATURE_BLANKS: tuple[re.Pattern[str], ...] = (
    re.compile(r"signature:\s*_+", re.IGNORECASE),
    re.compile(r"sign\s+here:\s*_+", re.IGNORECASE),
    re.compile(r"signed\s+by:\s*_+", re.IGNORECASE),
    re.compile(r"signatory:\s*_+", re.IGNORECASE),
    re.compile(r"_+\s*\(signature\)", re.IGNORECASE),
    re.compile(r"_+\s*signature", re.IGNORECASE),
    re.compile(r"\[SIGNATURE\]", re.IGNORECASE),
    re.compile(r"\[SIGN\s+HERE\]", re.IGNORECASE),
    re.compile(r"____+\s*\n.*signature", re.IGNORECASE),
    re.compile(r"____+\s*\n.*signed", re.IGNORECASE),
    re.compile(r"\[DIGITAL\s+SIGNATURE\]", re.IGNORECASE),
    re.compile(r"\[E-SIGNATURE\]", re.IGNORECASE),
    re.compile(r"witness:\s*_+", re.IGNORECASE),
    re.compile(r"notary:\s*_+", re.IGNORECASE),
    re.compile(r"authorized\s+signature:\s*_+", re.IGNORECASE),
)

_DATE_BLANKS: tuple[re.Pattern[str], ...] = (
    re.compile(r"date:\s*_+", re.IGNORECASE),
    re.compile(r"date\s+signed:\s*_+", re.IGNORECASE),
    re.compile(r"_+\s*\(date\)", re.IGNORECASE),
    re.compile(r"\[DATE\]", re.IGNORECASE),
    re.compile(r"date:\s*__/__/__", re.IGNORECASE),
    re.compile(r"date:\s*\d*/\d*/\d*", re.IGNORECASE),
    re.compile(r"dated\s+this\s+___+\s+day", re.IGNORECASE),
    re.compile(r"on\s+this\s+___+\s+day\s+of", re.IGNORECASE),
    re.compile(r"\[DATE:\s*___+\]", re.IGNORECASE),
)

_UNDERLINE_RE = re.compile(r"<u[^>]*>([^<]+)</u>", re.IGNORECASE)
_HTML_INPUT_RE = re.compile(
    r"<input[^>]*type=['\"]?(text|signature|date)['\"]?[^>]*>",
    re.IGNORECASE,
)
_LEADING_SPACE_RE = re.compile(r"^\s*")


def detect_signature_fields(
    text: str,
    html: str | None = None,
    calibration: HeuristicCalibration | None = None,
) -> list[SignatureFieldDescriptor]:
    """Propose signature/date fields for ``text``.

    Provider tags win outright: one descriptor per tag and nothing else.
    Without them, signature and date keyword hits are counted (at least one
    of each is always proposed) and laid out as a diagonal stack.
    """

    calibration = calibration or HeuristicCalibration()

    tagged = provider_tag_fields(text, calibration)
    if tagged:
        return tagged

    fields: list[SignatureFieldDescriptor] = []
    signature_count = max(_count_hits(text, _SIGNATURE_KEYWORDS), 1)
    date_count = max(_count_hits(text, _DATE_KEYWORDS), 1)

    for index in range(signature_count):
        fields.append(
            SignatureFieldDescriptor(
                name=_sequence_name("Signature", index),
                type="SIGNATURE",
                page=1,
                x=calibration.signature_origin_x + index * calibration.signature_step_x,
                y=calibration.signature_origin_y - index * calibration.signature_step_y,
                width=calibration.signature_width,
                height=calibration.signature_height,
                confidence=calibration.heuristic_confidence,
            )
        )

    for index in range(date_count):
        fields.append(
            SignatureFieldDescriptor(
                name=_sequence_name("Date", index),
                type="DATE",
                page=1,
                x=calibration.date_origin_x + index * calibration.signature_step_x,
                y=calibration.signature_origin_y - index * calibration.signature_step_y,
                width=calibration.date_width,
                height=calibration.date_height,
                confidence=calibration.heuristic_confidence,
            )
        )

    if html:
        names = {item.name for item in fields}
        for index, match in enumerate(_UNDERLINE_RE.finditer(html)):
            underlined = match.group(1).strip()
            name = f"Underlined_{index + 1}"
            if len(underlined) <= calibration.underline_min_length or name in names:
                continue
            names.add(name)
            fields.append(
                SignatureFieldDescriptor(
                    name=name,
                    type="SIGNATURE",
                    page=1,
                    x=calibration.signature_origin_x + index * calibration.signature_step_x,
                    y=calibration.underline_origin_y - index * calibration.underline_step_y,
                    width=calibration.signature_width,
                    height=calibration.signature_height,
                    confidence=calibration.heuristic_confidence,
                    match_text=underlined,
                    pattern="underlined",
                )
            )

    return fields


def provider_tag_fields(
    text: str,
    calibration: HeuristicCalibration | None = None,
) -> list[SignatureFieldDescriptor]:
    """One exact descriptor per provider tag, in document order."""

    calibration = calibration or HeuristicCalibration()
    fields: list[SignatureFieldDescriptor] = []
    for tag in provider_tags(text):
        field_type: FieldType = (tag.provider_subtype or "signature").upper()  # type: ignore[assignment]
        recipient_index = tag.recipient_index or 1
        fields.append(
            SignatureFieldDescriptor(
                name=f"ProviderTag_{field_type}_{recipient_index}",
                type=field_type,
                confidence=calibration.provider_tag_confidence,
                source_tag=tag.raw,
                recipient_index=recipient_index,
                match_text=tag.raw,
            )
        )
    return fields


def detect_existing_fields(
    text: str,
    html: str | None = None,
    calibration: HeuristicCalibration | None = None,
) -> list[SignatureFieldDescriptor]:
    """Find explicit signature/date blanks and estimate where they sit.

    Field names share one counter per call (``ExistingSignature_1``,
    ``ExistingDate_2``, ...), so results never depend on earlier calls.
    """

    calibration = calibration or HeuristicCalibration()
    fields: list[SignatureFieldDescriptor] = []
    sequence = 1

    for pattern in _SIGNATURE_BLANKS:
        for match in pattern.finditer(text):
            lines_before, indent = _line_metrics(text, match.start(), match.end())
            x = calibration.left_margin + indent * calibration.indent_width
            fields.append(
                SignatureFieldDescriptor(
                    name=f"ExistingSignature_{sequence}",
                    type="SIGNATURE",
                    page=_estimate_page(lines_before, calibration),
                    x=_clamp(x, calibration.left_margin, calibration.max_signature_x),
                    y=_estimate_y(lines_before, calibration),
                    width=calibration.existing_signature_width,
                    height=calibration.existing_signature_height,
                    confidence=calibration.existing_field_confidence,
                    match_text=match.group(0),
                    line_number=lines_before + 1,
                    pattern=pattern.pattern,
                )
            )
            sequence += 1

    for pattern in _DATE_BLANKS:
        for match in pattern.finditer(text):
            lines_before, indent = _line_metrics(text, match.start(), match.end())
            x = max(
                calibration.min_date_x,
                calibration.left_margin + indent * calibration.indent_width + calibration.date_x_offset,
            )
            fields.append(
                SignatureFieldDescriptor(
                    name=f"ExistingDate_{sequence}",
                    type="DATE",
                    page=_estimate_page(lines_before, calibration),
                    x=_clamp(x, calibration.min_date_x, calibration.max_date_x),
                    y=_estimate_y(lines_before, calibration),
                    width=calibration.existing_date_width,
                    height=calibration.existing_date_height,
                    confidence=calibration.existing_field_confidence,
                    match_text=match.group(0),
                    line_number=lines_before + 1,
                    pattern=pattern.pattern,
                )
            )
            sequence += 1

    if html:
        for match in _UNDERLINE_RE.finditer(html):
            underlined = match.group(1).strip()
            if len(underlined) <= calibration.existing_underline_min_length:
                continue
            if "_" not in underlined and "sign" not in underlined.lower():
                continue
            fields.append(
                SignatureFieldDescriptor(
                    name=f"UnderlinedField_{sequence}",
                    type="SIGNATURE",
                    page=1,
                    x=calibration.html_field_x,
                    y=calibration.signature_origin_y - sequence * calibration.html_field_step_y,
                    width=calibration.signature_width,
                    height=calibration.signature_height,
                    confidence=calibration.existing_field_confidence,
                    match_text=underlined,
                    pattern="underlined",
                )
            )
            sequence += 1

        for match in _HTML_INPUT_RE.finditer(html):
            input_type = match.group(1).lower()
            field_type: FieldType = "SIGNATURE" if input_type == "signature" else (
                "DATE" if input_type == "date" else "TEXT"
            )
            is_signature = field_type == "SIGNATURE"
            fields.append(
                SignatureFieldDescriptor(
                    name=f"HTMLField_{sequence}",
                    type=field_type,
                    page=1,
                    x=calibration.html_field_x,
                    y=calibration.signature_origin_y - sequence * calibration.html_field_step_y,
                    width=calibration.existing_signature_width if is_signature else calibration.existing_date_width,
                    height=calibration.existing_signature_height if is_signature else calibration.existing_date_height,
                    confidence=calibration.existing_field_confidence,
                    match_text=match.group(0),
                    pattern="html-input",
                )
            )
            sequence += 1

    return fields


def _count_hits(text: str, patterns: tuple[re.Pattern[str], ...]) -> int:
    return sum(len(pattern.findall(text)) for pattern in patterns)


def _sequence_name(base: str, index: int) -> str:
    return base if index == 0 else f"{base}_{index + 1}"


def _line_metrics(text: str, start: int, end: int) -> tuple[int, int]:
    before = text[:start]
    lines_before = before.count("\n")
    line_start = before.rfind("\n") + 1
    line_text = text[line_start:end]
    indent = len(_LEADING_SPACE_RE.match(line_text).group(0))
    return lines_before, indent


def _estimate_page(lines_before: int, calibration: HeuristicCalibration) -> int:
    return max(1, math.ceil(lines_before / calibration.lines_per_page))


def _estimate_y(lines_before: int, calibration: HeuristicCalibration) -> int:
    y = calibration.top_margin + (lines_before % calibration.lines_per_page) * calibration.line_height
    return _clamp(y, calibration.bottom_margin, calibration.page_height - calibration.bottom_clearance)


def _clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, value))
