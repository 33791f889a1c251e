"""Document analysis: template variables, provider tags and proposed signing fields."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from signprep.convert.converter import Converter
from signprep.detect.models import DetectionTier, DocumentAnalysis, HeuristicCalibration, SignatureFieldDescriptor
from signprep.detect.signature_fields import (
    detect_existing_fields,
    detect_signature_fields,
    provider_tag_fields,
)
from signprep.extract.content import ContentExtractor
from signprep.sniff.format_sniffer import resolve_extension
from signprep.tags.classifier import classify, ordinary_variable_names
from signprep.utils.errors import CollaboratorFailure, UnsupportedFormatError
from signprep.utils.events import log_event

logger = logging.getLogger("signprep.detect")

PREVIEW_LENGTH = 500


async def analyze_document(
    path: str | Path,
    extractor: ContentExtractor,
    converter: Converter,
    calibration: HeuristicCalibration | None = None,
) -> DocumentAnalysis:
    """Analyze ``path`` and propose signing fields.

    Tier order: provider tags, then explicit blanks, then keyword heuristics.
    PDFs and documents whose text cannot be extracted get the default
    ``Signature`` + ``Date`` pair.
    """

    source = Path(path)
    extension = resolve_extension(source)
    calibration = calibration or HeuristicCalibration()

    if extension == ".pdf":
        return _default_analysis(extension, calibration)
    if extension not in {".docx", ".doc"}:
        raise UnsupportedFormatError(
            f"Unsupported file format for analysis: {extension or '(none)'}",
            extension=extension,
            signature_hex=source.read_bytes()[:8].hex(" "),
        )

    try:
        text, html = await _extract(source, extension, extractor, converter)
    except CollaboratorFailure as exc:
        if extension != ".doc":
            raise
        log_event(logger, logging.WARNING, "analysis_fallback", path=str(source), error=str(exc))
        return _default_analysis(extension, calibration)

    tags = classify(text)
    variables = ordinary_variable_names(tags)
    provider_raw = [tag.raw for tag in tags if tag.is_provider]

    tier: DetectionTier
    if provider_raw:
        tier = "provider_tags"
        fields = provider_tag_fields(text, calibration)
    else:
        fields = detect_existing_fields(text, html, calibration)
        tier = "existing_fields"
        if not fields:
            tier = "heuristic"
            fields = detect_signature_fields(text, html, calibration)

    signature_related, date_related, text_related = categorize_variables(variables)
    analysis = DocumentAnalysis(
        source_extension=extension,
        tier=tier,
        template_variables=variables,
        provider_tags=provider_raw,
        signature_fields=fields,
        signature_related_variables=signature_related,
        date_variables=date_related,
        text_variables=text_related,
        preview=text[:PREVIEW_LENGTH],
    )
    log_event(
        logger,
        logging.INFO,
        "document_analyzed",
        path=str(source),
        source_extension=extension,
        tier=tier,
        variables=len(variables),
        provider_tags=len(provider_raw),
        signature_fields=len(fields),
    )
    return analysis


def categorize_variables(variables: list[str]) -> tuple[list[str], list[str], list[str]]:
    """Split variable names into signature-, date- and text-related groups."""

    signature_related: list[str] = []
    date_related: list[str] = []
    text_related: list[str] = []
    for name in variables:
        lowered = name.lower()
        if "sign" in lowered:
            signature_related.append(name)
        elif "date" in lowered:
            date_related.append(name)
        else:
            text_related.append(name)
    return signature_related, date_related, text_related


def default_fields(calibration: HeuristicCalibration | None = None) -> list[SignatureFieldDescriptor]:
    """The single ``Signature`` + ``Date`` pair proposed when no text is available."""

    return detect_signature_fields("", None, calibration)


async def _extract(
    source: Path,
    extension: str,
    extractor: ContentExtractor,
    converter: Converter,
) -> tuple[str, str | None]:
    if extension == ".doc":
        try:
            return await extractor.extract_plain_text(source), None
        except CollaboratorFailure:
            docx_bytes = await converter.convert(source.read_bytes(), ".docx", source_ext=".doc")
            with tempfile.TemporaryDirectory(prefix="signprep-analyze-") as tmp_dir:
                converted = Path(tmp_dir) / f"{source.stem}.docx"
                converted.write_bytes(docx_bytes)
                return await extractor.extract_plain_text(converted), None

    text = await extractor.extract_plain_text(source)
    try:
        html = await extractor.extract_styled_html(source)
    except CollaboratorFailure as exc:
        log_event(logger, logging.WARNING, "styled_html_unavailable", path=str(source), error=str(exc))
        html = None
    return text, html


def _default_analysis(extension: str, calibration: HeuristicCalibration) -> DocumentAnalysis:
    return DocumentAnalysis(
        source_extension=extension,
        tier="default",
        signature_fields=default_fields(calibration),
    )
