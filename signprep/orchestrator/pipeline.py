"""Orchestration pipeline: sniff -> render -> analyze -> convert."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from signprep.convert.converter import Converter, convert_to_pdf
from signprep.detect.analyzer import analyze_document
from signprep.detect.models import DocumentAnalysis, HeuristicCalibration
from signprep.extract.content import ContentExtractor
from signprep.render.docx_renderer import TemplateValue
from signprep.render.models import RenderResult
from signprep.render.template_renderer import render_document


@dataclass(frozen=True)
class PreparedDocument:
    """Artifacts of one preparation run. Files live in the caller's ``work_dir``."""

    render: RenderResult
    analysis: DocumentAnalysis
    rendered_path: Path
    pdf_path: Path | None


async def prepare_document(
    path: str | Path,
    data: Mapping[str, TemplateValue],
    extractor: ContentExtractor,
    converter: Converter,
    work_dir: Path,
    *,
    calibration: HeuristicCalibration | None = None,
    to_pdf: bool = True,
) -> PreparedDocument:
    """Render ``path`` with ``data``, analyze the result and optionally convert it to PDF.

    Analysis runs on the rendered document so proposed fields reflect the
    provider tags that will actually be sent.
    """

    source = Path(path)
    work_dir.mkdir(parents=True, exist_ok=True)

    render = await render_document(source, data, converter)
    rendered_ext = ".pdf" if render.renderer == "passthrough" else ".docx"
    rendered_path = work_dir / f"{source.stem}.rendered{rendered_ext}"
    rendered_path.write_bytes(render.document_bytes)

    analysis = await analyze_document(rendered_path, extractor, converter, calibration)

    pdf_path: Path | None = None
    if to_pdf:
        pdf_bytes = await convert_to_pdf(render.document_bytes, rendered_ext, converter)
        pdf_path = work_dir / f"{source.stem}.pdf"
        pdf_path.write_bytes(pdf_bytes)

    return PreparedDocument(render=render, analysis=analysis, rendered_path=rendered_path, pdf_path=pdf_path)
