"""Utilities for docx package and paragraph-level operations.

All zip-part and run-level manipulation of docx content lives here.
Do not spread package handling logic across other modules.
"""

from __future__ import annotations

import io
import zipfile
from collections.abc import Iterator
from dataclasses import dataclass

from docx import Document
from docx.document import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError
from docx.text.paragraph import Paragraph
from docx.text.run import Run

from signprep.utils.errors import UnsupportedFormatError

DOCUMENT_PART = "word/document.xml"


@dataclass(frozen=True)
class ParagraphContext:
    """A body or table-cell paragraph with its stable path and run spans."""

    path: str
    paragraph: Paragraph
    text: str
    run_spans: tuple[tuple[int, int, int], ...]


def load_document(document_bytes: bytes) -> DocxDocument:
    """Open docx bytes with python-docx, mapping container errors to UnsupportedFormatError."""

    try:
        return Document(io.BytesIO(document_bytes))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as exc:
        raise UnsupportedFormatError(
            f"Document is not a readable .docx package: {exc}",
            extension=".docx",
            signature_hex=document_bytes[:8].hex(" "),
        ) from exc


def save_document(document: DocxDocument) -> bytes:
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def iter_paragraph_contexts(document: DocxDocument) -> Iterator[ParagraphContext]:
    """Yield body and table-cell paragraphs once each.

    Merged table cells are reported by python-docx once per grid column; the
    underlying ``w:p`` element is deduplicated here.
    """

    seen: dict[int, object] = {}
    for path, paragraph in _iter_target_paragraphs(document):
        element = paragraph._p
        if id(element) in seen:
            continue
        seen[id(element)] = element
        text, run_spans = build_run_spans(paragraph)
        yield ParagraphContext(path=path, paragraph=paragraph, text=text, run_spans=run_spans)


def build_run_spans(paragraph: Paragraph) -> tuple[str, tuple[tuple[int, int, int], ...]]:
    run_spans: list[tuple[int, int, int]] = []
    chunks: list[str] = []
    cursor = 0

    for run_index, run in enumerate(paragraph.runs):
        text = run.text or ""
        start = cursor
        cursor += len(text)
        run_spans.append((run_index, start, cursor))
        chunks.append(text)

    return "".join(chunks), tuple(run_spans)


def splice_runs(
    runs: list[Run],
    run_spans: tuple[tuple[int, int, int], ...],
    start: int,
    end: int,
    replacement: str,
) -> None:
    """Replace paragraph characters ``[start, end)`` that may cross run boundaries.

    The replacement lands in the first touched run (keeping its formatting);
    the remainder of the span is removed from the following runs. Callers must
    splice right-to-left so earlier offsets stay valid.
    """

    placed = False
    for run_index, run_start, run_end in run_spans:
        if run_end <= start or run_start >= end:
            continue
        run = runs[run_index]
        text = run.text or ""
        local_start = max(start, run_start) - run_start
        local_end = min(end, run_end) - run_start
        if not placed:
            run.text = text[:local_start] + replacement + text[local_end:]
            placed = True
        else:
            run.text = text[:local_start] + text[local_end:]


def read_part_text(document_bytes: bytes, part_name: str = DOCUMENT_PART) -> str:
    """Read one XML part of a docx package as text."""

    try:
        with zipfile.ZipFile(io.BytesIO(document_bytes)) as archive:
            return archive.read(part_name).decode("utf-8")
    except (zipfile.BadZipFile, KeyError) as exc:
        raise UnsupportedFormatError(
            f"Document package has no readable {part_name}",
            extension=".docx",
            signature_hex=document_bytes[:8].hex(" "),
        ) from exc


def replace_part_text(document_bytes: bytes, new_text: str, part_name: str = DOCUMENT_PART) -> bytes:
    """Return a copy of the package with ``part_name`` replaced; other parts are copied as-is."""

    output = io.BytesIO()
    with zipfile.ZipFile(io.BytesIO(document_bytes)) as source, zipfile.ZipFile(
        output, mode="w", compression=zipfile.ZIP_DEFLATED
    ) as target:
        for item in source.infolist():
            if item.filename == part_name:
                target.writestr(item, new_text.encode("utf-8"))
            else:
                target.writestr(item, source.read(item.filename))
    return output.getvalue()


def _iter_target_paragraphs(document: DocxDocument) -> Iterator[tuple[str, Paragraph]]:
    for paragraph_index, paragraph in enumerate(document.paragraphs):
        yield f"p{paragraph_index}", paragraph

    for table_index, table in enumerate(document.tables):
        for row_index, row in enumerate(table.rows):
            for cell_index, cell in enumerate(row.cells):
                for paragraph_index, paragraph in enumerate(cell.paragraphs):
                    yield f"t{table_index}.r{row_index}.c{cell_index}.p{paragraph_index}", paragraph
