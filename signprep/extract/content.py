"""Plain-text and styled-HTML extraction from documents."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator
from html import escape
from pathlib import Path
from typing import Protocol

from docx.document import Document as DocxDocument
from docx.text.paragraph import Paragraph

from signprep.utils.docx_xml import load_document
from signprep.utils.errors import CollaboratorFailure, UnsupportedFormatError


class ContentExtractor(Protocol):
    async def extract_plain_text(self, path: str | Path) -> str:
        """Return the document text, one paragraph per line."""

    async def extract_styled_html(self, path: str | Path) -> str:
        """Return a light HTML rendering keeping underline runs as ``<u>``."""


class DocxContentExtractor:
    """Extract content from ``.docx`` files with python-docx in a worker thread."""

    async def extract_plain_text(self, path: str | Path) -> str:
        return await asyncio.to_thread(self._run, Path(path), "plain_text", _plain_text)

    async def extract_styled_html(self, path: str | Path) -> str:
        return await asyncio.to_thread(self._run, Path(path), "styled_html", _styled_html)

    def _run(self, path: Path, operation: str, render: Callable[[DocxDocument], str]) -> str:
        try:
            document = load_document(path.read_bytes())
        except (OSError, UnsupportedFormatError) as exc:
            raise CollaboratorFailure(
                f"Unable to extract {operation} from {path.name}: {exc}",
                collaborator="extractor",
                operation=operation,
            ) from exc
        return render(document)


def _iter_paragraphs(document: DocxDocument) -> Iterator[Paragraph]:
    yield from document.paragraphs
    for table in document.tables:
        for row in table.rows:
            seen: set[int] = set()
            for cell in row.cells:
                if id(cell._tc) in seen:
                    continue
                seen.add(id(cell._tc))
                yield from cell.paragraphs


def _plain_text(document: DocxDocument) -> str:
    return "\n".join(paragraph.text for paragraph in _iter_paragraphs(document))


def _styled_html(document: DocxDocument) -> str:
    return "\n".join(_paragraph_html(paragraph) for paragraph in _iter_paragraphs(document))


def _paragraph_html(paragraph: Paragraph) -> str:
    chunks: list[str] = []
    for run in paragraph.runs:
        text = escape(run.text or "", quote=False)
        if not text:
            continue
        chunks.append(f"<u>{text}</u>" if run.underline else text)
    return "<p>" + "".join(chunks) + "</p>"
