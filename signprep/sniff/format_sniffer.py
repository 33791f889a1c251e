"""Identify document formats from magic bytes rather than file names."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path

from pydantic import BaseModel, ConfigDict

_ZIP_MAGIC = b"PK\x03\x04"
_PDF_MAGIC = b"%PDF"
_OLE_MAGIC = b"\xd0\xcf\x11\xe0"
_HEADER_SIZE = 8

# Marker part inside an OOXML package -> extension.
_OOXML_MARKERS: tuple[tuple[str, str], ...] = (
    ("word/document.xml", ".docx"),
    ("xl/workbook.xml", ".xlsx"),
    ("ppt/presentation.xml", ".pptx"),
)


class FormatGuess(BaseModel):
    """Detected extension with a confidence in ``[0, 1]``; ``unknown`` means 0."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    detected: str
    confidence: float
    signature_hex: str

    @property
    def is_known(self) -> bool:
        return self.detected != "unknown" and self.confidence > 0


def identify(path: str | Path) -> FormatGuess:
    return identify_bytes(Path(path).read_bytes())


def identify_bytes(data: bytes) -> FormatGuess:
    header = data[:_HEADER_SIZE]
    signature_hex = header.hex(" ")

    if header.startswith(_ZIP_MAGIC):
        detected, confidence = _identify_zip(data)
        return FormatGuess(detected=detected, confidence=confidence, signature_hex=signature_hex)
    if header.startswith(_PDF_MAGIC):
        return FormatGuess(detected=".pdf", confidence=0.9, signature_hex=signature_hex)
    if header.startswith(_OLE_MAGIC):
        # OLE compound files also carry .xls/.ppt; .doc is the only one we accept.
        return FormatGuess(detected=".doc", confidence=0.8, signature_hex=signature_hex)
    return FormatGuess(detected="unknown", confidence=0.0, signature_hex=signature_hex)


def resolve_extension(path: str | Path) -> str:
    """Pick the extension to process ``path`` as.

    The sniffed type wins over the file suffix when they disagree and the
    sniffer is at all confident; otherwise the lower-cased suffix is used.
    """

    declared = Path(path).suffix.lower()
    guess = identify(path)
    if guess.is_known and guess.detected != declared:
        return guess.detected
    return declared


def _identify_zip(data: bytes) -> tuple[str, float]:
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            names = set(archive.namelist())
    except zipfile.BadZipFile:
        return ".zip", 0.5

    for marker, extension in _OOXML_MARKERS:
        if marker in names:
            return extension, 0.9
    return ".zip", 0.7
