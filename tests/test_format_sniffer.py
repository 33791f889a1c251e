from __future__ import annotations

import io
import zipfile
from pathlib import Path

from docx import Document

from signprep.sniff.format_sniffer import identify, identify_bytes, resolve_extension


def _docx_bytes() -> bytes:
    buffer = io.BytesIO()
    Document().save(buffer)
    return buffer.getvalue()


def _zip_bytes(name: str) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(name, "<x/>")
    return buffer.getvalue()


def test_identifies_docx_package() -> None:
    guess = identify_bytes(_docx_bytes())

    assert guess.detected == ".docx"
    assert guess.confidence == 0.9
    assert guess.signature_hex.startswith("50 4b 03 04")
    assert guess.is_known


def test_identifies_other_ooxml_and_plain_zip() -> None:
    assert identify_bytes(_zip_bytes("xl/workbook.xml")).detected == ".xlsx"
    assert identify_bytes(_zip_bytes("ppt/presentation.xml")).detected == ".pptx"
    plain = identify_bytes(_zip_bytes("readme.txt"))
    assert (plain.detected, plain.confidence) == (".zip", 0.7)


def test_truncated_zip_is_low_confidence_zip() -> None:
    guess = identify_bytes(b"PK\x03\x04garbage")

    assert (guess.detected, guess.confidence) == (".zip", 0.5)


def test_identifies_pdf_and_ole() -> None:
    pdf = identify_bytes(b"%PDF-1.7\n...")
    ole = identify_bytes(b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1rest")

    assert (pdf.detected, pdf.confidence) == (".pdf", 0.9)
    assert (ole.detected, ole.confidence) == (".doc", 0.8)
    assert ole.signature_hex == "d0 cf 11 e0 a1 b1 1a e1"


def test_unknown_bytes_report_zero_confidence() -> None:
    guess = identify_bytes(b"hello")

    assert guess.detected == "unknown"
    assert guess.confidence == 0.0
    assert guess.signature_hex == "68 65 6c 6c 6f"
    assert not guess.is_known


def test_empty_input_is_unknown() -> None:
    guess = identify_bytes(b"")

    assert guess.detected == "unknown"
    assert guess.signature_hex == ""


def test_identify_reads_file(tmp_path: Path) -> None:
    source = tmp_path / "contract.bin"
    source.write_bytes(_docx_bytes())

    assert identify(source).detected == ".docx"


def test_resolve_extension_prefers_sniffed_type(tmp_path: Path) -> None:
    mislabelled = tmp_path / "contract.pdf"
    mislabelled.write_bytes(_docx_bytes())
    plain = tmp_path / "notes.TXT"
    plain.write_bytes(b"just text")

    assert resolve_extension(mislabelled) == ".docx"
    assert resolve_extension(plain) == ".txt"
