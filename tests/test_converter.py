from __future__ import annotations

import logging

import pytest

from signprep.convert.converter import LibreOfficeConverter, convert_to_pdf
from signprep.utils.errors import CollaboratorFailure, UnsupportedFormatError


class ScriptedConverter:
    """Returns canned output per (source, target) route, or fails the route."""

    def __init__(self, routes: dict[tuple[str | None, str], bytes], failing: set[tuple[str | None, str]] = frozenset()) -> None:
        self.routes = routes
        self.failing = set(failing)
        self.calls: list[tuple[str | None, str]] = []

    async def convert(self, data: bytes, target_ext: str, *, source_ext: str | None = None) -> bytes:
        route = (source_ext, target_ext)
        self.calls.append(route)
        if route in self.failing:
            raise CollaboratorFailure("boom", collaborator="converter", operation=f"{source_ext}->{target_ext}")
        return self.routes[route]


@pytest.mark.anyio
async def test_pdf_input_is_returned_unchanged() -> None:
    converter = ScriptedConverter({})

    assert await convert_to_pdf(b"%PDF-1.4", ".pdf", converter) == b"%PDF-1.4"
    assert converter.calls == []


@pytest.mark.anyio
async def test_docx_converts_directly() -> None:
    converter = ScriptedConverter({(".docx", ".pdf"): b"%PDF-out"})

    assert await convert_to_pdf(b"PK..", ".DOCX", converter) == b"%PDF-out"
    assert converter.calls == [(".docx", ".pdf")]


@pytest.mark.anyio
async def test_doc_falls_back_through_docx(caplog: pytest.LogCaptureFixture) -> None:
    converter = ScriptedConverter(
        {(".doc", ".docx"): b"PK-docx", (".docx", ".pdf"): b"%PDF-out"},
        failing={(".doc", ".pdf")},
    )

    with caplog.at_level(logging.WARNING, logger="signprep.convert"):
        result = await convert_to_pdf(b"\xd0\xcf\x11\xe0", ".doc", converter)

    assert result == b"%PDF-out"
    assert converter.calls == [(".doc", ".pdf"), (".doc", ".docx"), (".docx", ".pdf")]
    assert "conversion_fallback" in caplog.text


@pytest.mark.anyio
async def test_doc_fallback_failure_propagates() -> None:
    converter = ScriptedConverter({}, failing={(".doc", ".pdf"), (".doc", ".docx")})

    with pytest.raises(CollaboratorFailure):
        await convert_to_pdf(b"\xd0\xcf\x11\xe0", ".doc", converter)


@pytest.mark.anyio
async def test_unknown_extension_failure_is_unsupported() -> None:
    converter = ScriptedConverter({}, failing={(".txt", ".pdf")})

    with pytest.raises(UnsupportedFormatError) as exc_info:
        await convert_to_pdf(b"hello", ".txt", converter)

    assert exc_info.value.extension == ".txt"
    assert exc_info.value.signature_hex == "68 65 6c 6c 6f"


@pytest.mark.anyio
async def test_libreoffice_missing_binary_is_collaborator_failure() -> None:
    converter = LibreOfficeConverter(soffice_bin="/nonexistent/soffice-for-tests")

    with pytest.raises(CollaboratorFailure) as exc_info:
        await converter.convert(b"%PDF-1.4", ".docx")

    assert exc_info.value.collaborator == "converter"
    assert exc_info.value.operation == ".pdf->.docx"
