from __future__ import annotations

import io
import logging
import threading
from pathlib import Path

import pytest
from docx import Document

import signprep.render.template_renderer as template_renderer
from signprep.render.template_renderer import render_document, render_template, validate_template_data
from signprep.utils.errors import TemplateSyntaxError, UnsupportedFormatError


def _docx_bytes(*paragraphs: str) -> bytes:
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _text(content: bytes) -> str:
    return "\n".join(paragraph.text for paragraph in Document(io.BytesIO(content)).paragraphs)


class FakeConverter:
    def __init__(self, output: bytes) -> None:
        self.output = output
        self.calls: list[tuple[str | None, str]] = []

    async def convert(self, data: bytes, target_ext: str, *, source_ext: str | None = None) -> bytes:
        self.calls.append((source_ext, target_ext))
        return self.output


def test_end_to_end_fills_client_name_and_keeps_signature_tag() -> None:
    content = _docx_bytes("Agreement for {clientName}", "Signature: {sig_es_:signer1:signature}")

    result = render_template(content, {"clientName": "Acme Co"})

    text = _text(result.document_bytes)
    assert "Agreement for Acme Co" in text
    assert "{clientName}" not in text
    assert "{{sig_es_:signer1:signature}}" in text
    assert result.provider_tags_before == result.provider_tags_after == 1


def test_unbalanced_braces_fall_back_to_bypass(caplog: pytest.LogCaptureFixture) -> None:
    content = _docx_bytes("Sign {sig_es_:signer1:signature and {clientName}")

    with caplog.at_level(logging.WARNING, logger="signprep.render"):
        result = render_template(content, {"clientName": "Acme"})

    assert result.renderer == "bypass"
    assert _text(result.document_bytes) == "Sign {sig_es_:signer1:signature and Acme"
    assert "render_fallback" in caplog.text


def test_duplicate_markers_on_provider_tag_fall_back_to_bypass() -> None:
    content = _docx_bytes("{{{sig_es_:signer1:signature}}} {clientName}")

    result = render_template(content, {"clientName": "Acme"})

    assert result.renderer == "bypass"
    assert _text(result.document_bytes) == "{{{sig_es_:signer1:signature}}} Acme"


def test_duplicate_markers_on_ordinary_tag_are_fatal() -> None:
    content = _docx_bytes("{{{clientName}}}")

    with pytest.raises(TemplateSyntaxError) as exc_info:
        render_template(content, {"clientName": "Acme"})

    assert exc_info.value.error_id == "duplicate_open_tag"
    assert "Problematic tag: {{{clientName}}}" in str(exc_info.value)


@pytest.mark.anyio
async def test_render_document_docx(tmp_path: Path) -> None:
    source = tmp_path / "contract.docx"
    source.write_bytes(_docx_bytes("{clientName}"))

    result = await render_document(source, {"clientName": "Acme"}, FakeConverter(b""))

    assert result.source_extension == ".docx"
    assert _text(result.document_bytes) == "Acme"


@pytest.mark.anyio
async def test_render_document_converts_doc_first(tmp_path: Path) -> None:
    source = tmp_path / "legacy.doc"
    source.write_bytes(b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 64)
    converter = FakeConverter(_docx_bytes("{clientName} {signer1:signature}"))

    result = await render_document(source, {"clientName": "Acme"}, converter)

    assert converter.calls == [(".doc", ".docx")]
    assert result.source_extension == ".doc"
    assert _text(result.document_bytes) == "Acme {{signer1:signature}}"


@pytest.mark.anyio
async def test_render_document_passes_pdf_through(tmp_path: Path) -> None:
    source = tmp_path / "scan.pdf"
    source.write_bytes(b"%PDF-1.4\n%test\n")

    result = await render_document(source, {"clientName": "Acme"}, FakeConverter(b""))

    assert result.renderer == "passthrough"
    assert result.document_bytes == b"%PDF-1.4\n%test\n"
    assert result.provider_tags_before == result.provider_tags_after == 0


@pytest.mark.anyio
async def test_render_document_rejects_unknown_formats(tmp_path: Path) -> None:
    source = tmp_path / "notes.txt"
    source.write_text("{clientName}", encoding="utf-8")

    with pytest.raises(UnsupportedFormatError) as exc_info:
        await render_document(source, {}, FakeConverter(b""))

    assert exc_info.value.extension == ".txt"
    assert exc_info.value.signature_hex == "7b 63 6c 69 65 6e 74 4e"


@pytest.mark.anyio
async def test_sniffed_type_beats_misleading_suffix(tmp_path: Path) -> None:
    source = tmp_path / "mislabelled.pdf"
    source.write_bytes(_docx_bytes("{clientName}"))

    result = await render_document(source, {"clientName": "Acme"}, FakeConverter(b""))

    assert result.source_extension == ".docx"
    assert _text(result.document_bytes) == "Acme"


def test_validate_template_data() -> None:
    report = validate_template_data({"a": "1", "extra": "x"}, ["a", "b", "a"])

    assert not report.is_valid
    assert report.missing_variables == ["b"]
    assert report.matched_variables == ["a"]
    assert report.extra_variables == ["extra"]


@pytest.mark.anyio
async def test_render_document_runs_docx_work_off_the_event_loop(tmp_path: Path, monkeypatch) -> None:
    source = tmp_path / "contract.docx"
    source.write_bytes(_docx_bytes("{clientName}"))
    seen_threads: list[int] = []

    def recording_render(*args, **kwargs):
        seen_threads.append(threading.get_ident())
        return render_template(*args, **kwargs)

    monkeypatch.setattr(template_renderer, "render_template", recording_render)

    result = await render_document(source, {"clientName": "Acme"}, FakeConverter(b""))

    assert _text(result.document_bytes) == "Acme"
    assert len(seen_threads) == 1
    assert seen_threads[0] != threading.get_ident()
