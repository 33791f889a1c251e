from __future__ import annotations

import io
import json
from urllib.parse import unquote

import httpx
import pytest
from docx import Document

from apps.api.main import REQUEST_ID_HEADER, app

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _docx_bytes(*paragraphs: str) -> bytes:
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


@pytest.mark.anyio
async def test_healthz_ok() -> None:
    async with _client() as client:
        response = await client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers[REQUEST_ID_HEADER]


@pytest.mark.anyio
async def test_sniff_detects_docx() -> None:
    async with _client() as client:
        response = await client.post("/v1/sniff", files={"file": ("blob.bin", _docx_bytes("x"), "application/octet-stream")})

    assert response.status_code == 200
    assert response.json()["detected"] == ".docx"


@pytest.mark.anyio
async def test_render_returns_document_with_count_headers() -> None:
    template = _docx_bytes("Agreement for {clientName} {company}", "{sig_es_:signer1:signature}")

    async with _client() as client:
        response = await client.post(
            "/v1/render",
            files={"template": ("template.docx", template, DOCX_MEDIA_TYPE)},
            data={"data": json.dumps({"clientName": "Acme"})},
        )

    assert response.status_code == 200
    assert response.headers["content-type"] == DOCX_MEDIA_TYPE
    assert response.headers["X-Signprep-Renderer"] == "primary"
    assert response.headers["X-Signprep-Provider-Tags-Before"] == "1"
    assert response.headers["X-Signprep-Provider-Tags-After"] == "1"
    assert response.headers["X-Signprep-Missing-Variables"] == "company"
    assert response.headers["X-Signprep-Missing-Count"] == "1"
    document = Document(io.BytesIO(response.content))
    assert [paragraph.text for paragraph in document.paragraphs] == [
        "Agreement for Acme {company}",
        "{{sig_es_:signer1:signature}}",
    ]


@pytest.mark.anyio
async def test_render_syntax_error_is_422() -> None:
    template = _docx_bytes("Total {{{bad}}}")

    async with _client() as client:
        response = await client.post(
            "/v1/render",
            files={"template": ("template.docx", template, DOCX_MEDIA_TYPE)},
        )

    assert response.status_code == 422
    payload = response.json()
    assert payload["error_code"] == "TEMPLATE_SYNTAX_ERROR"
    assert payload["detail"]["error_id"] == "duplicate_open_tag"
    assert payload["detail"]["request_id"] == response.headers[REQUEST_ID_HEADER]


@pytest.mark.anyio
async def test_render_rejects_bad_data() -> None:
    async with _client() as client:
        response = await client.post(
            "/v1/render",
            files={"template": ("template.docx", _docx_bytes("x"), DOCX_MEDIA_TYPE)},
            data={"data": "[1, 2]"},
        )

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_TEMPLATE_DATA"


@pytest.mark.anyio
async def test_render_rejects_nested_values() -> None:
    async with _client() as client:
        response = await client.post(
            "/v1/render",
            files={"template": ("template.docx", _docx_bytes("x"), DOCX_MEDIA_TYPE)},
            data={"data": json.dumps({"clientName": {"first": "A"}})},
        )

    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "clientName"


@pytest.mark.anyio
async def test_render_rejects_unexpected_suffix() -> None:
    async with _client() as client:
        response = await client.post(
            "/v1/render",
            files={"template": ("notes.txt", b"{clientName}", "text/plain")},
        )

    assert response.status_code == 415
    assert response.json()["error_code"] == "INVALID_MEDIA_TYPE"


@pytest.mark.anyio
async def test_render_rejects_unknown_content_behind_docx_suffix() -> None:
    async with _client() as client:
        response = await client.post(
            "/v1/render",
            files={"template": ("template.docx", b"plain text, not a package", DOCX_MEDIA_TYPE)},
        )

    assert response.status_code == 415
    assert response.json()["error_code"] == "UNSUPPORTED_FORMAT"


@pytest.mark.anyio
async def test_upload_limit_is_enforced(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SIGNPREP_MAX_UPLOAD_BYTES", "16")

    async with _client() as client:
        response = await client.post(
            "/v1/sniff",
            files={"file": ("blob.bin", b"x" * 64, "application/octet-stream")},
        )

    assert response.status_code == 413
    assert response.json()["detail"]["max_bytes"] == 16


@pytest.mark.anyio
async def test_analyze_reports_provider_tag_fields() -> None:
    template = _docx_bytes("Dear {clientName}", "{{sig_es_:signer1:signature}} {signer1:date}")

    async with _client() as client:
        response = await client.post(
            "/v1/analyze",
            files={"file": ("contract.docx", template, DOCX_MEDIA_TYPE)},
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["tier"] == "provider_tags"
    assert payload["template_variables"] == ["clientName"]
    assert [field["name"] for field in payload["signature_fields"]] == [
        "ProviderTag_SIGNATURE_1",
        "ProviderTag_DATE_1",
    ]


@pytest.mark.anyio
async def test_render_encodes_non_ascii_missing_variables() -> None:
    template = _docx_bytes("甲方：{客户名称}", "地址：{address}")

    async with _client() as client:
        response = await client.post(
            "/v1/render",
            files={"template": ("template.docx", template, DOCX_MEDIA_TYPE)},
            data={"data": "{}"},
        )

    assert response.status_code == 200
    assert response.headers["X-Signprep-Missing-Count"] == "2"
    header = response.headers["X-Signprep-Missing-Variables"]
    assert header.isascii()
    assert [unquote(item) for item in header.split(",")] == ["客户名称", "address"]
