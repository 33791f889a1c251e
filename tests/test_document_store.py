from __future__ import annotations

import json
from pathlib import Path

import pytest

from signprep.submit.models import DocumentRecord, Recipient
from signprep.submit.records import JsonDocumentStore


def _record(document_id: str = "doc-1", **overrides) -> DocumentRecord:
    return DocumentRecord(
        document_id=document_id,
        title="Service Agreement",
        recipients=[Recipient(email="a@example.com", order=1)],
        **overrides,
    )


@pytest.mark.anyio
async def test_missing_store_reads_as_empty(tmp_path: Path) -> None:
    store = JsonDocumentStore(tmp_path / "missing.json")

    assert await store.get("doc-1") is None
    assert await store.list_all() == []


@pytest.mark.anyio
async def test_save_and_reload_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "state" / "documents.json"
    store = JsonDocumentStore(path)

    await store.save(_record(status="ready_for_signature", metadata={"provider_request_id": "req-1"}))
    loaded = await JsonDocumentStore(path).get("doc-1")

    assert loaded is not None
    assert loaded.status == "ready_for_signature"
    assert loaded.recipients[0].email == "a@example.com"
    assert loaded.metadata == {"provider_request_id": "req-1"}
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["version"] == 1
    assert list(raw["documents"]) == ["doc-1"]
    assert not (path.parent / "documents.json.tmp").exists()


@pytest.mark.anyio
async def test_list_all_is_sorted_and_delete_reports_presence(tmp_path: Path) -> None:
    store = JsonDocumentStore(tmp_path / "documents.json")
    await store.save(_record("doc-b"))
    await store.save(_record("doc-a"))

    assert [record.document_id for record in await store.list_all()] == ["doc-a", "doc-b"]
    assert await store.delete("doc-a") is True
    assert await store.delete("doc-a") is False
    assert [record.document_id for record in await store.list_all()] == ["doc-b"]


@pytest.mark.anyio
async def test_corrupt_store_is_reported(tmp_path: Path) -> None:
    path = tmp_path / "documents.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid document store JSON"):
        await JsonDocumentStore(path).get("doc-1")


@pytest.mark.anyio
async def test_invalid_record_is_reported(tmp_path: Path) -> None:
    path = tmp_path / "documents.json"
    path.write_text(json.dumps({"version": 1, "documents": {"doc-1": {"title": "x"}}}), encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid document record 'doc-1'"):
        await JsonDocumentStore(path).list_all()


def test_send_evidence() -> None:
    assert not _record().has_send_evidence()
    assert _record(status="sent_for_signature").has_send_evidence()
    assert _record(agreement_id="agr-1").has_send_evidence()
