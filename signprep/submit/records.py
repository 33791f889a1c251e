"""Document record persistence: the store protocol and a local JSON adapter."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from signprep.submit.models import DocumentRecord, utc_now

_STORE_VERSION = 1


class DocumentStore(Protocol):
    async def get(self, document_id: str) -> DocumentRecord | None: ...

    async def save(self, record: DocumentRecord) -> None: ...


class JsonDocumentStore:
    """Persist document records keyed by id in a single JSON file.

    Writes go to a sibling ``.tmp`` file which then replaces the store, so a
    crash never leaves a half-written store behind.
    """

    def __init__(self, store_path: Path) -> None:
        self._store_path = store_path

    async def get(self, document_id: str) -> DocumentRecord | None:
        return self._read_data().get(document_id)

    async def save(self, record: DocumentRecord) -> None:
        data = self._read_data()
        data[record.document_id] = record.model_copy(update={"updated_at": utc_now()})
        self._write_data(data)

    async def list_all(self) -> list[DocumentRecord]:
        data = self._read_data()
        return [data[key] for key in sorted(data.keys())]

    async def delete(self, document_id: str) -> bool:
        data = self._read_data()
        if document_id not in data:
            return False
        del data[document_id]
        self._write_data(data)
        return True

    def _read_data(self) -> dict[str, DocumentRecord]:
        if not self._store_path.exists():
            return {}

        try:
            raw = json.loads(self._store_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid document store JSON: {self._store_path}") from exc

        records: dict[str, DocumentRecord] = {}
        for document_id, item in raw.get("documents", {}).items():
            try:
                records[document_id] = DocumentRecord.model_validate(item)
            except ValidationError as exc:
                raise ValueError(
                    f"Invalid document record {document_id!r} in {self._store_path}: {exc}"
                ) from exc
        return records

    def _write_data(self, data: dict[str, DocumentRecord]) -> None:
        self._store_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._store_path.with_suffix(f"{self._store_path.suffix}.tmp")

        payload = {
            "version": _STORE_VERSION,
            "documents": {key: data[key].model_dump(mode="json") for key in sorted(data.keys())},
        }
        temp_path.write_text(
            json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False),
            encoding="utf-8",
        )
        temp_path.replace(self._store_path)
