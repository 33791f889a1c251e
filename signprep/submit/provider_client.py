"""HTTP client for the signature provider's REST agreement API."""

from __future__ import annotations

import logging
import mimetypes
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Protocol

import httpx

from signprep.submit.models import DocumentRecord, Recipient, SigningFlow
from signprep.utils.errors import RemoteRejectedError, TransportAmbiguousError
from signprep.utils.events import log_event

logger = logging.getLogger("signprep.submit")

API_PREFIX = "/api/rest/v6"
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
DEFAULT_MESSAGE = "Please sign this document"
REQUEST_ID_HEADER = "X-Request-ID"
TITLE_MATCH_WINDOW = timedelta(hours=1)


class SignatureProvider(Protocol):
    async def create_agreement(
        self,
        transient_document_id: str,
        recipients: Sequence[Recipient],
        name: str,
        *,
        signing_flow: SigningFlow = "SEQUENTIAL",
        message: str | None = None,
        request_id: str | None = None,
    ) -> str: ...

    async def verify_agreement(self, record: DocumentRecord) -> dict[str, Any] | None: ...


def build_agreement_payload(
    transient_document_id: str,
    recipients: Sequence[Recipient],
    name: str,
    *,
    signing_flow: SigningFlow = "SEQUENTIAL",
    message: str | None = None,
) -> dict[str, Any]:
    """Build the agreement-creation body.

    Sequential flows are sorted by ``order`` (unordered recipients last) and
    numbered 1..n; parallel flows put every participant set at order 1.
    """

    if not recipients:
        raise ValueError("No recipients provided for agreement creation")

    ordered = list(recipients)
    if signing_flow == "SEQUENTIAL" and any(item.order for item in ordered):
        ordered.sort(key=lambda item: item.order or 999)

    participant_sets = []
    for index, recipient in enumerate(ordered):
        member: dict[str, Any] = {"email": recipient.email}
        if recipient.name:
            member["name"] = recipient.name
        participant_sets.append(
            {
                "memberInfos": [member],
                "order": index + 1 if signing_flow == "SEQUENTIAL" else 1,
                "role": "SIGNER",
            }
        )

    return {
        "fileInfos": [{"transientDocumentId": transient_document_id}],
        "name": name,
        "participantSetsInfo": participant_sets,
        "signatureType": "ESIGN",
        "state": "IN_PROCESS",
        "message": message or DEFAULT_MESSAGE,
    }


class ProviderClient:
    """Async client for transient documents and agreements.

    Transport-level ``httpx`` errors are left to propagate unchanged so the
    submission layer can treat them as ambiguous. Any HTTP error status is
    raised as ``RemoteRejectedError``. A 2xx agreement response without a
    readable id raises ``TransportAmbiguousError``, since the agreement may exist.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds)
        self._base_url = base_url.rstrip("/")
        self._token = token

    async def __aenter__(self) -> ProviderClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def upload_transient_document(self, path: str | Path) -> str:
        source = Path(path)
        mime_type = mimetypes.guess_type(source.name)[0] or "application/octet-stream"
        response = await self._request(
            "POST",
            "/transientDocuments",
            files={"File": (source.name, source.read_bytes(), mime_type)},
            data={"File-Name": source.name},
        )
        transient_id = response.json().get("transientDocumentId")
        if not transient_id:
            raise RemoteRejectedError(
                "Provider response did not include a transientDocumentId",
                status_code=response.status_code,
                response_body=response.text,
            )
        return str(transient_id)

    async def create_agreement(
        self,
        transient_document_id: str,
        recipients: Sequence[Recipient],
        name: str,
        *,
        signing_flow: SigningFlow = "SEQUENTIAL",
        message: str | None = None,
        request_id: str | None = None,
    ) -> str:
        payload = build_agreement_payload(
            transient_document_id,
            recipients,
            name,
            signing_flow=signing_flow,
            message=message,
        )
        headers = {REQUEST_ID_HEADER: request_id} if request_id else {}
        response = await self._request("POST", "/agreements", json=payload, headers=headers)
        # A 2xx means the provider took the request; an unreadable body leaves
        # the agreement's existence unknown rather than refused.
        try:
            body = response.json()
        except ValueError as exc:
            raise TransportAmbiguousError(
                f"Agreement creation returned HTTP {response.status_code} with an undecodable body",
                request_id=request_id,
            ) from exc
        agreement_id = body.get("id") if isinstance(body, dict) else None
        if not agreement_id:
            raise TransportAmbiguousError(
                f"Agreement creation returned HTTP {response.status_code} without an agreement id",
                request_id=request_id,
            )
        return str(agreement_id)

    async def get_agreement(self, agreement_id: str) -> dict[str, Any] | None:
        try:
            response = await self._request("GET", f"/agreements/{agreement_id}")
        except RemoteRejectedError as exc:
            if exc.status_code == 404:
                return None
            raise
        return response.json()

    async def search_agreements(self, query: str) -> list[dict[str, Any]]:
        response = await self._request("GET", "/agreements", params={"query": query})
        return list(response.json().get("userAgreementList", []))

    async def verify_agreement(
        self,
        record: DocumentRecord,
        *,
        now: datetime | None = None,
    ) -> dict[str, Any] | None:
        """Look for the agreement ``record`` was meant to produce.

        Checks the recorded agreement id first, then an exact title match
        created within the last hour. Returns ``None`` when nothing is found;
        raises when the provider cannot be asked.
        """

        agreement_id = record.agreement_id or record.metadata.get("agreement_id")
        if agreement_id:
            info = await self.get_agreement(str(agreement_id))
            if info is not None:
                log_event(logger, logging.INFO, "agreement_verified", agreement_id=agreement_id, by="id")
                return info
            return None

        if not record.title or not record.recipients:
            return None

        cutoff = (now or datetime.now(timezone.utc)) - TITLE_MATCH_WINDOW
        for item in await self.search_agreements(record.title):
            if item.get("name") != record.title:
                continue
            created = _parse_timestamp(item.get("displayDate"))
            if created is not None and created > cutoff:
                log_event(logger, logging.INFO, "agreement_verified", agreement_id=item.get("id"), by="title")
                return item
        return None

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._token}", "Accept": "application/json"}
        headers.update(kwargs.pop("headers", {}) or {})
        response = await self._http.request(
            method,
            f"{self._base_url}{API_PREFIX}{path}",
            headers=headers,
            **kwargs,
        )
        if response.status_code >= 400:
            raise RemoteRejectedError(
                f"Provider API {method} {path} failed with HTTP {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
                retry_after=_retry_after(response),
            )
        return response


def _retry_after(response: httpx.Response) -> int | None:
    if response.status_code != 429:
        return None
    header = response.headers.get("Retry-After")
    if header and header.isdigit():
        return int(header)
    try:
        body = response.json()
    except ValueError:
        return 60
    value = body.get("retryAfter") if isinstance(body, dict) else None
    return int(value) if isinstance(value, (int, float)) else 60


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
