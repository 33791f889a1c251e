"""Resolution of ambiguous sends against the persisted record and the provider."""

from __future__ import annotations

import logging

import httpx

from signprep.submit.models import Ambiguous, Confirmed, DocumentRecord, Failed, utc_now
from signprep.submit.provider_client import SignatureProvider
from signprep.submit.records import DocumentStore
from signprep.utils.errors import RemoteRejectedError
from signprep.utils.events import log_event

logger = logging.getLogger("signprep.submit")

# Errors meaning "the provider could not be asked", as opposed to "it said no".
VERIFICATION_ERRORS: tuple[type[BaseException], ...] = (
    httpx.TransportError,
    RemoteRejectedError,
    TimeoutError,
    OSError,
)


async def resolve_ambiguous(
    record: DocumentRecord,
    client: SignatureProvider,
    *,
    request_id: str,
    reason: str,
) -> Confirmed | Ambiguous:
    """Decide what an ambiguous send actually did.

    A successful provider lookup confirms the send as verified. When the
    lookup itself cannot be performed, local evidence (status or a recorded
    agreement id) confirms it as unverified. Otherwise it stays ambiguous.
    """

    try:
        info = await client.verify_agreement(record)
    except VERIFICATION_ERRORS as exc:
        log_event(
            logger,
            logging.WARNING,
            "verification_unavailable",
            document_id=record.document_id,
            request_id=request_id,
            error_type=exc.__class__.__name__,
            error=str(exc),
        )
        if record.has_send_evidence():
            return Confirmed(agreement_id=record.agreement_id, verified=False)
        return Ambiguous(request_id=request_id, reason=reason)

    if info is not None:
        agreement_id = info.get("id") or record.agreement_id
        return Confirmed(agreement_id=str(agreement_id) if agreement_id else None, verified=True)
    return Ambiguous(request_id=request_id, reason=reason)


def apply_outcome(
    record: DocumentRecord,
    outcome: Confirmed | Ambiguous | Failed,
    *,
    request_id: str,
    recovered: bool = False,
) -> DocumentRecord:
    """Return ``record`` updated for ``outcome``.

    ``verified`` records whether the provider confirmed the agreement. When
    the confirmation came out of recovery it is also flagged, verified
    (``verified_recovery``) and unverified (``recovery_applied``) separately.
    """

    metadata = dict(record.metadata)
    metadata["provider_request_id"] = request_id
    update: dict[str, object] = {}

    if isinstance(outcome, Confirmed):
        update["status"] = "sent_for_signature"
        if outcome.agreement_id:
            update["agreement_id"] = outcome.agreement_id
            metadata["agreement_id"] = outcome.agreement_id
        metadata.pop("ambiguous_reason", None)
        metadata["verified"] = outcome.verified
        if outcome.verified:
            metadata.pop("recovery_applied", None)
            if recovered:
                metadata["verified_recovery"] = True
        else:
            metadata["recovery_applied"] = True
        metadata["confirmed_at"] = utc_now().isoformat()
    elif isinstance(outcome, Ambiguous):
        metadata["ambiguous_reason"] = outcome.reason
    else:
        update["status"] = "signature_error"
        metadata["last_error"] = outcome.reason
        if outcome.status_code is not None:
            metadata["last_error_status"] = outcome.status_code

    update["metadata"] = metadata
    return record.model_copy(update=update)


async def recover_document(
    document_id: str,
    store: DocumentStore,
    client: SignatureProvider,
) -> Confirmed | Ambiguous | Failed:
    """Re-check an ambiguous or unverified send out of band and persist the result."""

    record = await store.get(document_id)
    if record is None:
        return Failed(reason=f"Document not found: {document_id}", error_type="LookupError")

    request_id = str(record.metadata.get("provider_request_id") or f"recover-{document_id}")
    outcome = await resolve_ambiguous(record, client, request_id=request_id, reason="manual recovery")

    if isinstance(outcome, Confirmed) and not outcome.verified and (
        record.metadata.get("verified") or record.metadata.get("verified_recovery")
    ):
        # Already verified earlier; a failed re-check does not downgrade it.
        return Confirmed(agreement_id=record.agreement_id, verified=True)

    await store.save(apply_outcome(record, outcome, request_id=request_id, recovered=True))
    log_event(
        logger,
        logging.INFO,
        "document_recovered",
        document_id=document_id,
        request_id=request_id,
        state=outcome.state,
        verified=getattr(outcome, "verified", None),
    )
    return outcome
