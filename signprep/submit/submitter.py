"""Resilient agreement submission.

One logical send moves ``pending -> confirmed | ambiguous | failed``:

- HTTP error status, validation errors and missing recipients fail at once
  and are never retried.
- Transport-layer errors and 2xx replies without a readable agreement id are
  ambiguous: the provider may have created the agreement. Recovery runs first; only when it finds no evidence is the call
  retried, with the same request id, while attempts remain.
- The overall timeout races the in-flight call. Losing the race is terminal
  ambiguous and the call is left running, since it may still land remotely.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable

import httpx

from signprep.submit.models import (
    Ambiguous,
    Confirmed,
    DocumentRecord,
    Failed,
    SubmissionAttempt,
    SubmissionPolicy,
    SubmissionResult,
)
from signprep.submit.provider_client import SignatureProvider
from signprep.submit.records import DocumentStore
from signprep.submit.recovery import apply_outcome, resolve_ambiguous
from signprep.utils.errors import RemoteRejectedError, TransportAmbiguousError
from signprep.utils.events import log_event

logger = logging.getLogger("signprep.submit")

# Failures after which the request may or may not have reached the provider.
TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    httpx.RequestError,
    TransportAmbiguousError,
    ConnectionError,
    TimeoutError,
    OSError,
)


def new_request_id() -> str:
    return uuid.uuid4().hex


class ResilientSubmitter:
    """Send a prepared document for signature without duplicate or lost sends."""

    def __init__(
        self,
        client: SignatureProvider,
        store: DocumentStore,
        policy: SubmissionPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        request_id_factory: Callable[[], str] = new_request_id,
    ) -> None:
        self._client = client
        self._store = store
        self._policy = policy or SubmissionPolicy()
        self._sleep = sleep
        self._request_id_factory = request_id_factory
        self._in_flight: set[asyncio.Task[str]] = set()

    async def submit(
        self,
        document_id: str,
        transient_document_id: str,
        name: str | None = None,
        message: str | None = None,
    ) -> SubmissionResult:
        attempt = SubmissionAttempt(request_id=self._request_id_factory())

        record = await self._store.get(document_id)
        if record is None:
            outcome = Failed(reason=f"Document not found: {document_id}", error_type="LookupError")
            return self._finish(attempt, outcome)
        if not record.recipients:
            outcome = Failed(reason="No recipients provided for agreement creation", error_type="ValueError")
            return await self._settle(record, attempt, outcome)

        title = name or record.title
        deadline = time.monotonic() + self._policy.timeout_seconds

        while True:
            attempt.attempts += 1
            log_event(
                logger,
                logging.INFO,
                "submission_attempt",
                document_id=document_id,
                request_id=attempt.request_id,
                attempt=attempt.attempts,
                max_attempts=self._policy.max_attempts,
            )

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                outcome = await self._recover(record, attempt, reason="submission timed out")
                return await self._settle(record, attempt, outcome, recovered=True)

            task = asyncio.ensure_future(
                self._client.create_agreement(
                    transient_document_id,
                    record.recipients,
                    title,
                    signing_flow=record.signing_flow,
                    message=message,
                    request_id=attempt.request_id,
                )
            )
            done, _ = await asyncio.wait({task}, timeout=remaining)

            if not done:
                self._in_flight.add(task)
                task.add_done_callback(self._forget)
                attempt.errors.append(f"timed out after {self._policy.timeout_seconds}s")
                outcome = await self._recover(record, attempt, reason="submission timed out")
                return await self._settle(record, attempt, outcome, recovered=True)

            try:
                agreement_id = task.result()
            except RemoteRejectedError as exc:
                attempt.errors.append(str(exc))
                outcome = Failed(
                    reason=str(exc),
                    error_type=exc.__class__.__name__,
                    status_code=exc.status_code,
                    retry_after=exc.retry_after,
                )
                return await self._settle(record, attempt, outcome)
            except ValueError as exc:
                # Payload validation, raised before any request is sent.
                attempt.errors.append(str(exc))
                outcome = Failed(reason=str(exc), error_type=exc.__class__.__name__)
                return await self._settle(record, attempt, outcome)
            except TRANSPORT_ERRORS as exc:
                attempt.errors.append(f"{exc.__class__.__name__}: {exc}")
                log_event(
                    logger,
                    logging.WARNING,
                    "submission_ambiguous",
                    document_id=document_id,
                    request_id=attempt.request_id,
                    attempt=attempt.attempts,
                    error_type=exc.__class__.__name__,
                    error=str(exc),
                )
                record = await self._store.get(document_id) or record
                outcome = await self._recover(record, attempt, reason=f"transport error: {exc.__class__.__name__}")
                if isinstance(outcome, Ambiguous) and attempt.attempts < self._policy.max_attempts:
                    await self._sleep(self._policy.retry_delay_seconds)
                    continue
                return await self._settle(record, attempt, outcome, recovered=True)

            outcome = Confirmed(agreement_id=agreement_id, verified=True)
            return await self._settle(record, attempt, outcome)

    async def _recover(
        self,
        record: DocumentRecord,
        attempt: SubmissionAttempt,
        *,
        reason: str,
    ) -> Confirmed | Ambiguous:
        attempt.status = "ambiguous"
        return await resolve_ambiguous(record, self._client, request_id=attempt.request_id, reason=reason)

    async def _settle(
        self,
        record: DocumentRecord,
        attempt: SubmissionAttempt,
        outcome: Confirmed | Ambiguous | Failed,
        *,
        recovered: bool = False,
    ) -> SubmissionResult:
        await self._store.save(
            apply_outcome(record, outcome, request_id=attempt.request_id, recovered=recovered)
        )
        return self._finish(attempt, outcome)

    def _finish(self, attempt: SubmissionAttempt, outcome: Confirmed | Ambiguous | Failed) -> SubmissionResult:
        attempt.status = outcome.state
        if isinstance(outcome, Confirmed):
            attempt.agreement_id = outcome.agreement_id
        log_event(
            logger,
            logging.INFO if outcome.state == "confirmed" else logging.WARNING,
            f"submission_{outcome.state}",
            request_id=attempt.request_id,
            attempts=attempt.attempts,
            outcome=outcome.model_dump(mode="json"),
        )
        return SubmissionResult(outcome=outcome, attempt=attempt)

    def _forget(self, task: asyncio.Task[str]) -> None:
        self._in_flight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log_event(
                logger,
                logging.WARNING,
                "late_submission_failed",
                error_type=task.exception().__class__.__name__,
            )
