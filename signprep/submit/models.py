"""Submission state, outcomes, policy and the persisted document record."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

DocumentStatus = Literal[
    "uploaded",
    "processed",
    "ready_for_signature",
    "sent_for_signature",
    "failed",
    "signature_error",
]
SigningFlow = Literal["SEQUENTIAL", "PARALLEL"]
AttemptStatus = Literal["pending", "confirmed", "ambiguous", "failed"]

EVIDENCE_STATUSES: frozenset[str] = frozenset({"sent_for_signature"})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Recipient(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str
    name: str | None = None
    order: int | None = None


class DocumentRecord(BaseModel):
    """Persisted state of one document moving through preparation and sending."""

    model_config = ConfigDict(extra="forbid")

    document_id: str
    title: str
    status: DocumentStatus = "uploaded"
    recipients: list[Recipient] = Field(default_factory=list)
    signing_flow: SigningFlow = "SEQUENTIAL"
    agreement_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    file_path: str | None = None
    updated_at: datetime = Field(default_factory=utc_now)

    def has_send_evidence(self) -> bool:
        """True when the record suggests an earlier send reached the provider."""

        return self.status in EVIDENCE_STATUSES or bool(self.agreement_id)


class SubmissionAttempt(BaseModel):
    """One logical send. ``request_id`` is minted once and reused across retries."""

    model_config = ConfigDict(extra="forbid")

    request_id: str
    started_at: datetime = Field(default_factory=utc_now)
    status: AttemptStatus = "pending"
    agreement_id: str | None = None
    attempts: int = 0
    errors: list[str] = Field(default_factory=list)


class Confirmed(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    state: Literal["confirmed"] = "confirmed"
    agreement_id: str | None
    verified: bool


class Ambiguous(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    state: Literal["ambiguous"] = "ambiguous"
    request_id: str
    reason: str


class Failed(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    state: Literal["failed"] = "failed"
    reason: str
    error_type: str
    status_code: int | None = None
    retry_after: int | None = None


SubmissionOutcome = Annotated[Confirmed | Ambiguous | Failed, Field(discriminator="state")]


class SubmissionResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    outcome: SubmissionOutcome
    attempt: SubmissionAttempt


class SubmissionPolicy(BaseModel):
    """Retry and timeout knobs for one logical send."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_attempts: int = Field(default=5, ge=1)
    retry_delay_seconds: float = Field(default=2.0, ge=0.0)
    timeout_seconds: float = Field(default=60.0, gt=0.0)

    @classmethod
    def preset(cls, name: str) -> SubmissionPolicy:
        try:
            return SUBMISSION_PRESETS[name]
        except KeyError as exc:
            supported = ", ".join(sorted(SUBMISSION_PRESETS))
            raise ValueError(f"Unknown submission preset: {name} (supported: {supported})") from exc


SUBMISSION_PRESETS: dict[str, SubmissionPolicy] = {
    "fast": SubmissionPolicy(timeout_seconds=60.0),
    "resilient": SubmissionPolicy(timeout_seconds=180.0),
}
