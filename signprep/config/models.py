"""Settings schema."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from signprep.detect.models import HeuristicCalibration
from signprep.submit.models import SubmissionPolicy


class ProviderSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_url: str
    token: str = ""
    http_timeout_seconds: float = Field(default=30.0, gt=0.0)


class SubmissionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    preset: Literal["fast", "resilient"] = "fast"
    max_attempts: int = Field(default=5, ge=1)
    retry_delay_seconds: float = Field(default=2.0, ge=0.0)
    timeout_seconds: float | None = Field(default=None, gt=0.0)

    def to_policy(self) -> SubmissionPolicy:
        base = SubmissionPolicy.preset(self.preset)
        return SubmissionPolicy(
            max_attempts=self.max_attempts,
            retry_delay_seconds=self.retry_delay_seconds,
            timeout_seconds=self.timeout_seconds or base.timeout_seconds,
        )


class ConversionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    soffice_bin: str = "soffice"
    timeout_seconds: float = Field(default=120.0, gt=0.0)


class ApiSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_upload_bytes: int = Field(default=10 * 1024 * 1024, gt=0)


class Settings(BaseModel):
    """Top-level settings loaded from ``settings.yaml``."""

    model_config = ConfigDict(extra="forbid")

    provider: ProviderSettings
    submission: SubmissionSettings = Field(default_factory=SubmissionSettings)
    conversion: ConversionSettings = Field(default_factory=ConversionSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    heuristics: HeuristicCalibration = Field(default_factory=HeuristicCalibration)
