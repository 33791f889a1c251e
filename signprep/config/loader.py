"""Settings loading: packaged YAML defaults plus environment overrides."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from signprep.config.models import Settings


def load_settings(path: Path | None = None, environ: Mapping[str, str] | None = None) -> Settings:
    """Load and validate settings from YAML, then apply ``SIGNPREP_*`` overrides."""

    settings_path = path or Path(__file__).with_name("settings.yaml")

    try:
        raw = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Settings file not found: {settings_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in settings file: {settings_path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Settings file must contain a mapping: {settings_path}")

    try:
        settings = Settings.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid settings schema: {settings_path}: {exc}") from exc

    return apply_env_overrides(settings, os.environ if environ is None else environ)


def apply_env_overrides(settings: Settings, environ: Mapping[str, str]) -> Settings:
    """Apply environment overrides; unparsable or non-positive numbers are ignored."""

    provider = settings.provider
    base_url = environ.get("SIGNPREP_PROVIDER_BASE_URL", "").strip()
    token = environ.get("SIGNPREP_PROVIDER_TOKEN")
    provider = provider.model_copy(
        update={
            "base_url": base_url or provider.base_url,
            "token": token if token is not None else provider.token,
        }
    )

    submission = settings.submission.model_copy(
        update={
            "timeout_seconds": _positive_float(
                environ.get("SIGNPREP_SUBMIT_TIMEOUT_SECONDS"), settings.submission.timeout_seconds
            ),
            "max_attempts": _positive_int(
                environ.get("SIGNPREP_SUBMIT_MAX_ATTEMPTS"), settings.submission.max_attempts
            ),
        }
    )

    soffice_bin = environ.get("SIGNPREP_SOFFICE_BIN", "").strip()
    conversion = settings.conversion.model_copy(
        update={"soffice_bin": soffice_bin or settings.conversion.soffice_bin}
    )

    api = settings.api.model_copy(
        update={
            "max_upload_bytes": _positive_int(
                environ.get("SIGNPREP_MAX_UPLOAD_BYTES"), settings.api.max_upload_bytes
            )
        }
    )

    return settings.model_copy(
        update={"provider": provider, "submission": submission, "conversion": conversion, "api": api}
    )


def _positive_float(raw: str | None, default: float | None) -> float | None:
    if raw is None:
        return default
    try:
        parsed = float(raw)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _positive_int(raw: str | None, default: int) -> int:
    if raw is None:
        return default
    try:
        parsed = int(raw)
    except ValueError:
        return default
    return parsed if parsed > 0 else default
