"""CLI I/O helpers for template data loading and atomic output writing."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from signprep.render.docx_renderer import TemplateValue
from signprep.render.models import RenderResult


@dataclass(frozen=True)
class OutputPaths:
    """Fixed output artifact paths for a single render."""

    document: Path
    render_report: Path


def build_output_paths(out_dir: Path, extension: str = ".docx") -> OutputPaths:
    """Build fixed output file paths under out_dir."""

    return OutputPaths(
        document=out_dir / f"out{extension}",
        render_report=out_dir / "out.render_report.json",
    )


def existing_output_files(paths: OutputPaths) -> list[Path]:
    return [path for path in (paths.document, paths.render_report) if path.exists()]


def load_template_data(path: Path) -> dict[str, TemplateValue]:
    """Load a flat mapping of variable values from JSON or YAML."""

    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            raw = yaml.safe_load(text)
        else:
            raw = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ValueError(f"Invalid template data file: {path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Template data must be a mapping: {path}")

    data: dict[str, TemplateValue] = {}
    for key, value in raw.items():
        if value is not None and not isinstance(value, (str, int, float)):
            raise ValueError(f"Template value for {key!r} must be a string, number or null")
        data[str(key)] = value
    return data


def write_render_output_atomic(paths: OutputPaths, result: RenderResult) -> None:
    """Write the rendered document and its JSON report using temporary files + replace."""

    paths.document.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write_bytes(paths.document, result.document_bytes)
    write_json_atomic(paths.render_report, result.model_dump(mode="json"))


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        prefix=f"{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        json.dump(payload, tmp, ensure_ascii=False, sort_keys=True, separators=(",", ":"))

    tmp_path.replace(path)


def _atomic_write_bytes(path: Path, payload: bytes) -> None:
    fd, raw_tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f"{path.name}.",
        suffix=".tmp",
    )
    os.close(fd)
    tmp_path = Path(raw_tmp_path)

    try:
        tmp_path.write_bytes(payload)
        tmp_path.replace(path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        raise
