"""Office format conversion via a headless LibreOffice subprocess."""

from __future__ import annotations

import asyncio
import logging
import tempfile
from pathlib import Path
from typing import Protocol

from signprep.sniff.format_sniffer import identify_bytes
from signprep.utils.errors import CollaboratorFailure, UnsupportedFormatError
from signprep.utils.events import log_event

logger = logging.getLogger("signprep.convert")

DEFAULT_SOFFICE_BIN = "soffice"
DEFAULT_CONVERT_TIMEOUT_SECONDS = 120.0


class Converter(Protocol):
    async def convert(self, data: bytes, target_ext: str, *, source_ext: str | None = None) -> bytes:
        """Return ``data`` converted to ``target_ext`` (e.g. ``.pdf``)."""


class LibreOfficeConverter:
    """Convert documents with ``soffice --headless --convert-to``.

    Each call works in its own temporary directory, which is removed on exit.
    A process that outlives ``timeout_seconds`` is killed.
    """

    def __init__(
        self,
        soffice_bin: str = DEFAULT_SOFFICE_BIN,
        timeout_seconds: float = DEFAULT_CONVERT_TIMEOUT_SECONDS,
    ) -> None:
        self.soffice_bin = soffice_bin
        self.timeout_seconds = timeout_seconds

    async def convert(self, data: bytes, target_ext: str, *, source_ext: str | None = None) -> bytes:
        if source_ext is None:
            guess = identify_bytes(data)
            source_ext = guess.detected if guess.is_known else ".bin"
        target = target_ext.lstrip(".").lower()

        with tempfile.TemporaryDirectory(prefix="signprep-convert-") as tmp_dir:
            work_dir = Path(tmp_dir)
            source_path = work_dir / f"source{source_ext}"
            source_path.write_bytes(data)
            output_path = work_dir / f"source.{target}"

            try:
                process = await asyncio.create_subprocess_exec(
                    self.soffice_bin,
                    "--headless",
                    "--convert-to",
                    target,
                    "--outdir",
                    str(work_dir),
                    str(source_path),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as exc:
                raise CollaboratorFailure(
                    f"Unable to start converter {self.soffice_bin!r}: {exc}",
                    collaborator="converter",
                    operation=f"{source_ext}->.{target}",
                ) from exc

            try:
                _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout_seconds)
            except asyncio.TimeoutError as exc:
                process.kill()
                await process.wait()
                raise CollaboratorFailure(
                    f"Conversion timed out after {self.timeout_seconds}s",
                    collaborator="converter",
                    operation=f"{source_ext}->.{target}",
                ) from exc

            if process.returncode != 0 or not output_path.exists():
                detail = stderr.decode("utf-8", errors="replace").strip()
                raise CollaboratorFailure(
                    f"Conversion {source_ext}->.{target} failed (exit {process.returncode}): {detail}",
                    collaborator="converter",
                    operation=f"{source_ext}->.{target}",
                )
            return output_path.read_bytes()


async def convert_to_pdf(data: bytes, source_ext: str, converter: Converter) -> bytes:
    """Produce PDF bytes from ``data``.

    ``.doc`` sources that fail direct conversion are retried as
    DOC -> DOCX -> PDF. Unknown extensions get one direct attempt and are
    reported as unsupported when it fails.
    """

    source_ext = source_ext.lower()
    if source_ext == ".pdf":
        return data

    if source_ext == ".docx":
        return await converter.convert(data, ".pdf", source_ext=source_ext)

    if source_ext == ".doc":
        try:
            return await converter.convert(data, ".pdf", source_ext=".doc")
        except CollaboratorFailure as exc:
            log_event(
                logger,
                logging.WARNING,
                "conversion_fallback",
                source_ext=".doc",
                route="doc->docx->pdf",
                error=str(exc),
            )
            docx_bytes = await converter.convert(data, ".docx", source_ext=".doc")
            return await converter.convert(docx_bytes, ".pdf", source_ext=".docx")

    try:
        return await converter.convert(data, ".pdf", source_ext=source_ext)
    except CollaboratorFailure as exc:
        raise UnsupportedFormatError(
            f"Unsupported file format for PDF conversion: {source_ext or '(none)'}",
            extension=source_ext,
            signature_hex=data[:8].hex(" "),
        ) from exc
