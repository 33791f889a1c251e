"""FastAPI wrapper for signprep sniffing, analysis and rendering."""

from __future__ import annotations

import json
import logging
import tempfile
import uuid
from pathlib import Path
from typing import Annotated, Any
from urllib.parse import quote

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from signprep.config.loader import load_settings
from signprep.config.models import Settings
from signprep.convert.converter import LibreOfficeConverter
from signprep.detect.analyzer import analyze_document
from signprep.extract.content import DocxContentExtractor
from signprep.render.template_renderer import render_document
from signprep.sniff.format_sniffer import identify_bytes
from signprep.utils.errors import CollaboratorFailure, TemplateSyntaxError, UnsupportedFormatError
from signprep.utils.events import log_event

app = FastAPI(title="signprep API", version="0.1.0")
logger = logging.getLogger("signprep.api")

REQUEST_ID_HEADER = "X-Signprep-Request-Id"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
_DOCUMENT_SUFFIXES = (".docx", ".doc", ".pdf")


class ApiRequestError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        error_code: str,
        message: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.detail = detail or {}


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Ensure every response has a request id header."""

    request_id = uuid.uuid4().hex
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception:  # noqa: BLE001
        log_event(
            logger,
            logging.ERROR,
            "error",
            request_id=request_id,
            error_code="INTERNAL_ERROR",
            status_code=500,
            path=request.url.path,
        )
        response = _error_response(
            status_code=500,
            error_code="INTERNAL_ERROR",
            message="internal server error",
            request_id=request_id,
            detail={"path": request.url.path},
        )
    response.headers.setdefault(REQUEST_ID_HEADER, request_id)
    return response


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness endpoint."""

    return {"status": "ok"}


@app.post("/v1/sniff", response_model=None)
async def sniff_v1(request: Request, file: Annotated[UploadFile, File()]) -> JSONResponse:
    """Identify an uploaded file's format from its magic bytes."""

    request_id = _request_id_from_request(request)
    try:
        payload = _read_upload_with_limit(file, _settings().api.max_upload_bytes, field_name="file")
    except ApiRequestError as exc:
        return _api_error(exc, request_id)

    guess = identify_bytes(payload)
    log_event(logger, logging.INFO, "sniff", request_id=request_id, detected=guess.detected)
    return JSONResponse(
        status_code=200,
        headers={REQUEST_ID_HEADER: request_id},
        content=guess.model_dump(mode="json"),
    )


@app.post("/v1/analyze", response_model=None)
async def analyze_v1(request: Request, file: Annotated[UploadFile, File()]) -> JSONResponse:
    """Extract variables and provider tags and propose signature fields."""

    request_id = _request_id_from_request(request)
    settings = _settings()
    with tempfile.TemporaryDirectory(prefix="signprep-api-") as tmp_dir:
        try:
            source = _save_document_upload(file, Path(tmp_dir), settings.api.max_upload_bytes)
            analysis = await analyze_document(
                source,
                DocxContentExtractor(),
                _converter(settings),
                settings.heuristics,
            )
        except ApiRequestError as exc:
            return _api_error(exc, request_id)
        except (UnsupportedFormatError, CollaboratorFailure) as exc:
            return _api_error(_map_core_error(exc), request_id)

    log_event(
        logger,
        logging.INFO,
        "analyze",
        request_id=request_id,
        tier=analysis.tier,
        signature_fields=len(analysis.signature_fields),
    )
    return JSONResponse(
        status_code=200,
        headers={REQUEST_ID_HEADER: request_id},
        content=analysis.model_dump(mode="json"),
    )


@app.post("/v1/render", response_model=None)
async def render_v1(
    request: Request,
    template: Annotated[UploadFile, File()],
    data: Annotated[str, Form()] = "{}",
    keep_provider_braces: Annotated[bool, Form()] = False,
) -> Response:
    """Render an uploaded template and return the document; counts go in headers."""

    request_id = _request_id_from_request(request)
    settings = _settings()
    with tempfile.TemporaryDirectory(prefix="signprep-api-") as tmp_dir:
        try:
            values = _parse_template_data(data)
            source = _save_document_upload(template, Path(tmp_dir), settings.api.max_upload_bytes)
            result = await render_document(
                source,
                values,
                _converter(settings),
                canonicalize_provider_tags=not keep_provider_braces,
            )
        except ApiRequestError as exc:
            return _api_error(exc, request_id)
        except (TemplateSyntaxError, UnsupportedFormatError, CollaboratorFailure) as exc:
            return _api_error(_map_core_error(exc), request_id)

    log_event(
        logger,
        logging.INFO,
        "render",
        request_id=request_id,
        renderer=result.renderer,
        provider_tags_before=result.provider_tags_before,
        provider_tags_after=result.provider_tags_after,
        missing_variables=result.missing_variables,
    )
    media_type = "application/pdf" if result.renderer == "passthrough" else DOCX_MEDIA_TYPE
    return Response(
        content=result.document_bytes,
        media_type=media_type,
        headers={
            REQUEST_ID_HEADER: request_id,
            "X-Signprep-Renderer": result.renderer,
            "X-Signprep-Provider-Tags-Before": str(result.provider_tags_before),
            "X-Signprep-Provider-Tags-After": str(result.provider_tags_after),
            "X-Signprep-Missing-Count": str(len(result.missing_variables)),
            "X-Signprep-Missing-Variables": _header_list(result.missing_variables),
        },
    )


def _header_list(values: list[str]) -> str:
    """Comma-joined, percent-encoded (UTF-8) values; header text must stay ASCII."""

    return ",".join(quote(value, safe="") for value in values)


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    return uuid.uuid4().hex


def _settings() -> Settings:
    return load_settings()


def _converter(settings: Settings) -> LibreOfficeConverter:
    return LibreOfficeConverter(
        soffice_bin=settings.conversion.soffice_bin,
        timeout_seconds=settings.conversion.timeout_seconds,
    )


def _parse_template_data(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_TEMPLATE_DATA",
            message="data must be a JSON object",
            detail={"error": str(exc)},
        ) from exc
    if not isinstance(parsed, dict):
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_TEMPLATE_DATA",
            message="data must be a JSON object",
        )
    for key, value in parsed.items():
        if value is not None and not isinstance(value, (str, int, float)):
            raise ApiRequestError(
                status_code=400,
                error_code="INVALID_TEMPLATE_DATA",
                message="template values must be strings, numbers or null",
                detail={"field": key},
            )
    return parsed


def _save_document_upload(upload: UploadFile, tmp_dir: Path, max_bytes: int) -> Path:
    filename = upload.filename or ""
    suffix = Path(filename).suffix.lower()
    if suffix not in _DOCUMENT_SUFFIXES:
        raise ApiRequestError(
            status_code=415,
            error_code="INVALID_MEDIA_TYPE",
            message="file must be a .docx, .doc or .pdf document",
            detail={"filename": upload.filename},
        )
    destination = tmp_dir / f"upload{suffix}"
    destination.write_bytes(_read_upload_with_limit(upload, max_bytes, field_name="file"))
    return destination


def _read_upload_with_limit(upload: UploadFile, max_bytes: int, *, field_name: str) -> bytes:
    source = upload.file
    source.seek(0)
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = source.read(1024 * 1024)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_bytes:
            raise ApiRequestError(
                status_code=413,
                error_code="UPLOAD_TOO_LARGE",
                message=f"{field_name} exceeds upload size limit",
                detail={"field": field_name, "max_bytes": max_bytes, "received_bytes": total_size},
            )
        chunks.append(chunk)
    return b"".join(chunks)


def _map_core_error(exc: Exception) -> ApiRequestError:
    if isinstance(exc, TemplateSyntaxError):
        return ApiRequestError(
            status_code=422,
            error_code="TEMPLATE_SYNTAX_ERROR",
            message=str(exc),
            detail={"error_id": exc.error_id, "tag": exc.tag},
        )
    if isinstance(exc, UnsupportedFormatError):
        return ApiRequestError(
            status_code=415,
            error_code="UNSUPPORTED_FORMAT",
            message=str(exc),
            detail={"extension": exc.extension, "signature_hex": exc.signature_hex},
        )
    if isinstance(exc, CollaboratorFailure):
        return ApiRequestError(
            status_code=502,
            error_code="COLLABORATOR_FAILURE",
            message=str(exc),
            detail={"collaborator": exc.collaborator, "operation": exc.operation},
        )
    raise exc


def _api_error(exc: ApiRequestError, request_id: str) -> JSONResponse:
    log_event(
        logger,
        logging.WARNING,
        "error",
        request_id=request_id,
        error_code=exc.error_code,
        status_code=exc.status_code,
    )
    return _error_response(
        status_code=exc.status_code,
        error_code=exc.error_code,
        message=exc.message,
        request_id=request_id,
        detail=exc.detail,
    )


def _error_response(
    *,
    status_code: int,
    error_code: str,
    message: str,
    request_id: str,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    payload_detail = dict(detail or {})
    payload_detail["request_id"] = request_id

    return JSONResponse(
        status_code=status_code,
        headers={REQUEST_ID_HEADER: request_id},
        content={
            "error_code": error_code,
            "message": message,
            "detail": payload_detail,
        },
    )
