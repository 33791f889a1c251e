"""Custom exceptions for signprep core logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from signprep.render.models import RenderResult


class SignprepError(Exception):
    """Base class for all signprep errors."""


class UnsupportedFormatError(SignprepError):
    """Raised when a file extension cannot be rendered or converted."""

    def __init__(
        self,
        message: str,
        *,
        extension: str | None = None,
        signature_hex: str | None = None,
    ) -> None:
        super().__init__(message)
        self.extension = extension
        self.signature_hex = signature_hex


class TemplateSyntaxError(SignprepError):
    """Raised when template markup is malformed (unbalanced or duplicated braces)."""

    def __init__(
        self,
        message: str,
        *,
        error_id: str,
        tag: str,
        render_result: RenderResult | None = None,
    ) -> None:
        super().__init__(message)
        self.error_id = error_id
        self.tag = tag
        self.render_result = render_result


class CollaboratorFailure(SignprepError):
    """Raised when an external collaborator (extraction, conversion) fails."""

    def __init__(self, message: str, *, collaborator: str, operation: str) -> None:
        super().__init__(message)
        self.collaborator = collaborator
        self.operation = operation


class TransportAmbiguousError(SignprepError):
    """Raised when a remote call failed below HTTP and may still have succeeded."""

    def __init__(self, message: str, *, request_id: str | None = None) -> None:
        super().__init__(message)
        self.request_id = request_id


class RemoteRejectedError(SignprepError):
    """Raised when the signature provider definitively rejected a request."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.retry_after = retry_after
