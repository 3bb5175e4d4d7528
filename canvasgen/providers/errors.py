"""Exceptions raised by the provider layer.

Every exception carries an `ErrorKind` so the worker can turn it into a
terminal task state without inspecting message text.
"""
from typing import Optional

from canvasgen.models.result import ClassifiedError, ErrorKind


class ProviderError(Exception):
    """Base exception for provider failures."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        kind: Optional[ErrorKind] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        if kind is not None:
            self.kind = kind

    def to_classified(self) -> ClassifiedError:
        return ClassifiedError(
            kind=self.kind,
            message=self.message,
            status_code=self.status_code,
        )


class MissingCredentialsError(ProviderError):
    """No API key configured for the provider."""

    kind = ErrorKind.AUTH_ERROR


class EndpointExhaustedError(ProviderError):
    """Every candidate path returned 404 or failed in transport."""

    kind = ErrorKind.ENDPOINT_UNAVAILABLE

    def __init__(
        self,
        base_url: str,
        attempted: list[str],
        last_error: Optional[BaseException] = None,
        last_status: Optional[int] = None,
    ):
        detail = f"{type(last_error).__name__}: {last_error}" if last_error else f"HTTP {last_status}"
        super().__init__(
            f"All API paths failed for {base_url} ({len(attempted)} tried, last: {detail})",
            status_code=last_status,
        )
        self.base_url = base_url
        self.attempted = attempted
        self.last_error = last_error
        self.last_status = last_status


class ClassifiedProviderError(ProviderError):
    """Wraps a ClassifiedError produced by the normalizer."""

    def __init__(self, error: ClassifiedError):
        super().__init__(error.message, status_code=error.status_code, kind=error.kind)
        self.error = error

    def to_classified(self) -> ClassifiedError:
        return self.error
