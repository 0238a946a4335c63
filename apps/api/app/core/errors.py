from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base error rendered to callers as a structured error envelope."""

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str, *, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class BadRequestError(DomainError):
    code = "BAD_REQUEST"
    status_code = 400


class ValidationFailedError(DomainError):
    code = "VALIDATION_FAILED"
    status_code = 422


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    status_code = 404


class MethodNotSupportedError(DomainError):
    code = "METHOD_NOT_SUPPORTED"
    status_code = 405


class ConflictError(DomainError):
    code = "CONFLICT"
    status_code = 409


class UpstreamProviderError(DomainError):
    """Raised when the identity provider rejects or fails a call.

    The message is the provider's own and is passed through unchanged.
    """

    code = "UPSTREAM_PROVIDER_ERROR"
    status_code = 502

    def __init__(self, message: str, *, provider_status: int | None = None, details: Any = None) -> None:
        super().__init__(message, details=details)
        self.provider_status = provider_status
