from __future__ import annotations

from app.core.errors import BadRequestError, DomainError


class AuthenticationRequiredError(DomainError):
    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class AuthorizationError(DomainError):
    """Base authorization error for policy and tenant scope enforcement failures."""

    code = "FORBIDDEN"
    status_code = 403


class TenantRequiredError(BadRequestError):
    """Raised when a tenant-scoped operation runs without an active organization."""

    def __init__(self, message: str = "No active organization for this session") -> None:
        super().__init__(message)
