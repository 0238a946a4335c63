from __future__ import annotations

from threading import Lock
from typing import Protocol

from app import audit
from app.metrics import observe_authz_denied
from app.platform.security.context import AuthContext, OrgRole
from app.platform.security.errors import AuthorizationError, TenantRequiredError


class Permission:
    RECORDS_READ = "crm.records.read"
    RECORDS_READ_ALL = "crm.records.read_all"
    RECORDS_WRITE = "crm.records.write"
    DICTIONARY_READ = "crm.dictionary.read"
    MEMBERS_READ = "team.members.read"
    MEMBERS_MANAGE = "team.members.manage"
    TENANT_PROVISION = "system.tenant.provision"
    METRICS_READ = "system.metrics.read"


DEFAULT_ROLE_PERMISSIONS: dict[str, set[str]] = {
    OrgRole.ADMIN.value: {"*"},
    OrgRole.BASIC_MEMBER.value: {
        Permission.RECORDS_READ,
        Permission.RECORDS_WRITE,
        Permission.DICTIONARY_READ,
        Permission.MEMBERS_READ,
    },
}


class PolicyBackend(Protocol):
    """Pluggable policy backend: answers whether a caller holds a permission."""

    def is_allowed(self, permission: str, ctx: AuthContext) -> bool:
        ...


class InMemoryPolicyBackend:
    """Role -> permission table with wildcard support."""

    def __init__(self, role_permissions: dict[str, set[str]] | None = None) -> None:
        self._role_permissions = role_permissions if role_permissions is not None else DEFAULT_ROLE_PERMISSIONS

    def is_allowed(self, permission: str, ctx: AuthContext) -> bool:
        if ctx.role is None:
            return False
        grants = self._role_permissions.get(ctx.role.value, set())
        return any(self._matches(grant, permission) for grant in grants)

    @staticmethod
    def _matches(grant: str, required: str) -> bool:
        if grant in {"*", required}:
            return True

        if grant.endswith(".*"):
            return required.startswith(grant[:-1])

        return False


_POLICY_BACKEND: PolicyBackend = InMemoryPolicyBackend()
_POLICY_LOCK = Lock()


def get_policy_backend() -> PolicyBackend:
    """Get the active policy backend instance."""

    return _POLICY_BACKEND


def set_policy_backend(backend: PolicyBackend) -> None:
    """Set the active policy backend instance."""

    global _POLICY_BACKEND
    with _POLICY_LOCK:
        _POLICY_BACKEND = backend


def has_permission(ctx: AuthContext, permission: str) -> bool:
    return get_policy_backend().is_allowed(permission, ctx)


def require_tenant(ctx: AuthContext, message: str | None = None) -> str:
    """Return the caller's tenant id or fail with BAD_REQUEST."""

    if not ctx.organization_id:
        if message:
            raise TenantRequiredError(message)
        raise TenantRequiredError()
    return ctx.organization_id


def authorize(ctx: AuthContext, permission: str, *, operation: str | None = None) -> None:
    """Check one permission for a tenant-scoped operation.

    Fails with BAD_REQUEST when the session has no organization and with
    FORBIDDEN when the caller's role does not grant ``permission``.
    """

    require_tenant(ctx)
    if has_permission(ctx, permission):
        return

    observe_authz_denied(permission=permission)
    audit.record(
        actor_user_id=ctx.user_id,
        entity_type="security.policy",
        entity_id=operation or permission,
        action="policy.denied",
        before=None,
        after={
            "permission": permission,
            "organization_id": ctx.organization_id,
            "role": ctx.role.value if ctx.role else None,
        },
        correlation_id=ctx.correlation_id,
    )
    raise AuthorizationError("You do not have permission to perform this action")
