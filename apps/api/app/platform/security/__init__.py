from app.platform.security.context import AuthContext, OrgRole
from app.platform.security.errors import AuthenticationRequiredError, AuthorizationError, TenantRequiredError
from app.platform.security.repository import BaseRepository
from app.platform.security.rls import apply_tenant_scope, reads_all_records, scoped_row_clause
from app.platform.security.policies import (
    DEFAULT_ROLE_PERMISSIONS,
    InMemoryPolicyBackend,
    Permission,
    PolicyBackend,
    authorize,
    get_policy_backend,
    has_permission,
    require_tenant,
    set_policy_backend,
)

__all__ = [
    "AuthContext",
    "OrgRole",
    "AuthenticationRequiredError",
    "AuthorizationError",
    "TenantRequiredError",
    "BaseRepository",
    "apply_tenant_scope",
    "reads_all_records",
    "scoped_row_clause",
    "DEFAULT_ROLE_PERMISSIONS",
    "InMemoryPolicyBackend",
    "Permission",
    "PolicyBackend",
    "authorize",
    "get_policy_backend",
    "has_permission",
    "require_tenant",
    "set_policy_backend",
]
