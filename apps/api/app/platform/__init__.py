from app.platform.security.context import AuthContext, OrgRole
from app.platform.security.errors import AuthenticationRequiredError, AuthorizationError, TenantRequiredError
from app.platform.security.policies import InMemoryPolicyBackend, Permission, PolicyBackend, authorize, set_policy_backend

__all__ = [
    "AuthContext",
    "OrgRole",
    "AuthenticationRequiredError",
    "AuthorizationError",
    "TenantRequiredError",
    "InMemoryPolicyBackend",
    "Permission",
    "PolicyBackend",
    "authorize",
    "set_policy_backend",
]
