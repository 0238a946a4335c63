from collections.abc import Awaitable, Callable

from fastapi import Depends

from app.core.auth import require_auth_context
from app.platform.security.context import AuthContext
from app.platform.security.policies import authorize


def require_permission(permission: str) -> Callable[[AuthContext], Awaitable[AuthContext]]:
    async def checker(ctx: AuthContext = Depends(require_auth_context)) -> AuthContext:
        authorize(ctx, permission, operation=permission)
        return ctx

    return checker
