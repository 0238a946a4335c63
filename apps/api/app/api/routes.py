from fastapi import APIRouter, Depends
from fastapi.responses import Response

from app.core.auth import require_auth_context
from app.core.config import get_settings
from app.core.errors import NotFoundError
from app.core.rbac import require_permission
from app.crm.procedures import routers as crm_routers
from app.metrics import generate_metrics_payload, metrics_content_type
from app.platform.identity import get_identity_provider
from app.platform.rpc import ProcedureDispatcher, ProcedureRegistry, create_rpc_router
from app.platform.security.context import AuthContext
from app.platform.security.policies import Permission
from app.team.procedures import routers as team_routers

registry = ProcedureRegistry()
for procedure_router in [*crm_routers, *team_routers]:
    registry.include_router(procedure_router)

dispatcher = ProcedureDispatcher(registry)

router = APIRouter()
router.include_router(create_rpc_router(dispatcher))


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
def me(ctx: AuthContext = Depends(require_auth_context)) -> dict[str, str | None]:
    payload: dict[str, str | None] = {
        "user_id": ctx.user_id,
        "organization_id": ctx.organization_id,
        "role": ctx.role.value if ctx.role else None,
        "identifier": None,
        "organization_name": None,
    }
    if ctx.organization_id:
        membership = get_identity_provider().get_membership(ctx.organization_id, ctx.user_id)
        if membership is not None:
            payload["identifier"] = membership.identifier
            payload["organization_name"] = membership.organization_name
    return payload


@router.get("/metrics", tags=["system"])
def metrics(ctx: AuthContext = Depends(require_permission(Permission.METRICS_READ))) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise NotFoundError("not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
