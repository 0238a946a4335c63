from typing import Any

from jose import JWTError, jwt
from opentelemetry import trace
from starlette.requests import Request

from app.core.config import get_settings
from app.otel import annotate_caller
from app.platform.security.context import AuthContext, OrgRole
from app.platform.security.errors import AuthenticationRequiredError


def _read_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer ") :].strip()
    return request.cookies.get(get_settings().session_cookie_name, "")


def _organization_claims(payload: dict[str, Any]) -> tuple[str | None, Any]:
    compact = payload.get("o")
    if isinstance(compact, dict) and compact.get("id"):
        return str(compact["id"]), compact.get("rol")
    org_id = payload.get("org_id")
    if org_id:
        return str(org_id), payload.get("org_role")
    return None, None


def resolve_auth_context(token: str, correlation_id: str | None = None) -> AuthContext | None:
    """Verify a session token and map its claims to an ``AuthContext``.

    Returns ``None`` for missing, malformed, expired or unsigned tokens.
    """

    if not token:
        return None

    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.session_jwt_key,
            algorithms=settings.session_jwt_algorithm_list,
            options={"verify_aud": False},
        )
    except JWTError:
        return None

    subject = payload.get("sub")
    if not subject:
        return None

    organization_id, raw_role = _organization_claims(payload)
    role = OrgRole.parse(raw_role) if organization_id else None
    session_id = payload.get("sid")
    return AuthContext(
        user_id=str(subject),
        organization_id=organization_id,
        role=role,
        session_id=str(session_id) if session_id else None,
        correlation_id=correlation_id,
    )


async def get_auth_context(request: Request) -> AuthContext | None:
    correlation_id = getattr(request.state, "correlation_id", None)
    ctx = resolve_auth_context(_read_token(request), correlation_id=correlation_id)
    request_context = getattr(request.state, "context", None)
    if ctx is not None and request_context is not None:
        request_context.user_id = ctx.user_id
        request_context.organization_id = ctx.organization_id
    annotate_caller(trace.get_current_span(), ctx)
    return ctx


async def require_auth_context(request: Request) -> AuthContext:
    ctx = await get_auth_context(request)
    if ctx is None:
        raise AuthenticationRequiredError()
    return ctx
