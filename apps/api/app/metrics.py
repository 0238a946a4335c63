from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

rpc_procedure_calls_total = Counter(
    "rpc_procedure_calls_total",
    "Total RPC procedure calls by outcome",
    ["procedure", "outcome"],
)

rpc_procedure_duration_seconds = Histogram(
    "rpc_procedure_duration_seconds",
    "RPC procedure duration in seconds",
    ["procedure"],
)

authz_denied_total = Counter(
    "authz_denied_total",
    "Total policy denials by permission",
    ["permission"],
)

tenant_scope_denied_total = Counter(
    "tenant_scope_denied_total",
    "Total single-row operations rejected by tenant scope",
    ["resource", "action"],
)

identity_provider_requests_total = Counter(
    "identity_provider_requests_total",
    "Total identity provider calls by operation and outcome",
    ["operation", "outcome"],
)

tenant_seed_total = Counter(
    "tenant_seed_total",
    "Total tenant bootstrap runs by status",
    ["status"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    if path == "/api/trpc/{procedure_name}":
        return path
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_procedure_call(procedure: str, outcome: str, duration: float) -> None:
    rpc_procedure_calls_total.labels(procedure=procedure, outcome=outcome).inc()
    rpc_procedure_duration_seconds.labels(procedure=procedure).observe(duration)


def observe_authz_denied(permission: str) -> None:
    authz_denied_total.labels(permission=permission).inc()


def observe_scope_denied(resource: str, action: str) -> None:
    tenant_scope_denied_total.labels(resource=resource, action=action).inc()


def observe_identity_provider_call(operation: str, outcome: str) -> None:
    identity_provider_requests_total.labels(operation=operation, outcome=outcome).inc()


def observe_tenant_seed(status: str) -> None:
    tenant_seed_total.labels(status=status).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
