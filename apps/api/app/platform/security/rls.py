from __future__ import annotations

from typing import Any

from sqlalchemy import ColumnElement, and_
from sqlalchemy.orm import InstrumentedAttribute
from sqlalchemy.sql import Select

from app import audit
from app.metrics import observe_scope_denied
from app.platform.security.context import AuthContext
from app.platform.security.policies import Permission, has_permission, require_tenant


def reads_all_records(ctx: AuthContext) -> bool:
    return has_permission(ctx, Permission.RECORDS_READ_ALL)


def apply_tenant_scope(
    query: Select[Any],
    tenant_column: InstrumentedAttribute[Any],
    ctx: AuthContext,
    *,
    owner_column: InstrumentedAttribute[Any] | None = None,
) -> Select[Any]:
    """Restrict a query to the caller's tenant, and to the caller's own rows unless they read all records."""

    query = query.where(tenant_column == require_tenant(ctx))
    if owner_column is not None and not reads_all_records(ctx):
        query = query.where(owner_column == ctx.user_id)
    return query


def scoped_row_clause(
    id_column: InstrumentedAttribute[Any],
    record_id: Any,
    tenant_column: InstrumentedAttribute[Any],
    ctx: AuthContext,
    *,
    owner_column: InstrumentedAttribute[Any] | None = None,
) -> ColumnElement[bool]:
    """Compound id + tenant (+ owner) condition for single-row reads and writes."""

    conditions: list[ColumnElement[bool]] = [id_column == record_id, tenant_column == require_tenant(ctx)]
    if owner_column is not None and not reads_all_records(ctx):
        conditions.append(owner_column == ctx.user_id)
    return and_(*conditions)


def emit_scope_denied(*, resource: str, action: str, record_id: str, ctx: AuthContext) -> None:
    observe_scope_denied(resource=resource, action=action)
    audit.record(
        actor_user_id=ctx.user_id,
        entity_type="security.scope",
        entity_id=record_id,
        action="scope.denied",
        before=None,
        after={
            "resource": resource,
            "action": action,
            "organization_id": ctx.organization_id,
            "correlation_id": ctx.correlation_id,
        },
        correlation_id=ctx.correlation_id,
    )
