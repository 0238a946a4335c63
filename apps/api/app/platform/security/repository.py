from __future__ import annotations

from typing import Any, ClassVar

from sqlalchemy import ColumnElement, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from app.core.errors import NotFoundError
from app.platform.security.context import AuthContext
from app.platform.security.rls import apply_tenant_scope, emit_scope_denied, scoped_row_clause


class BaseRepository:
    resource = ""
    model: ClassVar[Any] = None
    tenant_field = "team"
    owner_field: str | None = "owner"

    def scoped_select(self, ctx: AuthContext) -> Select[Any]:
        return self.apply_scope_query(select(self.model), ctx)

    def apply_scope_query(self, query: Select[Any], ctx: AuthContext) -> Select[Any]:
        return apply_tenant_scope(query, self._tenant_column, ctx, owner_column=self._owner_column)

    def row_clause(self, record_id: Any, ctx: AuthContext) -> ColumnElement[bool]:
        return scoped_row_clause(self.model.id, record_id, self._tenant_column, ctx, owner_column=self._owner_column)

    def get_scoped(self, session: Session, record_id: Any, ctx: AuthContext, *, options: tuple[Any, ...] = ()) -> Any:
        record = session.scalar(select(self.model).options(*options).where(self.row_clause(record_id, ctx)))
        if record is None:
            raise self.not_found(record_id, ctx, action="read")
        return record

    def not_found(self, record_id: Any, ctx: AuthContext, *, action: str) -> NotFoundError:
        emit_scope_denied(resource=self.resource, action=action, record_id=str(record_id), ctx=ctx)
        label = self.resource.rsplit(".", 1)[-1]
        return NotFoundError(f"{label} not found")

    @property
    def _tenant_column(self) -> Any:
        return getattr(self.model, self.tenant_field)

    @property
    def _owner_column(self) -> Any:
        if self.owner_field is None:
            return None
        return getattr(self.model, self.owner_field)
