from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.orm import Session, joinedload

from app.crm.models import CRMActivity, CRMContact, CRMDeal, CRMDictionary, CRMLead
from app.crm.schemas import DictionaryType
from app.platform.security.context import AuthContext
from app.platform.security.policies import require_tenant
from app.platform.security.repository import BaseRepository


class DictionaryRepository(BaseRepository):
    resource = "crm.dictionary"
    model = CRMDictionary
    tenant_field = "org_id"
    owner_field = None

    def by_type(self, session: Session, ctx: AuthContext, dictionary_type: DictionaryType) -> list[CRMDictionary]:
        stmt = self.scoped_select(ctx).where(CRMDictionary.type == dictionary_type.value)
        return list(session.scalars(stmt.order_by(CRMDictionary.created_at, CRMDictionary.label)).all())

    def find_for_tenant(
        self,
        session: Session,
        ctx: AuthContext,
        entry_id: uuid.UUID,
        dictionary_type: DictionaryType,
    ) -> CRMDictionary | None:
        return session.scalar(
            select(CRMDictionary).where(
                CRMDictionary.id == entry_id,
                CRMDictionary.org_id == require_tenant(ctx),
                CRMDictionary.type == dictionary_type.value,
            )
        )


class _RecordRepository(BaseRepository):
    """Tenant + owner scoped repository with eager-loaded relations for read payloads."""

    def read_options(self) -> tuple[Any, ...]:
        return ()

    def list_recent(self, session: Session, ctx: AuthContext, *, limit: int | None = None) -> list[Any]:
        stmt: Select[Any] = self.scoped_select(ctx).options(*self.read_options()).order_by(self.model.updated_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(session.scalars(stmt).unique().all())

    def get_for_read(self, session: Session, record_id: uuid.UUID, ctx: AuthContext) -> Any:
        return self.get_scoped(session, record_id, ctx, options=self.read_options())


class ContactRepository(_RecordRepository):
    resource = "crm.contact"
    model = CRMContact

    def read_options(self) -> tuple[Any, ...]:
        return (joinedload(CRMContact.contact_type),)


class LeadRepository(_RecordRepository):
    resource = "crm.lead"
    model = CRMLead

    def read_options(self) -> tuple[Any, ...]:
        return (joinedload(CRMLead.status),)

    def find_for_tenant(self, session: Session, ctx: AuthContext, lead_id: uuid.UUID) -> CRMLead | None:
        # lead references only need to stay inside the tenant, not the caller's own rows
        return session.scalar(select(CRMLead).where(CRMLead.id == lead_id, CRMLead.team == require_tenant(ctx)))


class DealRepository(_RecordRepository):
    resource = "crm.deal"
    model = CRMDeal

    def read_options(self) -> tuple[Any, ...]:
        return (joinedload(CRMDeal.lead), joinedload(CRMDeal.stage))


class ActivityRepository(_RecordRepository):
    resource = "crm.activity"
    model = CRMActivity

    def read_options(self) -> tuple[Any, ...]:
        return (joinedload(CRMActivity.lead), joinedload(CRMActivity.status))
