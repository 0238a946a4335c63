from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, ClassVar

from pydantic import BaseModel
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import audit, events
from app.core.errors import BadRequestError, ConflictError, ValidationFailedError
from app.crm.models import CRMActivity, CRMDeal, utcnow
from app.crm.repositories import (
    ActivityRepository,
    ContactRepository,
    DealRepository,
    DictionaryRepository,
    LeadRepository,
    _RecordRepository,
)
from app.crm.schemas import (
    ActivityCreate,
    ActivityRead,
    ContactCreate,
    ContactRead,
    DealCreate,
    DealRead,
    DeleteResult,
    DictionaryRead,
    DictionaryType,
    LeadCreate,
    LeadRead,
)
from app.platform.identity import OrganizationMembership, get_identity_provider
from app.platform.security.context import AuthContext
from app.platform.security.policies import require_tenant


RECENTLY_UPDATED_LIMIT = 5
TODAY_LIMIT = 5


def resolve_acting_member(ctx: AuthContext, failure_message: str) -> OrganizationMembership:
    """Look up the caller's membership; a stale session without one cannot write."""

    organization_id = require_tenant(ctx, failure_message)
    member = get_identity_provider().get_membership(organization_id, ctx.user_id)
    if member is None:
        raise BadRequestError(failure_message)
    return member


class TenantRecordService:
    """Shared create / update / delete / read flow for tenant-owned CRM records.

    Subclasses map their create schema to columns in ``_column_values``; the
    tenant, owner and audit columns are always stamped here from the caller's
    context and the identity provider.
    """

    entity: ClassVar[str] = ""
    repository: ClassVar[_RecordRepository]
    read_schema: ClassVar[type[BaseModel]]

    @property
    def entity_type(self) -> str:
        return f"crm.{self.entity}"

    @property
    def save_failed_message(self) -> str:
        return f"Saving {self.entity} failed, please refresh and try again."

    def list_records(self, session: Session, ctx: AuthContext) -> list[Any]:
        return [self._to_read(record) for record in self.repository.list_recent(session, ctx)]

    def recently_updated(self, session: Session, ctx: AuthContext) -> list[Any]:
        records = self.repository.list_recent(session, ctx, limit=RECENTLY_UPDATED_LIMIT)
        return [self._to_read(record) for record in records]

    def get(self, session: Session, ctx: AuthContext, record_id: uuid.UUID) -> Any:
        return self._to_read(self.repository.get_for_read(session, record_id, ctx))

    def create(self, session: Session, ctx: AuthContext, dto: BaseModel) -> Any:
        member = resolve_acting_member(ctx, self.save_failed_message)
        owner = self._resolve_owner(ctx, member, dto)
        values = self._column_values(session, ctx, dto)
        values.update(
            team=member.organization_id,
            team_name=member.organization_name,
            owner=owner.user_id,
            owner_fullname=owner.identifier,
            created_by=member.identifier,
            updated_by=member.identifier,
        )

        record = self.repository.model(**values)
        session.add(record)
        self._commit(session)

        created = self._to_read(record)
        after = created.model_dump(mode="json")
        self._record_change(ctx, record.id, "create", None, after)
        return created

    def update(self, session: Session, ctx: AuthContext, record_id: uuid.UUID, dto: BaseModel) -> Any:
        member = resolve_acting_member(ctx, self.save_failed_message)
        current = session.scalar(select(self.repository.model).where(self.repository.row_clause(record_id, ctx)))
        if current is None:
            raise self.repository.not_found(record_id, ctx, action="update")
        before = self._to_read(current).model_dump(mode="json")

        values = self._column_values(session, ctx, dto)
        if getattr(dto, "owner", None) is not None:
            owner = self._resolve_owner(ctx, member, dto)
            values.update(owner=owner.user_id, owner_fullname=owner.identifier)
        values.update(
            team=member.organization_id,
            team_name=member.organization_name,
            updated_by=member.identifier,
            updated_at=utcnow(),
        )

        result = session.execute(
            update(self.repository.model).where(self.repository.row_clause(record_id, ctx)).values(**values)
        )
        if result.rowcount == 0:
            session.rollback()
            raise self.repository.not_found(record_id, ctx, action="update")
        self._commit(session)

        updated = self._to_read(session.get(self.repository.model, record_id))
        self._record_change(ctx, record_id, "update", before, updated.model_dump(mode="json"))
        return updated

    def delete(self, session: Session, ctx: AuthContext, record_id: uuid.UUID) -> DeleteResult:
        current = session.scalar(select(self.repository.model).where(self.repository.row_clause(record_id, ctx)))
        if current is None:
            raise self.repository.not_found(record_id, ctx, action="delete")
        before = self._to_read(current).model_dump(mode="json")

        self._release_references(session, ctx, record_id)
        result = session.execute(
            delete(self.repository.model)
            .where(self.repository.row_clause(record_id, ctx))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.rollback()
            raise self.repository.not_found(record_id, ctx, action="delete")
        self._commit(session)

        self._record_change(ctx, record_id, "delete", before, None)
        return DeleteResult(id=record_id)

    def _column_values(self, session: Session, ctx: AuthContext, dto: Any) -> dict[str, Any]:
        raise NotImplementedError

    def _release_references(self, session: Session, ctx: AuthContext, record_id: uuid.UUID) -> None:
        return None

    def _resolve_owner(self, ctx: AuthContext, member: OrganizationMembership, dto: Any) -> OrganizationMembership:
        owner_ref = getattr(dto, "owner", None)
        if owner_ref is None or owner_ref.user_id == member.user_id:
            return member

        owner = get_identity_provider().get_membership(member.organization_id, owner_ref.user_id)
        if owner is None:
            raise ValidationFailedError(
                "Owner must be a member of the organization",
                details=[{"loc": ["owner", "user_id"], "msg": "unknown member", "input": owner_ref.user_id}],
            )
        return owner

    def _dictionary_id(
        self,
        session: Session,
        ctx: AuthContext,
        entry_id: uuid.UUID | None,
        dictionary_type: DictionaryType,
        field_name: str,
    ) -> uuid.UUID | None:
        if entry_id is None:
            return None
        if dictionary_repository.find_for_tenant(session, ctx, entry_id, dictionary_type) is None:
            raise ValidationFailedError(
                f"Unknown {dictionary_type.value} entry",
                details=[{"loc": [field_name], "msg": "reference not found", "input": str(entry_id)}],
            )
        return entry_id

    def _lead_id(self, session: Session, ctx: AuthContext, lead_id: uuid.UUID | None) -> uuid.UUID | None:
        if lead_id is None:
            return None
        if lead_repository.find_for_tenant(session, ctx, lead_id) is None:
            raise ValidationFailedError(
                "Unknown lead",
                details=[{"loc": ["lead_id"], "msg": "reference not found", "input": str(lead_id)}],
            )
        return lead_id

    def _commit(self, session: Session) -> None:
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError(f"{self.entity.capitalize()} conflicts with existing data") from exc

    def _record_change(
        self,
        ctx: AuthContext,
        record_id: uuid.UUID,
        action: str,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
    ) -> None:
        audit.record(
            actor_user_id=ctx.user_id,
            entity_type=self.entity_type,
            entity_id=str(record_id),
            action=action,
            before=before,
            after=after,
            correlation_id=ctx.correlation_id,
            organization_id=ctx.organization_id,
        )
        events.publish_domain_event(f"{self.entity_type}.{action}d", ctx, {f"{self.entity}_id": str(record_id)})

    def _to_read(self, record: Any) -> Any:
        return self.read_schema.model_validate(record)


class ContactService(TenantRecordService):
    entity = "contact"
    repository = ContactRepository()
    read_schema = ContactRead

    def _column_values(self, session: Session, ctx: AuthContext, dto: ContactCreate) -> dict[str, Any]:
        values = dto.model_dump(exclude={"owner", "type_id"})
        values["email"] = str(dto.email) if dto.email is not None else None
        values["dictionary_id"] = self._dictionary_id(session, ctx, dto.type_id, DictionaryType.CONTACT_TYPE, "type_id")
        return values


class LeadService(TenantRecordService):
    entity = "lead"
    repository = LeadRepository()
    read_schema = LeadRead

    def _column_values(self, session: Session, ctx: AuthContext, dto: LeadCreate) -> dict[str, Any]:
        values = dto.model_dump(exclude={"owner", "status_id"})
        values["email"] = str(dto.email) if dto.email is not None else None
        values["dictionary_id"] = self._dictionary_id(
            session, ctx, dto.status_id, DictionaryType.LEAD_STATUS, "status_id"
        )
        return values

    def _release_references(self, session: Session, ctx: AuthContext, record_id: uuid.UUID) -> None:
        tenant_id = require_tenant(ctx)
        for model in (CRMDeal, CRMActivity):
            session.execute(
                update(model)
                .where(model.lead_id == record_id, model.team == tenant_id)
                .values(lead_id=None)
                .execution_options(synchronize_session=False)
            )


class DealService(TenantRecordService):
    entity = "deal"
    repository = DealRepository()
    read_schema = DealRead

    def _column_values(self, session: Session, ctx: AuthContext, dto: DealCreate) -> dict[str, Any]:
        return {
            "value": dto.value,
            "forecast": dto.forecast,
            "comment": dto.comment,
            "lead_id": self._lead_id(session, ctx, dto.lead_id),
            "dictionary_id": self._dictionary_id(session, ctx, dto.stage_id, DictionaryType.DEAL_STAGE, "stage_id"),
        }


class ActivityService(TenantRecordService):
    entity = "activity"
    repository = ActivityRepository()
    read_schema = ActivityRead

    def today(self, session: Session, ctx: AuthContext, *, now: datetime | None = None) -> list[ActivityRead]:
        """Up to five of the caller's activities dated within the current UTC day."""

        current = now or datetime.now(timezone.utc)
        start = current.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        end = start + timedelta(days=1)
        stmt = (
            self.repository.scoped_select(ctx)
            .options(*self.repository.read_options())
            .where(CRMActivity.date >= start, CRMActivity.date < end)
            .order_by(CRMActivity.date.desc())
            .limit(TODAY_LIMIT)
        )
        return [self._to_read(record) for record in session.scalars(stmt).unique().all()]

    def _column_values(self, session: Session, ctx: AuthContext, dto: ActivityCreate) -> dict[str, Any]:
        return {
            "title": dto.title,
            "description": dto.description,
            "date": dto.date,
            "location": dto.location,
            "lead_id": self._lead_id(session, ctx, dto.lead_id),
            "dictionary_id": self._dictionary_id(
                session, ctx, dto.status_id, DictionaryType.ACTIVITY_STATUS, "status_id"
            ),
        }


class DictionaryService:
    def by_type(self, session: Session, ctx: AuthContext, dictionary_type: DictionaryType) -> list[DictionaryRead]:
        return [DictionaryRead.model_validate(entry) for entry in dictionary_repository.by_type(session, ctx, dictionary_type)]


dictionary_repository = DictionaryRepository()
lead_repository = LeadRepository()

contact_service = ContactService()
lead_service = LeadService()
deal_service = DealService()
activity_service = ActivityService()
dictionary_service = DictionaryService()
