from __future__ import annotations

import calendar
import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import audit, events
from app.core.errors import BadRequestError, ConflictError
from app.crm.models import CRMActivity, CRMDeal, CRMDictionary, CRMLead, utcnow
from app.crm.schemas import DictionaryType, SeedRequest, SeedSummary
from app.metrics import observe_tenant_seed
from app.platform.identity import get_identity_provider
from app.platform.security.context import AuthContext
from app.platform.security.errors import AuthorizationError
from app.platform.security.policies import require_tenant


logger = logging.getLogger("app.crm.seed")

_DICTIONARY_VALUES = ("open", "active", "closed")
_DICTIONARY_TYPES = (DictionaryType.ACTIVITY_STATUS, DictionaryType.DEAL_STAGE, DictionaryType.LEAD_STATUS)

_SAMPLE_LEADS = (
    ("John", "Doe", "john@example.com", "example company", "simple comment", "open"),
    ("Merry", "Doe", "merry@email.com", "Acme company", None, "active"),
    ("Harper", "Smith", "harper@smith.com", "example company", "simple comment", "closed"),
    ("Bob", "Smith", "bob@example.com", "example company", "simple comment", "open"),
)

# value, forecast, comment, stage, lead index, month the row was last touched
_SAMPLE_DEALS = (
    (Decimal("0"), Decimal("20000"), "Test comment", "open", 0, None),
    (Decimal("17000"), Decimal("12000"), "Very iteresting comment", "active", 1, None),
    (Decimal("11000"), Decimal("14000"), "Very iteresting comment", "open", 2, 3),
    (Decimal("8000"), Decimal("4000"), "Very iteresting comment", "active", 2, 2),
)

_SAMPLE_ACTIVITIES = (
    ("Send offert", "Send offert via email", None, "active", 0),
    ("Meeting", "F2F meeting at lead's office", "Wrocław office - somewhere", "open", 2),
    ("Meeting", "Call meeting to discuss our new offert", "via Teams", "open", 1),
)


def _in_month(moment: datetime, month: int) -> datetime:
    last_day = calendar.monthrange(moment.year, month)[1]
    return moment.replace(month=month, day=min(moment.day, last_day))


class TenantSeeder:
    """Bootstraps a fresh organization with dictionaries and sample records.

    Every row is written in one transaction: a failure part-way leaves the
    tenant exactly as it was. Running it twice creates a second set of rows.
    """

    failure_message = "Bootstrapping the organization failed, please refresh and try again."

    def cold_start(self, session: Session, ctx: AuthContext, request: SeedRequest | None = None) -> SeedSummary:
        request = request or SeedRequest()
        tenant_id = require_tenant(ctx)
        if request.organization_id is not None and request.organization_id != tenant_id:
            raise AuthorizationError("Cannot bootstrap another organization")

        organization_name, user_name = self._resolve_names(ctx, tenant_id)
        now = utcnow()
        try:
            dictionary = self._create_dictionary(session, tenant_id)
            leads = self._create_leads(session, ctx, tenant_id, organization_name, user_name, dictionary)
            deals = self._create_deals(session, ctx, tenant_id, organization_name, user_name, dictionary, leads, now)
            activities = self._create_activities(
                session, ctx, tenant_id, organization_name, user_name, dictionary, leads, now
            )
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            observe_tenant_seed("failed")
            raise ConflictError("Organization bootstrap conflicts with existing data") from exc
        except Exception:
            session.rollback()
            observe_tenant_seed("failed")
            logger.exception("tenant.seed_failed", extra={"organization_id": tenant_id, "user_id": ctx.user_id})
            raise

        summary = SeedSummary(
            organization_id=tenant_id,
            dictionary_entries=len(dictionary),
            leads=len(leads),
            deals=len(deals),
            activities=len(activities),
        )
        observe_tenant_seed("succeeded")
        logger.info("tenant.seeded", extra={"organization_id": tenant_id, "user_id": ctx.user_id})
        audit.record(
            actor_user_id=ctx.user_id,
            entity_type="system.tenant",
            entity_id=tenant_id,
            action="provision",
            before=None,
            after=summary.model_dump(mode="json"),
            correlation_id=ctx.correlation_id,
            organization_id=tenant_id,
        )
        events.publish_domain_event("tenant.provisioned", ctx, summary.model_dump(mode="json"))
        return summary

    def _resolve_names(self, ctx: AuthContext, tenant_id: str) -> tuple[str, str]:
        member = get_identity_provider().get_membership(tenant_id, ctx.user_id)
        if member is None:
            raise BadRequestError(self.failure_message)
        return member.organization_name, member.identifier

    def _create_dictionary(self, session: Session, tenant_id: str) -> dict[tuple[DictionaryType, str], CRMDictionary]:
        entries: dict[tuple[DictionaryType, str], CRMDictionary] = {}
        for dictionary_type in _DICTIONARY_TYPES:
            for value in _DICTIONARY_VALUES:
                entry = CRMDictionary(type=dictionary_type.value, label=value, value=value, org_id=tenant_id)
                session.add(entry)
                entries[(dictionary_type, value)] = entry
        session.flush()
        return entries

    def _create_leads(
        self,
        session: Session,
        ctx: AuthContext,
        tenant_id: str,
        organization_name: str,
        user_name: str,
        dictionary: dict[tuple[DictionaryType, str], CRMDictionary],
    ) -> list[CRMLead]:
        leads: list[CRMLead] = []
        for first_name, last_name, email, company, comment, status in _SAMPLE_LEADS:
            lead = CRMLead(
                first_name=first_name,
                last_name=last_name,
                email=email,
                company=company,
                comment=comment,
                dictionary_id=dictionary[(DictionaryType.LEAD_STATUS, status)].id,
                **self._stamp(ctx, tenant_id, organization_name, user_name),
            )
            session.add(lead)
            leads.append(lead)
        session.flush()
        return leads

    def _create_deals(
        self,
        session: Session,
        ctx: AuthContext,
        tenant_id: str,
        organization_name: str,
        user_name: str,
        dictionary: dict[tuple[DictionaryType, str], CRMDictionary],
        leads: list[CRMLead],
        now: datetime,
    ) -> list[CRMDeal]:
        deals: list[CRMDeal] = []
        for value, forecast, comment, stage, lead_index, month in _SAMPLE_DEALS:
            deal = CRMDeal(
                value=value,
                forecast=forecast,
                comment=comment,
                lead_id=leads[lead_index].id,
                dictionary_id=dictionary[(DictionaryType.DEAL_STAGE, stage)].id,
                **self._stamp(ctx, tenant_id, organization_name, user_name),
            )
            if month is not None:
                deal.updated_at = _in_month(now, month)
            session.add(deal)
            deals.append(deal)
        session.flush()
        return deals

    def _create_activities(
        self,
        session: Session,
        ctx: AuthContext,
        tenant_id: str,
        organization_name: str,
        user_name: str,
        dictionary: dict[tuple[DictionaryType, str], CRMDictionary],
        leads: list[CRMLead],
        now: datetime,
    ) -> list[CRMActivity]:
        activities: list[CRMActivity] = []
        for title, description, location, status, lead_index in _SAMPLE_ACTIVITIES:
            activity = CRMActivity(
                title=title,
                description=description,
                location=location,
                date=now,
                lead_id=leads[lead_index].id,
                dictionary_id=dictionary[(DictionaryType.ACTIVITY_STATUS, status)].id,
                **self._stamp(ctx, tenant_id, organization_name, user_name),
            )
            session.add(activity)
            activities.append(activity)
        session.flush()
        return activities

    @staticmethod
    def _stamp(ctx: AuthContext, tenant_id: str, organization_name: str, user_name: str) -> dict[str, str]:
        return {
            "team": tenant_id,
            "team_name": organization_name,
            "owner": ctx.user_id,
            "owner_fullname": user_name,
            "created_by": user_name,
            "updated_by": user_name,
        }


tenant_seeder = TenantSeeder()
