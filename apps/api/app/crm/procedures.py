from __future__ import annotations

from typing import Any
from uuid import UUID

from app.crm.schemas import (
    ActivityCreate,
    ActivityUpdateRequest,
    ContactCreate,
    ContactUpdateRequest,
    DealCreate,
    DealUpdateRequest,
    DictionaryType,
    LeadCreate,
    LeadUpdateRequest,
    SeedRequest,
)
from app.crm.seed import tenant_seeder
from app.crm.service import (
    TenantRecordService,
    activity_service,
    contact_service,
    deal_service,
    dictionary_service,
    lead_service,
)
from app.platform.rpc import ProcedureCall, ProcedureRouter
from app.platform.security.policies import Permission


def _record_router(
    namespace: str,
    service: TenantRecordService,
    list_name: str,
    create_schema: Any,
    update_schema: Any,
    *,
    recently_updated: bool = False,
) -> ProcedureRouter:
    router = ProcedureRouter(namespace)

    @router.query(list_name, permission=Permission.RECORDS_READ)
    def list_records(call: ProcedureCall) -> Any:
        return service.list_records(call.session, call.auth)

    @router.query("byId", input=UUID, permission=Permission.RECORDS_READ)
    def by_id(call: ProcedureCall) -> Any:
        return service.get(call.session, call.auth, call.input)

    @router.mutation("create", input=create_schema, permission=Permission.RECORDS_WRITE)
    def create(call: ProcedureCall) -> Any:
        return service.create(call.session, call.auth, call.input)

    @router.mutation("update", input=update_schema, permission=Permission.RECORDS_WRITE)
    def update(call: ProcedureCall) -> Any:
        return service.update(call.session, call.auth, call.input.id, call.input.data)

    @router.mutation("delete", input=UUID, permission=Permission.RECORDS_WRITE)
    def delete(call: ProcedureCall) -> Any:
        return service.delete(call.session, call.auth, call.input)

    if recently_updated:

        @router.query("recentlyUpdated", permission=Permission.RECORDS_READ)
        def recent(call: ProcedureCall) -> Any:
            return service.recently_updated(call.session, call.auth)

    return router


contact_router = _record_router(
    "contact", contact_service, "contacts", ContactCreate, ContactUpdateRequest, recently_updated=True
)
lead_router = _record_router("lead", lead_service, "leads", LeadCreate, LeadUpdateRequest, recently_updated=True)
deal_router = _record_router("deal", deal_service, "deals", DealCreate, DealUpdateRequest)
activity_router = _record_router("activity", activity_service, "activities", ActivityCreate, ActivityUpdateRequest)


@activity_router.query("today", permission=Permission.RECORDS_READ)
def activities_today(call: ProcedureCall) -> Any:
    return activity_service.today(call.session, call.auth)


dictionary_router = ProcedureRouter("dictionary")


@dictionary_router.query("byType", input=DictionaryType, permission=Permission.DICTIONARY_READ)
def dictionary_by_type(call: ProcedureCall) -> Any:
    return dictionary_service.by_type(call.session, call.auth, call.input)


system_router = ProcedureRouter("system")


@system_router.mutation("coldStart", input=SeedRequest | None, permission=Permission.TENANT_PROVISION)
def cold_start(call: ProcedureCall) -> Any:
    return tenant_seeder.cold_start(call.session, call.auth, call.input)


routers = [contact_router, lead_router, deal_router, activity_router, dictionary_router, system_router]
