from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import StrEnum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


class DictionaryType(StrEnum):
    CONTACT_TYPE = "CONTACT_TYPE"
    LEAD_STATUS = "LEAD_STATUS"
    DEAL_STAGE = "DEAL_STAGE"
    ACTIVITY_STATUS = "ACTIVITY_STATUS"


class OwnerRef(BaseModel):
    user_id: str = Field(min_length=1)
    identifier: str | None = None


class _RecordInput(BaseModel):
    """Form payloads send empty strings for untouched optional fields."""

    @model_validator(mode="before")
    @classmethod
    def blank_strings_to_none(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {key: (None if value == "" else value) for key, value in data.items()}


class ContactCreate(_RecordInput):
    first_name: str = Field(min_length=1)
    last_name: str | None = None
    email: EmailStr | None = None
    company: str | None = None
    title: str | None = None
    phone: str | None = None
    location: str | None = None
    comment: str | None = None
    owner: OwnerRef | None = None
    type_id: UUID | None = None


class LeadCreate(_RecordInput):
    first_name: str = Field(min_length=1)
    last_name: str | None = None
    email: EmailStr | None = None
    company: str | None = None
    title: str | None = None
    phone: str | None = None
    comment: str | None = None
    owner: OwnerRef | None = None
    status_id: UUID | None = None


class DealCreate(_RecordInput):
    value: Decimal = Field(default=Decimal("0"), ge=0)
    forecast: Decimal = Field(default=Decimal("0"), ge=0)
    comment: str | None = None
    owner: OwnerRef | None = None
    lead_id: UUID | None = None
    stage_id: UUID | None = None


class ActivityCreate(_RecordInput):
    title: str = Field(min_length=1)
    description: str | None = None
    date: datetime
    location: str | None = None
    owner: OwnerRef | None = None
    lead_id: UUID | None = None
    status_id: UUID | None = None

    @field_validator("date")
    @classmethod
    def date_in_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class ContactUpdateRequest(BaseModel):
    id: UUID
    data: ContactCreate


class LeadUpdateRequest(BaseModel):
    id: UUID
    data: LeadCreate


class DealUpdateRequest(BaseModel):
    id: UUID
    data: DealCreate


class ActivityUpdateRequest(BaseModel):
    id: UUID
    data: ActivityCreate


class DictionaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: DictionaryType
    label: str
    value: str
    org_id: str
    created_at: datetime


class LeadSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: str | None
    company: str | None


class _TenantRecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    team: str
    team_name: str | None
    owner: str | None
    owner_fullname: str | None
    created_by: str
    updated_by: str
    created_at: datetime
    updated_at: datetime


class ContactRead(_TenantRecordRead):
    first_name: str
    last_name: str | None
    email: str | None
    company: str | None
    title: str | None
    phone: str | None
    location: str | None
    comment: str | None
    dictionary_id: UUID | None
    contact_type: DictionaryRead | None = None


class LeadRead(_TenantRecordRead):
    first_name: str
    last_name: str | None
    email: str | None
    company: str | None
    title: str | None
    phone: str | None
    comment: str | None
    dictionary_id: UUID | None
    status: DictionaryRead | None = None


class DealRead(_TenantRecordRead):
    value: Decimal
    forecast: Decimal
    comment: str | None
    lead_id: UUID | None
    dictionary_id: UUID | None
    lead: LeadSummary | None = None
    stage: DictionaryRead | None = None


class ActivityRead(_TenantRecordRead):
    title: str
    description: str | None
    date: datetime
    location: str | None
    lead_id: UUID | None
    dictionary_id: UUID | None
    lead: LeadSummary | None = None
    status: DictionaryRead | None = None


class DeleteResult(BaseModel):
    id: UUID
    status: Literal["deleted"] = "deleted"


class SeedRequest(BaseModel):
    organization_id: str | None = None


class SeedSummary(BaseModel):
    organization_id: str
    dictionary_entries: int
    leads: int
    deals: int
    activities: int
