from __future__ import annotations

from pydantic import BaseModel, Field

from app.platform.security.context import OrgRole


class MemberRead(BaseModel):
    user_id: str
    identifier: str
    first_name: str | None
    last_name: str | None
    full_name: str
    image_url: str | None
    role: OrgRole
    organization_id: str
    organization_name: str


class UpdateMemberRoleRequest(BaseModel):
    user_id: str = Field(min_length=1)
    role: OrgRole


class RemoveMemberRequest(BaseModel):
    user_id: str = Field(min_length=1)


class RemoveMemberResult(BaseModel):
    user_id: str
    status: str = "removed"


class SessionRead(BaseModel):
    authenticated: bool
    user_id: str | None = None
    organization_id: str | None = None
    role: OrgRole | None = None
    session_id: str | None = None
