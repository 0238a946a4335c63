from __future__ import annotations

from typing import Any

from app.platform.rpc import ProcedureCall, ProcedureRouter
from app.platform.security.policies import Permission
from app.team.schemas import RemoveMemberRequest, UpdateMemberRoleRequest
from app.team.service import team_service


team_router = ProcedureRouter("team")


@team_router.query("members", permission=Permission.MEMBERS_READ)
def members(call: ProcedureCall) -> Any:
    return team_service.list_members(call.auth)


@team_router.mutation("updateMemberRole", input=UpdateMemberRoleRequest, permission=Permission.MEMBERS_MANAGE)
def update_member_role(call: ProcedureCall) -> Any:
    return team_service.update_member_role(call.auth, call.input)


@team_router.mutation("removeMember", input=RemoveMemberRequest, permission=Permission.MEMBERS_MANAGE)
def remove_member(call: ProcedureCall) -> Any:
    return team_service.remove_member(call.auth, call.input.user_id)


membership_alias_router = ProcedureRouter("system")
membership_alias_router.query("getMembershipList", permission=Permission.MEMBERS_READ)(members)


auth_router = ProcedureRouter("auth")


@auth_router.query("session", public=True)
def session(call: ProcedureCall) -> Any:
    return team_service.session(call.ctx)


routers = [team_router, membership_alias_router, auth_router]
