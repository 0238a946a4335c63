from __future__ import annotations

import logging

from app import audit, events
from app.core.errors import BadRequestError
from app.platform.identity import OrganizationMembership, get_identity_provider
from app.platform.security.context import AuthContext
from app.platform.security.policies import require_tenant
from app.team.schemas import MemberRead, RemoveMemberResult, SessionRead, UpdateMemberRoleRequest


logger = logging.getLogger("app.team")


def _to_member_read(membership: OrganizationMembership) -> MemberRead:
    return MemberRead(
        user_id=membership.user_id,
        identifier=membership.identifier,
        first_name=membership.first_name,
        last_name=membership.last_name,
        full_name=membership.full_name,
        image_url=membership.image_url,
        role=membership.role,
        organization_id=membership.organization_id,
        organization_name=membership.organization_name,
    )


class TeamService:
    """Organization membership management; storage lives at the identity provider."""

    entity_type = "team.membership"

    def list_members(self, ctx: AuthContext) -> list[MemberRead]:
        organization_id = require_tenant(ctx)
        return [_to_member_read(item) for item in get_identity_provider().list_memberships(organization_id)]

    def update_member_role(self, ctx: AuthContext, dto: UpdateMemberRoleRequest) -> MemberRead:
        organization_id = require_tenant(ctx)
        updated = get_identity_provider().update_membership_role(organization_id, dto.user_id, dto.role)
        logger.info(
            "team.role_updated",
            extra={"organization_id": organization_id, "user_id": ctx.user_id, "identity_operation": "update_role"},
        )
        self._record_change(ctx, dto.user_id, "role_updated", {"role": dto.role.value})
        return _to_member_read(updated)

    def remove_member(self, ctx: AuthContext, user_id: str) -> RemoveMemberResult:
        organization_id = require_tenant(ctx)
        if user_id == ctx.user_id:
            raise BadRequestError("You cannot remove yourself from the organization")

        get_identity_provider().remove_membership(organization_id, user_id)
        logger.info(
            "team.member_removed",
            extra={"organization_id": organization_id, "user_id": ctx.user_id, "identity_operation": "remove"},
        )
        self._record_change(ctx, user_id, "removed", None)
        return RemoveMemberResult(user_id=user_id)

    def session(self, ctx: AuthContext | None) -> SessionRead:
        if ctx is None:
            return SessionRead(authenticated=False)
        return SessionRead(
            authenticated=True,
            user_id=ctx.user_id,
            organization_id=ctx.organization_id,
            role=ctx.role,
            session_id=ctx.session_id,
        )

    def _record_change(self, ctx: AuthContext, member_user_id: str, action: str, after: dict | None) -> None:
        audit.record(
            actor_user_id=ctx.user_id,
            entity_type=self.entity_type,
            entity_id=member_user_id,
            action=action,
            before=None,
            after=after,
            correlation_id=ctx.correlation_id,
            organization_id=ctx.organization_id,
        )
        events.publish_domain_event(f"team.member.{action}", ctx, {"user_id": member_user_id, **(after or {})})


team_service = TeamService()
