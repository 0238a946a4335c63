from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Protocol

from app.core.errors import UpstreamProviderError
from app.platform.identity.schemas import OrganizationMembership
from app.platform.security.context import OrgRole


class IdentityProvider(Protocol):
    """Organization membership operations delegated to the identity service."""

    def get_membership(self, organization_id: str, user_id: str) -> OrganizationMembership | None: ...

    def list_memberships(self, organization_id: str) -> list[OrganizationMembership]: ...

    def update_membership_role(self, organization_id: str, user_id: str, role: OrgRole) -> OrganizationMembership: ...

    def remove_membership(self, organization_id: str, user_id: str) -> None: ...


@dataclass
class _Organization:
    name: str
    members: dict[str, OrganizationMembership] = field(default_factory=dict)


class InMemoryIdentityProvider:
    """Process-local membership directory for local development and tests."""

    def __init__(self) -> None:
        self._organizations: dict[str, _Organization] = {}
        self._lock = Lock()

    def add_member(
        self,
        organization_id: str,
        user_id: str,
        *,
        identifier: str,
        role: OrgRole = OrgRole.BASIC_MEMBER,
        organization_name: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> OrganizationMembership:
        with self._lock:
            organization = self._organizations.setdefault(
                organization_id, _Organization(name=organization_name or organization_id)
            )
            if organization_name:
                organization.name = organization_name
            membership = OrganizationMembership(
                organization_id=organization_id,
                organization_name=organization.name,
                user_id=user_id,
                identifier=identifier,
                role=role,
                first_name=first_name,
                last_name=last_name,
            )
            organization.members[user_id] = membership
            return membership

    def get_membership(self, organization_id: str, user_id: str) -> OrganizationMembership | None:
        organization = self._organizations.get(organization_id)
        if organization is None:
            return None
        return organization.members.get(user_id)

    def list_memberships(self, organization_id: str) -> list[OrganizationMembership]:
        organization = self._organizations.get(organization_id)
        if organization is None:
            return []
        return sorted(organization.members.values(), key=lambda item: item.identifier)

    def update_membership_role(self, organization_id: str, user_id: str, role: OrgRole) -> OrganizationMembership:
        with self._lock:
            current = self._require_member(organization_id, user_id)
            updated = current.model_copy(update={"role": role})
            self._organizations[organization_id].members[user_id] = updated
            return updated

    def remove_membership(self, organization_id: str, user_id: str) -> None:
        with self._lock:
            self._require_member(organization_id, user_id)
            del self._organizations[organization_id].members[user_id]

    def _require_member(self, organization_id: str, user_id: str) -> OrganizationMembership:
        membership = self.get_membership(organization_id, user_id)
        if membership is None:
            raise UpstreamProviderError("Membership not found", provider_status=404)
        return membership


_IDENTITY_PROVIDER: IdentityProvider = InMemoryIdentityProvider()
_IDENTITY_LOCK = Lock()


def get_identity_provider() -> IdentityProvider:
    """Get the active identity provider instance."""

    return _IDENTITY_PROVIDER


def set_identity_provider(provider: IdentityProvider) -> None:
    """Set the active identity provider instance."""

    global _IDENTITY_PROVIDER
    with _IDENTITY_LOCK:
        _IDENTITY_PROVIDER = provider
