from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from app.platform.security.context import OrgRole


class OrganizationMembership(BaseModel):
    model_config = ConfigDict(frozen=True)

    organization_id: str
    organization_name: str
    user_id: str
    identifier: str
    role: OrgRole
    first_name: str | None = None
    last_name: str | None = None
    image_url: str | None = None

    @property
    def full_name(self) -> str:
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) or self.identifier
