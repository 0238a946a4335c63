from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class OrgRole(StrEnum):
    ADMIN = "admin"
    BASIC_MEMBER = "basic_member"

    @classmethod
    def parse(cls, value: object) -> OrgRole | None:
        """Normalize provider role strings (``admin``, ``org:admin``, ``org:member`` ...)."""

        if value is None:
            return None
        raw = str(value).strip().lower()
        if not raw:
            return None
        if raw.startswith("org:"):
            raw = raw[len("org:") :]
        if raw == cls.ADMIN.value:
            return cls.ADMIN
        return cls.BASIC_MEMBER


@dataclass(frozen=True, slots=True)
class AuthContext:
    """Identity resolved once per request and threaded through every handler."""

    user_id: str
    organization_id: str | None = None
    role: OrgRole | None = None
    session_id: str | None = None
    correlation_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == OrgRole.ADMIN
