from app.platform.identity.clerk import ClerkIdentityProvider
from app.platform.identity.provider import (
    IdentityProvider,
    InMemoryIdentityProvider,
    get_identity_provider,
    set_identity_provider,
)
from app.platform.identity.schemas import OrganizationMembership

__all__ = [
    "ClerkIdentityProvider",
    "IdentityProvider",
    "InMemoryIdentityProvider",
    "OrganizationMembership",
    "get_identity_provider",
    "set_identity_provider",
]
