from __future__ import annotations

import logging
from typing import Any

import httpx
from opentelemetry import trace

from app.context import get_correlation_id
from app.core.config import Settings
from app.core.errors import UpstreamProviderError
from app.metrics import observe_identity_provider_call
from app.platform.identity.schemas import OrganizationMembership
from app.platform.security.context import OrgRole


logger = logging.getLogger("app.identity")
tracer = trace.get_tracer("app.platform.identity.clerk")

MEMBERSHIP_PAGE_SIZE = 100

_PROVIDER_ROLES = {
    OrgRole.ADMIN: "org:admin",
    OrgRole.BASIC_MEMBER: "org:member",
}


class ClerkIdentityProvider:
    """Membership operations against the Clerk Backend API.

    Authenticates with the instance secret key. Provider error payloads
    (``{"errors": [{"message": ...}]}``) surface as ``UpstreamProviderError``
    carrying the first message unchanged.
    """

    def __init__(self, settings: Settings, *, transport: httpx.BaseTransport | None = None) -> None:
        self._client = httpx.Client(
            base_url=settings.clerk_api_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {settings.clerk_secret_key}",
                "Content-Type": "application/json",
            },
            timeout=settings.identity_provider_timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def get_membership(self, organization_id: str, user_id: str) -> OrganizationMembership | None:
        payload = self._request(
            "get_membership",
            "GET",
            f"/organizations/{organization_id}/memberships",
            params={"user_id": user_id, "limit": 1},
        )
        for item in _data_items(payload):
            membership = _to_membership(item)
            if membership.user_id == user_id:
                return membership
        return None

    def list_memberships(self, organization_id: str) -> list[OrganizationMembership]:
        memberships: list[OrganizationMembership] = []
        while True:
            payload = self._request(
                "list_memberships",
                "GET",
                f"/organizations/{organization_id}/memberships",
                params={"limit": MEMBERSHIP_PAGE_SIZE, "offset": len(memberships)},
            )
            items = _data_items(payload)
            memberships.extend(_to_membership(item) for item in items)
            total_count = payload.get("total_count") if isinstance(payload, dict) else None
            if not items or not isinstance(total_count, int) or len(memberships) >= total_count:
                return memberships

    def update_membership_role(self, organization_id: str, user_id: str, role: OrgRole) -> OrganizationMembership:
        payload = self._request(
            "update_membership_role",
            "PATCH",
            f"/organizations/{organization_id}/memberships/{user_id}",
            json={"role": _PROVIDER_ROLES[role]},
        )
        return _to_membership(payload)

    def remove_membership(self, organization_id: str, user_id: str) -> None:
        self._request(
            "remove_membership",
            "DELETE",
            f"/organizations/{organization_id}/memberships/{user_id}",
        )

    def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        with tracer.start_as_current_span(f"identity.{operation}") as span:
            span.set_attribute("identity.operation", operation)
            span.set_attribute("correlation_id", get_correlation_id() or "")
            try:
                response = self._client.request(method, path, params=params, json=json)
            except httpx.RequestError as exc:
                observe_identity_provider_call(operation=operation, outcome="error")
                logger.warning("identity.request_failed", extra={"identity_operation": operation, "error": str(exc)})
                raise UpstreamProviderError("Identity provider is unavailable") from exc

            span.set_attribute("http.status_code", response.status_code)
            if response.is_error:
                observe_identity_provider_call(operation=operation, outcome="error")
                message = _first_error_message(response)
                logger.warning(
                    "identity.request_rejected",
                    extra={"identity_operation": operation, "status_code": response.status_code, "error": message},
                )
                raise UpstreamProviderError(message, provider_status=response.status_code)

            observe_identity_provider_call(operation=operation, outcome="success")
            if not response.content:
                return None
            return response.json()


def _first_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        errors = payload.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            message = errors[0].get("message")
            if isinstance(message, str) and message:
                return message
    return f"Identity provider request failed with status {response.status_code}"


def _data_items(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        items = payload.get("data", [])
    else:
        items = payload or []
    return [item for item in items if isinstance(item, dict)]


def _to_membership(item: dict[str, Any]) -> OrganizationMembership:
    organization = item.get("organization") or {}
    user = item.get("public_user_data") or {}
    return OrganizationMembership(
        organization_id=str(organization.get("id", "")),
        organization_name=str(organization.get("name", "")),
        user_id=str(user.get("user_id", "")),
        identifier=str(user.get("identifier", "")),
        first_name=user.get("first_name"),
        last_name=user.get("last_name"),
        image_url=user.get("image_url"),
        role=OrgRole.parse(item.get("role")) or OrgRole.BASIC_MEMBER,
    )
