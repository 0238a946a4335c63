from __future__ import annotations

import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any

from app.context import get_correlation_id
from app.core.events import event_bus
from app.platform.security.context import AuthContext

ENVELOPE_VERSION = 1
MAX_PUBLISHED_EVENTS = 10_000

published_events: deque[dict[str, Any]] = deque(maxlen=MAX_PUBLISHED_EVENTS)


def publish(envelope: dict[str, Any]) -> None:
    if envelope.get("correlation_id") is None:
        envelope["correlation_id"] = get_correlation_id()

    published_events.append(envelope)
    event_type = envelope.get("event_type")
    if isinstance(event_type, str) and event_type:
        event_bus.publish(event_type, envelope)


def publish_domain_event(event_type: str, ctx: AuthContext, payload: dict[str, Any]) -> dict[str, Any]:
    """Wraps a tenant event in the standard envelope and publishes it."""

    envelope = {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "actor_user_id": ctx.user_id,
        "organization_id": ctx.organization_id,
        "correlation_id": ctx.correlation_id,
        "version": ENVELOPE_VERSION,
        "payload": payload,
    }
    publish(envelope)
    return envelope
