from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from app.api.errors import register_exception_handlers
from app.api.routes import router as api_router
from app.core.config import Settings, get_settings
from app.core.events import InternalEvent, event_bus
from app.logging import configure_logging
from app.middleware.correlation_id import CorrelationIdMiddleware
from app.middleware.request_logging import RequestLoggingMiddleware
from app.otel import server_request_hook, setup_otel
from app.platform.identity import ClerkIdentityProvider, InMemoryIdentityProvider, set_identity_provider
from app.platform.security.policies import InMemoryPolicyBackend, set_policy_backend


configure_logging()
logger = logging.getLogger("app.lifecycle")
_subscriptions_registered = False

_domain_event_types = [
    "crm.contact.created",
    "crm.contact.updated",
    "crm.contact.deleted",
    "crm.lead.created",
    "crm.lead.updated",
    "crm.lead.deleted",
    "crm.deal.created",
    "crm.deal.updated",
    "crm.deal.deleted",
    "crm.activity.created",
    "crm.activity.updated",
    "crm.activity.deleted",
    "tenant.provisioned",
    "team.member.role_updated",
    "team.member.removed",
]


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


def _on_domain_event(event: InternalEvent) -> None:
    payload = event.payload if isinstance(event.payload, dict) else {}
    logger.info(
        "domain_event",
        extra={
            "event_name": event.name,
            "organization_id": payload.get("organization_id"),
            "user_id": payload.get("actor_user_id"),
        },
    )


def _select_identity_provider(settings: Settings) -> None:
    choice = settings.identity_provider.lower()
    if choice == "auto":
        choice = "clerk" if settings.app_env.lower() in {"prod", "production"} else "inmemory"

    if choice == "clerk":
        set_identity_provider(ClerkIdentityProvider(settings))
    else:
        set_identity_provider(InMemoryIdentityProvider())


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        for event_name in _domain_event_types:
            event_bus.subscribe(event_name, _on_domain_event)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "api"})
    yield


settings = get_settings()

app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
register_exception_handlers(app)
app.include_router(api_router)

set_policy_backend(InMemoryPolicyBackend())
_select_identity_provider(settings)

setup_otel(settings)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=server_request_hook)
