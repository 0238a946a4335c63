from dataclasses import dataclass


@dataclass
class RequestContext:
    """Per-request identity filled in as the request moves through auth."""

    request_id: str
    correlation_id: str
    user_id: str | None = None
    organization_id: str | None = None
