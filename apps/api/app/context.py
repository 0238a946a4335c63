from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

_correlation_id: ContextVar[str | None] = ContextVar("teamcrm_correlation_id", default=None)


@contextmanager
def bind_correlation_id(value: str) -> Iterator[str]:
    """Makes ``value`` the correlation id for logs, audit entries and events inside the block."""

    token = _correlation_id.set(value)
    try:
        yield value
    finally:
        _correlation_id.reset(token)


def get_correlation_id() -> str | None:
    return _correlation_id.get()
