from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest
from prometheus_client import REGISTRY
from pydantic import BaseModel, Field

from app.core.errors import MethodNotSupportedError, NotFoundError, ValidationFailedError
from app.platform.rpc import ProcedureCall, ProcedureDispatcher, ProcedureRegistry, ProcedureRouter, ProcedureType
from app.platform.security.context import AuthContext, OrgRole
from app.platform.security.errors import AuthenticationRequiredError, AuthorizationError, TenantRequiredError
from app.platform.security.policies import InMemoryPolicyBackend, Permission, set_policy_backend


class GreetingInput(BaseModel):
    name: str = Field(min_length=1)


ADMIN = AuthContext(user_id="u1", organization_id="org-a", role=OrgRole.ADMIN)
MEMBER = AuthContext(user_id="u2", organization_id="org-a", role=OrgRole.BASIC_MEMBER)
NO_ORG = AuthContext(user_id="u3")


@pytest.fixture()
def calls() -> list[ProcedureCall]:
    return []


@pytest.fixture()
def dispatcher(calls: list[ProcedureCall]) -> ProcedureDispatcher:
    set_policy_backend(InMemoryPolicyBackend())
    router = ProcedureRouter("demo")

    @router.query("greet", input=GreetingInput, permission=Permission.RECORDS_READ)
    def greet(call: ProcedureCall) -> Any:
        calls.append(call)
        return {"greeting": f"hello {call.input.name}"}

    @router.query("byId", input=UUID, permission=Permission.RECORDS_READ)
    def by_id(call: ProcedureCall) -> Any:
        calls.append(call)
        return {"id": call.input}

    @router.mutation("provision", permission=Permission.TENANT_PROVISION)
    def provision(call: ProcedureCall) -> Any:
        calls.append(call)
        return {"ok": True}

    @router.query("ping", public=True)
    def ping(call: ProcedureCall) -> Any:
        calls.append(call)
        return {"pong": call.ctx is not None}

    registry = ProcedureRegistry()
    registry.include_router(router)
    return ProcedureDispatcher(registry)


def _dispatch(dispatcher: ProcedureDispatcher, name: str, procedure_type: ProcedureType, ctx: AuthContext | None, **kwargs: Any) -> Any:
    return dispatcher.dispatch(name, procedure_type, session=MagicMock(), ctx=ctx, **kwargs)


def test_unknown_procedure_is_not_found(dispatcher: ProcedureDispatcher) -> None:
    with pytest.raises(NotFoundError):
        _dispatch(dispatcher, "demo.missing", ProcedureType.QUERY, None)


def test_wrong_verb_is_rejected_before_authentication(dispatcher: ProcedureDispatcher, calls: list[ProcedureCall]) -> None:
    with pytest.raises(MethodNotSupportedError):
        _dispatch(dispatcher, "demo.greet", ProcedureType.MUTATION, None, raw_input={"name": "x"})
    assert calls == []


def test_protected_procedure_requires_identity(dispatcher: ProcedureDispatcher, calls: list[ProcedureCall]) -> None:
    with pytest.raises(AuthenticationRequiredError):
        _dispatch(dispatcher, "demo.greet", ProcedureType.QUERY, None, raw_input={"name": ""})
    assert calls == []


def test_invalid_input_never_reaches_handler(dispatcher: ProcedureDispatcher, calls: list[ProcedureCall]) -> None:
    with pytest.raises(ValidationFailedError) as exc_info:
        _dispatch(dispatcher, "demo.greet", ProcedureType.QUERY, MEMBER, raw_input={"name": ""})

    assert calls == []
    assert exc_info.value.details[0]["loc"] == ["name"]


def test_validation_runs_before_the_guard(dispatcher: ProcedureDispatcher) -> None:
    with pytest.raises(ValidationFailedError):
        _dispatch(dispatcher, "demo.greet", ProcedureType.QUERY, NO_ORG, raw_input={})


def test_encoded_input_must_be_json(dispatcher: ProcedureDispatcher) -> None:
    with pytest.raises(ValidationFailedError):
        _dispatch(dispatcher, "demo.byId", ProcedureType.QUERY, MEMBER, encoded_input="{not json")


def test_encoded_input_is_decoded_and_validated(dispatcher: ProcedureDispatcher) -> None:
    record_id = uuid4()

    result = _dispatch(dispatcher, "demo.byId", ProcedureType.QUERY, MEMBER, encoded_input=f'"{record_id}"')

    assert result == {"id": record_id}


def test_guard_requires_organization(dispatcher: ProcedureDispatcher, calls: list[ProcedureCall]) -> None:
    with pytest.raises(TenantRequiredError):
        _dispatch(dispatcher, "demo.greet", ProcedureType.QUERY, NO_ORG, raw_input={"name": "ada"})
    assert calls == []


def test_guard_rejects_missing_permission(dispatcher: ProcedureDispatcher, calls: list[ProcedureCall]) -> None:
    with pytest.raises(AuthorizationError):
        _dispatch(dispatcher, "demo.provision", ProcedureType.MUTATION, MEMBER)
    assert calls == []


def test_handler_receives_validated_input(dispatcher: ProcedureDispatcher, calls: list[ProcedureCall]) -> None:
    result = _dispatch(dispatcher, "demo.greet", ProcedureType.QUERY, ADMIN, raw_input={"name": "ada"})

    assert result == {"greeting": "hello ada"}
    assert isinstance(calls[0].input, GreetingInput)
    assert calls[0].auth is ADMIN


def test_public_procedure_allows_anonymous(dispatcher: ProcedureDispatcher) -> None:
    assert _dispatch(dispatcher, "demo.ping", ProcedureType.QUERY, None) == {"pong": False}


def test_dispatch_outcomes_are_counted(dispatcher: ProcedureDispatcher) -> None:
    def sample(outcome: str) -> float:
        value = REGISTRY.get_sample_value(
            "rpc_procedure_calls_total", {"procedure": "demo.provision", "outcome": outcome}
        )
        return value or 0.0

    before_forbidden = sample("forbidden")
    before_success = sample("success")

    with pytest.raises(AuthorizationError):
        _dispatch(dispatcher, "demo.provision", ProcedureType.MUTATION, MEMBER)
    _dispatch(dispatcher, "demo.provision", ProcedureType.MUTATION, ADMIN)

    assert sample("forbidden") == before_forbidden + 1
    assert sample("success") == before_success + 1


def test_duplicate_registration_is_rejected() -> None:
    router = ProcedureRouter("demo")
    router.query("twice", public=True)(lambda call: None)
    router.query("twice", public=True)(lambda call: None)

    registry = ProcedureRegistry()
    with pytest.raises(ValueError):
        registry.include_router(router)


def test_protected_procedure_needs_a_permission() -> None:
    router = ProcedureRouter("demo")

    with pytest.raises(ValueError):
        router.query("open")


def test_auth_on_anonymous_call_is_unauthenticated() -> None:
    call = ProcedureCall(session=MagicMock(), ctx=None)

    with pytest.raises(AuthenticationRequiredError):
        call.auth


def test_guarded_public_procedure_requires_identity() -> None:
    set_policy_backend(InMemoryPolicyBackend())
    router = ProcedureRouter("demo")
    seen: list[ProcedureCall] = []
    router.query("peek", permission=Permission.RECORDS_READ, public=True)(seen.append)
    registry = ProcedureRegistry()
    registry.include_router(router)

    with pytest.raises(AuthenticationRequiredError):
        _dispatch(ProcedureDispatcher(registry), "demo.peek", ProcedureType.QUERY, None)
    assert seen == []
