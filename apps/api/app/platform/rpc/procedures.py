from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from functools import cached_property
from typing import Any

from pydantic import TypeAdapter
from sqlalchemy.orm import Session

from app.platform.security.context import AuthContext
from app.platform.security.errors import AuthenticationRequiredError


class ProcedureType(StrEnum):
    QUERY = "query"
    MUTATION = "mutation"


@dataclass(frozen=True)
class ProcedureCall:
    """Everything a handler receives: the request session, the caller and the validated input."""

    session: Session
    ctx: AuthContext | None
    input: Any = None

    @property
    def auth(self) -> AuthContext:
        if self.ctx is None:
            raise AuthenticationRequiredError()
        return self.ctx


ProcedureHandler = Callable[[ProcedureCall], Any]


@dataclass(frozen=True)
class Procedure:
    name: str
    type: ProcedureType
    handler: ProcedureHandler
    input_schema: Any = None
    permission: str | None = None
    public: bool = False

    @cached_property
    def input_adapter(self) -> TypeAdapter[Any] | None:
        if self.input_schema is None:
            return None
        return TypeAdapter(self.input_schema)


class ProcedureRouter:
    """Collects the procedures of one namespace (``lead``, ``team`` ...)."""

    def __init__(self, namespace: str) -> None:
        self.namespace = namespace
        self.procedures: list[Procedure] = []

    def query(
        self,
        name: str,
        *,
        input: Any = None,
        permission: str | None = None,
        public: bool = False,
    ) -> Callable[[ProcedureHandler], ProcedureHandler]:
        return self._register(name, ProcedureType.QUERY, input, permission, public)

    def mutation(
        self,
        name: str,
        *,
        input: Any = None,
        permission: str | None = None,
        public: bool = False,
    ) -> Callable[[ProcedureHandler], ProcedureHandler]:
        return self._register(name, ProcedureType.MUTATION, input, permission, public)

    def _register(
        self,
        name: str,
        procedure_type: ProcedureType,
        input_schema: Any,
        permission: str | None,
        public: bool,
    ) -> Callable[[ProcedureHandler], ProcedureHandler]:
        if not public and permission is None:
            raise ValueError(f"protected procedure {self.namespace}.{name} needs a permission")

        def decorator(handler: ProcedureHandler) -> ProcedureHandler:
            self.procedures.append(
                Procedure(
                    name=f"{self.namespace}.{name}",
                    type=procedure_type,
                    handler=handler,
                    input_schema=input_schema,
                    permission=permission,
                    public=public,
                )
            )
            return handler

        return decorator


class ProcedureRegistry:
    def __init__(self) -> None:
        self._procedures: dict[str, Procedure] = {}

    def register(self, procedure: Procedure) -> None:
        if procedure.name in self._procedures:
            raise ValueError(f"procedure {procedure.name} is already registered")
        self._procedures[procedure.name] = procedure

    def include_router(self, router: ProcedureRouter) -> None:
        for procedure in router.procedures:
            self.register(procedure)

    def get(self, name: str) -> Procedure | None:
        return self._procedures.get(name)

    def names(self) -> list[str]:
        return sorted(self._procedures)
