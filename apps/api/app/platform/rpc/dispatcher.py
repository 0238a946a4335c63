from __future__ import annotations

import json
import logging
import time
from typing import Any

from opentelemetry import trace
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.errors import DomainError, MethodNotSupportedError, NotFoundError, ValidationFailedError
from app.metrics import observe_procedure_call
from app.otel import annotate_caller
from app.platform.rpc.procedures import Procedure, ProcedureCall, ProcedureRegistry, ProcedureType
from app.platform.security.context import AuthContext
from app.platform.security.errors import AuthenticationRequiredError
from app.platform.security.policies import authorize


logger = logging.getLogger("app.rpc")
tracer = trace.get_tracer("app.platform.rpc")

_UNKNOWN_PROCEDURE = "unknown"


class ProcedureDispatcher:
    """Runs one named procedure call through lookup, access checks, validation and the handler.

    Order matters: an unknown name never reaches the verb check, an anonymous
    caller never reaches input validation, and invalid input never reaches the
    policy table or the handler.
    """

    def __init__(self, registry: ProcedureRegistry) -> None:
        self.registry = registry

    def dispatch(
        self,
        name: str,
        procedure_type: ProcedureType,
        *,
        session: Session,
        ctx: AuthContext | None,
        raw_input: Any = None,
        encoded_input: str | None = None,
    ) -> Any:
        procedure = self.registry.get(name)
        metric_name = procedure.name if procedure is not None else _UNKNOWN_PROCEDURE
        started = time.perf_counter()

        with tracer.start_as_current_span(f"rpc.{metric_name}") as span:
            span.set_attribute("rpc.procedure", name)
            span.set_attribute("rpc.type", procedure_type.value)
            annotate_caller(span, ctx)
            try:
                result = self._run(name, procedure, procedure_type, session, ctx, raw_input, encoded_input)
            except DomainError as exc:
                outcome = exc.code.lower()
                span.set_attribute("rpc.outcome", outcome)
                observe_procedure_call(metric_name, outcome, time.perf_counter() - started)
                logger.warning(
                    "rpc.failed",
                    extra={
                        "procedure": name,
                        "outcome": outcome,
                        "error_code": exc.code,
                        "organization_id": ctx.organization_id if ctx else None,
                        "user_id": ctx.user_id if ctx else None,
                    },
                )
                raise
            except Exception:
                span.set_attribute("rpc.outcome", "error")
                observe_procedure_call(metric_name, "error", time.perf_counter() - started)
                logger.exception("rpc.error", extra={"procedure": name, "outcome": "error"})
                raise

            span.set_attribute("rpc.outcome", "success")
            observe_procedure_call(metric_name, "success", time.perf_counter() - started)
            return result

    def _run(
        self,
        name: str,
        procedure: Procedure | None,
        procedure_type: ProcedureType,
        session: Session,
        ctx: AuthContext | None,
        raw_input: Any,
        encoded_input: str | None,
    ) -> Any:
        if procedure is None:
            raise NotFoundError(f'No "{procedure_type.value}"-procedure on path "{name}"')
        if procedure.type != procedure_type:
            raise MethodNotSupportedError(f'Unsupported {procedure_type.value} call to {procedure.type.value} "{name}"')
        if not procedure.public and ctx is None:
            raise AuthenticationRequiredError()

        validated = self._validate_input(procedure, raw_input, encoded_input)
        if procedure.permission is not None:
            if ctx is None:
                raise AuthenticationRequiredError()
            authorize(ctx, procedure.permission, operation=procedure.name)

        return procedure.handler(ProcedureCall(session=session, ctx=ctx, input=validated))

    @staticmethod
    def _validate_input(procedure: Procedure, raw_input: Any, encoded_input: str | None) -> Any:
        adapter = procedure.input_adapter
        if adapter is None:
            return None

        value = raw_input
        if encoded_input is not None:
            try:
                value = json.loads(encoded_input)
            except ValueError as exc:
                raise ValidationFailedError("Input is not valid JSON") from exc

        try:
            return adapter.validate_python(value)
        except ValidationError as exc:
            raise ValidationFailedError(
                "Input validation failed",
                details=json.loads(exc.json(include_url=False)),
            ) from exc
