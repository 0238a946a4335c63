from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.context import get_correlation_id
from app.core.errors import DomainError, ValidationFailedError


logger = logging.getLogger("app.errors")


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=asdict(payload))


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = json.loads(json.dumps(exc.errors(), default=str))
    return error_response(
        request,
        status_code=ValidationFailedError.status_code,
        code=ValidationFailedError.code,
        message="Request validation failed",
        details=details,
    )


async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("store.error", exc_info=exc, extra={"error": type(exc).__name__})
    return error_response(
        request,
        status_code=500,
        code="INTERNAL_SERVER_ERROR",
        message="The request could not be completed, please try again later.",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, store_error_handler)  # type: ignore[arg-type]
