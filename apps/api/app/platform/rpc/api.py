from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from app.core.auth import get_auth_context
from app.core.database import get_db
from app.platform.rpc.dispatcher import ProcedureDispatcher
from app.platform.rpc.procedures import ProcedureType
from app.platform.security.context import AuthContext


def create_rpc_router(dispatcher: ProcedureDispatcher) -> APIRouter:
    router = APIRouter(prefix="/api/trpc", tags=["rpc"])

    @router.get("/{procedure_name}")
    def call_query(
        procedure_name: str,
        encoded_input: str | None = Query(default=None, alias="input"),
        db: Session = Depends(get_db),
        ctx: AuthContext | None = Depends(get_auth_context),
    ) -> Any:
        result = dispatcher.dispatch(
            procedure_name,
            ProcedureType.QUERY,
            session=db,
            ctx=ctx,
            encoded_input=encoded_input,
        )
        return jsonable_encoder(result)

    @router.post("/{procedure_name}")
    def call_mutation(
        procedure_name: str,
        payload: Any = Body(default=None),
        db: Session = Depends(get_db),
        ctx: AuthContext | None = Depends(get_auth_context),
    ) -> Any:
        result = dispatcher.dispatch(
            procedure_name,
            ProcedureType.MUTATION,
            session=db,
            ctx=ctx,
            raw_input=payload,
        )
        return jsonable_encoder(result)

    return router
