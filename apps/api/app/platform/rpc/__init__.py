from app.platform.rpc.api import create_rpc_router
from app.platform.rpc.dispatcher import ProcedureDispatcher
from app.platform.rpc.procedures import Procedure, ProcedureCall, ProcedureRegistry, ProcedureRouter, ProcedureType

__all__ = [
    "Procedure",
    "ProcedureCall",
    "ProcedureDispatcher",
    "ProcedureRegistry",
    "ProcedureRouter",
    "ProcedureType",
    "create_rpc_router",
]
