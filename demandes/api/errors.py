# demandes/api/errors.py
import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from demandes.workflow.errors import (
    AuditWriteError,
    ConcurrentModificationError,
    DemandeNotFoundError,
    DuplicateDemandeError,
    PersistenceError,
    UnauthorizedTransitionError,
    WorkflowError,
)

logger = logging.getLogger(__name__)

# el resto de WorkflowError (WF_001, WF_002) => 422
HTTP_STATUS = {
    UnauthorizedTransitionError: 403,
    DemandeNotFoundError: 404,
    ConcurrentModificationError: 409,
    DuplicateDemandeError: 409,
    PersistenceError: 500,
    AuditWriteError: 500,
}


def error_body(code: str, message: str, details=None) -> dict:
    return {"success": False, "error": {"code": code, "message": message, "details": details}}


def status_for(exc: WorkflowError) -> int:
    for cls in type(exc).__mro__:
        if cls in HTTP_STATUS:
            return HTTP_STATUS[cls]
    return 422


async def workflow_error_handler(request: Request, exc: WorkflowError):
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
        # no exponemos detalles internos del almacenamiento
        return JSONResponse(status_code=status, content=error_body(exc.code, "Erreur serveur interne"))
    return JSONResponse(status_code=status, content=jsonable_encoder(error_body(exc.code, exc.message, exc.details or None)))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()]
    return JSONResponse(status_code=400, content=error_body("VAL_001", "Erreur de validation", details))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WorkflowError, workflow_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
