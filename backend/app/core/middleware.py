import time
import logging
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.services.workflow import (
    InvalidTransition,
    JournalNotFound,
    RemoteFailure,
    Unauthorized,
    ValidationError,
    WorkflowError,
)

# === structured logging ===
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("journalportal")

WORKFLOW_STATUS_CODES: dict[type, int] = {
    InvalidTransition: 409,
    Unauthorized: 403,
    ValidationError: 422,
    JournalNotFound: 404,
    RemoteFailure: 502,
}


def status_code_for(error: WorkflowError) -> int:
    for cls, code in WORKFLOW_STATUS_CODES.items():
        if isinstance(error, cls):
            return code
    return 400


def workflow_error_response(error: WorkflowError) -> JSONResponse:
    body = error.to_dict()
    if isinstance(error, RemoteFailure):
        body["retryable"] = error.retryable
    return JSONResponse(status_code=status_code_for(error), content=body)


async def _workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    return workflow_error_response(exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WorkflowError, _workflow_error_handler)  # type: ignore[arg-type]


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """
    Request log line per call plus a last-resort JSON 500 for unhandled exceptions.
    """
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.info(f"Method: {request.method} Path: {request.url.path} Status: {response.status_code} Time: {process_time:.4f}s")
            return response
        except HTTPException as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.detail, "type": "http_exception"}
            )
        except WorkflowError as exc:
            return workflow_error_response(exc)
        except Exception as e:
            logger.error(f"Unhandled Exception: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error, please contact the administrator", "type": "server_error"}
            )
