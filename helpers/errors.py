"""Error taxonomy for the booking orchestrator and the FastAPI handlers that render it."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("errors")


class OrchestratorError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OrchestratorError):
    """Missing or malformed input; nothing was attempted."""
    status_code = 400


class NotFoundError(OrchestratorError):
    status_code = 404


class WorkflowConflictError(OrchestratorError):
    """The workflow moved on (or already has a call in flight) before we could claim it."""
    status_code = 409


class UpstreamProviderError(OrchestratorError):
    """The voice provider rejected the call or could not be reached."""
    status_code = 500

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class PersistenceError(OrchestratorError):
    """The store rejected a write; see call_continuity_policy for where this is tolerated."""
    status_code = 500


@asynccontextmanager
async def call_continuity_policy(operation: str, **context):
    """
    Staging writes happen while a caller is still on the line. A storage failure
    here is logged and dropped so the agent can carry on talking; the call's
    final webhook still carries everything needed to build the incident.
    """
    try:
        yield
    except PersistenceError as e:
        logger.exception("%s failed (swallowed to keep the call alive) %s: %s", operation, context, e.message)


async def orchestrator_error_handler(request: Request, exc: OrchestratorError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("HTTP %s: %s %s -> %s", exc.status_code, request.method, request.url.path, exc.message)
    else:
        logger.info("HTTP %s: %s %s -> %s", exc.status_code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else "Invalid request body"
    logger.warning("Validation error: %s %s %s", request.method, request.url.path, errors)
    return JSONResponse(status_code=400, content={"error": message})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Request failed: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": str(exc) or type(exc).__name__})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrchestratorError, orchestrator_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
