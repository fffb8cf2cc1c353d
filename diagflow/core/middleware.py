"""HTTP middleware: request ids, logging context and error conversion."""

import re
import time
import uuid
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple, Type

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .exceptions import (
    ConfigurationError,
    ExecutionEngineError,
    GraphValidationError,
    InvalidConnectionError,
    InvalidStateError,
    MalformedDocumentError,
    NotFoundError,
    StorageError,
    WorkflowEngineError,
    create_error_response,
)
from .logging import get_logger, reset_logging_context, set_logging_context

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# First match wins, so subclasses must precede their bases
ERROR_STATUS_CODES: Tuple[Tuple[Type[WorkflowEngineError], int], ...] = (
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (ExecutionEngineError, 409),
    (MalformedDocumentError, 422),
    (GraphValidationError, 400),
    (InvalidConnectionError, 400),
    (StorageError, 500),
    (ConfigurationError, 500),
)

_SESSION_PATH = re.compile(r"/sessions/(?P<session_id>[^/]+)")


def status_code_for_error(error: WorkflowEngineError) -> int:
    """HTTP status code reported for a workflow engine error."""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


def request_context(request: Request, request_id: str) -> Dict[str, str]:
    """Logging fields for one request; session routes also carry the session id."""
    fields = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
    }
    match = _SESSION_PATH.search(request.url.path)
    if match:
        fields["session_id"] = match.group("session_id")
    return fields


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and turns stray errors into JSON bodies.

    Errors the endpoints already converted to ``HTTPException`` pass through
    untouched; this only catches what escaped them.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        context_token = set_logging_context(**request_context(request, request_id))
        started = time.perf_counter()

        try:
            response = await call_next(request)
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} "
                f"in {time.perf_counter() - started:.3f}s"
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response

        except WorkflowEngineError as e:
            logger.warning(
                f"{request.method} {request.url.path} failed with {e.error_code}",
                extra={"extra_fields": {"error_details": e.to_dict()}}
            )
            return self._error_response(status_code_for_error(e), create_error_response(e), request_id)

        except Exception as e:
            logger.error(f"Unhandled {type(e).__name__} on {request.method} {request.url.path}", exc_info=True)
            body = {
                "error": "InternalServerError",
                "message": "An unexpected error occurred",
                "details": {
                    "error_type": type(e).__name__,
                    "timestamp": datetime.utcnow().isoformat()
                },
                "request_id": request_id,
            }
            return self._error_response(500, body, request_id)

        finally:
            reset_logging_context(context_token)

    @staticmethod
    def _error_response(status_code: int, body: Dict, request_id: Optional[str]) -> JSONResponse:
        return JSONResponse(status_code=status_code, content=body, headers={REQUEST_ID_HEADER: request_id})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Debug-level request details plus an ``X-Response-Time`` header."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        if request.query_params:
            logger.debug(f"{request.method} {request.url.path} query={dict(request.query_params)}")

        response = await call_next(request)

        response.headers["X-Response-Time"] = f"{time.perf_counter() - started:.3f}s"
        return response
