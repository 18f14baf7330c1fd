"""Middleware for request tracing and error handling."""

import time
import uuid
from datetime import datetime
from typing import Callable
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .exceptions import (
    WorkflowEngineError, APIError, ActionResolutionError, ConfigurationError,
    GraphValidationError, SimulationAborted, create_error_response
)
from .logging import get_logger, set_logging_context, clear_logging_context


logger = get_logger(__name__)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an ID and turns simulator errors into JSON responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        start_time = time.time()

        context_token = set_logging_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else "unknown"
        )

        try:
            logger.info(f"Request started: {request.method} {request.url.path}")
            response = await call_next(request)

            duration = time.time() - start_time
            logger.info(
                f"Request completed: {request.method} {request.url.path} - "
                f"Status: {response.status_code} - Duration: {duration:.3f}s"
            )
            response.headers["X-Request-ID"] = request_id
            return response

        except WorkflowEngineError as e:
            duration = time.time() - start_time
            logger.warning(
                f"Simulator error: {request.method} {request.url.path} - "
                f"Error: {e.error_code} - Duration: {duration:.3f}s",
                extra={"extra_fields": {"error_details": e.to_dict()}}
            )
            return JSONResponse(
                status_code=self._get_status_code_for_error(e),
                content=create_error_response(e),
                headers={"X-Request-ID": request_id}
            )

        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                f"Unexpected error: {request.method} {request.url.path} - "
                f"Error: {str(e)} - Duration: {duration:.3f}s",
                exc_info=True
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "InternalServerError",
                    "message": "An unexpected error occurred",
                    "details": {
                        "error_type": type(e).__name__,
                        "timestamp": datetime.utcnow().isoformat()
                    },
                    "request_id": request_id
                },
                headers={"X-Request-ID": request_id}
            )

        finally:
            clear_logging_context(context_token)

    def _get_status_code_for_error(self, error: WorkflowEngineError) -> int:
        """Map a simulator error to its HTTP status code."""
        if isinstance(error, APIError):
            return error.status_code
        elif isinstance(error, GraphValidationError):
            return 422
        elif isinstance(error, ActionResolutionError):
            return 502
        elif isinstance(error, SimulationAborted):
            return 409
        elif isinstance(error, ConfigurationError):
            return 500
        else:
            return 500
