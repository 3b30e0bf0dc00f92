"""
Global Error Handler Middleware.

Catches unhandled exceptions and returns structured JSON responses.
Domain errors (CovenantWatchError) are mapped by the exception handler in
covenantwatch.main before they reach this layer.
Every error gets a unique error_id for correlation with server logs.
"""

import traceback
import uuid

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from covenantwatch.config import settings
from covenantwatch.exceptions import ErrorCode

logger = structlog.get_logger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Outermost middleware — catches everything.

    Returns the same envelope as domain errors:
    {"error": {"code": "E1000", "message": "...", "details": {"error_id": "..."}}}
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)

        except Exception as exc:
            error_id = str(uuid.uuid4())

            logger.error(
                "unhandled_exception",
                error_id=error_id,
                path=request.url.path,
                method=request.method,
                error=str(exc),
                traceback=traceback.format_exc(),
            )

            details: dict = {"error_id": error_id}
            if settings.debug:
                details["debug_hint"] = type(exc).__name__

            return JSONResponse(
                status_code=500,
                content={
                    "error": {
                        "code": ErrorCode.INTERNAL_ERROR.value,
                        "message": "An internal error occurred. Please try again later.",
                        "details": details,
                    }
                },
            )
