"""
CovenantWatch Exceptions.

Centralized exception definitions with:
- HTTP status code mapping
- Error codes for client handling
- Structured details for logs and API responses

Propagation policy:
- Pure engine code raises only ValidationError / UnknownMetricError.
- Services absorb ExternalServiceError where a sane default exists.
- RetriesExhaustedError is recorded on the extraction job, never raised
  through the queue.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Application error codes."""

    INTERNAL_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"
    NOT_FOUND = "E1002"

    # Configuration errors (2xxx)
    UNKNOWN_METRIC = "E2000"

    # External service errors (5xxx)
    EXTERNAL_SERVICE_ERROR = "E5000"
    CIRCUIT_BREAKER_OPEN = "E5001"

    # Job errors (6xxx)
    RETRIES_EXHAUSTED = "E6000"


class ErrorDetail(BaseModel):
    code: str
    message: str
    field: Optional[str] = None
    details: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Unified API error body."""

    error: ErrorDetail


class CovenantWatchError(Exception):
    """Base exception for the covenant engine."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None,
        field: Optional[str] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error=ErrorDetail(
                code=self.code.value,
                message=self.message,
                field=self.field,
                details=self.details,
            )
        )


class ValidationError(CovenantWatchError):
    """Malformed input data. Rejects the specific record, not the batch."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            status_code=422,
            field=field,
            details=details,
        )


class NotFoundError(CovenantWatchError):
    """Referenced covenant / contract / borrower / job does not exist."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            code=ErrorCode.NOT_FOUND,
            status_code=404,
            details={"resource": resource, "identifier": identifier},
        )


class UnknownMetricError(CovenantWatchError):
    """A covenant names a metric the engine cannot map to a financial field."""

    def __init__(self, metric_name: Optional[str], covenant_id: Optional[str] = None):
        details: dict[str, Any] = {"metric_name": metric_name}
        if covenant_id:
            details["covenant_id"] = covenant_id
        super().__init__(
            message=f"Unknown metric: {metric_name}",
            code=ErrorCode.UNKNOWN_METRIC,
            status_code=422,
            details=details,
        )


class ExternalServiceError(CovenantWatchError):
    """An AI or data collaborator call failed."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=f"{service}: {message}",
            code=ErrorCode.EXTERNAL_SERVICE_ERROR,
            status_code=502,
            details={"service": service, **(details or {})},
        )
        self.service = service


class RetriesExhaustedError(CovenantWatchError):
    """Terminal failure of an extraction job."""

    def __init__(self, job_id: str, attempts: int, last_error: str):
        super().__init__(
            message=f"Job {job_id} failed after {attempts} attempts: {last_error}",
            code=ErrorCode.RETRIES_EXHAUSTED,
            status_code=500,
            details={"job_id": job_id, "attempts": attempts},
        )


class CircuitOpenError(ExternalServiceError):
    """A circuit breaker is open and rejected the call without trying."""

    def __init__(self, breaker: str, message: str = "circuit breaker is open"):
        super().__init__(service=breaker, message=message)
        self.code = ErrorCode.CIRCUIT_BREAKER_OPEN
        self.status_code = 503
