"""
GenBI - Custom Exceptions.

Centralized exception handling with standardized error responses.
"""

from typing import Any
from uuid import UUID


class GenBIException(Exception):
    """Base exception for GenBI application."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
        request_id: UUID | None = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.request_id = request_id
        super().__init__(message)


class NotFoundException(GenBIException):
    """Raised when a resource is not found."""

    def __init__(self, resource_type: str, resource_id: str | int):
        super().__init__(
            code="NOT_FOUND",
            message=f"{resource_type} not found: {resource_id}",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )


class ConflictException(GenBIException):
    """Raised when state transition is not allowed."""

    def __init__(self, message: str, current_state: str | None = None, target_state: str | None = None):
        details = {}
        if current_state:
            details["current_state"] = current_state
        if target_state:
            details["target_state"] = target_state
        super().__init__(
            code="CONFLICT",
            message=message,
            status_code=409,
            details=details if details else None,
        )


class ValidationException(GenBIException):
    """Raised for validation errors."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details={"errors": errors} if errors else None,
        )


class FeatureDisabledException(GenBIException):
    """Raised when a feature flag is disabled."""

    def __init__(self, feature_name: str):
        super().__init__(
            code="FEATURE_DISABLED",
            message=f"Feature '{feature_name}' is currently disabled",
            status_code=503,
            details={"feature": feature_name},
        )


class ExternalServiceException(GenBIException):
    """Raised when an external service fails."""

    def __init__(self, service_name: str, message: str, code: str = "EXTERNAL_SERVICE_ERROR"):
        super().__init__(
            code=code,
            message=f"{service_name} error: {message}",
            status_code=502,
            details={"service": service_name},
        )


class AIServiceException(ExternalServiceException):
    """Raised when the AI service call fails (transport, non-2xx, bad body)."""

    def __init__(self, message: str, detail: str | None = None, http_status: int | None = None):
        super().__init__("AI service", message, code="AI_SERVICE_ERROR")
        self.detail = detail
        self.http_status = http_status
        if detail:
            self.details["detail"] = detail
        if http_status is not None:
            self.details["http_status"] = http_status


class UnknownStatusException(ExternalServiceException):
    """Raised when a wire status string is not part of the task kind's enumeration."""

    def __init__(self, kind: str, status: str | None):
        super().__init__("AI service", f"Unknown {kind} status: {status}", code="UNKNOWN_STATUS")
        self.kind = kind
        self.status = status
        self.details.update({"kind": kind, "status": status})


class QueryExecutionException(GenBIException):
    """Raised when the query engine rejects or fails a preview."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code="QUERY_EXECUTION_ERROR",
            message=message,
            status_code=400,
            details={"service": "engine", **(details or {})},
        )


class TrackerCapacityException(GenBIException):
    """Raised when a background tracker cannot accept more entities."""

    def __init__(self, tracker: str, capacity: int):
        super().__init__(
            code="TRACKER_CAPACITY_EXCEEDED",
            message=f"{tracker} is tracking the maximum of {capacity} tasks",
            status_code=503,
            details={"tracker": tracker, "capacity": capacity},
        )
