"""
Standardized exception handling for the shipping core.

Every error carries:
- An ErrorKind from a closed set so callers branch on kind, not message text
- A unique error code for client-side handling
- Structured details (entity id, offending field, current/requested state)
- HTTP status code alignment
"""
import enum
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    """Closed set of error categories surfaced to callers."""

    VALIDATION = "validation"  # fix your input
    STATE = "state"  # action not valid in the current state; re-fetch and decide
    NOT_FOUND = "not_found"
    CONFIGURATION = "configuration"
    CONFLICT = "conflict"  # lost a race; retry against fresh state
    EXTERNAL = "external"  # collaborator unavailable; retry later
    INTERNAL = "internal"


class ErrorDetail(BaseModel):
    """Standardized error response format."""
    code: str
    kind: ErrorKind
    message: str
    status_code: int
    timestamp: str
    request_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Wrapper for error responses."""
    error: ErrorDetail


def _timestamp() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


# =============================================================================
# Base Exception Classes
# =============================================================================

class AppException(Exception):
    """Base exception for all application errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind: ErrorKind = ErrorKind.INTERNAL
    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message or self.message
        self.details = details
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert exception to standardized error response."""
        return ErrorResponse(
            error=ErrorDetail(
                code=self.error_code,
                kind=self.kind,
                message=self.message,
                status_code=self.status_code,
                timestamp=_timestamp(),
                request_id=request_id,
                details=self.details,
            )
        )


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationException(AppException):
    """Invalid input data."""
    status_code = status.HTTP_400_BAD_REQUEST
    kind = ErrorKind.VALIDATION
    error_code = "VALIDATION_ERROR"
    message = "Invalid input data"


class InvalidFieldException(ValidationException):
    """A single field failed a domain rule."""
    error_code = "INVALID_FIELD"

    def __init__(self, field: str, reason: str, value: Any = None):
        details: Dict[str, Any] = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = str(value)
        super().__init__(message=f"Invalid {field}: {reason}", details=details)


class WebhookSignatureException(ValidationException):
    """Carrier callback failed signature verification."""
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "INVALID_WEBHOOK_SIGNATURE"
    message = "Webhook signature verification failed"

    def __init__(self, provider_code: str):
        super().__init__(
            message=f"Invalid webhook signature for provider '{provider_code}'",
            details={"provider_code": provider_code},
        )


# =============================================================================
# Not Found Errors
# =============================================================================

class NotFoundException(AppException):
    """Resource not found."""
    status_code = status.HTTP_404_NOT_FOUND
    kind = ErrorKind.NOT_FOUND
    error_code = "NOT_FOUND"
    message = "Resource not found"


class DeliveryNotFoundException(NotFoundException):
    """Delivery order not found."""
    error_code = "DELIVERY_NOT_FOUND"

    def __init__(self, delivery_id: Any):
        super().__init__(
            message=f"Delivery order with ID '{delivery_id}' not found",
            details={"delivery_id": str(delivery_id)},
        )


class TrackingNumberNotFoundException(NotFoundException):
    """No delivery carries the tracking number."""
    error_code = "TRACKING_NUMBER_NOT_FOUND"

    def __init__(self, tracking_number: str):
        super().__init__(
            message=f"No delivery found with tracking number '{tracking_number}'",
            details={"tracking_number": tracking_number},
        )


class ProviderNotFoundException(NotFoundException):
    """Delivery provider not found."""
    error_code = "PROVIDER_NOT_FOUND"

    def __init__(self, provider: Any):
        super().__init__(
            message=f"Delivery provider '{provider}' not found",
            details={"provider": str(provider)},
        )


class TaskNotFoundException(NotFoundException):
    """Manual coordination task not found."""
    error_code = "TASK_NOT_FOUND"

    def __init__(self, task_id: Any):
        super().__init__(
            message=f"Manual coordination task with ID '{task_id}' not found",
            details={"task_id": str(task_id)},
        )


class RouteNotFoundException(NotFoundException):
    """Delivery route not found."""
    error_code = "ROUTE_NOT_FOUND"

    def __init__(self, route_id: Any):
        super().__init__(
            message=f"Delivery route with ID '{route_id}' not found",
            details={"route_id": str(route_id)},
        )


class VehicleNotFoundException(NotFoundException):
    """Vehicle not found."""
    error_code = "VEHICLE_NOT_FOUND"

    def __init__(self, vehicle_id: Any):
        super().__init__(
            message=f"Vehicle with ID '{vehicle_id}' not found",
            details={"vehicle_id": str(vehicle_id)},
        )


class CoverageAreaNotFoundException(NotFoundException):
    """No coverage area for the given scope."""
    error_code = "COVERAGE_AREA_NOT_FOUND"

    def __init__(self, scope: Any):
        super().__init__(
            message=f"No coverage area found for '{scope}'",
            details={"scope": str(scope)},
        )


class SnapshotNotFoundException(NotFoundException):
    """Delivery snapshot not found."""
    error_code = "SNAPSHOT_NOT_FOUND"

    def __init__(self, delivery_id: Any):
        super().__init__(
            message=f"No snapshots recorded for delivery '{delivery_id}'",
            details={"delivery_id": str(delivery_id)},
        )


# =============================================================================
# State Errors
# =============================================================================

class StateException(AppException):
    """Operation not valid in the entity's current state."""
    status_code = status.HTTP_409_CONFLICT
    kind = ErrorKind.STATE
    error_code = "INVALID_STATE"
    message = "Operation not allowed in current state"


class InvalidStatusTransitionException(StateException):
    """Requested status is not reachable from the current one."""
    error_code = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity_type: str, entity_id: Any, current: Any, requested: Any):
        current = getattr(current, "value", current)
        requested = getattr(requested, "value", requested)
        super().__init__(
            message=f"{entity_type} cannot move from '{current}' to '{requested}'",
            details={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "current_status": current,
                "requested_status": requested,
            },
        )


class OperationNotAllowedException(StateException):
    """Operation rejected by an entity precondition."""
    error_code = "OPERATION_NOT_ALLOWED"

    def __init__(self, entity_type: str, entity_id: Any, operation: str, current: Any):
        current = getattr(current, "value", current)
        super().__init__(
            message=f"Cannot {operation} {entity_type} in status '{current}'",
            details={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "operation": operation,
                "current_status": current,
            },
        )


class TaskNotPendingException(StateException):
    """Task must be pending for this operation."""
    error_code = "TASK_NOT_PENDING"

    def __init__(self, task_id: Any, current: Any):
        current = getattr(current, "value", current)
        super().__init__(
            message=f"Task '{task_id}' is not pending (status '{current}')",
            details={"task_id": str(task_id), "current_status": current},
        )


class TaskAlreadyCompletedException(StateException):
    """Task was already completed."""
    error_code = "TASK_ALREADY_COMPLETED"

    def __init__(self, task_id: Any):
        super().__init__(
            message=f"Task '{task_id}' is already completed",
            details={"task_id": str(task_id)},
        )


class TaskNotActiveException(StateException):
    """Task is in a terminal status."""
    error_code = "TASK_NOT_ACTIVE"

    def __init__(self, task_id: Any, current: Any):
        current = getattr(current, "value", current)
        super().__init__(
            message=f"Task '{task_id}' is no longer active (status '{current}')",
            details={"task_id": str(task_id), "current_status": current},
        )


# =============================================================================
# Conflict Errors
# =============================================================================

class ConflictException(AppException):
    """Resource conflict (duplicate, concurrent write)."""
    status_code = status.HTTP_409_CONFLICT
    kind = ErrorKind.CONFLICT
    error_code = "CONFLICT"
    message = "Resource conflict"


class DuplicateResourceException(ConflictException):
    """Unique key already taken."""
    error_code = "DUPLICATE_RESOURCE"

    def __init__(self, resource_type: str, key: str, value: Any):
        super().__init__(
            message=f"{resource_type} with {key} '{value}' already exists",
            details={"resource_type": resource_type, "field": key, "value": str(value)},
        )


class ConcurrentModificationException(ConflictException):
    """Entity changed between read and write."""
    error_code = "CONCURRENT_MODIFICATION"
    message = "Entity was modified by another operation; re-fetch and retry"

    def __init__(
        self,
        entity_type: str = "DeliveryOrder",
        entity_id: Any = None,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
    ):
        details: Dict[str, Any] = {"entity_type": entity_type}
        if entity_id is not None:
            details["entity_id"] = str(entity_id)
        if expected_version is not None:
            details["expected_version"] = expected_version
        if actual_version is not None:
            details["actual_version"] = actual_version
        super().__init__(details=details)


class VehicleUnavailableException(ConflictException):
    """Vehicle cannot take another route."""
    error_code = "VEHICLE_UNAVAILABLE"

    def __init__(self, vehicle_id: Any, reason: str):
        super().__init__(
            message=f"Vehicle '{vehicle_id}' is unavailable: {reason}",
            details={"vehicle_id": str(vehicle_id), "reason": reason},
        )


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationException(AppException):
    """Configuration error - should fail at startup."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind = ErrorKind.CONFIGURATION
    error_code = "CONFIGURATION_ERROR"
    message = "Application configuration error"


class ProviderConfigurationException(ConfigurationException):
    """Provider profile violates a registration rule."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "PROVIDER_MISCONFIGURED"

    def __init__(self, provider_code: str, field: str, reason: str):
        super().__init__(
            message=f"Provider '{provider_code}' misconfigured: {reason}",
            details={"provider_code": provider_code, "field": field, "reason": reason},
        )


class NoProviderAvailableException(ConfigurationException):
    """Neither self-delivery nor any provider serves the shipment."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "NO_PROVIDER_AVAILABLE"

    def __init__(self, province: Optional[str], weight_kg: Any, same_day: bool, cod: bool):
        super().__init__(
            message=f"No delivery option available for province '{province}'",
            details={
                "province": province,
                "weight_kg": str(weight_kg),
                "same_day_required": same_day,
                "cod_required": cod,
            },
        )


# =============================================================================
# External Service Errors
# =============================================================================

class ExternalServiceException(AppException):
    """External service error."""
    status_code = status.HTTP_502_BAD_GATEWAY
    kind = ErrorKind.EXTERNAL
    error_code = "EXTERNAL_SERVICE_ERROR"
    message = "External service unavailable"


class AddressLookupException(ExternalServiceException):
    """Customer address could not be resolved."""
    error_code = "ADDRESS_LOOKUP_FAILED"
    message = "Customer address lookup failed"


# =============================================================================
# Exception Handler Registration
# =============================================================================

def get_request_id(request: Request) -> str:
    """Extract or generate request ID."""
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID") or str(uuid4())


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle all application exceptions with standardized format."""
    request_id = get_request_id(request)
    response = exc.to_response(request_id=request_id)

    return JSONResponse(
        status_code=exc.status_code,
        content=response.model_dump(mode="json"),
        headers={"X-Request-ID": request_id},
    )


async def stale_data_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    """Optimistic version check failed during flush."""
    logger.warning(f"Concurrent modification detected: {exc}")
    return await app_exception_handler(request, ConcurrentModificationException())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request body or parameters."""
    request_id = get_request_id(request)
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    error = ErrorResponse(
        error=ErrorDetail(
            code="REQUEST_VALIDATION_ERROR",
            kind=ErrorKind.VALIDATION,
            message="Request validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            timestamp=_timestamp(),
            request_id=request_id,
            details={"errors": errors},
        )
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error.model_dump(mode="json"),
        headers={"X-Request-ID": request_id},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    request_id = get_request_id(request)

    logger.exception(f"Unhandled exception: {exc}", extra={"request_id": request_id})

    error = ErrorResponse(
        error=ErrorDetail(
            code="INTERNAL_ERROR",
            kind=ErrorKind.INTERNAL,
            message="An unexpected error occurred",
            status_code=500,
            timestamp=_timestamp(),
            request_id=request_id,
        )
    )

    return JSONResponse(
        status_code=500,
        content=error.model_dump(mode="json"),
        headers={"X-Request-ID": request_id},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StaleDataError, stale_data_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
