"""
Centralized Error Handling for the Gym Membership Service

This module provides:
- Custom exception hierarchy for the subscription lifecycle
- Standardized error responses
- Error logging and tracking
- Database and external service error handling

Every rejection carries a specific code so the caller can decide whether to
retry (recalculate after REQUEST_EXPIRED) or escalate (CONCURRENT_MODIFICATION).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.utils.clock import utcnow

# Configure logging
logger = logging.getLogger("gym_membership.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_PAUSE_DURATION = "INVALID_PAUSE_DURATION"

    # Authentication/Authorization Errors (401/403)
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    REAUTHENTICATION_FAILED = "REAUTHENTICATION_FAILED"
    MEMBERSHIP_INACTIVE = "MEMBERSHIP_INACTIVE"

    # Resource Errors (404/409/410)
    NOT_FOUND = "NOT_FOUND"
    MEMBER_NOT_FOUND = "MEMBER_NOT_FOUND"
    PLAN_NOT_FOUND = "PLAN_NOT_FOUND"
    MEMBERSHIP_NOT_FOUND = "MEMBERSHIP_NOT_FOUND"
    PLAN_CHANGE_REQUEST_NOT_FOUND = "PLAN_CHANGE_REQUEST_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    PLAN_IN_USE = "PLAN_IN_USE"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    REQUEST_EXPIRED = "REQUEST_EXPIRED"

    # Business Logic Errors
    INVALID_STATE = "INVALID_STATE"
    NO_OP_PLAN_CHANGE = "NO_OP_PLAN_CHANGE"

    # External Service Errors (502/503)
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    PAYMENT_SERVICE_ERROR = "PAYMENT_SERVICE_ERROR"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = utcnow()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat() + "Z",
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Base validation exception"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            field=field,
        )


class InvalidPauseDurationException(ValidationException):
    """Pause duration outside the allowed set"""

    def __init__(self, duration_days: int, allowed: list):
        super().__init__(
            message=f"Pause duration of {duration_days} days is not offered. Choose one of {allowed}.",
            field="duration_days",
            code=ErrorCode.INVALID_PAUSE_DURATION,
            details={"provided": duration_days, "allowed": allowed},
        )


class NoOpPlanChangeException(ValidationException):
    """Member selected the plan they already have"""

    def __init__(self, plan_id: int):
        super().__init__(
            message="You are already on this plan.",
            field="new_plan_id",
            code=ErrorCode.NO_OP_PLAN_CHANGE,
            details={"plan_id": plan_id},
        )


# ============================================================================
# Authentication/Authorization Exceptions
# ============================================================================

class AuthenticationException(AppException):
    """Base authentication exception"""

    def __init__(
        self,
        message: str = "Authentication required",
        code: ErrorCode = ErrorCode.UNAUTHORIZED,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
        )


class ReauthenticationFailedException(AuthenticationException):
    """Password or payment receipt did not check out on confirm"""

    def __init__(self, message: str = "Could not verify your identity", method: Optional[str] = None):
        details = {"action": "The request is still confirmed; retry with valid credentials"}
        if method:
            details["method"] = method
        super().__init__(
            message=message,
            code=ErrorCode.REAUTHENTICATION_FAILED,
            details=details,
        )


class AuthorizationException(AppException):
    """Authorization denied exception"""

    def __init__(
        self,
        message: str = "Permission denied",
        required_permission: Optional[str] = None,
        code: ErrorCode = ErrorCode.FORBIDDEN,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if required_permission:
            _details["required_permission"] = required_permission
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=_details,
        )


class MembershipInactiveException(AuthorizationException):
    """Member may not use paid features right now"""

    def __init__(self, member_id: Union[str, UUID], status_value: str):
        super().__init__(
            message=f"Membership is {status_value}. Only membership management is available.",
            code=ErrorCode.MEMBERSHIP_INACTIVE,
            details={"member_id": str(member_id), "status": status_value},
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, int, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id is not None:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={
                "resource_type": resource_type,
                "resource_id": str(resource_id) if resource_id is not None else None,
            },
        )


class MemberNotFoundException(NotFoundException):
    """Member not found"""

    def __init__(self, member_id: Union[str, UUID]):
        super().__init__(
            resource_type="Member",
            resource_id=member_id,
            code=ErrorCode.MEMBER_NOT_FOUND,
        )


class PlanNotFoundException(NotFoundException):
    """Plan not found or retired"""

    def __init__(self, plan_id: int, retired: bool = False):
        message = f"Membership plan '{plan_id}' is no longer offered" if retired else None
        super().__init__(
            resource_type="MembershipPlan",
            resource_id=plan_id,
            message=message,
            code=ErrorCode.PLAN_NOT_FOUND,
        )


class MembershipNotFoundException(NotFoundException):
    """Member has no membership record"""

    def __init__(self, member_id: Union[str, UUID]):
        super().__init__(
            resource_type="Membership",
            message=f"No membership found for member '{member_id}'",
            code=ErrorCode.MEMBERSHIP_NOT_FOUND,
        )


class PlanChangeRequestNotFoundException(NotFoundException):
    """Plan change request not found (or owned by someone else)"""

    def __init__(self, request_id: Union[str, UUID]):
        super().__init__(
            resource_type="PlanChangeRequest",
            resource_id=request_id,
            code=ErrorCode.PLAN_CHANGE_REQUEST_NOT_FOUND,
        )


class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if resource_type:
            _details["resource_type"] = resource_type
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_details,
        )


class ConcurrentModificationException(ConflictException):
    """Another transition on the same membership won the race"""

    def __init__(self, member_id: Union[str, UUID], expected_version: Optional[int] = None):
        details = {"member_id": str(member_id)}
        if expected_version is not None:
            details["expected_version"] = expected_version
        super().__init__(
            message="Your membership was changed by another request. Please reload and try again.",
            resource_type="Membership",
            code=ErrorCode.CONCURRENT_MODIFICATION,
            details=details,
        )


class PlanInUseException(ConflictException):
    """Plan is referenced by membership history and cannot be deleted"""

    def __init__(self, plan_id: int):
        super().__init__(
            message=f"Membership plan '{plan_id}' is referenced by memberships; retire it instead",
            resource_type="MembershipPlan",
            code=ErrorCode.PLAN_IN_USE,
            details={"plan_id": plan_id},
        )


class RequestExpiredException(AppException):
    """Plan change quote outlived its TTL"""

    def __init__(self, request_id: Union[str, UUID], expired_at: Optional[datetime] = None):
        details = {
            "request_id": str(request_id),
            "action": "Recalculate the plan change to get a fresh quote",
        }
        if expired_at:
            details["expired_at"] = expired_at.isoformat()
        super().__init__(
            code=ErrorCode.REQUEST_EXPIRED,
            message="This plan change quote has expired.",
            status_code=status.HTTP_410_GONE,
            details=details,
        )


# ============================================================================
# Business Logic Exceptions
# ============================================================================

class InvalidStateException(AppException):
    """Operation is illegal for the membership's current status"""

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if current_status:
            _details["current_status"] = current_status
        if operation:
            _details["operation"] = operation
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_details,
        )


# ============================================================================
# External Service Exceptions
# ============================================================================

class ExternalServiceException(AppException):
    """External service error"""

    def __init__(
        self,
        service_name: str,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            code=code,
            message=message or f"{service_name} is currently unavailable",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"service": service_name},
            original_error=original_error,
        )


class PaymentServiceException(ExternalServiceException):
    """Payment receipt verification could not be completed"""

    def __init__(self, message: Optional[str] = None, original_error: Optional[Exception] = None):
        super().__init__(
            service_name="Payment service",
            message=message,
            code=ErrorCode.PAYMENT_SERVICE_ERROR,
            original_error=original_error,
        )


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Create a standardized error response"""
    content = {
        "detail": {
            "code": code.value,
            "message": message,
            "timestamp": utcnow().isoformat() + "Z",
        }
    }
    if field:
        content["detail"]["field"] = field
    if details:
        content["detail"]["details"] = details

    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
        exc_info=exc.original_error,
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException"""
    # Map status codes to error codes
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        500: ErrorCode.INTERNAL_ERROR,
        502: ErrorCode.EXTERNAL_SERVICE_ERROR,
        503: ErrorCode.EXTERNAL_SERVICE_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    response = create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
    )
    if getattr(exc, "headers", None):
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method, "errors": errors},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy errors"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        # Check for specific constraints
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.DUPLICATE_ENTRY
            status_code = status.HTTP_409_CONFLICT
        elif "foreign key" in error_str:
            error_message = "Referenced record does not exist"
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, OperationalError):
        error_message = "Database operation failed"
        error_code = ErrorCode.CONNECTION_ERROR
    elif isinstance(exc, DataError):
        error_message = "Invalid data format for database"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=error_code,
        message=error_message,
        status_code=status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    # Never expose internal error details
    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


# ============================================================================
# Error Tracking Middleware
# ============================================================================

class ErrorTrackingMiddleware:
    """Middleware for tracking and logging all errors"""

    def __init__(self, app: FastAPI):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            # Log error with request context
            logger.error(
                f"Request failed: {scope.get('path', 'unknown')}",
                extra={
                    "path": scope.get("path"),
                    "method": scope.get("method"),
                    "exception_type": type(exc).__name__,
                },
                exc_info=True,
            )
            raise


# Export all exceptions for easy importing
__all__ = [
    # Base
    "AppException",
    "ErrorCode",

    # Validation
    "ValidationException",
    "InvalidPauseDurationException",
    "NoOpPlanChangeException",

    # Auth
    "AuthenticationException",
    "ReauthenticationFailedException",
    "AuthorizationException",
    "MembershipInactiveException",

    # Resource
    "NotFoundException",
    "MemberNotFoundException",
    "PlanNotFoundException",
    "MembershipNotFoundException",
    "PlanChangeRequestNotFoundException",
    "ConflictException",
    "ConcurrentModificationException",
    "PlanInUseException",
    "RequestExpiredException",

    # Business Logic
    "InvalidStateException",

    # External Services
    "ExternalServiceException",
    "PaymentServiceException",

    # Handlers
    "setup_exception_handlers",
    "create_error_response",
    "ErrorTrackingMiddleware",
]
