# lms_analytics/core/exceptions.py
"""Custom exceptions for the predictive analytics engine."""
from fastapi import HTTPException
from sqlalchemy.exc import InterfaceError, OperationalError
from typing import Any, Dict, Optional


class AnalyticsException(HTTPException):
    """Base exception for the analytics engine."""
    def __init__(
        self,
        status_code: int,
        detail: Any,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class NotFoundError(AnalyticsException):
    """Exception raised when a referenced record does not exist."""
    def __init__(self, resource: str, id: Any = None):
        message = f"{resource} not found"
        if id is not None:
            message += f" with id: {id}"
        super().__init__(status_code=404, detail=message)


class ValidationError(AnalyticsException):
    """Exception raised for validation errors."""
    def __init__(self, message: str, field: Optional[str] = None):
        detail = {"error": "Validation Error", "message": message}
        if field:
            detail["field"] = field
        super().__init__(status_code=422, detail=detail)


class PreconditionError(AnalyticsException):
    """Exception raised when an operation is requested before it is allowed."""
    def __init__(self, message: str):
        super().__init__(
            status_code=400,
            detail={
                "error": "Precondition Failed",
                "message": message
            }
        )


class InvalidTransitionError(AnalyticsException):
    """Exception raised for an illegal intervention status change."""
    def __init__(self, current: str, requested: str):
        super().__init__(
            status_code=409,
            detail={
                "error": "Invalid Transition",
                "message": f"Cannot move intervention from {current} to {requested}",
                "current_status": current,
                "requested_status": requested
            }
        )


class AlreadyValidatedError(AnalyticsException):
    """Exception raised when a validated record receives a different outcome."""
    def __init__(self, resource: str, id: Any):
        super().__init__(
            status_code=409,
            detail={
                "error": "Already Validated",
                "message": f"{resource} {id} has already been validated against a different outcome"
            }
        )


class InferenceServiceError(Exception):
    """Raised inside the inference gateway when the remote model call fails"""
    pass


# Store unreachable or connection lost; batch jobs propagate these instead of isolating them
INFRASTRUCTURE_ERRORS = (OperationalError, InterfaceError)
