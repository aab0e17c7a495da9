"""
Domain errors for the Volunteer Platform API.

Services raise these instead of HTTPException; the handlers registered in
main.py turn them into `{"success": false, "message": ...}` responses with a
stable status code per kind.

Usage:
    from errors import NotFoundError

    if not ngo:
        raise NotFoundError("NGO not found")
"""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from bson.errors import InvalidId

import config

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base exception for all domain errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "success": False,
            "message": self.message,
            "code": self.code,
        }
        if not config.IS_PRODUCTION and self.details:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    """Malformed or out-of-range input"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class NotFoundError(AppError):
    """Referenced entity is absent"""

    status_code = 404

    def __init__(self, message: str = "Resource not found", resource_id: Optional[str] = None):
        details = {"resource_id": resource_id} if resource_id else {}
        super().__init__(message, code="NOT_FOUND", details=details)


class ConflictError(AppError):
    """Uniqueness or duplicate-registration violation"""

    status_code = 409

    def __init__(self, message: str):
        super().__init__(message, code="CONFLICT")


class AuthError(AppError):
    """Missing, invalid or expired credential"""

    status_code = 401

    def __init__(self, message: str = "Authentication required", code: str = "AUTH_FAILED"):
        super().__init__(message, code=code)


class ForbiddenError(AppError):
    """Role or ownership mismatch"""

    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message, code="FORBIDDEN")


class PaymentRequiredError(AppError):
    """Simulated payment declined"""

    status_code = 402

    def __init__(self, message: str = "Payment failed. Please try again.", payment_id: Optional[str] = None):
        details = {"payment_id": payment_id} if payment_id else {}
        super().__init__(message, code="PAYMENT_FAILED", details=details)


class InvalidStateError(AppError):
    """Illegal lifecycle transition"""

    status_code = 409

    def __init__(self, message: str, current_state: Optional[str] = None):
        details = {"current_state": current_state} if current_state else {}
        super().__init__(message, code="INVALID_STATE", details=details)


class CapacityError(AppError):
    """Event roster is full"""

    status_code = 400

    def __init__(self, message: str = "Event is full"):
        super().__init__(message, code="CAPACITY_REACHED")


# ===== FastAPI handlers =====

async def app_error_handler(request: Request, exc: AppError):
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        msg = err.get("msg", "Invalid value")
        messages.append(f"{field}: {msg}" if field else msg)
    body = {"success": False, "message": ", ".join(messages) or "Invalid request", "code": "VALIDATION_ERROR"}
    logger.warning(f"{request.method} {request.url.path} -> 400 {body['message']}")
    return JSONResponse(status_code=400, content=body)


async def invalid_id_handler(request: Request, exc: InvalidId):
    return JSONResponse(
        status_code=404,
        content={"success": False, "message": "Resource not found", "code": "NOT_FOUND"},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    body = {"success": False, "message": "Internal server error", "code": "INTERNAL_ERROR"}
    if not config.IS_PRODUCTION:
        body["details"] = {"error": str(exc), "type": type(exc).__name__}
    return JSONResponse(status_code=500, content=body)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(InvalidId, invalid_id_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
