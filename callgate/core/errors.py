"""Domain errors and the JSON error envelope returned by the API."""

import logging
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from callgate.core.logging import ROOT_LOGGER, get_request_id


logger = logging.getLogger(ROOT_LOGGER)


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class InvalidIdentityError(ValidationError):
    """Empty or malformed external user id."""
    code = "invalid_identity"


class UnauthorizedError(AppError):
    code = "unauthorized"
    status_code = 401


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class InvalidStatusTransitionError(ConflictError):
    code = "invalid_status_transition"


class TrialPurchaseLimitError(ConflictError):
    code = "trial_purchase_limit"


class AccountLookupError(AppError):
    """Storage or connectivity failure while computing entitlements.

    Never used for "not entitled" outcomes; those are expressed through the
    Entitlements value itself.
    """
    code = "account_lookup_failed"
    status_code = 503


class ConfigurationError(AppError, RuntimeError):
    """Fatal misconfiguration (e.g. a plan without a call duration cap)."""
    code = "configuration_error"
    status_code = 500


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_request_id() or str(uuid4())


def error_response(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    """{"error": {code, message, request_id}, "detail": message} with the x-request-id header."""
    rid = _request_id(request)
    response = JSONResponse(
        status_code=status_code,
        content={
            "error": {"code": code, "message": message, "request_id": rid},
            "detail": message,
        },
    )
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(level, "app.error", extra={"error_code": exc.code, "status": exc.status_code})
    return error_response(request, exc.status_code, exc.code, exc.message)


async def http_error_handler(request: Request, exc: HTTPException):
    code = "not_found" if exc.status_code == 404 else "http_error"
    logger.warning("http.error", extra={"error_code": code, "status": exc.status_code})
    return error_response(request, exc.status_code, code, exc.detail or "HTTP error")


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled.exception", exc_info=exc, extra={"error_code": "internal_error"})
    return error_response(request, 500, "internal_error", "Unexpected error")
