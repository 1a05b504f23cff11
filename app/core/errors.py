"""
Error Handling Utilities
Provides sanitized error messages and consistent error responses.
"""

import logging
from enum import Enum
from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.integrations.xero.exceptions import (
    InvalidStateError,
    NoTenantConnectionsError,
    NotConnectedError,
    ReauthorizationRequiredError,
    StorageError,
    UpstreamApiError,
    UpstreamAuthError,
    UpstreamTimeoutError,
)

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Error codes for frontend handling."""

    # Xero integration errors
    XERO_NOT_CONNECTED = "xero_not_connected"
    XERO_REAUTHORIZATION_REQUIRED = "xero_reauthorization_required"
    XERO_AUTH_FAILED = "xero_auth_failed"
    XERO_NO_TENANT = "xero_no_tenant"
    XERO_DATA_FETCH_FAILED = "xero_data_fetch_failed"
    XERO_TIMEOUT = "xero_timeout"
    INVALID_OAUTH_STATE = "invalid_oauth_state"
    AUTHORIZATION_DENIED = "authorization_denied"

    # General errors
    STORAGE_UNAVAILABLE = "storage_unavailable"
    INTERNAL_ERROR = "internal_error"


# User-friendly error messages
ERROR_MESSAGES = {
    ErrorCode.XERO_NOT_CONNECTED: "No Xero connection found for this company. Please login with Xero first.",
    ErrorCode.XERO_REAUTHORIZATION_REQUIRED: "Xero connection has expired. Please re-authenticate with Xero.",
    ErrorCode.XERO_AUTH_FAILED: "Xero authentication failed. Please try connecting again.",
    ErrorCode.XERO_NO_TENANT: "No Xero organisation was authorized. Please connect again and select an organisation.",
    ErrorCode.XERO_DATA_FETCH_FAILED: "Unable to fetch data from Xero. Please try again in a moment.",
    ErrorCode.XERO_TIMEOUT: "Xero did not respond in time. Please try again in a moment.",
    ErrorCode.INVALID_OAUTH_STATE: "The Xero login session is invalid or has expired. Please start again.",
    ErrorCode.AUTHORIZATION_DENIED: "Xero authorization was cancelled or denied.",
    ErrorCode.STORAGE_UNAVAILABLE: "Service temporarily unavailable. Please try again in a moment.",
    ErrorCode.INTERNAL_ERROR: "An unexpected error occurred. Please try again later.",
}


def sanitize_error_message(
    exception: Exception,
    error_code: ErrorCode,
    log_details: bool = True,
) -> str:
    """
    Sanitize error message for user-facing responses.

    Logs the exception internally but returns a category message that
    never contains tokens or upstream error text.

    Args:
        exception: The exception that occurred
        error_code: Error code for categorization
        log_details: Whether to log full exception details

    Returns:
        User-friendly error message
    """
    if log_details:
        logger.error(
            "Error [%s]: %s",
            error_code.value,
            str(exception),
            exc_info=exception,
        )

    return ERROR_MESSAGES.get(error_code, ERROR_MESSAGES[ErrorCode.INTERNAL_ERROR])


def get_error_code_for_exception(exception: Exception) -> tuple[ErrorCode, int]:
    """
    Map exception types to error codes and HTTP status codes.

    Returns:
        Tuple of (error_code, http_status_code)
    """
    if isinstance(exception, NotConnectedError):
        return ErrorCode.XERO_NOT_CONNECTED, status.HTTP_404_NOT_FOUND

    if isinstance(exception, ReauthorizationRequiredError):
        return ErrorCode.XERO_REAUTHORIZATION_REQUIRED, status.HTTP_401_UNAUTHORIZED

    if isinstance(exception, NoTenantConnectionsError):
        return ErrorCode.XERO_NO_TENANT, status.HTTP_400_BAD_REQUEST

    if isinstance(exception, InvalidStateError):
        return ErrorCode.INVALID_OAUTH_STATE, status.HTTP_400_BAD_REQUEST

    if isinstance(exception, UpstreamTimeoutError):
        return ErrorCode.XERO_TIMEOUT, status.HTTP_504_GATEWAY_TIMEOUT

    if isinstance(exception, UpstreamAuthError):
        return ErrorCode.XERO_AUTH_FAILED, status.HTTP_502_BAD_GATEWAY

    if isinstance(exception, UpstreamApiError):
        return ErrorCode.XERO_DATA_FETCH_FAILED, status.HTTP_502_BAD_GATEWAY

    if isinstance(exception, StorageError):
        return ErrorCode.STORAGE_UNAVAILABLE, status.HTTP_503_SERVICE_UNAVAILABLE

    # Default to internal error
    return ErrorCode.INTERNAL_ERROR, status.HTTP_500_INTERNAL_SERVER_ERROR


async def global_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    """
    Exception handler for Xero integration errors and anything uncaught.

    Returns sanitized {"error_code", "message"} bodies.
    """
    error_code, http_status = get_error_code_for_exception(exc)
    # Expected client-side conditions are not worth a stack trace
    log_details = http_status >= status.HTTP_500_INTERNAL_SERVER_ERROR
    if not log_details:
        logger.warning("Request failed [%s]: %s", error_code.value, exc)
    message = sanitize_error_message(exc, error_code, log_details=log_details)

    return JSONResponse(
        status_code=http_status,
        content={
            "success": False,
            "error_code": error_code.value,
            "message": message,
        },
    )


def create_error_response(
    error_code: ErrorCode,
    message: Optional[str] = None,
    http_status: Optional[int] = None,
) -> HTTPException:
    """
    Create a standardized HTTPException with error code.

    Args:
        error_code: Error code enum
        message: Optional custom message (uses default if not provided)
        http_status: Optional HTTP status code (uses 400 if not provided)
    """
    if message is None:
        message = ERROR_MESSAGES.get(error_code, ERROR_MESSAGES[ErrorCode.INTERNAL_ERROR])

    return HTTPException(
        status_code=http_status or status.HTTP_400_BAD_REQUEST,
        detail={
            "error_code": error_code.value,
            "message": message,
        },
    )
