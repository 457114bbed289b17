"""
Data API Exceptions

This module contains the exception raised for error responses of the hosted
data API and the helper which builds it from a response body.
"""

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class DataApiError(Exception):
    """Error response from the data API.

    ``code`` is the API error code when the response carries one (e.g.
    ``PGRST301`` or a database SQLSTATE like ``23505``), otherwise the HTTP
    status as a string, so that server failures are recognised as transient
    by the request queue.

    Attributes:
        message: Human-readable error message
        code: API error code or HTTP status
        details: Additional details from the API (if available)
        hint: Hint from the API (if available)
        statusCode: HTTP status code
        response: Raw response body (if available)
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[str] = None,
        hint: Optional[str] = None,
        statusCode: Optional[int] = None,
        response: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint
        self.statusCode = statusCode
        self.response = response

    def __str__(self) -> str:
        if self.code:
            return f"{self.message} (code: {self.code})"
        return self.message


def parseApiError(statusCode: int, responseData: Dict[str, Any]) -> DataApiError:
    """Build DataApiError from an error response.

    Args:
        statusCode: HTTP status code
        responseData: Parsed JSON body, may be empty

    Returns:
        DataApiError with code from the body or the status code

    Example:
        >>> parseApiError(409, {"code": "23505", "message": "duplicate key value"}).code
        '23505'
        >>> parseApiError(503, {}).code
        '503'
    """
    code = responseData.get("code") or str(statusCode)
    message = responseData.get("message") or f"Data API request failed with status {statusCode}"

    error = DataApiError(
        message=message,
        code=str(code),
        details=responseData.get("details"),
        hint=responseData.get("hint"),
        statusCode=statusCode,
        response=responseData,
    )
    logger.debug(f"Data API error: {error} (status: {statusCode})")
    return error
