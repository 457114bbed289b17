"""
Request queue errors and failure classification.

Errors raised by queued operations are never wrapped by the queue. They are
only classified here, at the point where they enter the queue, into a small
closed set of categories which decide whether a request is retried.
"""

import asyncio
from typing import Final, FrozenSet, Optional, Tuple

import httpx

from .types import ErrorCategory

TIMEOUT_CODES: Final[FrozenSet[str]] = frozenset(
    {
        "PGRST301",  # Connection timeout
        "504",  # Gateway timeout
    }
)
SERVER_UNAVAILABLE_CODES: Final[FrozenSet[str]] = frozenset({"500", "502", "503"})
TRANSPORT_CODES: Final[FrozenSet[str]] = frozenset({"PGRST116"})

TIMEOUT_MESSAGES: Final[Tuple[str, ...]] = ("timeout", "etimedout")
TRANSPORT_MESSAGES: Final[Tuple[str, ...]] = ("network", "connection", "fetch", "econnreset")


class RequestQueueError(Exception):
    """Base class for errors produced by the request queue itself."""


class QueueClearedError(RequestQueueError):
    """Rejection for requests removed from the waiting list by ``clear()``."""

    def __init__(self, requestId: Optional[str] = None):
        super().__init__("Queue cleared")
        self.requestId = requestId


def getErrorCode(error: BaseException) -> Optional[str]:
    """
    Get structured error code, if error carries one.

    Args:
        error: Exception raised by a queued operation

    Returns:
        Code as a string (so ``503`` and ``"503"`` compare equal) or None
    """
    code = getattr(error, "code", None)
    if code is None or code == "":
        return None
    return str(code)


def classifyError(error: BaseException) -> ErrorCategory:
    """
    Classify an operation failure.

    Rules, first match wins:
    1. Structured code: known timeout/server/transport codes, any other code is OTHER
    2. No code, textual message with a transport-failure word
    3. No code, httpx/asyncio/OS timeout or transport exception type
    4. Everything else is OTHER

    Rule 3 is an addition on top of the code and message rules: exceptions
    without a code or a telling message (e.g. ``httpx.ConnectError("")``)
    are still retried when their type marks them as timeouts or transport
    failures.

    Args:
        error: Exception raised by a queued operation

    Returns:
        Error category
    """
    code = getErrorCode(error)
    if code is not None:
        if code in TIMEOUT_CODES:
            return ErrorCategory.TIMEOUT
        if code in SERVER_UNAVAILABLE_CODES:
            return ErrorCategory.SERVER_UNAVAILABLE
        if code in TRANSPORT_CODES:
            return ErrorCategory.TRANSPORT
        return ErrorCategory.OTHER

    message = str(error).lower()
    if message:
        if any(word in message for word in TIMEOUT_MESSAGES):
            return ErrorCategory.TIMEOUT
        if any(word in message for word in TRANSPORT_MESSAGES):
            return ErrorCategory.TRANSPORT

    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return ErrorCategory.TIMEOUT
    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return ErrorCategory.TRANSPORT

    return ErrorCategory.OTHER


def isRetryable(category: ErrorCategory) -> bool:
    """Whether failures of this category are worth another attempt."""
    return category != ErrorCategory.OTHER
