"""
Request Queue: Models for queued requests
"""

import asyncio
import random
import string
import time
from typing import Generic, Optional

from .types import RequestOperation, RequestState, T

_ID_ALPHABET = string.ascii_lowercase + string.digits


def makeRequestId() -> str:
    """Generate request id in form ``req_<unix ms>_<9 random chars>``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"req_{int(time.time() * 1000)}_{suffix}"


class QueuedRequest(Generic[T]):
    """One submitted unit of work.

    Attributes:
        requestId: Identifier for logging, not unique by contract
        operation: Zero-argument coroutine factory, called once per attempt
        future: Deferred result handed to the caller, settled exactly once
        retryCount: Retries performed so far
        maxRetries: Retry ceiling, copied from queue config at submission
        state: Current lifecycle state
    """

    __slots__ = ("requestId", "operation", "future", "retryCount", "maxRetries", "state")

    def __init__(
        self,
        requestId: str,
        operation: RequestOperation[T],
        future: "asyncio.Future[T]",
        maxRetries: int,
    ):
        self.requestId = requestId
        self.operation = operation
        self.future = future
        self.retryCount = 0
        self.maxRetries = maxRetries
        self.state = RequestState.WAITING

    @property
    def attempt(self) -> int:
        """1-based number of the current attempt"""
        return self.retryCount + 1

    def resolve(self, value: T) -> bool:
        """Settle with a value. Returns False if already settled."""
        self.state = RequestState.RESOLVED
        if self.future.done():
            return False
        self.future.set_result(value)
        return True

    def reject(self, error: BaseException) -> bool:
        """Settle with an error. Returns False if already settled."""
        self.state = RequestState.REJECTED
        if self.future.done():
            return False
        self.future.set_exception(error)
        return True

    def __repr__(self) -> str:
        return (
            f"QueuedRequest(requestId={self.requestId}, state={self.state}, "
            f"retryCount={self.retryCount}, maxRetries={self.maxRetries})"
        )

    def __str__(self) -> str:
        return self.__repr__()


def elapsedMs(startTime: float, endTime: Optional[float] = None) -> int:
    """Milliseconds between two ``time.monotonic()`` readings."""
    if endTime is None:
        endTime = time.monotonic()
    return int((endTime - startTime) * 1000)
