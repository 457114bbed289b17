"""Type definitions for the request queue library."""

import sys
from enum import StrEnum
from typing import Awaitable, Callable, NotRequired, TypeAlias, TypeVar

if sys.version_info >= (3, 14):
    from typing import TypedDict
else:
    from typing_extensions import TypedDict

T = TypeVar("T")

RequestOperation: TypeAlias = Callable[[], Awaitable[T]]
"""Zero-argument coroutine factory, called once per attempt"""


class RequestState(StrEnum):
    """Lifecycle state of a queued request."""

    WAITING = "waiting"
    """Submitted, waiting for a free slot"""
    RUNNING = "running"
    """Holds a slot: executing or sleeping before a retry"""
    RESOLVED = "resolved"
    """Settled with a value"""
    REJECTED = "rejected"
    """Settled with an error (fatal, retries exhausted or queue cleared)"""


class ErrorCategory(StrEnum):
    """Failure classes used by the retry scheduler."""

    TIMEOUT = "timeout"
    SERVER_UNAVAILABLE = "server_unavailable"
    TRANSPORT = "transport"
    OTHER = "other"


class QueueStats(TypedDict):
    """Point-in-time snapshot of the queue.

    Attributes:
        waitingCount: Requests submitted but not started yet
        runningCount: Requests holding a slot (including ones in backoff)
        maxConcurrent: Configured slot ceiling
    """

    waitingCount: int
    runningCount: int
    maxConcurrent: int


class RequestQueueConfigDict(TypedDict, closed=False):
    """Shape of the ``[request-queue]`` configuration section.

    Keys mirror :class:`RequestQueueConfig` fields, all optional.
    """

    maxConcurrent: NotRequired[int]
    retryDelayBaseMs: NotRequired[int]
    maxRetries: NotRequired[int]
    logSlowRequests: NotRequired[bool]
    slowRequestThresholdMs: NotRequired[int]
