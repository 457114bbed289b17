"""
Request Queue Library

This library funnels remote data calls through a bounded-concurrency queue
with automatic retries and exponential backoff for transient failures.

Example:
    >>> from lib.request_queue import RequestQueue, RequestQueueConfig
    >>>
    >>> # Create once at application startup and pass it around
    >>> queue = RequestQueue(
    ...     RequestQueueConfig(maxConcurrent=8, retryDelayBaseMs=1000, maxRetries=3)
    ... )
    >>>
    >>> # Usage
    >>> rows = await queue.enqueue(lambda: fetchTasks(projectId=5), "tasks:project:5")
    >>> queue.getStats()
    {'waitingCount': 0, 'runningCount': 0, 'maxConcurrent': 8}
"""

from .config import RequestQueueConfig
from .errors import QueueClearedError, RequestQueueError, classifyError, isRetryable
from .models import QueuedRequest, makeRequestId
from .queue import RequestQueue
from .types import ErrorCategory, QueueStats, RequestOperation, RequestQueueConfigDict, RequestState

__all__ = [
    "RequestQueue",
    "RequestQueueConfig",
    "RequestQueueConfigDict",
    "QueuedRequest",
    "makeRequestId",
    "RequestQueueError",
    "QueueClearedError",
    "classifyError",
    "isRetryable",
    "ErrorCategory",
    "QueueStats",
    "RequestOperation",
    "RequestState",
]
