"""
Request Queue Module

This module provides the RequestQueue class which funnels remote data calls
through a bounded number of concurrently running requests:
1. Admission - a request starts only while fewer than ``maxConcurrent`` are running
2. Waiting list - requests over the limit wait in FIFO order
3. Execution - each attempt is timed, slow requests are reported
4. Retry - transient failures are re-attempted with exponential backoff

A request keeps its running slot while it sleeps before a retry, so it is
never returned to the waiting list and never reordered behind newer requests.

Classes:
    RequestQueue: Bounded-concurrency request queue with retry and backoff

Example:
    >>> queue = RequestQueue(RequestQueueConfig(maxConcurrent=4))
    >>> rows = await queue.enqueue(lambda: client.fetchRows("tasks"), "tasks:list")
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Deque, Optional, Set

from .config import RequestQueueConfig
from .errors import QueueClearedError, classifyError, isRetryable
from .models import QueuedRequest, elapsedMs, makeRequestId
from .types import QueueStats, RequestOperation, RequestState, T

logger = logging.getLogger(__name__)


class RequestQueue:
    """
    Bounded-concurrency request queue with retry and exponential backoff, dood!

    Every settled request frees its slot and promotes the oldest waiting
    request. Failures are classified: transient ones (timeouts, unavailable
    server, transport problems) are retried after
    ``retryDelayBaseMs * 2 ** (retryCount - 1)`` milliseconds up to
    ``maxRetries`` times, anything else rejects the caller's future with the
    original exception.

    All bookkeeping runs on the event loop between suspension points, so no
    locking is needed. The queue is meant to be created once by the
    application and passed to its consumers.

    Attributes:
        config: Queue configuration
    """

    def __init__(self, config: Optional[RequestQueueConfig] = None):
        """
        Initialize the request queue.

        Args:
            config: Queue configuration, defaults are used if omitted
        """
        self.config = config if config is not None else RequestQueueConfig()
        self._waiting: Deque[QueuedRequest[Any]] = deque()
        self._running: Set[QueuedRequest[Any]] = set()
        self._tasks: Set[asyncio.Task] = set()

        logger.info(
            f"RequestQueue initialized with maxConcurrent={self.config.maxConcurrent}, "
            f"maxRetries={self.config.maxRetries}, retryDelayBaseMs={self.config.retryDelayBaseMs}, dood!"
        )

    def enqueue(self, operation: RequestOperation[T], requestId: Optional[str] = None) -> "asyncio.Future[T]":
        """
        Submit an operation to the queue.

        Enqueuing itself never fails, the returned future settles later with
        the operation result or with the error that ended the request.
        Must be called from a running event loop.

        Args:
            operation: Zero-argument callable returning an awaitable.
                       It is called once per attempt, never concurrently with itself.
            requestId: Identifier for logs, generated if omitted

        Returns:
            Future resolved with the operation result or rejected with its error

        Raises:
            TypeError: If operation is not callable

        Example:
            >>> result = await queue.enqueue(lambda: fetchTasks(projectId=5))
        """
        if not callable(operation):
            raise TypeError(f"operation must be callable, got {type(operation).__name__}")

        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        request = QueuedRequest(
            requestId=requestId or makeRequestId(),
            operation=operation,
            future=future,
            maxRetries=self.config.maxRetries,
        )
        self._waiting.append(request)
        logger.debug(f"Enqueued request {request.requestId}, waiting: {len(self._waiting)}")

        self._promote()
        return future

    def _promote(self) -> None:
        """
        Start waiting requests while there are free slots.

        Safe to call at any time, it does nothing when the queue is full or
        nothing is waiting. Requests whose future the caller already
        cancelled are dropped instead of started.
        """
        while len(self._running) < self.config.maxConcurrent and self._waiting:
            request = self._waiting.popleft()
            if request.future.done():
                request.state = RequestState.REJECTED
                logger.debug(f"Dropping request {request.requestId}, its future is already done")
                continue

            self._running.add(request)
            request.state = RequestState.RUNNING

            task = asyncio.create_task(self._execute(request), name=f"request-queue:{request.requestId}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _execute(self, request: QueuedRequest[Any]) -> None:
        """
        Run a request until it settles.

        Each loop iteration is one attempt. The request stays in the running
        set for the whole lifetime of this coroutine, backoff sleeps included.

        Args:
            request: Request already admitted to the running set
        """
        try:
            while True:
                startTime = time.monotonic()
                try:
                    result = await request.operation()
                except Exception as error:
                    durationMs = elapsedMs(startTime)
                    if not self._shouldRetry(request, error):
                        self._rejectRequest(request, error, durationMs)
                        return

                    await self._backoff(request, error)
                    continue

                self._resolveRequest(request, result, elapsedMs(startTime))
                return
        except asyncio.CancelledError:
            # Task cancelled or the operation itself raised CancelledError:
            # the caller still gets a settled future and the slot goes to the next request
            self._running.discard(request)
            request.state = RequestState.REJECTED
            request.future.cancel()
            self._promote()
            raise

    def _shouldRetry(self, request: QueuedRequest[Any], error: Exception) -> bool:
        """
        Decide whether a failed attempt should be retried.

        Args:
            request: Failed request
            error: Exception raised by the attempt

        Returns:
            True if retries are left and the error is transient
        """
        if request.retryCount >= request.maxRetries:
            return False

        category = classifyError(error)
        logger.debug(f"Request {request.requestId} failed with {type(error).__name__} classified as {category}")
        return isRetryable(category)

    async def _backoff(self, request: QueuedRequest[Any], error: Exception) -> None:
        """
        Count the retry and sleep before the next attempt, keeping the slot.

        Args:
            request: Request to be retried
            error: Exception raised by the last attempt
        """
        request.retryCount += 1
        delayMs = self.config.getRetryDelayMs(request.retryCount)

        logger.warning(
            f"Retrying request {request.requestId} (attempt {request.retryCount}/{request.maxRetries}) "
            f"in {delayMs}ms, error: {type(error).__name__}: {error}"
        )
        await asyncio.sleep(delayMs / 1000)

    def _resolveRequest(self, request: QueuedRequest[Any], result: Any, durationMs: int) -> None:
        if self.config.logSlowRequests and durationMs > self.config.slowRequestThresholdMs:
            logger.warning(f"Slow request: {request.requestId} took {durationMs}ms")

        self._running.discard(request)
        request.resolve(result)
        self._promote()

    def _rejectRequest(self, request: QueuedRequest[Any], error: Exception, durationMs: int) -> None:
        self._running.discard(request)

        if self.config.logSlowRequests:
            logger.error(
                f"Request {request.requestId} failed after {request.retryCount} retries "
                f"in {durationMs}ms: {type(error).__name__}: {error}"
            )

        request.reject(error)
        self._promote()

    def clear(self) -> int:
        """
        Reject every waiting request with QueueClearedError.

        Requests that already hold a slot (running or sleeping before a
        retry) are not affected and settle normally.

        Returns:
            Number of rejected requests
        """
        cleared = 0
        while self._waiting:
            request = self._waiting.popleft()
            request.reject(QueueClearedError(request.requestId))
            cleared += 1

        if cleared:
            logger.info(f"Request queue cleared, rejected {cleared} waiting requests, dood!")
        return cleared

    def getStats(self) -> QueueStats:
        """
        Get current queue statistics.

        The snapshot may be outdated as soon as the caller yields to the
        event loop.

        Returns:
            Dictionary containing:
            - waitingCount: Requests waiting for a slot
            - runningCount: Requests holding a slot, including ones in backoff
            - maxConcurrent: Configured slot ceiling

        Example:
            >>> stats = queue.getStats()
            >>> print(f"Running {stats['runningCount']}/{stats['maxConcurrent']}")
        """
        return {
            "waitingCount": len(self._waiting),
            "runningCount": len(self._running),
            "maxConcurrent": self.config.maxConcurrent,
        }

    async def destroy(self) -> None:
        """
        Shut the queue down.

        Clears the waiting list and waits until every running request has
        settled. Should be called during application shutdown.
        """
        self.clear()
        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} running requests to settle, dood!")
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("RequestQueue destroyed, dood!")
