"""
Tests for RequestQueue implementation.

This module contains unit tests for the RequestQueue functionality, covering
admission under the concurrency ceiling, FIFO promotion, retry with
exponential backoff, error short-circuiting, clearing and statistics.
"""

import asyncio
import random
import unittest
from typing import List
from unittest.mock import patch

from lib.request_queue.config import RequestQueueConfig
from lib.request_queue.errors import QueueClearedError
from lib.request_queue.queue import RequestQueue

_realSleep = asyncio.sleep


class CodedError(Exception):
    """Error carrying a structured code, like the data API errors."""

    def __init__(self, code: str, message: str = "request failed"):
        super().__init__(message)
        self.code = code


class SleepRecorder:
    """Replacement for asyncio.sleep which records delays and returns at once."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float, *args, **kwargs):
        self.delays.append(delay)
        await _realSleep(0)


class TestRequestQueueAdmission(unittest.IsolatedAsyncioTestCase):
    """Test cases for admission control and the waiting list."""

    async def testTenRequestsWithEightSlots(self):
        """Test that only maxConcurrent requests start, the rest wait for slots."""
        queue = RequestQueue(RequestQueueConfig(maxConcurrent=8))
        active = 0
        peak = 0

        async def operation(value):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.05)
            active -= 1
            return value

        futures = [queue.enqueue(lambda i=i: operation(i), f"req-{i}") for i in range(10)]

        stats = queue.getStats()
        self.assertEqual(stats["runningCount"], 8)
        self.assertEqual(stats["waitingCount"], 2)
        self.assertEqual(stats["maxConcurrent"], 8)

        results = await asyncio.gather(*futures)

        self.assertEqual(results, list(range(10)))
        self.assertEqual(peak, 8)
        self.assertEqual(queue.getStats(), {"waitingCount": 0, "runningCount": 0, "maxConcurrent": 8})

    async def testConcurrencyBoundUnderLoad(self):
        """Test the running count never exceeds the ceiling with uneven durations."""
        queue = RequestQueue(RequestQueueConfig(maxConcurrent=3))
        active = 0
        peak = 0

        async def operation():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            self.assertLessEqual(queue.getStats()["runningCount"], 3)
            await asyncio.sleep(random.uniform(0, 0.01))
            active -= 1

        await asyncio.gather(*[queue.enqueue(operation) for _ in range(25)])

        self.assertEqual(peak, 3)

    async def testFifoPromotion(self):
        """Test waiting requests start strictly in submission order."""
        queue = RequestQueue(RequestQueueConfig(maxConcurrent=1))
        startOrder: List[str] = []

        def makeOperation(name):
            async def operation():
                startOrder.append(name)
                await asyncio.sleep(0.001)
                return name

            return operation

        futures = [queue.enqueue(makeOperation(name), name) for name in ("a", "b", "c", "d")]
        await asyncio.gather(*futures)

        self.assertEqual(startOrder, ["a", "b", "c", "d"])

    async def testCollidingIdsAreCountedSeparately(self):
        """Test requests sharing an id still occupy separate slots."""
        queue = RequestQueue(RequestQueueConfig(maxConcurrent=2))
        gate = asyncio.Event()

        async def operation():
            await gate.wait()
            return "done"

        first = queue.enqueue(operation, "same-id")
        second = queue.enqueue(operation, "same-id")
        third = queue.enqueue(operation, "same-id")

        self.assertEqual(queue.getStats()["runningCount"], 2)
        self.assertEqual(queue.getStats()["waitingCount"], 1)

        gate.set()
        self.assertEqual(await asyncio.gather(first, second, third), ["done", "done", "done"])

    async def testEnqueueRejectsNonCallable(self):
        """Test that enqueue validates its operation."""
        queue = RequestQueue()
        with self.assertRaises(TypeError):
            queue.enqueue("not a function")  # type: ignore[arg-type]
        self.assertEqual(queue.getStats()["waitingCount"], 0)

    async def testResultIsPassedThroughUnchanged(self):
        """Test the exact object produced by the operation reaches the caller."""
        queue = RequestQueue()
        payload = {"data": [{"id": 1}], "error": None}

        async def operation():
            return payload

        self.assertIs(await queue.enqueue(operation), payload)


class TestRequestQueueRetry(unittest.IsolatedAsyncioTestCase):
    """Test cases for failure classification, retries and backoff."""

    async def asyncSetUp(self):
        self.sleepRecorder = SleepRecorder()
        patcher = patch("lib.request_queue.queue.asyncio.sleep", new=self.sleepRecorder)
        patcher.start()
        self.addCleanup(patcher.stop)

    async def testRetriesThenSucceeds(self):
        """Test two 503 failures are retried after 1s and 2s, third attempt wins."""
        queue = RequestQueue(RequestQueueConfig(retryDelayBaseMs=1000))
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            if calls < 3:
                raise CodedError("503", "Service unavailable")
            return "third time lucky"

        with self.assertLogs("lib.request_queue.queue", level="WARNING") as logs:
            result = await queue.enqueue(operation, "flaky")

        self.assertEqual(result, "third time lucky")
        self.assertEqual(calls, 3)
        self.assertEqual(self.sleepRecorder.delays, [1.0, 2.0])
        self.assertIn("attempt 1/3", logs.output[0])
        self.assertIn("in 1000ms", logs.output[0])
        self.assertIn("attempt 2/3", logs.output[1])
        self.assertIn("in 2000ms", logs.output[1])

    async def testNonRetryableErrorRejectsImmediately(self):
        """Test a 400 error is forwarded at once without retries or delays."""
        queue = RequestQueue()
        error = CodedError("400", "Bad request")
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            raise error

        with self.assertRaises(CodedError) as context:
            await queue.enqueue(operation)

        self.assertIs(context.exception, error)
        self.assertEqual(calls, 1)
        self.assertEqual(self.sleepRecorder.delays, [])

    async def testRetriesExhausted(self):
        """Test a permanently timing out request rejects with the last attempt's error."""
        queue = RequestQueue(RequestQueueConfig(maxRetries=3, retryDelayBaseMs=1000))
        errors: List[CodedError] = []

        async def operation():
            error = CodedError("PGRST301", f"Connection timeout #{len(errors) + 1}")
            errors.append(error)
            raise error

        with self.assertRaises(CodedError) as context:
            await queue.enqueue(operation)

        self.assertEqual(len(errors), 4)
        self.assertIs(context.exception, errors[-1])
        self.assertEqual(self.sleepRecorder.delays, [1.0, 2.0, 4.0])

    async def testBackoffGrowthFollowsBase(self):
        """Test the delay before attempt k+1 is base * 2^(k-1)."""
        queue = RequestQueue(RequestQueueConfig(maxRetries=5, retryDelayBaseMs=250))

        async def operation():
            raise CodedError("502")

        with self.assertRaises(CodedError):
            await queue.enqueue(operation)

        self.assertEqual(self.sleepRecorder.delays, [0.25, 0.5, 1.0, 2.0, 4.0])

    async def testZeroMaxRetriesNeverRetries(self):
        """Test that a transient error is fatal when no retries are allowed."""
        queue = RequestQueue(RequestQueueConfig(maxRetries=0))

        async def operation():
            raise CodedError("500")

        with self.assertRaises(CodedError):
            await queue.enqueue(operation)

        self.assertEqual(self.sleepRecorder.delays, [])

    async def testUncodedNetworkMessageIsRetried(self):
        """Test errors without a code are retried when the message looks like a transport failure."""
        queue = RequestQueue()
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("Failed to fetch: ECONNRESET")
            return calls

        self.assertEqual(await queue.enqueue(operation), 2)
        self.assertEqual(self.sleepRecorder.delays, [1.0])

    async def testUncodedOtherErrorIsFatal(self):
        """Test errors without a code and without transport words are not retried."""
        queue = RequestQueue()

        async def operation():
            raise ValueError("row violates check constraint")

        with self.assertRaises(ValueError):
            await queue.enqueue(operation)

        self.assertEqual(self.sleepRecorder.delays, [])

    async def testFatalFailureIsLoggedWhenEnabled(self):
        """Test fatal failures produce an error log line when logSlowRequests is on."""
        queue = RequestQueue(RequestQueueConfig(logSlowRequests=True))

        async def operation():
            raise CodedError("404", "Not found")

        with self.assertLogs("lib.request_queue.queue", level="ERROR") as logs:
            with self.assertRaises(CodedError):
                await queue.enqueue(operation, "missing-row")

        self.assertIn("missing-row", logs.output[0])
        self.assertIn("after 0 retries", logs.output[0])

    async def testBackoffKeepsSlot(self):
        """Test a request waiting for its retry keeps its slot and is not overtaken."""
        queue = RequestQueue(RequestQueueConfig(maxConcurrent=1))
        startOrder: List[str] = []
        retryGate = asyncio.Event()
        self.sleepRecorder.delays.clear()

        async def gatedSleep(delay, *args, **kwargs):
            self.sleepRecorder.delays.append(delay)
            await retryGate.wait()

        async def flaky():
            startOrder.append("flaky")
            if len(startOrder) == 1:
                raise CodedError("503")
            return "flaky"

        async def other():
            startOrder.append("other")
            return "other"

        with patch("lib.request_queue.queue.asyncio.sleep", new=gatedSleep):
            flakyFuture = queue.enqueue(flaky, "flaky")
            otherFuture = queue.enqueue(other, "other")

            while not self.sleepRecorder.delays:
                await _realSleep(0)

            # flaky is sleeping before its retry and still holds the only slot
            self.assertEqual(queue.getStats()["runningCount"], 1)
            self.assertEqual(queue.getStats()["waitingCount"], 1)
            self.assertEqual(startOrder, ["flaky"])

            retryGate.set()
            results = await asyncio.gather(flakyFuture, otherFuture)

        self.assertEqual(results, ["flaky", "other"])
        self.assertEqual(startOrder, ["flaky", "flaky", "other"])


class TestRequestQueueClear(unittest.IsolatedAsyncioTestCase):
    """Test cases for clearing the waiting list."""

    async def testClearRejectsOnlyWaitingRequests(self):
        """Test clear() rejects waiting requests and leaves running ones alone."""
        queue = RequestQueue(RequestQueueConfig(maxConcurrent=1))
        gate = asyncio.Event()
        invoked: List[int] = []

        async def blocker():
            await gate.wait()
            return "blocker"

        def makeOperation(index):
            async def operation():
                invoked.append(index)
                return index

            return operation

        running = queue.enqueue(blocker, "blocker")
        waiting = [queue.enqueue(makeOperation(i), f"waiting-{i}") for i in range(3)]

        self.assertEqual(queue.clear(), 3)
        self.assertEqual(queue.getStats()["waitingCount"], 0)
        self.assertEqual(queue.getStats()["runningCount"], 1)

        for future in waiting:
            with self.assertRaises(QueueClearedError) as context:
                await future
            self.assertEqual(str(context.exception), "Queue cleared")

        gate.set()
        self.assertEqual(await running, "blocker")
        self.assertEqual(invoked, [])

    async def testClearDoesNotAffectRequestInBackoff(self):
        """Test a request sleeping before its retry survives clear()."""
        queue = RequestQueue(RequestQueueConfig(maxConcurrent=1, retryDelayBaseMs=20))
        failedOnce = asyncio.Event()

        async def flaky():
            if not failedOnce.is_set():
                failedOnce.set()
                raise CodedError("504", "Gateway timeout")
            return "recovered"

        async def never():
            return "never"

        retrying = queue.enqueue(flaky, "flaky")
        waiting = queue.enqueue(never, "never")
        await failedOnce.wait()

        self.assertEqual(queue.clear(), 1)
        self.assertEqual(await retrying, "recovered")
        with self.assertRaises(QueueClearedError):
            await waiting

    async def testClearOnEmptyQueue(self):
        """Test clear() is harmless when nothing waits."""
        queue = RequestQueue()
        self.assertEqual(queue.clear(), 0)


class TestRequestQueueLifecycle(unittest.IsolatedAsyncioTestCase):
    """Test cases for logging, settlement and shutdown."""

    async def testSlowRequestIsLogged(self):
        """Test slow successful requests produce a warning when enabled."""
        queue = RequestQueue(RequestQueueConfig(logSlowRequests=True, slowRequestThresholdMs=10))

        async def operation():
            await asyncio.sleep(0.05)
            return "slow"

        with self.assertLogs("lib.request_queue.queue", level="WARNING") as logs:
            self.assertEqual(await queue.enqueue(operation, "slow-one"), "slow")

        self.assertIn("Slow request: slow-one", logs.output[0])

    async def testSlowRequestNotLoggedWhenDisabled(self):
        """Test no slow request warning is produced when logging is off."""
        queue = RequestQueue(RequestQueueConfig(logSlowRequests=False, slowRequestThresholdMs=0))

        async def operation():
            await asyncio.sleep(0.01)
            return "slow"

        with patch("lib.request_queue.queue.logger") as mockLogger:
            await queue.enqueue(operation)
            mockLogger.warning.assert_not_called()

    async def testEveryRequestSettles(self):
        """Test mixed outcomes all settle exactly once and free their slots."""
        queue = RequestQueue(RequestQueueConfig(maxConcurrent=4, retryDelayBaseMs=1))

        def makeOperation(index):
            attempts = 0

            async def operation():
                nonlocal attempts
                attempts += 1
                await asyncio.sleep(random.uniform(0, 0.005))
                if index % 3 == 0:
                    raise CodedError("400")
                if index % 3 == 1 and attempts < 2:
                    raise CodedError("503")
                return index

            return operation

        futures = [queue.enqueue(makeOperation(i)) for i in range(30)]
        results = await asyncio.gather(*futures, return_exceptions=True)

        for index, result in enumerate(results):
            if index % 3 == 0:
                self.assertIsInstance(result, CodedError)
            else:
                self.assertEqual(result, index)
        self.assertTrue(all(future.done() for future in futures))
        self.assertEqual(queue.getStats()["runningCount"], 0)
        self.assertEqual(queue.getStats()["waitingCount"], 0)

    async def testCancelledOperationPassesSlotOn(self):
        """Test a request whose operation gets cancelled frees its slot for the next one."""
        queue = RequestQueue(RequestQueueConfig(maxConcurrent=1))
        shared = asyncio.get_running_loop().create_future()

        async def awaitShared():
            return await shared

        async def operation():
            return "second"

        first = queue.enqueue(awaitShared, "first")
        second = queue.enqueue(operation, "second")
        await asyncio.sleep(0)
        self.assertEqual(queue.getStats()["waitingCount"], 1)

        shared.cancel()

        self.assertEqual(await asyncio.wait_for(second, timeout=1), "second")
        self.assertTrue(first.cancelled())
        self.assertEqual(queue.getStats(), {"waitingCount": 0, "runningCount": 0, "maxConcurrent": 1})

    async def testAbandonedWaitingRequestIsNotStarted(self):
        """Test a waiting request whose caller gave up is dropped instead of run."""
        queue = RequestQueue(RequestQueueConfig(maxConcurrent=1))
        gate = asyncio.Event()
        invoked: List[str] = []

        async def blocker():
            await gate.wait()
            return "blocker"

        async def operation():
            invoked.append("abandoned")
            return "abandoned"

        running = queue.enqueue(blocker, "blocker")
        abandoned = queue.enqueue(operation, "abandoned")

        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(abandoned, timeout=0.01)
        self.assertTrue(abandoned.cancelled())

        gate.set()
        self.assertEqual(await running, "blocker")
        await asyncio.sleep(0)

        self.assertEqual(invoked, [])
        self.assertEqual(queue.getStats(), {"waitingCount": 0, "runningCount": 0, "maxConcurrent": 1})

    async def testDestroyWaitsForRunningAndClearsWaiting(self):
        """Test destroy() settles running requests and rejects waiting ones."""
        queue = RequestQueue(RequestQueueConfig(maxConcurrent=1))

        async def operation():
            await asyncio.sleep(0.01)
            return "finished"

        running = queue.enqueue(operation)
        waiting = queue.enqueue(operation)

        await queue.destroy()

        self.assertTrue(running.done())
        self.assertEqual(running.result(), "finished")
        with self.assertRaises(QueueClearedError):
            await waiting
        self.assertEqual(queue.getStats()["runningCount"], 0)


if __name__ == "__main__":
    unittest.main()
