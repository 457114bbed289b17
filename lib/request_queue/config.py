import dataclasses
from dataclasses import dataclass
from typing import Any, Mapping

DEFAULT_MAX_CONCURRENT = 8
DEFAULT_RETRY_DELAY_BASE_MS = 1000
DEFAULT_MAX_RETRIES = 3
DEFAULT_SLOW_REQUEST_THRESHOLD_MS = 1000


@dataclass(frozen=True)
class RequestQueueConfig:
    """
    Configuration for a RequestQueue.

    Set once when the queue is constructed, there is no runtime
    reconfiguration.

    Attributes:
        maxConcurrent: Ceiling on simultaneously running requests
        retryDelayBaseMs: Base delay unit for exponential backoff, in milliseconds
        maxRetries: Default retry ceiling copied into each submitted request
        logSlowRequests: Emit warnings for slow requests and errors for fatal failures
        slowRequestThresholdMs: Duration above which a completed request is logged as slow
    """

    maxConcurrent: int = DEFAULT_MAX_CONCURRENT
    retryDelayBaseMs: int = DEFAULT_RETRY_DELAY_BASE_MS
    maxRetries: int = DEFAULT_MAX_RETRIES
    logSlowRequests: bool = False
    slowRequestThresholdMs: int = DEFAULT_SLOW_REQUEST_THRESHOLD_MS

    def __post_init__(self):
        """Validate configuration values"""
        if self.maxConcurrent <= 0:
            raise ValueError("maxConcurrent must be positive")
        if self.retryDelayBaseMs < 0:
            raise ValueError("retryDelayBaseMs must not be negative")
        if self.maxRetries < 0:
            raise ValueError("maxRetries must not be negative")
        if self.slowRequestThresholdMs < 0:
            raise ValueError("slowRequestThresholdMs must not be negative")

    @classmethod
    def fromDict(cls, config: Mapping[str, Any]) -> "RequestQueueConfig":
        """
        Build configuration from a config section (e.g. ``[request-queue]`` in TOML).

        Args:
            config: Mapping with any subset of the dataclass field names

        Returns:
            Validated RequestQueueConfig, missing keys take their defaults

        Raises:
            ValueError: On unknown keys or invalid values
        """
        knownKeys = {field.name for field in dataclasses.fields(cls)}
        unknownKeys = sorted(set(config.keys()) - knownKeys)
        if unknownKeys:
            raise ValueError(f"Unknown request queue option(s): {', '.join(unknownKeys)}")

        return cls(**dict(config))

    def getRetryDelayMs(self, retryCount: int) -> int:
        """
        Backoff delay before the given retry attempt.

        Attempt 1 waits one base unit, attempt 2 waits two, attempt 3 waits four.

        Args:
            retryCount: 1-based retry attempt number

        Returns:
            Delay in milliseconds
        """
        return self.retryDelayBaseMs * 2 ** (retryCount - 1)
