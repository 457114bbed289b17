"""
Data API Library

Queued table helpers for the hosted data API: select, insert, update,
delete and count. All calls go through a RequestQueue, which bounds the
number of simultaneous requests and retries transient failures.

Example:
    >>> from lib.data_api import DataApiClient, Filter, FilterOperator
    >>> from lib.request_queue import RequestQueue
    >>>
    >>> client = DataApiClient(RequestQueue(), baseUrl="https://project.example.co", apiKey="anon-key")
    >>> overdue = await client.select(
    ...     "tasks",
    ...     filters={"status": "open", "deadline": Filter(FilterOperator.LT, "2024-06-01")},
    ...     orderBy="deadline",
    ... )
"""

from .client import DataApiClient
from .errors import DataApiError, parseApiError
from .models import Filter, FilterOperator

__all__ = [
    "DataApiClient",
    "DataApiError",
    "parseApiError",
    "Filter",
    "FilterOperator",
]
