"""
Data API Async Client

This module provides the DataApiClient class, queued table helpers for the
hosted data API (PostgREST dialect). Every call is wrapped into an operation
and submitted to a RequestQueue, so the number of simultaneous requests is
bounded and transient failures are retried.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import httpx

from lib.request_queue import RequestQueue

from .errors import parseApiError
from .models import FilterOperator, buildFilterParams, formatValue, parseContentRangeTotal

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_PATH = "/rest/v1"
DEFAULT_TIMEOUT = 30

Row = Dict[str, Any]
QueryParams = List[Tuple[str, str]]


class DataApiClient:
    """
    Queued client for table reads and writes.

    The underlying httpx.AsyncClient is created lazily and reused for all
    requests; close it with ``aclose()`` or use the client as an async
    context manager.

    Example usage:
        queue = RequestQueue(RequestQueueConfig(maxConcurrent=8))
        async with DataApiClient(queue, baseUrl="https://project.example.co", apiKey="anon-key") as client:
            tasks = await client.select("tasks", filters={"project_id": 5}, orderBy="created_at")
            total = await client.count("tasks", filters={"status": "done"})
            await client.update("tasks", 17, {"status": "done"})
    """

    def __init__(
        self,
        queue: RequestQueue,
        baseUrl: str,
        apiKey: str,
        schemaPath: str = DEFAULT_SCHEMA_PATH,
        timeout: float = DEFAULT_TIMEOUT,
        accessToken: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize data API client

        Args:
            queue: Request queue all calls are submitted to
            baseUrl: Project URL, e.g. https://project.example.co
            apiKey: Public API key, sent as ``apikey`` header
            schemaPath: Path of the REST endpoint (default: /rest/v1)
            timeout: HTTP request timeout (seconds)
            accessToken: User access token for Authorization header, apiKey is used if omitted
            transport: Custom httpx transport (used by tests)

        Raises:
            ValueError: If baseUrl or apiKey is empty
        """
        if not baseUrl or not baseUrl.strip():
            raise ValueError("Data API url cannot be empty")
        if not apiKey or not apiKey.strip():
            raise ValueError("Data API key cannot be empty")

        self.queue = queue
        self.baseUrl = baseUrl.strip().rstrip("/") + "/" + schemaPath.strip("/")
        self.apiKey = apiKey.strip()
        self.accessToken = accessToken
        self.timeout = timeout
        self._transport = transport
        self._httpClient: Optional[httpx.AsyncClient] = None

        logger.debug(f"DataApiClient initialized for {self.baseUrl}")

    @classmethod
    def fromConfig(cls, queue: RequestQueue, config: Mapping[str, Any]) -> "DataApiClient":
        """
        Create client from the ``[data-api]`` configuration section.

        Args:
            queue: Request queue all calls are submitted to
            config: Section with ``url``, ``api-key`` and optional ``schema-path``, ``timeout``

        Returns:
            Configured client
        """
        return cls(
            queue=queue,
            baseUrl=config.get("url", ""),
            apiKey=config.get("api-key", ""),
            schemaPath=config.get("schema-path", DEFAULT_SCHEMA_PATH),
            timeout=config.get("timeout", DEFAULT_TIMEOUT),
        )

    async def __aenter__(self) -> "DataApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def _getHttpClient(self) -> httpx.AsyncClient:
        """Get or create the HTTP client with proper configuration."""
        if self._httpClient is None or self._httpClient.is_closed:
            self._httpClient = httpx.AsyncClient(
                base_url=self.baseUrl,
                timeout=httpx.Timeout(self.timeout),
                headers={
                    "apikey": self.apiKey,
                    "Authorization": f"Bearer {self.accessToken or self.apiKey}",
                },
                transport=self._transport,
            )
        return self._httpClient

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._httpClient is not None and not self._httpClient.is_closed:
            await self._httpClient.aclose()
        self._httpClient = None

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[QueryParams] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Make a single HTTP request, without retries.

        Args:
            method: HTTP method
            table: Table name, used as endpoint path
            params: Query parameters
            json: JSON body
            headers: Extra headers

        Returns:
            Successful response

        Raises:
            DataApiError: On non-2xx responses
            httpx.TransportError: On network problems
        """
        client = self._getHttpClient()
        response = await client.request(method, f"/{table}", params=params, json=json, headers=headers)

        if response.is_success:
            return response

        try:
            errorData = response.json() if response.content else {}
        except ValueError:
            errorData = {"message": response.text}
        if not isinstance(errorData, dict):
            errorData = {"message": str(errorData)}

        logger.warning(f"Data API error on {method} /{table}: {response.status_code} {errorData}")
        raise parseApiError(response.status_code, errorData)

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Mapping[str, Any]] = None,
        orderBy: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        requestId: Optional[str] = None,
    ) -> List[Row]:
        """
        Read rows through the queue.

        Args:
            table: Table name
            columns: Columns to select (default: all)
            filters: Column filters, plain values mean equality, None values are skipped
            orderBy: Column to sort by
            ascending: Sort direction
            limit: Maximum rows to return
            offset: Rows to skip, only applied together with limit
            requestId: Identifier for queue logs

        Returns:
            List of rows
        """
        params: QueryParams = [("select", columns)]
        params.extend(buildFilterParams(filters))
        if orderBy:
            params.append(("order", f"{orderBy}.{'asc' if ascending else 'desc'}"))
        if limit is not None:
            params.append(("limit", str(limit)))
            if offset is not None:
                params.append(("offset", str(offset)))

        async def operation() -> List[Row]:
            response = await self._request("GET", table, params=params)
            return response.json()

        return await self.queue.enqueue(operation, requestId)

    async def insert(
        self, table: str, rows: Union[Row, Sequence[Row]], requestId: Optional[str] = None
    ) -> List[Row]:
        """
        Insert one or many rows through the queue.

        Args:
            table: Table name
            rows: Row or list of rows
            requestId: Identifier for queue logs

        Returns:
            Inserted rows as stored
        """
        body = dict(rows) if isinstance(rows, Mapping) else [dict(row) for row in rows]

        async def operation() -> List[Row]:
            response = await self._request(
                "POST", table, json=body, headers={"Prefer": "return=representation"}
            )
            return response.json()

        return await self.queue.enqueue(operation, requestId)

    async def update(
        self, table: str, rowId: Union[int, str], data: Mapping[str, Any], requestId: Optional[str] = None
    ) -> List[Row]:
        """
        Update a row by id through the queue.

        Args:
            table: Table name
            rowId: Value of the ``id`` column
            data: Columns to change
            requestId: Identifier for queue logs

        Returns:
            Updated rows (empty if no row matched)
        """
        params: QueryParams = [("id", f"{FilterOperator.EQ}.{formatValue(rowId)}")]
        body = dict(data)

        async def operation() -> List[Row]:
            response = await self._request(
                "PATCH", table, params=params, json=body, headers={"Prefer": "return=representation"}
            )
            return response.json()

        return await self.queue.enqueue(operation, requestId)

    async def delete(self, table: str, rowId: Union[int, str], requestId: Optional[str] = None) -> None:
        """
        Delete a row by id through the queue.

        Args:
            table: Table name
            rowId: Value of the ``id`` column
            requestId: Identifier for queue logs
        """
        params: QueryParams = [("id", f"{FilterOperator.EQ}.{formatValue(rowId)}")]

        async def operation() -> None:
            await self._request("DELETE", table, params=params)

        await self.queue.enqueue(operation, requestId)

    async def count(
        self, table: str, filters: Optional[Mapping[str, Any]] = None, requestId: Optional[str] = None
    ) -> Optional[int]:
        """
        Count rows through the queue without fetching them.

        Args:
            table: Table name
            filters: Column filters, same as for select()
            requestId: Identifier for queue logs

        Returns:
            Exact rows count, or None if the API did not report it
        """
        params: QueryParams = [("select", "*")]
        params.extend(buildFilterParams(filters))

        async def operation() -> Optional[int]:
            response = await self._request("HEAD", table, params=params, headers={"Prefer": "count=exact"})
            return parseContentRangeTotal(response.headers.get("content-range"))

        return await self.queue.enqueue(operation, requestId)
