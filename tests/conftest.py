"""
Pytest configuration and common fixtures for TaskDesk tests.

This module provides shared fixtures for testing the application wiring:
configuration files on disk and a mocked data API. All fixtures follow
camelCase naming convention.
"""

from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx
import pytest

# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def configFile(tmp_path: Path) -> Callable[[str], Path]:
    """
    Factory writing a TOML config file into a temporary directory.

    Example:
        def testConfig(configFile):
            path = configFile("[request-queue]\\nmaxConcurrent = 2\\n")
    """

    def _write(content: str, name: str = "config.toml") -> Path:
        path = tmp_path / name
        path.write_text(content)
        return path

    return _write


@pytest.fixture
def appConfigToml() -> str:
    """Provide configuration with a fast retrying queue and a data API section."""
    return """
[request-queue]
maxConcurrent = 2
retryDelayBaseMs = 0
maxRetries = 2

[data-api]
url = "https://project.example.co"
api-key = "anon-key-1234"
"""


# ============================================================================
# Data API Fixtures
# ============================================================================


class FakeDataApi:
    """
    MockTransport handler imitating table endpoints of the data API.

    Known tables answer HEAD requests with a ``Content-Range`` total,
    unknown ones with 404. Statuses listed in ``failures`` are returned
    for a table once before it starts answering normally.
    """

    def __init__(self, tables: Dict[str, int], failures: Optional[Dict[str, int]] = None):
        self.tables = tables
        self.failures = dict(failures or {})
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rsplit("/", 1)[-1]

        if table in self.failures:
            return httpx.Response(self.failures.pop(table), json={"message": "Service Unavailable"})
        if table not in self.tables:
            return httpx.Response(404, json={"code": "42P01", "message": f'relation "{table}" does not exist'})
        return httpx.Response(200, headers={"Content-Range": f"*/{self.tables[table]}"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def fakeDataApi() -> Callable[..., FakeDataApi]:
    """Factory for FakeDataApi handlers."""
    return FakeDataApi
