"""
TaskDesk - data layer for the project, employee and task tracker.
Composition root: builds the request queue and the data API client from TOML configuration.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from internal.config.manager import ConfigManager
from lib.data_api import DataApiClient
from lib.logging_utils import initLogging
from lib.request_queue import RequestQueue, RequestQueueConfig
from lib.utils import jsonDumps, maskSecret

# Configure basic logging first
logging.basicConfig(format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=logging.INFO)
# set higher logging level for httpx to avoid all GET and POST requests being logged
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

# Tables checked by --check-tables when none are given explicitly
DEFAULT_TABLES = ["users", "roles", "projects", "tasks", "assigned_tasks", "task_time_logs", "clients"]


class TaskDeskApp:
    """Application composition root: owns the request queue and hands it to consumers."""

    def __init__(self, configPath: str = "config.toml", configDirs: Optional[List[str]] = None):
        """Initialize application with all components."""
        self.configManager = ConfigManager(configPath, configDirs)

        initLogging(self.configManager.getLoggingConfig())

        # One queue per application, every remote data call goes through it
        self.requestQueue = RequestQueue(RequestQueueConfig.fromDict(self.configManager.getRequestQueueConfig()))
        self._dataApiClient: Optional[DataApiClient] = None

    def getDataApiClient(self) -> DataApiClient:
        """Get data API client bound to the application request queue, dood!"""
        if self._dataApiClient is None:
            self._dataApiClient = DataApiClient.fromConfig(self.requestQueue, self.configManager.getDataApiConfig())
        return self._dataApiClient

    async def shutdown(self) -> None:
        """Settle in-flight requests and close HTTP connections."""
        await self.requestQueue.destroy()
        if self._dataApiClient is not None:
            await self._dataApiClient.aclose()

    async def checkTables(self, tables: List[str]) -> bool:
        """
        Count rows of every table concurrently through the request queue.

        Args:
            tables: Table names to check

        Returns:
            True if every table answered
        """
        client = self.getDataApiClient()
        try:
            results = await asyncio.gather(
                *[client.count(table, requestId=f"check:{table}") for table in tables],
                return_exceptions=True,
            )
        finally:
            await self.shutdown()

        allOk = True
        for table, result in zip(tables, results):
            if isinstance(result, BaseException):
                allOk = False
                logger.error(f"Table {table} is not available: {type(result).__name__}: {result}")
            else:
                logger.info(f"Table {table} is available, rows: {result if result is not None else 'unknown'}")

        logger.info(f"Request queue stats after check: {self.requestQueue.getStats()}")
        return allOk


def parse_arguments():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="TaskDesk - queued data layer for the task tracker, dood!")
    parser.add_argument(
        "-c",
        "--config",
        default="config.toml",
        help="Path to configuration file (default: config.toml)",
    )
    parser.add_argument(
        "--config-dir",
        action="append",
        help="Directory to search for .toml config files recursively (can be specified multiple times), dood!",
    )
    parser.add_argument(
        "--print-config",
        action="store_true",
        help="Pretty-print loaded configuration and exit, dood!",
    )
    parser.add_argument(
        "--check-tables",
        nargs="*",
        metavar="TABLE",
        default=None,
        help=f"Check that tables are reachable through the request queue (default: {', '.join(DEFAULT_TABLES)})",
    )
    args = parser.parse_args()
    args.config = os.path.abspath(args.config)

    if args.config_dir:
        args.config_dir = [os.path.abspath(dirPath) for dirPath in args.config_dir]

    return args


def maskConfig(config: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of configuration with API keys masked."""
    masked = dict(config)
    dataApi = dict(masked.get("data-api", {}))
    if "api-key" in dataApi:
        dataApi["api-key"] = maskSecret(str(dataApi["api-key"]))
        masked["data-api"] = dataApi
    return masked


def prettyPrintConfig(configManager: ConfigManager):
    """Pretty-print the loaded configuration, dood!"""
    print("=== TaskDesk Configuration ===")
    print()
    print(jsonDumps(maskConfig(configManager.config), indent=2))
    print()
    print("=== Configuration loaded successfully, dood! ===")


def main():
    """Main entry point."""
    args = parse_arguments()

    try:
        if args.print_config:
            prettyPrintConfig(ConfigManager(configPath=args.config, configDirs=args.config_dir))
            sys.exit(0)

        app = TaskDeskApp(configPath=args.config, configDirs=args.config_dir)

        if args.check_tables is not None:
            tables = args.check_tables or app.configManager.getApplicationConfig().get("tables", DEFAULT_TABLES)
            sys.exit(0 if asyncio.run(app.checkTables(tables)) else 1)

        logger.info(f"Configuration is valid, request queue: {app.requestQueue.getStats()}")
    except KeyboardInterrupt:
        logger.info("Stopped by user")
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
