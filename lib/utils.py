"""
Common utilities for TaskDesk.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def jsonDumps(data: Any, compact: Optional[bool] = None, **kwargs) -> str:
    dumpKwargs = {
        "ensure_ascii": False,
        "default": str,
        "sort_keys": True,
    }

    if compact is None:
        # Pretty-printing requested via indent, keep default separators
        compact = "indent" not in kwargs

    if compact:
        dumpKwargs["separators"] = (",", ":")
    dumpKwargs.update(kwargs)
    return json.dumps(data, **dumpKwargs)


def maskSecret(value: str, visible: int = 4) -> str:
    """
    Hide all but the last ``visible`` characters of a secret.

    Args:
        value: Secret value (API key, token)
        visible: Number of trailing characters to keep

    Returns:
        Masked string, e.g. ``********abcd``
    """
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]


def load_dotenv(path: str = ".env", populateEnv: bool = True) -> Dict[str, str]:
    """
    Simple dotenv file loader.
    Read file line by line and put ``KEY=value`` pairs into dictionary.
    Empty lines and ``#`` comments are skipped, values may contain ``=``.

    Args:
        path: Path to .env file (default ".env")
        populateEnv: Whether to populate environment variables (default True)

    Returns:
        Dictionary of key-value pairs from .env file
    """
    ret: Dict[str, str] = {}
    with open(path, "rt") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            ret[key.strip()] = value.strip().strip('"').strip("'")

    if populateEnv:
        for k, v in ret.items():
            os.environ[k] = v
        logger.debug(f"Loaded {len(ret)} variables from {path}")
    return ret
