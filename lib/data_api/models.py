"""
Data API: filter model and query parameter rendering
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, List, Mapping, Optional, Tuple


class FilterOperator(StrEnum):
    """Row filter operators understood by the data API."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    ILIKE = "ilike"
    IS = "is"
    IN = "in"


@dataclass(frozen=True)
class Filter:
    """
    Column filter with an explicit operator.

    Plain values in a filters mapping mean equality, use Filter for
    anything else.

    Example:
        >>> {"status": "active", "deadline": Filter(FilterOperator.LT, "2024-01-01")}
    """

    operator: FilterOperator
    value: Any

    def __post_init__(self):
        # Accept plain strings like "gte"
        object.__setattr__(self, "operator", FilterOperator(self.operator))


def formatValue(value: Any) -> str:
    """Render a single filter value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def renderFilter(value: Any) -> str:
    """
    Render filter value as ``<operator>.<value>``.

    Args:
        value: Plain value (equality) or Filter

    Returns:
        Query parameter value, e.g. ``eq.5``, ``in.(1,2,3)``, ``is.null``
    """
    if not isinstance(value, Filter):
        return f"{FilterOperator.EQ}.{formatValue(value)}"

    if value.operator == FilterOperator.IN:
        items = ",".join(formatValue(item) for item in value.value)
        return f"{value.operator}.({items})"

    return f"{value.operator}.{formatValue(value.value)}"


def buildFilterParams(filters: Optional[Mapping[str, Any]]) -> List[Tuple[str, str]]:
    """
    Convert filters mapping into query parameters.

    Columns with None value are skipped, to filter on NULL use
    ``Filter(FilterOperator.IS, None)``.

    Args:
        filters: Column name to value or Filter

    Returns:
        List of (column, rendered filter) pairs
    """
    if not filters:
        return []

    return [(column, renderFilter(value)) for column, value in filters.items() if value is not None]


def parseContentRangeTotal(contentRange: Optional[str]) -> Optional[int]:
    """
    Get total rows count from a ``Content-Range`` header.

    Args:
        contentRange: Header value like ``0-24/3573`` or ``*/0``

    Returns:
        Total count, or None if the header is missing or has no exact total
    """
    if not contentRange or "/" not in contentRange:
        return None

    total = contentRange.rsplit("/", 1)[1].strip()
    if not total.isdigit():
        return None
    return int(total)
