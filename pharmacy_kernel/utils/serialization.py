"""
JSON-safe conversion for audit details.

Audit details are stored in a JSON column, so Decimal, UUID, datetime and
enum values are converted to strings before persisting.  Decimals keep
their exact text (no float round trip).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _scalar(obj: Any) -> Any:
    """
    Convert a single non-JSON-native value.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def json_safe(data: Any) -> Any:
    """Recursively convert ``data`` into JSON-native types."""
    if isinstance(data, dict):
        return {str(k): json_safe(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [json_safe(v) for v in data]
    return _scalar(data)
