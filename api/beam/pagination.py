from __future__ import annotations

import base64
import json
from typing import Any


# Cursor format: base64-encoded JSON {id: last_record_id, sort: sort_field_value}.
# Paging on (sort, id) keeps rows that share a sort value from being skipped.


def encode_cursor(last_id: int, sort_value: Any = None) -> str:
    """
    Encode a pagination cursor from the last record's ID and sort value.

    Example:
        cursor = encode_cursor(42, "2026-10-01T12:00:00")
        # Returns: eyJpZCI6IDQyLCAic29ydCI6ICIyMDI2LTEwLTAxVDEyOjAwOjAwIn0=
    """
    cursor_data: dict[str, Any] = {"id": last_id}
    if sort_value is not None:
        cursor_data["sort"] = sort_value

    json_str = json.dumps(cursor_data, default=str)
    return base64.urlsafe_b64encode(json_str.encode()).decode()


def decode_cursor(cursor: str | None) -> tuple[int, Any] | None:
    """
    Decode a pagination cursor into (last_id, sort_value).

    Returns None for a missing or malformed cursor.
    """
    if not cursor:
        return None

    try:
        decoded = base64.urlsafe_b64decode(cursor.encode()).decode()
        cursor_data = json.loads(decoded)
        last_id = cursor_data.get("id")
        sort_value = cursor_data.get("sort")
    except (ValueError, AttributeError, UnicodeDecodeError):
        return None

    if not isinstance(last_id, int) or isinstance(last_id, bool):
        return None
    return (last_id, sort_value)
