"""
Opaque continuation cursors

A cursor records the sort value and id of the last document of a page.
Stores resume strictly after that (value, id) position.
"""
import base64
import json
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from ...errors import FetchError, FetchErrorKind


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"$dt": value.isoformat()}
    return value


def _decode_value(value: Any) -> Any:
    if isinstance(value, dict) and "$dt" in value:
        return datetime.fromisoformat(value["$dt"])
    return value


def encode_cursor(sort_value: Any, document_id: str) -> str:
    payload = json.dumps({"v": _encode_value(sort_value), "id": document_id}, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode()).decode().rstrip("=")


def decode_cursor(cursor: str) -> Tuple[Any, str]:
    """Return (sort value, document id); raise FetchError on a bad token"""
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        data: Dict[str, Any] = json.loads(base64.urlsafe_b64decode(padded.encode()))
        return _decode_value(data["v"]), str(data["id"])
    except (ValueError, KeyError, TypeError) as e:
        raise FetchError(FetchErrorKind.INVALID_CURSOR, f"Invalid cursor: {e}")


def cursor_after(document: Optional[Dict[str, Any]], sort_value: Any) -> Optional[str]:
    """Cursor positioned after ``document``, or None for an empty page"""
    if document is None:
        return None
    return encode_cursor(sort_value, str(document["_id"]))
