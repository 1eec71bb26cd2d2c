"""Opaque keyset cursor for the discovery feed.

A cursor carries the sort key of the last profile on the previous page plus
the scoring clock (``as_of``) that produced it. Resuming strictly after that
key keeps pages stable when profiles are swiped between requests, and reusing
``as_of`` keeps recency scores identical across pages.
"""

from __future__ import annotations

import base64
import binascii
import json
import math
from datetime import datetime, timezone
from typing import NamedTuple, Optional

from src.utils.errors import InvalidCursorError

CURSOR_VERSION = 1

SortKey = tuple[int, float, float, str]


def make_sort_key(
    priority: int, score: float, last_active_ts: Optional[float], profile_id: str
) -> SortKey:
    """Ascending sort key: priority, score desc, activity desc, id asc.

    Profiles with unknown activity sort after every known timestamp.
    """

    activity = -last_active_ts if last_active_ts is not None else math.inf
    return (priority, -score, activity, profile_id)


class FeedCursor(NamedTuple):
    as_of: float
    priority: int
    score: float
    last_active_ts: Optional[float]
    profile_id: str

    def as_of_datetime(self) -> datetime:
        """The scoring clock as an aware UTC datetime.

        Raises:
            InvalidCursorError: when the timestamp is outside the datetime range.
        """
        try:
            return datetime.fromtimestamp(self.as_of, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise InvalidCursorError("Cursor scoring time is out of range") from exc

    def sort_key(self) -> SortKey:
        return make_sort_key(
            self.priority, self.score, self.last_active_ts, self.profile_id
        )


def encode_cursor(cursor: FeedCursor) -> str:
    payload = {
        "v": CURSOR_VERSION,
        "asOf": cursor.as_of,
        "p": cursor.priority,
        "s": cursor.score,
        "t": cursor.last_active_ts,
        "id": cursor.profile_id,
    }
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def _number(payload: dict, key: str, *, optional: bool = False) -> Optional[float]:
    value = payload.get(key)
    if value is None and optional:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidCursorError(f"Cursor field '{key}' is not a number")
    try:
        number = float(value)
    except OverflowError as exc:
        raise InvalidCursorError(f"Cursor field '{key}' is out of range") from exc
    if not math.isfinite(number):
        raise InvalidCursorError(f"Cursor field '{key}' is not finite")
    return number


def decode_cursor(token: str) -> FeedCursor:
    """Decode a cursor produced by encode_cursor.

    Raises:
        InvalidCursorError: for anything that is not a well-formed cursor.
    """

    if not token or not isinstance(token, str):
        raise InvalidCursorError("Cursor is empty")

    try:
        padded = token + "=" * (-len(token) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode()).decode())
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise InvalidCursorError("Cursor is not valid") from exc

    if not isinstance(payload, dict) or payload.get("v") != CURSOR_VERSION:
        raise InvalidCursorError("Cursor version is not supported")

    profile_id = payload.get("id")
    if not isinstance(profile_id, str) or not profile_id:
        raise InvalidCursorError("Cursor is missing the profile id")

    priority = payload.get("p")
    if priority not in (0, 1) or isinstance(priority, bool):
        raise InvalidCursorError("Cursor priority is not valid")

    cursor = FeedCursor(
        as_of=_number(payload, "asOf"),
        priority=priority,
        score=_number(payload, "s"),
        last_active_ts=_number(payload, "t", optional=True),
        profile_id=profile_id,
    )
    cursor.as_of_datetime()
    return cursor
