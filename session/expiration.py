"""
Expiration policy for session records.

Expiry is stored as an absolute timestamp in milliseconds since the epoch.
A session whose cookie carries an explicit expiry keeps that instant;
browser-session cookies and sessions without a cookie get
`now + default_expiration_time`, two weeks unless configured otherwise.

Records are never expired by the store in the background. Staleness is
only checked lazily, when a record is read.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

# 14 days in milliseconds
DEFAULT_EXPIRATION_MS = 1000 * 60 * 60 * 24 * 14


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def to_millis(value: Any) -> Optional[int]:
    """
    Convert a cookie expiry value to millis since the epoch.

    Accepts datetimes (naive values are taken as UTC), ISO-8601 strings,
    and numbers already expressed in millis. Returns None for empty values.

    Raises:
        ValueError: If the value cannot be interpreted as an instant.
    """
    if value is None or value is False or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid expiry value: {value!r}")
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return to_millis(datetime.fromisoformat(text))
    raise ValueError(f"Invalid expiry value: {value!r}")


def cookie_expiry(session: Any) -> Optional[int]:
    """Explicit expiry carried by the session cookie, if any."""
    if not isinstance(session, Mapping):
        return None
    cookie = session.get("cookie")
    if cookie is None:
        return None
    if isinstance(cookie, Mapping):
        expires = cookie.get("expires")
    else:
        expires = getattr(cookie, "expires", None)
    return to_millis(expires)


def compute_expiry(
    session: Any,
    default_ttl_ms: int = DEFAULT_EXPIRATION_MS,
    now: Optional[int] = None
) -> int:
    """
    Absolute expiry for a record about to be written.

    Args:
        session: The application session object
        default_ttl_ms: Lifetime used when the cookie has no expiry
        now: Current time in millis (defaults to the wall clock)

    Returns:
        Expiry in millis since the epoch
    """
    explicit = cookie_expiry(session)
    if explicit is not None:
        return explicit
    if now is None:
        now = now_ms()
    return now + default_ttl_ms


def is_expired(expires_at: Optional[int], now: Optional[int] = None) -> bool:
    """
    True iff the record has an expiry and it has been reached.

    Records without an expiry predate expiration tracking and never expire.
    """
    if expires_at is None:
        return False
    if now is None:
        now = now_ms()
    return now >= expires_at


def ttl_to_millis(ttl: timedelta) -> int:
    return int(ttl.total_seconds() * 1000)
