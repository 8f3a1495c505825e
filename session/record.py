"""
Stored session record and its JSON envelope.

Every record is written as a JSON document with three fields:
`_id` (the effective session id), `session` (the serialized payload) and
`expires` (millis since epoch). Byte strings anywhere in the document are
tagged as {"$binary": "<base64>"} so binary session values survive the
round trip. Application dicts whose only key is "$binary" or "$escaped"
are wrapped as {"$escaped": {...}} so they are never read back as tags.
Dates and datetimes are stored as ISO-8601 strings.
"""

import base64
import json
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

from errors.exceptions import serialization_failed

BINARY_TAG = "$binary"
ESCAPE_TAG = "$escaped"
_RESERVED_KEYS = (BINARY_TAG, ESCAPE_TAG)


@dataclass
class SessionRecord:
    """
    A session as stored under the `data` sub-namespace.

    Attributes:
        id: Effective session id (raw sid or its digest)
        payload: Serializer output for the session
        expires_at: Expiry in millis since epoch. None only for records
            written before expiration tracking existed.
    """
    id: str
    payload: Any
    expires_at: Optional[int] = None

    def to_envelope(self) -> bytes:
        document = {"_id": self.id, "session": self.payload}
        if self.expires_at is not None:
            document["expires"] = self.expires_at
        return dumps(document)

    @classmethod
    def from_envelope(cls, raw: bytes) -> "SessionRecord":
        document = loads(raw)
        if not isinstance(document, dict) or "session" not in document:
            raise serialization_failed(
                "Session record envelope is malformed",
                details={"reason": "missing session field"}
            )
        expires = document.get("expires")
        if expires is not None and not isinstance(expires, (int, float)):
            raise serialization_failed(
                "Session record envelope is malformed",
                details={"reason": "expires is not a timestamp"}
            )
        return cls(
            id=document.get("_id"),
            payload=document["session"],
            expires_at=int(expires) if expires is not None else None,
        )


def _tag(value: Any) -> Any:
    """Replace byte strings by binary tags and escape dicts shaped like a tag."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {BINARY_TAG: base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, dict):
        tagged = {key: _tag(item) for key, item in value.items()}
        if len(tagged) == 1 and next(iter(tagged)) in _RESERVED_KEYS:
            return {ESCAPE_TAG: tagged}
        return tagged
    if isinstance(value, (list, tuple)):
        return [_tag(item) for item in value]
    return value


def _untag(value: Any) -> Any:
    if isinstance(value, dict):
        if len(value) == 1:
            key, item = next(iter(value.items()))
            if key == BINARY_TAG and isinstance(item, str):
                return base64.b64decode(item, validate=True)
            if key == ESCAPE_TAG and isinstance(item, dict):
                return {k: _untag(v) for k, v in item.items()}
        return {k: _untag(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_untag(item) for item in value]
    return value


def _encode_default(value: Any) -> Any:
    # Cookie expiries may be datetimes; to_millis() parses the ISO form back
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(value: Any) -> bytes:
    """JSON-encode `value` to UTF-8 bytes, tagging byte strings."""
    try:
        return json.dumps(
            _tag(value), default=_encode_default, separators=(",", ":")
        ).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise serialization_failed(
            "Unable to encode session",
            details={"error": str(e)}
        ) from e


def loads(raw: Any) -> Any:
    """Decode bytes or text produced by dumps()."""
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = bytes(raw).decode("utf-8")
        return _untag(json.loads(raw))
    except (TypeError, ValueError) as e:
        raise serialization_failed(
            "Unable to decode session",
            details={"error": str(e)}
        ) from e
