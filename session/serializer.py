"""
Session payload serialization strategies.

The strategy is chosen once, when the store is built:

- CUSTOM: caller-supplied `serialize` / `unserialize` callables. A missing
  half falls back to the structural serializer / identity.
- TEXT: the session is JSON-encoded to a string (`stringify=True`).
- STRUCTURAL: a shallow copy of the session is embedded in the record
  envelope as-is; a cookie object is replaced by its canonical dict form.

Whatever the strategy, the store only ever sees session in, payload out
and back again; the record envelope wraps the payload in JSON bytes.
"""

import logging
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from errors.exceptions import SerializationError, serialization_failed
from session import record

logger = logging.getLogger(__name__)

SerializeFunc = Callable[[Any], Any]


class SerializationStrategy(str, Enum):
    """How session objects are turned into record payloads."""
    CUSTOM = "custom"
    TEXT = "text"
    STRUCTURAL = "structural"


def cookie_canonical_form(cookie: Any) -> Any:
    """
    Return the canonical representation of a cookie-like object.

    Objects exposing to_dict() or to_json() are converted through them, so
    internal state the cookie keeps alongside its public fields is not
    stored twice. Anything else is returned unchanged.
    """
    for method_name in ("to_dict", "to_json"):
        method = getattr(cookie, method_name, None)
        if callable(method):
            return method()
    return cookie


def default_serializer(session: Mapping[str, Any]) -> dict[str, Any]:
    """Shallow-copy every session property, canonicalizing `cookie`."""
    obj = {}
    for key, value in session.items():
        if key == "cookie":
            obj[key] = cookie_canonical_form(value)
        else:
            obj[key] = value
    return obj


def identity(value: Any) -> Any:
    return value


def _stringify(session: Any) -> str:
    if isinstance(session, Mapping) and "cookie" in session:
        session = default_serializer(session)
    return record.dumps(session).decode("utf-8")


def _parse(payload: Any) -> Any:
    return record.loads(payload)


class Serializer:
    """
    Session serializer bound to one strategy.

    Errors raised by the underlying callables surface as SerializationError
    so callers can tell them apart from transaction failures.
    """

    def __init__(
        self,
        strategy: SerializationStrategy,
        serialize: SerializeFunc,
        deserialize: SerializeFunc
    ):
        self.strategy = strategy
        self._serialize = serialize
        self._deserialize = deserialize

    @classmethod
    def select(
        cls,
        stringify: Optional[bool] = None,
        serialize: Optional[SerializeFunc] = None,
        unserialize: Optional[SerializeFunc] = None
    ) -> "Serializer":
        """
        Pick the strategy from store options. First match wins: custom
        callables, then text encoding, then the structural default.
        """
        if serialize is not None or unserialize is not None:
            return cls(
                SerializationStrategy.CUSTOM,
                serialize or default_serializer,
                unserialize or identity,
            )
        if stringify:
            return cls(SerializationStrategy.TEXT, _stringify, _parse)
        return cls(SerializationStrategy.STRUCTURAL, default_serializer, identity)

    def serialize(self, session: Any) -> Any:
        try:
            return self._serialize(session)
        except SerializationError:
            raise
        except Exception as e:
            logger.warning(
                "Unable to serialize session",
                extra={"extra_data": {"strategy": self.strategy.value, "error": str(e)}}
            )
            raise serialization_failed(
                "Unable to serialize session",
                details={"strategy": self.strategy.value, "error": str(e)}
            ) from e

    def deserialize(self, payload: Any) -> Any:
        try:
            return self._deserialize(payload)
        except SerializationError:
            raise
        except Exception as e:
            logger.warning(
                "Unable to deserialize session",
                extra={"extra_data": {"strategy": self.strategy.value, "error": str(e)}}
            )
            raise serialization_failed(
                "Unable to deserialize session",
                details={"strategy": self.strategy.value, "error": str(e)}
            ) from e

    def __repr__(self) -> str:
        return f"Serializer(strategy={self.strategy.value!r})"
