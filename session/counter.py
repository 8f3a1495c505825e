"""
Live record counter maintained alongside session mutations.

The counter is a single key in the store namespace holding a 4-byte
little-endian signed integer. It is only ever changed with the backend's
atomic add, inside the same transaction as the record mutation that
justifies it, so a committed transaction can never leave the counter and
the set of records out of step.
"""

import struct

from backends.base import Namespace, ReadView, Transaction, value_bytes

COUNT_KEY = ("count",)

_COUNTER_FORMAT = "<i"
_INCREMENT = struct.pack(_COUNTER_FORMAT, 1)
_DECREMENT = struct.pack(_COUNTER_FORMAT, -1)


def decode_count(raw: bytes) -> int:
    """Decode a counter value, tolerating short values written by older clients."""
    return struct.unpack(_COUNTER_FORMAT, raw[:4].ljust(4, b"\x00"))[0]


class CounterMaintainer:
    """
    Issues counter updates inside a caller's open transaction.

    None of the methods commit; the enclosing unit of work decides whether
    the update becomes visible.
    """

    def __init__(self, namespace: Namespace):
        self.key = namespace.pack(COUNT_KEY)

    def on_record_created(self, tr: Transaction) -> None:
        tr.add(self.key, _INCREMENT)

    def on_record_removed(self, tr: Transaction) -> None:
        tr.add(self.key, _DECREMENT)

    def reset(self, tr: Transaction) -> None:
        tr.clear(self.key)

    def read_count(self, reader: ReadView) -> int:
        """Current counter value; an absent key counts as zero."""
        raw = value_bytes(reader.get(self.key))
        if raw is None:
            return 0
        return decode_count(raw)
