"""
Property-based tests for the session store.

Each example builds a fresh store on the in-memory backend and drives it
with asyncio.run(), so hypothesis controls the inputs while every example
gets its own event loop.
"""

import asyncio

from hypothesis import given, strategies as st

from backends.memory import InMemoryBackend
from session.foundationdb_store import FoundationDBSessionStore

session_ids = st.text(min_size=1, max_size=24)

# Keys shaped like envelope tags must survive as ordinary data
dict_keys = st.text(max_size=8) | st.sampled_from(["$binary", "$escaped"])

json_values = st.recursive(
    st.none()
    | st.booleans()
    | st.integers(min_value=-(2 ** 53), max_value=2 ** 53)
    | st.text(max_size=20)
    | st.binary(max_size=16),
    lambda children: st.lists(children, max_size=4)
    | st.dictionaries(dict_keys, children, max_size=4),
    max_leaves=12,
)

sessions = st.dictionaries(
    dict_keys.filter(lambda key: key != "cookie"),
    json_values,
    max_size=6,
)

operations = st.lists(
    st.tuples(st.sampled_from(["set", "destroy"]), st.sampled_from(["a", "b", "c", "d"])),
    max_size=30,
)


@given(sid=session_ids, session=sessions, stringify=st.booleans(), hashed=st.booleans())
def test_get_returns_what_set_stored(sid, session, stringify, hashed):
    """get(sid) after set(sid, S) returns S under every strategy."""
    async def scenario():
        store = FoundationDBSessionStore(
            InMemoryBackend(), stringify=stringify, hash_options=hashed
        )
        await store.set(sid, session)
        return await store.get(sid)

    assert asyncio.run(scenario()) == session


@given(ops=operations)
def test_length_matches_live_sessions(ops):
    """The counter equals the number of present sids after any set/destroy mix."""
    async def scenario():
        store = FoundationDBSessionStore(InMemoryBackend())
        present = set()
        for op, sid in ops:
            if op == "set":
                await store.set(sid, {"sid": sid})
                present.add(sid)
            else:
                await store.destroy(sid)
                present.discard(sid)
        return await store.length(), len(present), len(await store.all())

    length, expected, listed = asyncio.run(scenario())

    assert length == expected == listed


@given(sids=st.lists(session_ids, min_size=1, max_size=10, unique=True))
def test_clear_resets_state(sids):
    """After clear(), length is zero and every sid reads as absent."""
    async def scenario():
        store = FoundationDBSessionStore(InMemoryBackend())
        for sid in sids:
            await store.set(sid, {"sid": sid})
        await store.clear()
        found = [await store.get(sid) for sid in sids]
        return await store.length(), found

    length, found = asyncio.run(scenario())

    assert length == 0
    assert all(session is None for session in found)
