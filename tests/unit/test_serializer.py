"""
Unit tests for session serialization strategies and the record envelope.
"""

import json
from datetime import datetime, timezone

import pytest

from errors.exceptions import SerializationError
from session.record import SessionRecord, dumps, loads
from session.serializer import (
    SerializationStrategy,
    Serializer,
    cookie_canonical_form,
    default_serializer,
)


class FakeCookie:
    """Cookie object keeping internal state next to its public fields."""

    def __init__(self, expires):
        self.expires = expires
        self.data = {"expires": expires, "internal": True}

    def to_dict(self):
        return {"expires": self.expires}


class TestStrategySelection:
    """Tests for Serializer.select()."""

    def test_no_options_selects_structural(self):
        assert Serializer.select().strategy == SerializationStrategy.STRUCTURAL

    def test_stringify_selects_text(self):
        assert Serializer.select(stringify=True).strategy == SerializationStrategy.TEXT

    def test_custom_functions_win(self):
        serializer = Serializer.select(stringify=True, serialize=str, unserialize=str)

        assert serializer.strategy == SerializationStrategy.CUSTOM

    def test_custom_unserialize_only_uses_structural_serialize(self):
        serializer = Serializer.select(unserialize=lambda payload: payload)

        assert serializer.strategy == SerializationStrategy.CUSTOM
        assert serializer.serialize({"a": 1}) == {"a": 1}


class TestDefaultSerializer:
    """Tests for the structural default serializer."""

    def test_shallow_copy(self):
        session = {"a": 1, "nested": {"b": 2}}
        result = default_serializer(session)

        assert result == session
        assert result is not session
        assert result["nested"] is session["nested"]

    def test_cookie_object_is_canonicalized(self):
        cookie = FakeCookie(expires=1234)
        result = default_serializer({"cookie": cookie, "user": "u"})

        assert result == {"cookie": {"expires": 1234}, "user": "u"}

    def test_plain_cookie_kept_as_is(self):
        cookie = {"path": "/"}

        assert cookie_canonical_form(cookie) is cookie

    def test_to_json_fallback(self):
        class JsonCookie:
            def to_json(self):
                return {"maxAge": 10}

        assert cookie_canonical_form(JsonCookie()) == {"maxAge": 10}


class TestSerializerRoundTrip:
    """Serialize then deserialize under each strategy."""

    @pytest.mark.parametrize("stringify", [True, False])
    def test_round_trip(self, stringify):
        serializer = Serializer.select(stringify=stringify)
        session = {"foo": 1, "bar": [1, 2], "baz": {"str": "keystr"}}

        payload = serializer.serialize(session)
        restored = serializer.deserialize(json.loads(json.dumps(payload)))

        assert restored == session

    def test_text_payload_is_a_string(self):
        payload = Serializer.select(stringify=True).serialize({"a": 1})

        assert isinstance(payload, str)
        assert json.loads(payload) == {"a": 1}

    def test_custom_failure_becomes_serialization_error(self):
        def broken(session):
            raise RuntimeError("boom")

        serializer = Serializer.select(serialize=broken)

        with pytest.raises(SerializationError) as exc_info:
            serializer.serialize({})

        assert exc_info.value.details["strategy"] == "custom"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_text_decode_failure(self):
        serializer = Serializer.select(stringify=True)

        with pytest.raises(SerializationError):
            serializer.deserialize("{not json")


class TestRecordEnvelope:
    """Tests for the JSON record envelope."""

    def test_envelope_fields(self):
        record = SessionRecord(id="abc", payload={"a": 1}, expires_at=1000)

        assert json.loads(record.to_envelope()) == {
            "_id": "abc",
            "session": {"a": 1},
            "expires": 1000,
        }

    def test_binary_values_survive(self):
        session = {"baz": {"str": "keystr", "val": bytes([0, 1, 2, 3, 4, 5])}}
        record = SessionRecord(id="thisisatest", payload=session, expires_at=5)

        restored = SessionRecord.from_envelope(record.to_envelope())

        assert restored.payload == session
        assert restored.expires_at == 5

    def test_missing_expiry_is_preserved_as_none(self):
        raw = json.dumps({"_id": "legacy", "session": {"a": 1}}).encode()

        assert SessionRecord.from_envelope(raw).expires_at is None

    @pytest.mark.parametrize("raw", [
        b"not json",
        b"[1, 2, 3]",
        b'{"_id": "x"}',
        b'{"_id": "x", "session": {}, "expires": "tomorrow"}',
        b"\xff\xfe",
    ])
    def test_malformed_envelopes(self, raw):
        with pytest.raises(SerializationError):
            SessionRecord.from_envelope(raw)

    def test_unencodable_value(self):
        with pytest.raises(SerializationError):
            dumps({"value": object()})

    def test_loads_accepts_text(self):
        assert loads('{"a": 1}') == {"a": 1}

    @pytest.mark.parametrize("payload", [
        {"meta": {"$binary": "aGk="}},
        {"meta": {"$binary": "abc"}},
        {"meta": {"$binary": b"raw"}},
        {"meta": {"$escaped": {"$binary": "aGk="}}},
        {"$binary": "top-level"},
        [{"$escaped": 1}],
    ])
    def test_tag_shaped_dicts_round_trip(self, payload):
        assert loads(dumps(payload)) == payload

    def test_corrupt_binary_tag_is_rejected(self):
        with pytest.raises(SerializationError):
            loads(b'{"meta": {"$binary": "abc"}}')

    def test_datetimes_are_stored_as_iso_strings(self):
        expires = datetime(2030, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        assert loads(dumps({"expires": expires, "day": expires.date()})) == {
            "expires": "2030-01-02T03:04:05+00:00",
            "day": "2030-01-02",
        }
