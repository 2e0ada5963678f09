"""Tests for the envelope codec."""

import datetime
import json

import pytest

from common import protocol
from common.messages import (
    DEFAULT_NAME, EventKind, Identity, LegacyText, Message, System, Unknown, UserJoin, UserLeave,
)

UTC = datetime.timezone.utc


class TestEncode:
    def test_envelope_fields(self) -> None:
        now = datetime.datetime(2024, 5, 1, 12, 30, 15, 123456, tzinfo=UTC)
        env = json.loads(protocol.encode("Hola", Identity("Ana"), now=now))
        assert env == {"username": "Ana", "message": "Hola", "timestamp": "2024-05-01T12:30:15.123Z"}

    def test_default_clock_is_iso_utc(self) -> None:
        env = json.loads(protocol.encode("x", Identity()))
        assert env["username"] == DEFAULT_NAME
        assert env["timestamp"].endswith("Z")
        assert protocol.parse_timestamp(env["timestamp"]) is not None

    def test_non_ascii_kept_as_utf8(self) -> None:
        raw = protocol.encode("¿qué tal? 👋", Identity("José"))
        assert "¿qué tal? 👋".encode("utf-8") in raw
        assert json.loads(raw)["username"] == "José"

    def test_reads_identity_at_call_time(self) -> None:
        ident = Identity("Ana")
        ident.set("Luis")
        assert json.loads(protocol.encode("hi", ident))["username"] == "Luis"


class TestDecodeTyped:
    def test_message(self) -> None:
        event = protocol.decode(b'{"type":"message","username":"Ana","message":"Hola",'
                                b'"timestamp":"2024-05-01T12:30:15.123456789Z"}')
        assert isinstance(event, Message)
        assert event.kind is EventKind.MESSAGE
        assert (event.sender_name, event.body) == ("Ana", "Hola")
        assert event.sent_at == datetime.datetime(2024, 5, 1, 12, 30, 15, 123456, tzinfo=UTC)

    def test_message_without_username_uses_default(self) -> None:
        event = protocol.decode('{"type":"message","message":"hey"}')
        assert event == Message(sender_name=DEFAULT_NAME, body="hey")

    def test_null_username_uses_default(self) -> None:
        event = protocol.decode('{"type":"user_join","username":null}')
        assert event == UserJoin(sender_name=DEFAULT_NAME)

    def test_user_join(self) -> None:
        assert protocol.decode(b'{"type":"user_join","username":"Ana"}') == UserJoin("Ana")

    def test_user_leave(self) -> None:
        event = protocol.decode(b'{"type":"user_leave","username":"Ana"}')
        assert event == UserLeave("Ana")
        assert event.kind is EventKind.USER_LEAVE

    def test_user_join_from_go_server_without_username(self) -> None:
        raw = b'{"type":"user_join","message":"Usuario conectado","data":{"observer_id":"obs_1"},' \
              b'"timestamp":"2024-05-01T12:30:15.5+02:00"}'
        assert protocol.decode(raw) == UserJoin(DEFAULT_NAME)

    def test_system(self) -> None:
        assert protocol.decode(b'{"type":"system","message":"Server restarting"}') == System("Server restarting")

    def test_bad_timestamp_is_dropped(self) -> None:
        event = protocol.decode('{"type":"message","username":"a","message":"b","timestamp":"yesterday"}')
        assert isinstance(event, Message)
        assert event.sent_at is None


class TestDecodeFallback:
    def test_plain_text_is_legacy(self) -> None:
        event = protocol.decode(b"plain legacy text")
        assert event == LegacyText("plain legacy text")
        assert event.kind is EventKind.LEGACY_TEXT

    def test_old_protocol_line_kept_verbatim(self) -> None:
        assert protocol.decode(b"Ana: Hola") == LegacyText("Ana: Hola")

    @pytest.mark.parametrize("raw", ['"quoted"', "42", "[1, 2]", "null", "{broken"])
    def test_non_object_json_is_legacy(self, raw: str) -> None:
        assert protocol.decode(raw.encode()) == LegacyText(raw)

    def test_empty_frame_is_legacy(self) -> None:
        assert protocol.decode(b"") == LegacyText("")

    def test_invalid_utf8_does_not_raise(self) -> None:
        event = protocol.decode(b"\xff\xfehola")
        assert isinstance(event, LegacyText)
        assert event.body.endswith("hola")
        assert event.body.startswith("\ufffd")   # undecodable bytes are replaced

    def test_malformed_field_is_legacy(self) -> None:
        raw = '{"type":"message","username":"Ana","message":5}'
        assert protocol.decode(raw) == LegacyText(raw)

    def test_unknown_type(self) -> None:
        raw = '{"type":"typing","username":"Ana"}'
        event = protocol.decode(raw)
        assert event == Unknown(type_name="typing", raw=raw)
        assert event.kind is EventKind.UNKNOWN

    def test_missing_type_is_unknown(self) -> None:
        event = protocol.decode('{"username":"Ana"}')
        assert isinstance(event, Unknown)
        assert event.type_name is None

    def test_deep_nesting_does_not_raise(self) -> None:
        raw = "[" * 100000 + "]" * 100000
        assert isinstance(protocol.decode(raw), (LegacyText, Unknown))


class TestRoundTrip:
    @pytest.mark.parametrize("name,body", [
        ("Ana", "Hola"),
        ("Usuario", 'comillas " y \\ barras'),
        ("名前", "línea\nnueva"),
    ])
    def test_decode_of_encode_is_message(self, name: str, body: str) -> None:
        now = datetime.datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=UTC)
        event = protocol.decode(protocol.encode(body, Identity(name), now=now))
        assert event == Message(sender_name=name, body=body, sent_at=now)


class TestTimestamps:
    def test_naive_is_utc(self) -> None:
        dt = protocol.parse_timestamp("2024-05-01T12:00:00")
        assert dt == datetime.datetime(2024, 5, 1, 12, tzinfo=UTC)

    def test_offset_kept(self) -> None:
        dt = protocol.parse_timestamp("2024-05-01T14:00:00+02:00")
        assert dt == datetime.datetime(2024, 5, 1, 12, tzinfo=UTC)

    @pytest.mark.parametrize("value", [None, "", 17, "not a date"])
    def test_invalid(self, value) -> None:
        assert protocol.parse_timestamp(value) is None

    def test_format_converts_to_utc(self) -> None:
        tz = datetime.timezone(datetime.timedelta(hours=-3))
        dt = datetime.datetime(2024, 5, 1, 9, 0, 0, tzinfo=tz)
        assert protocol.format_timestamp(dt) == "2024-05-01T12:00:00.000Z"


class TestTimestampRange:
    def test_offset_past_max_year_is_dropped(self) -> None:
        assert protocol.parse_timestamp("9999-12-31T23:59:59-05:00") is None

    def test_message_with_extreme_timestamp_still_decodes(self) -> None:
        event = protocol.decode('{"type":"message","username":"Ana","message":"hi",'
                                '"timestamp":"9999-12-31T23:59:59-05:00"}')
        assert event == Message(sender_name="Ana", body="hi", sent_at=None)

    def test_result_is_utc(self) -> None:
        dt = protocol.parse_timestamp("0001-01-01T10:00:00+02:00")
        assert dt.tzinfo is UTC
        assert dt.hour == 8
