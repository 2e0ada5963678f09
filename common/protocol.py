import datetime
import json
import logging
import re
from typing import Any, Dict, Optional, Union

from common.messages import (
    DEFAULT_NAME, ChatEvent, Identity, LegacyText, Message, System, Unknown, UserJoin, UserLeave,
)

ENC = "utf-8"   # encoding for JSON text

log = logging.getLogger(__name__)

# Go servers emit RFC 3339 with 1 to 9 fractional digits; fromisoformat wants 3 or 6.
_FRACTION = re.compile(r"\.(\d+)")


class DecodeError(ValueError):
    """Raised when a structured frame has a recognized type but unusable fields."""
    pass


def format_timestamp(dt: datetime.datetime) -> str:
    ''' Format an aware datetime as ISO-8601 UTC with milliseconds and a trailing Z '''
    dt = dt.astimezone(datetime.timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")

def iso_now() -> str:
    return format_timestamp(datetime.datetime.now(datetime.timezone.utc))

def parse_timestamp(value: Any) -> Optional[datetime.datetime]:
    '''
    Parse an ISO-8601 timestamp from the wire into an aware UTC datetime.
    Returns None if it is missing, invalid, or out of range once moved to UTC.
    Naive timestamps are treated as UTC.
    '''
    if not isinstance(value, str) or not value:
        return None
    s = value
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    s = _FRACTION.sub(lambda m: "." + (m.group(1) + "000000")[:6], s)
    try:
        dt = datetime.datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    try:
        return dt.astimezone(datetime.timezone.utc)
    except (OverflowError, ValueError):   # e.g. 9999-12-31T23:59:59-05:00
        return None


def encode(body: str, identity: Identity, now: Optional[datetime.datetime] = None) -> bytes:
    '''
    The function builds the outgoing envelope for a chat message.
    Inputs:
        - body: the text the user composed
        - identity: the sender; its display_name is read at call time
        - now: clock override, defaults to the current UTC time
    Output:
        - UTF-8 JSON bytes {"username", "message", "timestamp"}
    '''
    ts = format_timestamp(now) if now is not None else iso_now()
    env = {"username": identity.display_name, "message": body, "timestamp": ts}
    return json.dumps(env, ensure_ascii=False).encode(ENC)


def _text_field(env: Dict[str, Any], key: str, default: str) -> str:
    # Missing or null takes the default; any other non-string is malformed.
    value = env.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise DecodeError(f"field {key!r} must be a string, got {type(value).__name__}")
    return value

def _from_envelope(env: Dict[str, Any], text: str) -> ChatEvent:
    t = env.get("type")
    if t == "message":
        return Message(sender_name=_text_field(env, "username", DEFAULT_NAME),
                       body=_text_field(env, "message", ""),
                       sent_at=parse_timestamp(env.get("timestamp")))
    if t == "user_join":
        return UserJoin(sender_name=_text_field(env, "username", DEFAULT_NAME))
    if t == "user_leave":
        return UserLeave(sender_name=_text_field(env, "username", DEFAULT_NAME))
    if t == "system":
        return System(body=_text_field(env, "message", ""))
    if t is None and "message" in env:
        # Untyped {"username", "message", "timestamp"}: the outgoing envelope shape.
        return Message(sender_name=_text_field(env, "username", DEFAULT_NAME),
                       body=_text_field(env, "message", ""),
                       sent_at=parse_timestamp(env.get("timestamp")))
    return Unknown(type_name=t if isinstance(t, str) else None, raw=text)


def decode(raw: Union[bytes, str]) -> ChatEvent:
    '''
    The function turns one incoming frame into a ChatEvent. It never raises:
    frames that are not a JSON object, or whose fields are malformed, come back
    as LegacyText carrying the frame text; unrecognized types come back as Unknown.
    Bytes that are not valid UTF-8 are replaced with U+FFFD, so such a frame
    is not byte-for-byte verbatim.
    Input:
        - raw: frame payload (bytes are decoded as UTF-8)
    Output:
        - ChatEvent
    '''
    text = raw.decode(ENC, errors="replace") if isinstance(raw, (bytes, bytearray)) else raw
    try:
        env = json.loads(text)
    except (ValueError, RecursionError):   # JSONDecodeError is a ValueError
        return LegacyText(body=text)
    if not isinstance(env, dict):
        return LegacyText(body=text)

    try:
        event = _from_envelope(env, text)
    except DecodeError as exc:
        log.warning("malformed %r frame, showing as legacy text: %s", env.get("type"), exc)
        return LegacyText(body=text)
    if isinstance(event, Unknown):
        log.debug("unrecognized frame type %r", event.type_name)
    return event
