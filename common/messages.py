from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union

DEFAULT_NAME = "Usuario"   # shown when the user leaves the nickname empty


class EventKind(str, Enum):
    MESSAGE = "message"
    USER_JOIN = "user_join"
    USER_LEAVE = "user_leave"
    SYSTEM = "system"
    LEGACY_TEXT = "legacy_text"
    UNKNOWN = "unknown"


class ConnectionState(str, Enum):
    IDLE = "idle"               # session created, connect() not called yet
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"           # terminal, there is no reconnect


# Incoming events. One dataclass per recognized "type" value on the wire,
# plus LegacyText (unparseable frame) and Unknown (unrecognized type).
@dataclass(frozen=True)
class Message:
    sender_name: str
    body: str
    sent_at: Optional[datetime] = None
    kind: EventKind = field(default=EventKind.MESSAGE, init=False)

@dataclass(frozen=True)
class UserJoin:
    sender_name: str
    kind: EventKind = field(default=EventKind.USER_JOIN, init=False)

@dataclass(frozen=True)
class UserLeave:
    sender_name: str
    kind: EventKind = field(default=EventKind.USER_LEAVE, init=False)

@dataclass(frozen=True)
class System:
    body: str
    kind: EventKind = field(default=EventKind.SYSTEM, init=False)

@dataclass(frozen=True)
class LegacyText:
    body: str   # the whole frame, verbatim
    kind: EventKind = field(default=EventKind.LEGACY_TEXT, init=False)

@dataclass(frozen=True)
class Unknown:
    type_name: Optional[str]   # None when the frame had no "type" at all
    raw: str
    kind: EventKind = field(default=EventKind.UNKNOWN, init=False)


ChatEvent = Union[Message, UserJoin, UserLeave, System, LegacyText, Unknown]


@dataclass
class Identity:
    ''' The local user's nickname. Read on every send, never persisted. '''
    display_name: str = DEFAULT_NAME

    def set(self, value: str) -> None:
        '''
        Replace the nickname. An empty value falls back to DEFAULT_NAME.
        Input:
            - value: the raw text of the nickname field
        '''
        self.display_name = value or DEFAULT_NAME
