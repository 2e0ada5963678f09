"""
Session controller: owns the connection lifecycle, the local identity and the
dispatch of decoded events to a renderer.
"""
import datetime
import logging
import time
from collections import deque
from typing import Callable, Deque, Optional, Protocol, Tuple

from common import protocol
from common.messages import (
    ConnectionState, Identity, LegacyText, Message, System, Unknown, UserJoin, UserLeave,
)
from .net import NetClient

log = logging.getLogger(__name__)

PENDING_ECHOES = 64   # how many recent local sends are remembered for echo suppression
ECHO_WINDOW = 5.0     # seconds after a send during which an identical incoming message counts as its echo


def join_text(name: str) -> str:
    return f"{name} se conectó"

def leave_text(name: str) -> str:
    return f"{name} se desconectó"


class Renderer(Protocol):
    def render_own_bubble(self, sender: str, body: str, sent_at: datetime.datetime) -> None: ...
    def render_peer_bubble(self, sender: Optional[str], body: str, sent_at: Optional[datetime.datetime]) -> None: ...
    def render_join_notice(self, text: str) -> None: ...
    def render_leave_notice(self, text: str) -> None: ...
    def render_system_notice(self, text: str) -> None: ...
    def clear_identity_entry(self) -> None: ...
    def state_changed(self, state: ConnectionState) -> None: ...


class SessionController:
    '''
    One chat session over one transport. Lifecycle is linear:
    IDLE -> CONNECTING -> OPEN -> CLOSED, and CLOSED is terminal.

    Every method here is meant to run on a single thread (the one that calls
    NetClient.pump), so identity and state need no locking.
    '''
    def __init__(self, renderer: Renderer, transport=None, identity: Optional[Identity] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.renderer = renderer
        self.identity = identity or Identity()
        self.state = ConnectionState.IDLE
        self.transport = transport if transport is not None else NetClient()
        self.transport.handler = self   # registered once, here
        self.clock = clock
        # (sent_at, display_name, body) of local sends the server may still echo back
        self._pending: Deque[Tuple[float, str, str]] = deque(maxlen=PENDING_ECHOES)

    def _set_state(self, state: ConnectionState) -> None:
        log.info("connection %s -> %s", self.state.value, state.value)
        self.state = state
        self.renderer.state_changed(state)

    # --------- lifecycle ----------
    def connect(self, endpoint: str) -> None:
        if self.state is not ConnectionState.IDLE:
            raise RuntimeError(f"cannot connect from state {self.state.value}")
        self._set_state(ConnectionState.CONNECTING)
        self.transport.connect(endpoint)

    def close(self) -> None:
        ''' Close the transport; the close signal it produces moves the session to CLOSED. '''
        self.transport.close()

    def on_open(self) -> None:
        if self.state is not ConnectionState.CONNECTING:
            log.warning("open signal ignored in state %s", self.state.value)
            return
        self._set_state(ConnectionState.OPEN)
        self.renderer.clear_identity_entry()

    def on_close(self) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        self._set_state(ConnectionState.CLOSED)

    # --------- incoming ----------
    def on_message(self, data: bytes) -> None:
        ''' Decode one frame and hand it to the matching renderer method. '''
        event = protocol.decode(data)
        if isinstance(event, Message):
            if self._is_own_echo(event):
                log.debug("suppressed echo of own message from %s", event.sender_name)
                return
            self.renderer.render_peer_bubble(event.sender_name, event.body, event.sent_at)
        elif isinstance(event, UserJoin):
            self.renderer.render_join_notice(join_text(event.sender_name))
        elif isinstance(event, UserLeave):
            self.renderer.render_leave_notice(leave_text(event.sender_name))
        elif isinstance(event, System):
            self.renderer.render_system_notice(event.body)
        elif isinstance(event, LegacyText):
            self.renderer.render_peer_bubble(None, event.body, None)
        elif isinstance(event, Unknown):
            log.info("dropping frame with unknown type %r: %.200s", event.type_name, event.raw)

    def _is_own_echo(self, event: Message) -> bool:
        now = self.clock()
        while self._pending and now - self._pending[0][0] > ECHO_WINDOW:
            self._pending.popleft()   # the server did not echo it in time
        for entry in self._pending:
            if (entry[1], entry[2]) == (event.sender_name, event.body):
                self._pending.remove(entry)
                return True
        return False

    # --------- outgoing ----------
    def submit(self, composed_text: str) -> bool:
        '''
        Send a message and echo it locally as an own bubble.
        Input:
            - composed_text: text of the compose field
        Output:
            - True if the message was sent and rendered (the caller clears its
              compose field), False for blank input, which is ignored
        '''
        if not composed_text.strip():
            return False
        name = self.identity.display_name   # read at send time, not compose time
        now = datetime.datetime.now(datetime.timezone.utc)
        self.transport.send(protocol.encode(composed_text, self.identity, now=now))
        self._pending.append((self.clock(), name, composed_text))
        self.renderer.render_own_bubble(name, composed_text, now)
        return True

    def set_identity(self, value: str) -> None:
        ''' Takes effect on the next submit; bubbles already shown keep their label. '''
        self.identity.set(value)
