from typing import List, Optional, Tuple

import pytest

from client.session import SessionController


class FakeTransport:
    ''' Records what the session does to the transport; no network. '''
    def __init__(self):
        self.handler = None
        self.sent: List[bytes] = []
        self.urls: List[str] = []
        self.closed = False

    def connect(self, url):
        self.urls.append(url)

    def send(self, data):
        self.sent.append(data)

    def close(self):
        self.closed = True


class RecordingRenderer:
    def __init__(self):
        self.calls: List[Tuple] = []

    def render_own_bubble(self, sender, body, sent_at):
        self.calls.append(("own", sender, body))

    def render_peer_bubble(self, sender, body, sent_at):
        self.calls.append(("peer", sender, body))

    def render_join_notice(self, text):
        self.calls.append(("join", text))

    def render_leave_notice(self, text):
        self.calls.append(("leave", text))

    def render_system_notice(self, text):
        self.calls.append(("system", text))

    def clear_identity_entry(self):
        self.calls.append(("clear_identity",))

    def state_changed(self, state):
        self.calls.append(("state", state))

    def of(self, kind: str) -> List[Tuple]:
        return [c for c in self.calls if c[0] == kind]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()

@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()

@pytest.fixture
def session(renderer, transport) -> SessionController:
    return SessionController(renderer, transport=transport)

@pytest.fixture
def open_session(session) -> SessionController:
    session.connect("ws://chat.test/ws")
    session.on_open()
    return session
