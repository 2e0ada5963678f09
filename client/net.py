import logging
import threading
from queue import Empty, Queue
from typing import Optional, Protocol, Tuple

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import ClientConnection, connect as ws_connect

from common.protocol import ENC

log = logging.getLogger(__name__)

# Transport signals queued by the receive thread, drained by pump()
OPEN, MESSAGE, CLOSE = "open", "message", "close"


class TransportError(Exception):
    """Connection-level failure: refused, bad URI, rejected handshake or abnormal close."""
    pass


class TransportHandler(Protocol):
    def on_open(self) -> None: ...
    def on_message(self, data: bytes) -> None: ...
    def on_close(self) -> None: ...


class NetClient:
    '''
    WebSocket client for the chat channel.

    The receive thread never calls the handler directly. It puts
    (signal, payload) pairs on a queue and the owner's event loop drains them
    with pump(), so all handler code runs on one thread.
    '''
    def __init__(self, handler: Optional[TransportHandler] = None, open_timeout: float = 10):
        self.handler = handler
        self.open_timeout = open_timeout
        self.ws: Optional[ClientConnection] = None
        self.events: "Queue[Tuple[str, Optional[bytes]]]" = Queue()
        self.recv_thread: Optional[threading.Thread] = None   # thread for receiving frames
        self.running = False

    @property
    def connected(self) -> bool:
        return self.ws is not None

    def connect(self, url: str) -> None:
        ''' Start connecting to url in the background; returns immediately. '''
        if self.recv_thread is not None:
            raise RuntimeError("NetClient.connect() called twice")
        self.running = True
        self.recv_thread = threading.Thread(target=self._recv_loop, args=(url,), daemon=True)
        self.recv_thread.start()

    def _open(self, url: str) -> ClientConnection:
        try:
            return ws_connect(url, open_timeout=self.open_timeout)
        except (OSError, WebSocketException) as exc:   # InvalidURI/InvalidHandshake are WebSocketExceptions
            raise TransportError(f"cannot connect to {url}: {exc}") from exc

    def _recv_loop(self, url: str) -> None:
        ''' Thread function: open the socket, then queue every frame until it closes '''
        try:
            ws = self._open(url)
            with ws:
                self.ws = ws
                if not self.running:   # close() was called during the handshake
                    return
                self.events.put((OPEN, None))
                try:
                    for frame in ws:
                        if isinstance(frame, str):
                            frame = frame.encode(ENC)
                        self.events.put((MESSAGE, frame))
                except ConnectionClosed as exc:
                    raise TransportError(f"connection lost: {exc}") from exc
        except TransportError as exc:
            log.warning("%s", exc)
        finally:
            self.ws = None
            self.running = False
            self.events.put((CLOSE, None))

    def send(self, data: bytes) -> None:
        '''
        Send one frame, fire-and-forget. When the socket is not open or the
        send fails the frame is dropped and logged; nothing is raised.
        Input:
            - data: UTF-8 encoded JSON envelope
        '''
        ws = self.ws
        if ws is None:
            log.warning("not connected, dropping outgoing frame (%d bytes)", len(data))
            return
        try:
            ws.send(data.decode(ENC))   # chat frames are text frames
        except (ConnectionClosed, OSError) as exc:
            log.warning("send failed, frame dropped: %s", exc)

    def pump(self, handler: Optional[TransportHandler] = None) -> int:
        '''
        Deliver every queued transport signal to the handler, in arrival order.
        Call this from the thread that owns the session (e.g. the UI loop).
        Output: the number of signals delivered
        '''
        handler = handler or self.handler
        if handler is None:
            return 0   # nothing registered yet, leave the backlog queued
        n = 0
        while True:
            try:
                kind, payload = self.events.get_nowait()
            except Empty:
                return n
            try:
                if kind == OPEN:
                    handler.on_open()
                elif kind == MESSAGE:
                    handler.on_message(payload)
                elif kind == CLOSE:
                    handler.on_close()
            except Exception:
                # A failing handler must not strand the signals queued behind it
                log.exception("handler failed on %s signal", kind)
            n += 1

    def close(self) -> None:
        self.running = False
        ws = self.ws
        if ws is not None:
            ws.close()
