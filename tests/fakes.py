"""In-memory stand-ins for sockets and legs used across the tests."""
from __future__ import annotations

import asyncio
from typing import Optional

from websockets.exceptions import ConnectionClosedError

_HANGUP = object()
_ERROR = object()


class FakeWebSocket:
    """Just enough of a websockets connection for WebSocketLeg."""

    def __init__(self, fail_sends: bool = False) -> None:
        self.sent: list[str] = []
        self.close_calls = 0
        self.fail_sends = fail_sends
        self._inbox: asyncio.Queue = asyncio.Queue()

    def feed(self, message) -> None:
        self._inbox.put_nowait(message)

    def hang_up(self) -> None:
        self._inbox.put_nowait(_HANGUP)

    def fail(self) -> None:
        self._inbox.put_nowait(_ERROR)

    async def send(self, message: str) -> None:
        if self.fail_sends or self.close_calls:
            raise ConnectionClosedError(None, None)
        self.sent.append(message)

    async def close(self) -> None:
        self.close_calls += 1
        self._inbox.put_nowait(_HANGUP)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _HANGUP:
            raise StopAsyncIteration
        if item is _ERROR:
            raise ConnectionClosedError(None, None)
        return item


class FakeLeg:
    """Leg double for CallSession tests.  Records every call it receives."""

    name = "fake"
    frames_sent = 0

    def __init__(self) -> None:
        self.event_handler = None
        self.close_handler = None
        self.close_calls = 0
        self.closed = False
        self.frames_dropped = 0
        self.frames_malformed = 0
        self._done = asyncio.Event()

    def on_event(self, handler) -> None:
        self.event_handler = handler

    def on_close(self, handler) -> None:
        self.close_handler = handler

    def emit(self, evt) -> None:
        self.event_handler(evt)

    def hang_up(self, reason: str = "closed by peer") -> None:
        self._done.set()
        self.close_handler(self.name, reason)

    async def run(self) -> None:
        await self._done.wait()

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        self._done.set()


class FakeTelephony(FakeLeg):
    name = "telephony"

    def __init__(self) -> None:
        super().__init__()
        self.sent: list[tuple] = []
        self.attempts: list[tuple] = []

    @property
    def frames_sent(self) -> int:
        return len(self.sent)

    def send_media(self, stream_sid: str, mulaw: bytes) -> None:
        self.attempts.append(("media", stream_sid, mulaw))
        if not self.closed:
            self.sent.append(("media", stream_sid, mulaw))

    def send_mark(self, stream_sid: str, name: Optional[str] = None) -> Optional[str]:
        name = name or f"response_{len(self.attempts) + 1}"
        self.attempts.append(("mark", stream_sid, name))
        if self.closed:
            return None
        self.sent.append(("mark", stream_sid, name))
        return name


class FakeRealtime(FakeLeg):
    name = "realtime"

    def __init__(self, connect_error: Optional[Exception] = None, gated: bool = False) -> None:
        super().__init__()
        self.connect_error = connect_error
        self.gate: Optional[asyncio.Event] = asyncio.Event() if gated else None
        self.log: list[tuple] = []

    async def connect(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.connect_error is not None:
            raise self.connect_error
        self.log.append(("connect",))

    def configure_session(self, profile) -> None:
        self.log.append(("configure", profile))

    def send_audio(self, pcm16: bytes) -> None:
        self.log.append(("append", pcm16))

    def commit_audio(self) -> None:
        self.log.append(("commit",))

    def kinds(self) -> list[str]:
        return [entry[0] for entry in self.log]

    @property
    def appended(self) -> list[bytes]:
        return [entry[1] for entry in self.log if entry[0] == "append"]
