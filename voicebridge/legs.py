"""
Shared plumbing for the two sockets of a call.

A leg owns one websocket connection and gives the session:

  - run():      reader pump; parses each inbound frame and hands the
                decoded event to the registered handler, in arrival order.
  - _enqueue(): fire-and-forget send; frames go through a FIFO drained by
                a single writer task, so the event path never waits on
                the network.  Optionally bounded: when full, the oldest
                droppable frame is evicted.  Control frames are never
                droppable and may exceed the bound.
  - close():    idempotent; flushes what is already queued (bounded by
                the drain timeout) and closes the socket.
  - on_close:   notified exactly once when the connection ends without
                the leg having been closed locally.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from websockets.asyncio.connection import Connection
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from .errors import MalformedFrame

logger = logging.getLogger(__name__)

E = TypeVar("E")

EventHandler = Callable[[Any], None]
CloseHandler = Callable[[str, str], None]


class WebSocketLeg(Generic[E]):
    name = "leg"

    def __init__(self, *, queue_max_frames: int = 0, drain_timeout_s: float = 1.0) -> None:
        self._ws: Optional[Connection] = None
        self._queue: deque[tuple[Optional[str], bool]] = deque()
        self._wakeup = asyncio.Event()
        self._queue_max = max(0, queue_max_frames)
        self._drain_timeout_s = drain_timeout_s
        self._writer_task: Optional[asyncio.Task] = None
        self._event_handler: Optional[EventHandler] = None
        self._close_handler: Optional[CloseHandler] = None
        self._closed = False
        self._close_reported = False

        self.frames_received = 0
        self.frames_malformed = 0
        self.frames_sent = 0
        self.frames_dropped = 0

    # ── registration ──

    def on_event(self, handler: EventHandler) -> None:
        self._event_handler = handler

    def on_close(self, handler: CloseHandler) -> None:
        self._close_handler = handler

    @property
    def closed(self) -> bool:
        return self._closed

    # ── subclass hook ──

    def _parse(self, message: Union[str, bytes]) -> Optional[E]:
        raise NotImplementedError

    # ── wiring ──

    def _attach(self, ws: Connection) -> None:
        self._ws = ws
        self._writer_task = asyncio.create_task(self._write_loop())

    def _enqueue(self, frame: str, *, droppable: bool = False) -> bool:
        if self._closed or self._ws is None:
            return False
        if self._queue_max and len(self._queue) >= self._queue_max and self._drop_oldest():
            self.frames_dropped += 1
            if self.frames_dropped == 1 or self.frames_dropped % 50 == 0:
                logger.warning(
                    "%s: send queue full (%d frames), dropped oldest (total dropped=%d)",
                    self.name, self._queue_max, self.frames_dropped,
                )
        self._queue.append((frame, droppable))
        self._wakeup.set()
        return True

    def _drop_oldest(self) -> bool:
        for i, (_, droppable) in enumerate(self._queue):
            if droppable:
                del self._queue[i]
                return True
        return False

    async def _write_loop(self) -> None:
        ws = self._ws
        if ws is None:
            raise RuntimeError(f"{self.name}: writer started before the connection exists")
        try:
            while True:
                while not self._queue:
                    self._wakeup.clear()
                    await self._wakeup.wait()
                frame, _ = self._queue.popleft()
                if frame is None:
                    return
                await ws.send(frame)
                self.frames_sent += 1
        except ConnectionClosed as e:
            self._report_closed(f"send failed: {e}")

    async def run(self) -> None:
        """Pump inbound frames until the connection ends."""
        if self._ws is None:
            raise RuntimeError(f"{self.name}: run() before the connection exists")
        reason = "closed by peer"
        try:
            async for message in self._ws:
                if self._closed:
                    break
                self.frames_received += 1
                try:
                    evt = self._parse(message)
                except MalformedFrame as e:
                    self.frames_malformed += 1
                    logger.warning("%s: dropping malformed frame: %s", self.name, e)
                    continue
                if evt is None or self._closed or self._event_handler is None:
                    continue
                self._event_handler(evt)
        except ConnectionClosedError as e:
            reason = f"connection error: {e}"
        except Exception as e:
            logger.exception("%s: reader failed", self.name)
            reason = f"reader failed: {e}"
        finally:
            self._report_closed(reason)

    def _report_closed(self, reason: str) -> None:
        if self._closed or self._close_reported:
            return
        self._close_reported = True
        logger.info("%s: %s", self.name, reason)
        if self._close_handler is not None:
            self._close_handler(self.name, reason)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._writer_task is not None and not self._writer_task.done():
            self._queue.append((None, False))
            self._wakeup.set()
            try:
                await asyncio.wait_for(self._writer_task, timeout=self._drain_timeout_s)
            except asyncio.TimeoutError:
                logger.warning(
                    "%s: %d queued frame(s) not flushed within %.1fs",
                    self.name, len(self._queue), self._drain_timeout_s,
                )
            except Exception:
                logger.warning("%s: writer failed while draining", self.name, exc_info=True)

        if self._ws is not None:
            try:
                await self._ws.close()
            except Exception:
                logger.debug("%s: close raised", self.name, exc_info=True)
