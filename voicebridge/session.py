"""
Per-call bridge coordinator.

Pairs one telephony leg with one realtime leg for the duration of a call:

  caller  --mu-law-->  MediaStreamHandler --decode--> RealtimeClient  --PCM16-->  AI
  caller  <--mu-law--  MediaStreamHandler <--encode-- RealtimeClient  <--PCM16--  AI

State machine:

  CONNECTING  upstream handshake in flight; caller audio is dropped
      |
  ACTIVE      both directions relay; StreamStop commits the input buffer
      |
  CLOSING     either leg ended (or stop/connect failure); both get close()
      |
  CLOSED      terminal; nothing is sent after this point

Closing either leg always closes the other.  Every transition happens on
the session's own task; leg callbacks only record the reason and wake it.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from typing import Optional

from .codec import decode_mulaw, encode_mulaw
from .errors import UpstreamConnectError
from .events import (
    DownstreamEvent,
    Media,
    ResponseAudioDelta,
    ResponseDone,
    StreamStart,
    StreamStop,
    UpstreamEvent,
)
from .personas import VoiceProfile
from .realtime import RealtimeClient
from .scaling.metrics import CallMetrics
from .telephony import MediaStreamHandler

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class CallSession:
    """One bridged call.  Drive it with ``await session.run()``."""

    def __init__(
        self,
        downstream: MediaStreamHandler,
        upstream: RealtimeClient,
        profile: VoiceProfile,
        *,
        peer: object = None,
    ) -> None:
        self._downstream = downstream
        self._upstream = upstream
        self._profile = profile
        self._peer = peer

        self._state = SessionState.CONNECTING
        self._stream_sid: Optional[str] = None
        self._close_reason = ""
        self._closing = asyncio.Event()
        self._close_started = False
        self._tasks: list[asyncio.Task] = []

        self.metrics = CallMetrics(persona=profile.name)

        downstream.on_event(self._on_downstream_event)
        downstream.on_close(self._on_leg_closed)
        upstream.on_event(self._on_upstream_event)
        upstream.on_close(self._on_leg_closed)

    # ── read-only view ──

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def stream_sid(self) -> Optional[str]:
        return self._stream_sid

    @property
    def profile(self) -> VoiceProfile:
        return self._profile

    @property
    def close_reason(self) -> str:
        return self._close_reason

    # ── lifecycle ──

    async def run(self) -> None:
        logger.info(
            "Call connected: peer=%s persona=%s voice=%s",
            self._peer, self._profile.name, self._profile.voice,
        )
        self._tasks.append(asyncio.create_task(self._downstream.run()))
        try:
            if await self._establish_upstream():
                self._upstream.configure_session(self._profile)
                self._state = SessionState.ACTIVE
                self._tasks.append(asyncio.create_task(self._upstream.run()))
                logger.info("Call active: peer=%s stream=%s", self._peer, self._stream_sid)
            await self._closing.wait()
        finally:
            await self.close()

    async def _establish_upstream(self) -> bool:
        connect_task = asyncio.create_task(self._upstream.connect())
        closing_task = asyncio.create_task(self._closing.wait())
        try:
            await asyncio.wait({connect_task, closing_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closing_task.cancel()

        if not connect_task.done():
            connect_task.cancel()
            try:
                await connect_task
            except (asyncio.CancelledError, UpstreamConnectError):
                pass
            logger.info("Call ended before realtime connected: %s", self._close_reason)
            return False

        try:
            connect_task.result()
        except UpstreamConnectError as e:
            logger.error("Realtime connect failed: %s", e)
            self._begin_closing(f"upstream connect failed: {e}")
            return False
        return not self._closing.is_set()

    def _begin_closing(self, reason: str) -> None:
        if self._state in (SessionState.CLOSING, SessionState.CLOSED):
            return
        logger.info("Call closing (%s): stream=%s", reason, self._stream_sid)
        self._close_reason = reason
        self._state = SessionState.CLOSING
        self._closing.set()

    async def close(self) -> None:
        """Close both legs.  Safe to call any number of times."""
        if self._close_started:
            return
        self._close_started = True
        self._begin_closing("session closed")

        await asyncio.gather(self._downstream.close(), self._upstream.close())

        for t in self._tasks:
            if not t.done():
                t.cancel()
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for r in results:
            if isinstance(r, Exception):
                logger.warning("Leg task failed: %r", r)

        self._state = SessionState.CLOSED
        self.metrics.upstream_frames_sent = self._upstream.frames_sent
        self.metrics.upstream_frames_dropped = self._upstream.frames_dropped
        self.metrics.downstream_frames_sent = self._downstream.frames_sent
        self.metrics.malformed_frames = self._downstream.frames_malformed + self._upstream.frames_malformed
        self.metrics.finalize(self._close_reason)
        self.metrics.log_summary()
        logger.info("Call ended: peer=%s stream=%s", self._peer, self._stream_sid)

    # ── leg callbacks ──

    def _on_leg_closed(self, leg: str, reason: str) -> None:
        self._begin_closing(f"{leg} {reason}")

    def _on_downstream_event(self, evt: DownstreamEvent) -> None:
        if self._state in (SessionState.CLOSING, SessionState.CLOSED):
            return

        if isinstance(evt, Media):
            if self._state is not SessionState.ACTIVE:
                self.metrics.caller_frames_dropped += 1
                if self.metrics.caller_frames_dropped == 1:
                    logger.info("Dropping caller audio until realtime is ready")
                return
            pcm = decode_mulaw(evt.payload)
            self._upstream.send_audio(pcm)
            self.metrics.caller_frames += 1
            self.metrics.caller_bytes += len(evt.payload)
            n = self.metrics.caller_frames
            if n == 1 or n % 250 == 0:
                logger.info("Caller->AI: frames=%d bytes=%d", n, self.metrics.caller_bytes)

        elif isinstance(evt, StreamStart):
            if self._stream_sid is not None:
                logger.warning(
                    "Ignoring second stream start %s (session is bound to %s)",
                    evt.stream_sid, self._stream_sid,
                )
                return
            self._stream_sid = evt.stream_sid
            self.metrics.call_id = evt.call_sid or evt.stream_sid
            logger.info("Stream started: stream=%s call=%s", evt.stream_sid, evt.call_sid)

        elif isinstance(evt, StreamStop):
            logger.info("Stream stopped: stream=%s", self._stream_sid)
            if self._state is SessionState.ACTIVE:
                self._upstream.commit_audio()
            self._begin_closing("stream stopped")

    def _on_upstream_event(self, evt: UpstreamEvent) -> None:
        if self._state is not SessionState.ACTIVE:
            return

        if isinstance(evt, ResponseAudioDelta):
            if not evt.pcm:
                return
            if self._stream_sid is None:
                self.metrics.ai_deltas_dropped += 1
                logger.warning("AI audio before stream start; dropping %d bytes", len(evt.pcm))
                return
            mulaw = encode_mulaw(evt.pcm)
            self._downstream.send_media(self._stream_sid, mulaw)
            self.metrics.ai_deltas += 1
            self.metrics.ai_mulaw_bytes += len(mulaw)
            if self.metrics.ai_deltas == 1:
                logger.info("First AI audio chunk: pcm=%d bytes", len(evt.pcm))

        elif isinstance(evt, ResponseDone):
            if self._stream_sid is None:
                logger.debug("Response done before stream start; no mark sent")
                return
            name = self._downstream.send_mark(self._stream_sid)
            if name is not None:
                self.metrics.marks_sent += 1
            logger.info("Response done: deltas=%d mark=%s", self.metrics.ai_deltas, name)
