"""
OpenAI Realtime API WebSocket client (upstream leg).

Credentials, endpoint and session tuning live in a per-process
RealtimeSettings built once at startup; each call gets its own
RealtimeClient holding only that call's connection.
"""
from __future__ import annotations

import asyncio
import logging
import ssl
from dataclasses import dataclass
from typing import Optional, Union

import certifi
from websockets.asyncio.client import connect
from websockets.exceptions import WebSocketException

from .config import BridgeConfig
from .errors import UpstreamConnectError
from .events import UpstreamEvent, parse_upstream
from .legs import WebSocketLeg
from .payloads import audio_append, audio_commit, session_update
from .personas import VoiceProfile

logger = logging.getLogger(__name__)


def build_ssl_context(wss_pem: str, insecure: bool) -> ssl.SSLContext:
    """Create SSL context for the realtime WebSocket connection."""
    if insecure:
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        logger.warning("TLS verification DISABLED (insecure mode)")
        return ctx

    ctx = ssl.create_default_context(purpose=ssl.Purpose.SERVER_AUTH)

    if wss_pem:
        with open(wss_pem, "rb") as f:
            head = f.read(4096)
        if b"PRIVATE KEY" in head:
            raise ValueError("WSS_PEM looks like a private key; provide CA bundle")
        ctx.load_verify_locations(cafile=wss_pem)
        logger.info("TLS: custom CA from %s", wss_pem)
        return ctx

    ctx.load_verify_locations(cafile=certifi.where())
    return ctx


@dataclass(frozen=True)
class RealtimeSettings:
    api_key: str
    model: str
    base_url: str
    ssl_context: Optional[ssl.SSLContext]
    connect_timeout_s: float = 10.0
    vad_threshold: float = 0.5
    vad_prefix_padding_ms: int = 300
    vad_silence_duration_ms: int = 500
    vad_create_response: bool = True
    temperature: float = 0.8
    queue_max_frames: int = 500
    drain_timeout_s: float = 1.0

    @property
    def endpoint_url(self) -> str:
        return f"{self.base_url}?model={self.model}"

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

    @classmethod
    def from_config(cls, cfg: BridgeConfig) -> "RealtimeSettings":
        secure = cfg.realtime_url.startswith("wss://")
        return cls(
            api_key=cfg.openai_api_key,
            model=cfg.model,
            base_url=cfg.realtime_url,
            ssl_context=build_ssl_context(cfg.wss_pem, cfg.openai_wss_insecure) if secure else None,
            connect_timeout_s=cfg.connect_timeout_s,
            vad_threshold=cfg.vad_threshold,
            vad_prefix_padding_ms=cfg.vad_prefix_padding_ms,
            vad_silence_duration_ms=cfg.vad_silence_duration_ms,
            vad_create_response=cfg.vad_create_response,
            temperature=cfg.temperature,
            queue_max_frames=cfg.upstream_queue_max_frames,
            drain_timeout_s=cfg.leg_drain_timeout_s,
        )


class RealtimeClient(WebSocketLeg[UpstreamEvent]):
    """One call's connection to the realtime endpoint.

    Lifecycle: connect() -> configure_session() -> run() pump, with
    send_audio()/commit_audio() queued fire-and-forget in between.
    Appends are bounded by ``queue_max_frames``; when the socket falls
    behind, the oldest queued append is dropped.  session.update and
    commit frames are never dropped.
    """

    name = "realtime"

    def __init__(self, settings: RealtimeSettings) -> None:
        super().__init__(
            queue_max_frames=settings.queue_max_frames,
            drain_timeout_s=settings.drain_timeout_s,
        )
        self._settings = settings
        self._configured = False
        self.appends_sent = 0
        self.commits_sent = 0

    async def connect(self) -> None:
        if self._ws is not None:
            raise RuntimeError("realtime: already connected")
        s = self._settings
        try:
            ws = await connect(
                s.endpoint_url,
                additional_headers=s.headers,
                ssl=s.ssl_context,
                open_timeout=s.connect_timeout_s,
                max_size=None,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise UpstreamConnectError(f"cannot reach {s.base_url} (model={s.model}): {e}") from e
        if self._closed:
            # closed while the handshake was in flight
            await ws.close()
            raise UpstreamConnectError("realtime leg closed during connect")
        self._attach(ws)
        logger.info("Realtime connection established (model=%s)", s.model)

    def configure_session(self, profile: VoiceProfile) -> None:
        """Queue the one-time session.update; must precede any audio."""
        if self._configured:
            raise RuntimeError("realtime: session already configured")
        if self._ws is None:
            raise RuntimeError("realtime: configure_session() before connect()")
        s = self._settings
        self._enqueue(session_update(
            voice=profile.voice,
            instructions=profile.instructions,
            vad_threshold=s.vad_threshold,
            vad_prefix_padding_ms=s.vad_prefix_padding_ms,
            vad_silence_duration_ms=s.vad_silence_duration_ms,
            create_response=s.vad_create_response,
            temperature=s.temperature,
        ))
        self._configured = True
        logger.info(
            "Realtime session: persona=%s voice=%s vad=%.2f silence=%dms prefix=%dms temp=%.1f",
            profile.name, profile.voice, s.vad_threshold,
            s.vad_silence_duration_ms, s.vad_prefix_padding_ms, s.temperature,
        )

    def send_audio(self, pcm16: bytes) -> None:
        if not pcm16:
            return
        if self._enqueue(audio_append(pcm16), droppable=True):
            self.appends_sent += 1

    def commit_audio(self) -> None:
        if self._enqueue(audio_commit()):
            self.commits_sent += 1

    def _parse(self, message: Union[str, bytes]) -> Optional[UpstreamEvent]:
        if isinstance(message, (bytes, bytearray)):
            return None
        return parse_upstream(message)
