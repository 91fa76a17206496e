"""Downstream leg: the telephony provider's media stream socket."""
from __future__ import annotations

import itertools
import logging
import time
from typing import Optional, Union

from websockets.asyncio.server import ServerConnection

from .events import DownstreamEvent, parse_downstream
from .legs import WebSocketLeg
from .payloads import mark_frame, media_frame

logger = logging.getLogger(__name__)


class MediaStreamHandler(WebSocketLeg[DownstreamEvent]):
    """Owns the inbound media stream connection for one call.

    The connection is already upgraded when this is constructed, so the
    writer starts immediately.  Outbound audio is never dropped (the
    queue is unbounded): realtime audio arrives faster than playback
    and the provider does its own buffering.
    """

    name = "telephony"

    def __init__(self, ws: ServerConnection, *, drain_timeout_s: float = 1.0) -> None:
        super().__init__(queue_max_frames=0, drain_timeout_s=drain_timeout_s)
        self._mark_seq = itertools.count(1)
        self.marks_sent = 0
        self._attach(ws)

    def _parse(self, message: Union[str, bytes]) -> Optional[DownstreamEvent]:
        return parse_downstream(message)

    def send_media(self, stream_sid: str, mulaw: bytes) -> None:
        """Queue one media frame for the caller.  No-op once closed."""
        self._enqueue(media_frame(stream_sid, mulaw))

    def send_mark(self, stream_sid: str, name: Optional[str] = None) -> Optional[str]:
        """Queue a completion marker.  Returns the mark name, or None if closed."""
        if name is None:
            name = f"response_{int(time.time() * 1000)}_{next(self._mark_seq)}"
        if not self._enqueue(mark_frame(stream_sid, name)):
            return None
        self.marks_sent += 1
        logger.debug("telephony: mark %s queued for %s", name, stream_sid)
        return name
