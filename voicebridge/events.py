"""
Inbound event variants for both legs, decoded once at the socket boundary.

Telephony (downstream) frames are JSON with an ``event`` discriminator:

  {"event":"start","start":{"streamSid":"MZ...","callSid":"CA..."}}
  {"event":"media","media":{"payload":"<base64 mu-law>"}}
  {"event":"stop"}

Realtime (upstream) frames are JSON with a ``type`` discriminator:

  {"type":"response.audio.delta","delta":"<base64 PCM16-LE>"}
  {"type":"response.done"}

Everything else on either leg is ignored (parsers return None).  Frames
that cannot be decoded raise MalformedFrame; the leg drops them.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from .errors import MalformedFrame

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamStart:
    stream_sid: str
    call_sid: Optional[str] = None


@dataclass(frozen=True)
class Media:
    payload: bytes  # mu-law


@dataclass(frozen=True)
class StreamStop:
    pass


@dataclass(frozen=True)
class ResponseAudioDelta:
    pcm: bytes  # PCM16-LE


@dataclass(frozen=True)
class ResponseDone:
    pass


DownstreamEvent = Union[StreamStart, Media, StreamStop]
UpstreamEvent = Union[ResponseAudioDelta, ResponseDone]

_DOWNSTREAM_IGNORED = frozenset({"connected", "mark", "dtmf"})

_UPSTREAM_AUDIO_DELTA = "response.audio.delta"
_UPSTREAM_DONE = "response.done"
_UPSTREAM_LOGGED = frozenset({"session.created", "session.updated"})


def _load(raw: Union[str, bytes]) -> dict[str, Any]:
    try:
        obj = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedFrame(f"not JSON: {e}") from e
    if not isinstance(obj, dict):
        raise MalformedFrame(f"expected a JSON object, got {type(obj).__name__}")
    return obj


def _b64(value: Any, what: str) -> bytes:
    if not isinstance(value, str):
        raise MalformedFrame(f"{what} missing or not a string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedFrame(f"{what} is not valid base64") from e


def parse_downstream(raw: Union[str, bytes]) -> Optional[DownstreamEvent]:
    msg = _load(raw)
    kind = msg.get("event")

    if kind == "start":
        start = msg.get("start")
        sid = start.get("streamSid") if isinstance(start, dict) else None
        if not sid:
            sid = msg.get("streamSid")
        if not isinstance(sid, str) or not sid:
            raise MalformedFrame("start event without streamSid")
        call_sid = start.get("callSid") if isinstance(start, dict) else None
        return StreamStart(stream_sid=sid, call_sid=call_sid if isinstance(call_sid, str) else None)

    if kind == "media":
        media = msg.get("media")
        if not isinstance(media, dict):
            raise MalformedFrame("media event without media object")
        return Media(payload=_b64(media.get("payload"), "media.payload"))

    if kind == "stop":
        return StreamStop()

    if kind in _DOWNSTREAM_IGNORED:
        return None

    if not isinstance(kind, str):
        raise MalformedFrame("frame has no event discriminator")
    logger.debug("Telephony: ignoring event %r", kind)
    return None


def parse_upstream(raw: Union[str, bytes]) -> Optional[UpstreamEvent]:
    evt = _load(raw)
    kind = evt.get("type")

    if kind == _UPSTREAM_AUDIO_DELTA:
        pcm = _b64(evt.get("delta"), "delta")
        if len(pcm) % 2:
            raise MalformedFrame(f"PCM16 delta has odd length {len(pcm)}")
        return ResponseAudioDelta(pcm=pcm)

    if kind == _UPSTREAM_DONE:
        return ResponseDone()

    if kind == "error":
        logger.error("Realtime error: %s", json.dumps(evt, ensure_ascii=False))
    elif kind in _UPSTREAM_LOGGED:
        logger.info("Realtime: %s", kind)
    elif not isinstance(kind, str):
        raise MalformedFrame("frame has no type discriminator")
    return None
