from __future__ import annotations

import base64
import json
from typing import Any


def _dumps(obj: dict[str, Any]) -> str:
    return json.dumps(obj, separators=(",", ":"))


def b64encode_audio(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


# ── Telephony (downstream) ──

def media_frame(stream_sid: str, mulaw: bytes) -> str:
    """Outbound media frame the telephony provider plays to the caller.

      {"event":"media","streamSid":"MZ...","media":{"payload":"<base64 mu-law>"}}
    """
    return _dumps({
        "event": "media",
        "streamSid": stream_sid,
        "media": {"payload": b64encode_audio(mulaw)},
    })


def mark_frame(stream_sid: str, name: str) -> str:
    """Completion marker; the provider echoes it back once playback reaches it."""
    return _dumps({
        "event": "mark",
        "streamSid": stream_sid,
        "mark": {"name": name},
    })


# ── Realtime (upstream) ──

def session_update(
    *,
    voice: str,
    instructions: str,
    vad_threshold: float,
    vad_prefix_padding_ms: int,
    vad_silence_duration_ms: int,
    create_response: bool,
    temperature: float,
) -> str:
    """One-time session configuration sent right after the upstream connects.

    threshold: 0.0-1.0, higher needs louder speech to open a turn.
    prefix_padding_ms: audio kept from before detected speech.
    silence_duration_ms: silence required before the turn is closed.
    """
    return _dumps({
        "type": "session.update",
        "session": {
            "input_audio_format": "pcm16",
            "output_audio_format": "pcm16",
            "voice": voice,
            "instructions": instructions,
            "modalities": ["text", "audio"],
            "turn_detection": {
                "type": "server_vad",
                "threshold": vad_threshold,
                "prefix_padding_ms": vad_prefix_padding_ms,
                "silence_duration_ms": vad_silence_duration_ms,
                "create_response": create_response,
            },
            "temperature": temperature,
        },
    })


def audio_append(pcm16: bytes) -> str:
    return _dumps({
        "type": "input_audio_buffer.append",
        "audio": b64encode_audio(pcm16),
    })


def audio_commit() -> str:
    return _dumps({"type": "input_audio_buffer.commit"})
