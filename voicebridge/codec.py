"""
G.711 mu-law <-> PCM16-LE transcoding.

Telephony leg:  8 kHz mu-law, one byte per sample.
Realtime leg:   PCM16 little-endian, two bytes per sample.

Both directions are stateless and sample-for-sample (no resampling), so
160 mu-law bytes always become 320 PCM bytes and vice versa.  The
companding tables come from audioop (stdlib up to 3.12, audioop-lts
from 3.13).  audioop works in native byte order, so on big-endian hosts
the PCM side is byte-swapped to keep the wire format little-endian.
"""
from __future__ import annotations

import sys
import warnings
from typing import Sequence, Union

import numpy as np

with warnings.catch_warnings():
    warnings.simplefilter("ignore", DeprecationWarning)
    import audioop

from .errors import InvalidAudioFrame

SAMPLE_WIDTH = 2
PCM16_LE = np.dtype("<i2")

_NATIVE_IS_LE = sys.byteorder == "little"

PcmInput = Union[bytes, bytearray, memoryview, np.ndarray, Sequence[int]]


def _to_native(pcm_le: bytes) -> bytes:
    if _NATIVE_IS_LE:
        return pcm_le
    return audioop.byteswap(pcm_le, SAMPLE_WIDTH)


def _to_le(pcm_native: bytes) -> bytes:
    if _NATIVE_IS_LE:
        return pcm_native
    return audioop.byteswap(pcm_native, SAMPLE_WIDTH)


def pcm16_bytes(samples: PcmInput) -> bytes:
    """Normalise PCM input to little-endian PCM16 bytes.

    Byte-like input is taken as already little-endian and must have an
    even length.  Anything else is treated as a sequence of signed
    16-bit sample values.
    """
    if isinstance(samples, (bytes, bytearray, memoryview)):
        raw = bytes(samples)
        if len(raw) % SAMPLE_WIDTH:
            raise InvalidAudioFrame(f"PCM16 buffer has odd length {len(raw)}")
        return raw
    arr = np.asarray(samples)
    if arr.size and (arr.min() < -32768 or arr.max() > 32767):
        raise InvalidAudioFrame("PCM16 sample out of range")
    return arr.astype(PCM16_LE).tobytes()


def pcm16_samples(pcm: bytes) -> np.ndarray:
    """Little-endian view of a PCM16 buffer as int16 samples."""
    if len(pcm) % SAMPLE_WIDTH:
        raise InvalidAudioFrame(f"PCM16 buffer has odd length {len(pcm)}")
    return np.frombuffer(pcm, dtype=PCM16_LE)


def encode_mulaw(pcm: PcmInput) -> bytes:
    """PCM16-LE -> mu-law.  Lossy; one output byte per input sample."""
    raw = pcm16_bytes(pcm)
    if not raw:
        return b""
    return audioop.lin2ulaw(_to_native(raw), SAMPLE_WIDTH)


def decode_mulaw(mulaw: bytes) -> bytes:
    """mu-law -> PCM16-LE.  Two output bytes per input byte."""
    if not mulaw:
        return b""
    return _to_le(audioop.ulaw2lin(bytes(mulaw), SAMPLE_WIDTH))


def pcm16_sample_count(pcm: bytes) -> int:
    if len(pcm) % SAMPLE_WIDTH:
        raise InvalidAudioFrame(f"PCM16 buffer has odd length {len(pcm)}")
    return len(pcm) // SAMPLE_WIDTH
