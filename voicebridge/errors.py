"""Error kinds raised across the bridge.

Everything per-call is handled inside the call's own session; these
types only mark where a failure came from so the session (or the
upgrade gate) can decide what to tear down.
"""
from __future__ import annotations


class BridgeError(Exception):
    """Base class for bridge errors."""


class AuthRejected(BridgeError):
    """Upgrade request carried a token that does not match the shared secret."""


class UpstreamConnectError(BridgeError):
    """The realtime endpoint could not be reached or refused the handshake."""


class MalformedFrame(BridgeError):
    """An inbound frame on either leg could not be decoded."""


class InvalidAudioFrame(BridgeError, ValueError):
    """Audio payload with an impossible size (e.g. odd-length PCM16)."""
