from __future__ import annotations
from dataclasses import dataclass
import logging
import os
from pathlib import Path
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_REALTIME_URL = "wss://api.openai.com/v1/realtime"
DEFAULT_MODEL = "gpt-4o-realtime-preview"
DEFAULT_BOOKING_URL = "https://www.hypercleantx.com/#services"


def _env_str(key: str, default: str = "") -> str:
    return os.getenv(key, default).strip()


def _env_int(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or str(v).strip() == "":
        return default
    try:
        return int(v)
    except Exception as e:
        raise ValueError(f"{key} must be an int, got {v!r}") from e


def _env_float(key: str, default: float) -> float:
    v = os.getenv(key)
    if v is None or str(v).strip() == "":
        return default
    try:
        return float(v)
    except Exception as e:
        raise ValueError(f"{key} must be a float, got {v!r}") from e


def _env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    return str(v).strip().lower() in ("1", "true", "yes", "y", "on")


@dataclass(frozen=True)
class BridgeConfig:
    host: str
    port: int
    openai_api_key: str
    stream_shared_secret: str
    model: str
    realtime_url: str
    booking_url: str

    connect_timeout_s: float = 10.0
    wss_pem: str = ""
    openai_wss_insecure: bool = False

    vad_threshold: float = 0.5
    vad_prefix_padding_ms: int = 300
    vad_silence_duration_ms: int = 500
    vad_create_response: bool = True
    temperature: float = 0.8

    upstream_queue_max_frames: int = 500
    leg_drain_timeout_s: float = 1.0
    max_concurrent_calls: int = 100


def load_config(env_file: str | None = None) -> BridgeConfig:
    """Load config from .env + environment.

    Precedence: real environment wins over .env values.
    """
    if env_file:
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(override=False)

    openai_api_key = _env_str("OPENAI_API_KEY")
    if not openai_api_key:
        raise ValueError("OPENAI_API_KEY is required")

    stream_shared_secret = _env_str("STREAM_SHARED_SECRET")
    if not stream_shared_secret:
        raise ValueError("STREAM_SHARED_SECRET is required")

    host = _env_str("HOST", "0.0.0.0")
    port = _env_int("PORT", 10000)

    model = _env_str("OPENAI_MODEL_REALTIME", DEFAULT_MODEL) or DEFAULT_MODEL
    realtime_url = _env_str("OPENAI_REALTIME_URL", DEFAULT_REALTIME_URL).rstrip("/") or DEFAULT_REALTIME_URL
    booking_url = _env_str("BOOKING_LINK_URL", DEFAULT_BOOKING_URL) or DEFAULT_BOOKING_URL

    connect_timeout_s = _env_float("OPENAI_CONNECT_TIMEOUT_S", 10.0)

    wss_pem = _env_str("WSS_PEM").strip('"').strip("'")
    if wss_pem and not os.path.isabs(wss_pem):
        wss_pem = str(Path(wss_pem).expanduser().resolve())
    openai_wss_insecure = _env_bool("OPENAI_WSS_INSECURE", False)

    vad_threshold = _env_float("VAD_THRESHOLD", 0.5)
    vad_prefix_padding_ms = _env_int("VAD_PREFIX_PADDING_MS", 300)
    vad_silence_duration_ms = _env_int("VAD_SILENCE_DURATION_MS", 500)
    vad_create_response = _env_bool("VAD_CREATE_RESPONSE", True)
    temperature = _env_float("OPENAI_TEMPERATURE", 0.8)

    upstream_queue_max_frames = _env_int("UPSTREAM_QUEUE_MAX_FRAMES", 500)
    leg_drain_timeout_s = _env_float("LEG_DRAIN_TIMEOUT_S", 1.0)
    max_concurrent_calls = _env_int("MAX_CONCURRENT_CALLS", 100)

    if not 0.0 <= vad_threshold <= 1.0:
        raise ValueError(f"VAD_THRESHOLD must be within 0.0-1.0, got {vad_threshold}")
    if upstream_queue_max_frames < 0:
        raise ValueError("UPSTREAM_QUEUE_MAX_FRAMES must be >= 0 (0 = unbounded)")
    if max_concurrent_calls <= 0:
        raise ValueError("MAX_CONCURRENT_CALLS must be > 0")
    if openai_wss_insecure:
        logger.warning("OPENAI_WSS_INSECURE is set; upstream TLS will not be verified")
    if not realtime_url.startswith(("wss://", "ws://")):
        logger.warning("OPENAI_REALTIME_URL=%s is not a websocket URL", realtime_url)

    return BridgeConfig(
        host=host,
        port=port,
        openai_api_key=openai_api_key,
        stream_shared_secret=stream_shared_secret,
        model=model,
        realtime_url=realtime_url,
        booking_url=booking_url,
        connect_timeout_s=connect_timeout_s,
        wss_pem=wss_pem,
        openai_wss_insecure=openai_wss_insecure,
        vad_threshold=vad_threshold,
        vad_prefix_padding_ms=vad_prefix_padding_ms,
        vad_silence_duration_ms=vad_silence_duration_ms,
        vad_create_response=vad_create_response,
        temperature=temperature,
        upstream_queue_max_frames=upstream_queue_max_frames,
        leg_drain_timeout_s=leg_drain_timeout_s,
        max_concurrent_calls=max_concurrent_calls,
    )
