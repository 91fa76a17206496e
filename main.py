from __future__ import annotations

import asyncio
import logging
import sys

from voicebridge import __version__
from voicebridge.app import run_server
from voicebridge.config import BridgeConfig, load_config
from voicebridge.logging_utils import mask_secret, setup_logging, sha256_prefix
from voicebridge.realtime import RealtimeSettings


logger = logging.getLogger("voicebridge")


def _log_config(cfg: BridgeConfig) -> None:
    logger.info(
        "Config: host=%s port=%s model=%s realtime_url=%s booking_url=%s connect_timeout_s=%s "
        "vad=%.2f prefix=%dms silence=%dms create_response=%s temp=%.1f "
        "upstream_queue_max=%d max_calls=%d wss_pem=%s openai_wss_insecure=%s "
        "OPENAI_API_KEY_MASKED=%s OPENAI_API_KEY_SHA256_12=%s STREAM_SHARED_SECRET=%s",
        cfg.host, cfg.port, cfg.model, cfg.realtime_url, cfg.booking_url, cfg.connect_timeout_s,
        cfg.vad_threshold, cfg.vad_prefix_padding_ms, cfg.vad_silence_duration_ms,
        cfg.vad_create_response, cfg.temperature,
        cfg.upstream_queue_max_frames, cfg.max_concurrent_calls,
        cfg.wss_pem, cfg.openai_wss_insecure,
        mask_secret(cfg.openai_api_key), sha256_prefix(cfg.openai_api_key),
        "[CONFIGURED]" if cfg.stream_shared_secret else "[NOT SET]",
    )


def main() -> None:
    setup_logging()
    try:
        cfg = load_config()
        settings = RealtimeSettings.from_config(cfg)
    except (ValueError, OSError) as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    logger.info("=== voicebridge v%s starting (config dump below, secrets masked) ===", __version__)
    _log_config(cfg)

    try:
        asyncio.run(run_server(cfg, settings))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
