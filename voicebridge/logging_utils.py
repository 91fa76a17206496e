from __future__ import annotations

import hashlib
import logging
import os


def setup_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper().strip()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Crank only bridge logs to DEBUG without flooding websockets' frame logs.
    # Usage: VOICEBRIDGE_DEBUG=1 python3 main.py
    if os.getenv("VOICEBRIDGE_DEBUG", "0").strip().lower() in ("1", "true", "yes", "y", "on"):
        logging.getLogger("voicebridge").setLevel(logging.DEBUG)


def mask_secret(s: str, prefix: int = 4, suffix: int = 4) -> str:
    s = (s or "").strip()
    if not s:
        return ""
    if len(s) <= prefix + suffix:
        return "*" * len(s)
    return f"{s[:prefix]}...{s[-suffix:]}"


def sha256_prefix(s: str, n: int = 12) -> str:
    if not s:
        return ""
    return hashlib.sha256(s.encode("utf-8")).hexdigest()[:n]
