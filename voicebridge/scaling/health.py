"""
Process-wide call counters and the bodies of the plain-HTTP endpoints.

The endpoints are served on the same port as the media stream upgrades
(see BridgeServer.process_request in app.py):

  GET /        service identity, status, endpoint map, call counters
  GET /health  liveness
  GET /readyz  503 once MAX_CONCURRENT_CALLS is reached
"""
from __future__ import annotations

import time

from ..personas import DEFAULT_ROUTE, SALES_ROUTE, SERVICE_ROUTE

SERVICE_NAME = "HyperClean Voice Bridge"

_active_calls: int = 0
_total_calls: int = 0
_start_time: float = time.monotonic()
_max_concurrent_calls: int = 100


def get_active_calls() -> int:
    """Return current active call count (safe to call from other modules)."""
    return _active_calls


def get_total_calls() -> int:
    return _total_calls


def get_max_concurrent() -> int:
    """Return configured max concurrent call limit."""
    return _max_concurrent_calls


def set_max_concurrent(n: int) -> None:
    global _max_concurrent_calls
    _max_concurrent_calls = n


def at_capacity() -> bool:
    return _active_calls >= _max_concurrent_calls


def call_started() -> None:
    global _active_calls, _total_calls
    _active_calls += 1
    _total_calls += 1


def call_ended() -> None:
    global _active_calls
    _active_calls = max(0, _active_calls - 1)


def mark_started() -> None:
    global _start_time
    _start_time = time.monotonic()


def uptime_s() -> float:
    return round(time.monotonic() - _start_time, 1)


def health_payload(version: str) -> dict:
    return {"ok": True, "version": version}


def ready_payload() -> dict:
    return {
        "ready": not at_capacity(),
        "active_calls": _active_calls,
        "max_calls": _max_concurrent_calls,
    }


def info_payload(version: str) -> dict:
    return {
        "service": SERVICE_NAME,
        "version": version,
        "status": "operational",
        "endpoints": {
            "health": "/health",
            "ready": "/readyz",
            "streamDefault": DEFAULT_ROUTE,
            "streamSales": SALES_ROUTE,
            "streamService": SERVICE_ROUTE,
        },
        "active_calls": _active_calls,
        "total_calls": _total_calls,
        "uptime_s": uptime_s(),
    }
