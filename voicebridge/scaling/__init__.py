"""Call accounting for the bridge: process-wide counters and per-call metrics."""
from .health import (
    at_capacity,
    call_started,
    call_ended,
    get_active_calls,
    get_max_concurrent,
    health_payload,
    info_payload,
    mark_started,
    ready_payload,
    set_max_concurrent,
)
from .metrics import CallMetrics

__all__ = [
    "at_capacity",
    "call_started",
    "call_ended",
    "get_active_calls",
    "get_max_concurrent",
    "health_payload",
    "info_payload",
    "mark_started",
    "ready_payload",
    "set_max_concurrent",
    "CallMetrics",
]
