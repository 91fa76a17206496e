"""
Per-call counters, logged once at teardown as a single CALL_METRICS line.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class CallMetrics:
    """Per-call metrics collected during a single bridged call."""

    call_id: str = ""
    persona: str = ""
    start_time: float = field(default_factory=time.monotonic)
    end_time: float = 0.0

    caller_frames: int = 0
    caller_frames_dropped: int = 0
    caller_bytes: int = 0

    ai_deltas: int = 0
    ai_mulaw_bytes: int = 0
    ai_deltas_dropped: int = 0
    marks_sent: int = 0

    upstream_frames_sent: int = 0
    upstream_frames_dropped: int = 0
    downstream_frames_sent: int = 0
    malformed_frames: int = 0
    close_reason: str = ""

    @property
    def duration_s(self) -> float:
        end = self.end_time or time.monotonic()
        return end - self.start_time

    def finalize(self, close_reason: str = "") -> None:
        if not self.end_time:
            self.end_time = time.monotonic()
        if close_reason and not self.close_reason:
            self.close_reason = close_reason

    def summary(self) -> dict:
        return {
            "call_id": self.call_id,
            "persona": self.persona,
            "duration_s": round(self.duration_s, 2),
            "caller_frames": self.caller_frames,
            "caller_frames_dropped": self.caller_frames_dropped,
            "ai_deltas": self.ai_deltas,
            "ai_deltas_dropped": self.ai_deltas_dropped,
            "ai_mulaw_bytes": self.ai_mulaw_bytes,
            "marks_sent": self.marks_sent,
            "upstream_frames_sent": self.upstream_frames_sent,
            "upstream_frames_dropped": self.upstream_frames_dropped,
            "downstream_frames_sent": self.downstream_frames_sent,
            "malformed_frames": self.malformed_frames,
            "close_reason": self.close_reason,
        }

    def log_summary(self) -> None:
        s = self.summary()
        logger.info(
            "CALL_METRICS: call=%s persona=%s dur=%.1fs caller_frames=%d (dropped=%d) "
            "ai_deltas=%d (dropped=%d) ai_bytes=%d marks=%d sent_up=%d sent_down=%d upstream_dropped=%d "
            "malformed=%d reason=%s",
            s["call_id"] or "-", s["persona"], s["duration_s"],
            s["caller_frames"], s["caller_frames_dropped"],
            s["ai_deltas"], s["ai_deltas_dropped"], s["ai_mulaw_bytes"],
            s["marks_sent"], s["upstream_frames_sent"], s["downstream_frames_sent"],
            s["upstream_frames_dropped"],
            s["malformed_frames"], s["close_reason"] or "-",
        )
