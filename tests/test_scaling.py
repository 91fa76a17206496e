import logging

from voicebridge.logging_utils import mask_secret, sha256_prefix
from voicebridge.scaling import health
from voicebridge.scaling.metrics import CallMetrics


def test_call_counters_and_capacity():
    health.set_max_concurrent(2)
    base_total = health.get_total_calls()
    health.call_started()
    assert not health.at_capacity()
    health.call_started()
    assert health.at_capacity()
    assert health.ready_payload() == {"ready": False, "active_calls": 2, "max_calls": 2}

    health.call_ended()
    health.call_ended()
    health.call_ended()
    assert health.get_active_calls() == 0
    assert health.get_total_calls() == base_total + 2
    assert health.ready_payload()["ready"] is True


def test_info_payload_lists_routes():
    info = health.info_payload("9.9.9")
    assert info["version"] == "9.9.9"
    assert info["endpoints"]["streamDefault"] == "/stream"
    assert info["endpoints"]["streamService"] == "/stream-service"
    assert info["uptime_s"] >= 0


def test_metrics_keep_first_close_reason(caplog):
    m = CallMetrics(call_id="CA1", persona="sales")
    m.caller_frames = 3
    m.finalize("stream stopped")
    m.finalize("session closed")
    assert m.close_reason == "stream stopped"
    assert m.summary()["caller_frames"] == 3

    with caplog.at_level(logging.INFO, logger="voicebridge.scaling.metrics"):
        m.log_summary()
    assert "CALL_METRICS: call=CA1 persona=sales" in caplog.text
    assert "reason=stream stopped" in caplog.text


def test_secrets_are_masked():
    assert mask_secret("sk-1234567890abcd") == "sk-1...abcd"
    assert mask_secret("short") == "*****"
    assert mask_secret("") == ""
    assert len(sha256_prefix("sk-test")) == 12
    assert sha256_prefix("") == ""
