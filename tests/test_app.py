import asyncio
import base64
import json
import struct
from types import SimpleNamespace

import pytest
from websockets.asyncio.client import connect
from websockets.asyncio.server import serve
from websockets.exceptions import ConnectionClosed, InvalidStatus

from voicebridge.app import BridgeServer, check_token
from voicebridge.config import BridgeConfig
from voicebridge.errors import AuthRejected
from voicebridge.scaling import health

SECRET = "s3cret"
PCM_320 = struct.pack("<160h", *[(i * 211) % 6000 - 3000 for i in range(160)])


def _run(coro):
    return asyncio.run(asyncio.wait_for(coro, timeout=10.0))


class FakeRealtimeServer:
    """Answers the first audio append with one short response."""

    def __init__(self) -> None:
        self.paths: list[str] = []
        self.headers: list = []
        self.messages: list[dict] = []
        self.closed = asyncio.Event()
        self._replied = False

    async def handler(self, ws) -> None:
        self.paths.append(ws.request.path)
        self.headers.append(ws.request.headers)
        try:
            async for raw in ws:
                msg = json.loads(raw)
                self.messages.append(msg)
                if msg["type"] == "input_audio_buffer.append" and not self._replied:
                    self._replied = True
                    await ws.send(json.dumps({"type": "session.updated"}))
                    await ws.send(json.dumps({
                        "type": "response.audio.delta",
                        "delta": base64.b64encode(PCM_320).decode("ascii"),
                    }))
                    await ws.send(json.dumps({"type": "response.done"}))
        except ConnectionClosed:
            pass
        finally:
            self.closed.set()


def _config(up_port: int, **overrides) -> BridgeConfig:
    fields = dict(
        host="127.0.0.1",
        port=0,
        openai_api_key="sk-test",
        stream_shared_secret=SECRET,
        model="gpt-test",
        realtime_url=f"ws://127.0.0.1:{up_port}/v1/realtime",
        booking_url="https://book.example",
        connect_timeout_s=2.0,
        leg_drain_timeout_s=0.5,
    )
    fields.update(overrides)
    return BridgeConfig(**fields)


async def _http_get(port: int, path: str) -> tuple[int, dict]:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(f"GET {path} HTTP/1.1\r\nHost: 127.0.0.1\r\n\r\n".encode("ascii"))
    await writer.drain()
    raw = await reader.read()
    writer.close()
    head, _, body = raw.partition(b"\r\n\r\n")
    status = int(head.split(b" ", 2)[1])
    return status, json.loads(body)


async def _with_bridge(test, **overrides):
    fake = FakeRealtimeServer()
    async with serve(fake.handler, "127.0.0.1", 0) as upstream:
        up_port = upstream.sockets[0].getsockname()[1]
        bridge = BridgeServer(_config(up_port, **overrides))
        async with bridge.serve() as server:
            port = server.sockets[0].getsockname()[1]
            return await test(port, fake)


def test_check_token():
    check_token(SECRET, SECRET)
    with pytest.raises(AuthRejected):
        check_token("wrong", SECRET)
    with pytest.raises(AuthRejected):
        check_token("", SECRET)


def test_sales_call_end_to_end():
    async def call(port, fake):
        received = []
        caller_audio = json.dumps({
            "event": "media",
            "media": {"payload": base64.b64encode(b"\xff" * 160).decode("ascii")},
        })
        async with connect(f"ws://127.0.0.1:{port}/stream-sales?token={SECRET}") as phone:
            await phone.send(json.dumps({"event": "connected"}))
            await phone.send(json.dumps({"event": "start", "start": {"streamSid": "SID1", "callSid": "CA1"}}))
            while not received or received[-1]["event"] != "mark":
                await phone.send(caller_audio)
                try:
                    received.append(json.loads(await asyncio.wait_for(phone.recv(), 0.05)))
                except asyncio.TimeoutError:
                    pass
            await phone.send(json.dumps({"event": "stop", "stop": {}}))
            await fake.closed.wait()
            await phone.wait_closed()
        return received, fake

    received, fake = _run(_with_bridge(call))

    assert fake.paths == ["/v1/realtime?model=gpt-test"]
    assert fake.headers[0]["Authorization"] == "Bearer sk-test"
    assert fake.headers[0]["OpenAI-Beta"] == "realtime=v1"

    types = [m["type"] for m in fake.messages]
    assert types[0] == "session.update"
    session = fake.messages[0]["session"]
    assert session["voice"] == "alloy"
    assert "sales representative" in session["instructions"]
    assert "https://book.example" in session["instructions"]
    assert types.count("input_audio_buffer.commit") == 1
    assert types[-1] == "input_audio_buffer.commit"
    assert set(types[1:-1]) == {"input_audio_buffer.append"}

    media = [f for f in received if f["event"] == "media"]
    assert len(media) == 1
    assert media[0]["streamSid"] == "SID1"
    assert len(base64.b64decode(media[0]["media"]["payload"])) == 160
    assert received[-1]["event"] == "mark"
    assert received[-1]["streamSid"] == "SID1"
    assert received[-1]["mark"]["name"]


def _rejected_status(path: str, **overrides) -> tuple[int, int]:
    async def test(port, fake):
        with pytest.raises(InvalidStatus) as ei:
            async with connect(f"ws://127.0.0.1:{port}{path}"):
                pass
        return ei.value.response.status_code, len(fake.paths)

    return _run(_with_bridge(test, **overrides))


def test_wrong_token_is_rejected_before_upstream():
    assert _rejected_status("/stream?token=nope") == (401, 0)


def test_missing_token_is_rejected():
    assert _rejected_status("/stream-service") == (401, 0)


def test_unknown_route_is_not_found():
    assert _rejected_status(f"/elsewhere?token={SECRET}") == (404, 0)


def test_capacity_limit_rejects_calls():
    assert _rejected_status(f"/stream?token={SECRET}", max_concurrent_calls=0) == (503, 0)


def test_health_endpoint():
    async def test(port, fake):
        return await _http_get(port, "/health")

    status, body = _run(_with_bridge(test))
    assert status == 200
    assert body["ok"] is True
    assert body["version"]


def test_service_info_endpoint():
    async def test(port, fake):
        return await _http_get(port, "/")

    status, body = _run(_with_bridge(test))
    assert status == 200
    assert body["service"] == "HyperClean Voice Bridge"
    assert body["status"] == "operational"
    assert body["endpoints"]["streamSales"] == "/stream-sales"
    assert body["active_calls"] == 0


def test_readiness_reports_capacity():
    async def test(port, fake):
        return await _http_get(port, "/readyz")

    status, body = _run(_with_bridge(test, max_concurrent_calls=0))
    assert status == 503
    assert body == {"ready": False, "active_calls": 0, "max_calls": 0}


class _UpgradedConnection:
    remote_address = ("127.0.0.1", 40000)

    def __init__(self, path: str) -> None:
        self.request = SimpleNamespace(path=path)
        self.close_args = None

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_args = (code, reason)


def test_call_over_capacity_after_upgrade_is_closed():
    async def scenario():
        bridge = BridgeServer(_config(1, max_concurrent_calls=1))
        health.call_started()
        try:
            conn = _UpgradedConnection(f"/stream?token={SECRET}")
            await bridge.handle_call(conn)
            return conn, health.get_active_calls(), bridge.active_tasks
        finally:
            health.call_ended()

    conn, active, tasks = _run(scenario())
    assert conn.close_args == (1013, "server at capacity")
    assert active == 1
    assert not tasks
