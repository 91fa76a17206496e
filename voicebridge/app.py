"""
Server: one port for media stream upgrades and the plain-HTTP endpoints.

Upgrade gate (runs before the handshake completes):
  1. GET /, /health, /readyz without an Upgrade header -> JSON, no auth.
  2. ?token= must equal STREAM_SHARED_SECRET          -> else 401, closed.
  3. path must be a stream route                       -> else 404, closed.
  4. MAX_CONCURRENT_CALLS not reached                  -> else 503, closed.

The capacity check is repeated when the call handler starts, since
concurrent handshakes can all pass step 4; an upgraded connection over
the limit is closed with 1013 (try again later).

Accepted connections get a CallSession bound to the persona resolved
from the route.  Sessions share nothing but the read-only
RealtimeSettings built once at startup.
"""
from __future__ import annotations

import asyncio
import hmac
import http
import json
import logging
import signal
from typing import Optional
from urllib.parse import parse_qs, urlsplit

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.frames import CloseCode
from websockets.http11 import Request, Response

from . import __version__
from .config import BridgeConfig
from .errors import AuthRejected
from .personas import is_stream_route, resolve
from .realtime import RealtimeClient, RealtimeSettings
from .scaling.health import (
    at_capacity, call_ended, call_started, get_active_calls, get_max_concurrent,
    health_payload, info_payload, mark_started, ready_payload, set_max_concurrent,
)
from .session import CallSession
from .telephony import MediaStreamHandler

logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_S = 10.0


def _json_response(connection: ServerConnection, status: http.HTTPStatus, payload: dict) -> Response:
    response = connection.respond(status, json.dumps(payload) + "\n")
    del response.headers["Content-Type"]
    response.headers["Content-Type"] = "application/json"
    return response


def check_token(token: str, secret: str) -> None:
    """Raise AuthRejected unless ``token`` equals the shared secret."""
    if not token or not hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8")):
        raise AuthRejected("invalid stream token")


class BridgeServer:
    """Holds process-level state shared (read-only) by every call."""

    def __init__(self, cfg: BridgeConfig, settings: Optional[RealtimeSettings] = None) -> None:
        self.cfg = cfg
        self.settings = settings or RealtimeSettings.from_config(cfg)
        self.active_tasks: set[asyncio.Task] = set()
        set_max_concurrent(cfg.max_concurrent_calls)

    def process_request(self, connection: ServerConnection, request: Request) -> Optional[Response]:
        url = urlsplit(request.path)
        path = url.path

        if request.headers.get("Upgrade", "").lower() != "websocket":
            if path == "/health":
                return _json_response(connection, http.HTTPStatus.OK, health_payload(__version__))
            if path == "/readyz":
                body = ready_payload()
                status = http.HTTPStatus.OK if body["ready"] else http.HTTPStatus.SERVICE_UNAVAILABLE
                return _json_response(connection, status, body)
            if path == "/":
                return _json_response(connection, http.HTTPStatus.OK, info_payload(__version__))

        token = parse_qs(url.query).get("token", [""])[0]
        try:
            check_token(token, self.cfg.stream_shared_secret)
        except AuthRejected as e:
            logger.error("Rejecting upgrade on %s from %s: %s", path, connection.remote_address, e)
            return connection.respond(http.HTTPStatus.UNAUTHORIZED, "Unauthorized\n")

        if not is_stream_route(path):
            logger.warning("Rejecting upgrade on unknown route %s", path)
            return connection.respond(http.HTTPStatus.NOT_FOUND, "Not Found\n")

        if at_capacity():
            logger.warning(
                "Rejecting call: active=%d >= max=%d",
                get_active_calls(), get_max_concurrent(),
            )
            return connection.respond(http.HTTPStatus.SERVICE_UNAVAILABLE, "Server at capacity\n")

        return None

    async def handle_call(self, connection: ServerConnection) -> None:
        peer = connection.remote_address
        # no await between this check and call_started()
        if at_capacity():
            logger.warning(
                "Closing call from %s after upgrade: active=%d >= max=%d",
                peer, get_active_calls(), get_max_concurrent(),
            )
            await connection.close(CloseCode.TRY_AGAIN_LATER, "server at capacity")
            return
        call_started()

        path = urlsplit(connection.request.path).path
        profile = resolve(path, self.cfg.booking_url)
        logger.info("New connection on %s with %s voice", path, profile.voice)

        task = asyncio.current_task()
        self.active_tasks.add(task)
        try:
            downstream = MediaStreamHandler(connection, drain_timeout_s=self.cfg.leg_drain_timeout_s)
            upstream = RealtimeClient(self.settings)
            session = CallSession(downstream, upstream, profile, peer=peer)
            await session.run()
        except Exception:
            logger.exception("Bridge error: peer=%s", peer)
        finally:
            call_ended()
            self.active_tasks.discard(task)

    def serve(self, host: Optional[str] = None, port: Optional[int] = None):
        """Return the websockets server context (``async with`` it)."""
        return serve(
            self.handle_call,
            self.cfg.host if host is None else host,
            self.cfg.port if port is None else port,
            process_request=self.process_request,
            max_size=1024 * 1024,
        )

    async def drain(self, timeout_s: float = SHUTDOWN_DRAIN_S) -> None:
        if not self.active_tasks:
            return
        logger.info("Waiting for %d active call(s) to finish...", len(self.active_tasks))
        _, still_running = await asyncio.wait(set(self.active_tasks), timeout=timeout_s)
        for t in still_running:
            t.cancel()
        if still_running:
            logger.warning("Force-cancelled %d call(s) on shutdown", len(still_running))


async def run_server(cfg: BridgeConfig, settings: Optional[RealtimeSettings] = None) -> None:
    bridge = BridgeServer(cfg, settings)
    mark_started()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, OSError):
            pass

    server: Server
    async with bridge.serve() as server:
        logger.info("Listening on ws://%s:%d  (streams: /stream /stream-sales /stream-service)", cfg.host, cfg.port)
        logger.info("Using realtime model: %s", cfg.model)
        await stop_event.wait()
        logger.info("Shutting down gracefully...")
        server.close(close_connections=False)
        await bridge.drain()
    logger.info("Server closed")
