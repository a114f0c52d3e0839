"""
core/gateway.py
Hauba gateway — small HTTP server that fronts the agent for webhooks.

Endpoints:
  GET     /health      Health check (no auth)
  GET     /            Name, version, endpoint list
  OPTIONS *            CORS preflight (204)

Everything except /health and OPTIONS requires `Authorization: Bearer <token>`
when a token is configured. Requests other than /health beyond `rate_limit`
per minute from one client address get 429.

Settings live in <home>/gateway.yaml. The background gateway is this module
run as `python -m core.gateway`; it reads the settings file and the
HAUBA_GATEWAY_PORT / HAUBA_GATEWAY_AUTH / HAUBA_GATEWAY_WEBSOCKET variables
set by the launcher. With websocket disabled, /ws is not advertised.

Default port: 18789
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import string
import sys
import threading
import time
from dataclasses import asdict, dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import yaml

from core.config import GATEWAY_PORT, Paths
from core.supervisor import ServiceSpec, StartOptions

logger = logging.getLogger(__name__)

SERVICE_NAME = "gateway"
GATEWAY_VERSION = "1.1.0"
TOKEN_PREFIX = "hgw_"
ENDPOINTS = ["/health", "/webhook", "/ws"]

_TOKEN_ALPHABET = string.ascii_letters + string.digits
_SOURCE_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


@dataclass
class GatewayConfig:
    port: int = GATEWAY_PORT
    host: str = "0.0.0.0"
    cors: bool = True
    rate_limit: int = 100          # requests per minute per client
    websocket: bool = True
    auth_token: str = ""

    def masked_token(self, keep: int = 12) -> str:
        if not self.auth_token:
            return "Not set"
        return self.auth_token[:keep] + "..."


def generate_token() -> str:
    return TOKEN_PREFIX + "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(32))


def load_gateway_config(path: str) -> GatewayConfig:
    """Read gateway settings. Missing or malformed file -> defaults."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        return GatewayConfig()
    if not isinstance(data, dict):
        return GatewayConfig()

    defaults = GatewayConfig()
    try:
        return GatewayConfig(
            port=int(data.get("port", defaults.port)),
            host=str(data.get("host", defaults.host)),
            cors=bool(data.get("cors", defaults.cors)),
            rate_limit=int(data.get("rate_limit", defaults.rate_limit)),
            websocket=bool(data.get("websocket", defaults.websocket)),
            auth_token=str(data.get("auth_token") or ""),
        )
    except (TypeError, ValueError):
        logger.warning("Malformed gateway config %s, using defaults", path)
        return defaults


def save_gateway_config(path: str, config: GatewayConfig):
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        yaml.safe_dump(asdict(config), f, default_flow_style=False, sort_keys=False)
    os.replace(tmp, path)


def gateway_spec() -> ServiceSpec:
    return ServiceSpec(
        name=SERVICE_NAME,
        default_port=GATEWAY_PORT,
        command=[sys.executable, "-m", "core.gateway"],
        expect_status=None,
        health_timeout=2.0,
        version=GATEWAY_VERSION,
    )


def gateway_start_options(config: GatewayConfig, paths: Paths,
                          timeout: float = 10.0) -> StartOptions:
    # `python -m core.gateway` must resolve from any working directory
    pythonpath = os.pathsep.join(p for p in (_SOURCE_ROOT, os.environ.get("PYTHONPATH", "")) if p)
    return StartOptions(
        port=config.port,
        timeout=timeout,
        env={
            "HAUBA_HOME": paths.home,
            "HAUBA_GATEWAY_PORT": str(config.port),
            "HAUBA_GATEWAY_AUTH": config.auth_token,
            "HAUBA_GATEWAY_WEBSOCKET": "1" if config.websocket else "0",
            "PYTHONPATH": pythonpath,
        },
    )


# ══════════════════════════════════════════════════════════════════════════════
#  HTTP SERVER
# ══════════════════════════════════════════════════════════════════════════════

class RateLimiter:
    """Fixed one-minute window per client address."""

    def __init__(self, per_minute: int, clock=time.monotonic):
        self.per_minute = per_minute
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}
        self._lock = threading.Lock()

    def allow(self, client: str) -> bool:
        if self.per_minute <= 0:
            return True
        now = self._clock()
        with self._lock:
            start, count = self._windows.get(client, (now, 0))
            if now - start >= 60:
                start, count = now, 0
            count += 1
            self._windows[client] = (start, count)
            return count <= self.per_minute


class GatewayServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, config: GatewayConfig):
        self.config = config
        self.started_at = time.monotonic()
        self.messages_processed = 0
        self.limiter = RateLimiter(config.rate_limit)
        super().__init__((config.host, config.port), _Handler)

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at

    @property
    def endpoints(self) -> list[str]:
        if self.config.websocket:
            return list(ENDPOINTS)
        return [e for e in ENDPOINTS if e != "/ws"]


class _Handler(BaseHTTPRequestHandler):
    server: GatewayServer
    server_version = f"HaubaGateway/{GATEWAY_VERSION}"

    def log_message(self, format, *args):
        logger.info("%s %s", self.address_string(), format % args)

    def _send_json(self, status: int, payload: dict | None = None):
        body = b"" if payload is None else json.dumps(payload).encode()
        self.send_response(status)
        if self.server.config.cors:
            self.send_header("Access-Control-Allow-Origin", "*")
            self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
            self.send_header("Access-Control-Allow-Headers", "Content-Type, Authorization")
        if payload is not None:
            self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if body:
            self.wfile.write(body)

    def _authorized(self) -> bool:
        token = self.server.config.auth_token
        if not token:
            return True
        return self.headers.get("Authorization", "") == f"Bearer {token}"

    def do_OPTIONS(self):
        self._send_json(204)

    def do_GET(self):
        path = self.path.split("?", 1)[0]
        if path == "/health":
            self._send_json(200, {
                "status": "healthy",
                "uptime": round(self.server.uptime, 3),
                "connections": 0,
                "messagesProcessed": self.server.messages_processed,
            })
            return

        if not self.server.limiter.allow(self.client_address[0]):
            self._send_json(429, {"error": "Too Many Requests"})
            return

        if not self._authorized():
            self._send_json(401, {"error": "Unauthorized"})
            return

        self.server.messages_processed += 1
        self._send_json(200, {
            "name": "Hauba Gateway",
            "version": GATEWAY_VERSION,
            "endpoints": self.server.endpoints,
        })

    def do_POST(self):
        length = int(self.headers.get("Content-Length") or 0)
        if length:
            self.rfile.read(length)
        self.do_GET()


def create_server(config: GatewayConfig) -> GatewayServer:
    return GatewayServer(config)


def serve(config: GatewayConfig):
    """Run the gateway in the current process until interrupted."""
    server = create_server(config)
    logger.info("Gateway listening on %s:%d", config.host, config.port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        server.server_close()


def main():
    from core.logging_config import setup_logging

    paths = Paths.default()
    config = load_gateway_config(paths.gateway_config)
    if os.environ.get("HAUBA_GATEWAY_PORT"):
        config.port = int(os.environ["HAUBA_GATEWAY_PORT"])
    if os.environ.get("HAUBA_GATEWAY_AUTH"):
        config.auth_token = os.environ["HAUBA_GATEWAY_AUTH"]
    if os.environ.get("HAUBA_GATEWAY_WEBSOCKET"):
        config.websocket = os.environ["HAUBA_GATEWAY_WEBSOCKET"] != "0"

    # stderr is already redirected to the gateway log by the launcher
    setup_logging(log_dir=None, console_level="INFO")
    serve(config)


if __name__ == "__main__":
    main()
