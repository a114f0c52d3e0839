"""Tests for core/gateway.py — settings file, token, rate limit, HTTP server."""
from __future__ import annotations

import threading

import httpx
import pytest
import yaml

from core.config import Paths
from core.gateway import (
    ENDPOINTS, GATEWAY_VERSION, GatewayConfig, RateLimiter, create_server,
    gateway_spec, gateway_start_options, generate_token, load_gateway_config,
    save_gateway_config,
)


class TestGatewayConfig:

    def test_defaults(self):
        cfg = GatewayConfig()
        assert (cfg.port, cfg.host, cfg.cors, cfg.rate_limit, cfg.websocket) == \
            (18789, "0.0.0.0", True, 100, True)
        assert cfg.masked_token() == "Not set"

    def test_masked_token(self):
        cfg = GatewayConfig(auth_token="hgw_abcdefghijklmnop")
        assert cfg.masked_token() == "hgw_abcdefgh..."

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_gateway_config(str(tmp_path / "gateway.yaml")) == GatewayConfig()

    @pytest.mark.parametrize("content", ["port: [unclosed", "- a\n- b\n", "port: abc\n"])
    def test_malformed_file_gives_defaults(self, tmp_path, content):
        path = tmp_path / "gateway.yaml"
        path.write_text(content)
        assert load_gateway_config(str(path)) == GatewayConfig()

    def test_save_and_load(self, tmp_path):
        path = str(tmp_path / "home" / "gateway.yaml")
        cfg = GatewayConfig(port=19000, host="127.0.0.1", cors=False, rate_limit=5,
                            websocket=False, auth_token="hgw_x")
        save_gateway_config(path, cfg)
        assert load_gateway_config(path) == cfg
        with open(path) as f:
            assert yaml.safe_load(f)["rate_limit"] == 5

    def test_partial_file_keeps_other_defaults(self, tmp_path):
        path = tmp_path / "gateway.yaml"
        path.write_text("port: 20000\n")
        cfg = load_gateway_config(str(path))
        assert cfg.port == 20000
        assert cfg.rate_limit == 100


class TestToken:

    def test_format(self):
        token = generate_token()
        assert token.startswith("hgw_")
        assert len(token) == 4 + 32
        assert token[4:].isalnum()

    def test_unique(self):
        assert generate_token() != generate_token()


class TestLaunchSettings:

    def test_spec_runs_module(self):
        spec = gateway_spec()
        assert spec.command[1:] == ["-m", "core.gateway"]
        assert spec.expect_status is None

    def test_start_options_env(self, tmp_path):
        opts = gateway_start_options(GatewayConfig(port=19001, auth_token="hgw_t"),
                                     Paths(home=str(tmp_path)), timeout=3)
        assert opts.port == 19001
        assert opts.timeout == 3
        assert opts.env["HAUBA_GATEWAY_PORT"] == "19001"
        assert opts.env["HAUBA_GATEWAY_AUTH"] == "hgw_t"
        assert opts.env["HAUBA_HOME"] == str(tmp_path)
        assert opts.env["HAUBA_GATEWAY_WEBSOCKET"] == "1"

    def test_start_options_websocket_off(self, tmp_path):
        opts = gateway_start_options(GatewayConfig(websocket=False),
                                     Paths(home=str(tmp_path)))
        assert opts.env["HAUBA_GATEWAY_WEBSOCKET"] == "0"


class TestRateLimiter:

    def test_window(self):
        now = [0.0]
        limiter = RateLimiter(2, clock=lambda: now[0])
        assert limiter.allow("a")
        assert limiter.allow("a")
        assert not limiter.allow("a")
        assert limiter.allow("b")
        now[0] = 60.0
        assert limiter.allow("a")

    def test_zero_disables(self):
        limiter = RateLimiter(0)
        assert all(limiter.allow("a") for _ in range(500))


@pytest.fixture
def gateway():
    servers = []

    def _start(**overrides):
        cfg = GatewayConfig(port=0, host="127.0.0.1", **overrides)
        server = create_server(cfg)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return f"http://127.0.0.1:{server.server_address[1]}", server

    yield _start
    for server in servers:
        server.shutdown()
        server.server_close()


class TestGatewayServer:

    def test_health_needs_no_auth(self, gateway):
        url, _ = gateway(auth_token="hgw_secret")
        resp = httpx.get(url + "/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert set(body) == {"status", "uptime", "connections", "messagesProcessed"}

    def test_root_requires_token(self, gateway):
        url, _ = gateway(auth_token="hgw_secret")
        assert httpx.get(url + "/").status_code == 401
        resp = httpx.get(url + "/", headers={"Authorization": "Bearer hgw_secret"})
        assert resp.status_code == 200
        assert resp.json() == {"name": "Hauba Gateway", "version": GATEWAY_VERSION,
                               "endpoints": ENDPOINTS}

    def test_websocket_disabled_hides_ws_endpoint(self, gateway):
        url, _ = gateway(websocket=False)
        assert httpx.get(url + "/").json()["endpoints"] == ["/health", "/webhook"]

    def test_no_token_configured_is_open(self, gateway):
        url, server = gateway()
        assert httpx.post(url + "/webhook", json={"x": 1}).status_code == 200
        assert server.messages_processed == 1

    def test_cors_headers_and_preflight(self, gateway):
        url, _ = gateway()
        resp = httpx.options(url + "/webhook")
        assert resp.status_code == 204
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

    def test_cors_disabled(self, gateway):
        url, _ = gateway(cors=False)
        assert "Access-Control-Allow-Origin" not in httpx.get(url + "/health").headers

    def test_rate_limit(self, gateway):
        url, _ = gateway(rate_limit=2)
        codes = [httpx.get(url + "/").status_code for _ in range(3)]
        assert codes == [200, 200, 429]
        # health polling is never throttled
        assert httpx.get(url + "/health").status_code == 200
