"""
tests/conftest.py
Shared fixtures for hauba tests.
Provides an isolated HAUBA_HOME, free ports and stub /health servers.
"""

import json
import socket
import sys
import textwrap
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from core.config import Paths
from core.registry import PidRegistry
from core.supervisor import Supervisor


@pytest.fixture
def hauba_home(tmp_path, monkeypatch):
    """Point HAUBA_HOME at a fresh directory and chdir into tmp_path."""
    home = tmp_path / "hauba-home"
    home.mkdir()
    monkeypatch.setenv("HAUBA_HOME", str(home))
    monkeypatch.setenv("NO_COLOR", "1")
    for var in ("HAUBA_ENV", "NODE_ENV", "HAUBA_USE_LOCAL", "HAUBA_API_URL",
                "HAUBA_DAEMON_PATH", "HAUBA_GATEWAY_PORT", "HAUBA_GATEWAY_AUTH",
                "HAUBA_GATEWAY_WEBSOCKET"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return home


@pytest.fixture
def paths(hauba_home):
    return Paths(home=str(hauba_home))


@pytest.fixture
def registry(paths):
    return PidRegistry(paths.pid_dir)


@pytest.fixture
def supervisor(paths, registry):
    return Supervisor(registry, paths.log_dir, poll_interval=0.05)


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class HealthServer:
    """In-process HTTP server answering GET /health with a fixed response."""

    def __init__(self, body=None, status=200):
        self.body = {"status": "healthy"} if body is None else body
        self.status = status
        self.requests = 0
        outer = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self):
                outer.requests += 1
                payload = (outer.body if isinstance(outer.body, bytes)
                           else json.dumps(outer.body).encode())
                self.send_response(outer.status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(payload)))
                self.end_headers()
                self.wfile.write(payload)

            def log_message(self, format, *args):
                pass

        self._server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self.port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)

    def start(self):
        self._thread.start()
        return self

    def stop(self):
        self._server.shutdown()
        self._server.server_close()


@pytest.fixture
def health_server():
    servers = []

    def _make(body=None, status=200):
        server = HealthServer(body, status).start()
        servers.append(server)
        return server

    yield _make
    for server in servers:
        server.stop()


STUB_SERVICE = textwrap.dedent("""\
    import json, os, sys, time
    from http.server import BaseHTTPRequestHandler, HTTPServer

    delay = float(os.environ.get("STUB_DELAY", "0"))
    if os.environ.get("STUB_EXIT"):
        print("stub exiting early", flush=True)
        sys.exit(int(os.environ["STUB_EXIT"]))
    time.sleep(delay)

    class H(BaseHTTPRequestHandler):
        def do_GET(self):
            body = json.dumps({"status": os.environ.get("STUB_STATUS", "healthy"),
                               "uptime": 1}).encode()
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format, *args):
            pass

    port = int(os.environ.get("DAEMON_PORT") or os.environ["HAUBA_GATEWAY_PORT"])
    print(f"[INFO] stub listening on {port}", flush=True)
    HTTPServer(("127.0.0.1", port), H).serve_forever()
""")


@pytest.fixture
def stub_service(tmp_path):
    """Path to a Python script that serves /health on $DAEMON_PORT after $STUB_DELAY."""
    path = tmp_path / "stub_service.py"
    path.write_text(STUB_SERVICE)
    return str(path)


@pytest.fixture
def sleeper():
    """Factory for plain sleeping child processes, killed on teardown."""
    import subprocess

    procs = []

    def _spawn(seconds=30):
        proc = subprocess.Popen([sys.executable, "-c", f"import time; time.sleep({seconds})"])
        procs.append(proc)
        return proc

    yield _spawn
    for proc in procs:
        if proc.poll() is None:
            proc.kill()
        proc.wait()


def dead_pid() -> int:
    """PID of a process that has already exited and been reaped."""
    import subprocess

    proc = subprocess.Popen([sys.executable, "-c", "pass"])
    proc.wait()
    return proc.pid
