"""
tests/test_supervisor.py — start/stop/status lifecycle against real processes.

The stub service (conftest.STUB_SERVICE) serves /health on $DAEMON_PORT after
$STUB_DELAY seconds, reporting $STUB_STATUS, or exits at once with $STUB_EXIT.
"""
from __future__ import annotations

import os
import sys

import pytest

from conftest import dead_pid, free_port
from core.daemon import daemon_spec
from core.errors import (
    ExecutableNotFound, HealthCheckTimeout, ProcessSpawnFailure,
)
from core.poller import wait_until
from core.probe import is_process_running
from core.registry import ServiceRecord
from core.supervisor import ServiceSpec, ServiceState, StartOptions, Supervisor


def _options(stub, port, timeout=5.0, **env):
    return StartOptions(port=port, timeout=timeout, executable=stub,
                        env={"DAEMON_PORT": str(port), **env})


def _never_launch(*args, **kwargs):
    raise AssertionError("launcher must not be called")


# ══════════════════════════════════════════════════════════════════════════════
#  Start
# ══════════════════════════════════════════════════════════════════════════════

class TestStart:

    def test_start_waits_for_delayed_health(self, supervisor, registry, stub_service):
        port = free_port()
        spec = daemon_spec()
        result = supervisor.start(spec, _options(stub_service, port, STUB_DELAY="1"))
        try:
            assert result.outcome == "started"
            assert result.health["status"] == "healthy"
            record = registry.read("daemon")
            assert record is not None
            assert record.port == port
            assert record.pid == result.record.pid
            assert record.work_dir == os.getcwd()
            assert is_process_running(record.pid)
            assert "stub listening" in open(result.log_path).read()
        finally:
            supervisor.stop(spec, grace=5)

    def test_already_running_does_not_spawn(self, paths, registry, health_server):
        server = health_server({"status": "healthy"})
        registry.write("daemon", ServiceRecord(pid=os.getpid(), started_at="",
                                               port=server.port))
        sup = Supervisor(registry, paths.log_dir, launch=_never_launch)
        result = sup.start(daemon_spec(), StartOptions(port=server.port))
        assert result.outcome == "already_running"
        assert result.record.pid == os.getpid()

    def test_stale_record_is_replaced(self, supervisor, registry, stub_service):
        registry.write("daemon", ServiceRecord(pid=dead_pid(), started_at="", port=1))
        port = free_port()
        result = supervisor.start(daemon_spec(), _options(stub_service, port))
        try:
            assert result.outcome == "started"
            assert registry.read("daemon").port == port
        finally:
            supervisor.stop(daemon_spec(), grace=5)

    def test_health_timeout_keeps_record(self, supervisor, registry, stub_service):
        port = free_port()
        spec = daemon_spec()
        with pytest.raises(HealthCheckTimeout) as exc:
            supervisor.start(spec, _options(stub_service, port, timeout=1.0,
                                            STUB_STATUS="starting"))
        try:
            assert "daemon.log" in exc.value.hint
            record = registry.read("daemon")
            assert record is not None
            assert is_process_running(record.pid)
        finally:
            supervisor.stop(spec, grace=5)
        assert registry.read("daemon") is None

    def test_early_exit_is_spawn_failure(self, supervisor, registry, stub_service):
        with pytest.raises(ProcessSpawnFailure, match="exited during start-up"):
            supervisor.start(daemon_spec(),
                             _options(stub_service, free_port(), STUB_EXIT="1"))
        assert registry.read("daemon") is None

    def test_missing_executable(self, supervisor, registry, tmp_path):
        spec = daemon_spec()
        spec.candidates = [str(tmp_path / "missing.js")]
        with pytest.raises(ExecutableNotFound) as exc:
            supervisor.start(spec, StartOptions(port=free_port()))
        assert "HAUBA_DAEMON_PATH" in exc.value.hint
        assert registry.read("daemon") is None

    def test_fixed_command_skips_search(self, paths, registry):
        launched = []

        def fake_launch(command, env, log_path, cwd):
            launched.append(command)
            return dead_pid()

        spec = ServiceSpec(name="svc", default_port=1,
                           command=[sys.executable, "-m", "svc"])
        sup = Supervisor(registry, paths.log_dir, launch=fake_launch, poll_interval=0.01)
        with pytest.raises(ProcessSpawnFailure):
            sup.start(spec, StartOptions(port=free_port(), timeout=0.5))
        assert launched == [[sys.executable, "-m", "svc"]]

    def test_unwritable_registry_kills_child(self, paths, registry, sleeper, monkeypatch):
        proc = sleeper()

        def fail_write(service, record):
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr(registry, "write", fail_write)
        spec = ServiceSpec(name="svc", default_port=1, command=["unused"])
        sup = Supervisor(registry, paths.log_dir,
                         launch=lambda *a: proc.pid, poll_interval=0.05)
        with pytest.raises(ProcessSpawnFailure) as exc:
            sup.start(spec, StartOptions(port=free_port(), timeout=1))
        assert "Permission denied" in str(exc.value)
        assert not is_process_running(proc.pid)


# ══════════════════════════════════════════════════════════════════════════════
#  Stop
# ══════════════════════════════════════════════════════════════════════════════

_IGNORE_TERM = """
import signal, sys, time
signal.signal(signal.SIGTERM, signal.SIG_IGN)
open(sys.argv[1], "w").close()
time.sleep(60)
"""


class TestStop:

    def test_not_running(self, supervisor):
        assert supervisor.stop(daemon_spec()).outcome == "not_running"

    def test_stale_record_is_already_stopped(self, supervisor, registry):
        pid = dead_pid()
        registry.write("daemon", ServiceRecord(pid=pid, started_at="", port=18790))
        result = supervisor.stop(daemon_spec())
        assert result.outcome == "already_stopped"
        assert result.pid == pid
        assert registry.read("daemon") is None

    def test_sigterm_stops(self, supervisor, registry, sleeper):
        proc = sleeper()
        registry.write("daemon", ServiceRecord(pid=proc.pid, started_at="", port=1))
        result = supervisor.stop(daemon_spec(), grace=5)
        assert result.outcome == "stopped"
        assert not is_process_running(proc.pid)
        assert registry.read("daemon") is None

    @pytest.mark.skipif(os.name == "nt", reason="POSIX signals")
    def test_escalates_to_sigkill(self, supervisor, registry, tmp_path):
        import subprocess

        marker = tmp_path / "ready"
        proc = subprocess.Popen([sys.executable, "-c", _IGNORE_TERM, str(marker)])
        try:
            assert wait_until(marker.exists, timeout=10, interval=0.05)
            registry.write("daemon", ServiceRecord(pid=proc.pid, started_at="", port=1))
            result = supervisor.stop(daemon_spec(), grace=0.3)
            assert result.outcome == "killed"
            assert registry.read("daemon") is None
        finally:
            if proc.poll() is None:
                proc.kill()
            proc.wait()

    def test_force_kills_immediately(self, supervisor, registry, sleeper):
        proc = sleeper()
        registry.write("daemon", ServiceRecord(pid=proc.pid, started_at="", port=1))
        result = supervisor.stop(daemon_spec(), force=True)
        assert result.outcome == "killed"
        assert not is_process_running(proc.pid)


# ══════════════════════════════════════════════════════════════════════════════
#  Status
# ══════════════════════════════════════════════════════════════════════════════

class TestStatus:

    def test_stopped(self, supervisor):
        st = supervisor.status(daemon_spec())
        assert st.state == ServiceState.STOPPED
        assert not st.running

    def test_out_of_range_pid_reads_as_stopped(self, supervisor, registry):
        with open(registry.path_for("daemon"), "w") as f:
            f.write('{"pid": 99999999999999999999, "port": 1}')
        assert supervisor.status(daemon_spec()).state == ServiceState.STOPPED
        assert supervisor.stop(daemon_spec()).outcome == "not_running"

    def test_stale_is_cleaned_up(self, supervisor, registry):
        pid = dead_pid()
        registry.write("daemon", ServiceRecord(pid=pid, started_at="", port=1))
        st = supervisor.status(daemon_spec())
        assert st.state == ServiceState.STALE
        assert st.stale_pid == pid
        assert registry.read("daemon") is None

    def test_running_with_health(self, supervisor, registry, health_server):
        server = health_server({"status": "healthy", "uptime": 3})
        registry.write("daemon", ServiceRecord(pid=os.getpid(), started_at="",
                                               port=server.port))
        st = supervisor.status(daemon_spec())
        assert st.running
        assert st.health == {"status": "healthy", "uptime": 3}

    def test_running_without_health(self, supervisor, registry):
        registry.write("daemon", ServiceRecord(pid=os.getpid(), started_at="",
                                               port=free_port()))
        st = supervisor.status(daemon_spec())
        assert st.running
        assert st.health is None

    def test_skip_health_probe(self, supervisor, registry, health_server):
        server = health_server()
        registry.write("daemon", ServiceRecord(pid=os.getpid(), started_at="",
                                               port=server.port))
        st = supervisor.status(daemon_spec(), probe_health=False)
        assert st.running
        assert server.requests == 0

    def test_healthy_respects_expected_status(self):
        spec = daemon_spec()
        assert Supervisor.healthy(spec, {"status": "healthy"})
        assert not Supervisor.healthy(spec, {"status": "degraded"})
        assert not Supervisor.healthy(spec, None)
        assert Supervisor.healthy(ServiceSpec("gw", 1), {})
