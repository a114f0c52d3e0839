"""Tests for core/registry.py — PID record persistence."""
from __future__ import annotations

import json
import os

import pytest

from core.registry import PidRegistry, ServiceRecord, utc_now_iso


def _record(pid=4242, port=18790):
    return ServiceRecord(pid=pid, started_at="2026-02-04T00:00:00+00:00", port=port,
                         version="0.1.0", work_dir="/srv/hauba")


class TestServiceRecord:

    def test_json_uses_camel_case_keys(self):
        data = _record().to_json()
        assert data == {
            "pid": 4242,
            "startedAt": "2026-02-04T00:00:00+00:00",
            "port": 18790,
            "version": "0.1.0",
            "workDir": "/srv/hauba",
        }

    def test_from_json_fills_optional_fields(self):
        rec = ServiceRecord.from_json({"pid": 7, "port": 18789})
        assert rec.pid == 7
        assert rec.port == 18789
        assert rec.started_at == ""
        assert rec.work_dir == ""

    @pytest.mark.parametrize("pid", [0, -3, "12", True, None, 1.5, 2**31, 99999999999999999999])
    def test_from_json_rejects_bad_pid(self, pid):
        with pytest.raises(ValueError):
            ServiceRecord.from_json({"pid": pid, "port": 1})

    def test_utc_now_iso_is_parseable(self):
        from datetime import datetime
        stamp = utc_now_iso()
        assert datetime.fromisoformat(stamp).tzinfo is not None


class TestPidRegistry:

    def test_write_then_read(self, tmp_path):
        reg = PidRegistry(str(tmp_path))
        path = reg.write("daemon", _record())
        assert path == os.path.join(str(tmp_path), "daemon.pid")
        assert reg.read("daemon") == _record()

    def test_file_content_is_json(self, tmp_path):
        reg = PidRegistry(str(tmp_path))
        reg.write("daemon", _record())
        with open(reg.path_for("daemon")) as f:
            assert json.load(f)["pid"] == 4242

    def test_write_creates_base_dir(self, tmp_path):
        reg = PidRegistry(str(tmp_path / "nested" / "home"))
        reg.write("gateway", _record(port=18789))
        assert reg.read("gateway").port == 18789

    def test_write_leaves_no_temp_file(self, tmp_path):
        reg = PidRegistry(str(tmp_path))
        reg.write("daemon", _record())
        assert sorted(os.listdir(tmp_path)) == ["daemon.pid"]

    def test_overwrite_replaces_record(self, tmp_path):
        reg = PidRegistry(str(tmp_path))
        reg.write("daemon", _record(pid=1))
        reg.write("daemon", _record(pid=2))
        assert reg.read("daemon").pid == 2

    def test_missing_file_reads_none(self, tmp_path):
        assert PidRegistry(str(tmp_path)).read("daemon") is None

    @pytest.mark.parametrize("content", ["", "not json", "[1, 2]", '{"port": 1}',
                                         '{"pid": "abc"}', '{"pid": -1}',
                                         "\u00b2", "99999999999999999999",
                                         '{"pid": 99999999999999999999}'])
    def test_malformed_file_reads_none(self, tmp_path, content):
        reg = PidRegistry(str(tmp_path))
        with open(reg.path_for("daemon"), "w", encoding="utf-8") as f:
            f.write(content)
        assert reg.read("daemon") is None

    def test_undecodable_file_reads_none(self, tmp_path):
        reg = PidRegistry(str(tmp_path))
        with open(reg.path_for("daemon"), "wb") as f:
            f.write(b"\xff\xfe\x00")
        assert reg.read("daemon") is None

    def test_plain_integer_file_is_accepted(self, tmp_path):
        reg = PidRegistry(str(tmp_path))
        with open(reg.path_for("gateway"), "w") as f:
            f.write("31337\n")
        rec = reg.read("gateway")
        assert rec.pid == 31337
        assert rec.port == 0

    def test_delete(self, tmp_path):
        reg = PidRegistry(str(tmp_path))
        reg.write("daemon", _record())
        assert reg.delete("daemon") is True
        assert reg.read("daemon") is None
        assert reg.delete("daemon") is False

    def test_services_are_independent(self, tmp_path):
        reg = PidRegistry(str(tmp_path))
        reg.write("daemon", _record(pid=10))
        reg.write("gateway", _record(pid=20))
        reg.delete("daemon")
        assert reg.read("gateway").pid == 20
