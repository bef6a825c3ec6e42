"""
Tests for text and JSON rendering.
"""

import json
import stat
from pathlib import Path

import pytest

from fortis.engine.inventory import Inventory, Server
from fortis.engine.results import (
    ExecResult,
    HostMetrics,
    MonitorReport,
    PatchHostResult,
    PatchReport,
)
from fortis.platform.tty import RESET
from fortis.reporting import (
    OutputConfig,
    export_json,
    render_exec_results,
    render_inventory,
    render_monitor_report,
    render_patch_report,
)

TEXT = OutputConfig()
JSON = OutputConfig(format="json")


class TestOutputConfig:

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            OutputConfig(format="xml")

    def test_json_never_coloured(self):
        assert not OutputConfig(format="json", color=True).painter().enabled


class TestExecRendering:

    RESULTS = [
        ExecResult(host="web01", ok=True, output="up 1 day\n"),
        ExecResult(host="db01", ok=False, output="", error="timed out after 30s"),
    ]

    def test_text(self):
        assert render_exec_results(self.RESULTS, TEXT) == (
            "[web01] OK\nup 1 day\n"
            "[db01] ERROR: timed out after 30s"
        )

    def test_json(self):
        data = json.loads(render_exec_results(self.RESULTS, JSON))
        assert data[1] == {"host": "db01", "ok": False, "output": "", "error": "timed out after 30s"}

    def test_colour(self):
        text = render_exec_results(self.RESULTS[:1], OutputConfig(color=True))
        assert RESET in text


class TestMonitorRendering:

    def test_text(self):
        report = MonitorReport(
            hosts=[
                HostMetrics(host="a", ok=True, load_avg="0.1", mem_summary="1/2MB",
                            disk_root="5% used", uptime="up 1 hour", health=80),
                HostMetrics(host="b", ok=False, error="exit status 255"),
            ],
            health=80,
        )
        lines = render_monitor_report(report, TEXT).splitlines()
        assert lines[0] == "Cluster Health: 80/100"
        assert lines[1] == "a\tOK\tHealth=80\tLoad=0.1\tMem=1/2MB\tDisk=5% used\tUptime=up 1 hour"
        assert lines[2] == "b\tERROR\texit status 255"


class TestPatchRendering:

    def test_text(self):
        report = PatchReport(
            apply=False, strategy="rolling", batch_size=2,
            results=[PatchHostResult(host="a", ok=True, plan="noop")],
        )
        assert render_patch_report(report, TEXT) == (
            "Patch DRY-RUN strategy=rolling batch_size=2\na\tOK\tnoop"
        )


class TestInventoryRendering:

    INV = Inventory(servers=(
        Server(hostname="web01", ip="10.0.0.1", status="online"),
        Server(ip="10.0.0.9", status="offline"),
    ))

    def test_text(self):
        assert render_inventory(self.INV, TEXT) == "web01\t10.0.0.1\tonline\n10.0.0.9\t10.0.0.9\toffline"

    def test_json(self):
        data = json.loads(render_inventory(self.INV, JSON))
        assert data["total"] == 2
        assert data["online"] == 1
        assert data["offline"] == 1
        assert data["timestamp"].endswith("Z")


class TestExport:

    def test_owner_only_permissions(self, tmp_path: Path):
        path = export_json(tmp_path / "reports" / "health.json", '{"health": 80}')
        assert json.loads(path.read_text()) == {"health": 80}
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_tightens_existing_file(self, tmp_path: Path):
        path = tmp_path / "health.json"
        path.write_text("old")
        path.chmod(0o644)
        export_json(path, "{}")
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert path.read_text() == "{}\n"
