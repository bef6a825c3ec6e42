"""
Tests for result classes and the result aggregator.
"""

import json
import queue
import threading

import pytest

from fortis.engine.results import (
    ExecResult,
    HostMetrics,
    MonitorReport,
    PatchHostResult,
    PatchReport,
    ResultAggregator,
)


class TestExecResult:
    """Test ExecResult class."""

    def test_ok_to_dict(self):
        result = ExecResult(host="web01", ok=True, output="up 3 days\n")
        assert result.to_dict() == {"host": "web01", "ok": True, "output": "up 3 days\n"}
        assert not result.failed

    def test_failed_to_dict(self):
        result = ExecResult(host="web01", ok=False, error="exit status 1")
        d = result.to_dict()
        assert d["error"] == "exit status 1"
        assert result.failed


class TestReports:
    """Test report serialisation."""

    def test_monitor_report_json(self):
        report = MonitorReport(
            hosts=[
                HostMetrics(host="a", ok=True, load_avg="0.1 0.2 0.3", health=80),
                HostMetrics(host="b", ok=False, error="timed out after 30s"),
            ],
            health=80,
        )
        data = json.loads(report.to_json())
        assert data["health"] == 80
        assert data["hosts"][0]["load_avg"] == "0.1 0.2 0.3"
        assert "uptime" not in data["hosts"][0]
        assert data["hosts"][1] == {"host": "b", "ok": False, "error": "timed out after 30s", "health": 0}
        assert [h.host for h in report.reachable] == ["a"]
        assert [h.host for h in report.unavailable] == ["b"]

    def test_patch_report(self):
        report = PatchReport(
            apply=False,
            strategy="rolling",
            batch_size=2,
            packages=["nginx"],
            results=[
                PatchHostResult(host="a", ok=True, plan="update packages: nginx", output="OK=1\n"),
                PatchHostResult(host="b", ok=False, plan="update packages: nginx", error="exit status 255"),
            ],
        )
        assert not report.success
        assert report.failed_hosts == ["b"]

        data = report.to_dict()
        assert data["apply"] is False
        assert data["strategy"] == "rolling"
        assert data["batch_size"] == 2
        assert data["packages"] == ["nginx"]
        assert data["results"][0]["output"] == "OK=1\n"
        assert "error" not in data["results"][0]

    def test_empty_patch_report_succeeds(self):
        assert PatchReport(apply=True, strategy="canary", batch_size=1).success


class TestResultAggregator:
    """Test fan-in collection."""

    def test_collects_in_arrival_order(self):
        agg = ResultAggregator(["a", "b", "c"])
        agg.put(ExecResult(host="c", ok=True))
        agg.put(ExecResult(host="a", ok=False, error="x"))
        agg.put(ExecResult(host="b", ok=True))
        assert [r.host for r in agg.collect(timeout=1)] == ["c", "a", "b"]
        assert agg.pending() == []

    def test_concurrent_producers(self):
        hosts = [f"h{i}" for i in range(50)]
        agg = ResultAggregator(hosts)
        threads = [
            threading.Thread(target=agg.put, args=(ExecResult(host=h, ok=True),))
            for h in hosts
        ]
        for t in threads:
            t.start()
        results = agg.collect(timeout=5)
        for t in threads:
            t.join()
        assert sorted(r.host for r in results) == sorted(hosts)

    def test_duplicate_rejected(self):
        agg = ResultAggregator(["a", "b"])
        agg.put(ExecResult(host="a", ok=True))
        agg.put(ExecResult(host="a", ok=True))
        with pytest.raises(ValueError, match="duplicate"):
            agg.collect(timeout=1)

    def test_unexpected_rejected(self):
        agg = ResultAggregator(["a"])
        agg.put(ExecResult(host="zzz", ok=True))
        with pytest.raises(ValueError, match="unexpected"):
            agg.collect(timeout=1)

    def test_pending_and_timeout(self):
        agg = ResultAggregator(["a", "b"])
        agg.put(ExecResult(host="a", ok=True))
        with pytest.raises(queue.Empty):
            agg.collect(timeout=0.1)
        assert agg.pending() == ["b"]

    def test_nothing_expected(self):
        assert ResultAggregator([]).collect() == []
