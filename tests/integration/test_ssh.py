"""
SSH Integration Tests

Runs the dispatcher through real processes. A stub ``ssh`` script stands in
for the client and executes the remote command locally, so these tests
need a POSIX shell but no SSH server.

Set FORTIS_SSH_TEST_HOST (and optionally FORTIS_SSH_TEST_USER) to also run
against a real host with key-based login.
"""

import os
import shutil
import time
from pathlib import Path

import pytest

from fortis.engine.dispatcher import ExecOptions, FleetDispatcher
from fortis.engine.monitor import Monitor
from fortis.engine.patch import PatchOptions, PatchOrchestrator
from fortis.platform import IS_LINUX, IS_WINDOWS

SKIP_POSIX = "stub ssh client needs a POSIX shell"
REAL_HOST = os.environ.get("FORTIS_SSH_TEST_HOST")

STUB_SSH = """#!/bin/sh
# Stand-in ssh client: the last argument is the remote command.
for last; do :; done
exec /bin/sh -c "$last"
"""


@pytest.fixture
def stub_ssh(tmp_path: Path) -> str:
    path = tmp_path / "ssh"
    path.write_text(STUB_SSH)
    path.chmod(0o755)
    return str(path)


@pytest.mark.skipif(IS_WINDOWS, reason=SKIP_POSIX)
class TestStubClient:
    """End-to-end runs through the subprocess runner."""

    def test_exec_collects_output(self, stub_ssh):
        results = FleetDispatcher(ssh_binary=stub_ssh).execute(
            ExecOptions(command="echo hello; echo oops >&2", hosts=["a", "b", "c"], parallel=2)
        )
        assert len(results) == 3
        for r in results:
            assert r.ok
            assert "hello" in r.output
            assert "oops" in r.output

    def test_exit_status_recorded(self, stub_ssh):
        results = FleetDispatcher(ssh_binary=stub_ssh).execute(
            ExecOptions(command="echo partial; exit 3", hosts=["a"])
        )
        assert results[0].ok is False
        assert results[0].error == "exit status 3"
        assert "partial" in results[0].output

    def test_timeouts_run_concurrently(self, stub_ssh):
        started = time.monotonic()
        results = FleetDispatcher(ssh_binary=stub_ssh).execute(
            ExecOptions(command="exec sleep 30", hosts=["a", "b", "c", "d"], parallel=4, ssh_timeout=1)
        )
        assert time.monotonic() - started < 4
        assert all(r.error == "timed out after 1s" for r in results)

    def test_missing_client(self, tmp_path):
        results = FleetDispatcher(ssh_binary=str(tmp_path / "no-ssh")).execute(
            ExecOptions(command="true", hosts=["a", "b"])
        )
        assert len(results) == 2
        assert all(not r.ok and "not found" in r.error for r in results)

    def test_dry_run_patch(self, stub_ssh):
        report = PatchOrchestrator(FleetDispatcher(ssh_binary=stub_ssh)).run(
            PatchOptions(hosts=["a", "b"], packages=["nginx"])
        )
        assert report.success
        assert all(r.output.strip() == "OK=1" for r in report.results)

    @pytest.mark.skipif(not IS_LINUX or shutil.which("bash") is None, reason="probe needs bash and /proc")
    def test_monitor_probe(self, stub_ssh):
        report = Monitor(FleetDispatcher(ssh_binary=stub_ssh)).run(ExecOptions(hosts=["local"]))
        host = report.hosts[0]
        assert host.ok
        assert host.load_avg
        assert 55 <= report.health <= 80


@pytest.mark.skipif(not REAL_HOST, reason="FORTIS_SSH_TEST_HOST not set")
class TestRealHost:
    """Runs against a real SSH server."""

    def test_uname(self):
        results = FleetDispatcher().execute(
            ExecOptions(
                command="uname -s",
                hosts=[REAL_HOST],
                ssh_user=os.environ.get("FORTIS_SSH_TEST_USER"),
                ssh_timeout=20,
            )
        )
        assert results[0].ok, results[0].error
        assert results[0].output.strip()
