# Copyright (c) 2024 Fortis Contributors
# MIT License

"""
Fortis Fleet Dispatcher

Runs one command on every resolved host through the system ``ssh`` client,
using a fixed-size pool of worker threads.

Each host gets exactly one attempt and exactly one ExecResult. A failure on
one host (non-zero exit, unreachable, timeout) is recorded in that host's
result and never affects the others. The call itself only raises for
problems found before any host is contacted.
"""

import dataclasses
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from fortis.engine.errors import (
    HostCancelledError,
    HostExecutionError,
    HostTimeoutError,
    RemoteCommandError,
    ValidationError,
)
from fortis.engine.inventory import (
    Inventory,
    ResolvedTargets,
    connection_params,
    resolve_targets,
)
from fortis.engine.results import ExecResult, ResultAggregator
from fortis.platform import proc
from fortis.platform.concurrency import WorkerPool

logger = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 22
DEFAULT_SSH_TIMEOUT = 30.0
DEFAULT_PARALLEL = 4


@dataclass
class ExecOptions:
    """Everything needed to run one command across the fleet."""

    command: str = ""
    hosts: List[str] = field(default_factory=list)
    hosts_file: Optional[str] = None
    group: Optional[str] = None
    inventory_path: Optional[str] = None

    ssh_user: Optional[str] = None
    ssh_port: int = DEFAULT_SSH_PORT
    ssh_key: Optional[str] = None
    ssh_timeout: float = DEFAULT_SSH_TIMEOUT

    parallel: int = DEFAULT_PARALLEL

    def normalized(self) -> "ExecOptions":
        """Copy with non-positive port/timeout/parallel replaced by defaults."""
        return dataclasses.replace(
            self,
            hosts=list(self.hosts),
            ssh_port=self.ssh_port if self.ssh_port > 0 else DEFAULT_SSH_PORT,
            ssh_timeout=self.ssh_timeout if self.ssh_timeout > 0 else DEFAULT_SSH_TIMEOUT,
            parallel=self.parallel if self.parallel > 0 else DEFAULT_PARALLEL,
        )

    def with_command(self, command: str) -> "ExecOptions":
        return dataclasses.replace(self, command=command, hosts=list(self.hosts))


class CancelToken:
    """
    Cancellation signal shared by the caller and all workers.

    ``cancel()`` may be called from any thread (e.g. a SIGINT handler).
    With ``timeout`` set, the token also trips by itself once that many
    seconds have passed, and per-host timeouts are clipped to what is left.
    """

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def bound(self, timeout: float) -> float:
        """Clip a per-host timeout to the time left on this token."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        return min(timeout, remaining)


@dataclass(frozen=True)
class HostJob:
    """One host's unit of work, with its own copy of the effective settings."""

    host: str
    command: str
    user: Optional[str]
    port: int
    key: Optional[str]
    timeout: float

    def argv(self, ssh_binary: str = "ssh") -> List[str]:
        return build_ssh_argv(
            self.host,
            self.command,
            user=self.user,
            port=self.port,
            key=self.key,
            ssh_binary=ssh_binary,
        )


def build_ssh_argv(
    host: str,
    command: str,
    user: Optional[str] = None,
    port: int = DEFAULT_SSH_PORT,
    key: Optional[str] = None,
    ssh_binary: str = "ssh",
) -> List[str]:
    """
    Build the remote-shell argv.

    Shape: ``ssh -p PORT -o BatchMode=yes -o StrictHostKeyChecking=accept-new
    [-i KEY] [USER@]HOST COMMAND``. BatchMode makes ssh fail instead of
    prompting for a password or passphrase.
    """
    argv = [
        ssh_binary,
        "-p", str(port),
        "-o", "BatchMode=yes",
        "-o", "StrictHostKeyChecking=accept-new",
    ]
    if key:
        argv.extend(["-i", key])
    argv.append(f"{user}@{host}" if user else host)
    argv.append(command)
    return argv


# (argv, timeout, cancel) -> ProcessResult
Runner = Callable[[Sequence[str], float, Optional[proc.CancelFlag]], proc.ProcessResult]


def subprocess_runner(
    argv: Sequence[str],
    timeout: float,
    cancel: Optional[proc.CancelFlag] = None,
) -> proc.ProcessResult:
    """Default runner: launch the process locally."""
    return proc.run_captured(argv, timeout=timeout, cancel=cancel)


class FleetDispatcher:
    """
    Bounded-concurrency executor for one command across many hosts.

    ``runner`` launches a single remote invocation and is the seam tests
    replace; it receives the full ssh argv.
    """

    def __init__(self, runner: Optional[Runner] = None, ssh_binary: str = "ssh"):
        self.runner: Runner = runner or subprocess_runner
        self.ssh_binary = ssh_binary

    def execute(
        self,
        options: ExecOptions,
        cancel: Optional[CancelToken] = None,
    ) -> List[ExecResult]:
        """
        Resolve targets and run ``options.command`` on each of them.

        Returns:
            One ExecResult per target host, in completion order

        Raises:
            ValidationError: Empty command or no targets
            ConfigurationLoadError: Hosts file or (sole) inventory unusable
        """
        if not options.command or not options.command.strip():
            raise ValidationError("command is required")

        opts = options.normalized()
        targets = resolve_targets(
            hosts=opts.hosts,
            hosts_file=opts.hosts_file,
            group=opts.group,
            inventory_path=opts.inventory_path,
        )
        return self.dispatch(targets, opts, cancel)

    def dispatch(
        self,
        targets: ResolvedTargets,
        options: ExecOptions,
        cancel: Optional[CancelToken] = None,
    ) -> List[ExecResult]:
        """Run ``options.command`` on already-resolved targets."""
        jobs = [self._make_job(host, targets.inventory, options) for host in targets.hosts]
        aggregator = ResultAggregator(job.host for job in jobs)

        pool: WorkerPool[HostJob, ExecResult] = WorkerPool(
            lambda job: self._run_job(job, cancel),
            num_workers=min(options.parallel, len(jobs)),
            on_result=lambda job, result: aggregator.put(result),
            on_error=lambda job, e: aggregator.put(
                ExecResult(host=job.host, ok=False, error=str(e))
            ),
            name="fortis-ssh",
        )

        started = time.monotonic()
        logger.info(
            "Dispatching to %d host(s) with parallel=%d, timeout=%gs",
            len(jobs), pool.num_workers, options.ssh_timeout,
        )
        pool.run(jobs)
        results = aggregator.collect()

        failed = sum(1 for r in results if not r.ok)
        logger.info(
            "Finished %d host(s) in %.2fs: %d ok, %d failed",
            len(results), time.monotonic() - started, len(results) - failed, failed,
        )
        if cancel is not None and cancel.is_set():
            logger.warning("Run was cancelled; unfinished hosts are marked failed")
        return results

    def _make_job(self, host: str, inventory: Inventory, options: ExecOptions) -> HostJob:
        user, port = connection_params(host, inventory, options.ssh_user, options.ssh_port)
        return HostJob(
            host=host,
            command=options.command,
            user=user,
            port=port,
            key=options.ssh_key or None,
            timeout=options.ssh_timeout,
        )

    def _run_job(self, job: HostJob, cancel: Optional[CancelToken]) -> ExecResult:
        """Run one host's job; every failure becomes a failed result."""
        if cancel is not None and cancel.is_set():
            return self._failed(HostCancelledError(job.host, started=False))

        timeout = cancel.bound(job.timeout) if cancel is not None else job.timeout
        argv = job.argv(self.ssh_binary)
        logger.debug("[%s] %s", job.host, argv)

        try:
            result = self.runner(argv, timeout, cancel)
        except proc.ProcessTimeout as e:
            # A clipped timeout expiring means the run deadline was hit.
            if cancel is not None and cancel.is_set():
                return self._failed(HostCancelledError(job.host, started=True), e.output)
            return self._failed(HostTimeoutError(job.host, timeout), e.output)
        except proc.ProcessCancelled as e:
            return self._failed(HostCancelledError(job.host, started=e.started), e.output)
        except OSError as e:
            return self._failed(HostExecutionError(job.host, str(e)))

        if result.failed:
            return self._failed(RemoteCommandError(job.host, result.returncode), result.output)

        logger.debug("[%s] ok", job.host)
        return ExecResult(host=job.host, ok=True, output=result.output)

    @staticmethod
    def _failed(error: HostExecutionError, output: str = "") -> ExecResult:
        logger.debug("[%s] failed: %s", error.host, error.message)
        return ExecResult(host=error.host, ok=False, output=output, error=error.message)
