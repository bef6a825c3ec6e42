# Copyright (c) 2024 Fortis Contributors
# MIT License

"""
Process execution.

Runs one external command with stdout and stderr merged into a single
buffer, bounded by a timeout and interruptible by a cancellation flag.
"""

import subprocess
import time
from typing import Optional, Protocol, Sequence


# How often a waiting worker wakes up to look at the cancellation flag.
POLL_INTERVAL = 0.05


class CancelFlag(Protocol):
    """Anything with an ``is_set()`` method, e.g. ``threading.Event``."""

    def is_set(self) -> bool:
        ...


class ProcessResult:
    """Result of a process execution."""

    def __init__(
        self,
        returncode: int,
        output: str,
        command: Sequence[str],
        duration: float = 0.0,
    ):
        self.returncode = returncode
        self.output = output
        self.command = command
        self.duration = duration

    @property
    def success(self) -> bool:
        """Check if process exited successfully."""
        return self.returncode == 0

    @property
    def failed(self) -> bool:
        """Check if process failed."""
        return self.returncode != 0

    def __repr__(self) -> str:
        return f"ProcessResult(returncode={self.returncode}, output={len(self.output)} chars)"


class ProcessTimeout(Exception):
    """The process was killed because its timeout elapsed."""

    def __init__(self, command: Sequence[str], timeout: float, output: str = ""):
        self.command = command
        self.timeout = timeout
        self.output = output
        super().__init__(f"process timed out after {timeout:g}s")


class ProcessCancelled(Exception):
    """The process was killed (or never started) because the run was cancelled."""

    def __init__(self, command: Sequence[str], output: str = "", started: bool = True):
        self.command = command
        self.output = output
        self.started = started
        super().__init__("process cancelled")


def _decode(data: Optional[bytes], encoding: str) -> str:
    if not data:
        return ""
    return data.decode(encoding, errors="replace")


def _kill(proc: subprocess.Popen, encoding: str) -> str:
    """Kill a running process, reap it, and return whatever it printed."""
    proc.kill()
    out, _ = proc.communicate()
    return _decode(out, encoding)


def run_captured(
    argv: Sequence[str],
    *,
    timeout: float,
    cancel: Optional[CancelFlag] = None,
    encoding: str = "utf-8",
) -> ProcessResult:
    """
    Run a command and return its exit status and combined output.

    stdin is closed so the child can never block on a prompt. Output is
    buffered and only returned once the process has exited.

    Args:
        argv: Command and arguments (no shell involved)
        timeout: Seconds before the process is killed
        cancel: Optional flag; when set the process is killed promptly
        encoding: Output encoding

    Returns:
        ProcessResult with returncode and merged stdout/stderr

    Raises:
        ProcessTimeout: If the timeout elapsed
        ProcessCancelled: If ``cancel`` was set before or during the run
        FileNotFoundError: If the executable does not exist
    """
    if cancel is not None and cancel.is_set():
        raise ProcessCancelled(argv, started=False)

    started = time.monotonic()
    deadline = started + timeout

    try:
        proc = subprocess.Popen(
            list(argv),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
    except FileNotFoundError as e:
        raise FileNotFoundError(f"Command not found: {argv[0]}") from e

    while True:
        if cancel is not None and cancel.is_set():
            raise ProcessCancelled(argv, _kill(proc, encoding))
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ProcessTimeout(argv, timeout, _kill(proc, encoding))
        try:
            out, _ = proc.communicate(timeout=min(POLL_INTERVAL, remaining))
        except subprocess.TimeoutExpired:
            continue
        break

    return ProcessResult(
        returncode=proc.returncode,
        output=_decode(out, encoding),
        command=argv,
        duration=time.monotonic() - started,
    )
