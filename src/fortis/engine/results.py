# Copyright (c) 2024 Fortis Contributors
# MIT License

"""
Fortis Result Classes

Data structures for per-host outcomes and the reports derived from them,
plus the fan-in collector the dispatcher's workers report into.
"""

import json
import queue
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ExecResult:
    """Outcome of running the command on a single host."""

    host: str
    ok: bool
    output: str = ""
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return not self.ok

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        result: Dict[str, Any] = {
            "host": self.host,
            "ok": self.ok,
            "output": self.output,
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class HostMetrics:
    """Health probe outcome for a single host."""

    host: str
    ok: bool
    load_avg: str = ""
    uptime: str = ""
    mem_summary: str = ""
    disk_root: str = ""
    health: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        result: Dict[str, Any] = {"host": self.host, "ok": self.ok}
        for key in ("load_avg", "uptime", "mem_summary", "disk_root"):
            value = getattr(self, key)
            if value:
                result[key] = value
        if self.error:
            result["error"] = self.error
        result["health"] = self.health
        return result


@dataclass
class MonitorReport:
    """Per-host metrics and the cluster-wide health average."""

    hosts: List[HostMetrics] = field(default_factory=list)
    health: int = 0
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def reachable(self) -> List[HostMetrics]:
        return [h for h in self.hosts if h.ok]

    @property
    def unavailable(self) -> List[HostMetrics]:
        return [h for h in self.hosts if not h.ok]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "hosts": [h.to_dict() for h in self.hosts],
            "health": self.health,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


@dataclass
class PatchHostResult:
    """Patch (or dry-run probe) outcome for a single host."""

    host: str
    ok: bool
    plan: str
    output: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"host": self.host, "ok": self.ok, "plan": self.plan}
        if self.output:
            result["output"] = self.output
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class PatchReport:
    """Result of a patch run, with the options that shaped it."""

    apply: bool
    strategy: str
    batch_size: int
    packages: List[str] = field(default_factory=list)
    rollback_on_failure: bool = False
    results: List[PatchHostResult] = field(default_factory=list)
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def success(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failed_hosts(self) -> List[str]:
        return [r.host for r in self.results if not r.ok]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "apply": self.apply,
            "strategy": self.strategy,
            "batch_size": self.batch_size,
            "packages": list(self.packages),
            "rollback_on_failure": self.rollback_on_failure,
            "results": [r.to_dict() for r in self.results],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


class ResultAggregator:
    """
    Fan-in point for results produced by concurrent workers.

    Any number of threads may call ``put``; one consumer calls ``collect``,
    which blocks until every expected host has reported exactly once.
    Results come back in arrival order, not target order.
    """

    def __init__(self, expected_hosts: Iterable[str]):
        self._expected = list(expected_hosts)
        self._queue: "queue.Queue[ExecResult]" = queue.Queue()
        self._received: Dict[str, ExecResult] = {}
        self._order: List[str] = []

    @property
    def expected(self) -> List[str]:
        return list(self._expected)

    def put(self, result: ExecResult) -> None:
        """Report one host's result (thread-safe)."""
        self._queue.put(result)

    def pending(self) -> List[str]:
        """Hosts the consumer has not yet received a result for."""
        return [h for h in self._expected if h not in self._received]

    def collect(self, timeout: Optional[float] = None) -> List[ExecResult]:
        """
        Block until one result per expected host has arrived.

        Args:
            timeout: Max seconds to wait for each single result

        Raises:
            ValueError: On a result for an unknown host or a second result
                for the same host
            queue.Empty: If ``timeout`` elapsed while waiting
        """
        expected = set(self._expected)
        while len(self._received) < len(expected):
            result = self._queue.get(timeout=timeout)
            if result.host not in expected:
                raise ValueError(f"result for unexpected host: {result.host}")
            if result.host in self._received:
                raise ValueError(f"duplicate result for host: {result.host}")
            self._received[result.host] = result
            self._order.append(result.host)
        return [self._received[h] for h in self._order]
