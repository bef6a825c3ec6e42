# Copyright (c) 2024 Fortis Contributors
# MIT License

"""
Fortis Cluster Monitor

Sends one metrics probe to every host and turns the replies into a health
report.

The probe prints one ``KEY=value`` line per requested metric:

- cpu:    LOADAVG, first three fields of /proc/loadavg
- uptime: UPTIME, from ``uptime -p``
- memory: MEM, used/total MB from ``free -m``
- disk:   DISK, use% of / from ``df -h /``
"""

import logging
import shlex
from typing import Dict, Iterable, List, Optional, Sequence

from fortis.engine.dispatcher import CancelToken, ExecOptions, FleetDispatcher
from fortis.engine.results import ExecResult, HostMetrics, MonitorReport

logger = logging.getLogger(__name__)

# Metric name -> probe key, in probe order.
METRIC_KEYS: Dict[str, str] = {
    "cpu": "LOADAVG",
    "uptime": "UPTIME",
    "memory": "MEM",
    "disk": "DISK",
}

DEFAULT_METRICS = ("cpu", "memory", "disk", "uptime")

_PROBE_PARTS: Dict[str, str] = {
    "cpu": "echo LOADAVG=$(cat /proc/loadavg 2>/dev/null | awk '{print $1\" \"$2\" \"$3}' || true)",
    "uptime": "echo UPTIME=$(uptime -p 2>/dev/null || true)",
    "memory": "echo MEM=$(free -m 2>/dev/null | awk '/Mem:/ {print $3\"/\"$2\"MB\"}' || true)",
    "disk": "echo DISK=$(df -h / 2>/dev/null | awk 'NR==2 {print $5\" used\"}' || true)",
}

# Probe used when no known metric was requested.
NOOP_PROBE = "echo OK=1"

HEALTH_BASELINE = 80
LOAD_PENALTY = 10
MEMORY_PENALTY = 10
UPTIME_PENALTY = 5


def select_metrics(metrics: Optional[Iterable[str]] = None) -> List[str]:
    """Normalise requested metric names; unknown names are dropped."""
    if not metrics:
        requested = set(DEFAULT_METRICS)
    else:
        requested = {m.strip().lower() for m in metrics}
    unknown = requested - set(METRIC_KEYS)
    if unknown:
        logger.debug("Ignoring unsupported metrics: %s", ", ".join(sorted(unknown)))
    return [name for name in METRIC_KEYS if name in requested]


def build_probe(metrics: Optional[Iterable[str]] = None) -> str:
    """Build the remote shell command emitting ``KEY=value`` lines."""
    parts = [_PROBE_PARTS[name] for name in select_metrics(metrics)]
    if not parts:
        return NOOP_PROBE
    return "bash -lc " + shlex.quote("; ".join(parts))


def parse_key_values(output: str, keys: Sequence[str]) -> Dict[str, str]:
    """
    Parse ``KEY=value`` lines.

    Grammar, one record per line::

        line  := KEY "=" value
        value := rest of the line (may be empty, may contain "=")

    Lines are stripped before matching. Only keys listed in ``keys`` are
    recognised; other lines are ignored. The first occurrence of a key wins.
    Values are not validated.

    Returns:
        Mapping of every recognised key found to its value
    """
    found: Dict[str, str] = {}
    for line in output.splitlines():
        line = line.strip()
        for key in keys:
            if key in found:
                continue
            prefix = key + "="
            if line.startswith(prefix):
                found[key] = line[len(prefix):]
                break
    return found


def score_host(metrics: HostMetrics) -> int:
    """
    Health heuristic for a host that answered the probe.

    Starts at HEALTH_BASELINE and deducts for each missing load, memory or
    uptime reading. Disk is reported but does not affect the score.
    """
    score = HEALTH_BASELINE
    if not metrics.load_avg:
        score -= LOAD_PENALTY
    if not metrics.mem_summary:
        score -= MEMORY_PENALTY
    if not metrics.uptime:
        score -= UPTIME_PENALTY
    return score


def derive_metrics(result: ExecResult) -> HostMetrics:
    """Turn one host's probe result into HostMetrics."""
    if not result.ok:
        return HostMetrics(host=result.host, ok=False, health=0, error=result.error)

    values = parse_key_values(result.output, list(METRIC_KEYS.values()))
    metrics = HostMetrics(
        host=result.host,
        ok=True,
        load_avg=values.get("LOADAVG", ""),
        uptime=values.get("UPTIME", ""),
        mem_summary=values.get("MEM", ""),
        disk_root=values.get("DISK", ""),
    )
    metrics.health = score_host(metrics)
    return metrics


def cluster_health(hosts: Iterable[HostMetrics]) -> int:
    """Integer mean health over hosts that answered; 0 if none did."""
    scores = [h.health for h in hosts if h.ok]
    if not scores:
        return 0
    return sum(scores) // len(scores)


def build_report(results: Iterable[ExecResult]) -> MonitorReport:
    hosts = [derive_metrics(r) for r in results]
    return MonitorReport(hosts=hosts, health=cluster_health(hosts))


class Monitor:
    """Runs the metrics probe through a FleetDispatcher."""

    def __init__(self, dispatcher: Optional[FleetDispatcher] = None):
        self.dispatcher = dispatcher or FleetDispatcher()

    def run(
        self,
        options: ExecOptions,
        metrics: Optional[Iterable[str]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> MonitorReport:
        """
        Probe every target and build a MonitorReport.

        ``options.command`` is ignored and replaced by the probe.
        """
        probe = build_probe(metrics)
        results = self.dispatcher.execute(options.with_command(probe), cancel=cancel)
        report = build_report(results)
        logger.info(
            "Cluster health %d/100 (%d reachable, %d unavailable)",
            report.health, len(report.reachable), len(report.unavailable),
        )
        return report
