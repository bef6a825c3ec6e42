# Copyright (c) 2024 Fortis Contributors
# MIT License

"""
Fortis Reporting

Turns engine results into text or JSON for the terminal or a file.
Output mode and colour come from an explicit OutputConfig; nothing here
reads global flags.
"""

import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List, Union

from fortis.engine.inventory import Inventory
from fortis.engine.results import ExecResult, MonitorReport, PatchReport
from fortis.platform.tty import StatusPainter

FORMATS = ("text", "json")


@dataclass(frozen=True)
class OutputConfig:
    """How results are rendered."""

    format: str = "text"
    color: bool = False

    def __post_init__(self) -> None:
        if self.format not in FORMATS:
            raise ValueError(f"unknown output format: {self.format!r}")

    @property
    def is_json(self) -> bool:
        return self.format == "json"

    def painter(self) -> StatusPainter:
        return StatusPainter(enabled=self.color and not self.is_json)


def _dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2)


def render_exec_results(results: Iterable[ExecResult], config: OutputConfig) -> str:
    """One block per host: a status header followed by its output."""
    results = list(results)
    if config.is_json:
        return _dumps([r.to_dict() for r in results])

    p = config.painter()
    blocks: List[str] = []
    for r in results:
        if r.ok:
            header = f"[{r.host}] " + p.ok()
        else:
            header = f"[{r.host}] " + p.failed() + f": {r.error}"
        output = r.output.rstrip("\n")
        blocks.append(f"{header}\n{output}" if output else header)
    return "\n".join(blocks)


def render_monitor_report(report: MonitorReport, config: OutputConfig) -> str:
    if config.is_json:
        return report.to_json()

    p = config.painter()
    lines = [p.heading("Cluster Health: ") + p.health(report.health) + "/100"]
    for h in report.hosts:
        if not h.ok:
            lines.append(f"{h.host}\t{p.failed()}\t{h.error or ''}")
            continue
        lines.append(
            f"{h.host}\t{p.ok()}\tHealth={p.health(h.health)}\tLoad={h.load_avg}"
            f"\tMem={h.mem_summary}\tDisk={h.disk_root}\tUptime={h.uptime}"
        )
    return "\n".join(lines)


def render_patch_report(report: PatchReport, config: OutputConfig) -> str:
    if config.is_json:
        return report.to_json()

    p = config.painter()
    mode = "APPLY" if report.apply else "DRY-RUN"
    lines = [
        p.heading(f"Patch {mode}") + f" strategy={report.strategy} batch_size={report.batch_size}",
    ]
    for r in report.results:
        status = p.ok() if r.ok else p.failed("FAILED")
        line = f"{r.host}\t{status}\t{r.plan}"
        if r.error:
            line += f"\t{r.error}"
        lines.append(line)
    return "\n".join(lines)


def inventory_payload(inventory: Inventory) -> dict:
    payload = {
        "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "servers": [s.to_dict() for s in inventory.servers],
    }
    payload.update(inventory.summary())
    return payload


def render_inventory(inventory: Inventory, config: OutputConfig) -> str:
    if config.is_json:
        return _dumps(inventory_payload(inventory))
    return "\n".join(f"{s.identifier}\t{s.ip}\t{s.status}" for s in inventory.servers)


def export_json(path: Union[str, Path], text: str) -> Path:
    """Write rendered JSON to ``path`` with owner-only permissions."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(text)
        fh.write("\n")
    os.chmod(target, 0o600)
    return target
