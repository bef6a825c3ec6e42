# Copyright (c) 2024 Fortis Contributors
# MIT License

"""
Fortis Patch Orchestration

Builds a package install command and runs it across the fleet, but only
when the caller asked to apply AND confirmed. Without ``apply`` a harmless
probe is sent instead, so a dry run still shows which hosts are reachable.
"""

import logging
import shlex
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from fortis.engine.dispatcher import CancelToken, ExecOptions, FleetDispatcher
from fortis.engine.errors import ConfirmationRequiredError, ValidationError
from fortis.engine.results import PatchHostResult, PatchReport

logger = logging.getLogger(__name__)

STRATEGIES = ("rolling", "parallel", "canary")
DEFAULT_STRATEGY = "rolling"
DEFAULT_BATCH_SIZE = 2

DRY_RUN_PROBE = "echo OK=1"
NOTHING_TO_DO = "echo 'no packages specified; nothing to do'"
PRE_CHECK = "uname -a"
POST_CHECK = "echo POSTCHECK_OK=1"


@dataclass
class PatchOptions(ExecOptions):
    """ExecOptions plus the patch plan and the safety switches."""

    packages: List[str] = field(default_factory=list)
    strategy: str = DEFAULT_STRATEGY
    batch_size: int = DEFAULT_BATCH_SIZE
    pre_check: bool = False
    post_check: bool = False
    rollback_on_failure: bool = False

    apply: bool = False
    yes: bool = False


def describe_plan(packages: Sequence[str]) -> str:
    if not packages:
        return "noop"
    return "update packages: " + ",".join(packages)


def build_patch_command(
    packages: Sequence[str],
    pre_check: bool = False,
    post_check: bool = False,
) -> str:
    """
    Build the mutating remote command.

    Tries apt-get first, then yum, and otherwise prints that no supported
    package manager was found.
    """
    if not packages:
        cmd = NOTHING_TO_DO
    else:
        pkgs = " ".join(shlex.quote(p) for p in packages)
        cmd = (
            f"(command -v apt-get >/dev/null 2>&1 && sudo apt-get update -y && sudo apt-get install -y {pkgs})"
            f" || (command -v yum >/dev/null 2>&1 && sudo yum install -y {pkgs})"
            " || echo 'no supported package manager'"
        )

    if pre_check:
        cmd = f"{PRE_CHECK}; {cmd}"
    if post_check:
        cmd = f"{cmd}; {POST_CHECK}"
    return cmd


class PatchOrchestrator:
    """Gated patch runs on top of a FleetDispatcher."""

    def __init__(self, dispatcher: Optional[FleetDispatcher] = None):
        self.dispatcher = dispatcher or FleetDispatcher()

    def run(self, options: PatchOptions, cancel: Optional[CancelToken] = None) -> PatchReport:
        """
        Dry-run or apply a patch plan.

        The strategy and batch size are recorded in the report; all targets
        are dispatched together, bounded only by ``options.parallel``.

        Raises:
            ConfirmationRequiredError: ``apply`` without ``yes``; no host
                is contacted
            ValidationError: Unknown strategy
        """
        if options.apply and not options.yes:
            raise ConfirmationRequiredError("apply patches")

        strategy = (options.strategy or DEFAULT_STRATEGY).strip().lower()
        if strategy not in STRATEGIES:
            raise ValidationError(
                f"unknown patch strategy: {options.strategy!r}",
                details=f"expected one of: {', '.join(STRATEGIES)}",
            )
        batch_size = options.batch_size if options.batch_size > 0 else DEFAULT_BATCH_SIZE
        packages = [p.strip() for p in options.packages if p.strip()]
        plan = describe_plan(packages)

        if options.apply:
            command = build_patch_command(packages, options.pre_check, options.post_check)
        else:
            command = DRY_RUN_PROBE

        logger.info(
            "Patch %s: %s (strategy=%s, batch_size=%d)",
            "apply" if options.apply else "dry-run", plan, strategy, batch_size,
        )

        results = self.dispatcher.execute(options.with_command(command), cancel=cancel)

        return PatchReport(
            apply=options.apply,
            strategy=strategy,
            batch_size=batch_size,
            packages=packages,
            rollback_on_failure=options.rollback_on_failure,
            results=[
                PatchHostResult(
                    host=r.host,
                    ok=r.ok,
                    plan=plan,
                    output=r.output,
                    error=r.error,
                )
                for r in results
            ],
        )
