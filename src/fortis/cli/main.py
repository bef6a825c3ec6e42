# Copyright (c) 2024 Fortis Contributors
# MIT License

"""
Main CLI entrypoint for fortis.

Usage:
    fortis --version
    fortis exec --group webservers --command "uptime"
    fortis monitor --metrics cpu,memory
    fortis patch --packages nginx openssl --apply --yes
    fortis inventory --output json
"""

import argparse
import logging
import platform
import re
import signal
import sys
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional

from fortis import __version__
from fortis.config import Config, resolve_config
from fortis.engine.dispatcher import (
    DEFAULT_PARALLEL,
    DEFAULT_SSH_PORT,
    DEFAULT_SSH_TIMEOUT,
    CancelToken,
    ExecOptions,
    FleetDispatcher,
)
from fortis.engine.errors import ExitCode, FortisError
from fortis.engine.inventory import load_inventory
from fortis.engine.monitor import Monitor
from fortis.engine.patch import DEFAULT_STRATEGY, STRATEGIES, PatchOptions, PatchOrchestrator
from fortis.platform.tty import supports_color
from fortis.reporting import (
    OutputConfig,
    export_json,
    render_exec_results,
    render_inventory,
    render_monitor_report,
    render_patch_report,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_DURATION = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def get_version_string() -> str:
    """Generate a detailed version string."""
    return (
        f"fortis {__version__}\n"
        f"  python: {platform.python_version()}\n"
        f"  platform: {platform.system()} {platform.release()}"
    )


def parse_duration(value: str) -> float:
    """Parse ``30``, ``30s``, ``1.5m``, ``500ms`` or ``1h`` into seconds."""
    match = _DURATION.match(value)
    if not match:
        raise argparse.ArgumentTypeError(f"invalid duration: {value!r}")
    return float(match.group(1)) * _UNIT_SECONDS[match.group(2) or "s"]


def csv_list(value: str) -> List[str]:
    """Split ``a,b, c`` into ``['a', 'b', 'c']``."""
    return [item.strip() for item in value.split(",") if item.strip()]


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--group",
        default=None,
        help="Server group to target",
    )
    parser.add_argument(
        "--hosts",
        type=csv_list,
        action="extend",
        default=[],
        help="Specific hosts to target (comma separated, repeatable)",
    )
    parser.add_argument(
        "--file",
        dest="hosts_file",
        default=None,
        help="Read hosts from file",
    )
    parser.add_argument(
        "--parallel",
        type=int,
        default=DEFAULT_PARALLEL,
        help=f"Parallel execution limit (default: {DEFAULT_PARALLEL})",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for fortis."""
    parser = argparse.ArgumentParser(
        prog="fortis",
        description="Run commands, health checks and patches across a server fleet",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  fortis exec --group webservers --command "systemctl restart nginx"
  fortis monitor --metrics cpu,memory --output json
  fortis patch --packages nginx,openssl --strategy rolling --batch-size 2
  fortis patch --packages openssl --apply --yes
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=get_version_string(),
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Fortis config file (default: $FORTIS_CONFIG)",
    )
    parser.add_argument(
        "--inventory-file",
        default=None,
        help="Inventory file (default: from config, /etc/fortis/inventory.yaml)",
    )
    parser.add_argument(
        "--ssh-key",
        default=None,
        help="SSH key to use",
    )
    parser.add_argument(
        "--ssh-user",
        default=None,
        help="SSH username (default: inventory ssh_user, else ssh's own default)",
    )
    parser.add_argument(
        "--ssh-port",
        type=int,
        default=DEFAULT_SSH_PORT,
        help=f"SSH port (default: {DEFAULT_SSH_PORT}); an inventory ssh_port takes precedence",
    )
    parser.add_argument(
        "--ssh-timeout",
        type=parse_duration,
        default=DEFAULT_SSH_TIMEOUT,
        help=f"Per-host timeout (default: {DEFAULT_SSH_TIMEOUT:g}s)",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable coloured output",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v, -vv)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    exec_parser = subparsers.add_parser(
        "exec",
        help="Execute command on multiple servers",
    )
    _add_target_arguments(exec_parser)
    exec_parser.add_argument(
        "--command",
        dest="remote_command",
        default=None,
        help="Command to execute (or pass it as trailing arguments)",
    )
    exec_parser.add_argument(
        "args",
        nargs="*",
        help="Command words, used when --command is not given",
    )
    exec_parser.add_argument(
        "--timeout",
        type=parse_duration,
        default=None,
        help="Command timeout, overrides --ssh-timeout",
    )
    exec_parser.add_argument(
        "--output",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )

    monitor_parser = subparsers.add_parser(
        "monitor",
        help="Monitor cluster health",
    )
    _add_target_arguments(monitor_parser)
    monitor_parser.add_argument(
        "--metrics",
        type=csv_list,
        action="extend",
        default=[],
        help="Metrics to collect: cpu, memory, disk, uptime (default: all)",
    )
    monitor_parser.add_argument(
        "--export",
        default=None,
        help="Write the JSON report to this file",
    )
    monitor_parser.add_argument(
        "--output",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )

    patch_parser = subparsers.add_parser(
        "patch",
        help="Orchestrate patching across cluster",
    )
    _add_target_arguments(patch_parser)
    patch_parser.add_argument(
        "--packages",
        type=csv_list,
        action="extend",
        default=[],
        help="Packages to update (comma separated, repeatable)",
    )
    patch_parser.add_argument(
        "--strategy",
        choices=STRATEGIES,
        default=DEFAULT_STRATEGY,
        help=f"Patching strategy (default: {DEFAULT_STRATEGY})",
    )
    patch_parser.add_argument(
        "--batch-size",
        type=int,
        default=0,
        help="Batch size for rolling updates",
    )
    patch_parser.add_argument("--pre-check", action="store_true", help="Run pre-patch checks")
    patch_parser.add_argument("--post-check", action="store_true", help="Run post-patch validation")
    patch_parser.add_argument(
        "--rollback-on-failure",
        action="store_true",
        help="Record that failed hosts should be rolled back",
    )
    patch_parser.add_argument(
        "--apply",
        action="store_true",
        help="Apply the patch plan (requires --yes)",
    )
    patch_parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm patch application",
    )
    patch_parser.add_argument(
        "--output",
        choices=["text", "json"],
        default="json",
        help="Output format (default: json)",
    )

    inventory_parser = subparsers.add_parser(
        "inventory",
        help="Show server inventory",
    )
    inventory_parser.add_argument(
        "--output",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )

    return parser


def setup_logging(verbosity: int, log_file: Optional[str] = None) -> None:
    """Attach handlers to the ``fortis`` logger."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    root = logging.getLogger("fortis")
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(console)

    if log_file and Path(log_file).parent.is_dir():
        try:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            logger.debug("Not logging to %s: %s", log_file, e)
        else:
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root.addHandler(file_handler)


def _exec_options(args: argparse.Namespace, config: Config) -> ExecOptions:
    return ExecOptions(
        hosts=list(args.hosts),
        hosts_file=args.hosts_file,
        group=args.group,
        inventory_path=args.inventory_file or config.inventory_file,
        ssh_user=args.ssh_user,
        ssh_port=args.ssh_port,
        ssh_key=args.ssh_key,
        ssh_timeout=args.ssh_timeout,
        parallel=args.parallel,
    )


def _output(args: argparse.Namespace) -> OutputConfig:
    return OutputConfig(
        format=args.output,
        color=not args.no_color and supports_color(sys.stdout),
    )


def cmd_exec(args: argparse.Namespace, config: Config, cancel: CancelToken) -> int:
    command = args.remote_command or " ".join(args.args)
    options = _exec_options(args, config).with_command(command)
    if args.timeout is not None:
        options.ssh_timeout = args.timeout

    results = FleetDispatcher().execute(options, cancel=cancel)
    print(render_exec_results(results, _output(args)))
    if any(not r.ok for r in results):
        return ExitCode.HOST_FAILED
    return ExitCode.SUCCESS


def cmd_monitor(args: argparse.Namespace, config: Config, cancel: CancelToken) -> int:
    report = Monitor(FleetDispatcher()).run(
        _exec_options(args, config),
        metrics=args.metrics,
        cancel=cancel,
    )

    if args.export:
        path = export_json(args.export, report.to_json())
        print(f"Exported: {path}")
        return ExitCode.SUCCESS

    print(render_monitor_report(report, _output(args)))
    return ExitCode.SUCCESS


def cmd_patch(args: argparse.Namespace, config: Config, cancel: CancelToken) -> int:
    base = _exec_options(args, config)
    options = PatchOptions(
        **vars(base),
        packages=list(args.packages),
        strategy=args.strategy,
        batch_size=args.batch_size,
        pre_check=args.pre_check,
        post_check=args.post_check,
        rollback_on_failure=args.rollback_on_failure,
        apply=args.apply,
        yes=args.yes,
    )

    report = PatchOrchestrator(FleetDispatcher()).run(options, cancel=cancel)
    print(render_patch_report(report, _output(args)))
    if not report.success:
        return ExitCode.HOST_FAILED
    return ExitCode.SUCCESS


def cmd_inventory(args: argparse.Namespace, config: Config, cancel: CancelToken) -> int:
    inventory = load_inventory(args.inventory_file or config.inventory_file)
    print(render_inventory(inventory, _output(args)))
    return ExitCode.SUCCESS


def _install_interrupt_handler(cancel: CancelToken) -> Callable[[], None]:
    """
    Make the first Ctrl-C cancel the run instead of unwinding it.

    Workers then kill their ssh processes and the command still reports the
    hosts that finished. A second Ctrl-C raises KeyboardInterrupt as usual.
    Returns a callable restoring the previous handler.
    """
    if threading.current_thread() is not threading.main_thread():
        return lambda: None

    def handler(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        logger.warning("Interrupted; cancelling unfinished hosts")
        cancel.cancel()

    previous = signal.signal(signal.SIGINT, handler)
    if previous is None:
        previous = signal.default_int_handler
    return lambda: signal.signal(signal.SIGINT, previous)


COMMANDS: Dict[str, Callable[[argparse.Namespace, Config, CancelToken], int]] = {
    "exec": cmd_exec,
    "monitor": cmd_monitor,
    "patch": cmd_patch,
    "inventory": cmd_inventory,
}


def main(args: Optional[List[str]] = None) -> int:
    """Main entrypoint for fortis CLI."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return ExitCode.SUCCESS

    cancel = CancelToken()
    restore_sigint = _install_interrupt_handler(cancel)
    try:
        config = resolve_config(parsed.config)
        setup_logging(parsed.verbose, config.log_file)
        rc = COMMANDS[parsed.command](parsed, config, cancel)
        if cancel.is_set():
            print("\nInterrupted", file=sys.stderr)
            return ExitCode.KEYBOARD_INTERRUPT
        return rc
    except FortisError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return e.exit_code
    except KeyboardInterrupt:
        cancel.cancel()
        print("\nInterrupted", file=sys.stderr)
        return ExitCode.KEYBOARD_INTERRUPT
    finally:
        restore_sigint()


if __name__ == "__main__":
    sys.exit(main())
