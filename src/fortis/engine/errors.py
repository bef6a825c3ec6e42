# Copyright (c) 2024 Fortis Contributors
# MIT License

"""
Fortis Error Classes.

All custom exceptions for clear error handling and exit codes.

Three families matter to callers:
    - ValidationError: the request itself is unusable; no host is contacted.
    - ConfigurationLoadError: an inventory, hosts file or config file could
      not be read or parsed.
    - HostExecutionError: something went wrong on one host. These never
      escape the dispatcher; they are folded into that host's ExecResult.
"""

from __future__ import annotations

import enum


class ExitCode(enum.IntEnum):
    """Process exit codes used by the fortis CLI."""

    SUCCESS = 0
    GENERIC_ERROR = 1
    HOST_FAILED = 2
    CONFIG_ERROR = 3
    VALIDATION_ERROR = 4
    CONFIRMATION_REQUIRED = 5
    KEYBOARD_INTERRUPT = 130


class FortisError(Exception):
    """Base exception for all Fortis errors."""

    exit_code: int = ExitCode.GENERIC_ERROR

    def __init__(self, message: str, details: str | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}\n  Details: {self.details}"
        return self.message


class ValidationError(FortisError):
    """The request was rejected before any host was contacted."""

    exit_code: int = ExitCode.VALIDATION_ERROR


class NoTargetsError(ValidationError):
    """Target resolution produced an empty host list."""

    def __init__(self, details: str | None = None) -> None:
        super().__init__("no target hosts", details)


class EmptyInputError(ValidationError):
    """A hosts file was readable but contained no usable lines."""

    def __init__(self, file_path: str) -> None:
        self.file_path = file_path
        super().__init__(f"no hosts found in file: {file_path}")


class ConfirmationRequiredError(ValidationError):
    """A mutating operation was requested without explicit confirmation."""

    exit_code: int = ExitCode.CONFIRMATION_REQUIRED

    def __init__(self, operation: str, flag: str = "--yes") -> None:
        self.operation = operation
        self.flag = flag
        super().__init__(f"refusing to {operation} without {flag}")


class ConfigurationLoadError(FortisError):
    """Error reading or parsing an input file."""

    exit_code: int = ExitCode.CONFIG_ERROR

    def __init__(
        self,
        message: str,
        file_path: str | None = None,
        details: str | None = None,
    ) -> None:
        self.file_path = file_path
        location = f" in {file_path}" if file_path else ""
        super().__init__(f"Load error{location}: {message}", details)


class InventoryError(ConfigurationLoadError):
    """Inventory file is unreadable or malformed."""


class HostsFileError(ConfigurationLoadError):
    """Hosts file could not be read."""


class ConfigError(ConfigurationLoadError):
    """Fortis configuration file is unreadable or malformed."""


class HostExecutionError(FortisError):
    """A remote command could not be completed on one host."""

    exit_code: int = ExitCode.HOST_FAILED

    def __init__(self, host: str, message: str, details: str | None = None) -> None:
        self.host = host
        super().__init__(message, details)


class RemoteCommandError(HostExecutionError):
    """The remote shell exited with a non-zero status."""

    def __init__(self, host: str, rc: int) -> None:
        self.rc = rc
        super().__init__(host, f"exit status {rc}")


class HostTimeoutError(HostExecutionError):
    """The remote shell did not finish within the per-host timeout."""

    def __init__(self, host: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(host, f"timed out after {timeout:g}s")


class HostCancelledError(HostExecutionError):
    """The run was cancelled before or while this host was being processed."""

    def __init__(self, host: str, started: bool = False) -> None:
        self.started = started
        message = "cancelled" if started else "cancelled before start"
        super().__init__(host, message)
