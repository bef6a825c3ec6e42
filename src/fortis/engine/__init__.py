# Copyright (c) 2024 Fortis Contributors
# MIT License

"""
Fortis Engine Module

Target resolution, fleet dispatch and the monitor/patch operations built
on top of it.
"""

from fortis.engine.inventory import Inventory, Server, load_inventory, resolve_targets
from fortis.engine.dispatcher import CancelToken, ExecOptions, FleetDispatcher
from fortis.engine.monitor import Monitor
from fortis.engine.patch import PatchOptions, PatchOrchestrator
from fortis.engine.results import (
    ExecResult,
    HostMetrics,
    MonitorReport,
    PatchHostResult,
    PatchReport,
    ResultAggregator,
)
from fortis.engine.errors import (
    FortisError,
    ValidationError,
    NoTargetsError,
    ConfirmationRequiredError,
    ConfigurationLoadError,
    InventoryError,
    HostExecutionError,
)

__all__ = [
    'Inventory',
    'Server',
    'load_inventory',
    'resolve_targets',
    'CancelToken',
    'ExecOptions',
    'FleetDispatcher',
    'Monitor',
    'PatchOptions',
    'PatchOrchestrator',
    'ExecResult',
    'HostMetrics',
    'MonitorReport',
    'PatchHostResult',
    'PatchReport',
    'ResultAggregator',
    'FortisError',
    'ValidationError',
    'NoTargetsError',
    'ConfirmationRequiredError',
    'ConfigurationLoadError',
    'InventoryError',
    'HostExecutionError',
]
