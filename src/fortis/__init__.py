# Copyright (c) 2024 Fortis Contributors
# MIT License

"""
Fortis: fleet command execution and orchestration.

Runs one command across an inventory of Linux hosts over plain ``ssh``
with bounded parallelism, and builds two derived operations on top of it.

Features:
    - YAML inventory with groups and per-host SSH defaults
    - Thread-pool fan-out with per-host timeout and cancellation
    - Cluster health monitoring from a single metrics probe
    - Package patching behind an explicit confirmation gate

This package exposes the main CLI entry point and release metadata.
"""

from __future__ import annotations

from fortis.release import __version__, __author__, __codename__

__all__ = [
    "__version__",
    "__author__",
    "__codename__",
]
