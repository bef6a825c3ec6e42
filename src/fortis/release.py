# Copyright (c) 2024 Fortis Contributors
# MIT License

"""Fortis release metadata."""

from __future__ import annotations

__version__ = "0.3.0"
__author__ = "Fortis Contributors"
__codename__ = "Fleetwatch"

# Version info tuple for programmatic comparison
VERSION_INFO = (0, 3, 0)
