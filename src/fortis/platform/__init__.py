# Copyright (c) 2024 Fortis Contributors
# MIT License

"""
Platform abstraction layer.

Thin wrappers around process execution, worker threads and terminal
detection. The engine launches processes only through ``proc``.
"""

import platform as _platform

# Detect current platform
IS_WINDOWS = _platform.system() == "Windows"
IS_LINUX = _platform.system() == "Linux"
