# Copyright (c) 2024 Fortis Contributors
# MIT License

"""Fortis command-line entry points."""
