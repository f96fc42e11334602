"""k3sctl package bootstrap.

This module exposes lightweight metadata that other modules (and packaging
machinery) rely upon.
"""
from __future__ import annotations

__all__ = ["__version__"]

# Hatch reads the package version from here.
__version__ = "0.1.0"
