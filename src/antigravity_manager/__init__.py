"""Antigravity Manager - multi-account credential rotation for the Antigravity app."""

__version__ = "0.1.0"


__all__ = ["__version__"]
