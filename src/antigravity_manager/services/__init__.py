"""Application services."""

from .manager import AccountManager


__all__ = ["AccountManager"]
