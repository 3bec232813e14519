"""Lifecycle control of the external application."""

from .controller import ProcessController
from .patterns import ProcessInfo, ProcessMatcher


__all__ = ["ProcessController", "ProcessInfo", "ProcessMatcher"]
