"""Credential provisioning into the external application."""

from .state_store import StateInjector, VSCodeStateInjector


__all__ = ["StateInjector", "VSCodeStateInjector"]
