"""Credential rotation: refresh, polling, policy and switching."""

from .monitor import QuotaMonitor
from .policy import RotationPolicy
from .quota import average_quota, is_depleted, select_best_candidate
from .refresh import TokenRefreshCoordinator
from .switch import SwitchOrchestrator, SwitchResult, SwitchStage


__all__ = [
    "QuotaMonitor",
    "RotationPolicy",
    "SwitchOrchestrator",
    "SwitchResult",
    "SwitchStage",
    "TokenRefreshCoordinator",
    "average_quota",
    "is_depleted",
    "select_best_candidate",
]
