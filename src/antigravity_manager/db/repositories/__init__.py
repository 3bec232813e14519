"""Repository layer for database operations."""

from antigravity_manager.db.repositories.account_store import AccountStore
from antigravity_manager.db.repositories.snapshot_store import SnapshotStore


__all__ = ["AccountStore", "SnapshotStore"]
