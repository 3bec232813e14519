"""Database package for SQLite persistence."""

from antigravity_manager.db.engine import Database
from antigravity_manager.db.models import CloudAccountRecord, SettingRecord
from antigravity_manager.db.repositories import AccountStore


__all__ = [
    "AccountStore",
    "CloudAccountRecord",
    "Database",
    "SettingRecord",
]
