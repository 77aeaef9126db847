"""Version history ledger for manuscripts, entities and project metadata."""

from .ledger import VersionHistoryLedger, DEFAULT_NOTE, newest_first, parse_timestamp

__all__ = [
    "VersionHistoryLedger",
    "DEFAULT_NOTE",
    "newest_first",
    "parse_timestamp",
]
