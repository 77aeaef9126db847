"""
novascribe core package

Document synchronization and version history for writing projects.
"""

__version__ = "1.0.0"

from .models import Project, ProjectSummary, EntityKind, HistoryScope, VersionRecord, SyncResult
from .exceptions import (
    NovaScribeError, AuthenticationError, TransportError, LoadError,
    DocumentTooLargeError, ItemPersistenceError, SerializationError,
    VersionNotFoundError, InlineImageTooLargeError, InvalidStateTransition
)

__all__ = [
    "Project",
    "ProjectSummary",
    "EntityKind",
    "HistoryScope",
    "VersionRecord",
    "SyncResult",
    "NovaScribeError",
    "AuthenticationError",
    "TransportError",
    "LoadError",
    "DocumentTooLargeError",
    "ItemPersistenceError",
    "SerializationError",
    "VersionNotFoundError",
    "InlineImageTooLargeError",
    "InvalidStateTransition",
]
