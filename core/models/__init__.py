"""
Core data models for novascribe

All Pydantic models for project entities, history, storage results and configuration.
"""

from .entities import (
    EntityKind, IdentifiedModel, Character, Location, PlotPoint, Manuscript,
    GalleryImage, MemoryCore, Project, ProjectSummary, new_entity_id, new_project,
    make_target_key, parse_target_key, OWNED_COLLECTIONS
)
from .history import HistoryScope, ScopeKind, VersionRecord, VersionPreview
from .storage import (
    DocumentSnapshot, StorageResult, OperationStatus, SyncResult, SaveReport, DeleteReport
)
from .config import StoreSettings, SyncSettings, GlobalSettings

__all__ = [
    # Entities
    "EntityKind",
    "IdentifiedModel",
    "Character",
    "Location",
    "PlotPoint",
    "Manuscript",
    "GalleryImage",
    "MemoryCore",
    "Project",
    "ProjectSummary",
    "new_entity_id",
    "new_project",
    "make_target_key",
    "parse_target_key",
    "OWNED_COLLECTIONS",

    # History
    "HistoryScope",
    "ScopeKind",
    "VersionRecord",
    "VersionPreview",

    # Storage
    "DocumentSnapshot",
    "StorageResult",
    "OperationStatus",
    "SyncResult",
    "SaveReport",
    "DeleteReport",

    # Configuration
    "StoreSettings",
    "SyncSettings",
    "GlobalSettings",
]
