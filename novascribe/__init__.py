"""
Nova Scribe - document synchronization and version history for writing projects.

Persists projects (characters, locations, plot points, manuscripts, gallery
images) to a Qdrant-backed document store with per-entity fault isolation,
debounced auto-save and per-entity version history.
"""

__version__ = "1.0.0"

# Package imports for convenient access
from core.models.entities import Project, ProjectSummary, new_project
from core.models.config import AppConfig, StoreSettings, SyncSettings
from core.models.storage import SaveReport, SyncResult

from .services import NovaScribe

__all__ = [
    "NovaScribe",
    "Project",
    "ProjectSummary",
    "new_project",
    "AppConfig",
    "StoreSettings",
    "SyncSettings",
    "SaveReport",
    "SyncResult",
    "__version__",
]
