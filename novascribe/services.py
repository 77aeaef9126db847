"""
Service wiring.

NovaScribe builds the document store, identity, project store, history
ledger and idea vault from one AppConfig.
"""

import logging
from typing import Optional, Tuple

from core.history.ledger import VersionHistoryLedger
from core.ideas import IdeaVault
from core.identity import IdentityProvider, SessionIdentityProvider
from core.models.config import AppConfig
from core.models.entities import Project
from core.project_store import ProjectStore
from core.state import ProjectState
from core.storage.base import DocumentStore
from core.storage.client import QdrantDocumentStore
from core.sync.autosave import AutoSaveDebouncer

logger = logging.getLogger(__name__)


class NovaScribe:
    """
    Entry point for application code.

    Usage:
        async with NovaScribe(config) as app:
            app.identity.sign_in("uid")
            report = await app.projects.save_full(project)
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        store: Optional[DocumentStore] = None,
        identity: Optional[IdentityProvider] = None
    ):
        self.config = config or AppConfig()
        self.store = store or QdrantDocumentStore(self.config.store)
        self.identity = identity or SessionIdentityProvider(self.store)
        if self.config.owner_id and isinstance(self.identity, SessionIdentityProvider) \
                and self.identity.current_user is None:
            self.identity.sign_in(self.config.owner_id)

        self.ledger = VersionHistoryLedger(self.store, default_note=self.config.sync.default_snapshot_note)
        self.projects = ProjectStore(
            self.store,
            self.identity,
            batch_delete_limit=self.config.sync.batch_delete_limit
        )
        self.ideas = IdeaVault(self.store, self.identity)

    def edit(self, project: Project) -> Tuple[ProjectState, AutoSaveDebouncer]:
        """
        Open a project for editing with debounced auto-save attached.

        The given snapshot counts as saved, so only real edits trigger writes.
        """
        state = ProjectState(
            project,
            ledger=self.ledger,
            max_inline_image_bytes=self.config.sync.max_inline_image_bytes
        )
        autosave = AutoSaveDebouncer(self.projects.save_full, debounce_ms=self.config.sync.debounce_ms)
        autosave.mark_saved(project)
        state.subscribe(autosave.schedule)
        logger.debug(f"Editing project {project.id}")
        return state, autosave

    async def close(self) -> None:
        await self.store.close()

    async def __aenter__(self) -> 'NovaScribe':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
