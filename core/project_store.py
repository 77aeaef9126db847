"""
Project store.

Whole-project save, load, cascading delete and the owner's live project
list, built from one metadata record plus one subcollection per entity
kind. The metadata record is written first and deleted last, so it is the
existence marker of a project.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from .exceptions import InvalidStateTransition, LoadError, TransportError
from .history.ledger import parse_timestamp
from .identity import IdentityProvider
from .models.entities import OWNED_COLLECTIONS, Project, ProjectSummary
from .models.storage import DeleteReport, DocumentSnapshot, SaveReport, SyncResult
from .storage import paths
from .storage.base import DocumentStore, Unsubscribe, noop_unsubscribe
from .sync.collection import SubcollectionSynchronizer

logger = logging.getLogger(__name__)

ProjectListCallback = Callable[[List[ProjectSummary]], Union[None, Awaitable[None]]]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class PersistenceState(Enum):
    """Persistence lifecycle of one project"""
    UNSAVED = "unsaved"
    SAVING = "saving"
    SAVED = "saved"
    DELETING = "deleting"
    DELETED = "deleted"


ALLOWED_TRANSITIONS = {
    PersistenceState.UNSAVED: {PersistenceState.SAVING, PersistenceState.DELETING},
    PersistenceState.SAVING: {PersistenceState.SAVING, PersistenceState.SAVED},
    PersistenceState.SAVED: {PersistenceState.SAVING, PersistenceState.DELETING},
    PersistenceState.DELETING: {PersistenceState.DELETED},
    PersistenceState.DELETED: set(),
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def sort_summaries(summaries: Sequence[ProjectSummary]) -> List[ProjectSummary]:
    """Most recently modified first, projects without a timestamp last"""
    return sorted(
        summaries,
        key=lambda s: parse_timestamp(s.last_modified or "") or _EPOCH,
        reverse=True
    )


def chunked(items: Sequence[Any], size: int) -> List[Sequence[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class ProjectStore:
    """
    Persists Project aggregates to a document store.

    Features:
    - Metadata-first saves with isolated per-entity failures
    - Concurrent collection loads
    - Cascading deletes chunked to the backend batch limit
    - Live, owner-scoped project list
    - Per-project persistence lifecycle tracking
    """

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityProvider,
        batch_delete_limit: int = 500
    ):
        self.store = store
        self.identity = identity
        self.batch_delete_limit = max(1, min(batch_delete_limit, store.max_batch_size))
        self.synchronizer = SubcollectionSynchronizer(store)
        self._states: Dict[str, PersistenceState] = {}

    def state_of(self, project_id: str) -> PersistenceState:
        return self._states.get(project_id, PersistenceState.UNSAVED)

    def _transition(self, project_id: str, target: PersistenceState) -> PersistenceState:
        current = self.state_of(project_id)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStateTransition(
                f"Project {project_id} cannot go from {current.value} to {target.value}"
            )
        self._states[project_id] = target
        return current

    async def save_full(self, project: Project) -> SaveReport:
        """
        Save the project's metadata, then every owned collection in parallel.

        Returns:
            SaveReport with one SyncResult per collection; per-entity
            failures are listed there rather than raised

        Raises:
            AuthenticationError: nobody is signed in, nothing is written
            InvalidStateTransition: the project was deleted
            TransportError: the metadata write or a collection listing failed
        """
        owner = self.identity.require_user()
        previous = self._transition(project.id, PersistenceState.SAVING)
        last_modified = utc_now_iso()

        try:
            await self.store.set(
                paths.project_path(project.id),
                project.metadata_record(owner.uid, last_modified),
                merge=True
            )
        except TransportError:
            self._states[project.id] = previous
            logger.error(f"Metadata write failed for project {project.id}")
            raise
        self._states[project.id] = PersistenceState.SAVED

        collections = project.collections()
        outcomes = await asyncio.gather(
            *(
                self.synchronizer.sync(paths.collection_path(project.id, name), items)
                for name, items in collections.items()
            ),
            return_exceptions=True
        )

        report = SaveReport(project_id=project.id, last_modified=last_modified)
        errors = []
        for name, outcome in zip(collections, outcomes):
            if isinstance(outcome, SyncResult):
                report.collections[name] = outcome
            else:
                errors.append(outcome)

        if errors:
            logger.error(f"Saved project {project.id} with {len(errors)} failed collection syncs")
            raise errors[0]

        if report.complete:
            logger.info(f"Saved project {project.id} ({project.title})")
        else:
            logger.warning(f"Saved project {project.id} partially, failed items: {report.failed_ids}")
        return report

    async def load_full(self, project_id: str) -> Optional[Project]:
        """
        Load a complete project.

        Returns:
            The assembled project, or None when no metadata record exists

        Raises:
            LoadError: the backend failed
        """
        try:
            metadata = await self.store.get(paths.project_path(project_id))
            if metadata is None:
                logger.info(f"Project {project_id} not found")
                return None

            listings = await asyncio.gather(*(
                self.store.list_collection(paths.collection_path(project_id, kind.collection_name))
                for kind in OWNED_COLLECTIONS
            ))
        except TransportError as e:
            raise LoadError(f"Failed to load project {project_id}: {e}", path=e.path) from e

        collections = {
            kind.collection_name: [doc.data for doc in docs]
            for kind, docs in zip(OWNED_COLLECTIONS, listings)
        }
        project = Project.from_metadata(metadata.data, **collections)
        if self.state_of(project_id) != PersistenceState.DELETED:
            self._states.setdefault(project_id, PersistenceState.SAVED)
        logger.info(f"Loaded project {project_id}")
        return project

    async def _delete_in_chunks(self, doc_paths: List[str]) -> Tuple[int, int]:
        """Delete doc_paths in batches; returns (documents deleted, batches)"""
        deleted = 0
        batches = 0
        for batch in chunked(doc_paths, self.batch_delete_limit):
            result = await self.store.batch_delete(batch)
            deleted += result.affected_count
            batches += 1
            logger.debug(f"Deleted {result.affected_count} documents under {result.path}")
        return deleted, batches

    async def delete_full(self, project_id: str) -> DeleteReport:
        """
        Delete a project and every document under it.

        Collections go first, then all history documents, then the metadata
        record as the final confirmation.

        Raises:
            AuthenticationError: nobody is signed in
            InvalidStateTransition: the project is already deleted
            TransportError: a batch failed; the metadata record survives
        """
        self.identity.require_user()
        previous = self._transition(project_id, PersistenceState.DELETING)
        report = DeleteReport(project_id=project_id)

        try:
            for kind in OWNED_COLLECTIONS:
                docs = await self.store.list_collection(
                    paths.collection_path(project_id, kind.collection_name)
                )
                deleted, batches = await self._delete_in_chunks([doc.path for doc in docs])
                report.documents_deleted[kind.collection_name] = deleted
                report.batches += batches

            # Remaining descendants are history logs
            remaining = await self.store.list_descendants(paths.project_path(project_id))
            report.history_deleted, batches = await self._delete_in_chunks([doc.path for doc in remaining])
            report.batches += batches

            await self.store.delete(paths.project_path(project_id))
        except TransportError:
            self._states[project_id] = previous
            logger.error(f"Delete of project {project_id} failed before completion")
            raise

        self._states[project_id] = PersistenceState.DELETED
        logger.info(
            f"Deleted project {project_id}: {report.total_deleted} documents "
            f"in {report.batches} batches"
        )
        return report

    @staticmethod
    def _summaries(docs: List[DocumentSnapshot]) -> List[ProjectSummary]:
        summaries = []
        for doc in docs:
            data = dict(doc.data)
            data.setdefault("id", doc.id)
            try:
                summaries.append(ProjectSummary.from_metadata(data))
            except ValidationError as e:
                logger.warning(f"Skipping malformed project record {doc.path}: {e}")
        return sort_summaries(summaries)

    async def list_projects(self, owner_id: Optional[str] = None) -> List[ProjectSummary]:
        """One-shot read of an owner's project list, the signed-in user by default"""
        if owner_id is None:
            owner_id = self.identity.require_user().uid
        docs = await self.store.query(paths.PROJECTS, "ownerId", owner_id)
        return self._summaries(docs)

    def subscribe_list(self, on_update: ProjectListCallback) -> Unsubscribe:
        """
        Push the signed-in owner's project list on every change.

        Without a signed-in user no query is started and a no-op
        unsubscribe is returned.
        """
        user = self.identity.current_user
        if user is None:
            logger.debug("No signed-in user, project list subscription not started")
            return noop_unsubscribe

        def handle(docs: List[DocumentSnapshot]):
            return on_update(self._summaries(docs))

        logger.info(f"Subscribed to project list of {user.uid}")
        return self.store.watch(paths.PROJECTS, handle, where=("ownerId", user.uid))
