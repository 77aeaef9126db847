"""
Version history ledger.

Append-only snapshot logs per scope (manuscript, entity, project metadata).
Restoring never mutates the subject: it returns the historical content and
the caller decides whether to apply it.
"""

import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ValidationError

from ..exceptions import SerializationError, VersionNotFoundError
from ..models.entities import Manuscript
from ..models.history import HistoryScope, ScopeKind, VersionPreview, VersionRecord
from ..models.storage import DocumentSnapshot
from ..storage import paths
from ..storage.base import DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_NOTE = "Automatic snapshot"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, accepting a trailing Z"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def newest_first(records: List[VersionRecord]) -> List[VersionRecord]:
    """Order records by timestamp descending; unparseable timestamps go last"""
    return sorted(
        records,
        key=lambda r: (parse_timestamp(r.timestamp) or _EPOCH, r.id),
        reverse=True
    )


class VersionHistoryLedger:
    """
    Append-only version logs stored under each scope's history collection.

    Timestamps come from the local clock and are bumped so they strictly
    increase per scope within a process.
    """

    def __init__(self, store: DocumentStore, default_note: str = DEFAULT_NOTE):
        self.store = store
        self.default_note = default_note
        self._last_timestamps: Dict[str, datetime] = {}

    @staticmethod
    def history_path(scope: HistoryScope) -> str:
        if scope.kind == ScopeKind.METADATA:
            return paths.metadata_history_path(scope.project_id)
        return paths.entity_history_path(scope.project_id, scope.collection, scope.entity_id)

    @staticmethod
    def encode(scope: HistoryScope, content: Any) -> Optional[str]:
        """
        Serialize content for storage.

        Manuscript text is kept verbatim; entities and metadata are stored as
        JSON. Strings are assumed to be already encoded.
        """
        if content is None:
            return None
        if scope.is_verbatim:
            if isinstance(content, Manuscript):
                return content.content
            return content if isinstance(content, str) else str(content)
        if isinstance(content, str):
            return content
        if isinstance(content, BaseModel):
            content = content.model_dump(mode="json", by_alias=True, exclude_none=True)
        return json.dumps(content, ensure_ascii=False)

    @staticmethod
    def decode(scope: HistoryScope, record: VersionRecord) -> Any:
        """
        Decode stored content.

        Raises:
            SerializationError: JSON content cannot be parsed
        """
        if scope.is_verbatim:
            return record.content
        try:
            return json.loads(record.content)
        except ValueError as e:
            raise SerializationError(record.id, str(e)) from e

    def _next_timestamp(self, scope: HistoryScope) -> str:
        key = str(scope)
        now = datetime.now(timezone.utc)
        last = self._last_timestamps.get(key)
        if last is not None and now <= last:
            now = last + timedelta(microseconds=1)
        self._last_timestamps[key] = now
        return now.isoformat(timespec="microseconds")

    async def append_version(
        self,
        scope: HistoryScope,
        content: Any,
        note: Optional[str] = None
    ) -> Optional[VersionRecord]:
        """
        Append a snapshot to a scope's history.

        Args:
            scope: History log to append to
            content: Manuscript text, entity model or metadata mapping
            note: Label shown in history views

        Returns:
            The stored record, or None when content is empty

        Raises:
            TransportError: the write failed
        """
        encoded = self.encode(scope, content)
        if not encoded:
            logger.debug(f"Skipped empty snapshot for {scope}")
            return None

        record = VersionRecord(
            id=uuid.uuid4().hex,
            content=encoded,
            timestamp=self._next_timestamp(scope),
            note=note or self.default_note
        )
        await self.store.set(f"{self.history_path(scope)}/{record.id}", record.to_document())
        logger.info(f"Saved version {record.id} for {scope} ({record.note})")
        return record

    async def snapshot_before(
        self,
        scope: HistoryScope,
        content: Any,
        action: str = "change"
    ) -> Optional[VersionRecord]:
        """Snapshot current content before a destructive change overwrites it"""
        return await self.append_version(scope, content, note=f"Auto-backup before {action}")

    @staticmethod
    def _record_from(doc: DocumentSnapshot) -> VersionRecord:
        """
        Raises:
            SerializationError: the stored document is not a version record
        """
        data = dict(doc.data)
        data.setdefault("id", doc.id)
        try:
            return VersionRecord.model_validate(data)
        except ValidationError as e:
            raise SerializationError(doc.id, f"malformed version record: {e}") from e

    async def list_versions(self, scope: HistoryScope) -> List[VersionRecord]:
        """All readable versions of a scope, newest first; malformed records are skipped"""
        docs = await self.store.list_collection(self.history_path(scope))
        records = []
        for doc in docs:
            try:
                records.append(self._record_from(doc))
            except SerializationError as e:
                logger.warning(f"Skipping version in {scope}: {e}")
        return newest_first(records)

    async def get_version(self, scope: HistoryScope, version_id: str) -> Optional[VersionRecord]:
        doc = await self.store.get(f"{self.history_path(scope)}/{version_id}")
        if doc is None:
            return None
        return self._record_from(doc)

    async def restore(self, scope: HistoryScope, version_id: str) -> Any:
        """
        Return the decoded content of a version.

        Raises:
            VersionNotFoundError: no such version in the scope
            SerializationError: stored content cannot be decoded
        """
        record = await self.get_version(scope, version_id)
        if record is None:
            raise VersionNotFoundError(str(scope), version_id)
        return self.decode(scope, record)

    async def preview_versions(self, scope: HistoryScope) -> List[VersionPreview]:
        """Decode every version, keeping undecodable ones with their error"""
        previews = []
        for record in await self.list_versions(scope):
            try:
                previews.append(VersionPreview(record=record, content=self.decode(scope, record)))
            except SerializationError as e:
                logger.warning(f"Version {record.id} in {scope} is unreadable: {e}")
                previews.append(VersionPreview(record=record, error=str(e)))
        return previews
