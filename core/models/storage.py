"""
Storage models for the document store and synchronization results.

Handles stored document snapshots, operation results, and the structured
reports returned by collection syncs, saves and deletes.
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from ..exceptions import ItemPersistenceError


class OperationStatus(Enum):
    """Status of storage operations"""
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"


class DocumentSnapshot(BaseModel):
    """A document read from the store"""
    model_config = ConfigDict(frozen=True)

    path: str
    data: Dict[str, Any]
    position: Optional[int] = None
    updated_at: Optional[str] = None

    @field_validator('path')
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Document path cannot be empty')
        return v

    @property
    def id(self) -> str:
        """Last segment of the document path"""
        return self.path.rsplit('/', 1)[-1]

    @property
    def parent(self) -> str:
        """Path of the collection holding this document"""
        return self.path.rsplit('/', 1)[0]


class StorageResult(BaseModel):
    """Result of a batch delete: the batch's common parent path and what it removed"""
    model_config = ConfigDict(frozen=True)

    path: str
    affected_count: int = 0
    processing_time_ms: float = 0.0

    @classmethod
    def successful_delete(cls, path: str, count: int, processing_time_ms: float) -> 'StorageResult':
        """Create successful delete result"""
        return cls(path=path, affected_count=count, processing_time_ms=processing_time_ms)


class SyncResult(BaseModel):
    """
    Outcome of reconciling one remote collection with a local list.

    Upsert failures are isolated: they are listed in failed_ids and errors
    while every other item is still written.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    collection_path: str
    succeeded_ids: List[str] = Field(default_factory=list)
    failed_ids: List[str] = Field(default_factory=list)
    deleted_ids: List[str] = Field(default_factory=list)
    errors: List[ItemPersistenceError] = Field(default_factory=list)
    processing_time_ms: float = 0.0

    @property
    def status(self) -> OperationStatus:
        if not self.failed_ids:
            return OperationStatus.SUCCESS
        if self.succeeded_ids:
            return OperationStatus.PARTIAL
        return OperationStatus.FAILED

    @property
    def partial(self) -> bool:
        return bool(self.failed_ids)

    @property
    def items_processed(self) -> int:
        return len(self.succeeded_ids) + len(self.failed_ids)


class SaveReport(BaseModel):
    """Outcome of a full project save"""

    project_id: str
    last_modified: str
    collections: Dict[str, SyncResult] = Field(default_factory=dict)

    @property
    def failed_ids(self) -> Dict[str, List[str]]:
        """Per-collection ids whose upsert failed"""
        return {
            name: result.failed_ids
            for name, result in self.collections.items()
            if result.failed_ids
        }

    @property
    def complete(self) -> bool:
        """True when every entity write succeeded, not just the metadata"""
        return not self.failed_ids


class DeleteReport(BaseModel):
    """Outcome of a cascading project delete"""

    project_id: str
    documents_deleted: Dict[str, int] = Field(default_factory=dict)
    history_deleted: int = 0
    batches: int = 0

    @property
    def total_deleted(self) -> int:
        return sum(self.documents_deleted.values()) + self.history_deleted + 1
