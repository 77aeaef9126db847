"""
Version history models.

A VersionRecord is an immutable snapshot appended to the history log of a
single scope: a manuscript, one entity, or a project's metadata.
"""

from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from .entities import EntityKind


class ScopeKind(Enum):
    """What a history scope snapshots"""
    MANUSCRIPT = "manuscript"
    ENTITY = "entity"
    METADATA = "metadata"


class HistoryScope(BaseModel):
    """
    Identifies one append-only history log.

    Use the manuscript(), entity() and metadata() constructors rather than
    building scopes by hand.
    """
    model_config = ConfigDict(frozen=True)

    kind: ScopeKind
    project_id: str
    collection: Optional[str] = None
    entity_id: Optional[str] = None

    @field_validator('project_id')
    @classmethod
    def validate_project_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('History scope requires a project id')
        return v

    @model_validator(mode='after')
    def validate_subject(self) -> 'HistoryScope':
        if self.kind == ScopeKind.METADATA:
            return self
        if not self.collection or not self.collection.strip():
            raise ValueError(f'{self.kind.value} history scope requires a collection')
        if not self.entity_id or not self.entity_id.strip():
            raise ValueError(f'{self.kind.value} history scope requires an entity id')
        return self

    @classmethod
    def manuscript(cls, project_id: str, manuscript_id: str) -> 'HistoryScope':
        return cls(
            kind=ScopeKind.MANUSCRIPT,
            project_id=project_id,
            collection=EntityKind.MANUSCRIPT.collection_name,
            entity_id=manuscript_id
        )

    @classmethod
    def entity(cls, project_id: str, collection: str, entity_id: str) -> 'HistoryScope':
        if collection == EntityKind.MANUSCRIPT.collection_name:
            return cls.manuscript(project_id, entity_id)
        return cls(
            kind=ScopeKind.ENTITY,
            project_id=project_id,
            collection=collection,
            entity_id=entity_id
        )

    @classmethod
    def metadata(cls, project_id: str) -> 'HistoryScope':
        return cls(kind=ScopeKind.METADATA, project_id=project_id)

    @property
    def is_verbatim(self) -> bool:
        """Manuscript text is stored as-is, everything else as JSON"""
        return self.kind == ScopeKind.MANUSCRIPT

    def __str__(self) -> str:
        if self.kind == ScopeKind.METADATA:
            return f"{self.project_id}:metadata"
        return f"{self.project_id}:{self.collection}/{self.entity_id}"


class VersionRecord(BaseModel):
    """Immutable snapshot stored in a history log"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    content: str
    timestamp: str
    note: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class VersionPreview(BaseModel):
    """Decoded content of one version, or the reason it could not be decoded"""
    model_config = ConfigDict(frozen=True)

    record: VersionRecord
    content: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
