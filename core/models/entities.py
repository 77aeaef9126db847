"""
Project aggregate and entity models.

Defines the Project root aggregate and the entities it owns (characters,
locations, plot points, manuscripts, gallery images). Persisted field names
are camelCase aliases, Python attributes are snake_case.
"""

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def new_entity_id() -> str:
    """Generate a stable identifier for a newly created entity"""
    return str(uuid.uuid4())


class EntityKind(Enum):
    """Kinds of entities owned by a project, valued by their collection name"""
    CHARACTER = "characters"
    LOCATION = "locations"
    PLOT_POINT = "plotPoints"
    MANUSCRIPT = "manuscripts"
    GALLERY_IMAGE = "gallery"

    @property
    def collection_name(self) -> str:
        return self.value

    @property
    def target_prefix(self) -> str:
        """Prefix used in gallery assignment target keys"""
        return _TARGET_PREFIXES[self]

    @property
    def holds_images(self) -> bool:
        """Whether entities of this kind carry an imageUrl field"""
        return self in IMAGE_BEARING_KINDS

    @classmethod
    def from_target_prefix(cls, prefix: str) -> 'EntityKind':
        for kind, kind_prefix in _TARGET_PREFIXES.items():
            if kind_prefix == prefix:
                return kind
        raise ValueError(f"Unknown assignment target kind: {prefix}")


_TARGET_PREFIXES = {
    EntityKind.CHARACTER: "character",
    EntityKind.LOCATION: "location",
    EntityKind.PLOT_POINT: "plot",
    EntityKind.MANUSCRIPT: "manuscript",
    EntityKind.GALLERY_IMAGE: "gallery",
}

IMAGE_BEARING_KINDS = (EntityKind.CHARACTER, EntityKind.LOCATION, EntityKind.PLOT_POINT)

# Collections persisted under projects/{projectId}/, in save order
OWNED_COLLECTIONS: Tuple[EntityKind, ...] = (
    EntityKind.CHARACTER,
    EntityKind.LOCATION,
    EntityKind.PLOT_POINT,
    EntityKind.MANUSCRIPT,
    EntityKind.GALLERY_IMAGE,
)


def make_target_key(kind: EntityKind, entity_id: str) -> str:
    """Build a gallery assignment target key such as 'character-<id>'"""
    return f"{kind.target_prefix}-{entity_id}"


def parse_target_key(target: str) -> Tuple[EntityKind, str]:
    """
    Split a target key into its kind and entity id.

    Entity ids are uuids and contain dashes, so only the first dash separates
    the kind prefix.
    """
    prefix, sep, entity_id = target.partition("-")
    if not sep or not entity_id:
        raise ValueError(f"Malformed assignment target: {target!r}")
    return EntityKind.from_target_prefix(prefix), entity_id


class IdentifiedModel(BaseModel):
    """Any persisted entity: carries a non-empty, never reassigned string id"""
    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        extra="ignore"
    )

    id: str

    @field_validator('id')
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Entity id cannot be empty')
        return v

    def to_document(self) -> Dict[str, Any]:
        """
        Serialize to the persisted record layout.

        Cleared optional fields are written as null so a merge write
        overwrites the previous remote value.
        """
        return self.model_dump(by_alias=True)

    @classmethod
    def from_document(cls, data: Dict[str, Any]):
        return cls.model_validate(data)


class Character(IdentifiedModel):
    name: str = ""
    age: str = ""
    role: str = ""
    psychology: str = ""
    backstory: str = ""
    relationships: str = ""
    appearance: Optional[str] = None
    skills: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")


class Location(IdentifiedModel):
    name: str = ""
    description: str = ""
    image_url: Optional[str] = Field(default=None, alias="imageUrl")


class PlotPoint(IdentifiedModel):
    title: str = ""
    description: str = ""
    image_url: Optional[str] = Field(default=None, alias="imageUrl")


class Manuscript(IdentifiedModel):
    title: str = ""
    content: str = ""


class GalleryImage(IdentifiedModel):
    src: str = ""
    assigned_to_id: Optional[str] = Field(default=None, alias="assignedToId")


ENTITY_MODELS = {
    EntityKind.CHARACTER: Character,
    EntityKind.LOCATION: Location,
    EntityKind.PLOT_POINT: PlotPoint,
    EntityKind.MANUSCRIPT: Manuscript,
    EntityKind.GALLERY_IMAGE: GalleryImage,
}


def _ensure_unique_ids(items: List[IdentifiedModel], label: str) -> None:
    seen = set()
    for item in items:
        if item.id in seen:
            raise ValueError(f"Duplicate id {item.id!r} in {label}")
        seen.add(item.id)


class MemoryCore(BaseModel):
    """Characters, locations and plot points of a project"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    characters: List[Character] = Field(default_factory=list)
    locations: List[Location] = Field(default_factory=list)
    plot_points: List[PlotPoint] = Field(default_factory=list, alias="plotPoints")


# Scalar fields written to the projects/{id} metadata record
METADATA_FIELDS = ("id", "title", "synopsis", "styleSeed", "writingStyle", "activeManuscriptId")


class Project(BaseModel):
    """
    Root aggregate of a writing project.

    The aggregate is the consistency boundary for load and save, although
    the backend stores it as one metadata record plus one document per
    entity.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        extra="ignore"
    )

    id: str
    title: str = ""
    synopsis: str = ""
    style_seed: str = Field(default="", alias="styleSeed")
    writing_style: str = Field(default="", alias="writingStyle")
    memory_core: MemoryCore = Field(default_factory=MemoryCore, alias="memoryCore")
    manuscripts: List[Manuscript] = Field(default_factory=list)
    active_manuscript_id: str = Field(default="", alias="activeManuscriptId")
    gallery: List[GalleryImage] = Field(default_factory=list)
    last_modified: Optional[str] = Field(default=None, alias="lastModified")

    @field_validator('id')
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Project id cannot be empty')
        return v

    @field_validator('title', 'writing_style', 'synopsis', 'style_seed', 'active_manuscript_id', mode='before')
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @model_validator(mode='after')
    def validate_unique_ids(self) -> 'Project':
        for kind in OWNED_COLLECTIONS:
            _ensure_unique_ids(self.entities(kind), kind.collection_name)
        return self

    def entities(self, kind: EntityKind) -> List[IdentifiedModel]:
        """Return the owned collection for an entity kind"""
        if kind == EntityKind.CHARACTER:
            return self.memory_core.characters
        if kind == EntityKind.LOCATION:
            return self.memory_core.locations
        if kind == EntityKind.PLOT_POINT:
            return self.memory_core.plot_points
        if kind == EntityKind.MANUSCRIPT:
            return self.manuscripts
        return self.gallery

    def find_entity(self, kind: EntityKind, entity_id: str) -> Optional[IdentifiedModel]:
        for item in self.entities(kind):
            if item.id == entity_id:
                return item
        return None

    def with_entities(self, kind: EntityKind, items: List[IdentifiedModel]) -> 'Project':
        """Return a copy of the project with one collection replaced"""
        items = list(items)
        _ensure_unique_ids(items, kind.collection_name)
        if kind in (EntityKind.CHARACTER, EntityKind.LOCATION, EntityKind.PLOT_POINT):
            field_name = {
                EntityKind.CHARACTER: "characters",
                EntityKind.LOCATION: "locations",
                EntityKind.PLOT_POINT: "plot_points",
            }[kind]
            core = self.memory_core.model_copy(update={field_name: items})
            return self.model_copy(update={"memory_core": core})
        if kind == EntityKind.MANUSCRIPT:
            return self.model_copy(update={"manuscripts": items})
        return self.model_copy(update={"gallery": items})

    def collections(self) -> Dict[str, List[IdentifiedModel]]:
        """All owned collections keyed by persisted collection name"""
        return {kind.collection_name: self.entities(kind) for kind in OWNED_COLLECTIONS}

    def metadata_record(self, owner_id: str, last_modified: str) -> Dict[str, Any]:
        """Lightweight metadata record written to projects/{id}"""
        data = self.model_dump(by_alias=True, include={
            "id", "title", "synopsis", "style_seed", "writing_style", "active_manuscript_id"
        })
        data["ownerId"] = owner_id
        data["lastModified"] = last_modified
        return data

    def metadata_snapshot(self) -> Dict[str, Any]:
        """Project-level fields captured by metadata history snapshots"""
        return {
            "title": self.title,
            "synopsis": self.synopsis,
            "styleSeed": self.style_seed,
            "writingStyle": self.writing_style,
        }

    @property
    def active_manuscript(self) -> Optional[Manuscript]:
        return self.find_entity(EntityKind.MANUSCRIPT, self.active_manuscript_id)

    def summary(self) -> 'ProjectSummary':
        return ProjectSummary.from_metadata(self.metadata_record("", self.last_modified or ""))

    @classmethod
    def from_metadata(cls, data: Dict[str, Any], **collections: Any) -> 'Project':
        """Assemble a project from its metadata record and loaded collections"""
        fields = {key: data.get(key) for key in METADATA_FIELDS if key in data}
        fields["lastModified"] = data.get("lastModified")
        fields["memoryCore"] = {
            "characters": collections.get("characters", []),
            "locations": collections.get("locations", []),
            "plotPoints": collections.get("plotPoints", []),
        }
        fields["manuscripts"] = collections.get("manuscripts", [])
        fields["gallery"] = collections.get("gallery") or []
        return cls.model_validate(fields)


class ProjectSummary(Project):
    """Lightweight list entry: metadata only, entity collections left empty"""

    owner_id: str = Field(default="", alias="ownerId")

    @classmethod
    def from_metadata(cls, data: Dict[str, Any], **collections: Any) -> 'ProjectSummary':
        fields = {key: data.get(key) for key in METADATA_FIELDS if key in data}
        fields["lastModified"] = data.get("lastModified")
        fields["ownerId"] = data.get("ownerId", "")
        return cls.model_validate(fields)


def new_project(
    title: str,
    synopsis: str = "",
    style_seed: str = "",
    writing_style: str = "",
    draft_title: str = "Chapter 1 - Draft"
) -> Project:
    """Create a project with one empty draft manuscript set as active"""
    manuscript = Manuscript(id=new_entity_id(), title=draft_title, content="")
    return Project(
        id=new_entity_id(),
        title=title,
        synopsis=synopsis,
        style_seed=style_seed,
        writing_style=writing_style,
        manuscripts=[manuscript],
        active_manuscript_id=manuscript.id,
    )
