"""
Editable project state.

ProjectState holds the current immutable Project snapshot. Every edit is a
patch producing a new snapshot, after which listeners (auto-save, views) are
notified. Restores from history snapshot the current content first.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from .history.ledger import VersionHistoryLedger
from .images import (
    MAX_INLINE_IMAGE_BYTES, GalleryReference, add_gallery_image, assign_gallery_image,
    decode_image_ref, ensure_inline_image_size, reconcile_entity_image, remove_gallery_image
)
from .models.entities import (
    ENTITY_MODELS, EntityKind, GalleryImage, IdentifiedModel, Manuscript, Project,
    make_target_key
)
from .models.history import HistoryScope, VersionRecord
from .storage.base import Unsubscribe

logger = logging.getLogger(__name__)

StateListener = Callable[[Project], None]
Patch = Callable[[Project], Project]

EDITABLE_METADATA = ("title", "synopsis", "style_seed", "writing_style")


class ProjectState:
    """Holder of the active project with an explicit patch contract"""

    def __init__(
        self,
        project: Project,
        ledger: Optional[VersionHistoryLedger] = None,
        max_inline_image_bytes: int = MAX_INLINE_IMAGE_BYTES
    ):
        self._project = project
        self.ledger = ledger
        self.max_inline_image_bytes = max_inline_image_bytes
        self._listeners: Dict[int, StateListener] = {}
        self._next_listener_id = 0

    @property
    def project(self) -> Project:
        return self._project

    def subscribe(self, listener: StateListener) -> Unsubscribe:
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = listener

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def apply(self, patch: Patch) -> Project:
        """Replace the snapshot with patch(snapshot) and notify listeners"""
        updated = patch(self._project)
        if updated.id != self._project.id:
            raise ValueError("A patch cannot change the project id")
        if updated == self._project:
            return self._project
        self._project = updated
        for listener in list(self._listeners.values()):
            listener(updated)
        return updated

    def replace(self, project: Project) -> Project:
        return self.apply(lambda _: project)

    # Metadata

    def update_metadata(self, **fields: Any) -> Project:
        unknown = set(fields) - set(EDITABLE_METADATA)
        if unknown:
            raise ValueError(f"Not editable project fields: {sorted(unknown)}")
        return self.apply(lambda p: p.model_copy(update=fields))

    def set_active_manuscript(self, manuscript_id: str) -> Project:
        if self._project.find_entity(EntityKind.MANUSCRIPT, manuscript_id) is None:
            raise ValueError(f"Manuscript {manuscript_id} not found")
        return self.apply(lambda p: p.model_copy(update={"active_manuscript_id": manuscript_id}))

    # Entities

    def upsert_entity(self, kind: EntityKind, entity: IdentifiedModel) -> Project:
        """
        Insert an entity or replace the one with the same id, keeping list order.

        The entity's imageUrl is reconciled with the gallery so an image
        stays assigned to at most one entity.
        """
        model = ENTITY_MODELS[kind]
        if not isinstance(entity, model):
            raise TypeError(f"{kind.collection_name} holds {model.__name__}, got {type(entity).__name__}")
        if kind.holds_images:
            ensure_inline_image_size(entity.image_url, self.max_inline_image_bytes)

        def patch(p: Project) -> Project:
            items = list(p.entities(kind))
            for index, item in enumerate(items):
                if item.id == entity.id:
                    items[index] = entity
                    break
            else:
                items.append(entity)
            p = p.with_entities(kind, items)
            if kind.holds_images:
                p = reconcile_entity_image(p, kind, entity.id)
            return p

        return self.apply(patch)

    def remove_entity(self, kind: EntityKind, entity_id: str) -> Project:
        """
        Remove an entity.

        Gallery images assigned to it are released; removing the active
        manuscript makes the first remaining one active.
        """
        if kind == EntityKind.GALLERY_IMAGE:
            return self.remove_gallery_image(entity_id)

        def patch(p: Project) -> Project:
            if p.find_entity(kind, entity_id) is None:
                raise ValueError(f"{kind.collection_name}/{entity_id} not found")
            p = p.with_entities(kind, [item for item in p.entities(kind) if item.id != entity_id])
            if kind.holds_images:
                target = make_target_key(kind, entity_id)
                gallery = [
                    image.model_copy(update={"assigned_to_id": None})
                    if image.assigned_to_id == target else image
                    for image in p.gallery
                ]
                p = p.with_entities(EntityKind.GALLERY_IMAGE, gallery)
            if kind == EntityKind.MANUSCRIPT and p.active_manuscript_id == entity_id:
                first = p.manuscripts[0].id if p.manuscripts else ""
                p = p.model_copy(update={"active_manuscript_id": first})
            return p

        return self.apply(patch)

    def update_manuscript_content(self, manuscript_id: str, content: str) -> Project:
        manuscript = self._project.find_entity(EntityKind.MANUSCRIPT, manuscript_id)
        if manuscript is None:
            raise ValueError(f"Manuscript {manuscript_id} not found")
        return self.upsert_entity(EntityKind.MANUSCRIPT, manuscript.model_copy(update={"content": content}))

    # Images

    def set_entity_image(self, kind: EntityKind, entity_id: str, image_url: Optional[str]) -> Project:
        """
        Point an entity's imageUrl at an inline payload or a gallery image.

        Raises:
            InlineImageTooLargeError: the inline payload is over the threshold; nothing changes
        """
        if not kind.holds_images:
            raise ValueError(f"{kind.collection_name} cannot hold images")
        ref = decode_image_ref(image_url)
        ensure_inline_image_size(ref, self.max_inline_image_bytes)

        if isinstance(ref, GalleryReference):
            return self.assign_gallery_image(ref.image_id, make_target_key(kind, entity_id))

        entity = self._project.find_entity(kind, entity_id)
        if entity is None:
            raise ValueError(f"{kind.collection_name}/{entity_id} not found")
        target = make_target_key(kind, entity_id)

        def patch(p: Project) -> Project:
            p = p.with_entities(kind, [
                item.model_copy(update={"image_url": image_url or ""}) if item.id == entity_id else item
                for item in p.entities(kind)
            ])
            gallery = [
                image.model_copy(update={"assigned_to_id": None})
                if image.assigned_to_id == target else image
                for image in p.gallery
            ]
            return p.with_entities(EntityKind.GALLERY_IMAGE, gallery)

        return self.apply(patch)

    def add_gallery_image(self, image: GalleryImage) -> Project:
        return self.apply(lambda p: add_gallery_image(p, image))

    def remove_gallery_image(self, image_id: str) -> Project:
        return self.apply(lambda p: remove_gallery_image(p, image_id))

    def assign_gallery_image(self, image_id: str, target: str) -> Project:
        return self.apply(lambda p: assign_gallery_image(p, image_id, target))

    # History

    def _require_ledger(self) -> VersionHistoryLedger:
        if self.ledger is None:
            raise ValueError("No version history ledger configured")
        return self.ledger

    def _current_entity(self, kind: EntityKind, entity_id: str) -> IdentifiedModel:
        entity = self._project.find_entity(kind, entity_id)
        if entity is None:
            raise ValueError(f"{kind.collection_name}/{entity_id} not found")
        return entity

    async def snapshot_entity(
        self,
        kind: EntityKind,
        entity_id: str,
        note: Optional[str] = None
    ) -> Optional[VersionRecord]:
        """Append the entity's current state (manuscript text for manuscripts) to its history"""
        entity = self._current_entity(kind, entity_id)
        scope = HistoryScope.entity(self._project.id, kind.collection_name, entity_id)
        return await self._require_ledger().append_version(scope, entity, note)

    async def snapshot_metadata(self, note: Optional[str] = None) -> Optional[VersionRecord]:
        scope = HistoryScope.metadata(self._project.id)
        return await self._require_ledger().append_version(scope, self._project.metadata_snapshot(), note)

    async def list_entity_versions(self, kind: EntityKind, entity_id: str) -> List[VersionRecord]:
        scope = HistoryScope.entity(self._project.id, kind.collection_name, entity_id)
        return await self._require_ledger().list_versions(scope)

    async def restore_entity(self, kind: EntityKind, entity_id: str, version_id: str) -> Project:
        """
        Apply a historical version of an entity.

        The current state is snapshotted first so the restore can be undone.
        """
        ledger = self._require_ledger()
        current = self._current_entity(kind, entity_id)
        scope = HistoryScope.entity(self._project.id, kind.collection_name, entity_id)
        content = await ledger.restore(scope, version_id)

        if kind == EntityKind.MANUSCRIPT:
            restored = current.model_copy(update={"content": content})
        else:
            data = dict(content) if isinstance(content, dict) else {}
            data["id"] = entity_id
            restored = ENTITY_MODELS[kind].model_validate(data)

        await ledger.snapshot_before(scope, current, action="restore")
        logger.info(f"Restoring {kind.collection_name}/{entity_id} to version {version_id}")
        return self.upsert_entity(kind, restored)

    async def restore_metadata(self, version_id: str) -> Project:
        """Apply a historical metadata snapshot after snapshotting the current one"""
        ledger = self._require_ledger()
        scope = HistoryScope.metadata(self._project.id)
        content = await ledger.restore(scope, version_id)
        if not isinstance(content, dict):
            content = {}

        fields = {
            "title": content.get("title", self._project.title),
            "synopsis": content.get("synopsis", self._project.synopsis),
            "style_seed": content.get("styleSeed", self._project.style_seed),
            "writing_style": content.get("writingStyle", self._project.writing_style),
        }
        await ledger.snapshot_before(scope, self._project.metadata_snapshot(), action="restore")
        logger.info(f"Restoring metadata of project {self._project.id} to version {version_id}")
        return self.update_metadata(**fields)
