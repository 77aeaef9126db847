"""
Image references.

An entity's imageUrl holds either a legacy inline data URL or the id of a
gallery image. decode_image_ref turns the string into an InlineImage or a
GalleryReference once, at the boundary; everything else works on those.
"""

import base64
import binascii
import logging
import re
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict

from .exceptions import InlineImageTooLargeError
from .models.entities import (
    EntityKind, GalleryImage, Project, make_target_key, parse_target_key
)

logger = logging.getLogger(__name__)

# Stays under the 1 MiB per-document backend limit with room for the other fields
MAX_INLINE_IMAGE_BYTES = 950 * 1024

INLINE_PREFIX = "data:"
_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^;,]*)*?);base64,(?P<payload>.*)$", re.DOTALL)


class InlineImage(BaseModel):
    """Image bytes embedded in the entity document"""
    model_config = ConfigDict(frozen=True)

    kind: Literal["inline"] = "inline"
    mime_type: str
    data: bytes
    encoded: str

    @property
    def encoded_size(self) -> int:
        return len(self.encoded.encode("utf-8"))


class GalleryReference(BaseModel):
    """Id of a GalleryImage of the same project"""
    model_config = ConfigDict(frozen=True)

    kind: Literal["gallery"] = "gallery"
    image_id: str


ImageRef = Union[InlineImage, GalleryReference]


def decode_image_ref(value: Optional[str]) -> Optional[ImageRef]:
    """
    Decode an imageUrl field.

    Returns None for an absent or empty value.

    Raises:
        ValueError: an inline payload is not valid base64 data URL
    """
    if not value:
        return None
    if not value.startswith(INLINE_PREFIX):
        return GalleryReference(image_id=value)

    match = _DATA_URL.match(value)
    if match is None:
        raise ValueError("Inline image is not a base64 data URL")
    try:
        data = base64.b64decode(match.group("payload"), validate=True)
    except binascii.Error as e:
        raise ValueError(f"Inline image has invalid base64 payload: {e}") from e
    return InlineImage(
        mime_type=match.group("mime") or "application/octet-stream",
        data=data,
        encoded=value
    )


def encode_image_ref(ref: Optional[ImageRef]) -> str:
    """Inverse of decode_image_ref; None encodes to an empty string"""
    if ref is None:
        return ""
    if isinstance(ref, GalleryReference):
        return ref.image_id
    return ref.encoded


def inline_image(data: bytes, mime_type: str = "image/png") -> InlineImage:
    """Build an inline reference from raw bytes"""
    encoded = f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
    return InlineImage(mime_type=mime_type, data=data, encoded=encoded)


def ensure_inline_image_size(
    ref: Union[Optional[ImageRef], str],
    limit_bytes: int = MAX_INLINE_IMAGE_BYTES
) -> None:
    """
    Reject inline payloads whose encoded size exceeds limit_bytes.

    Gallery references and empty values always pass.

    Raises:
        InlineImageTooLargeError: the payload is too large to persist
    """
    if isinstance(ref, str):
        ref = decode_image_ref(ref)
    if isinstance(ref, InlineImage) and ref.encoded_size > limit_bytes:
        logger.warning(f"Rejected inline image of {ref.encoded_size} bytes (limit {limit_bytes})")
        raise InlineImageTooLargeError(ref.encoded_size, limit_bytes)


def resolve_image_src(project: Project, value: Optional[str]) -> Optional[str]:
    """Displayable source for an imageUrl: the data URL itself or the gallery image's src"""
    ref = decode_image_ref(value)
    if ref is None:
        return None
    if isinstance(ref, InlineImage):
        return ref.encoded
    image = project.find_entity(EntityKind.GALLERY_IMAGE, ref.image_id)
    return image.src if image is not None else None


def _set_image_url(project: Project, kind: EntityKind, entity_id: str, value: str) -> Project:
    items = [
        item.model_copy(update={"image_url": value}) if item.id == entity_id else item
        for item in project.entities(kind)
    ]
    return project.with_entities(kind, items)


def _set_assignment(project: Project, image_id: str, target: Optional[str]) -> Project:
    gallery = [
        image.model_copy(update={"assigned_to_id": target}) if image.id == image_id else image
        for image in project.gallery
    ]
    return project.with_entities(EntityKind.GALLERY_IMAGE, gallery)


def _holders(project: Project, image_id: str):
    for kind in (EntityKind.CHARACTER, EntityKind.LOCATION, EntityKind.PLOT_POINT):
        for item in project.entities(kind):
            if item.image_url == image_id:
                yield kind, item.id


def unassign_gallery_image(project: Project, image_id: str) -> Project:
    """Clear an image's assignment and every entity that references it"""
    if project.find_entity(EntityKind.GALLERY_IMAGE, image_id) is None:
        raise ValueError(f"Gallery image {image_id} not found")
    for kind, entity_id in list(_holders(project, image_id)):
        project = _set_image_url(project, kind, entity_id, "")
    return _set_assignment(project, image_id, None)


def assign_gallery_image(project: Project, image_id: str, target: str) -> Project:
    """
    Assign a gallery image to one entity, keeping assignments exclusive.

    The image is taken away from its previous holder, any other image
    assigned to the target is released, the target's imageUrl becomes the
    image id and the image records the target key.

    Args:
        project: Current project snapshot
        image_id: Gallery image to assign
        target: Target key such as 'character-<id>'

    Returns:
        New project snapshot

    Raises:
        ValueError: unknown image, unknown target or a target that holds no images
    """
    kind, entity_id = parse_target_key(target)
    if not kind.holds_images:
        raise ValueError(f"{kind.collection_name} cannot hold images")
    if project.find_entity(kind, entity_id) is None:
        raise ValueError(f"Assignment target {target} not found")
    if project.find_entity(EntityKind.GALLERY_IMAGE, image_id) is None:
        raise ValueError(f"Gallery image {image_id} not found")

    target = make_target_key(kind, entity_id)
    project = unassign_gallery_image(project, image_id)

    for image in project.gallery:
        if image.id != image_id and image.assigned_to_id == target:
            project = _set_assignment(project, image.id, None)

    project = _set_image_url(project, kind, entity_id, image_id)
    project = _set_assignment(project, image_id, target)
    logger.debug(f"Assigned gallery image {image_id} to {target}")
    return project


def reconcile_entity_image(project: Project, kind: EntityKind, entity_id: str) -> Project:
    """
    Bring gallery assignments in line with an entity's imageUrl.

    Used after an entity was replaced wholesale (an edit or a history
    restore). A gallery reference is re-assigned exclusively, a reference
    to a missing image is cleared, and any other value releases images
    still assigned to the entity.
    """
    entity = project.find_entity(kind, entity_id)
    if entity is None or not kind.holds_images:
        return project

    ref = decode_image_ref(entity.image_url)
    if isinstance(ref, GalleryReference):
        if project.find_entity(EntityKind.GALLERY_IMAGE, ref.image_id) is not None:
            return assign_gallery_image(project, ref.image_id, make_target_key(kind, entity_id))
        logger.info(f"Clearing reference of {kind.collection_name}/{entity_id} to missing image {ref.image_id}")
        project = _set_image_url(project, kind, entity_id, "")

    target = make_target_key(kind, entity_id)
    for image in project.gallery:
        if image.assigned_to_id == target:
            project = _set_assignment(project, image.id, None)
    return project


def remove_gallery_image(project: Project, image_id: str) -> Project:
    """Delete a gallery image and clear every entity that references it"""
    project = unassign_gallery_image(project, image_id)
    gallery = [image for image in project.gallery if image.id != image_id]
    return project.with_entities(EntityKind.GALLERY_IMAGE, gallery)


def add_gallery_image(project: Project, image: GalleryImage) -> Project:
    """Append an unassigned image to the gallery"""
    if image.assigned_to_id:
        image = image.model_copy(update={"assigned_to_id": None})
    return project.with_entities(EntityKind.GALLERY_IMAGE, [*project.gallery, image])
