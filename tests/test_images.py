"""
Tests for image references and gallery assignment.
"""

import pytest

from core.exceptions import InlineImageTooLargeError
from core.images import (
    GalleryReference, InlineImage, add_gallery_image, assign_gallery_image, decode_image_ref,
    encode_image_ref, ensure_inline_image_size, inline_image, remove_gallery_image, resolve_image_src
)
from core.models.entities import EntityKind, GalleryImage

from tests.fixtures.documents import build_project


def gallery_project():
    project = build_project(characters=2, locations=1, gallery=0)
    for image_id in ("g1", "g2"):
        project = add_gallery_image(project, GalleryImage(id=image_id, src=f"https://img.example/{image_id}.png"))
    return project


def character(project, entity_id):
    return project.find_entity(EntityKind.CHARACTER, entity_id)


def image(project, image_id):
    return project.find_entity(EntityKind.GALLERY_IMAGE, image_id)


class TestImageRefs:
    """Test decoding and encoding of imageUrl values"""

    def test_empty_values(self):
        assert decode_image_ref(None) is None
        assert decode_image_ref("") is None
        assert encode_image_ref(None) == ""

    def test_gallery_reference(self):
        ref = decode_image_ref("g1")

        assert ref == GalleryReference(image_id="g1")
        assert encode_image_ref(ref) == "g1"

    def test_inline_image(self):
        built = inline_image(b"abc", "image/jpeg")
        ref = decode_image_ref(built.encoded)

        assert isinstance(ref, InlineImage)
        assert ref.mime_type == "image/jpeg"
        assert ref.data == b"abc"
        assert encode_image_ref(ref) == built.encoded

    @pytest.mark.parametrize("value", ["data:image/png;base64,@@@", "data:image/png,plain"])
    def test_malformed_inline_rejected(self, value):
        with pytest.raises(ValueError):
            decode_image_ref(value)

    def test_size_guard(self):
        small = inline_image(b"x" * 100)
        large = inline_image(b"x" * 3000)

        ensure_inline_image_size(small, limit_bytes=1024)
        ensure_inline_image_size("g1", limit_bytes=1)
        ensure_inline_image_size(None, limit_bytes=1)
        with pytest.raises(InlineImageTooLargeError) as exc_info:
            ensure_inline_image_size(large.encoded, limit_bytes=1024)

        assert exc_info.value.limit_bytes == 1024
        assert exc_info.value.size_bytes == large.encoded_size

    def test_resolve_image_src(self):
        project = gallery_project()
        inline = inline_image(b"abc").encoded

        assert resolve_image_src(project, "g1") == "https://img.example/g1.png"
        assert resolve_image_src(project, inline) == inline
        assert resolve_image_src(project, "unknown") is None
        assert resolve_image_src(project, "") is None


class TestGalleryAssignment:
    """Test exclusive gallery assignment"""

    def test_assign_sets_both_sides(self):
        project = assign_gallery_image(gallery_project(), "g1", "character-c0")

        assert character(project, "c0").image_url == "g1"
        assert image(project, "g1").assigned_to_id == "character-c0"

    def test_reassign_moves_image(self):
        project = assign_gallery_image(gallery_project(), "g1", "character-c0")

        project = assign_gallery_image(project, "g1", "location-l0")

        assert character(project, "c0").image_url == ""
        assert project.find_entity(EntityKind.LOCATION, "l0").image_url == "g1"
        assert image(project, "g1").assigned_to_id == "location-l0"

    def test_target_holds_one_image(self):
        project = assign_gallery_image(gallery_project(), "g1", "character-c0")

        project = assign_gallery_image(project, "g2", "character-c0")

        assert character(project, "c0").image_url == "g2"
        assert image(project, "g1").assigned_to_id is None
        assert image(project, "g2").assigned_to_id == "character-c0"

    def test_assignments_stay_exclusive(self):
        project = gallery_project()
        for image_id, target in [("g1", "character-c0"), ("g2", "character-c1"), ("g1", "character-c1")]:
            project = assign_gallery_image(project, image_id, target)

        assigned = [img.assigned_to_id for img in project.gallery if img.assigned_to_id]
        assert len(assigned) == len(set(assigned))
        assert character(project, "c1").image_url == "g1"
        assert character(project, "c0").image_url == ""

    @pytest.mark.parametrize("image_id,target", [
        ("missing", "character-c0"),
        ("g1", "character-missing"),
        ("g1", "manuscript-m0"),
        ("g1", "bogus"),
    ])
    def test_invalid_assignment(self, image_id, target):
        with pytest.raises(ValueError):
            assign_gallery_image(gallery_project(), image_id, target)

    def test_remove_clears_references(self):
        project = assign_gallery_image(gallery_project(), "g1", "character-c0")

        project = remove_gallery_image(project, "g1")

        assert [img.id for img in project.gallery] == ["g2"]
        assert character(project, "c0").image_url == ""

    def test_added_image_starts_unassigned(self):
        project = add_gallery_image(gallery_project(), GalleryImage(id="g3", src="x", assigned_to_id="character-c0"))

        assert image(project, "g3").assigned_to_id is None

    def test_input_snapshot_unchanged(self):
        original = gallery_project()

        assign_gallery_image(original, "g1", "character-c0")

        assert character(original, "c0").image_url is None
        assert image(original, "g1").assigned_to_id is None
