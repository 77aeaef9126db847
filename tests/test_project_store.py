"""
Tests for whole-project persistence.

Covers metadata-first saves, partial failures, round trips, cascading
chunked deletes, the persistence lifecycle and the owner's project list.
"""

import asyncio
import base64
import pytest

from core.exceptions import (
    AuthenticationError, InlineImageTooLargeError, InvalidStateTransition, LoadError, TransportError
)
from core.history.ledger import VersionHistoryLedger
from core.images import inline_image, unassign_gallery_image
from core.models.entities import Character, EntityKind, ProjectSummary
from core.models.history import HistoryScope
from core.project_store import PersistenceState, ProjectStore, chunked, sort_summaries
from core.state import ProjectState

from tests.fixtures.documents import OWNER_ID, FaultInjectingStore, build_project


@pytest.fixture
def projects(faulty_store, identity) -> ProjectStore:
    return ProjectStore(faulty_store, identity)


class TestHelpers:
    """Test module helpers"""

    def test_chunked(self):
        assert chunked(list(range(5)), 2) == [[0, 1], [2, 3], [4]]
        assert chunked([], 3) == []

    def test_sort_summaries_newest_first_missing_last(self):
        summaries = [
            ProjectSummary(id="old", last_modified="2024-01-01T00:00:00Z"),
            ProjectSummary(id="none"),
            ProjectSummary(id="new", last_modified="2024-03-01T00:00:00+00:00"),
        ]

        assert [s.id for s in sort_summaries(summaries)] == ["new", "old", "none"]


class TestSaveFull:
    """Test ProjectStore.save_full"""

    @pytest.mark.asyncio
    async def test_requires_authentication(self, faulty_store, anonymous, project):
        store = ProjectStore(faulty_store, anonymous)

        with pytest.raises(AuthenticationError):
            await store.save_full(project)

        assert faulty_store.calls == []

    @pytest.mark.asyncio
    async def test_metadata_written_before_collections(self, projects, faulty_store, project):
        await projects.save_full(project)

        metadata_done = faulty_store.index_of("set_done", "projects/p1")
        first_entity_write = faulty_store.index_of("set", "projects/p1/")
        assert metadata_done < first_entity_write

    @pytest.mark.asyncio
    async def test_metadata_record_contents(self, projects, faulty_store, project):
        report = await projects.save_full(project)

        doc = await faulty_store.get("projects/p1")
        assert doc.data["ownerId"] == OWNER_ID
        assert doc.data["lastModified"] == report.last_modified
        assert doc.data["title"] == "The Long Night"
        assert "memoryCore" not in doc.data
        assert "manuscripts" not in doc.data

    @pytest.mark.asyncio
    async def test_report_lists_every_collection(self, projects, project):
        report = await projects.save_full(project)

        assert report.complete
        assert set(report.collections) == {"characters", "locations", "plotPoints", "manuscripts", "gallery"}
        assert report.collections["characters"].succeeded_ids == ["c0", "c1"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("counts", [(0, 0, 0, 1, 0), (2, 1, 1, 2, 1), (12, 5, 7, 4, 9)])
    async def test_round_trip(self, projects, counts):
        project = build_project(
            characters=counts[0], locations=counts[1], plot_points=counts[2], manuscripts=counts[3], gallery=counts[4]
        )
        report = await projects.save_full(project)

        loaded = await projects.load_full("p1")

        assert loaded == project.model_copy(update={"last_modified": report.last_modified})

    @pytest.mark.asyncio
    async def test_round_trip_with_images_and_optional_fields(self, projects):
        state = ProjectState(build_project(characters=3, locations=2, gallery=2))
        state.upsert_entity(EntityKind.CHARACTER, Character(id="c0", name="Ada", appearance="tall", skills="archery"))
        state.set_entity_image(EntityKind.CHARACTER, "c1", inline_image(b"\x89PNG").encoded)
        state.set_entity_image(EntityKind.CHARACTER, "c2", "g0")
        state.set_entity_image(EntityKind.LOCATION, "l1", "g1")

        report = await projects.save_full(state.project)
        loaded = await projects.load_full("p1")

        assert loaded == state.project.model_copy(update={"last_modified": report.last_modified})
        assert loaded.find_entity(EntityKind.GALLERY_IMAGE, "g0").assigned_to_id == "character-c2"

    @pytest.mark.asyncio
    async def test_cleared_fields_survive_second_save(self, projects):
        state = ProjectState(build_project(characters=2, gallery=2))
        state.upsert_entity(EntityKind.CHARACTER, Character(id="c0", name="Ada", appearance="tall", skills="archery"))
        state.set_entity_image(EntityKind.CHARACTER, "c0", "g0")
        state.set_entity_image(EntityKind.CHARACTER, "c1", "g1")
        await projects.save_full(state.project)

        state.apply(lambda p: unassign_gallery_image(p, "g0"))
        state.upsert_entity(EntityKind.CHARACTER, Character(id="c0", name="Ada", skills="archery"))
        state.remove_entity(EntityKind.CHARACTER, "c1")
        report = await projects.save_full(state.project)
        loaded = await projects.load_full("p1")

        assert loaded == state.project.model_copy(update={"last_modified": report.last_modified})
        assert loaded.find_entity(EntityKind.CHARACTER, "c0").appearance is None
        assert [image.assigned_to_id for image in loaded.gallery] == [None, None]

    @pytest.mark.asyncio
    async def test_removed_entities_deleted_remotely(self, projects, project):
        await projects.save_full(project)
        trimmed = project.with_entities(EntityKind.CHARACTER, project.memory_core.characters[:1])

        await projects.save_full(trimmed)
        loaded = await projects.load_full("p1")

        assert [c.id for c in loaded.memory_core.characters] == ["c0"]

    @pytest.mark.asyncio
    async def test_failed_entity_isolated(self, projects, faulty_store, project):
        faulty_store.fail_set_ids = {"c1"}

        report = await projects.save_full(project)
        loaded = await projects.load_full("p1")

        assert not report.complete
        assert report.failed_ids == {"characters": ["c1"]}
        assert [c.id for c in loaded.memory_core.characters] == ["c0"]
        assert [m.id for m in loaded.manuscripts] == ["m0", "m1"]
        assert loaded.title == project.title

    @pytest.mark.asyncio
    async def test_metadata_failure_aborts_save(self, projects, faulty_store, project):
        faulty_store.fail_set_paths = {"projects/p1"}

        with pytest.raises(TransportError):
            await projects.save_full(project)

        assert not any(path.startswith("projects/p1/") for op, path in faulty_store.calls if op == "set")
        assert projects.state_of("p1") == PersistenceState.UNSAVED

    @pytest.mark.asyncio
    async def test_oversized_inline_image_rejected_before_save(self, projects):
        small = inline_image(b"\x89PNG" + b"\x00" * 1000).encoded
        huge = inline_image(b"\x00" * (1200 * 1024)).encoded
        project = build_project(characters=3)
        state = ProjectState(project)

        state.set_entity_image(EntityKind.CHARACTER, "c0", small)
        state.set_entity_image(EntityKind.CHARACTER, "c1", small)
        with pytest.raises(InlineImageTooLargeError):
            state.set_entity_image(EntityKind.CHARACTER, "c2", huge)

        report = await projects.save_full(state.project)
        loaded = await projects.load_full(project.id)

        assert report.complete
        assert [c.id for c in loaded.memory_core.characters] == ["c0", "c1", "c2"]
        assert [bool(c.image_url) for c in loaded.memory_core.characters] == [True, True, False]
        assert base64.b64decode(loaded.memory_core.characters[0].image_url.split(",", 1)[1])[:4] == b"\x89PNG"


class TestLoadFull:
    """Test ProjectStore.load_full"""

    @pytest.mark.asyncio
    async def test_missing_project_returns_none(self, projects):
        assert await projects.load_full("nope") is None

    @pytest.mark.asyncio
    async def test_collections_loaded_concurrently_after_metadata(self, projects, faulty_store, project):
        await projects.save_full(project)
        faulty_store.calls.clear()

        await projects.load_full("p1")

        ops = [op for op, _ in faulty_store.calls]
        assert ops[0] == "get"
        assert ops.count("list") == 5

    @pytest.mark.asyncio
    async def test_transport_failure_raises_load_error(self, projects, faulty_store, project):
        await projects.save_full(project)
        faulty_store.fail_reads = True

        with pytest.raises(LoadError):
            await projects.load_full("p1")

    @pytest.mark.asyncio
    async def test_metadata_without_collections(self, faulty_store, projects):
        await faulty_store.set("projects/legacy", {"id": "legacy", "title": "Old", "ownerId": OWNER_ID})

        loaded = await projects.load_full("legacy")

        assert loaded.title == "Old"
        assert loaded.manuscripts == []
        assert loaded.gallery == []


class TestDeleteFull:
    """Test ProjectStore.delete_full"""

    @pytest.mark.asyncio
    async def test_requires_authentication(self, faulty_store, anonymous):
        with pytest.raises(AuthenticationError):
            await ProjectStore(faulty_store, anonymous).delete_full("p1")

    @pytest.mark.asyncio
    async def test_deletes_collections_history_then_metadata(self, projects, faulty_store, project):
        await projects.save_full(project)
        ledger = VersionHistoryLedger(faulty_store)
        await ledger.append_version(HistoryScope.manuscript("p1", "m0"), "draft one")
        await ledger.append_version(HistoryScope.entity("p1", "characters", "c0"), project.memory_core.characters[0])
        await ledger.append_version(HistoryScope.metadata("p1"), project.metadata_snapshot())

        report = await projects.delete_full("p1")

        assert report.documents_deleted == {
            "characters": 2, "locations": 1, "plotPoints": 1, "manuscripts": 2, "gallery": 1
        }
        assert report.history_deleted == 3
        assert report.total_deleted == 11
        assert faulty_store.index_of("delete", "projects/p1") > faulty_store.index_of("batch_delete", "projects/p1")
        assert await faulty_store.get("projects/p1") is None
        assert await faulty_store.list_descendants("projects/p1") == []
        assert await projects.load_full("p1") is None

    @pytest.mark.asyncio
    async def test_large_collections_chunked(self, faulty_store, identity):
        projects = ProjectStore(faulty_store, identity, batch_delete_limit=50)
        await projects.save_full(build_project(characters=210))

        report = await projects.delete_full("p1")

        assert report.documents_deleted["characters"] == 210
        assert max(faulty_store.batch_sizes) <= 50
        assert sum(faulty_store.batch_sizes) == report.total_deleted - 1
        assert report.batches == len(faulty_store.batch_sizes)
        assert await faulty_store.list_descendants("projects/p1") == []

    @pytest.mark.asyncio
    async def test_batch_limit_capped_by_store(self, store, identity):
        small = FaultInjectingStore(store, max_batch_size=10)

        assert ProjectStore(small, identity, batch_delete_limit=500).batch_delete_limit == 10

    @pytest.mark.asyncio
    async def test_failed_batch_keeps_metadata(self, projects, faulty_store, project):
        await projects.save_full(project)
        faulty_store.fail_batch_delete = True

        with pytest.raises(TransportError):
            await projects.delete_full("p1")

        assert await faulty_store.get("projects/p1") is not None
        assert projects.state_of("p1") == PersistenceState.SAVED

    @pytest.mark.asyncio
    async def test_project_gone_from_list(self, projects, project):
        await projects.save_full(project)
        await projects.save_full(build_project("p2"))

        await projects.delete_full("p1")

        assert [s.id for s in await projects.list_projects()] == ["p2"]


class TestLifecycle:
    """Test persistence state transitions"""

    @pytest.mark.asyncio
    async def test_states_through_save_and_delete(self, projects, project):
        assert projects.state_of("p1") == PersistenceState.UNSAVED

        await projects.save_full(project)
        assert projects.state_of("p1") == PersistenceState.SAVED

        await projects.delete_full("p1")
        assert projects.state_of("p1") == PersistenceState.DELETED

    @pytest.mark.asyncio
    async def test_saving_state_during_metadata_write(self, projects, faulty_store, project):
        faulty_store.set_delay = 0.05

        task = asyncio.create_task(projects.save_full(project))
        await asyncio.sleep(0.01)
        assert projects.state_of("p1") == PersistenceState.SAVING
        await task

    @pytest.mark.asyncio
    async def test_deleted_project_cannot_be_saved(self, projects, project):
        await projects.save_full(project)
        await projects.delete_full("p1")

        with pytest.raises(InvalidStateTransition):
            await projects.save_full(project)
        with pytest.raises(InvalidStateTransition):
            await projects.delete_full("p1")


class TestProjectList:
    """Test owner-scoped listing and the live project list"""

    async def _seed(self, store):
        await store.set("projects/a", {"id": "a", "title": "A", "ownerId": OWNER_ID, "lastModified": "2024-01-01T00:00:00Z"})
        await store.set("projects/b", {"id": "b", "title": "B", "ownerId": OWNER_ID, "lastModified": "2024-05-01T00:00:00Z"})
        await store.set("projects/c", {"id": "c", "title": "C", "ownerId": "someone-else", "lastModified": "2024-06-01T00:00:00Z"})
        await store.set("projects/d", {"id": "d", "title": "D", "ownerId": OWNER_ID})

    @pytest.mark.asyncio
    async def test_list_projects_sorted_and_scoped(self, projects, faulty_store):
        await self._seed(faulty_store)

        summaries = await projects.list_projects()

        assert [s.id for s in summaries] == ["b", "a", "d"]
        assert all(s.owner_id == OWNER_ID for s in summaries)

    @pytest.mark.asyncio
    async def test_list_projects_requires_owner(self, faulty_store, anonymous):
        with pytest.raises(AuthenticationError):
            await ProjectStore(faulty_store, anonymous).list_projects()

    @pytest.mark.asyncio
    async def test_subscribe_list_pushes_updates(self, projects, faulty_store):
        await self._seed(faulty_store)
        received = []

        unsubscribe = projects.subscribe_list(received.append)
        try:
            await asyncio.sleep(0.3)
            assert [s.id for s in received[-1]] == ["b", "a", "d"]

            await faulty_store.set("projects/e", {"id": "e", "ownerId": OWNER_ID, "lastModified": "2025-01-01T00:00:00Z"})
            await asyncio.sleep(0.3)
        finally:
            unsubscribe()

        assert [s.id for s in received[-1]] == ["e", "b", "a", "d"]

    @pytest.mark.asyncio
    async def test_subscribe_list_without_owner_is_noop(self, faulty_store, anonymous):
        received = []

        unsubscribe = ProjectStore(faulty_store, anonymous).subscribe_list(received.append)
        await asyncio.sleep(0.1)
        unsubscribe()

        assert received == []
        assert faulty_store.calls == []
