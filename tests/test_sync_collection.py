"""
Tests for subcollection synchronization.

Covers convergence of the remote id set, fault isolation of per-item
failures, idempotence and rejection of invalid local lists.
"""

import pytest

from core.exceptions import DocumentTooLargeError, ItemPersistenceError, TransportError
from core.models.entities import Character, Location
from core.models.storage import OperationStatus
from core.sync.collection import SubcollectionSynchronizer, to_document

CHARACTERS = "projects/p1/characters"


def characters(*ids):
    return [Character(id=i, name=f"Name {i}") for i in ids]


class TestToDocument:
    """Test item serialization"""

    def test_model_uses_aliases(self):
        item_id, data = to_document(Character(id="c1", name="Ada", image_url="g1"))

        assert item_id == "c1"
        assert data["imageUrl"] == "g1"
        assert data["name"] == "Ada"
        assert data["appearance"] is None

    def test_mapping_passes_through(self):
        assert to_document({"id": "x", "k": 1}) == ("x", {"id": "x", "k": 1})

    def test_missing_id_rejected(self):
        with pytest.raises(ValueError):
            to_document({"name": "no id"})

    def test_unsupported_type_rejected(self):
        with pytest.raises(TypeError):
            to_document(42)


class TestSubcollectionSynchronizer:
    """Test SubcollectionSynchronizer.sync"""

    @pytest.mark.asyncio
    async def test_creates_documents_in_order(self, store):
        result = await SubcollectionSynchronizer(store).sync(CHARACTERS, characters("z", "a", "m"))

        assert result.status == OperationStatus.SUCCESS
        assert result.succeeded_ids == ["z", "a", "m"]
        assert await store.list_ids(CHARACTERS) == ["z", "a", "m"]

    @pytest.mark.asyncio
    async def test_remote_converges_to_local(self, store):
        sync = SubcollectionSynchronizer(store)
        await sync.sync(CHARACTERS, characters("c1", "c2", "c3"))

        result = await sync.sync(CHARACTERS, characters("c3", "c4"))

        assert result.deleted_ids == ["c1", "c2"]
        assert sorted(await store.list_ids(CHARACTERS)) == ["c3", "c4"]

    @pytest.mark.asyncio
    async def test_empty_list_clears_collection(self, store):
        sync = SubcollectionSynchronizer(store)
        await sync.sync(CHARACTERS, characters("c1", "c2"))

        result = await sync.sync(CHARACTERS, [])

        assert result.deleted_ids == ["c1", "c2"]
        assert await store.list_ids(CHARACTERS) == []

    @pytest.mark.asyncio
    async def test_sync_is_idempotent(self, store):
        sync = SubcollectionSynchronizer(store)
        items = characters("c1", "c2")
        await sync.sync(CHARACTERS, items)
        before = await store.list_collection(CHARACTERS)

        result = await sync.sync(CHARACTERS, items)
        after = await store.list_collection(CHARACTERS)

        assert result.deleted_ids == []
        assert [(d.path, d.data) for d in after] == [(d.path, d.data) for d in before]

    @pytest.mark.asyncio
    async def test_merge_keeps_remote_only_fields(self, store):
        await store.set(f"{CHARACTERS}/c1", {"id": "c1", "name": "Old", "legacyNote": "kept"})

        await SubcollectionSynchronizer(store).sync(CHARACTERS, characters("c1"))

        doc = await store.get(f"{CHARACTERS}/c1")
        assert doc.data["name"] == "Name c1"
        assert doc.data["legacyNote"] == "kept"

    @pytest.mark.asyncio
    async def test_cleared_field_overwrites_remote_value(self, store):
        sync = SubcollectionSynchronizer(store)
        await sync.sync(CHARACTERS, [Character(id="c1", appearance="tall", skills="archery")])

        await sync.sync(CHARACTERS, [Character(id="c1", skills="archery")])

        doc = await store.get(f"{CHARACTERS}/c1")
        assert doc.data["appearance"] is None
        assert doc.data["skills"] == "archery"

    @pytest.mark.asyncio
    async def test_failed_item_does_not_block_siblings(self, faulty_store):
        faulty_store.fail_set_ids = {"c2"}

        result = await SubcollectionSynchronizer(faulty_store).sync(CHARACTERS, characters("c1", "c2", "c3"))

        assert result.status == OperationStatus.PARTIAL
        assert result.succeeded_ids == ["c1", "c3"]
        assert result.failed_ids == ["c2"]
        assert isinstance(result.errors[0], ItemPersistenceError)
        assert isinstance(result.errors[0].cause, DocumentTooLargeError)
        assert result.errors[0].item_id == "c2"
        assert sorted(await faulty_store.list_ids(CHARACTERS)) == ["c1", "c3"]

    @pytest.mark.asyncio
    async def test_all_items_failing(self, faulty_store):
        faulty_store.fail_set_ids = {"c1"}

        result = await SubcollectionSynchronizer(faulty_store).sync(CHARACTERS, characters("c1"))

        assert result.status == OperationStatus.FAILED
        assert result.items_processed == 1

    @pytest.mark.asyncio
    async def test_failed_update_keeps_previous_remote_version(self, faulty_store):
        sync = SubcollectionSynchronizer(faulty_store)
        await sync.sync(CHARACTERS, characters("c1"))
        faulty_store.fail_set_ids = {"c1"}

        await sync.sync(CHARACTERS, [Character(id="c1", name="Renamed")])

        doc = await faulty_store.get(f"{CHARACTERS}/c1")
        assert doc.data["name"] == "Name c1"

    @pytest.mark.asyncio
    async def test_duplicate_ids_rejected_before_writing(self, faulty_store):
        with pytest.raises(ValueError):
            await SubcollectionSynchronizer(faulty_store).sync(CHARACTERS, characters("c1", "c1"))

        assert faulty_store.calls == []

    @pytest.mark.asyncio
    async def test_empty_id_rejected(self, faulty_store):
        with pytest.raises(ValueError):
            await SubcollectionSynchronizer(faulty_store).sync(CHARACTERS, [{"id": "", "name": "x"}])

    @pytest.mark.asyncio
    async def test_delete_failure_raised_after_upserts_settle(self, faulty_store):
        sync = SubcollectionSynchronizer(faulty_store)
        await sync.sync(CHARACTERS, characters("c1", "old"))
        faulty_store.fail_delete_ids = {"old"}

        with pytest.raises(TransportError):
            await sync.sync(CHARACTERS, characters("c1", "c2"))

        assert sorted(await faulty_store.list_ids(CHARACTERS)) == ["c1", "c2", "old"]

    @pytest.mark.asyncio
    async def test_listing_failure_raised(self, faulty_store):
        faulty_store.fail_reads = True

        with pytest.raises(TransportError):
            await SubcollectionSynchronizer(faulty_store).sync(CHARACTERS, characters("c1"))

        assert ("set", f"{CHARACTERS}/c1") not in faulty_store.calls

    @pytest.mark.asyncio
    async def test_collections_are_independent(self, store):
        sync = SubcollectionSynchronizer(store)
        await sync.sync("projects/p1/locations", [Location(id="l1", name="Harbor")])

        await sync.sync(CHARACTERS, [])

        assert await store.list_ids("projects/p1/locations") == ["l1"]
