"""
Subcollection synchronization.

Reconciles one remote collection with the authoritative local list of
entities: remote documents missing locally are deleted and every local
entity is merge-written as its own document. Per-item failures are
isolated so one oversized or rejected entity never blocks its siblings.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

from pydantic import BaseModel

from ..exceptions import ItemPersistenceError
from ..models.entities import IdentifiedModel
from ..models.storage import SyncResult
from ..storage.base import DocumentStore

logger = logging.getLogger(__name__)

SyncItem = Union[IdentifiedModel, BaseModel, Mapping[str, Any]]


def to_document(item: SyncItem) -> Tuple[str, Dict[str, Any]]:
    """Extract (id, persisted body) from a model or a mapping with an id"""
    if isinstance(item, IdentifiedModel):
        data = item.to_document()
    elif isinstance(item, BaseModel):
        data = item.model_dump(by_alias=True)
    elif isinstance(item, Mapping):
        data = dict(item)
    else:
        raise TypeError(f"Cannot synchronize item of type {type(item).__name__}")

    item_id = data.get("id")
    if not isinstance(item_id, str) or not item_id.strip():
        raise ValueError(f"Item without a valid id: {item_id!r}")
    return item_id, data


class SubcollectionSynchronizer:
    """
    Makes a remote collection mirror a local list.

    After a successful sync the remote id set equals the local id set and
    each remote document holds at least the fields of its local entity.
    Repeating a sync with the same list changes nothing further.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    @staticmethod
    def prepare(items: Sequence[SyncItem]) -> List[Tuple[str, Dict[str, Any]]]:
        """
        Validate and serialize items before anything is written.

        Raises:
            ValueError: an item has an empty id or two items share an id
        """
        documents = []
        seen = set()
        for item in items:
            item_id, data = to_document(item)
            if item_id in seen:
                raise ValueError(f"Duplicate id {item_id!r} in local list")
            seen.add(item_id)
            documents.append((item_id, data))
        return documents

    async def sync(self, collection_path: str, items: Sequence[SyncItem]) -> SyncResult:
        """
        Reconcile collection_path with items.

        Deletes and upserts are dispatched together and the call returns only
        once all of them have settled.

        Args:
            collection_path: Remote collection, e.g. projects/{p}/characters
            items: Authoritative local list

        Returns:
            SyncResult listing written, failed and deleted ids

        Raises:
            ValueError: invalid local list, nothing written
            TransportError: the remote listing or a delete failed
        """
        start_time = time.time()
        documents = self.prepare(items)
        local_ids = [item_id for item_id, _ in documents]

        remote_ids = set(await self.store.list_ids(collection_path))
        to_delete = sorted(remote_ids - set(local_ids))

        succeeded = set()
        failed: Dict[str, ItemPersistenceError] = {}
        deleted = set()

        async def upsert(position: int, item_id: str, data: Dict[str, Any]) -> None:
            try:
                await self.store.set(f"{collection_path}/{item_id}", data, merge=True, position=position)
                succeeded.add(item_id)
            except Exception as e:
                logger.error(f"Failed to sync item {item_id} in {collection_path}: {e}")
                failed[item_id] = ItemPersistenceError(collection_path, item_id, e)

        async def remove(item_id: str) -> None:
            await self.store.delete(f"{collection_path}/{item_id}")
            deleted.add(item_id)

        outcomes = await asyncio.gather(
            *(remove(item_id) for item_id in to_delete),
            *(upsert(position, item_id, data) for position, (item_id, data) in enumerate(documents)),
            return_exceptions=True
        )

        result = SyncResult(
            collection_path=collection_path,
            succeeded_ids=[i for i in local_ids if i in succeeded],
            failed_ids=[i for i in local_ids if i in failed],
            deleted_ids=[i for i in to_delete if i in deleted],
            errors=[failed[i] for i in local_ids if i in failed],
            processing_time_ms=(time.time() - start_time) * 1000
        )

        delete_errors = [o for o in outcomes[:len(to_delete)] if isinstance(o, BaseException)]
        if delete_errors:
            logger.error(
                f"{len(delete_errors)} deletes failed while syncing {collection_path}: {delete_errors[0]}"
            )
            raise delete_errors[0]

        if result.partial:
            logger.warning(
                f"Synced {collection_path} partially: {len(result.succeeded_ids)} written, "
                f"{len(result.failed_ids)} failed, {len(result.deleted_ids)} deleted"
            )
        else:
            logger.debug(
                f"Synced {collection_path}: {len(result.succeeded_ids)} written, "
                f"{len(result.deleted_ids)} deleted in {result.processing_time_ms:.2f}ms"
            )
        return result
