"""
Abstract document store.

Documents live at slash-separated paths that alternate collection and
document segments (``projects/{p}/characters/{c}``). Implementations provide
the primitive reads and writes; live queries are built here on top of them
by polling.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .utils import fingerprint
from ..models.storage import DocumentSnapshot, StorageResult

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]
SnapshotCallback = Callable[[List[DocumentSnapshot]], Union[None, Awaitable[None]]]


def noop_unsubscribe() -> None:
    """Unsubscribe handle for subscriptions that never started"""
    return None


class DocumentStore(ABC):
    """
    Persistence backend contract.

    All methods raise TransportError (or a subclass) when the backend fails.
    """

    def __init__(self, max_batch_size: int = 500, poll_interval: float = 2.0):
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be positive")
        self.max_batch_size = max_batch_size
        self.poll_interval = poll_interval
        self._watches: Dict[int, asyncio.Task] = {}
        self._next_watch_id = 0

    @abstractmethod
    async def get(self, path: str) -> Optional[DocumentSnapshot]:
        """Read one document, None when absent"""

    @abstractmethod
    async def list_collection(self, collection_path: str) -> List[DocumentSnapshot]:
        """Every document directly inside a collection"""

    @abstractmethod
    async def set(
        self,
        path: str,
        data: Dict[str, Any],
        merge: bool = False,
        position: Optional[int] = None
    ) -> None:
        """
        Write a document.

        With merge=True fields are merged into the stored document, otherwise
        the document is replaced.
        """

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete one document. Deleting an absent document is not an error."""

    @abstractmethod
    async def batch_delete(self, paths: Sequence[str]) -> StorageResult:
        """Delete up to max_batch_size documents in one backend call"""

    @abstractmethod
    async def query(
        self,
        collection_path: str,
        field: str,
        value: Any
    ) -> List[DocumentSnapshot]:
        """Documents of a collection whose field equals value"""

    @abstractmethod
    async def list_descendants(self, path: str) -> List[DocumentSnapshot]:
        """Every document anywhere below a path, excluding the path itself"""

    async def list_ids(self, collection_path: str) -> List[str]:
        return [doc.id for doc in await self.list_collection(collection_path)]

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy"}

    async def close(self) -> None:
        """Cancel live queries and release backend resources"""
        for task in list(self._watches.values()):
            task.cancel()
        self._watches.clear()

    def _check_batch(self, paths: Sequence[str]) -> None:
        if len(paths) > self.max_batch_size:
            raise ValueError(
                f"Batch of {len(paths)} deletes exceeds the limit of {self.max_batch_size}"
            )

    def watch(
        self,
        collection_path: str,
        callback: SnapshotCallback,
        where: Optional[Tuple[str, Any]] = None,
        interval: Optional[float] = None
    ) -> Unsubscribe:
        """
        Start a live query over a collection.

        The callback receives the full result set once immediately and again
        whenever it changes. Must be called from a running event loop.

        Args:
            collection_path: Collection to observe
            callback: Receives the current documents, may be a coroutine function
            where: Optional (field, value) equality filter
            interval: Poll interval in seconds, defaults to the store's

        Returns:
            Callable that stops the live query
        """
        watch_id = self._next_watch_id
        self._next_watch_id += 1
        task = asyncio.get_running_loop().create_task(
            self._poll(collection_path, callback, where, interval or self.poll_interval)
        )
        self._watches[watch_id] = task

        def unsubscribe() -> None:
            watch_task = self._watches.pop(watch_id, None)
            if watch_task is not None:
                watch_task.cancel()

        logger.debug(f"Started live query {watch_id} on {collection_path}")
        return unsubscribe

    async def _poll(
        self,
        collection_path: str,
        callback: SnapshotCallback,
        where: Optional[Tuple[str, Any]],
        interval: float
    ) -> None:
        last_fingerprint: Optional[str] = None
        while True:
            try:
                if where is None:
                    docs = await self.list_collection(collection_path)
                else:
                    docs = await self.query(collection_path, where[0], where[1])
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Live query on {collection_path} failed, retrying: {e}")
                await asyncio.sleep(interval)
                continue

            current = fingerprint([(doc.path, doc.data) for doc in docs])
            if current != last_fingerprint:
                last_fingerprint = current
                try:
                    result = callback(docs)
                    if inspect.isawaitable(result):
                        await result
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Live query callback for {collection_path} raised: {e}")

            await asyncio.sleep(interval)
