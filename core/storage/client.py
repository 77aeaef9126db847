"""
Qdrant-backed document store for novascribe.

Every document is one point in a single Qdrant collection. The point ID is a
hash of the document path and the payload carries the path, its parent
collection, all ancestor paths and the document body, so collection listing,
equality queries and subtree deletes are payload filters. Points carry a
one-dimensional placeholder vector; no similarity search is performed.
"""

import asyncio
import logging
import posixpath
import threading
import time
import weakref
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from qdrant_client import QdrantClient
from qdrant_client.models import (
    VectorParams, Distance, PointStruct, Filter, FieldCondition,
    MatchValue, PayloadSchemaType, PointIdsList
)

from .base import DocumentStore
from .retry import RetryConfig, call_with_retry
from .utils import (
    path_to_point_id, normalize_path, split_document_path, ancestors_of,
    deep_merge, document_size
)
from ..exceptions import DocumentTooLargeError, TransportError
from ..models.config import StoreSettings
from ..models.storage import DocumentSnapshot, StorageResult

logger = logging.getLogger(__name__)

PLACEHOLDER_VECTOR = [1.0]

# Payload fields filtered on by the store
INDEXED_FIELDS = ("path", "parent", "ancestors", "data.ownerId")


class QdrantDocumentStore(DocumentStore):
    """
    Document store on top of qdrant-client.

    Features:
    - Server (url) or embedded (":memory:" or a directory) operation
    - Merge writes serialized per path within the process
    - Per-document size limit enforced before writing
    - Explicit call timeout and retry with exponential backoff
    """

    def __init__(
        self,
        settings: Optional[StoreSettings] = None,
        client: Optional[QdrantClient] = None
    ):
        """
        Initialize the store.

        Args:
            settings: Connection, limit and retry settings
            client: Pre-built client, mostly for tests
        """
        self.settings = settings or StoreSettings()
        super().__init__(
            max_batch_size=self.settings.max_batch_size,
            poll_interval=self.settings.poll_interval
        )
        self.collection_name = self.settings.collection_name
        self.retry = RetryConfig.from_settings(self.settings)

        self._client: Optional[QdrantClient] = client
        self._connection_lock = asyncio.Lock()
        self._ready = False
        # Local mode clients are not safe for concurrent use from several threads
        self._embedded_lock = threading.Lock() if self.settings.is_embedded else None
        self._path_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

        # Performance tracking
        self._total_requests = 0
        self._total_request_time = 0.0
        self._failed_requests = 0

        logger.info(f"Initialized QdrantDocumentStore: {self.target}")

    @property
    def target(self) -> str:
        return self.settings.location if self.settings.is_embedded else self.settings.url

    @property
    def client(self) -> QdrantClient:
        """Get Qdrant client instance"""
        if self._client is None:
            if self.settings.location == ":memory:":
                self._client = QdrantClient(location=":memory:")
            elif self.settings.is_embedded:
                self._client = QdrantClient(path=self.settings.location)
            else:
                self._client = QdrantClient(
                    url=self.settings.url,
                    api_key=self.settings.api_key,
                    timeout=int(self.settings.timeout)
                )
        return self._client

    async def _call(self, description: str, path: Optional[str], fn: Callable, *args, **kwargs) -> Any:
        """Run a blocking client call in a worker thread with timeout and retries"""
        def invoke():
            if self._embedded_lock is None:
                return fn(*args, **kwargs)
            with self._embedded_lock:
                return fn(*args, **kwargs)

        async def attempt():
            return await asyncio.wait_for(asyncio.to_thread(invoke), timeout=self.settings.timeout)

        start_time = time.time()
        self._total_requests += 1
        try:
            return await call_with_retry(attempt, self.retry, description)
        except Exception as e:
            self._failed_requests += 1
            logger.error(f"{description} failed: {e}")
            raise TransportError(f"{description} failed: {e}", path=path) from e
        finally:
            self._total_request_time += time.time() - start_time

    async def connect(self) -> bool:
        """
        Verify the backend and create the document collection if needed.

        Raises:
            TransportError: the backend cannot be reached
        """
        async with self._connection_lock:
            if self._ready:
                return True

            start_time = time.time()
            collections = await self._call("List collections", None, self.client.get_collections)
            names = {c.name for c in collections.collections}

            if self.collection_name not in names:
                await self._call(
                    f"Create collection {self.collection_name}",
                    None,
                    self.client.create_collection,
                    collection_name=self.collection_name,
                    vectors_config=VectorParams(size=len(PLACEHOLDER_VECTOR), distance=Distance.COSINE)
                )
                logger.info(f"Created document collection '{self.collection_name}'")
                if not self.settings.is_embedded:
                    await self._create_payload_indexes()

            self._ready = True
            elapsed = time.time() - start_time
            logger.info(f"Connected to document store {self.target} in {elapsed:.3f}s")
            return True

    async def _create_payload_indexes(self) -> None:
        """Create keyword indexes for the filtered payload fields"""
        for field_name in INDEXED_FIELDS:
            try:
                await self._call(
                    f"Index {field_name}",
                    None,
                    self.client.create_payload_index,
                    collection_name=self.collection_name,
                    field_name=field_name,
                    field_schema=PayloadSchemaType.KEYWORD
                )
                logger.debug(f"Created keyword index on {self.collection_name}.{field_name}")
            except TransportError as e:
                logger.warning(f"Failed to create index on {self.collection_name}.{field_name}: {e}")

    async def close(self) -> None:
        """Stop live queries and close the client"""
        await super().close()
        async with self._connection_lock:
            if self._client is not None:
                try:
                    self._client.close()
                except Exception as e:
                    logger.warning(f"Error during disconnect: {e}")
                finally:
                    self._client = None
            self._ready = False
        logger.info("Disconnected from document store")

    async def health_check(self) -> Dict[str, Any]:
        """
        Check backend health.

        Returns:
            Health status information
        """
        try:
            start_time = time.time()
            await self.connect()
            count = await self._call(
                "Count documents", None, self.client.count,
                collection_name=self.collection_name, exact=True
            )
            elapsed = time.time() - start_time
            return {
                "status": "healthy",
                "response_time_ms": elapsed * 1000,
                "documents": count.count,
                "collection": self.collection_name,
                "target": self.target
            }
        except TransportError as e:
            return {
                "status": "unhealthy",
                "error": str(e),
                "collection": self.collection_name,
                "target": self.target
            }

    def _path_lock(self, path: str) -> asyncio.Lock:
        lock = self._path_locks.get(path)
        if lock is None:
            lock = asyncio.Lock()
            self._path_locks[path] = lock
        return lock

    @staticmethod
    def _to_snapshot(record: Any) -> DocumentSnapshot:
        payload = record.payload or {}
        return DocumentSnapshot(
            path=payload["path"],
            data=payload.get("data") or {},
            position=payload.get("position"),
            updated_at=payload.get("updated_at")
        )

    async def _scroll(self, description: str, path: str, scroll_filter: Filter) -> List[DocumentSnapshot]:
        """Read every point matching a filter, following scroll pages"""
        await self.connect()
        snapshots: List[DocumentSnapshot] = []
        offset = None
        while True:
            records, offset = await self._call(
                description,
                path,
                self.client.scroll,
                collection_name=self.collection_name,
                scroll_filter=scroll_filter,
                limit=self.settings.scroll_page_size,
                offset=offset,
                with_payload=True,
                with_vectors=False
            )
            snapshots.extend(self._to_snapshot(record) for record in records)
            if offset is None:
                return snapshots

    @staticmethod
    def _ordered(snapshots: List[DocumentSnapshot]) -> List[DocumentSnapshot]:
        return sorted(
            snapshots,
            key=lambda doc: (doc.position is None, doc.position or 0, doc.id)
        )

    async def get(self, path: str) -> Optional[DocumentSnapshot]:
        path = normalize_path(path)
        await self.connect()
        records = await self._call(
            f"Get {path}",
            path,
            self.client.retrieve,
            collection_name=self.collection_name,
            ids=[path_to_point_id(path)],
            with_payload=True,
            with_vectors=False
        )
        if not records:
            return None
        return self._to_snapshot(records[0])

    async def list_collection(self, collection_path: str) -> List[DocumentSnapshot]:
        collection_path = normalize_path(collection_path)
        docs = await self._scroll(
            f"List {collection_path}",
            collection_path,
            Filter(must=[FieldCondition(key="parent", match=MatchValue(value=collection_path))])
        )
        logger.debug(f"Listed {len(docs)} documents in {collection_path}")
        return self._ordered(docs)

    async def query(self, collection_path: str, field: str, value: Any) -> List[DocumentSnapshot]:
        collection_path = normalize_path(collection_path)
        docs = await self._scroll(
            f"Query {collection_path} where {field} == {value!r}",
            collection_path,
            Filter(must=[
                FieldCondition(key="parent", match=MatchValue(value=collection_path)),
                FieldCondition(key=f"data.{field}", match=MatchValue(value=value))
            ])
        )
        return self._ordered(docs)

    async def list_descendants(self, path: str) -> List[DocumentSnapshot]:
        path = normalize_path(path)
        return await self._scroll(
            f"List descendants of {path}",
            path,
            Filter(must=[FieldCondition(key="ancestors", match=MatchValue(value=path))])
        )

    async def set(
        self,
        path: str,
        data: Dict[str, Any],
        merge: bool = False,
        position: Optional[int] = None
    ) -> None:
        path = normalize_path(path)
        parent, doc_id = split_document_path(path)
        await self.connect()

        async with self._path_lock(path):
            body = dict(data)
            if merge:
                existing = await self.get(path)
                if existing is not None:
                    body = deep_merge(existing.data, data)
                    if position is None:
                        position = existing.position

            size = document_size(body)
            if size > self.settings.max_document_bytes:
                logger.error(f"Rejected {path}: {size} bytes exceeds {self.settings.max_document_bytes}")
                raise DocumentTooLargeError(path, size, self.settings.max_document_bytes)

            payload = {
                "path": path,
                "parent": parent,
                "doc_id": doc_id,
                "ancestors": ancestors_of(path),
                "data": body,
                "updated_at": datetime.now(timezone.utc).isoformat()
            }
            if position is not None:
                payload["position"] = position

            await self._call(
                f"Set {path}",
                path,
                self.client.upsert,
                collection_name=self.collection_name,
                points=[PointStruct(id=path_to_point_id(path), vector=PLACEHOLDER_VECTOR, payload=payload)]
            )
            logger.debug(f"Wrote {path} ({size} bytes, merge={merge})")

    async def delete(self, path: str) -> None:
        path = normalize_path(path)
        await self.connect()
        await self._call(
            f"Delete {path}",
            path,
            self.client.delete,
            collection_name=self.collection_name,
            points_selector=PointIdsList(points=[path_to_point_id(path)])
        )
        logger.debug(f"Deleted {path}")

    async def batch_delete(self, paths: Sequence[str]) -> StorageResult:
        """
        Delete a batch of documents in one call.

        Raises:
            ValueError: more paths than max_batch_size
            TransportError: the backend rejected the batch
        """
        start_time = time.time()
        self._check_batch(paths)
        if not paths:
            return StorageResult.successful_delete("", 0, 0.0)

        normalized = [normalize_path(p) for p in paths]
        await self.connect()
        await self._call(
            f"Batch delete of {len(normalized)} documents",
            normalized[0],
            self.client.delete,
            collection_name=self.collection_name,
            points_selector=PointIdsList(points=[path_to_point_id(p) for p in normalized])
        )
        processing_time = (time.time() - start_time) * 1000
        logger.info(f"Deleted {len(normalized)} documents in {processing_time:.2f}ms")
        return StorageResult.successful_delete(
            posixpath.commonpath(normalized), len(normalized), processing_time
        )

    def get_performance_metrics(self) -> Dict[str, Any]:
        """Get store performance metrics"""
        return {
            "total_requests": self._total_requests,
            "total_request_time_s": self._total_request_time,
            "failed_requests": self._failed_requests,
            "average_request_time_ms": (
                self._total_request_time / max(1, self._total_requests) * 1000
            ),
            "success_rate": (
                (self._total_requests - self._failed_requests) / max(1, self._total_requests)
            ),
            "connected": self._ready,
            "target": self.target
        }
