"""
Error taxonomy for the synchronization core.

Integrity-level failures (authentication, metadata writes, loads, deletes)
are raised to the caller. Per-item persistence failures inside a collection
sync are recorded as ItemPersistenceError instances on the sync result and
never raised.
"""

from typing import Optional


class NovaScribeError(Exception):
    """Base class for all errors raised by the core"""
    pass


class AuthenticationError(NovaScribeError):
    """A mutation or owner-scoped query was attempted without an authenticated owner"""

    def __init__(self, message: str = "not authenticated"):
        super().__init__(message)


class TransportError(NovaScribeError):
    """The persistence backend failed or could not be reached"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class LoadError(TransportError):
    """A full-project load failed in transport"""
    pass


class DocumentTooLargeError(TransportError):
    """The backend rejected a document exceeding its per-document size limit"""

    def __init__(self, path: str, size_bytes: int, limit_bytes: int):
        super().__init__(
            f"Document {path} is {size_bytes} bytes, limit is {limit_bytes} bytes",
            path=path
        )
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class ItemPersistenceError(NovaScribeError):
    """A single entity failed to upsert during a collection sync"""

    def __init__(self, collection_path: str, item_id: str, cause: BaseException):
        super().__init__(f"Failed to persist {collection_path}/{item_id}: {cause}")
        self.collection_path = collection_path
        self.item_id = item_id
        self.cause = cause


class SerializationError(NovaScribeError):
    """Stored version content could not be decoded"""

    def __init__(self, version_id: str, message: str):
        super().__init__(f"Version {version_id} could not be decoded: {message}")
        self.version_id = version_id


class VersionNotFoundError(NovaScribeError, LookupError):
    """A version id does not exist in the requested history scope"""

    def __init__(self, scope: str, version_id: str):
        super().__init__(f"Version {version_id} not found in {scope}")
        self.scope = scope
        self.version_id = version_id


class InlineImageTooLargeError(ValueError):
    """An inline image payload exceeds the safe persistence threshold"""

    def __init__(self, size_bytes: int, limit_bytes: int):
        super().__init__(
            f"Inline image is {size_bytes / 1024:.0f} KB, "
            f"the maximum allowed is {limit_bytes / 1024:.0f} KB"
        )
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class InvalidStateTransition(NovaScribeError):
    """A persistence lifecycle transition is not allowed from the current state"""
    pass
