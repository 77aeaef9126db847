"""
Document storage for novascribe.

Abstract document store contract and its Qdrant implementation.
"""

from .base import DocumentStore, Unsubscribe, noop_unsubscribe
from .client import QdrantDocumentStore
from .retry import RetryConfig, call_with_retry, is_transient
from .utils import path_to_point_id
from . import paths

__all__ = [
    "DocumentStore",
    "Unsubscribe",
    "noop_unsubscribe",
    "QdrantDocumentStore",
    "RetryConfig",
    "call_with_retry",
    "is_transient",
    "path_to_point_id",
    "paths",
]
