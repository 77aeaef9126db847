"""
Project synchronization.

Key Components:
- SubcollectionSynchronizer: reconciles one remote collection with a local list
- AutoSaveDebouncer: coalesces bursts of edits into one save
"""

from .collection import SubcollectionSynchronizer, to_document
from .autosave import AutoSaveDebouncer, content_fingerprint

__all__ = [
    "SubcollectionSynchronizer",
    "to_document",
    "AutoSaveDebouncer",
    "content_fingerprint",
]
