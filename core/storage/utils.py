"""
Storage utilities for consistent operations across the codebase.

Provides centralized helpers for document paths: path to Qdrant point ID
conversion, ancestor expansion, merge semantics and payload sizing.
"""

import copy
import hashlib
import json
from typing import Any, Dict, List, Tuple


def path_to_point_id(path: str) -> int:
    """
    Convert a document path to a Qdrant point ID using consistent SHA256 hashing.

    This is the canonical conversion used by the document store; the same
    path always maps to the same point, so writes to a path overwrite it.

    Args:
        path: Document path (e.g., "projects/p1/characters/c1")

    Returns:
        Integer point ID for Qdrant storage
    """
    # Use SHA256 hash and take first 8 bytes as unsigned integer
    hash_digest = hashlib.sha256(path.encode('utf-8')).digest()
    return int.from_bytes(hash_digest[:8], byteorder='big', signed=False)


def normalize_path(path: str) -> str:
    """Strip surrounding slashes and reject empty segments"""
    stripped = path.strip().strip('/')
    if not stripped:
        raise ValueError('Path cannot be empty')
    segments = stripped.split('/')
    if any(not segment.strip() for segment in segments):
        raise ValueError(f'Path has an empty segment: {path!r}')
    return '/'.join(segments)


def split_document_path(path: str) -> Tuple[str, str]:
    """Split a document path into (parent collection path, document id)"""
    path = normalize_path(path)
    if '/' not in path:
        raise ValueError(f'Not a document path: {path!r}')
    parent, doc_id = path.rsplit('/', 1)
    return parent, doc_id


def ancestors_of(path: str) -> List[str]:
    """
    Every proper prefix of a path.

    >>> ancestors_of("projects/p1/characters/c1")
    ['projects', 'projects/p1', 'projects/p1/characters']
    """
    segments = normalize_path(path).split('/')
    return ['/'.join(segments[:i]) for i in range(1, len(segments))]


def deep_merge(existing: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """Merge incoming fields into existing ones, recursing into nested mappings"""
    merged = copy.deepcopy(existing)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def document_size(data: Dict[str, Any]) -> int:
    """Encoded size of a document body in bytes"""
    return len(json.dumps(data, ensure_ascii=False, separators=(',', ':')).encode('utf-8'))


def fingerprint(value: Any) -> str:
    """Stable content hash used to detect changes between reads"""
    encoded = json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(encoded.encode('utf-8')).hexdigest()
