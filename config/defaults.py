"""
Default configuration values for novascribe.

Centralized defaults that can be overridden by environment variables or config files.
"""

from typing import Any, Dict

# Global default settings
DEFAULT_SETTINGS: Dict[str, Any] = {
    # Document store (Qdrant)
    "store": {
        "url": "http://localhost:6333",
        "location": None,
        "api_key": None,
        "collection_name": "novascribe-documents",
        "timeout": 30.0,
        "max_retries": 3,
        "retry_initial_delay": 0.5,
        "retry_backoff_factor": 2.0,
        "retry_max_delay": 10.0,
        "max_document_bytes": 1024 * 1024,
        "max_batch_size": 500,
        "scroll_page_size": 256,
        "poll_interval": 2.0
    },

    # Auto-save and synchronization
    "sync": {
        "debounce_ms": 1500,
        "max_inline_image_bytes": 950 * 1024,
        "batch_delete_limit": 500,
        "default_snapshot_note": "Automatic snapshot"
    },

    # Signed-in owner for command line use
    "owner_id": None
}

# Environment variable mappings
ENV_VAR_MAPPING = {
    'NOVASCRIBE_QDRANT_URL': 'store.url',
    'NOVASCRIBE_QDRANT_LOCATION': 'store.location',
    'NOVASCRIBE_QDRANT_API_KEY': 'store.api_key',
    'NOVASCRIBE_COLLECTION': 'store.collection_name',
    'NOVASCRIBE_TIMEOUT': 'store.timeout',
    'NOVASCRIBE_MAX_RETRIES': 'store.max_retries',
    'NOVASCRIBE_MAX_BATCH_SIZE': 'store.max_batch_size',
    'NOVASCRIBE_POLL_INTERVAL': 'store.poll_interval',
    'NOVASCRIBE_DEBOUNCE_MS': 'sync.debounce_ms',
    'NOVASCRIBE_BATCH_DELETE_LIMIT': 'sync.batch_delete_limit',
    'NOVASCRIBE_OWNER': 'owner_id'
}

# Values kept as strings even when they look numeric
STRING_SETTINGS = {'store.api_key', 'store.collection_name', 'store.location', 'owner_id'}
