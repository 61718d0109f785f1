"""
Factory: return the RecordStore selected by settings.RECORD_STORE.

Adding a backend only needs:
  1. a new XxxRecordStore(RecordStore) class
  2. one line in _build_registry below
No change to the orchestrator, services or tasks.
"""

import logging
from threading import Lock

from django.conf import settings

from .base import RecordStore

logger = logging.getLogger(__name__)

_instance: RecordStore | None = None
_instance_lock = Lock()


def _build_registry() -> dict[str, type[RecordStore]]:
    # lazy import keeps the ORM out of module import time
    from .memory import InMemoryRecordStore
    from .orm import DjangoRecordStore

    return {
        "django": DjangoRecordStore,
        "memory": InMemoryRecordStore,
    }


def get_record_store() -> RecordStore:
    """
    Return the process-wide RecordStore for settings.RECORD_STORE.

    settings.RECORD_STORE comes from the RECORD_STORE env var (default
    "django"). The instance is shared so the in-memory backend keeps its data
    between calls.

    Raises:
        ValueError: unknown RECORD_STORE
    """
    global _instance
    with _instance_lock:
        if _instance is not None:
            return _instance

        backend = getattr(settings, "RECORD_STORE", "django")
        registry = _build_registry()
        store_cls = registry.get(backend)

        if store_cls is None:
            raise ValueError(
                f"Unknown RECORD_STORE: {backend!r}. "
                f"Known backends: {list(registry.keys())}"
            )

        if backend == "memory":
            _instance = store_cls(timeout=getattr(settings, "RECORD_STORE_TIMEOUT_SECONDS", 5.0))
        else:
            _instance = store_cls()
        logger.info("Record store backend: %s", backend)
        return _instance


def reset_record_store() -> None:
    """Drop the shared instance so the next call rebuilds it from settings."""
    global _instance
    with _instance_lock:
        _instance = None
