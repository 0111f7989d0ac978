# src/store/store_factory.py — v1
"""Factory for object store instantiation."""

from __future__ import annotations

from seqctl.config.settings import Settings
from seqctl.store.base_store import BaseObjectStore
from seqctl.tracking.call_logger import StoreCallLogger


def create_object_store(
    settings: Settings | None = None,
    call_logger: StoreCallLogger | None = None,
) -> BaseObjectStore:
    """Instantiate the configured store backend.

    Args:
        settings: Application settings. Defaults to the in-memory backend.
        call_logger: Optional recorder for every store call.

    Returns:
        Configured BaseObjectStore implementation.
    """
    if settings is None or settings.store_backend == "memory":
        from seqctl.store.memory_store import MemoryObjectStore
        return MemoryObjectStore(call_logger=call_logger)

    backend = settings.store_backend
    if backend == "json":
        from seqctl.store.json_store import JsonObjectStore
        return JsonObjectStore(store_root=settings.store_root, call_logger=call_logger)

    if backend == "sqlite":
        from seqctl.store.sqlite_store import SqliteObjectStore
        db_path = settings.store_root.expanduser() / "seqctl.db"
        return SqliteObjectStore(db_path=db_path, call_logger=call_logger)

    if backend == "redis":
        from seqctl.store.redis_store import RedisObjectStore
        if not settings.store_redis_url:
            raise ValueError("STORE_REDIS_URL must be set when STORE_BACKEND=redis")
        return RedisObjectStore(redis_url=settings.store_redis_url, call_logger=call_logger)

    raise ValueError(f"Unsupported store backend: {backend!r}")
