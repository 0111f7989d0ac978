# src/store/redis_store.py — v1
"""Redis-based object store (STORE_BACKEND=redis).

Requires 'redis' package: pip install seqctl[redis].
Suitable when several controller processes share one store: updates and
removals of existing objects WATCH the object key, re-check its resource
version and write inside MULTI/EXEC, so a concurrent writer in another
process turns into a ConflictError instead of a lost update.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from seqctl.core.errors import ConflictError
from seqctl.store.base_store import BaseObjectStore

logger = logging.getLogger(__name__)

_KEY_PREFIX = "seqctl:obj:"
_INDEX_KEY = "seqctl:obj:__index__"


class RedisObjectStore(BaseObjectStore):
    """Redis-backed object store."""

    def __init__(self, redis_url: str, **kwargs: Any) -> None:
        try:
            import redis
        except ImportError as e:
            raise ImportError(
                "redis package required: pip install seqctl[redis]"
            ) from e

        super().__init__(**kwargs)
        self._client = redis.Redis.from_url(redis_url, decode_responses=True)
        self._watch_error: type[Exception] = redis.WatchError

    async def _read(self, kind: str, namespace: str, name: str) -> dict[str, Any] | None:
        data = self._client.get(_redis_key(kind, namespace, name))
        if data is None:
            return None
        return json.loads(data)

    async def _write(self, kind: str, namespace: str, name: str, data: dict[str, Any]) -> None:
        self._client.set(_redis_key(kind, namespace, name), json.dumps(data, sort_keys=True))
        # Maintain a set of all object ids for scans
        self._client.sadd(_INDEX_KEY, _index_member(kind, namespace, name))

    async def _remove(self, kind: str, namespace: str, name: str) -> None:
        self._client.delete(_redis_key(kind, namespace, name))
        self._client.srem(_INDEX_KEY, _index_member(kind, namespace, name))

    async def _replace(
        self, kind: str, namespace: str, name: str, data: dict[str, Any], expected_version: str | None
    ) -> None:
        payload = json.dumps(data, sort_keys=True)
        member = _index_member(kind, namespace, name)

        def queue(pipe: Any) -> None:
            pipe.set(_redis_key(kind, namespace, name), payload)
            pipe.sadd(_INDEX_KEY, member)

        self._checked_transaction(kind, namespace, name, expected_version, queue)

    async def _discard(self, kind: str, namespace: str, name: str, expected_version: str | None) -> None:
        member = _index_member(kind, namespace, name)

        def queue(pipe: Any) -> None:
            pipe.delete(_redis_key(kind, namespace, name))
            pipe.srem(_INDEX_KEY, member)

        self._checked_transaction(kind, namespace, name, expected_version, queue)

    def _checked_transaction(
        self,
        kind: str,
        namespace: str,
        name: str,
        expected_version: str | None,
        queue: Callable[[Any], None],
    ) -> None:
        """Run ``queue``'s commands only if the object is still at ``expected_version``.

        Raises:
            ConflictError: If the stored version differs, or the key changed
                between WATCH and EXEC.
        """
        key = _redis_key(kind, namespace, name)
        with self._client.pipeline() as pipe:
            try:
                pipe.watch(key)
                raw = pipe.get(key)
                stored = json.loads(raw)["metadata"].get("resource_version") if raw is not None else None
                if stored != expected_version:
                    raise ConflictError(
                        kind, namespace, name,
                        f"resource version {expected_version!r} is stale (stored {stored!r})",
                    )
                pipe.multi()
                queue(pipe)
                pipe.execute()
            except self._watch_error as e:
                logger.debug("Concurrent write to %s detected", key)
                raise ConflictError(kind, namespace, name, "object changed during write") from e

    async def _scan(self, kind: str | None, namespace: str | None) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for member in sorted(self._client.smembers(_INDEX_KEY)):
            k, ns, name = member.split("/", 2)
            if (kind is not None and k != kind) or (namespace is not None and ns != namespace):
                continue
            data = await self._read(k, ns, name)
            if data is not None:
                rows.append(data)
        return rows

    async def close(self) -> None:
        """Close the Redis connection."""
        self._client.close()


def _redis_key(kind: str, namespace: str, name: str) -> str:
    return f"{_KEY_PREFIX}{kind}:{namespace}:{name}"


def _index_member(kind: str, namespace: str, name: str) -> str:
    return f"{kind}/{namespace}/{name}"
