# src/store/base_store.py — v1
"""Abstract object store with optimistic concurrency and owner cascade.

Backends implement four raw primitives (_read, _write, _remove, _scan) over
JSON-compatible dicts. Object semantics are shared and live here:

  - create assigns uid, resource_version "1", generation 1 and a creation
    timestamp; a taken name raises AlreadyExistsError.
  - update requires the caller's resource_version to match the stored one,
    otherwise ConflictError. The version is bumped on every write; the
    generation only when the spec changed.
  - delete of an object holding finalizers only stamps deletion_timestamp;
    the object is removed once an update leaves it with no finalizers.
  - removing an object removes every object whose owner reference points
    at its uid.
  - every change is announced to listeners as a WatchEvent.

Writes of existing objects go through _replace and _discard, which carry
the version the write was checked against so a backend shared between
processes can repeat the check atomically.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, TypeVar

from seqctl.apis.models import RESOURCE_KINDS
from seqctl.core.errors import AlreadyExistsError, ConflictError, NotFoundError
from seqctl.core.models import Resource
from seqctl.tracking.call_logger import StoreCallLogger
from seqctl.tracking.models import StoreOp

logger = logging.getLogger(__name__)

ResourceT = TypeVar("ResourceT", bound=Resource)


@dataclass(frozen=True)
class WatchEvent:
    """Change notification delivered to store listeners."""

    type: Literal["ADDED", "MODIFIED", "DELETED"]
    obj: Resource


Listener = Callable[[WatchEvent], None]


class BaseObjectStore(ABC):
    """Unified interface for object storage backends."""

    def __init__(
        self,
        call_logger: StoreCallLogger | None = None,
        kinds: Mapping[str, type[Resource]] | None = None,
    ) -> None:
        self._call_logger = call_logger
        self._kinds = dict(kinds or RESOURCE_KINDS)
        self._listeners: list[Listener] = []
        self._lock = asyncio.Lock()

    # --- backend primitives ---

    @abstractmethod
    async def _read(self, kind: str, namespace: str, name: str) -> dict[str, Any] | None:
        """Return the stored dict for an object, or None."""

    @abstractmethod
    async def _write(self, kind: str, namespace: str, name: str, data: dict[str, Any]) -> None:
        """Insert or replace the stored dict for an object."""

    @abstractmethod
    async def _remove(self, kind: str, namespace: str, name: str) -> None:
        """Drop an object; a missing object is not an error."""

    @abstractmethod
    async def _scan(self, kind: str | None, namespace: str | None) -> list[dict[str, Any]]:
        """Return stored dicts, optionally filtered by kind and namespace."""

    async def _replace(
        self, kind: str, namespace: str, name: str, data: dict[str, Any], expected_version: str | None
    ) -> None:
        """Overwrite an object still stored at ``expected_version``.

        The version was already checked under the store lock. Backends
        shared between processes override this to re-check and write in one
        atomic step, raising ConflictError when another writer got there first.
        """
        await self._write(kind, namespace, name, data)

    async def _discard(self, kind: str, namespace: str, name: str, expected_version: str | None) -> None:
        """Remove an object still stored at ``expected_version``; see _replace."""
        await self._remove(kind, namespace, name)

    async def close(self) -> None:
        """Release backend resources."""

    # --- public API ---

    @property
    def call_logger(self) -> StoreCallLogger | None:
        return self._call_logger

    def add_listener(self, listener: Listener) -> None:
        """Register a callback invoked after every change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def get(self, kind: type[ResourceT], namespace: str, name: str) -> ResourceT:
        """Fetch one object.

        Raises:
            NotFoundError: If the object does not exist.
        """
        with self._tracked("get", kind.KIND, namespace, name):
            data = await self._read(kind.KIND, namespace, name)
            if data is None:
                raise NotFoundError(kind.KIND, namespace, name)
            return kind.model_validate(copy.deepcopy(data))

    async def list(self, kind: type[ResourceT], namespace: str | None = None) -> list[ResourceT]:
        """List objects of a kind, sorted by namespace and name."""
        with self._tracked("list", kind.KIND, namespace or "", ""):
            rows = await self._scan(kind.KIND, namespace)
            objs = [kind.model_validate(copy.deepcopy(row)) for row in rows]
        return sorted(objs, key=lambda o: (o.metadata.namespace, o.metadata.name))

    async def create(self, obj: ResourceT) -> ResourceT:
        """Persist a new object and return the stored copy.

        Raises:
            AlreadyExistsError: If the name is taken within the namespace.
        """
        meta = obj.metadata
        with self._tracked("create", obj.KIND, meta.namespace, meta.name):
            async with self._lock:
                if await self._read(obj.KIND, meta.namespace, meta.name) is not None:
                    raise AlreadyExistsError(obj.KIND, meta.namespace, meta.name)
                stored = obj.model_copy(deep=True)
                stored.kind = obj.KIND
                stored.metadata.uid = meta.uid or str(uuid.uuid4())
                stored.metadata.resource_version = "1"
                stored.metadata.generation = 1
                stored.metadata.creation_timestamp = _utcnow()
                _sync_spec_generation(stored)
                await self._write(obj.KIND, meta.namespace, meta.name, _dump(stored))
            self._notify(WatchEvent("ADDED", stored))
            return stored.model_copy(deep=True)

    async def update(self, obj: ResourceT) -> ResourceT:
        """Replace an object, checking its resource_version first.

        Returns the stored copy. When the update leaves a deleted object
        without finalizers the object is removed and the returned copy is
        the last state it had.

        Raises:
            NotFoundError: If the object does not exist.
            ConflictError: If obj.metadata.resource_version is stale.
        """
        meta = obj.metadata
        with self._tracked("update", obj.KIND, meta.namespace, meta.name):
            async with self._lock:
                current_data = await self._read(obj.KIND, meta.namespace, meta.name)
                if current_data is None:
                    raise NotFoundError(obj.KIND, meta.namespace, meta.name)
                current = type(obj).model_validate(copy.deepcopy(current_data))
                if meta.resource_version != current.metadata.resource_version:
                    raise ConflictError(
                        obj.KIND,
                        meta.namespace,
                        meta.name,
                        f"resource version {meta.resource_version!r} is stale "
                        f"(stored {current.metadata.resource_version!r})",
                    )
                stored = obj.model_copy(deep=True)
                stored.kind = obj.KIND
                stored.metadata.uid = current.metadata.uid
                stored.metadata.creation_timestamp = current.metadata.creation_timestamp
                stored.metadata.resource_version = _next_version(current.metadata.resource_version)
                stored.metadata.generation = current.metadata.generation
                if _spec_dump(stored) != _spec_dump(current):
                    stored.metadata.generation += 1
                _sync_spec_generation(stored)
                # deletion cannot be undone once requested
                if current.metadata.deletion_timestamp is not None:
                    stored.metadata.deletion_timestamp = current.metadata.deletion_timestamp
                expected = current.metadata.resource_version
                if stored.metadata.deletion_timestamp is not None and not stored.metadata.finalizers:
                    events = await self._remove_cascade(stored, expected)
                else:
                    await self._replace(obj.KIND, meta.namespace, meta.name, _dump(stored), expected)
                    events = [WatchEvent("MODIFIED", stored)]
            for event in events:
                self._notify(event)
            return stored.model_copy(deep=True)

    async def delete(self, kind: type[Resource], namespace: str, name: str) -> None:
        """Request deletion of an object.

        Objects holding finalizers are only marked with a deletion timestamp;
        the owning controller removes its finalizer to complete the delete.

        Raises:
            NotFoundError: If the object does not exist.
        """
        with self._tracked("delete", kind.KIND, namespace, name):
            async with self._lock:
                data = await self._read(kind.KIND, namespace, name)
                if data is None:
                    raise NotFoundError(kind.KIND, namespace, name)
                events = await self._delete_object(kind.model_validate(copy.deepcopy(data)))
            for event in events:
                self._notify(event)

    # --- internals ---

    async def _delete_object(self, obj: Resource) -> list[WatchEvent]:
        meta = obj.metadata
        if meta.finalizers:
            if meta.deletion_timestamp is not None:
                return []
            expected = meta.resource_version
            meta.deletion_timestamp = _utcnow()
            meta.resource_version = _next_version(expected)
            await self._replace(obj.KIND, meta.namespace, meta.name, _dump(obj), expected)
            return [WatchEvent("MODIFIED", obj)]
        return await self._remove_cascade(obj, meta.resource_version)

    async def _remove_cascade(self, obj: Resource, expected_version: str | None) -> list[WatchEvent]:
        meta = obj.metadata
        await self._discard(obj.KIND, meta.namespace, meta.name, expected_version)
        events = [WatchEvent("DELETED", obj)]
        for row in await self._scan(None, meta.namespace):
            owners = row.get("metadata", {}).get("owner_references", [])
            if not any(ref.get("uid") == meta.uid for ref in owners):
                continue
            cls = self._kinds.get(row.get("kind", ""))
            if cls is None:
                logger.warning("Skipping cascade of unknown kind %r", row.get("kind"))
                continue
            child = cls.model_validate(row)
            logger.debug("Cascading delete %s %s from %s", child.KIND, child.key, obj.key)
            events.extend(await self._delete_object(child))
        return events

    def _notify(self, event: WatchEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    @contextmanager
    def _tracked(self, op: StoreOp, kind: str, namespace: str, name: str) -> Iterator[None]:
        start = time.monotonic()
        status = "success"
        try:
            yield
        except NotFoundError:
            status = "not_found"
            raise
        except ConflictError:
            status = "conflict"
            raise
        except Exception:
            status = "failed"
            raise
        finally:
            if self._call_logger is not None:
                self._call_logger.record(
                    op, kind, namespace, name, status, (time.monotonic() - start) * 1000
                )


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dump(obj: Resource) -> dict[str, Any]:
    return obj.model_dump(mode="json")


def _spec_dump(obj: Resource) -> dict[str, Any] | None:
    spec = getattr(obj, "spec", None)
    if spec is None:
        return None
    return spec.model_dump(mode="json", exclude={"generation"})


def _sync_spec_generation(obj: Resource) -> None:
    """Mirror metadata.generation into spec.generation for kinds that carry it."""
    spec = getattr(obj, "spec", None)
    if spec is not None and hasattr(spec, "generation"):
        spec.generation = obj.metadata.generation


def _next_version(version: str | None) -> str:
    try:
        return str(int(version or "0") + 1)
    except ValueError:
        return "1"
