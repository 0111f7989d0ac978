# src/store/memory_store.py — v1
"""In-process object store (STORE_BACKEND=memory, the default).

Nothing survives the process; used for tests and single-shot runs.
"""

from __future__ import annotations

import copy
from typing import Any

from seqctl.store.base_store import BaseObjectStore


class MemoryObjectStore(BaseObjectStore):
    """Dict-backed object store."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._objects: dict[tuple[str, str, str], dict[str, Any]] = {}

    async def _read(self, kind: str, namespace: str, name: str) -> dict[str, Any] | None:
        data = self._objects.get((kind, namespace, name))
        return None if data is None else copy.deepcopy(data)

    async def _write(self, kind: str, namespace: str, name: str, data: dict[str, Any]) -> None:
        self._objects[(kind, namespace, name)] = copy.deepcopy(data)

    async def _remove(self, kind: str, namespace: str, name: str) -> None:
        self._objects.pop((kind, namespace, name), None)

    async def _scan(self, kind: str | None, namespace: str | None) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(data)
            for (k, ns, _), data in sorted(self._objects.items())
            if (kind is None or k == kind) and (namespace is None or ns == namespace)
        ]
