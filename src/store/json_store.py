# src/store/json_store.py — v1
"""JSON file-based object store (STORE_BACKEND=json).

Stores each object as an individual JSON file under
STORE_ROOT/<kind>/<namespace>/<name>.json.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from seqctl.store.base_store import BaseObjectStore

logger = logging.getLogger(__name__)


class JsonObjectStore(BaseObjectStore):
    """File-based object store using one JSON file per object."""

    def __init__(self, store_root: Path | str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._root = Path(store_root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    async def _read(self, kind: str, namespace: str, name: str) -> dict[str, Any] | None:
        path = self._object_path(kind, namespace, name)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    async def _write(self, kind: str, namespace: str, name: str, data: dict[str, Any]) -> None:
        path = self._object_path(kind, namespace, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        # write-then-rename so readers never see a partial file
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(path)

    async def _remove(self, kind: str, namespace: str, name: str) -> None:
        path = self._object_path(kind, namespace, name)
        if path.exists():
            path.unlink()

    async def _scan(self, kind: str | None, namespace: str | None) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        if not self._root.is_dir():
            return rows
        kind_glob = _safe(kind) if kind else "*"
        ns_glob = _safe(namespace) if namespace else "*"
        for path in sorted(self._root.glob(f"{kind_glob}/{ns_glob}/*.json")):
            try:
                rows.append(json.loads(path.read_text(encoding="utf-8")))
            except json.JSONDecodeError as e:
                logger.warning("Skipping unreadable object file %s: %s", path, e)
        return rows

    def _object_path(self, kind: str, namespace: str, name: str) -> Path:
        return self._root / _safe(kind) / _safe(namespace) / f"{_safe(name)}.json"


def _safe(part: str) -> str:
    return part.replace("/", "_").replace("\\", "_")
