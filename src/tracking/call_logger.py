# src/tracking/call_logger.py — v1
"""Object-store call logging — records every get/create/update/delete.

The reconciler is judged by how many writes it issues (a repeat invocation
on unchanged input must issue none), so the store reports each call here
when a logger is attached.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

from seqctl.logging.context import get_context
from seqctl.tracking.models import StoreCallRecord, StoreCallStats, StoreOp

logger = logging.getLogger(__name__)


class StoreCallLogger:
    """Accumulates store call records for later inspection."""

    def __init__(self) -> None:
        self._records: list[StoreCallRecord] = []

    def record(
        self,
        op: StoreOp,
        kind: str,
        namespace: str,
        name: str,
        status: str = "success",
        latency_ms: float = 0.0,
    ) -> StoreCallRecord:
        """Record a store call.

        Args:
            op: Store operation (get, list, create, update, delete).
            kind: Resource kind touched.
            namespace: Object namespace.
            name: Object name ("" for list calls).
            status: Outcome (success, not_found, conflict, failed).
            latency_ms: Wall time spent in the backend.

        Returns:
            The recorded StoreCallRecord.
        """
        record = StoreCallRecord(
            call_id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            op=op,
            kind=kind,
            namespace=namespace,
            name=name,
            status=status,  # type: ignore[arg-type]
            latency_ms=latency_ms,
            reconcile_key=get_context().reconcile_key,
        )
        self._records.append(record)
        logger.debug(
            "store %s %s %s/%s -> %s (%.2fms)",
            op, kind, namespace, name, status, latency_ms,
        )
        return record

    @property
    def records(self) -> list[StoreCallRecord]:
        """All recorded calls."""
        return list(self._records)

    @property
    def total_calls(self) -> int:
        return len(self._records)

    @property
    def writes(self) -> list[StoreCallRecord]:
        """Recorded create/update/delete calls."""
        return [r for r in self._records if r.is_write]

    @property
    def reads(self) -> list[StoreCallRecord]:
        return [r for r in self._records if not r.is_write]

    def mark(self) -> int:
        """Return a position usable with since() to scope a window of calls."""
        return len(self._records)

    def since(self, position: int) -> list[StoreCallRecord]:
        return self._records[position:]

    def reset(self) -> None:
        self._records.clear()

    def stats(self) -> StoreCallStats:
        """Aggregate the recorded calls."""
        by_op: dict[str, int] = {}
        by_kind: dict[str, int] = {}
        for r in self._records:
            by_op[r.op] = by_op.get(r.op, 0) + 1
            by_kind[r.kind] = by_kind.get(r.kind, 0) + 1
        total = len(self._records)
        return StoreCallStats(
            total_calls=total,
            reads=len(self.reads),
            writes=len(self.writes),
            failures=sum(1 for r in self._records if r.status == "failed"),
            by_op=by_op,
            by_kind=by_kind,
            avg_latency_ms=(
                sum(r.latency_ms for r in self._records) / total if total else 0.0
            ),
        )

    def save(self, path: Path) -> None:
        """Append all records to a JSON Lines file."""
        path = path.expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            for record in self._records:
                f.write(json.dumps(record.model_dump(mode="json")) + "\n")
