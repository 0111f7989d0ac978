# src/tracking/models.py — v1
"""Tracking models: one record per object-store call, plus a summary."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

StoreOp = Literal["get", "list", "create", "update", "delete"]

WRITE_OPS: frozenset[str] = frozenset({"create", "update", "delete"})


class StoreCallRecord(BaseModel):
    """Individual object-store call log entry."""

    call_id: str
    timestamp: datetime
    op: StoreOp
    kind: str
    namespace: str
    name: str
    status: Literal["success", "not_found", "conflict", "failed"]
    latency_ms: float
    reconcile_key: str | None = None

    @property
    def is_write(self) -> bool:
        return self.op in WRITE_OPS


class StoreCallStats(BaseModel):
    """Aggregated counts over a set of store calls."""

    total_calls: int = 0
    reads: int = 0
    writes: int = 0
    failures: int = 0
    by_op: dict[str, int] = Field(default_factory=dict)
    by_kind: dict[str, int] = Field(default_factory=dict)
    avg_latency_ms: float = 0.0
