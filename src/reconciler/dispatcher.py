# src/reconciler/dispatcher.py — v1
"""Event dispatcher — turns store events into reconcile invocations.

Sequence events enqueue their own key; Channel and Subscription events
enqueue the Sequence named by their controller owner reference. A key is
queued at most once at a time and invocations run one after another, so
no two invocations for the same Sequence ever overlap. Failed invocations
are re-delivered until max_attempts is reached.
"""

from __future__ import annotations

import logging
from collections import deque

from seqctl.apis.models import Sequence
from seqctl.core.models import Resource
from seqctl.reconciler.ownership import OwnershipGraph, node_id
from seqctl.reconciler.sequence_reconciler import ReconcileResult, SequenceReconciler
from seqctl.store.base_store import BaseObjectStore, WatchEvent

logger = logging.getLogger(__name__)


def route_event(obj: Resource, ownership: OwnershipGraph | None = None) -> str | None:
    """Return the Sequence key an object change should wake up, if any."""
    if obj.KIND == Sequence.KIND:
        return obj.key
    ref = obj.metadata.controller_ref()
    if ref is not None and ref.kind == Sequence.KIND:
        return f"{obj.metadata.namespace}/{ref.name}"
    if ownership is not None:
        owner = ownership.owner_of(node_id(obj))
        if owner is not None and owner[0] == Sequence.KIND:
            return f"{owner[1]}/{owner[2]}"
    return None


class Dispatcher:
    """Work queue feeding a SequenceReconciler.

    Args:
        store: Store to watch; the dispatcher registers itself as listener.
        reconciler: Reconciler invoked per queued key.
        max_attempts: Deliveries per key before giving up until the next event.
    """

    def __init__(
        self,
        store: BaseObjectStore,
        reconciler: SequenceReconciler,
        max_attempts: int = 5,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._store = store
        self._reconciler = reconciler
        self._max_attempts = max_attempts
        self._queue: deque[str] = deque()
        self._queued: set[str] = set()
        self._attempts: dict[str, int] = {}
        self._store.add_listener(self.on_event)

    def on_event(self, event: WatchEvent) -> None:
        key = route_event(event.obj, self._reconciler.ownership)
        if key is not None:
            logger.debug("%s %s %s -> %s", event.type, event.obj.KIND, event.obj.key, key)
            self.enqueue(key)

    def enqueue(self, key: str) -> None:
        if key in self._queued:
            return
        self._queued.add(key)
        self._queue.append(key)

    @property
    def pending(self) -> list[str]:
        return list(self._queue)

    async def process_next(self) -> ReconcileResult | None:
        """Run one queued key; returns None when the queue is empty."""
        if not self._queue:
            return None
        key = self._queue.popleft()
        self._queued.discard(key)
        result = await self._reconciler.reconcile(key)
        if result.ok:
            self._attempts.pop(key, None)
            return result

        attempts = self._attempts.get(key, 0) + 1
        if attempts < self._max_attempts:
            self._attempts[key] = attempts
            logger.warning(
                "Reconcile of %s failed (attempt %d/%d), re-queuing: %s",
                key, attempts, self._max_attempts, result.error,
            )
            self.enqueue(key)
        else:
            self._attempts.pop(key, None)
            logger.error(
                "Reconcile of %s failed %d times, giving up until next change: %s",
                key, attempts, result.error,
            )
        return result

    async def run_until_idle(self, max_invocations: int = 1000) -> list[ReconcileResult]:
        """Drain the queue, including keys enqueued by the invocations themselves."""
        results: list[ReconcileResult] = []
        while self._queue:
            if len(results) >= max_invocations:
                logger.error(
                    "Stopping after %d invocations with %d key(s) still queued",
                    len(results), len(self._queue),
                )
                break
            result = await self.process_next()
            if result is not None:
                results.append(result)
        return results

    def close(self) -> None:
        self._store.remove_listener(self.on_event)
