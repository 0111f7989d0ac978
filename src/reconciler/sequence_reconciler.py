# src/reconciler/sequence_reconciler.py — v1
"""Sequence reconciler — converges a Sequence's children and publishes status.

One invocation:
  1. Fetch the Sequence. Gone: success, nothing to do. Fetch failure: error.
  2. Deletion requested: drop our finalizer and stop.
  3. Initialize missing conditions to Unknown.
  4. Converge each step's Channel then Subscription, in spec order. The
     first failure marks Provisioned=False and aborts the remaining steps;
     children already converged stay in place.
  5. All steps converged: Provisioned=True, add our finalizer.
Then, whatever the outcome, the status publisher re-reads the Sequence,
recomputes the address from the step-0 channel and writes our finalizer
and the status back only if they differ from what is stored.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Literal

from seqctl.apis.models import (
    REASON_NOT_PROVISIONED,
    Channel,
    Sequence,
)
from seqctl.config.settings import Settings
from seqctl.core.errors import (
    ChildProvisionError,
    ConflictError,
    NotFoundError,
    StatusWriteError,
)
from seqctl.core.models import Condition, split_key
from seqctl.logging.context import reconcile_scope, set_step_context
from seqctl.reconciler.builder import build_step, step_name
from seqctl.reconciler.converge import (
    ChildReconciler,
    channel_reconciler,
    semantic_equal,
    subscription_reconciler,
)
from seqctl.reconciler.finalizers import add_finalizer, has_finalizer, remove_finalizer
from seqctl.reconciler.ownership import OwnershipGraph, node_id
from seqctl.store.base_store import BaseObjectStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """Verdict of one reconcile invocation."""

    key: str
    outcome: Literal["success", "error"]
    error: Exception | None = None
    conditions: tuple[Condition, ...] = field(default_factory=tuple)
    hostname: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome == "success"


class SequenceReconciler:
    """Drives Sequence resources toward their desired children.

    Args:
        store: Object store holding Sequences and their children.
        settings: Application settings. Loaded from .env if None.
        ownership: Parent → child relation to maintain. A fresh one if None.
    """

    def __init__(
        self,
        store: BaseObjectStore,
        settings: Settings | None = None,
        ownership: OwnershipGraph | None = None,
    ) -> None:
        settings = settings or Settings()
        self._store = store
        self._finalizer = settings.finalizer_name
        self._default_provisioner = settings.default_provisioner
        self._ownership = ownership if ownership is not None else OwnershipGraph()
        self._channels: ChildReconciler[Channel] = channel_reconciler()
        self._subscriptions = subscription_reconciler()

    @property
    def ownership(self) -> OwnershipGraph:
        return self._ownership

    @property
    def finalizer(self) -> str:
        return self._finalizer

    async def reconcile(self, key: str) -> ReconcileResult:
        """Run one invocation for the Sequence at ``key`` ("namespace/name")."""
        namespace, name = split_key(key)
        with reconcile_scope(key, uuid.uuid4().hex[:12]):
            return await self._run(key, namespace, name)

    async def _run(self, key: str, namespace: str, name: str) -> ReconcileResult:
        logger.info("Reconciling sequence %s", key)
        try:
            sequence = await self._store.get(Sequence, namespace, name)
        except NotFoundError:
            logger.info("Sequence %s not found; nothing to do", key)
            self._ownership.forget((Sequence.KIND, namespace, name))
            return ReconcileResult(key, "success")
        except Exception as e:
            logger.error("Could not fetch sequence %s: %s", key, e)
            return ReconcileResult(key, "error", e)

        # Reconcile this copy, then write back status whether or not it failed.
        reconcile_error: Exception | None = None
        try:
            await self._reconcile(sequence)
        except ChildProvisionError as e:
            logger.error("Sequence %s not provisioned: %s", key, e)
            reconcile_error = e

        try:
            await self.update_status(sequence)
        except Exception as e:
            logger.warning("Failed to update sequence status: %s", e)
            status_error = e if isinstance(e, (ConflictError, StatusWriteError)) else StatusWriteError(key, e)
            return self._verdict(sequence, status_error)

        return self._verdict(sequence, reconcile_error)

    async def _reconcile(self, sequence: Sequence) -> None:
        if sequence.metadata.deletion_timestamp is not None:
            logger.info("Sequence %s is being deleted", sequence.key)
            if remove_finalizer(sequence, self._finalizer):
                logger.info("Removed finalizer %s from %s", self._finalizer, sequence.key)
            self._ownership.forget(node_id(sequence))
            return

        sequence.status.initialize_conditions()

        for i in range(len(sequence.spec.steps)):
            try:
                await self._reconcile_step(sequence, i)
            except ChildProvisionError as e:
                sequence.status.mark_not_provisioned(REASON_NOT_PROVISIONED, str(e))
                raise
            finally:
                set_step_context(None)

        sequence.status.mark_provisioned()
        add_finalizer(sequence, self._finalizer)

    async def _reconcile_step(self, sequence: Sequence, index: int) -> None:
        try:
            desired = build_step(sequence, index, self._default_provisioner)
        except ValueError as e:
            logger.error("Unable to build children for step %d: %s", index, e)
            raise ChildProvisionError(index, Channel.KIND, step_name(sequence.metadata.name, index), e) from e
        parent = node_id(sequence)

        set_step_context(index, desired.channel.KIND)
        try:
            await self._channels.reconcile(self._store, desired.channel)
        except Exception as e:
            logger.error("Unable to reconcile channel for sequence: %s", e)
            raise ChildProvisionError(index, desired.channel.KIND, desired.channel.metadata.name, e) from e
        self._ownership.record(parent, node_id(desired.channel))

        set_step_context(index, desired.subscription.KIND)
        try:
            await self._subscriptions.reconcile(self._store, desired.subscription)
        except Exception as e:
            logger.error("Unable to reconcile subscription for sequence: %s", e)
            raise ChildProvisionError(
                index, desired.subscription.KIND, desired.subscription.metadata.name, e
            ) from e
        self._ownership.record(parent, node_id(desired.subscription))

    async def update_status(self, sequence: Sequence) -> Sequence | None:
        """Publish this controller's finalizer and the status of ``sequence``.

        Changes are applied to a freshly read copy, so finalizers added by
        other controllers since ``sequence`` was read are kept.

        Returns the stored Sequence after the write (or unchanged), or None
        if it no longer exists.

        Raises:
            ConflictError: If the Sequence changed between read and write.
            ControllerError: Other store failures propagate.
        """
        meta = sequence.metadata
        try:
            fresh = await self._store.get(Sequence, meta.namespace, meta.name)
        except NotFoundError:
            logger.info("Sequence %s disappeared before status update", sequence.key)
            return None

        sequence.status.set_address(await self._first_channel_hostname(sequence))

        # Only our own token is carried over; other finalizers on the fresh
        # copy belong to other controllers.
        if has_finalizer(sequence, self._finalizer):
            updated = add_finalizer(fresh, self._finalizer)
        else:
            updated = remove_finalizer(fresh, self._finalizer)
        if not semantic_equal(fresh.status, sequence.status):
            fresh.status = sequence.status.model_copy(deep=True)
            updated = True

        if not updated:
            logger.debug("Status of %s unchanged", sequence.key)
            return fresh
        return await self._store.update(fresh)

    async def _first_channel_hostname(self, sequence: Sequence) -> str:
        meta = sequence.metadata
        try:
            channel = await self._store.get(Channel, meta.namespace, step_name(meta.name, 0))
        except NotFoundError:
            return ""
        return channel.status.address.hostname

    def _verdict(self, sequence: Sequence, error: Exception | None) -> ReconcileResult:
        return ReconcileResult(
            key=sequence.key,
            outcome="error" if error is not None else "success",
            error=error,
            conditions=tuple(c.model_copy() for c in sequence.status.conditions),
            hostname=sequence.status.address.hostname,
        )
