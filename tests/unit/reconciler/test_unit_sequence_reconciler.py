# tests/unit/reconciler/test_unit_sequence_reconciler.py — v1
"""Tests for reconciler/sequence_reconciler.py — full invocations on the memory store."""

from __future__ import annotations

import pytest

from seqctl.apis.models import (
    REASON_EMPTY_HOSTNAME,
    REASON_NOT_PROVISIONED,
    SEQUENCE_CONDITION_ADDRESSABLE,
    SEQUENCE_CONDITION_PROVISIONED,
    SEQUENCE_CONDITION_READY,
    Channel,
    Sequence,
    Subscription,
)
from seqctl.core.errors import (
    ChildProvisionError,
    ConflictError,
    ControllerError,
    StatusWriteError,
)
from seqctl.core.models import ConditionStatus
from seqctl.reconciler.dispatcher import Dispatcher
from seqctl.reconciler.sequence_reconciler import ReconcileResult, SequenceReconciler
from seqctl.store.memory_store import MemoryObjectStore


class _FailingStore(MemoryObjectStore):
    """Memory store that rejects writes for chosen kinds."""

    def __init__(self, fail_create: str | None = None, fail_update: str | None = None,
                 error: Exception | None = None, **kwargs):
        super().__init__(**kwargs)
        self.fail_create = fail_create
        self.fail_update = fail_update
        self.error = error or ControllerError("backend unavailable")

    async def create(self, obj):
        if obj.KIND == self.fail_create:
            raise self.error
        return await super().create(obj)

    async def update(self, obj):
        if obj.KIND == self.fail_update:
            raise self.error
        return await super().update(obj)


class _UidlessStore(MemoryObjectStore):
    """Memory store that hands out Sequences without a uid."""

    async def get(self, kind, namespace, name):
        obj = await super().get(kind, namespace, name)
        if obj.KIND == Sequence.KIND:
            obj.metadata.uid = None
        return obj


def _condition(seq: Sequence, cond_type: str):
    return seq.status.get_condition(cond_type)


async def _publish_hostname(store, name: str, hostname: str) -> None:
    channel = await store.get(Channel, "default", name)
    channel.status.address.hostname = hostname
    await store.update(channel)


class TestReconcileResult:
    def test_ok(self):
        result = ReconcileResult("default/s", "success")
        assert result.ok
        assert result.error is None

    def test_error(self):
        err = RuntimeError("x")
        result = ReconcileResult("default/s", "error", err)
        assert not result.ok
        assert result.error is err


class TestMissingSequence:
    @pytest.mark.asyncio
    async def test_not_found_is_success(self, reconciler, call_logger):
        result = await reconciler.reconcile("default/missing")
        assert result.ok
        assert call_logger.writes == []

    @pytest.mark.asyncio
    async def test_invalid_key(self, reconciler):
        with pytest.raises(ValueError):
            await reconciler.reconcile("default/")


class TestZeroSteps:
    @pytest.mark.asyncio
    async def test_provisioned_but_not_ready(self, store, reconciler, empty_sequence):
        await store.create(empty_sequence)
        result = await reconciler.reconcile("default/empty")
        assert result.ok
        assert await store.list(Channel) == []
        assert await store.list(Subscription) == []

        seq = await store.get(Sequence, "default", "empty")
        assert _condition(seq, SEQUENCE_CONDITION_PROVISIONED).is_true()
        addressable = _condition(seq, SEQUENCE_CONDITION_ADDRESSABLE)
        assert addressable.is_false()
        assert addressable.reason == REASON_EMPTY_HOSTNAME
        assert not _condition(seq, SEQUENCE_CONDITION_READY).is_true()
        assert seq.metadata.finalizers == ["sequence-controller"]


class TestTwoSteps:
    @pytest.mark.asyncio
    async def test_children_chained(self, store, reconciler, sample_sequence, reply_channel):
        created = await store.create(sample_sequence)
        result = await reconciler.reconcile("default/pipeline")
        assert result.ok

        channels = await store.list(Channel)
        subs = await store.list(Subscription)
        assert [c.metadata.name for c in channels] == ["pipeline-step-0", "pipeline-step-1"]
        assert [s.metadata.name for s in subs] == ["pipeline-step-0", "pipeline-step-1"]
        for child in [*channels, *subs]:
            ref = child.metadata.controller_ref()
            assert ref.kind == "Sequence"
            assert ref.uid == created.metadata.uid
        assert subs[0].spec.channel.name == "pipeline-step-0"
        assert subs[0].spec.reply.channel.name == "pipeline-step-1"
        assert subs[1].spec.channel.name == "pipeline-step-1"
        assert subs[1].spec.reply.channel == reply_channel
        assert channels[0].spec.provisioner.name == "in-memory-channel"

    @pytest.mark.asyncio
    async def test_rerun_issues_no_writes(self, store, reconciler, call_logger, sample_sequence):
        await store.create(sample_sequence)
        await reconciler.reconcile("default/pipeline")
        pos = call_logger.mark()
        result = await reconciler.reconcile("default/pipeline")
        assert result.ok
        assert [r for r in call_logger.since(pos) if r.is_write] == []

    @pytest.mark.asyncio
    async def test_first_run_writes(self, store, reconciler, call_logger, sample_sequence):
        await store.create(sample_sequence)
        pos = call_logger.mark()
        await reconciler.reconcile("default/pipeline")
        writes = [(r.op, r.kind) for r in call_logger.since(pos) if r.is_write]
        assert writes.count(("create", "Channel")) == 2
        assert writes.count(("create", "Subscription")) == 2
        assert writes[-1] == ("update", "Sequence")
        assert len(writes) == 5

    @pytest.mark.asyncio
    async def test_ownership_recorded(self, store, reconciler, sample_sequence):
        await store.create(sample_sequence)
        await reconciler.reconcile("default/pipeline")
        children = reconciler.ownership.children_of(("Sequence", "default", "pipeline"))
        assert ("Channel", "default", "pipeline-step-0") in children
        assert ("Subscription", "default", "pipeline-step-1") in children
        assert len(children) == 4

    @pytest.mark.asyncio
    async def test_conditions_in_result(self, store, reconciler, sample_sequence):
        await store.create(sample_sequence)
        result = await reconciler.reconcile("default/pipeline")
        by_type = {c.type: c.status for c in result.conditions}
        assert by_type == {
            SEQUENCE_CONDITION_PROVISIONED: ConditionStatus.TRUE,
            SEQUENCE_CONDITION_ADDRESSABLE: ConditionStatus.FALSE,
            SEQUENCE_CONDITION_READY: ConditionStatus.FALSE,
        }
        assert result.hostname == ""

    @pytest.mark.asyncio
    async def test_stable_transition_times(self, store, reconciler, sample_sequence):
        await store.create(sample_sequence)
        await reconciler.reconcile("default/pipeline")
        before = (await store.get(Sequence, "default", "pipeline")).status.conditions
        await reconciler.reconcile("default/pipeline")
        after = (await store.get(Sequence, "default", "pipeline")).status.conditions
        assert [c.last_transition_time for c in before] == [c.last_transition_time for c in after]


class TestAddress:
    @pytest.mark.asyncio
    async def test_ready_once_first_channel_has_hostname(self, store, reconciler, sample_sequence):
        await store.create(sample_sequence)
        await reconciler.reconcile("default/pipeline")
        await _publish_hostname(store, "pipeline-step-0", "pipeline-step-0.default.svc")

        result = await reconciler.reconcile("default/pipeline")
        assert result.hostname == "pipeline-step-0.default.svc"
        seq = await store.get(Sequence, "default", "pipeline")
        assert seq.status.address.hostname == "pipeline-step-0.default.svc"
        assert _condition(seq, SEQUENCE_CONDITION_ADDRESSABLE).is_true()
        assert seq.status.is_ready()

    @pytest.mark.asyncio
    async def test_only_first_channel_counts(self, store, reconciler, sample_sequence):
        await store.create(sample_sequence)
        await reconciler.reconcile("default/pipeline")
        await _publish_hostname(store, "pipeline-step-1", "pipeline-step-1.default.svc")
        result = await reconciler.reconcile("default/pipeline")
        assert result.hostname == ""
        seq = await store.get(Sequence, "default", "pipeline")
        assert _condition(seq, SEQUENCE_CONDITION_ADDRESSABLE).is_false()

    @pytest.mark.asyncio
    async def test_hostname_update_does_not_touch_children(self, store, reconciler, call_logger, sample_sequence):
        await store.create(sample_sequence)
        await reconciler.reconcile("default/pipeline")
        await _publish_hostname(store, "pipeline-step-0", "host")
        pos = call_logger.mark()
        await reconciler.reconcile("default/pipeline")
        assert [(r.op, r.kind) for r in call_logger.since(pos) if r.is_write] == [("update", "Sequence")]


class TestDeletion:
    @pytest.mark.asyncio
    async def test_finalizer_released(self, store, reconciler, call_logger, sample_sequence):
        await store.create(sample_sequence)
        await reconciler.reconcile("default/pipeline")
        await store.delete(Sequence, "default", "pipeline")
        held = await store.get(Sequence, "default", "pipeline")
        assert held.metadata.deletion_timestamp is not None

        pos = call_logger.mark()
        result = await reconciler.reconcile("default/pipeline")
        assert result.ok
        writes = [(r.op, r.kind) for r in call_logger.since(pos) if r.is_write]
        assert writes == [("update", "Sequence")]
        assert await store.list(Sequence) == []
        # children go with their owner
        assert await store.list(Channel) == []
        assert await store.list(Subscription) == []
        assert ("Sequence", "default", "pipeline") not in reconciler.ownership

    @pytest.mark.asyncio
    async def test_other_finalizers_kept(self, store, reconciler, sample_sequence):
        sample_sequence.metadata.finalizers = ["backup-controller"]
        await store.create(sample_sequence)
        await reconciler.reconcile("default/pipeline")
        await store.delete(Sequence, "default", "pipeline")
        await reconciler.reconcile("default/pipeline")
        held = await store.get(Sequence, "default", "pipeline")
        assert held.metadata.finalizers == ["backup-controller"]
        assert len(await store.list(Channel)) == 2

    @pytest.mark.asyncio
    async def test_deleted_sequence_not_provisioned_again(self, store, reconciler, call_logger, sample_sequence):
        sample_sequence.metadata.finalizers = ["backup-controller"]
        await store.create(sample_sequence)
        await store.delete(Sequence, "default", "pipeline")
        pos = call_logger.mark()
        await reconciler.reconcile("default/pipeline")
        assert [r.kind for r in call_logger.since(pos) if r.op == "create"] == []

    @pytest.mark.asyncio
    async def test_removal_keeps_finalizer_added_meanwhile(self, store, reconciler, sample_sequence):
        await store.create(sample_sequence)
        await reconciler.reconcile("default/pipeline")
        await store.delete(Sequence, "default", "pipeline")
        releasing = await store.get(Sequence, "default", "pipeline")
        releasing.metadata.finalizers = []

        held = await store.get(Sequence, "default", "pipeline")
        held.metadata.finalizers.append("backup-controller")
        await store.update(held)

        await reconciler.update_status(releasing)
        stored = await store.get(Sequence, "default", "pipeline")
        assert stored.metadata.finalizers == ["backup-controller"]


class TestStatusPublisherFinalizers:
    @pytest.mark.asyncio
    async def test_keeps_finalizer_added_after_read(self, store, reconciler, sample_sequence):
        await store.create(sample_sequence)
        await reconciler.reconcile("default/pipeline")
        stale = await store.get(Sequence, "default", "pipeline")

        other = await store.get(Sequence, "default", "pipeline")
        other.metadata.finalizers.append("backup-controller")
        await store.update(other)

        await reconciler.update_status(stale)
        stored = await store.get(Sequence, "default", "pipeline")
        assert stored.metadata.finalizers == ["backup-controller", "sequence-controller"]

    @pytest.mark.asyncio
    async def test_adds_own_finalizer_to_fresh_copy(self, store, reconciler, sample_sequence):
        sample_sequence.metadata.finalizers = ["backup-controller"]
        await store.create(sample_sequence)
        stale = await store.get(Sequence, "default", "pipeline")
        stale.metadata.finalizers = ["sequence-controller"]

        updated = await reconciler.update_status(stale)
        assert updated.metadata.finalizers == ["backup-controller", "sequence-controller"]

    @pytest.mark.asyncio
    async def test_no_write_when_own_finalizer_already_stored(self, store, reconciler, call_logger, sample_sequence):
        await store.create(sample_sequence)
        await reconciler.reconcile("default/pipeline")
        current = await store.get(Sequence, "default", "pipeline")
        current.metadata.finalizers = ["sequence-controller"]

        pos = call_logger.mark()
        await reconciler.update_status(current)
        assert [r for r in call_logger.since(pos) if r.is_write] == []


class TestChildFailure:
    @pytest.mark.asyncio
    async def test_marks_not_provisioned(self, settings, sample_sequence):
        store = _FailingStore(fail_create="Subscription")
        reconciler = SequenceReconciler(store, settings=settings)
        await store.create(sample_sequence)

        result = await reconciler.reconcile("default/pipeline")
        assert not result.ok
        assert isinstance(result.error, ChildProvisionError)
        assert result.error.step == 0

        seq = await store.get(Sequence, "default", "pipeline")
        provisioned = _condition(seq, SEQUENCE_CONDITION_PROVISIONED)
        assert provisioned.status is ConditionStatus.FALSE
        assert provisioned.reason == REASON_NOT_PROVISIONED
        assert "error while provisioning step 0" in provisioned.message
        assert "backend unavailable" in provisioned.message
        assert not seq.status.is_ready()
        # no finalizer until every step converged
        assert seq.metadata.finalizers == []

    @pytest.mark.asyncio
    async def test_aborts_remaining_steps(self, settings, sample_sequence):
        store = _FailingStore(fail_create="Subscription")
        reconciler = SequenceReconciler(store, settings=settings)
        await store.create(sample_sequence)
        await reconciler.reconcile("default/pipeline")
        assert [c.metadata.name for c in await store.list(Channel)] == ["pipeline-step-0"]

    @pytest.mark.asyncio
    async def test_recovers(self, settings, sample_sequence):
        store = _FailingStore(fail_create="Channel")
        reconciler = SequenceReconciler(store, settings=settings)
        await store.create(sample_sequence)
        assert not (await reconciler.reconcile("default/pipeline")).ok

        store.fail_create = None
        result = await reconciler.reconcile("default/pipeline")
        assert result.ok
        seq = await store.get(Sequence, "default", "pipeline")
        assert _condition(seq, SEQUENCE_CONDITION_PROVISIONED).is_true()

    @pytest.mark.asyncio
    async def test_unbuildable_step_reported(self, settings, sample_sequence):
        store = _UidlessStore()
        reconciler = SequenceReconciler(store, settings=settings)
        await store.create(sample_sequence)

        result = await reconciler.reconcile("default/pipeline")
        assert not result.ok
        assert isinstance(result.error, ChildProvisionError)
        assert isinstance(result.error.cause, ValueError)
        assert await store.list(Channel) == []
        seq = await store.get(Sequence, "default", "pipeline")
        assert _condition(seq, SEQUENCE_CONDITION_PROVISIONED).status is ConditionStatus.FALSE

    @pytest.mark.asyncio
    async def test_unbuildable_step_does_not_stop_dispatcher(self, settings, sample_sequence):
        store = _UidlessStore()
        dispatcher = Dispatcher(store, SequenceReconciler(store, settings=settings), max_attempts=2)
        await store.create(sample_sequence)
        results = await dispatcher.run_until_idle()
        assert [r.ok for r in results] == [False, False]


class TestStatusWrite:
    @pytest.mark.asyncio
    async def test_conflict_surfaced(self, settings, sample_sequence):
        store = _FailingStore(
            fail_update="Sequence",
            error=ConflictError("Sequence", "default", "pipeline", "stale"),
        )
        reconciler = SequenceReconciler(store, settings=settings)
        await store.create(sample_sequence)
        result = await reconciler.reconcile("default/pipeline")
        assert not result.ok
        assert isinstance(result.error, ConflictError)
        # children were still converged
        assert len(await store.list(Channel)) == 2

    @pytest.mark.asyncio
    async def test_other_failure_wrapped(self, settings, sample_sequence):
        store = _FailingStore(fail_update="Sequence", error=RuntimeError("disk full"))
        reconciler = SequenceReconciler(store, settings=settings)
        await store.create(sample_sequence)
        result = await reconciler.reconcile("default/pipeline")
        assert isinstance(result.error, StatusWriteError)
        assert "disk full" in str(result.error)

    @pytest.mark.asyncio
    async def test_status_error_wins_over_child_error(self, settings, sample_sequence):
        store = _FailingStore(fail_create="Channel", fail_update="Sequence", error=RuntimeError("down"))
        reconciler = SequenceReconciler(store, settings=settings)
        await store.create(sample_sequence)
        result = await reconciler.reconcile("default/pipeline")
        assert isinstance(result.error, StatusWriteError)


class TestCustomSettings:
    @pytest.mark.asyncio
    async def test_finalizer_and_provisioner(self, store, sample_sequence):
        from seqctl.config.settings import Settings

        settings = Settings(
            _env_file=None, finalizer_name="custom-finalizer", default_provisioner_name="kafka",
        )
        reconciler = SequenceReconciler(store, settings=settings)
        assert reconciler.finalizer == "custom-finalizer"
        await store.create(sample_sequence)
        await reconciler.reconcile("default/pipeline")
        seq = await store.get(Sequence, "default", "pipeline")
        assert seq.metadata.finalizers == ["custom-finalizer"]
        channel = await store.get(Channel, "default", "pipeline-step-0")
        assert channel.spec.provisioner.name == "kafka"
