# tests/unit/apis/test_conditions.py — v1
"""Tests for apis/conditions.py — condition set, manager and Ready derivation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from seqctl.apis.conditions import READY, ConditionManager, ConditionSet
from seqctl.core.models import Condition, ConditionStatus

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class _Status:
    def __init__(self) -> None:
        self.conditions: list[Condition] = []


class _Clock:
    def __init__(self) -> None:
        self.now = T0

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int = 60) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def status():
    return _Status()


@pytest.fixture
def manager(status, clock):
    return ConditionSet(("Provisioned", "Addressable")).manage(status, clock)


def _types(status) -> list[str]:
    return [c.type for c in status.conditions]


class TestConditionSet:
    def test_types_lists_happy_last(self):
        cs = ConditionSet(("A", "B"))
        assert cs.types == ("A", "B", READY)

    def test_happy_cannot_be_dependent(self):
        with pytest.raises(ValueError, match="depend on itself"):
            ConditionSet(("A", READY))

    def test_duplicate_dependents_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            ConditionSet(("A", "A"))

    def test_frozen(self):
        cs = ConditionSet(("A",))
        with pytest.raises(AttributeError):
            cs.happy = "Other"  # type: ignore[misc]


class TestInitializeConditions:
    def test_adds_all_types_unknown(self, manager, status):
        manager.initialize_conditions()
        assert _types(status) == ["Provisioned", "Addressable", READY]
        assert all(c.status is ConditionStatus.UNKNOWN for c in status.conditions)

    def test_keeps_existing(self, manager, status):
        manager.mark_true("Provisioned")
        manager.initialize_conditions()
        assert manager.get_condition("Provisioned").is_true()
        assert _types(status).count("Provisioned") == 1
        assert len(status.conditions) == 3

    def test_idempotent(self, manager, status):
        manager.initialize_conditions()
        before = [c.model_dump() for c in status.conditions]
        manager.initialize_conditions()
        assert [c.model_dump() for c in status.conditions] == before


class TestReadyDerivation:
    def test_all_true_is_ready(self, manager):
        manager.initialize_conditions()
        manager.mark_true("Provisioned")
        manager.mark_true("Addressable")
        assert manager.get_condition(READY).status is ConditionStatus.TRUE
        assert manager.is_happy()

    def test_any_false_is_not_ready(self, manager):
        manager.initialize_conditions()
        manager.mark_true("Provisioned")
        manager.mark_false("Addressable", "EmptyHostname", "no host")
        ready = manager.get_condition(READY)
        assert ready.status is ConditionStatus.FALSE
        assert ready.reason == "EmptyHostname"
        assert ready.message == "no host"
        assert not manager.is_happy()

    def test_false_wins_over_unknown(self, manager):
        manager.initialize_conditions()
        manager.mark_false("Provisioned", "NotProvisioned", "boom")
        assert manager.get_condition(READY).is_false()

    def test_unknown_when_not_all_true(self, manager):
        manager.initialize_conditions()
        manager.mark_true("Provisioned")
        assert manager.get_condition(READY).status is ConditionStatus.UNKNOWN

    def test_mark_unknown_demotes_ready(self, manager):
        manager.mark_true("Provisioned")
        manager.mark_true("Addressable")
        assert manager.is_happy()
        manager.mark_unknown("Addressable", "Waiting", "channel not ready")
        addressable = manager.get_condition("Addressable")
        assert addressable.status is ConditionStatus.UNKNOWN
        assert addressable.reason == "Waiting"
        assert manager.get_condition(READY).status is ConditionStatus.UNKNOWN
        assert not manager.is_happy()

    def test_missing_dependent_counts_as_unknown(self, manager):
        manager.mark_true("Provisioned")
        assert manager.get_condition(READY).status is ConditionStatus.UNKNOWN
        assert not manager.is_happy()

    def test_extra_condition_participates(self, manager):
        manager.initialize_conditions()
        manager.mark_true("Provisioned")
        manager.mark_true("Addressable")
        manager.mark_false("Custom", "Broken")
        assert manager.get_condition(READY).is_false()

    def test_ready_cannot_be_set_directly(self, manager):
        with pytest.raises(ValueError, match="derived"):
            manager.mark_true(READY)

    def test_get_condition_missing(self, manager):
        assert manager.get_condition("Provisioned") is None


class TestTransitionTime:
    def test_set_on_first_mark(self, manager, clock):
        manager.mark_true("Provisioned")
        assert manager.get_condition("Provisioned").last_transition_time == T0

    def test_unchanged_when_status_unchanged(self, manager, clock):
        manager.mark_false("Provisioned", "NotProvisioned", "first")
        clock.advance()
        manager.mark_false("Provisioned", "NotProvisioned", "second")
        cond = manager.get_condition("Provisioned")
        assert cond.last_transition_time == T0
        assert cond.message == "second"

    def test_moves_when_status_changes(self, manager, clock):
        manager.mark_false("Provisioned", "NotProvisioned")
        clock.advance()
        manager.mark_true("Provisioned")
        assert manager.get_condition("Provisioned").last_transition_time == T0 + timedelta(seconds=60)

    def test_ready_transition_follows_derivation(self, manager, clock):
        manager.initialize_conditions()
        manager.mark_true("Provisioned")
        clock.advance()
        manager.mark_true("Addressable")
        ready_time = manager.get_condition(READY).last_transition_time
        assert ready_time == T0 + timedelta(seconds=60)
        clock.advance()
        manager.mark_true("Addressable")
        assert manager.get_condition(READY).last_transition_time == ready_time


class TestManagerConstruction:
    def test_direct_construction(self, status, clock):
        mgr = ConditionManager(ConditionSet(("A",)), status, clock)
        mgr.mark_true("A")
        assert mgr.is_happy()
