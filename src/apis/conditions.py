# src/apis/conditions.py — v1
"""Condition bookkeeping with a derived Ready condition.

A ConditionSet is an immutable description of which condition types a kind
carries. A ConditionManager applies that set to one status object: it keeps
the dependent conditions, and recomputes the happy (Ready) condition from
them after every mutation.

Rules:
  - Ready is True iff every dependent and every other present condition is
    True, False if any of them is False, Unknown otherwise.
  - last_transition_time only moves when the status value changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Protocol

from seqctl.core.models import Condition, ConditionStatus

READY = "Ready"


class HasConditions(Protocol):
    conditions: list[Condition]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ConditionSet:
    """Declared condition types for one resource kind."""

    dependents: tuple[str, ...]
    happy: str = READY

    def __post_init__(self) -> None:
        if self.happy in self.dependents:
            raise ValueError(f"{self.happy!r} cannot depend on itself")
        if len(set(self.dependents)) != len(self.dependents):
            raise ValueError(f"Duplicate condition types in {self.dependents!r}")

    @property
    def types(self) -> tuple[str, ...]:
        """All declared types in declaration order, happy condition last."""
        return (*self.dependents, self.happy)

    def manage(
        self,
        status: HasConditions,
        clock: Callable[[], datetime] = utcnow,
    ) -> ConditionManager:
        return ConditionManager(self, status, clock)


class ConditionManager:
    """Mutates the conditions of a single status object."""

    def __init__(
        self,
        condition_set: ConditionSet,
        status: HasConditions,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._set = condition_set
        self._status = status
        self._clock = clock

    def get_condition(self, cond_type: str) -> Condition | None:
        """Exact-match lookup; the happy condition is recomputed first."""
        if cond_type == self._set.happy:
            self._recompute_happy()
        for cond in self._status.conditions:
            if cond.type == cond_type:
                return cond
        return None

    def initialize_conditions(self) -> None:
        """Add every declared type that is missing with status Unknown."""
        present = {c.type for c in self._status.conditions}
        for cond_type in self._set.types:
            if cond_type not in present:
                self._status.conditions.append(
                    Condition(type=cond_type, status=ConditionStatus.UNKNOWN)
                )
        self._recompute_happy()

    def mark_true(self, cond_type: str) -> None:
        self._set_condition(cond_type, ConditionStatus.TRUE, "", "")

    def mark_false(self, cond_type: str, reason: str, message: str = "") -> None:
        self._set_condition(cond_type, ConditionStatus.FALSE, reason, message)

    def mark_unknown(self, cond_type: str, reason: str, message: str = "") -> None:
        self._set_condition(cond_type, ConditionStatus.UNKNOWN, reason, message)

    def is_happy(self) -> bool:
        return self._derive_happy()[0] is ConditionStatus.TRUE

    # --- internals ---

    def _set_condition(
        self, cond_type: str, status: ConditionStatus, reason: str, message: str
    ) -> None:
        if cond_type == self._set.happy:
            raise ValueError(f"{cond_type!r} is derived and cannot be set directly")
        self._upsert(cond_type, status, reason, message)
        self._recompute_happy()

    def _upsert(
        self, cond_type: str, status: ConditionStatus, reason: str, message: str
    ) -> None:
        for idx, existing in enumerate(self._status.conditions):
            if existing.type != cond_type:
                continue
            if existing.status is status:
                transition = existing.last_transition_time
            else:
                transition = self._clock()
            self._status.conditions[idx] = Condition(
                type=cond_type,
                status=status,
                reason=reason,
                message=message,
                last_transition_time=transition,
            )
            return
        self._status.conditions.append(
            Condition(
                type=cond_type,
                status=status,
                reason=reason,
                message=message,
                last_transition_time=self._clock(),
            )
        )

    def _derive_happy(self) -> tuple[ConditionStatus, str, str]:
        by_type = {c.type: c for c in self._status.conditions}
        considered = list(self._set.dependents) + [
            t for t in by_type if t != self._set.happy and t not in self._set.dependents
        ]
        unknown: Condition | None = None
        for cond_type in considered:
            cond = by_type.get(cond_type)
            if cond is None:
                if unknown is None:
                    unknown = Condition(type=cond_type)
                continue
            if cond.is_false():
                return ConditionStatus.FALSE, cond.reason, cond.message
            if not cond.is_true() and unknown is None:
                unknown = cond
        if unknown is not None:
            return ConditionStatus.UNKNOWN, unknown.reason, unknown.message
        return ConditionStatus.TRUE, "", ""

    def _recompute_happy(self) -> None:
        status, reason, message = self._derive_happy()
        current = next(
            (c for c in self._status.conditions if c.type == self._set.happy), None
        )
        if (
            current is not None
            and current.status is status
            and current.reason == reason
            and current.message == message
        ):
            return
        if current is None and not self._status.conditions:
            return
        self._upsert(self._set.happy, status, reason, message)
