# src/logging/context.py — v1
"""Contextual logging support — attach reconcile key, invocation, child kind
and step index to log records.
"""

from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per reconcile invocation.
_reconcile_key: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "reconcile_key", default=None
)
_invocation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "invocation_id", default=None
)
_kind: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "kind", default=None
)
_step: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "step", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    reconcile_key: str | None = None
    invocation_id: str | None = None
    kind: str | None = None
    step: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        reconcile_key=_reconcile_key.get(),
        invocation_id=_invocation_id.get(),
        kind=_kind.get(),
        step=_step.get(),
    )


def set_reconcile_context(reconcile_key: str, invocation_id: str) -> None:
    """Set invocation-level context (called once per reconcile)."""
    _reconcile_key.set(reconcile_key)
    _invocation_id.set(invocation_id)
    _kind.set(None)
    _step.set(None)


def set_step_context(step: int | None, kind: str | None = None) -> None:
    """Set child-level context while a step's children are converged."""
    _step.set(None if step is None else str(step))
    _kind.set(kind)


def clear_context() -> None:
    """Reset all context variables."""
    _reconcile_key.set(None)
    _invocation_id.set(None)
    _kind.set(None)
    _step.set(None)


@contextmanager
def reconcile_scope(reconcile_key: str, invocation_id: str) -> Iterator[LogContext]:
    """Bind invocation context for the duration of a block.

    On exit the variables are restored to what they were on entry, so a
    scope opened inside another one (or inside a task that inherited a
    context) leaves the outer values intact.
    """
    tokens = [
        (_reconcile_key, _reconcile_key.set(reconcile_key)),
        (_invocation_id, _invocation_id.set(invocation_id)),
        (_kind, _kind.set(None)),
        (_step, _step.set(None)),
    ]
    try:
        yield get_context()
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
