# src/core/errors.py — v1
"""Exception hierarchy for store access, convergence and validation."""

from __future__ import annotations

from dataclasses import dataclass, field


class ControllerError(Exception):
    """Base class for every error raised by seqctl."""


class NotFoundError(ControllerError):
    """The requested object does not exist in the store."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} not found")


class ConflictError(ControllerError):
    """A write was rejected because it was based on a stale resource version."""

    def __init__(self, kind: str, namespace: str, name: str, detail: str = "") -> None:
        self.kind = kind
        self.namespace = namespace
        self.name = name
        msg = f"Conflict writing {kind} {namespace}/{name}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class AlreadyExistsError(ConflictError):
    """A create targeted a name that is already taken."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        super().__init__(kind, namespace, name, "object already exists")


class ChildProvisionError(ControllerError):
    """Creating or updating a derived Channel/Subscription failed."""

    def __init__(self, step: int, kind: str, name: str, cause: Exception) -> None:
        self.step = step
        self.kind = kind
        self.name = name
        self.cause = cause
        super().__init__(f"error while provisioning step {step}: {kind} {name}: {cause}")


class StatusWriteError(ControllerError):
    """Persisting the Sequence status block failed."""

    def __init__(self, key: str, cause: Exception) -> None:
        self.key = key
        self.cause = cause
        super().__init__(f"Failed to update status of {key}: {cause}")


@dataclass(eq=False)
class FieldError(ControllerError):
    """Validation failure pointing at one or more field paths."""

    message: str
    paths: list[str] = field(default_factory=list)
    details: str = ""

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def __str__(self) -> str:
        text = self.message
        if self.paths:
            text = f"{text}: {', '.join(self.paths)}"
        if self.details:
            text = f"{text}\n{self.details}"
        return text

    def via_field(self, prefix: str) -> FieldError:
        """Return a copy with every path nested under ``prefix``."""
        return FieldError(
            message=self.message,
            paths=[f"{prefix}.{p}" if p else prefix for p in self.paths] or [prefix],
            details=self.details,
        )

    @staticmethod
    def merge(errors: list[FieldError]) -> FieldError | None:
        """Combine several field errors into one, or None when empty."""
        if not errors:
            return None
        if len(errors) == 1:
            return errors[0]
        return FieldError(
            message="; ".join(e.message for e in errors),
            paths=[p for e in errors for p in e.paths],
            details="\n".join(e.details for e in errors if e.details),
        )
