# src/apis/validation.py — v1
"""Sequence validation and the write-once check on its spec."""

from __future__ import annotations

import difflib
import json

from seqctl.apis.models import ReplyStrategy, Sequence, SequenceSpec, StepSpec
from seqctl.core.errors import FieldError
from seqctl.core.models import ObjectReference


def validate_sequence(sequence: Sequence) -> FieldError | None:
    """Validate a Sequence; returns None when it is acceptable."""
    err = validate_sequence_spec(sequence.spec)
    if err is None:
        return None
    return err.via_field("spec")


def validate_sequence_spec(spec: SequenceSpec) -> FieldError | None:
    errors: list[FieldError] = []
    for i, step in enumerate(spec.steps):
        err = _validate_step(step)
        if err is not None:
            errors.append(err.via_field(f"steps[{i}]"))
    if spec.provisioner is not None:
        err = _validate_ref(spec.provisioner)
        if err is not None:
            errors.append(err.via_field("provisioner"))
    if spec.reply is not None:
        err = _validate_reply(spec.reply)
        if err is not None:
            errors.append(err.via_field("reply"))
    return FieldError.merge(errors)


def check_immutable_fields(current: Sequence, original: object) -> FieldError | None:
    """Reject any change to the spec of an existing Sequence.

    Args:
        current: The Sequence as it is about to be written.
        original: The stored Sequence, or None on create.

    Returns:
        None when the write is allowed, otherwise a FieldError carrying a
        unified diff of the spec in ``details``.
    """
    if original is None:
        return None
    if not isinstance(original, Sequence):
        return FieldError(message="The provided original was not a Sequence")

    old = original.spec.model_dump(mode="json")
    new = current.spec.model_dump(mode="json")
    if old == new:
        return None
    diff = "".join(
        difflib.unified_diff(
            json.dumps(old, indent=2, sort_keys=True).splitlines(keepends=True),
            json.dumps(new, indent=2, sort_keys=True).splitlines(keepends=True),
            fromfile="old",
            tofile="new",
        )
    )
    return FieldError(
        message="Immutable fields changed (-old +new)",
        paths=["spec"],
        details=diff,
    )


def _validate_step(step: StepSpec) -> FieldError | None:
    errors: list[FieldError] = []
    if step.ref is not None and not step.ref.is_empty() and step.uri:
        errors.append(FieldError(message="expected exactly one, got both", paths=["ref", "uri"]))
    if step.ref is not None and not step.ref.is_empty():
        err = _validate_ref(step.ref)
        if err is not None:
            errors.append(err.via_field("ref"))
    if step.provisioner is not None:
        err = _validate_ref(step.provisioner)
        if err is not None:
            errors.append(err.via_field("provisioner"))
    return FieldError.merge(errors)


def _validate_reply(reply: ReplyStrategy) -> FieldError | None:
    if reply.channel is None or reply.is_empty():
        return None
    err = _validate_ref(reply.channel)
    return None if err is None else err.via_field("channel")


def _validate_ref(ref: ObjectReference) -> FieldError | None:
    missing = [
        name
        for name, value in (
            ("api_version", ref.api_version),
            ("kind", ref.kind),
            ("name", ref.name),
        )
        if not value
    ]
    if missing:
        return FieldError(message="missing field(s)", paths=missing)
    return None
