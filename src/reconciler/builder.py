# src/reconciler/builder.py — v1
"""Desired-state builder — the Channel and Subscription each step needs.

Pure functions: no store access, identical output for identical input.

For step i of Sequence "s":
  - channel "s-step-i" backed by the step provisioner, else the sequence
    provisioner, else the cluster default;
  - subscription "s-step-i" reading from that channel, delivering to the
    step's subscriber and replying to channel "s-step-(i+1)", or to the
    sequence reply for the last step.
"""

from __future__ import annotations

from dataclasses import dataclass

from seqctl.apis.models import (
    Channel,
    ChannelSpec,
    ReplyStrategy,
    Sequence,
    Subscription,
    SubscriptionSpec,
)
from seqctl.core.models import API_VERSION, ObjectMeta, ObjectReference, OwnerReference


@dataclass(frozen=True)
class StepResources:
    """Desired children for one step."""

    index: int
    channel: Channel
    subscription: Subscription


def step_name(sequence_name: str, index: int) -> str:
    return f"{sequence_name}-step-{index}"


def owner_reference(sequence: Sequence) -> OwnerReference:
    """Controller reference pointing back at the Sequence."""
    if not sequence.metadata.uid:
        raise ValueError(f"Sequence {sequence.key} has no uid; it must be read from the store")
    return OwnerReference(
        api_version=sequence.api_version,
        kind=Sequence.KIND,
        name=sequence.metadata.name,
        uid=sequence.metadata.uid,
        controller=True,
        block_owner_deletion=True,
    )


def resolve_provisioner(
    sequence: Sequence, index: int, default: ObjectReference
) -> ObjectReference:
    """Step hint, else sequence hint, else the cluster default."""
    step = sequence.spec.steps[index]
    if step.provisioner is not None and not step.provisioner.is_empty():
        return step.provisioner
    if sequence.spec.provisioner is not None and not sequence.spec.provisioner.is_empty():
        return sequence.spec.provisioner
    return default


def resolve_reply(sequence: Sequence, index: int) -> ReplyStrategy | None:
    """Next step's channel, or the sequence reply for the last step."""
    if index < len(sequence.spec.steps) - 1:
        return ReplyStrategy(
            channel=ObjectReference(
                api_version=API_VERSION,
                kind=Channel.KIND,
                name=step_name(sequence.metadata.name, index + 1),
            )
        )
    reply = sequence.spec.reply
    if reply is None or reply.is_empty():
        return None
    return reply.model_copy(deep=True)


def make_channel(
    sequence: Sequence, index: int, default_provisioner: ObjectReference
) -> Channel:
    return Channel(
        metadata=ObjectMeta(
            name=step_name(sequence.metadata.name, index),
            namespace=sequence.metadata.namespace,
            owner_references=[owner_reference(sequence)],
        ),
        spec=ChannelSpec(
            provisioner=resolve_provisioner(sequence, index, default_provisioner).model_copy(),
        ),
    )


def make_subscription(sequence: Sequence, index: int, channel: Channel) -> Subscription:
    subscriber = sequence.spec.steps[index].subscriber()
    return Subscription(
        metadata=ObjectMeta(
            name=step_name(sequence.metadata.name, index),
            namespace=sequence.metadata.namespace,
            owner_references=[owner_reference(sequence)],
        ),
        spec=SubscriptionSpec(
            channel=channel.reference(),
            subscriber=None if subscriber is None else subscriber.model_copy(deep=True),
            reply=resolve_reply(sequence, index),
        ),
    )


def build_step(
    sequence: Sequence, index: int, default_provisioner: ObjectReference
) -> StepResources:
    channel = make_channel(sequence, index, default_provisioner)
    return StepResources(
        index=index,
        channel=channel,
        subscription=make_subscription(sequence, index, channel),
    )


def build_desired(
    sequence: Sequence, default_provisioner: ObjectReference
) -> list[StepResources]:
    """Every child the Sequence implies, in step order."""
    return [
        build_step(sequence, i, default_provisioner)
        for i in range(len(sequence.spec.steps))
    ]
