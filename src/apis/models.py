# src/apis/models.py — v1
"""Resource kinds: Sequence (composite), Channel and Subscription (children).

SequenceStatus owns the Sequence condition set and exposes the status
operations the reconciler drives (initialize, mark provisioned, set address).
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, ClassVar

from pydantic import BaseModel, Field

from seqctl.apis.conditions import READY, ConditionManager, ConditionSet, utcnow
from seqctl.core.models import Condition, ObjectReference, Resource

# Condition types.
SEQUENCE_CONDITION_READY = READY
SEQUENCE_CONDITION_PROVISIONED = "Provisioned"
SEQUENCE_CONDITION_ADDRESSABLE = "Addressable"

REASON_NOT_PROVISIONED = "NotProvisioned"
REASON_EMPTY_HOSTNAME = "EmptyHostname"


# === SHARED SPEC FRAGMENTS ===


class SubscriberSpec(BaseModel):
    """Where a subscription delivers events: an object reference or a URI."""

    ref: ObjectReference | None = None
    uri: str | None = None

    def is_empty(self) -> bool:
        return (self.ref is None or self.ref.is_empty()) and not self.uri


class ReplyStrategy(BaseModel):
    """Where the output of a subscriber is sent."""

    channel: ObjectReference | None = None

    def is_empty(self) -> bool:
        return self.channel is None or self.channel.is_empty()


class Addressable(BaseModel):
    hostname: str = ""


# === SEQUENCE ===


class StepSpec(SubscriberSpec):
    """One pipeline step: a subscriber plus an optional channel backend hint."""

    provisioner: ObjectReference | None = None

    def subscriber(self) -> SubscriberSpec | None:
        """The subscriber part of the step, or None for a pass-through step."""
        if self.is_empty():
            return None
        return SubscriberSpec(ref=self.ref, uri=self.uri)


class SequenceSpec(BaseModel):
    generation: int = 0
    provisioner: ObjectReference | None = None
    steps: list[StepSpec] = Field(default_factory=list)
    reply: ReplyStrategy | None = None


class SequenceStatus(BaseModel):
    """Observed state of a Sequence: its conditions and public address."""

    condition_set: ClassVar[ConditionSet] = ConditionSet(
        dependents=(SEQUENCE_CONDITION_PROVISIONED, SEQUENCE_CONDITION_ADDRESSABLE),
    )

    address: Addressable = Field(default_factory=Addressable)
    conditions: list[Condition] = Field(default_factory=list)

    def manage(self, clock: Callable[[], datetime] = utcnow) -> ConditionManager:
        return ConditionManager(self.condition_set, self, clock)

    def get_condition(self, cond_type: str) -> Condition | None:
        return self.manage().get_condition(cond_type)

    def is_ready(self) -> bool:
        return self.manage().is_happy()

    def initialize_conditions(self) -> None:
        self.manage().initialize_conditions()

    def mark_provisioned(self) -> None:
        self.manage().mark_true(SEQUENCE_CONDITION_PROVISIONED)

    def mark_not_provisioned(self, reason: str, message: str) -> None:
        self.manage().mark_false(SEQUENCE_CONDITION_PROVISIONED, reason, message)

    def set_address(self, hostname: str) -> None:
        """Publish the hostname; an empty one means not yet addressable."""
        self.address.hostname = hostname
        if hostname:
            self.manage().mark_true(SEQUENCE_CONDITION_ADDRESSABLE)
        else:
            self.manage().mark_false(
                SEQUENCE_CONDITION_ADDRESSABLE,
                REASON_EMPTY_HOSTNAME,
                "hostname is the empty string",
            )


class Sequence(Resource):
    """Ordered pipeline of steps, each backed by a Channel and a Subscription."""

    KIND: ClassVar[str] = "Sequence"

    kind: str = "Sequence"
    spec: SequenceSpec = Field(default_factory=SequenceSpec)
    status: SequenceStatus = Field(default_factory=SequenceStatus)


# === CHANNEL ===


class ChannelSubscriber(BaseModel):
    uid: str = ""
    subscriber_uri: str = ""
    reply_uri: str = ""


class Subscribable(BaseModel):
    """Fan-out list a channel controller maintains from its subscriptions."""

    subscribers: list[ChannelSubscriber] = Field(default_factory=list)


class ChannelSpec(BaseModel):
    generation: int = 0
    provisioner: ObjectReference | None = None
    subscribable: Subscribable | None = None


class ChannelStatus(BaseModel):
    address: Addressable = Field(default_factory=Addressable)
    conditions: list[Condition] = Field(default_factory=list)


class Channel(Resource):
    KIND: ClassVar[str] = "Channel"

    kind: str = "Channel"
    spec: ChannelSpec = Field(default_factory=ChannelSpec)
    status: ChannelStatus = Field(default_factory=ChannelStatus)


# === SUBSCRIPTION ===


class SubscriptionSpec(BaseModel):
    generation: int = 0
    channel: ObjectReference = Field(default_factory=ObjectReference)
    subscriber: SubscriberSpec | None = None
    reply: ReplyStrategy | None = None


class SubscriptionStatus(BaseModel):
    conditions: list[Condition] = Field(default_factory=list)


class Subscription(Resource):
    KIND: ClassVar[str] = "Subscription"

    kind: str = "Subscription"
    spec: SubscriptionSpec = Field(default_factory=SubscriptionSpec)
    status: SubscriptionStatus = Field(default_factory=SubscriptionStatus)


RESOURCE_KINDS: dict[str, type[Resource]] = {
    cls.KIND: cls for cls in (Sequence, Channel, Subscription)
}
