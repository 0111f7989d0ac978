# src/core/models.py — v1
"""Shared Pydantic models for object identity, references and conditions.

Every resource kind (Sequence, Channel, Subscription) is built on these
types. Kind-specific models live in apis.models.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, Field

API_GROUP = "eventing.seqctl.dev"
API_VERSION = f"{API_GROUP}/v1alpha1"


# === REFERENCES ===


class ObjectReference(BaseModel):
    """Pointer to another object by kind and name."""

    api_version: str = ""
    kind: str = ""
    name: str = ""
    namespace: str | None = None
    uid: str | None = None

    def is_empty(self) -> bool:
        return not (self.api_version or self.kind or self.name or self.namespace or self.uid)


class OwnerReference(BaseModel):
    """Back-pointer from a child object to the object that controls it."""

    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool = True
    block_owner_deletion: bool = True


# === METADATA ===


class ObjectMeta(BaseModel):
    """Identity and lifecycle metadata shared by every stored object."""

    name: str
    namespace: str = "default"
    uid: str | None = None
    resource_version: str | None = None
    generation: int = 0
    creation_timestamp: datetime | None = None
    deletion_timestamp: datetime | None = None
    finalizers: list[str] = Field(default_factory=list)
    owner_references: list[OwnerReference] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)

    def controller_ref(self) -> OwnerReference | None:
        """Return the owner reference flagged as controller, if any."""
        for ref in self.owner_references:
            if ref.controller:
                return ref
        return None


class Resource(BaseModel):
    """Base for every kind persisted in the object store.

    Subclasses set KIND (the store key for the kind) and a matching default
    for the serialized kind field, then declare their own spec/status.
    """

    KIND: ClassVar[str] = ""

    api_version: str = API_VERSION
    kind: str = ""
    metadata: ObjectMeta

    @property
    def key(self) -> str:
        """Namespaced key used in logs and work queues."""
        return f"{self.metadata.namespace}/{self.metadata.name}"

    def reference(self) -> ObjectReference:
        """Reference to this object suitable for embedding in other specs."""
        return ObjectReference(
            api_version=self.api_version, kind=self.kind, name=self.metadata.name
        )


# === CONDITIONS ===


class ConditionStatus(str, Enum):
    """Tri-state status value of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class Condition(BaseModel):
    """A named status fact with reason, message and transition time."""

    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""
    last_transition_time: datetime | None = None

    def is_true(self) -> bool:
        return self.status is ConditionStatus.TRUE

    def is_false(self) -> bool:
        return self.status is ConditionStatus.FALSE


def split_key(key: str) -> tuple[str, str]:
    """Split a "namespace/name" key; a bare name lands in "default"."""
    namespace, sep, name = key.partition("/")
    if not sep:
        return "default", namespace
    if not namespace or not name:
        raise ValueError(f"Invalid object key: {key!r}. Use 'namespace/name'.")
    return namespace, name
