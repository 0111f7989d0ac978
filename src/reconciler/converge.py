# src/reconciler/converge.py — v1
"""Create-or-update for derived resources, one instance per child kind.

Fetch by name; create when absent. When present, copy the spec fields that
other actors own from the observed object into the desired one, compare,
and write the observed object carrying the desired spec only if they
differ. Observed metadata and status are left alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

from seqctl.apis.models import Channel, Subscription
from seqctl.core.errors import NotFoundError
from seqctl.core.models import Resource
from seqctl.store.base_store import BaseObjectStore

logger = logging.getLogger(__name__)

ResourceT = TypeVar("ResourceT", bound=Resource)

Action = Literal["created", "updated", "unchanged"]


@dataclass(frozen=True)
class ConvergeResult(Generic[ResourceT]):
    action: Action
    obj: ResourceT


class ChildReconciler(Generic[ResourceT]):
    """Idempotent create-or-update for one child kind.

    Args:
        kind: Concrete resource class handled by this instance.
        preserved_spec_fields: Spec fields mutated outside this controller.
    """

    def __init__(self, kind: type[ResourceT], preserved_spec_fields: tuple[str, ...] = ()) -> None:
        self._kind = kind
        self._preserved = preserved_spec_fields

    @property
    def kind(self) -> type[ResourceT]:
        return self._kind

    async def reconcile(self, store: BaseObjectStore, desired: ResourceT) -> ConvergeResult[ResourceT]:
        """Converge one child toward ``desired``.

        Raises:
            ValueError: If ``desired`` carries no owner reference.
            ControllerError: Store failures propagate unchanged.
        """
        if not desired.metadata.owner_references:
            raise ValueError(
                f"Refusing to create {self._kind.KIND} {desired.key} without an owner reference"
            )
        meta = desired.metadata
        logger.debug("Reconciling %s %s", self._kind.KIND, desired.key)
        try:
            observed = await store.get(self._kind, meta.namespace, meta.name)
        except NotFoundError:
            created = await store.create(desired)
            logger.info("Created %s %s", self._kind.KIND, created.key)
            return ConvergeResult("created", created)

        observed_owner = observed.metadata.controller_ref()
        desired_owner = desired.metadata.controller_ref()
        if observed_owner is not None and desired_owner is not None and observed_owner.uid != desired_owner.uid:
            # no tie-break: the last writer's spec wins, the owner reference stays
            logger.warning(
                "%s %s is controlled by %s %s (uid %s), not by %s",
                self._kind.KIND, desired.key, observed_owner.kind,
                observed_owner.name, observed_owner.uid, desired_owner.name,
            )

        wanted = desired.spec.model_copy(deep=True)  # type: ignore[attr-defined]
        for field_name in self._preserved:
            setattr(wanted, field_name, getattr(observed.spec, field_name))  # type: ignore[attr-defined]

        if semantic_equal(wanted, observed.spec):  # type: ignore[attr-defined]
            return ConvergeResult("unchanged", observed)

        observed.spec = wanted  # type: ignore[attr-defined]
        updated = await store.update(observed)
        logger.info("Updated %s %s", self._kind.KIND, updated.key)
        return ConvergeResult("updated", updated)


def semantic_equal(a: object, b: object) -> bool:
    """Compare two pydantic values by their JSON-mode dump."""
    dump_a = a.model_dump(mode="json") if hasattr(a, "model_dump") else a
    dump_b = b.model_dump(mode="json") if hasattr(b, "model_dump") else b
    return dump_a == dump_b


def channel_reconciler() -> ChildReconciler[Channel]:
    # generation is stamped by the store, subscribable by the channel controller
    return ChildReconciler(Channel, preserved_spec_fields=("generation", "subscribable"))


def subscription_reconciler() -> ChildReconciler[Subscription]:
    return ChildReconciler(Subscription, preserved_spec_fields=("generation",))
