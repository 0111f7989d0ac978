# src/reconciler/finalizers.py — v1
"""Finalizer set operations on object metadata.

The finalizer list is treated as a set: the result is sorted and free of
duplicates, adding a present token and removing an absent one are no-ops.
"""

from __future__ import annotations

from seqctl.core.models import Resource


def add_finalizer(obj: Resource, token: str) -> bool:
    """Add ``token``; returns True if the finalizer list changed."""
    before = list(obj.metadata.finalizers)
    obj.metadata.finalizers = sorted(set(before) | {token})
    return obj.metadata.finalizers != before


def remove_finalizer(obj: Resource, token: str) -> bool:
    """Remove ``token``; returns True if the finalizer list changed."""
    before = list(obj.metadata.finalizers)
    obj.metadata.finalizers = sorted(set(before) - {token})
    return obj.metadata.finalizers != before


def has_finalizer(obj: Resource, token: str) -> bool:
    return token in obj.metadata.finalizers
