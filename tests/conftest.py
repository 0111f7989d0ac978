# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides settings isolated from .env, an in-memory store with call
tracking, a reconciler wired to it, and sample Sequences.
No external services — the redis backend is tested with a mocked client.
"""

from __future__ import annotations

import pytest

from seqctl.apis.models import ReplyStrategy, Sequence, SequenceSpec, StepSpec
from seqctl.config.settings import Settings
from seqctl.core.models import ObjectMeta, ObjectReference
from seqctl.logging.context import clear_context
from seqctl.reconciler.sequence_reconciler import SequenceReconciler
from seqctl.store.memory_store import MemoryObjectStore
from seqctl.tracking.call_logger import StoreCallLogger


# === FIXTURES: Configuration ===


@pytest.fixture
def settings() -> Settings:
    """Default settings, ignoring any .env in the working directory."""
    return Settings(_env_file=None)


# === FIXTURES: Store and reconciler ===


@pytest.fixture
def call_logger() -> StoreCallLogger:
    return StoreCallLogger()


@pytest.fixture
def store(call_logger: StoreCallLogger) -> MemoryObjectStore:
    return MemoryObjectStore(call_logger=call_logger)


@pytest.fixture
def reconciler(store: MemoryObjectStore, settings: Settings) -> SequenceReconciler:
    return SequenceReconciler(store, settings=settings)


@pytest.fixture(autouse=True)
def _reset_log_context():
    yield
    clear_context()


# === FIXTURES: Sample data ===


@pytest.fixture
def reply_channel() -> ObjectReference:
    return ObjectReference(
        api_version="eventing.seqctl.dev/v1alpha1", kind="Channel", name="results",
    )


@pytest.fixture
def sample_sequence(reply_channel: ObjectReference) -> Sequence:
    """Two-step Sequence replying to the "results" channel."""
    return Sequence(
        metadata=ObjectMeta(name="pipeline", namespace="default"),
        spec=SequenceSpec(
            steps=[
                StepSpec(uri="http://enrich.default.svc"),
                StepSpec(
                    ref=ObjectReference(
                        api_version="serving.example.dev/v1", kind="Service", name="store",
                    ),
                ),
            ],
            reply=ReplyStrategy(channel=reply_channel),
        ),
    )


@pytest.fixture
def empty_sequence() -> Sequence:
    """Sequence without steps."""
    return Sequence(metadata=ObjectMeta(name="empty", namespace="default"))
