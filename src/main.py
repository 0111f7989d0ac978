# src/main.py — v1
"""CLI entry point — apply, reconcile, get, delete, run commands.

Usage:
    seqctl apply <manifest.json>
    seqctl reconcile <namespace/name>
    seqctl get <kind> <namespace/name>
    seqctl delete <namespace/name>
    seqctl run

Every command opens the configured object store, and every command that
changes objects drains the dispatcher before exiting, so the printed state
is the converged one.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from seqctl.apis.models import RESOURCE_KINDS, Sequence
from seqctl.apis.validation import check_immutable_fields, validate_sequence
from seqctl.config.settings import Settings, load_settings
from seqctl.core.errors import NotFoundError
from seqctl.core.models import Resource, split_key
from seqctl.logging.logger import setup_logging
from seqctl.reconciler.dispatcher import Dispatcher
from seqctl.reconciler.sequence_reconciler import ReconcileResult, SequenceReconciler
from seqctl.store.base_store import BaseObjectStore
from seqctl.store.store_factory import create_object_store
from seqctl.tracking.call_logger import StoreCallLogger
from seqctl.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = _load_settings(args)
    except Exception as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2
    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="seqctl",
        description=f"seqctl v{__version__} — Sequence reconciliation controller",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--store", dest="store_backend", default=None,
        choices=["memory", "json", "sqlite", "redis"],
        help="Object store backend (default: STORE_BACKEND from .env)",
    )
    parser.add_argument(
        "--store-root", type=Path, default=None,
        help="Directory for the json and sqlite backends",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- apply ---
    p_apply = subparsers.add_parser(
        "apply", help="Create or update objects from a JSON manifest",
    )
    p_apply.add_argument("manifest", type=Path, help="JSON object or list of objects")
    p_apply.set_defaults(func=_cmd_apply)

    # --- reconcile ---
    p_reconcile = subparsers.add_parser(
        "reconcile", help="Run one reconcile invocation for a Sequence",
    )
    p_reconcile.add_argument("key", help="namespace/name of the Sequence")
    p_reconcile.set_defaults(func=_cmd_reconcile)

    # --- get ---
    p_get = subparsers.add_parser("get", help="Print a stored object")
    p_get.add_argument("kind", choices=sorted(RESOURCE_KINDS), help="Resource kind")
    p_get.add_argument("key", help="namespace/name of the object")
    p_get.set_defaults(func=_cmd_get)

    # --- delete ---
    p_delete = subparsers.add_parser(
        "delete", help="Delete a Sequence and let the controller release it",
    )
    p_delete.add_argument("key", help="namespace/name of the Sequence")
    p_delete.set_defaults(func=_cmd_delete)

    # --- run ---
    p_run = subparsers.add_parser(
        "run", help="Reconcile every stored Sequence until nothing is pending",
    )
    p_run.add_argument(
        "-n", "--namespace", default=None,
        help="Only reconcile Sequences in this namespace",
    )
    p_run.set_defaults(func=_cmd_run)

    return parser


async def _cmd_apply(args: argparse.Namespace, settings: Settings) -> int:
    """Create or update every object in a manifest, then converge."""
    manifest: Path = args.manifest
    if not manifest.exists():
        logger.error("File not found: %s", manifest)
        return 1

    objects = _load_manifest(manifest)
    async with _Controller(settings) as ctl:
        for obj in objects:
            await _apply_object(ctl.store, obj)
        results = await ctl.dispatcher.run_until_idle()

    _print_results(results)
    return 0 if all(r.ok for r in _last_per_key(results)) else 1


async def _cmd_reconcile(args: argparse.Namespace, settings: Settings) -> int:
    """Run a single reconcile invocation and print its verdict."""
    async with _Controller(settings, watch=False) as ctl:
        result = await ctl.reconciler.reconcile(args.key)
    _print_results([result])
    return 0 if result.ok else 1


async def _cmd_get(args: argparse.Namespace, settings: Settings) -> int:
    """Print one stored object as JSON."""
    namespace, name = split_key(args.key)
    store = create_object_store(settings)
    try:
        obj = await store.get(RESOURCE_KINDS[args.kind], namespace, name)
    except NotFoundError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        await store.close()
    print(json.dumps(obj.model_dump(mode="json"), indent=2))
    return 0


async def _cmd_delete(args: argparse.Namespace, settings: Settings) -> int:
    """Request deletion of a Sequence, then let the controller finish it."""
    namespace, name = split_key(args.key)
    async with _Controller(settings) as ctl:
        try:
            await ctl.store.delete(Sequence, namespace, name)
        except NotFoundError as exc:
            logger.error("%s", exc)
            return 1
        results = await ctl.dispatcher.run_until_idle()
    _print_results(results)
    return 0


async def _cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    """Enqueue every stored Sequence and drain the queue."""
    async with _Controller(settings) as ctl:
        for sequence in await ctl.store.list(Sequence, args.namespace):
            ctl.dispatcher.enqueue(sequence.key)
        results = await ctl.dispatcher.run_until_idle()
    _print_results(results)
    return 0 if all(r.ok for r in _last_per_key(results)) else 1


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


class _Controller:
    """Store, reconciler and dispatcher wired from settings for one command."""

    def __init__(self, settings: Settings, watch: bool = True) -> None:
        self._settings = settings
        self._watch = watch
        self.call_logger = StoreCallLogger() if settings.track_store_calls else None
        self.store: BaseObjectStore
        self.reconciler: SequenceReconciler
        self.dispatcher: Dispatcher | None = None

    async def __aenter__(self) -> _Controller:
        self.store = create_object_store(self._settings, call_logger=self.call_logger)
        self.reconciler = SequenceReconciler(self.store, settings=self._settings)
        if self._watch:
            self.dispatcher = Dispatcher(
                self.store,
                self.reconciler,
                max_attempts=self._settings.dispatcher_max_attempts,
            )
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self.dispatcher is not None:
            self.dispatcher.close()
        await self.store.close()
        if self.call_logger is not None:
            self.call_logger.save(self._settings.store_calls_file)
            stats = self.call_logger.stats()
            logger.info(
                "Store calls: %d (%d writes, %d failed)",
                stats.total_calls, stats.writes, stats.failures,
            )


def _load_settings(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {}
    if args.store_backend:
        overrides["store_backend"] = args.store_backend
    if args.store_root:
        overrides["store_root"] = args.store_root
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    return load_settings(**overrides)


def _load_manifest(path: Path) -> list[Resource]:
    """Parse a manifest holding one object or a list of objects."""
    raw = json.loads(path.read_text(encoding="utf-8"))
    items = raw if isinstance(raw, list) else [raw]
    objects: list[Resource] = []
    for i, item in enumerate(items):
        kind = item.get("kind", "") if isinstance(item, dict) else ""
        cls = RESOURCE_KINDS.get(kind)
        if cls is None:
            raise ValueError(f"Manifest item {i}: unknown kind {kind!r}")
        objects.append(cls.model_validate(item))
    return objects


async def _apply_object(store: BaseObjectStore, obj: Resource) -> Resource:
    """Create ``obj`` or update the stored copy in place.

    Sequences are validated first and their spec may not change once
    stored.

    Raises:
        FieldError: If a Sequence is invalid or its spec changed.
    """
    meta = obj.metadata
    if isinstance(obj, Sequence):
        err = validate_sequence(obj)
        if err is not None:
            raise err

    try:
        current = await store.get(type(obj), meta.namespace, meta.name)
    except NotFoundError:
        created = await store.create(obj)
        logger.info("Created %s %s", created.KIND, created.key)
        return created

    if isinstance(obj, Sequence):
        # spec.generation is stamped by the store, not part of the manifest
        obj.spec.generation = current.spec.generation  # type: ignore[attr-defined]
        err = check_immutable_fields(obj, current)
        if err is not None:
            raise err
        logger.info("Sequence %s unchanged", obj.key)
        return current

    # Manifest content replaces the stored spec and status; identity stays.
    obj.metadata = current.metadata.model_copy(
        update={"labels": meta.labels or current.metadata.labels}
    )
    updated = await store.update(obj)
    logger.info("Updated %s %s", updated.KIND, updated.key)
    return updated


def _last_per_key(results: list[ReconcileResult]) -> list[ReconcileResult]:
    last: dict[str, ReconcileResult] = {}
    for result in results:
        last[result.key] = result
    return list(last.values())


def _print_results(results: list[ReconcileResult]) -> None:
    """Print the final verdict of each reconciled Sequence."""
    for result in _last_per_key(results):
        print(f"\n{result.key}: {result.outcome}")
        if result.error is not None:
            print(f"  Error:    {result.error}")
        print(f"  Hostname: {result.hostname or '-'}")
        for cond in result.conditions:
            line = f"  {cond.type:12s} {cond.status.value}"
            if cond.reason:
                line += f" ({cond.reason})"
            print(line)


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
