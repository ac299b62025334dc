"""Release manager for Pegasus.

This module contains the state machine that moves a build from "published"
to "live": publishing a build output as a new release, atomically activating
a release, pruning old releases, and rolling back to an earlier release.

Publishing never changes the live pointer; activation is always an explicit,
separate step so an approval gate can sit between the two.

Key classes:
- ReleaseManager: Owns the release store and the live pointer.
- PruneResult: Outcome of a prune operation.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from .errors import (
    NoPriorReleaseError,
    PruneError,
    UnknownReleaseError,
)
from .protocols import LivePointer
from .store import Release, ReleaseStore
from .utils import release_sort_key

logger = logging.getLogger(__name__)

DEFAULT_RETAIN = 7


@dataclass
class PruneResult:
    """Result of a prune operation.

    Attributes:
        deleted: Identifiers of the releases that were deleted (or, for a dry
            run, would be deleted).
        kept: Identifiers of the releases left in the store, newest first.
        dry_run: Whether the deletions were only planned.
    """

    deleted: list[str] = field(default_factory=list)
    kept: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def count(self) -> int:
        return len(self.deleted)


class ReleaseManager:
    """Publishes, activates, prunes and rolls back releases.

    Attributes:
        store: The release store.
        pointer: The live pointer backend.
    """

    def __init__(self, store: ReleaseStore, pointer: LivePointer):
        self.store = store
        self.pointer = pointer

    def list(self) -> Iterator[Release]:
        """Yield all releases, newest first, reading the store afresh."""
        yield from self.store.iter_releases(newest_first=True)

    def current(self) -> Release | None:
        """Return the live release, or None if the pointer is unset or dangling."""
        release_id = self.pointer.read()
        if release_id is None:
            return None
        release = self.store.get(release_id)
        if release is None:
            logger.warning(
                "Live pointer %s references missing release %s",
                self.pointer.path,
                release_id,
            )
            return None
        if not self.pointer.targets(release.path):
            logger.warning(
                "Live pointer %s references %s outside %s",
                self.pointer.path,
                release_id,
                self.store.root,
            )
            return None
        return release

    def publish(self, build_output: Path) -> Release:
        """Register a complete build output as a new release.

        The live pointer is not touched; call activate() to make the release
        live.

        Args:
            build_output: Fully materialized static output directory.

        Returns:
            The new release.

        Raises:
            IncompleteArtifactError: If build_output is missing or empty.
            StoreWriteError: If the release cannot be registered.
        """
        release = self.store.register(Path(build_output))
        logger.info("Published release %s", release.id)
        return release

    def activate(self, release_id: str) -> Release:
        """Atomically make a release live.

        Activating the release that is already live succeeds without
        touching the pointer.

        Raises:
            UnknownReleaseError: If release_id is not in the store.
            PointerSwapError: If the pointer cannot be replaced; it keeps
                its prior value.
        """
        release = self.store.get(release_id)
        if release is None:
            raise UnknownReleaseError("activate", "no such release", release_id)
        previous = self.pointer.read()
        if previous == release.id and self.pointer.targets(release.path):
            logger.info("Release %s is already live", release.id)
            return release
        self.pointer.swap(release.id, release.path)
        logger.info("Activated release %s (was %s)", release.id, previous or "unset")
        return release

    def rollback(self, to_release_id: str | None = None) -> Release:
        """Point the live pointer at an earlier release.

        Args:
            to_release_id: Release to make live. When omitted, the newest
                release strictly older than the live one is chosen, computed
                from the store on every call.

        Returns:
            The release that is now live.

        Raises:
            UnknownReleaseError: If an explicit target does not exist.
            NoPriorReleaseError: If no release is older than the live one.
        """
        if to_release_id is not None:
            if self.store.get(to_release_id) is None:
                raise UnknownReleaseError("rollback", "no such release", to_release_id)
            return self.activate(to_release_id)

        live = self.pointer.read()
        if live is None:
            raise NoPriorReleaseError("rollback", "no release is live")
        target = self.previous(live)
        if target is None:
            raise NoPriorReleaseError("rollback", "no release older than the live one", live)
        logger.info("Rolling back from %s to %s", live, target)
        return self.activate(target)

    def previous(self, release_id: str) -> str | None:
        """Return the newest release identifier strictly older than release_id."""
        key = release_sort_key(release_id)
        older = [r for r in self.store.ids() if release_sort_key(r) < key]
        return older[-1] if older else None

    def prune(self, retain: int = DEFAULT_RETAIN, dry_run: bool = False) -> PruneResult:
        """Delete releases beyond the newest ``retain``, never the live one.

        The live pointer is read once up front and again before each
        deletion, so a release activated while pruning is not deleted.

        Args:
            retain: Number of newest releases to keep; must be at least 1.
            dry_run: Only compute which releases would be deleted.

        Returns:
            PruneResult listing deleted and kept identifiers.

        Raises:
            ValueError: If retain is less than 1.
            PruneError: If any deletion failed. Other deletions still ran and
                are not undone.
        """
        if retain < 1:
            raise ValueError(f"retain must be at least 1, got {retain}")

        live_at_start = self.pointer.read()
        newest_first = list(reversed(self.store.ids()))
        candidates = [r for r in newest_first[retain:] if r != live_at_start]
        result = PruneResult(dry_run=dry_run)
        if dry_run:
            result.deleted = candidates
            result.kept = [r for r in newest_first if r not in candidates]
            return result

        failures: dict[str, BaseException] = {}
        for release_id in candidates:
            if self.pointer.read() == release_id:
                logger.warning("Skipping %s: it became live during prune", release_id)
                continue
            try:
                self.store.delete(release_id)
            except OSError as exc:
                logger.warning("Could not delete release %s: %s", release_id, exc)
                failures[release_id] = exc
                continue
            logger.info("Deleted release %s", release_id)
            result.deleted.append(release_id)

        result.kept = [r for r in newest_first if r not in result.deleted]
        if failures:
            raise PruneError(failures, deleted=result.deleted)
        return result
