"""Release store for Pegasus.

The store is a directory holding one subdirectory per release, named by the
release identifier. A release is registered by copying the build output into
a hidden staging directory inside the store and renaming it to its final
name, so listings never observe a partially copied release. Deletion works in
reverse: the release is renamed to a hidden trash name, then removed.

Key classes:
- Release: Dataclass describing one published release.
- ReleaseStore: Lists, registers and deletes releases.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .errors import IncompleteArtifactError, StoreWriteError
from .utils import (
    has_files,
    is_release_id,
    next_release_id,
    release_sort_key,
    release_timestamp,
    remove_tree,
    tree_size,
)

logger = logging.getLogger(__name__)

STAGING_PREFIX = ".incoming-"
TRASH_PREFIX = ".trash-"
MAX_CLAIM_ATTEMPTS = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Release:
    """A published, immutable build output.

    Attributes:
        id: Timestamp-derived release identifier.
        path: Absolute path of the release directory.
    """

    id: str
    path: Path

    @property
    def created_at(self) -> datetime:
        """UTC creation time encoded in the identifier."""
        return release_timestamp(self.id)

    def size(self) -> int:
        """Total bytes of regular files in the release (walks the tree)."""
        return tree_size(self.path)


class ReleaseStore:
    """Directory of releases ordered by identifier.

    Attributes:
        root: Directory that holds the release subdirectories.
    """

    def __init__(self, root: Path, clock: Callable[[], datetime] = _utcnow):
        self.root = Path(root).absolute()
        self._clock = clock

    def ids(self) -> list[str]:
        """Return all release identifiers, oldest first."""
        if not self.root.is_dir():
            return []
        names = []
        with os.scandir(self.root) as entries:
            for entry in entries:
                if is_release_id(entry.name) and entry.is_dir(follow_symlinks=False):
                    names.append(entry.name)
        return sorted(names, key=release_sort_key)

    def iter_releases(self, newest_first: bool = True) -> Iterator[Release]:
        """Yield releases in identifier order.

        The directory is scanned when iteration starts, so each call sees the
        current state of the store.
        """
        ids = self.ids()
        if newest_first:
            ids.reverse()
        for release_id in ids:
            yield Release(release_id, self.root / release_id)

    def get(self, release_id: str) -> Release | None:
        """Return the release with this identifier, or None if it is not in the store."""
        if not is_release_id(release_id):
            return None
        path = self.root / release_id
        if not path.is_dir() or path.is_symlink():
            return None
        return Release(release_id, path)

    def __contains__(self, release_id: object) -> bool:
        return isinstance(release_id, str) and self.get(release_id) is not None

    def register(self, source: Path) -> Release:
        """Copy a build output tree into the store as a new release.

        Args:
            source: Complete static output directory.

        Returns:
            The newly registered release.

        Raises:
            IncompleteArtifactError: If source is missing, not a directory,
                or contains no files.
            StoreWriteError: If the copy or the final rename fails. Nothing
                is left visible in the store.
        """
        source = Path(source)
        if not source.is_dir():
            raise IncompleteArtifactError(
                "publish", f"build output {source} does not exist or is not a directory"
            )
        if not has_files(source):
            raise IncompleteArtifactError("publish", f"build output {source} is empty")

        staging = self.root / f"{STAGING_PREFIX}{uuid.uuid4().hex}"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            shutil.copytree(source, staging, symlinks=True)
            release_id = self._claim(staging)
        except OSError as exc:
            self._discard(staging)
            raise StoreWriteError(
                "publish", f"could not register {source} in {self.root}", cause=exc
            ) from exc
        except BaseException:
            # Interrupted before the rename: leave no trace.
            self._discard(staging)
            raise
        logger.debug("Registered %s from %s", release_id, source)
        return Release(release_id, self.root / release_id)

    def delete(self, release_id: str) -> None:
        """Remove a release from the store.

        The release is first renamed out of the listing, then its tree is
        removed.

        Raises:
            OSError: If the rename or the removal fails.
        """
        source = self.root / release_id
        trash = self.root / f"{TRASH_PREFIX}{release_id}-{uuid.uuid4().hex[:8]}"
        os.rename(source, trash)
        remove_tree(trash)

    def _claim(self, staging: Path) -> str:
        """Rename a staging directory to a fresh release identifier."""
        for _ in range(MAX_CLAIM_ATTEMPTS):
            candidate = next_release_id(self._clock(), self.ids())
            target = self.root / candidate
            if os.path.lexists(target):
                # Claimed by a concurrent publisher between listing and check.
                continue
            try:
                os.rename(staging, target)
            except OSError as exc:
                if exc.errno in (errno.EEXIST, errno.ENOTEMPTY):
                    continue
                raise
            return candidate
        raise OSError(
            errno.EEXIST,
            f"no free release identifier after {MAX_CLAIM_ATTEMPTS} attempts",
        )

    def _discard(self, staging: Path) -> None:
        if not os.path.lexists(staging):
            return
        try:
            remove_tree(staging)
        except OSError as exc:
            logger.warning("Could not remove staging directory %s: %s", staging, exc)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"ReleaseStore({self.root})"
