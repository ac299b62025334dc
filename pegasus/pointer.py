"""Live pointer backends for Pegasus.

The live pointer names the release that the web server serves. It is never
modified in place: a complete new pointer is created under a temporary name
in the same directory and substituted for the old one with ``os.replace``,
which is atomic on POSIX filesystems.

Key classes:
- SymlinkPointer: A symbolic link to the release directory (default).
- FilePointer: A text file holding the release identifier, for hosts where
  symlinks are unavailable.

Functions:
    create_pointer: Build a pointer backend from its configured kind.
"""

from __future__ import annotations

import logging
import os
import tempfile
import uuid
from pathlib import Path

from .errors import PointerSwapError
from .utils import is_release_id

logger = logging.getLogger(__name__)

POINTER_KINDS = ("symlink", "file")


class SymlinkPointer:
    """Live pointer implemented as a relative symbolic link.

    Attributes:
        path: Location of the symlink (e.g. ``/srv/site/current``).
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> str | None:
        try:
            target = os.readlink(self._path)
        except FileNotFoundError:
            return None
        except OSError:
            # Exists but is not a link; nothing Pegasus manages.
            logger.warning("Live pointer %s is not a symlink", self._path)
            return None
        release_id = Path(target).name
        if not is_release_id(release_id):
            logger.warning(
                "Live pointer %s references %s, which is not a release", self._path, target
            )
            return None
        return release_id

    def targets(self, target: Path) -> bool:
        # Compare resolved locations; a link with a matching name elsewhere
        # (moved store, absolute link from an old deploy) is foreign.
        if not os.path.islink(self._path):
            return False
        return os.path.realpath(self._path) == os.path.realpath(target)

    def swap(self, release_id: str, target: Path) -> None:
        parent = self._path.parent
        link_target = os.path.relpath(Path(target).resolve(), parent.resolve())
        tmp_link = parent / f".{self._path.name}.tmp-{uuid.uuid4().hex}"
        try:
            parent.mkdir(parents=True, exist_ok=True)
            os.symlink(link_target, tmp_link, target_is_directory=True)
            os.replace(tmp_link, self._path)
        except OSError as exc:
            _discard(tmp_link)
            raise PointerSwapError(
                "activate", f"could not replace {self._path}", release_id, exc
            ) from exc
        logger.debug("Swapped %s -> %s", self._path, link_target)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"SymlinkPointer({self._path})"


class FilePointer:
    """Live pointer implemented as a file containing the release identifier.

    The file is written to a temporary sibling, flushed to disk, and renamed
    over the old file.

    Attributes:
        path: Location of the pointer file.
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> str | None:
        try:
            content = self._path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        if not content:
            return None
        if not is_release_id(content):
            logger.warning("Pointer file %s holds %r, not a release", self._path, content)
            return None
        return content

    def targets(self, target: Path) -> bool:
        # The file only names a release; the server maps it into the store.
        return self.read() == Path(target).name

    def swap(self, release_id: str, target: Path) -> None:
        parent = self._path.parent
        tmp_path: str | None = None
        try:
            parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(parent), prefix=f".{self._path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(release_id + "\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self._path)
        except OSError as exc:
            if tmp_path is not None:
                _discard(Path(tmp_path))
            raise PointerSwapError(
                "activate", f"could not replace {self._path}", release_id, exc
            ) from exc
        logger.debug("Wrote %s -> %s", self._path, release_id)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"FilePointer({self._path})"


def create_pointer(kind: str, path: Path) -> SymlinkPointer | FilePointer:
    """Create a live pointer backend.

    Args:
        kind: Either "symlink" or "file".
        path: Location of the pointer artifact.

    Returns:
        The pointer backend.

    Raises:
        ValueError: If kind is unknown.
    """
    if kind == "symlink":
        return SymlinkPointer(path)
    if kind == "file":
        return FilePointer(path)
    raise ValueError(f"Unknown pointer kind: {kind!r} (expected one of {POINTER_KINDS})")


def _discard(path: Path) -> None:
    """Remove a leftover temporary pointer, ignoring a missing file."""
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove temporary pointer %s: %s", path, exc)
