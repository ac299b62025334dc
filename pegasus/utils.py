"""Utility functions for Pegasus.

This module contains helpers used throughout the Pegasus codebase.
These include release identifier handling, tree inspection and removal,
and formatting for the CLI.

Key functions:
    format_release_id: Build an identifier from a timestamp and counter.
    parse_release_id: Split an identifier into timestamp and counter.
    release_sort_key: Sort key consistent with creation order.
    next_release_id: Allocate an identifier newer than every existing one.
    bump_release_id: Next identifier after a collision.
    has_files: Check that a tree contains at least one regular file.
    tree_size: Total size of regular files under a tree.
    remove_tree: Delete a directory tree, raising on failure.
    format_size: Human-readable byte count.
"""

from __future__ import annotations

import os
import re
import shutil
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
RELEASE_ID_RE = re.compile(r"^(\d{14})(?:-(\d{2,}))?$")


def format_release_id(timestamp: str, counter: int = 0) -> str:
    """Build a release identifier from a timestamp string and counter.

    Args:
        timestamp: Timestamp formatted with TIMESTAMP_FORMAT.
        counter: Collision counter; 0 means no suffix.

    Returns:
        Release identifier string.

    Examples:
        >>> format_release_id("20240115093000")
        '20240115093000'

        >>> format_release_id("20240115093000", 3)
        '20240115093000-03'
    """
    if counter <= 0:
        return timestamp
    return f"{timestamp}-{counter:02d}"


def parse_release_id(release_id: str) -> tuple[str, int] | None:
    """Split a release identifier into its timestamp and counter.

    Args:
        release_id: Candidate identifier (usually a directory name).

    Returns:
        Tuple of (timestamp, counter), or None if the name is not a valid
        release identifier.
    """
    match = RELEASE_ID_RE.match(release_id)
    if not match:
        return None
    timestamp, counter = match.groups()
    try:
        datetime.strptime(timestamp, TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return timestamp, int(counter) if counter else 0


def is_release_id(name: str) -> bool:
    """Check if a name (usually a directory name) is a valid release identifier."""
    return parse_release_id(name) is not None


def release_sort_key(release_id: str) -> tuple[str, int]:
    """Sort key for release identifiers, ascending by creation order.

    Args:
        release_id: A valid release identifier.

    Returns:
        Tuple of (timestamp, counter).

    Raises:
        ValueError: If release_id is not a valid identifier.
    """
    parsed = parse_release_id(release_id)
    if parsed is None:
        raise ValueError(f"Not a release identifier: {release_id!r}")
    return parsed


def release_timestamp(release_id: str) -> datetime:
    """Return the UTC creation time encoded in a release identifier."""
    timestamp, _ = release_sort_key(release_id)
    return datetime.strptime(timestamp, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def next_release_id(now: datetime, existing: Iterable[str]) -> str:
    """Allocate an identifier strictly newer than every existing identifier.

    The identifier is the current time at second resolution. If that would
    not sort after the newest existing release (same second, or a clock that
    went backwards), the newest timestamp is reused with the next counter.

    Args:
        now: Current time; converted to UTC.
        existing: Identifiers already present in the store.

    Returns:
        New release identifier.
    """
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    timestamp = now.strftime(TIMESTAMP_FORMAT)
    keys = [release_sort_key(r) for r in existing if is_release_id(r)]
    if not keys:
        return timestamp
    newest_ts, newest_counter = max(keys)
    if timestamp > newest_ts:
        return timestamp
    return format_release_id(newest_ts, newest_counter + 1)


def bump_release_id(release_id: str) -> str:
    """Return the identifier that follows release_id within the same second."""
    timestamp, counter = release_sort_key(release_id)
    return format_release_id(timestamp, counter + 1)


def has_files(path: Path) -> bool:
    """Check if a directory tree contains at least one regular file.

    Args:
        path: Directory to inspect.

    Returns:
        True if any regular file exists under path.
    """
    for root, _dirs, files in os.walk(path):
        for name in files:
            if os.path.isfile(os.path.join(root, name)):
                return True
    return False


def tree_size(path: Path) -> int:
    """Total size in bytes of the regular files under path (symlinks not followed)."""
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            file_path = os.path.join(root, name)
            if not os.path.islink(file_path):
                total += os.path.getsize(file_path)
    return total


def remove_tree(path: Path) -> None:
    """Delete a directory tree.

    Unlike shutil.rmtree(ignore_errors=True), failures propagate as OSError.

    Args:
        path: Directory to remove.
    """
    shutil.rmtree(str(path))


def format_size(num_bytes: int) -> str:
    """Format a byte count for display.

    Examples:
        >>> format_size(512)
        '512 B'

        >>> format_size(2048)
        '2.0 KB'
    """
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            if unit == "B":
                return f"{int(size)} B"
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"  # pragma: no cover
