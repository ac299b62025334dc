"""Protocol definitions for Pegasus.

This module defines the interfaces used by the release manager, so that the
live pointer backend and the build step can be swapped or faked in tests.
"""

from __future__ import annotations

from abc import abstractmethod
from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class LivePointer(Protocol):
    """Protocol for the single reference naming the live release.

    Implementations must replace the reference in one indivisible step:
    a concurrent reader observes either the old target or the new one,
    never a missing or half-written reference.
    """

    @property
    @abstractmethod
    def path(self) -> Path:
        """Location of the pointer artifact."""
        ...

    @abstractmethod
    def read(self) -> str | None:
        """Return the release identifier the pointer names.

        Returns:
            Release identifier, or None if the pointer is unset.
        """
        ...

    @abstractmethod
    def targets(self, target: Path) -> bool:
        """Check whether the pointer currently resolves to a release directory.

        Args:
            target: Directory of a release in the store.

        Returns:
            True if what the pointer serves is exactly that directory.
        """
        ...

    @abstractmethod
    def swap(self, release_id: str, target: Path) -> None:
        """Atomically repoint to a release.

        Args:
            release_id: Identifier of the release to make live.
            target: Directory of that release.

        Raises:
            PointerSwapError: If the replacement cannot be performed. The
                pointer keeps its prior value.
        """
        ...


@runtime_checkable
class ArtifactBuilder(Protocol):
    """Protocol for producing a static output tree before publishing."""

    @abstractmethod
    def build(self) -> Path:
        """Run the build.

        Returns:
            Path to the complete output directory.

        Raises:
            BuildCommandError: If the build fails.
        """
        ...
