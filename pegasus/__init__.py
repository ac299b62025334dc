"""Pegasus release manager.

This package turns the output directory of a static site generator into
timestamped, immutable releases and makes one of them live by atomically
swapping a pointer (a symbolic link by default).

The main entry point is the CLI module, which provides commands for publishing,
activating, pruning and rolling back releases.

Architecture:
- store: Release store directory and identifier assignment.
- pointer: Live pointer backends (symlink or pointer file).
- manager: ReleaseManager tying store and pointer together.
- builder: Optional runner for the external site generator command.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
