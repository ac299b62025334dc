"""Build step for Pegasus.

Runs the project's static site generator (configured as ``build_command``)
and checks that it produced a non-empty output directory. The generator is
treated as a black box; only its exit status and output tree matter.

Key classes:
- CommandBuilder: ArtifactBuilder that runs an external command.

Functions:
    find_executable: Locate a program in PATH or the project's node_modules.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from pathlib import Path

from .errors import BuildCommandError
from .utils import has_files

logger = logging.getLogger(__name__)


def find_executable(name: str, project_root: Path | None = None) -> str | None:
    """Find an executable in PATH or local node_modules.

    Args:
        name: Program name (e.g. 'hugo', 'eleventy').
        project_root: Optional project root to search node_modules/.bin in.

    Returns:
        Full path to the executable if found, None otherwise.
    """
    found = shutil.which(name)
    if found:
        return found
    if project_root is not None:
        local = project_root / "node_modules" / ".bin" / name
        if local.exists():
            return str(local)
    return None


class CommandBuilder:
    """Runs an external build command and returns its output directory.

    Attributes:
        project_root: Directory the command runs in.
        command: Argument vector of the build command.
        output_dir: Directory the command is expected to fill.
    """

    def __init__(self, project_root: Path, command: str | list[str], output_dir: Path):
        self.project_root = Path(project_root)
        self.command = shlex.split(command) if isinstance(command, str) else list(command)
        self.output_dir = Path(output_dir)
        if not self.command:
            raise ValueError("build command is empty")

    def build(self) -> Path:
        program = find_executable(self.command[0], self.project_root)
        if program is None:
            raise BuildCommandError(
                self.command, f"Build program not found: {self.command[0]}"
            )
        argv = [program, *self.command[1:]]
        logger.info("Running build: %s", shlex.join(self.command))
        try:
            result = subprocess.run(
                argv, cwd=self.project_root, capture_output=True, text=True
            )
        except OSError as exc:
            raise BuildCommandError(
                self.command, f"Could not run build command: {exc}"
            ) from exc
        if result.returncode != 0:
            raise BuildCommandError(
                self.command,
                f"Build command exited with status {result.returncode}",
                returncode=result.returncode,
                output=(result.stderr or result.stdout or "").strip(),
            )
        if not self.output_dir.is_dir() or not has_files(self.output_dir):
            raise BuildCommandError(
                self.command,
                f"Build command produced no files in {self.output_dir}",
                returncode=result.returncode,
            )
        return self.output_dir
