"""Configuration loading for Pegasus.

Settings live in ``pegasus.yaml`` at the project (deploy) root. Missing keys
fall back to DEFAULT_CONFIG; relative paths resolve against the project root.

Key functions:
- load_config: Load raw configuration from pegasus.yaml.
- resolve_settings: Validate configuration and resolve paths into Settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .manager import DEFAULT_RETAIN, ReleaseManager
from .pointer import POINTER_KINDS, create_pointer
from .store import ReleaseStore

CONFIG_FILENAME = "pegasus.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "releases_dir": "releases",
    "current": "current",
    "retain": DEFAULT_RETAIN,
    "pointer": "symlink",
    "build_command": None,
    "build_output": "output",
}


@dataclass
class Settings:
    """Validated configuration with absolute paths.

    Attributes:
        project_root: Directory holding pegasus.yaml.
        releases_dir: Release store directory.
        current_path: Location of the live pointer.
        retain: Default retention count for prune.
        pointer: Pointer backend kind ("symlink" or "file").
        build_command: Optional site generator command line.
        build_output: Directory the build command writes to.
    """

    project_root: Path
    releases_dir: Path
    current_path: Path
    retain: int
    pointer: str
    build_command: str | None
    build_output: Path

    def manager(self) -> ReleaseManager:
        """Create a ReleaseManager for these settings."""
        return ReleaseManager(
            ReleaseStore(self.releases_dir),
            create_pointer(self.pointer, self.current_path),
        )


def load_config(project_root: Path, config_path: Path | None = None) -> dict[str, Any]:
    """Load configuration from pegasus.yaml.

    Args:
        project_root: Root directory of the project.
        config_path: Explicit config file; defaults to project_root/pegasus.yaml.

    Returns:
        Dictionary containing configuration values, with defaults applied.

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping.
    """
    path = config_path or project_root / CONFIG_FILENAME
    config = DEFAULT_CONFIG.copy()
    if path.exists():
        with open(path, encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(str(path), f"invalid YAML: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigError(str(path), "expected a mapping at the top level")
        config.update(loaded)
    return config


def resolve_settings(
    project_root: Path, config: dict[str, Any], **overrides: Any
) -> Settings:
    """Validate configuration and resolve paths.

    Args:
        project_root: Root directory relative paths resolve against.
        config: Raw configuration, usually from load_config.
        **overrides: Values that take precedence over config (None is ignored).

    Returns:
        Settings instance.

    Raises:
        ConfigError: If a value has the wrong type or is out of range.
    """
    merged = dict(config)
    merged.update({k: v for k, v in overrides.items() if v is not None})
    root = Path(project_root).absolute()

    retain = merged.get("retain")
    if isinstance(retain, bool) or not isinstance(retain, int):
        raise ConfigError("retain", f"expected an integer, got {retain!r}")
    if retain < 1:
        raise ConfigError("retain", f"must be at least 1, got {retain}")

    pointer = merged.get("pointer")
    if pointer not in POINTER_KINDS:
        raise ConfigError(
            "pointer", f"expected one of {', '.join(POINTER_KINDS)}, got {pointer!r}"
        )

    build_command = merged.get("build_command")
    if build_command is not None and not isinstance(build_command, str):
        raise ConfigError("build_command", "expected a string command line")

    return Settings(
        project_root=root,
        releases_dir=_resolve_path(root, merged, "releases_dir"),
        current_path=_resolve_path(root, merged, "current"),
        retain=retain,
        pointer=pointer,
        build_command=build_command or None,
        build_output=_resolve_path(root, merged, "build_output"),
    )


def _resolve_path(root: Path, config: dict[str, Any], key: str) -> Path:
    value = config.get(key)
    if not isinstance(value, (str, Path)) or not str(value):
        raise ConfigError(key, f"expected a path, got {value!r}")
    path = Path(value).expanduser()
    return path if path.is_absolute() else root / path
