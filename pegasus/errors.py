"""Error types for Pegasus.

Every failure surfaced to the operator carries the operation that failed,
the release identifier involved (when there is one) and the underlying cause,
so the invoking automation can decide whether to retry.

Key classes:
- PegasusError: Base class for all Pegasus errors.
- ReleaseError: Base class for release manager failures.
- ConfigError: Invalid pegasus.yaml or CLI configuration.
- BuildCommandError: The external site generator command failed.
"""

from __future__ import annotations

from collections.abc import Mapping


class PegasusError(Exception):
    """Base class for all Pegasus errors."""


class ConfigError(PegasusError):
    """Invalid configuration value.

    Attributes:
        key: Configuration key that failed validation.
        message: Human-readable error message.
    """

    def __init__(self, key: str, message: str):
        self.key = key
        self.message = message
        super().__init__(f"{key}: {message}")


class BuildCommandError(PegasusError):
    """The configured build command failed or produced no output.

    Attributes:
        command: Command line that was run.
        message: Human-readable error message.
        returncode: Exit status of the command, if it ran.
        output: Captured stderr (or stdout) of the command.
    """

    def __init__(
        self,
        command: list[str],
        message: str,
        returncode: int | None = None,
        output: str = "",
    ):
        self.command = command
        self.message = message
        self.returncode = returncode
        self.output = output
        super().__init__(message)


class ReleaseError(PegasusError):
    """Failure of a release manager operation.

    Attributes:
        operation: Name of the operation that failed (publish, activate, ...).
        release_id: Release involved in the failure, if any.
        message: Human-readable error message.
        cause: The original exception, if the failure wraps one.
    """

    def __init__(
        self,
        operation: str,
        message: str,
        release_id: str | None = None,
        cause: BaseException | None = None,
    ):
        self.operation = operation
        self.release_id = release_id
        self.message = message
        self.cause = cause
        super().__init__(self._format())

    def _format(self) -> str:
        parts = [f"{self.operation}:"]
        if self.release_id:
            parts.append(f"[{self.release_id}]")
        parts.append(self.message)
        if self.cause is not None:
            parts.append(f"({type(self.cause).__name__}: {self.cause})")
        return " ".join(parts)


class IncompleteArtifactError(ReleaseError):
    """The build output handed to publish is missing or empty."""


class StoreWriteError(ReleaseError):
    """A release could not be durably registered in the store."""


class UnknownReleaseError(ReleaseError):
    """The requested release identifier is not in the store."""


class PointerSwapError(ReleaseError):
    """The live pointer could not be replaced; it keeps its prior value."""


class NoPriorReleaseError(ReleaseError):
    """Rollback found no release older than the live one."""


class PruneError(ReleaseError):
    """One or more releases could not be deleted during prune.

    Attributes:
        failures: Mapping of release identifier to the exception raised while
            deleting it.
        deleted: Identifiers that were deleted successfully before and after
            the failures.
    """

    def __init__(
        self,
        failures: Mapping[str, BaseException],
        deleted: list[str] | None = None,
    ):
        self.failures = dict(failures)
        self.deleted = list(deleted or [])
        summary = ", ".join(
            f"{release_id} ({exc})" for release_id, exc in self.failures.items()
        )
        super().__init__(
            "prune",
            f"failed to delete {len(self.failures)} release(s): {summary}",
        )
