"""Exceptions for sneakergit."""

from __future__ import annotations


class SneakergitError(Exception):
    """Base class for every error raised by sneakergit."""


class PathError(SneakergitError):
    """Raised when the repository or medium path does not exist."""


class IdentityError(SneakergitError):
    """Raised when a path does not resolve to a usable git repository."""


class GitError(SneakergitError):
    """Raised when a git command exits with a non-zero status.

    Attributes:
        args_: The git arguments (without the executable).
        stderr: Captured standard error, stripped.
    """

    def __init__(self, message: str, *, args_: tuple[str, ...] = (), stderr: str = ""):
        super().__init__(message)
        self.args_ = args_
        self.stderr = stderr


class StepFailureError(GitError):
    """Raised when a step of a producer operation fails.

    The operation is aborted; the watermark is not written.
    """


class NothingToBundleError(SneakergitError):
    """Raised when there are no commits to export since the last bundle."""


class ArtifactMissingError(SneakergitError):
    """Raised when the expected bundle is not on the medium."""


class VerificationError(SneakergitError):
    """Raised when a bundle fails ``git bundle verify``."""


class ArtifactError(SneakergitError):
    """Raised when a verified bundle cannot be integrated as-is."""


class AmbiguousArtifactError(ArtifactError):
    """Raised when more than one ref qualifies as the bundle's merge source."""


class RemoteHandleConflictError(SneakergitError):
    """Raised when adding a remote whose name is already registered."""


class MergeConflictError(SneakergitError):
    """Raised when merging a bundle leaves conflicted paths.

    The repository is left mid-merge for manual resolution.
    """

    def __init__(self, message: str, paths: list[str] | None = None):
        super().__init__(message)
        self.paths = paths or []


class MediumBusyError(SneakergitError):
    """Raised when another process holds the medium lock for a repository."""


class WatermarkError(SneakergitError):
    """Raised when the watermark file on the medium is not a commit id."""
