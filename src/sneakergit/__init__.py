"""sneakergit: move git history between offline machines on removable media."""

from ._git import Repository
from .bundle import (
    ApplyReport,
    ArtifactKind,
    BundleReport,
    TransferRange,
    TransferStatus,
    apply_bundle,
    create_bundle,
    transfer_status,
)
from .exceptions import (
    AmbiguousArtifactError,
    ArtifactError,
    ArtifactMissingError,
    GitError,
    IdentityError,
    MediumBusyError,
    MergeConflictError,
    NothingToBundleError,
    PathError,
    RemoteHandleConflictError,
    SneakergitError,
    StepFailureError,
    VerificationError,
    WatermarkError,
)
from .identity import resolve_identity
from .medium import Medium
from .squash import DEFAULT_SQUASH_MESSAGE

__version__ = "0.1.0"

__all__ = [
    "Repository", "Medium", "resolve_identity", "DEFAULT_SQUASH_MESSAGE",
    "create_bundle", "apply_bundle", "transfer_status",
    "ApplyReport", "ArtifactKind", "BundleReport", "TransferRange", "TransferStatus",
    "SneakergitError", "PathError", "IdentityError", "GitError", "StepFailureError",
    "NothingToBundleError", "ArtifactMissingError", "VerificationError", "ArtifactError",
    "AmbiguousArtifactError", "RemoteHandleConflictError", "MergeConflictError",
    "MediumBusyError", "WatermarkError",
]
