"""Create bundles on the transfer medium and apply them on the other side.

Producer (:func:`create_bundle`)::

    report = create_bundle("~/src/project", "/media/usb")
    report = create_bundle("~/src/project", "/media/usb", squash=True,
                           message="Snapshot for review")

Consumer (:func:`apply_bundle`)::

    report = apply_bundle("~/src/project", "/media/usb")

Incremental exports record the exported HEAD in a watermark file on the
medium; the next export only bundles ``watermark..HEAD``.  Squash exports
bundle one root commit holding the current work tree and leave the
watermark alone.
"""

from __future__ import annotations

import enum
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from ._git import Repository
from .exceptions import (
    AmbiguousArtifactError,
    ArtifactError,
    ArtifactMissingError,
    GitError,
    NothingToBundleError,
    StepFailureError,
    VerificationError,
)
from .identity import resolve_identity
from .medium import Medium, medium_lock, require_dir
from .squash import (
    DEFAULT_SQUASH_MESSAGE,
    LEGACY_SQUASH_PREFIX,
    SQUASH_PREFIX,
    _step,
    is_squash_branch,
    squash_snapshot,
)

__all__ = [
    "ArtifactKind", "TransferRange", "BundleReport", "ApplyReport", "TransferStatus",
    "create_bundle", "apply_bundle", "transfer_status", "compute_range",
    "classify_refs", "transient_remote", "TRANSFER_REMOTE",
]

TRANSFER_REMOTE = "sneakergit-transfer"
SQUASH_PREFIXES = (SQUASH_PREFIX, LEGACY_SQUASH_PREFIX)

Progress = Callable[[str], None]


class ArtifactKind(enum.Enum):
    FULL = "full"                # entire reachable history
    INCREMENTAL = "incremental"  # watermark..HEAD
    SQUASH = "squash"            # single orphan snapshot commit
    HISTORY = "history"          # consumer side: FULL or INCREMENTAL


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransferRange:
    """History an incremental-mode export covers.

    Attributes:
        head: Commit id of HEAD at export time.
        branch: Branch HEAD points at (None if detached).
        since: Watermark commit id; None for a first, full export.
    """
    head: str
    branch: str | None
    since: str | None = None

    @property
    def is_full(self) -> bool:
        return self.since is None

    @property
    def kind(self) -> ArtifactKind:
        return ArtifactKind.FULL if self.is_full else ArtifactKind.INCREMENTAL

    def rev_args(self) -> list[str]:
        """Arguments for ``git bundle create``.

        Full exports take every ref except leftover squash branches; the
        squash prefix marks squash bundles only.
        """
        if self.is_full:
            return [f"--exclude=refs/heads/{prefix}*" for prefix in SQUASH_PREFIXES] + ["--all"]
        return [self.branch, f"^{self.since}"]

    def __str__(self) -> str:
        if self.is_full:
            return "all history"
        return f"{self.since[:7]}..{self.head[:7]}"


@dataclass
class BundleReport:
    """Result of :func:`create_bundle`.

    Attributes:
        path: Bundle location on the medium.
        kind: FULL, INCREMENTAL or SQUASH.
        range: The exported range (None for squash bundles).
        commit: Commit the bundle ends at (HEAD, or the snapshot commit).
        watermark_written: True if the watermark file was updated.
        dry_run: True if nothing was written.
    """
    path: str
    kind: ArtifactKind
    range: TransferRange | None = None
    commit: str | None = None
    watermark_written: bool = False
    dry_run: bool = False


@dataclass
class ApplyReport:
    """Result of :func:`apply_bundle`.

    Attributes:
        path: Bundle location on the medium.
        kind: SQUASH or HISTORY.
        ref: The bundle branch that was merged.
        head: Local HEAD after the merge.
    """
    path: str
    kind: ArtifactKind
    ref: str
    head: str | None = None


@dataclass
class TransferStatus:
    """Read-only view of a repository's state on the medium."""
    name: str
    artifact_path: str
    artifact_exists: bool
    watermark: str | None
    head: str | None
    branch: str | None
    watermark_is_ancestor: bool | None = None

    @property
    def pending(self) -> bool:
        """True if an incremental export would have commits to bundle."""
        return self.head is not None and self.head != self.watermark


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _open(repo_path, medium_path) -> tuple[Repository, Medium]:
    """Validate both paths and resolve the medium for this repository."""
    repo_dir = require_dir(repo_path, "Repository")
    medium_dir = require_dir(medium_path, "USB/transfer")
    repo = Repository.open(repo_dir)
    return repo, Medium(medium_dir, resolve_identity(repo))


def compute_range(repo: Repository, medium: Medium) -> TransferRange:
    """Work out what an incremental-mode export would bundle.

    Raises :class:`NothingToBundleError` if HEAD has no commits or has not
    moved since the watermark.
    """
    head = repo.head()
    if head is None:
        raise NothingToBundleError(f"Nothing to bundle: {repo.path} has no commits")
    since = medium.read_watermark()
    if since is None:
        return TransferRange(head=head, branch=repo.current_branch())
    if since == head:
        raise NothingToBundleError(
            f"Nothing to bundle: {medium.name} already bundled up to {head[:7]}"
        )
    branch = repo.current_branch()
    if branch is None:
        raise StepFailureError("HEAD is detached; check out a branch before bundling")
    return TransferRange(head=head, branch=branch, since=since)


def classify_refs(refs: dict[str, str], current_branch: str | None) -> tuple[ArtifactKind, str]:
    """Pick the merge source among the branches a bundle exposes.

    *refs* maps short branch names to commit ids.  Returns ``(kind,
    branch)``.  Squash branches take precedence; two or more of them, or
    several ordinary branches none of which matches *current_branch*, are
    ambiguous.
    """
    squashed = sorted(name for name in refs if is_squash_branch(name))
    if len(squashed) > 1:
        raise AmbiguousArtifactError(
            f"Bundle holds {len(squashed)} squash snapshots: {', '.join(squashed)}"
        )
    if squashed:
        return ArtifactKind.SQUASH, squashed[0]
    if not refs:
        raise ArtifactError("Bundle exposes no branches to merge")
    if current_branch is not None and current_branch in refs:
        return ArtifactKind.HISTORY, current_branch
    if len(refs) == 1:
        return ArtifactKind.HISTORY, next(iter(refs))
    raise AmbiguousArtifactError(
        f"Bundle holds branches {', '.join(sorted(refs))}; "
        f"check out one of them before applying"
    )


@contextmanager
def transient_remote(
    repo: Repository, name: str, url: str, *, progress: Progress | None = None,
) -> Iterator[str]:
    """Register remote *name* for the duration of the block.

    A leftover remote of the same name is replaced.  The remote, and the
    refs fetched through it, are removed on exit whatever happens inside.
    """
    if name in repo.remote_names():
        if progress:
            progress(f"Remote {name} already exists, removing...")
        repo.remove_remote(name)
    repo.add_remote(name, url)
    try:
        yield name
    finally:
        if name in repo.remote_names():
            repo.remove_remote(name)


# ---------------------------------------------------------------------------
# Producer
# ---------------------------------------------------------------------------

def create_bundle(
    repo_path: str | os.PathLike,
    medium_path: str | os.PathLike,
    *,
    squash: bool = False,
    message: str = DEFAULT_SQUASH_MESSAGE,
    dry_run: bool = False,
    progress: Progress | None = None,
) -> BundleReport:
    """Write the repository's bundle to the medium.

    With *squash*, the bundle holds a single commit with the current work
    tree.  Otherwise it holds everything since the watermark (or all
    history on first use) and the watermark is advanced to HEAD.
    """
    repo, medium = _open(repo_path, medium_path)
    with medium_lock(medium):
        if squash:
            return _create_squash_bundle(repo, medium, message, dry_run, progress)
        return _create_range_bundle(repo, medium, dry_run, progress)


def _create_squash_bundle(repo, medium, message, dry_run, progress) -> BundleReport:
    if progress:
        progress(f"Creating squashed bundle with message: {message}")
    if dry_run:
        return BundleReport(path=medium.artifact_path, kind=ArtifactKind.SQUASH, dry_run=True)
    with squash_snapshot(repo, message, progress=progress) as snap:
        _step("git bundle create",
              lambda: repo.create_bundle(medium.artifact_path, [snap.branch]))
    return BundleReport(path=medium.artifact_path, kind=ArtifactKind.SQUASH, commit=snap.commit)


def _create_range_bundle(repo, medium, dry_run, progress) -> BundleReport:
    rng = compute_range(repo, medium)
    if progress:
        progress(f"Bundling {rng} of {medium.name}")
        if rng.is_full:
            for name in repo.branch_names():
                if is_squash_branch(name):
                    progress(f"Leaving out stale squash branch {name}")
    report = BundleReport(
        path=medium.artifact_path, kind=rng.kind, range=rng, commit=rng.head, dry_run=dry_run,
    )
    if dry_run:
        return report
    _step("git bundle create", lambda: repo.create_bundle(medium.artifact_path, rng.rev_args()))
    medium.write_watermark(rng.head)
    report.watermark_written = True
    if progress:
        progress(f"Watermark for {medium.name} set to {rng.head[:7]}")
    return report


# ---------------------------------------------------------------------------
# Consumer
# ---------------------------------------------------------------------------

def apply_bundle(
    repo_path: str | os.PathLike,
    medium_path: str | os.PathLike,
    *,
    progress: Progress | None = None,
) -> ApplyReport:
    """Verify the repository's bundle on the medium and merge it.

    Squash bundles are merged with ``--allow-unrelated-histories``; other
    bundles with a plain merge of their branch.  Raises
    :class:`ArtifactMissingError`, :class:`VerificationError`,
    :class:`AmbiguousArtifactError` or :class:`MergeConflictError`.
    """
    repo, medium = _open(repo_path, medium_path)
    with medium_lock(medium):
        path = medium.artifact_path
        if not medium.has_artifact():
            raise ArtifactMissingError(f"No bundle found at {path}")
        if not repo.verify_bundle(path):
            raise VerificationError(f"Bundle verification failed: {path}")
        if progress:
            progress(f"Verified {path}")

        with transient_remote(repo, TRANSFER_REMOTE, path, progress=progress) as remote:
            repo.fetch(remote)
            kind, branch = classify_refs(repo.remote_refs(remote), repo.current_branch())
            ref = f"{remote}/{branch}"
            if kind is ArtifactKind.SQUASH:
                if progress:
                    progress("Applying squashed bundle...")
                repo.merge(ref, allow_unrelated=True)
            else:
                if progress:
                    progress(f"Merging {branch}")
                repo.merge(ref)

        return ApplyReport(path=path, kind=kind, ref=branch, head=repo.head())


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

def transfer_status(repo_path: str | os.PathLike, medium_path: str | os.PathLike) -> TransferStatus:
    """Describe the bundle and watermark on the medium for this repository."""
    repo, medium = _open(repo_path, medium_path)
    head = repo.head()
    watermark = medium.read_watermark()
    status = TransferStatus(
        name=medium.name,
        artifact_path=medium.artifact_path,
        artifact_exists=medium.has_artifact(),
        watermark=watermark,
        head=head,
        branch=repo.current_branch(),
    )
    if watermark is not None and head is not None:
        try:
            status.watermark_is_ancestor = repo.is_ancestor(watermark, head)
        except GitError:
            # Watermark names a commit this repository does not have.
            status.watermark_is_ancestor = False
    return status
