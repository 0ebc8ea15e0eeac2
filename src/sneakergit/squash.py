"""Squash snapshots: the work tree as a single root commit on a temp branch.

Usage::

    with squash_snapshot(repo, "Snapshot for the air-gapped lab") as snap:
        repo.create_bundle(dest, [snap.branch])
    # HEAD is back on the original branch, snap.branch is gone.

Each step that changes the repository is paired with the action that
undoes it.  Leaving the ``with`` block, normally or through an exception,
runs the undo actions in reverse order, so the original branch is restored
and the temporary branch deleted on every exit path.

Staging goes through a private index file.  The user's index and working
tree are never modified, so uncommitted work survives the round trip.
"""

from __future__ import annotations

import enum
import os
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from ._git import Repository
from .exceptions import GitError, StepFailureError

__all__ = [
    "SQUASH_PREFIX", "LEGACY_SQUASH_PREFIX", "DEFAULT_SQUASH_MESSAGE",
    "SnapshotState", "SquashSnapshot", "squash_snapshot",
    "squash_branch_name", "is_squash_branch",
]

SQUASH_PREFIX = "sneakergit-squash-"
# Older bundles name their snapshot branch temp-squash-<epoch>.
LEGACY_SQUASH_PREFIX = "temp-squash-"
DEFAULT_SQUASH_MESSAGE = "Squashed repository state"

_INDEX_NAME = "sneakergit-squash.index"


class SnapshotState(enum.Enum):
    REMEMBERED = "remembered"  # original HEAD recorded
    ORPHANED = "orphaned"      # HEAD on the unborn temp branch
    COMMITTED = "committed"    # temp branch holds the snapshot commit
    RESTORED = "restored"      # HEAD back on the original branch
    DELETED = "deleted"        # temp branch removed


def squash_branch_name(now: float | None = None) -> str:
    """Return a fresh temp-branch name carrying a UTC timestamp."""
    stamp = time.strftime("%Y%m%d%H%M%S", time.gmtime(now))
    return f"{SQUASH_PREFIX}{stamp}-{uuid.uuid4().hex[:8]}"


def is_squash_branch(name: str) -> bool:
    """True if *name* (a short branch name) marks a squash snapshot."""
    return name.startswith(SQUASH_PREFIX) or name.startswith(LEGACY_SQUASH_PREFIX)


@dataclass
class SquashSnapshot:
    """State of one snapshot while its ``with`` block runs."""
    branch: str
    original_branch: str | None
    original_head: str | None
    commit: str | None = None
    state: SnapshotState = SnapshotState.REMEMBERED
    _undo: list[tuple[str, Callable[[], None]]] = field(default_factory=list, repr=False)


def _step(label: str, fn: Callable[[], object]):
    try:
        return fn()
    except StepFailureError:
        raise
    except GitError as exc:
        raise StepFailureError(
            f"{label} failed: {exc}", args_=exc.args_, stderr=exc.stderr,
        ) from exc


def _remove_file(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def _restore_head(repo: Repository, snap: SquashSnapshot) -> None:
    if snap.original_branch is not None:
        repo.set_head_branch(snap.original_branch)
    else:
        repo.set_head_detached(snap.original_head)
    snap.state = SnapshotState.RESTORED


def _delete_branch(repo: Repository, snap: SquashSnapshot) -> None:
    if repo.branch_exists(snap.branch):
        repo.delete_branch(snap.branch)
    snap.state = SnapshotState.DELETED


def _unwind(snap: SquashSnapshot, *, failing: bool, progress) -> None:
    while snap._undo:
        label, undo = snap._undo.pop()
        try:
            _step(label, undo)
        except StepFailureError as exc:
            if not failing:
                raise
            # The original error propagates; report the cleanup failure.
            if progress:
                progress(f"Cleanup after failed squash did not complete: {exc}")


@contextmanager
def squash_snapshot(
    repo: Repository,
    message: str = DEFAULT_SQUASH_MESSAGE,
    *,
    progress: Callable[[str], None] | None = None,
) -> Iterator[SquashSnapshot]:
    """Commit the current work tree as a root commit on a temporary branch.

    Yields a :class:`SquashSnapshot` whose ``branch`` can be bundled.  Any
    failing git step raises :class:`StepFailureError`.
    """
    snap = SquashSnapshot(
        branch=squash_branch_name(),
        original_branch=repo.current_branch(),
        original_head=repo.head(),
    )
    if snap.original_branch is None and snap.original_head is None:
        raise StepFailureError("Cannot determine the current branch")
    if repo.branch_exists(snap.branch):
        raise StepFailureError(f"Squash branch already exists: {snap.branch}")

    index_file = os.path.join(repo.control_dir, _INDEX_NAME)
    _remove_file(index_file)
    snap._undo.append(("remove index", lambda: _remove_file(index_file)))

    failing = True
    try:
        _step("orphan branch", lambda: repo.set_head_branch(snap.branch))
        snap._undo.append(("restore branch", lambda: _restore_head(repo, snap)))
        snap.state = SnapshotState.ORPHANED
        if progress:
            progress(f"Switched to orphan branch {snap.branch}")

        # Undo registered first: a failed commit may still have created the ref.
        snap._undo.insert(1, ("delete branch", lambda: _delete_branch(repo, snap)))
        snap.commit = _step("squash commit", lambda: repo.commit_all(message, index_file=index_file))
        snap.state = SnapshotState.COMMITTED
        if progress:
            progress(f"Committed snapshot {snap.commit[:7]}: {message}")

        yield snap
        failing = False
    finally:
        _unwind(snap, failing=failing, progress=progress)
