"""Repository handle: dulwich for reads, the git executable for mutations.

Every operation takes an explicit :class:`Repository`; nothing here depends
on the process working directory.  Read-only queries (config, refs, HEAD)
go through dulwich.  Bundle creation and verification, fetch, commit and
merge need a working tree and the bundle transport, so they shell out to
``git -C <path>``.
"""

from __future__ import annotations

import hashlib
import os
import shutil
import subprocess
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

from dulwich.errors import NotGitRepository
from dulwich.repo import Repo as _DRepo

from .exceptions import GitError, IdentityError, MergeConflictError, RemoteHandleConflictError

_SYMREF = b"ref: "
_HEADS = b"refs/heads/"


def _git_executable() -> str:
    git = shutil.which("git")
    if git is None:
        raise GitError("git is not installed or not on PATH")
    return git


def _pack_intact(path: str) -> bool:
    """Check a bundle's pack magic and trailing checksum.

    ``git bundle verify`` only looks at the header and prerequisites; a
    bundle truncated inside its pack still passes it.
    """
    with open(path, "rb") as f:
        if not f.readline().startswith(b"# v"):
            return False
        algo = "sha1"
        for line in iter(f.readline, b""):
            if line == b"\n":
                break
            if line.rstrip(b"\n") == b"@object-format=sha256":
                algo = "sha256"
        else:
            return False
        digest = hashlib.new(algo)
        size = digest.digest_size
        tail = f.read(4)
        if tail != b"PACK":
            return False
        while True:
            chunk = f.read(1 << 20)
            if not chunk:
                break
            data = tail + chunk
            digest.update(data[:-size])
            tail = data[-size:]
    return len(tail) == size and digest.digest() == tail


class Repository:
    """A non-bare git repository addressed by its work-tree path."""

    def __init__(self, path: str):
        self.path = os.path.realpath(path)

    def __repr__(self) -> str:
        return f"Repository({self.path!r})"

    @classmethod
    def open(cls, path: str | os.PathLike) -> Repository:
        """Open the repository at *path*.

        Raises :class:`IdentityError` if *path* is not a git repository.
        """
        repo = cls(os.fspath(path))
        try:
            with _DRepo(repo.path):
                pass
        except NotGitRepository:
            raise IdentityError(f"Not a git repository: {repo.path}")
        return repo

    # -- plumbing ----------------------------------------------------------

    @contextmanager
    def _dulwich(self) -> Iterator[_DRepo]:
        # Reopened per query: the git executable mutates refs underneath us.
        drepo = _DRepo(self.path)
        try:
            yield drepo
        finally:
            drepo.close()

    def _run(self, *args: str, env: dict[str, str] | None = None,
             check: bool = True) -> subprocess.CompletedProcess:
        run_env = None
        if env:
            run_env = dict(os.environ)
            run_env.update(env)
        result = subprocess.run(
            [_git_executable(), "-C", self.path, *args],
            capture_output=True,
            text=True,
            env=run_env,
        )
        if check and result.returncode != 0:
            msg = result.stderr.strip() or result.stdout.strip() or "unknown error"
            raise GitError(f"git {args[0]} failed: {msg}", args_=args, stderr=result.stderr.strip())
        return result

    @property
    def control_dir(self) -> str:
        """Path of the ``.git`` directory."""
        with self._dulwich() as drepo:
            return drepo.controldir()

    # -- reads -------------------------------------------------------------

    def remote_url(self, name: str = "origin") -> str | None:
        """Return the configured URL of remote *name*, or None."""
        with self._dulwich() as drepo:
            config = drepo.get_config()
            try:
                url = config.get((b"remote", name.encode()), b"url")
            except KeyError:
                return None
        return url.decode() if url else None

    def remote_names(self) -> set[str]:
        with self._dulwich() as drepo:
            config = drepo.get_config()
            return {
                section[1].decode()
                for section in config.sections()
                if len(section) == 2 and section[0] == b"remote"
            }

    def current_branch(self) -> str | None:
        """Short name of the branch HEAD points at; None when detached."""
        with self._dulwich() as drepo:
            target = drepo.refs.read_ref(b"HEAD")
        if target and target.startswith(_SYMREF + _HEADS):
            return target[len(_SYMREF + _HEADS):].decode()
        return None

    def head(self) -> str | None:
        """Commit id HEAD resolves to, or None on an unborn branch."""
        with self._dulwich() as drepo:
            try:
                return drepo.refs[b"HEAD"].decode()
            except KeyError:
                return None

    def branch_exists(self, name: str) -> bool:
        with self._dulwich() as drepo:
            return (_HEADS + name.encode()) in drepo.refs

    def branch_names(self) -> list[str]:
        """Short names of every local branch, sorted."""
        with self._dulwich() as drepo:
            return sorted(name.decode() for name in drepo.refs.keys(base=_HEADS))

    def remote_refs(self, remote: str) -> dict[str, str]:
        """Return ``{branch: sha}`` fetched under ``refs/remotes/<remote>/``."""
        base = b"refs/remotes/" + remote.encode() + b"/"
        with self._dulwich() as drepo:
            return {
                name.decode(): drepo.refs[base + name].decode()
                for name in drepo.refs.keys(base=base)
                if name != b"HEAD"
            }

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        result = self._run("merge-base", "--is-ancestor", ancestor, descendant, check=False)
        if result.returncode in (0, 1):
            return result.returncode == 0
        raise GitError(
            f"git merge-base failed: {result.stderr.strip()}",
            args_=("merge-base", ancestor, descendant), stderr=result.stderr.strip(),
        )

    def unmerged_paths(self) -> list[str]:
        out = self._run("diff", "--name-only", "--diff-filter=U").stdout
        return sorted({line for line in out.splitlines() if line})

    # -- bundles -----------------------------------------------------------

    def create_bundle(self, dest: str, revs: Sequence[str]) -> None:
        """Write a bundle of *revs* (``git rev-list`` arguments) to *dest*."""
        self._run("bundle", "create", dest, *revs)

    def verify_bundle(self, path: str) -> bool:
        """True if *path* is an intact bundle whose prerequisites we have."""
        if self._run("bundle", "verify", "--quiet", path, check=False).returncode != 0:
            return False
        return _pack_intact(path)

    # -- remotes -----------------------------------------------------------

    def add_remote(self, name: str, url: str) -> None:
        """Register remote *name*; raise if the name is taken."""
        if name in self.remote_names():
            raise RemoteHandleConflictError(f"Remote already exists: {name}")
        self._run("remote", "add", name, url)

    def remove_remote(self, name: str) -> None:
        """Remove remote *name* and its remote-tracking refs."""
        self._run("remote", "remove", name)

    def fetch(self, remote: str) -> None:
        self._run("fetch", "--quiet", remote)

    # -- branches and commits ---------------------------------------------

    def set_head_branch(self, name: str) -> None:
        """Point HEAD at ``refs/heads/<name>`` without touching the work tree."""
        self._run("symbolic-ref", "HEAD", f"refs/heads/{name}")

    def set_head_detached(self, sha: str) -> None:
        self._run("update-ref", "--no-deref", "HEAD", sha)

    def commit_all(self, message: str, *, index_file: str | None = None) -> str:
        """Stage every tracked and untracked file and commit on HEAD.

        With *index_file*, staging goes through that index instead of the
        repository's own, leaving the user's staging area alone.
        Returns the new commit id.
        """
        env = {"GIT_INDEX_FILE": index_file} if index_file else None
        self._run("add", "-A", env=env)
        self._run("commit", "--quiet", "--allow-empty", "-m", message, env=env)
        return self._run("rev-parse", "HEAD").stdout.strip()

    def delete_branch(self, name: str) -> None:
        self._run("branch", "-D", name)

    def merge(self, ref: str, *, allow_unrelated: bool = False) -> None:
        """Merge *ref* into the current branch.

        Raises :class:`MergeConflictError` if the merge stops on conflicts.
        """
        args = ["merge", "--no-edit"]
        if allow_unrelated:
            args.append("--allow-unrelated-histories")
        args.append(ref)
        result = self._run(*args, check=False)
        if result.returncode == 0:
            return
        conflicts = self.unmerged_paths()
        if conflicts:
            raise MergeConflictError(
                f"Merge of {ref} stopped on conflicts in: {', '.join(conflicts)}",
                paths=conflicts,
            )
        msg = result.stderr.strip() or result.stdout.strip() or "unknown error"
        raise GitError(f"git merge failed: {msg}", args_=tuple(args), stderr=result.stderr.strip())
