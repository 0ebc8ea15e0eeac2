"""Files sneakergit keeps on the transfer medium.

For a repository named ``R`` the medium holds:

``R-bundle.git``
    The latest bundle, overwritten by every ``create-bundle``.
``last-bundled-R.txt``
    The watermark: HEAD at the last incremental export, one line.
``.sneakergit-R.lock``
    Advisory lock held while a producer or consumer runs.
"""

from __future__ import annotations

import os
import re
from contextlib import contextmanager
from dataclasses import dataclass

from .exceptions import MediumBusyError, PathError, WatermarkError

_SHA_RE = re.compile(r"^[0-9a-f]{40}([0-9a-f]{24})?$")


def require_dir(path: str | os.PathLike, label: str) -> str:
    """Return the real path of directory *path*, or raise :class:`PathError`."""
    path = os.fspath(path)
    if not os.path.isdir(path):
        raise PathError(f"{label} path does not exist: {path}")
    return os.path.realpath(path)


@dataclass(frozen=True)
class Medium:
    """The transfer directory, scoped to one repository name."""

    root: str
    name: str

    @property
    def artifact_path(self) -> str:
        return os.path.join(self.root, f"{self.name}-bundle.git")

    @property
    def watermark_path(self) -> str:
        return os.path.join(self.root, f"last-bundled-{self.name}.txt")

    @property
    def lock_path(self) -> str:
        return os.path.join(self.root, f".sneakergit-{self.name}.lock")

    def has_artifact(self) -> bool:
        return os.path.isfile(self.artifact_path)

    def read_watermark(self) -> str | None:
        """Return the last exported commit id, or None if never exported.

        A blank file counts as no watermark.  Anything else that is not a
        commit id raises :class:`WatermarkError`.
        """
        try:
            with open(self.watermark_path, encoding="ascii") as f:
                value = f.read().strip()
        except FileNotFoundError:
            return None
        if not value:
            return None
        if not _SHA_RE.match(value):
            raise WatermarkError(f"Corrupt watermark in {self.watermark_path}: {value[:60]!r}")
        return value

    def write_watermark(self, sha: str) -> None:
        """Replace the watermark with *sha*."""
        tmp = self.watermark_path + ".tmp"
        with open(tmp, "w", encoding="ascii") as f:
            f.write(sha + "\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.watermark_path)


try:
    import fcntl

    @contextmanager
    def medium_lock(medium: Medium):
        """Hold the advisory lock for *medium*; raise if someone else has it."""
        fd = os.open(medium.lock_path, os.O_CREAT | os.O_RDWR | getattr(os, "O_CLOEXEC", 0))
        try:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                raise MediumBusyError(
                    f"Another sneakergit process is using {medium.root} for {medium.name}"
                )
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

except ImportError:
    import msvcrt

    @contextmanager
    def medium_lock(medium: Medium):
        """Hold the advisory lock for *medium*; raise if someone else has it."""
        fd = os.open(medium.lock_path, os.O_CREAT | os.O_RDWR)
        os.set_inheritable(fd, False)
        try:
            try:
                msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
            except OSError:
                raise MediumBusyError(
                    f"Another sneakergit process is using {medium.root} for {medium.name}"
                )
            try:
                yield
            finally:
                msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
        finally:
            os.close(fd)
