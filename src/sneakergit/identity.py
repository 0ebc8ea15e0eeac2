"""Repository identity: the short name that namespaces files on the medium."""

from __future__ import annotations

import os
import re

from ._git import Repository
from .exceptions import IdentityError

_SEPARATORS = re.compile(r"[/\\:]")


def name_from_url(url: str) -> str | None:
    """Derive a repository name from a remote URL.

    ``git@github.com:user/repo.git`` and ``https://host/user/repo.git/``
    both give ``"repo"``.  Returns None if nothing usable is left.
    """
    url = url.strip().rstrip("/\\")
    name = _SEPARATORS.split(url)[-1]
    if name.endswith(".git"):
        name = name[:-len(".git")]
    return name or None


def resolve_identity(repo: Repository) -> str:
    """Return the stable short name of *repo*.

    The ``origin`` URL wins; without one, the work-tree directory name is
    used.
    """
    url = repo.remote_url("origin")
    if url:
        name = name_from_url(url)
        if name:
            return name
    name = os.path.basename(repo.path.rstrip(os.sep))
    if not name or name in (".", ".."):
        raise IdentityError(f"Cannot derive a repository name for {repo.path}")
    return name
