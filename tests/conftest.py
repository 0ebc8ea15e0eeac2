"""Shared fixtures for sneakergit tests.

Tests drive real git repositories through the git executable; the
``git`` helper here is deliberately independent of sneakergit's own
engine so assertions do not depend on the code under test.
"""

import subprocess

import pytest
from click.testing import CliRunner


def git(repo, *args: str) -> str:
    result = subprocess.run(
        ["git", "-C", str(repo)] + list(args),
        capture_output=True, text=True,
    )
    if result.returncode != 0:
        raise RuntimeError(f"git error: {result.stderr.strip()}")
    return result.stdout.strip()


def init_repo(path, branch: str = "main"):
    """Create an empty non-bare repository at *path*."""
    path.mkdir(parents=True, exist_ok=True)
    git(path, "init", "-q", "-b", branch)
    return path


def commit_file(repo, name: str, content: str, message: str | None = None) -> str:
    """Write *name*, commit it, and return the new HEAD."""
    target = repo / name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "-q", "-m", message or f"add {name}")
    return git(repo, "rev-parse", "HEAD")


def read_bundle_header(path):
    """Return ``(prerequisites, refs)`` from a bundle's text header.

    *prerequisites* is a set of commit ids; *refs* maps full ref names
    to commit ids.
    """
    prereqs, refs = set(), {}
    with open(path, "rb") as f:
        first = f.readline()
        assert first.startswith(b"# v") and b"git bundle" in first
        for raw in iter(f.readline, b""):
            line = raw.rstrip(b"\n").decode()
            if not line:
                break
            if line.startswith("@"):
                continue
            if line.startswith("-"):
                prereqs.add(line[1:].split(" ", 1)[0])
            else:
                sha, ref = line.split(" ", 1)
                refs[ref] = sha
    return prereqs, refs


def remotes(repo) -> list[str]:
    out = git(repo, "remote")
    return out.split("\n") if out else []


@pytest.fixture(autouse=True)
def isolated_git(tmp_path, monkeypatch):
    """Keep user/system git configuration out of the tests."""
    cfg = tmp_path / "test.gitconfig"
    cfg.write_text("")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(cfg))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for role in ("AUTHOR", "COMMITTER"):
        monkeypatch.setenv(f"GIT_{role}_NAME", "Sneakergit Test")
        monkeypatch.setenv(f"GIT_{role}_EMAIL", "test@sneakergit.dev")
    monkeypatch.delenv("SNEAKERGIT_REPO", raising=False)
    monkeypatch.delenv("SNEAKERGIT_MEDIUM", raising=False)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def medium(tmp_path):
    """An empty transfer directory."""
    p = tmp_path / "usb"
    p.mkdir()
    return p


@pytest.fixture
def producer(tmp_path):
    """Repo 'project' with commits A, B, C on 'main'."""
    repo = init_repo(tmp_path / "laptop" / "project")
    commit_file(repo, "a.txt", "a\n", "A")
    commit_file(repo, "b.txt", "b\n", "B")
    commit_file(repo, "c.txt", "c\n", "C")
    return repo


@pytest.fixture
def consumer(tmp_path):
    """Empty repo 'project' (same name as the producer) on 'main'."""
    return init_repo(tmp_path / "lab" / "project")
