"""Tests for squash snapshots (temporary orphan branch lifecycle)."""

import os
import re
import stat

import pytest

from sneakergit import Repository, StepFailureError
from sneakergit.squash import (
    LEGACY_SQUASH_PREFIX,
    SQUASH_PREFIX,
    SnapshotState,
    is_squash_branch,
    squash_branch_name,
    squash_snapshot,
)

from conftest import commit_file, git


def _branches(repo):
    return set(git(repo, "branch", "--format=%(refname:short)").split("\n"))


def _failing_hook(repo, name="pre-commit"):
    hook = repo / ".git" / "hooks" / name
    hook.parent.mkdir(parents=True, exist_ok=True)
    hook.write_text("#!/bin/sh\nexit 1\n")
    hook.chmod(hook.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


class TestNames:
    def test_name_has_prefix_and_timestamp(self):
        name = squash_branch_name(0)
        assert re.fullmatch(rf"{SQUASH_PREFIX}19700101000000-[0-9a-f]{{8}}", name)

    def test_names_are_unique(self):
        assert squash_branch_name(0) != squash_branch_name(0)

    def test_is_squash_branch(self):
        assert is_squash_branch(squash_branch_name())
        assert is_squash_branch(f"{LEGACY_SQUASH_PREFIX}1700000000")
        assert not is_squash_branch("main")
        assert not is_squash_branch("feature/sneakergit-squash-1")


class TestSquashSnapshot:
    def test_single_root_commit(self, producer):
        repo = Repository.open(producer)
        with squash_snapshot(repo, "snapshot") as snap:
            assert snap.state is SnapshotState.COMMITTED
            assert git(producer, "rev-list", "--count", snap.branch) == "1"
            assert git(producer, "log", "-1", "--format=%s", snap.branch) == "snapshot"
            assert git(producer, "rev-parse", snap.branch) == snap.commit

    def test_tree_matches_work_tree(self, producer):
        (producer / "a.txt").write_text("edited but not committed\n")
        (producer / "new.txt").write_text("untracked\n")
        (producer / ".gitignore").write_text("*.log\n")
        (producer / "debug.log").write_text("ignored\n")
        repo = Repository.open(producer)
        with squash_snapshot(repo) as snap:
            files = set(git(producer, "ls-tree", "-r", "--name-only", snap.commit).split("\n"))
            content = git(producer, "show", f"{snap.commit}:a.txt")
        assert files == {".gitignore", "a.txt", "b.txt", "c.txt", "new.txt"}
        assert content == "edited but not committed"

    def test_branch_restored_and_temp_deleted(self, producer):
        head = git(producer, "rev-parse", "HEAD")
        repo = Repository.open(producer)
        with squash_snapshot(repo) as snap:
            branch = snap.branch
        assert snap.state is SnapshotState.DELETED
        assert git(producer, "rev-parse", "--abbrev-ref", "HEAD") == "main"
        assert git(producer, "rev-parse", "HEAD") == head
        assert branch not in _branches(producer)

    def test_work_tree_and_index_untouched(self, producer):
        (producer / "a.txt").write_text("staged\n")
        git(producer, "add", "a.txt")
        (producer / "b.txt").write_text("unstaged\n")
        (producer / "new.txt").write_text("untracked\n")
        before = git(producer, "status", "--porcelain")
        with squash_snapshot(Repository.open(producer)):
            pass
        assert git(producer, "status", "--porcelain") == before
        assert (producer / "new.txt").read_text() == "untracked\n"
        assert not os.path.exists(producer / ".git" / "sneakergit-squash.index")

    def test_error_in_block_still_cleans_up(self, producer):
        repo = Repository.open(producer)
        with pytest.raises(RuntimeError, match="export failed"):
            with squash_snapshot(repo) as snap:
                raise RuntimeError("export failed")
        assert git(producer, "rev-parse", "--abbrev-ref", "HEAD") == "main"
        assert snap.branch not in _branches(producer)

    def test_failed_commit_is_step_failure(self, producer):
        _failing_hook(producer)
        repo = Repository.open(producer)
        with pytest.raises(StepFailureError, match="commit"):
            with squash_snapshot(repo):
                pytest.fail("block must not run")
        assert git(producer, "rev-parse", "--abbrev-ref", "HEAD") == "main"
        assert _branches(producer) == {"main"}

    def test_detached_head_restored(self, producer):
        first = git(producer, "rev-list", "--max-parents=0", "HEAD")
        git(producer, "checkout", "-q", "--detach", first)
        with squash_snapshot(Repository.open(producer)):
            pass
        assert git(producer, "rev-parse", "--abbrev-ref", "HEAD") == "HEAD"
        assert git(producer, "rev-parse", "HEAD") == first

    def test_other_branch_restored(self, producer):
        git(producer, "checkout", "-q", "-b", "feature")
        commit_file(producer, "f.txt", "f\n")
        with squash_snapshot(Repository.open(producer)):
            pass
        assert git(producer, "rev-parse", "--abbrev-ref", "HEAD") == "feature"
