"""Tests for repository identity resolution."""

import pytest

from sneakergit import IdentityError, Repository, resolve_identity
from sneakergit.identity import name_from_url

from conftest import git, init_repo


class TestNameFromUrl:
    @pytest.mark.parametrize("url, expected", [
        ("https://github.com/user/project.git", "project"),
        ("https://github.com/user/project", "project"),
        ("https://github.com/user/project.git/", "project"),
        ("git@github.com:user/project.git", "project"),
        ("git@host:project.git", "project"),
        ("ssh://git@host:2222/srv/git/project.git", "project"),
        ("/srv/git/project.git", "project"),
        ("C:\\repos\\project.git", "project"),
        ("file:///srv/git/project", "project"),
    ])
    def test_last_segment(self, url, expected):
        assert name_from_url(url) == expected

    def test_only_suffix_is_stripped(self):
        assert name_from_url("https://host/my.github.io.git") == "my.github.io"

    def test_empty_gives_none(self):
        assert name_from_url("") is None
        assert name_from_url("https://host/.git") is None


class TestResolveIdentity:
    def test_uses_origin_url(self, tmp_path):
        repo = init_repo(tmp_path / "checkout")
        git(repo, "remote", "add", "origin", "https://example.com/team/widgets.git")
        assert resolve_identity(Repository.open(repo)) == "widgets"

    def test_falls_back_to_directory_name(self, tmp_path):
        repo = init_repo(tmp_path / "widgets-local")
        assert resolve_identity(Repository.open(repo)) == "widgets-local"

    def test_other_remotes_ignored(self, tmp_path):
        repo = init_repo(tmp_path / "checkout")
        git(repo, "remote", "add", "upstream", "https://example.com/team/widgets.git")
        assert resolve_identity(Repository.open(repo)) == "checkout"

    def test_repeated_calls_agree(self, tmp_path):
        repo = init_repo(tmp_path / "checkout")
        git(repo, "remote", "add", "origin", "git@example.com:team/widgets.git")
        handle = Repository.open(repo)
        names = {resolve_identity(handle) for _ in range(3)}
        assert names == {"widgets"}
        assert resolve_identity(Repository.open(repo)) == "widgets"

    def test_name_has_no_separators(self, tmp_path):
        repo = init_repo(tmp_path / "checkout")
        git(repo, "remote", "add", "origin", "https://example.com/a/b/c/widgets.git")
        name = resolve_identity(Repository.open(repo))
        assert "/" not in name and "\\" not in name

    def test_not_a_repository(self, tmp_path):
        plain = tmp_path / "plain"
        plain.mkdir()
        with pytest.raises(IdentityError):
            Repository.open(plain)
