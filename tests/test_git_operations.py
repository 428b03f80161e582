"""Tests for GitOperations and GitRepository against real repositories."""

import os

import pytest

from sgit.core import (
    BranchStatus,
    FleetConfig,
    FleetManager,
    GitError,
    GitOperations,
    GitRepository,
    RemoteBranchNotFoundError,
    StepError,
    classify_branches,
)


class TestGitOperations:
    def test_current_branch(self, tmp_path, make_repo):
        repo = make_repo(tmp_path / "repo", branch="develop")
        assert GitOperations(repo).current_branch() == "develop"

    def test_current_branch_detached(self, tmp_path, make_repo, git):
        repo = make_repo(tmp_path / "repo")
        git(repo, "checkout", "-q", "--detach")
        assert GitOperations(repo).current_branch() == "HEAD"

    def test_current_branch_without_commits_fails(self, tmp_path, make_repo):
        repo = make_repo(tmp_path / "repo", commit=False)
        with pytest.raises(GitError):
            GitOperations(repo).current_branch()

    def test_vanished_repository_fails(self, tmp_path, git):
        with pytest.raises(GitError):
            GitOperations(tmp_path / "gone").current_branch()

    def test_is_dirty(self, tmp_path, make_repo, git):
        repo = make_repo(tmp_path / "repo")
        ops = GitOperations(repo)
        assert ops.is_dirty() is False

        (repo / "new.txt").write_text("untracked\n")
        assert ops.is_dirty() is True

        git(repo, "add", "new.txt")
        assert ops.is_dirty() is True

    def test_is_dirty_assumes_clean_on_failure(self, tmp_path, git):
        assert GitOperations(tmp_path / "gone").is_dirty() is False

    def test_branch_status_without_upstream(self, tmp_path, make_repo):
        repo = make_repo(tmp_path / "repo")
        assert GitOperations(repo).branch_status("main") is None

    def test_branch_status_ahead_and_behind(self, tmp_path, clone_repo, git):
        bare, clone = clone_repo(tmp_path / "work" / "app")
        ops = GitOperations(clone)
        assert ops.branch_status("main") == BranchStatus(0, 0)

        (clone / "local.txt").write_text("local\n")
        git(clone, "add", "local.txt")
        git(clone, "commit", "-q", "-m", "local")
        assert ops.branch_status("main") == BranchStatus(ahead=1, behind=0)

        other = tmp_path / "work" / "other"
        git(tmp_path, "clone", "-q", str(bare), str(other))
        for name in ("one.txt", "two.txt"):
            (other / name).write_text(name)
            git(other, "add", name)
            git(other, "commit", "-q", "-m", name)
        git(other, "push", "-q", "origin", "main")
        git(clone, "fetch", "-q")

        status = ops.branch_status("main")
        assert status == BranchStatus(ahead=1, behind=2)
        assert status.display == "↑1 ↓2"

    def test_remotes(self, tmp_path, make_repo, clone_repo, git):
        assert GitOperations(make_repo(tmp_path / "solo")).remotes() == {}

        bare, clone = clone_repo(tmp_path / "work" / "app")
        git(clone, "remote", "add", "mirror", "https://example.com/app.git")
        assert GitOperations(clone).remotes() == {
            "origin": str(bare),
            "mirror": "https://example.com/app.git",
        }

    def test_all_branches(self, tmp_path, clone_repo, git):
        _, clone = clone_repo(tmp_path / "work" / "app", branches=("release",), tags=("v1.0",))
        git(clone, "branch", "feature/x")

        current, branches = GitOperations(clone).all_branches()
        local, remote, tags = classify_branches(branches)

        assert current == "main"
        assert local == ["feature/x", "main"]
        assert "origin/main" in remote
        assert "origin/release" in remote
        assert tags == ["v1.0"]

    def test_checkout(self, tmp_path, make_repo, git):
        repo = make_repo(tmp_path / "repo")
        git(repo, "branch", "existing")
        ops = GitOperations(repo)

        ops.checkout("existing")
        assert ops.current_branch() == "existing"

        with pytest.raises(GitError):
            ops.checkout("missing")
        assert ops.current_branch() == "existing"

        ops.checkout("feature/new", create_if_missing=True)
        assert ops.current_branch() == "feature/new"

    def test_checkout_tracking(self, tmp_path, clone_repo, git):
        _, clone = clone_repo(tmp_path / "work" / "app", branches=("release",))
        ops = GitOperations(clone)

        ops.checkout_tracking("release")

        assert ops.current_branch() == "release"
        assert ops.get_upstream("release") == "origin/release"

    def test_checkout_tracking_missing_remote_branch(self, tmp_path, clone_repo, git):
        _, clone = clone_repo(tmp_path / "work" / "app", branches=("release-2",))
        ops = GitOperations(clone)

        with pytest.raises(RemoteBranchNotFoundError, match="origin/release not found"):
            ops.checkout_tracking("release")

        assert git(clone, "branch", "--list", "release") == ""
        assert ops.current_branch() == "main"

    def test_reset_and_clean(self, tmp_path, make_repo):
        repo = make_repo(tmp_path / "repo")
        (repo / "README.md").write_text("changed\n")
        (repo / "scratch").mkdir()
        (repo / "scratch" / "notes.txt").write_text("junk\n")
        ops = GitOperations(repo)

        ops.reset_hard()
        ops.clean_untracked()

        assert (repo / "README.md").read_text() == "hello\n"
        assert not (repo / "scratch").exists()
        assert ops.is_dirty() is False

    def test_remove_build_dir(self, tmp_path, make_repo):
        repo = make_repo(tmp_path / "repo")
        ops = GitOperations(repo)
        assert ops.remove_build_dir() is False

        (repo / "target" / "debug").mkdir(parents=True)
        assert ops.remove_build_dir() is True
        assert not (repo / "target").exists()

    def test_pull(self, tmp_path, clone_repo, git):
        bare, clone = clone_repo(tmp_path / "work" / "app")
        other = tmp_path / "work" / "other"
        git(tmp_path, "clone", "-q", str(bare), str(other))
        (other / "feature.txt").write_text("feature\n")
        git(other, "add", "feature.txt")
        git(other, "commit", "-q", "-m", "feature")
        git(other, "push", "-q", "origin", "main")

        GitOperations(clone).pull()

        assert (clone / "feature.txt").read_text() == "feature\n"


class TestGitRepository:
    def test_branch_info(self, tmp_path, clone_repo):
        _, clone = clone_repo(tmp_path / "work" / "app")
        (clone / "wip.txt").write_text("wip\n")

        info = GitRepository(clone, tmp_path / "work").get_branch_info()

        assert info.name == "app"
        assert info.display_path == "app"
        assert info.branch == "main"
        assert info.status == BranchStatus(0, 0)
        assert info.dirty is True
        assert info.error is None
        assert info.branches == []

    def test_branch_info_records_failure(self, tmp_path, make_repo):
        repo = make_repo(tmp_path / "repo", commit=False)

        info = GitRepository(repo).get_branch_info()

        assert isinstance(info.error, GitError)
        assert info.dirty is False
        assert info.is_detached is False

    def test_remotes_without_any(self, tmp_path, make_repo):
        remotes = GitRepository(make_repo(tmp_path / "repo")).get_remotes()
        assert remotes.remotes == {}
        assert remotes.error is None

    def test_pull_without_remote_fails(self, tmp_path, make_repo):
        result = GitRepository(make_repo(tmp_path / "repo")).pull()
        assert not result.success
        assert isinstance(result.error, GitError)

    @staticmethod
    def _ignored_target(repo):
        # Ignored files survive clean -f -d, so only remove_build_dir can delete them
        (repo / ".git" / "info" / "exclude").write_text("target/\n")
        (repo / "target").mkdir()
        (repo / "target" / "app.bin").write_text("bin")

    def test_clean(self, tmp_path, make_repo):
        repo = make_repo(tmp_path / "repo")
        (repo / "junk.txt").write_text("junk\n")
        self._ignored_target(repo)

        result = GitRepository(repo).clean()

        assert result.success
        assert result.message == "Cleaned (removed target/)"
        assert not (repo / "junk.txt").exists()
        assert not (repo / "target").exists()

    def test_clean_keeps_target(self, tmp_path, make_repo):
        repo = make_repo(tmp_path / "repo")
        self._ignored_target(repo)

        result = GitRepository(repo).clean(remove_build_dir=False)

        assert result.success
        assert result.message == "Cleaned"
        assert (repo / "target" / "app.bin").exists()

    def test_clean_reports_failing_step(self, tmp_path, git):
        result = GitRepository(tmp_path / "gone").clean()

        assert isinstance(result.error, StepError)
        assert result.error.step == "reset"


class TestUndecodableOutput:
    def test_remote_url_with_invalid_utf8(self, tmp_path, make_repo, git):
        repo = make_repo(tmp_path / "repo")
        git(repo, "remote", "add", "origin", os.fsdecode(b"/srv/caf\xe9.git"))

        assert GitOperations(repo).remotes() == {"origin": "/srv/caf\ufffd.git"}

    def test_fleet_keeps_healthy_repositories(self, tmp_path, make_repo, git):
        root = tmp_path / "root"
        broken = make_repo(root / "broken")
        git(broken, "remote", "add", "origin", os.fsdecode(b"/srv/caf\xe9.git"))
        healthy = make_repo(root / "healthy")
        git(healthy, "remote", "add", "origin", "https://example.com/healthy.git")

        remotes = FleetManager(FleetConfig(root=root, parallel=True)).get_all_remotes()

        assert [r.path for r in remotes] == [broken.resolve(), healthy.resolve()]
        assert all(r.error is None for r in remotes)
        assert remotes[1].remotes == {"origin": "https://example.com/healthy.git"}


class TestTimeout:
    def test_fetch_times_out(self, hanging_remote):
        ops = GitOperations(hanging_remote, timeout=0.5)

        with pytest.raises(GitError, match="timed out after 0.5s"):
            ops.fetch_all()

    def test_pull_records_timeout_on_result(self, hanging_remote):
        result = GitRepository(hanging_remote, timeout=0.5).pull()

        assert not result.success
        assert isinstance(result.error, GitError)
        assert "timed out" in str(result.error)
