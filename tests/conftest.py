from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

import pytest

GIT_IDENTITY = {
    "GIT_AUTHOR_NAME": "Test User",
    "GIT_AUTHOR_EMAIL": "test@example.com",
    "GIT_COMMITTER_NAME": "Test User",
    "GIT_COMMITTER_EMAIL": "test@example.com",
}


@pytest.fixture(autouse=True)
def isolated_env(tmp_path_factory, monkeypatch):
    """Keep the user's git config and sgit settings out of the tests."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for key, value in GIT_IDENTITY.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("SGIT_EXCLUDE_FILE", raising=False)
    monkeypatch.delenv("SGIT_WORKERS", raising=False)
    monkeypatch.delenv("SGIT_TIMEOUT", raising=False)
    return home


@pytest.fixture
def git():
    """Run git and return its stripped stdout."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    def _git(cwd: Path, *args: str) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=True,
            env=os.environ.copy(),
        )
        return result.stdout.strip()

    return _git


@pytest.fixture
def make_repo(git):
    """Create a repository with one commit on ``branch``."""

    def _make(path: Path, *, branch: str = "main", commit: bool = True) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        git(path, "init", "-q")
        git(path, "symbolic-ref", "HEAD", f"refs/heads/{branch}")
        if commit:
            (path / "README.md").write_text("hello\n")
            git(path, "add", "README.md")
            git(path, "commit", "-q", "-m", "initial")
        return path

    return _make


@pytest.fixture
def clone_repo(git, make_repo, tmp_path):
    """Clone ``dest`` from a bare remote seeded with a fresh repository.

    Returns ``(bare_remote, clone)``. The clone's ``main`` tracks
    ``origin/main``. Extra ``branches`` and ``tags`` exist on the remote.
    """

    def _clone(dest: Path, *, branches: tuple[str, ...] = (), tags: tuple[str, ...] = ()):
        seed = make_repo(tmp_path / "_seed" / dest.name)
        for name in branches:
            git(seed, "branch", name)
        for name in tags:
            git(seed, "tag", name)
        bare = tmp_path / "_remotes" / f"{dest.name}.git"
        git(tmp_path, "clone", "-q", "--bare", str(seed), str(bare))
        dest.parent.mkdir(parents=True, exist_ok=True)
        git(tmp_path, "clone", "-q", str(bare), str(dest))
        return bare, dest

    return _clone


@pytest.fixture
def hanging_remote(tmp_path, make_repo, git, monkeypatch):
    """Repository whose origin is an ssh remote that never answers."""
    repo = make_repo(tmp_path / "root" / "stuck")
    git(repo, "remote", "add", "origin", "ssh://example.invalid/stuck.git")
    monkeypatch.setenv("GIT_SSH_VARIANT", "simple")
    monkeypatch.setenv("GIT_SSH_COMMAND", "sleep 5; true")
    return repo
