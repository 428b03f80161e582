"""
sgit: run one Git operation across every repository under a directory.

Discovers repository roots below a path, then fans branch inspection,
remote inspection, pull, clean and branch switch operations out across
all of them, sequentially or on a small worker pool.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import subprocess
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, TypeVar, assert_never

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn

from ._version import __version__
from .formatters import BranchView, OutputFormatter, RemoteView
from .schema import get_tool_schema

logger = logging.getLogger(__name__)

GIT_DIR = ".git"
DEFAULT_WORKERS = 4
DEFAULT_REMOTE = "origin"
BUILD_DIR = "target"

# Symbolic names git reports instead of a branch when HEAD is detached
DETACHED_HEAD = "HEAD"
DETACHED_PREFIX = "(detached from"

T = TypeVar("T")
R = TypeVar("R")

# =============================================================================
# Errors
# =============================================================================


class SgitError(Exception):
    """Base class for all sgit errors."""


class DiscoveryError(SgitError):
    """Walking the directory tree failed."""


class NotARepositoryError(SgitError):
    """Target path is not a Git repository and recursion was not requested."""


class ConfirmationDeclined(SgitError):
    """The user did not confirm a destructive or bulk operation."""


class GitError(SgitError):
    """A git invocation failed.

    The message is the tool's own diagnostic output where there is one.
    """

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str] = (),
        returncode: int | None = None,
        output: str = "",
    ):
        super().__init__(message)
        self.command = list(command)
        self.returncode = returncode
        self.output = output


class RemoteBranchNotFoundError(GitError):
    """The requested branch does not exist on the remote."""


class StepError(SgitError):
    """One step of a multi-step repository operation failed.

    ``cause`` keeps the underlying error so callers can tell a missing
    remote branch apart from a generic checkout failure.
    """

    def __init__(self, step: str, cause: Exception):
        super().__init__(f"{step} failed: {cause}")
        self.step = step
        self.cause = cause


# =============================================================================
# Domain Models
# =============================================================================


class SwitchMode(StrEnum):
    """Strategy used to move a repository onto the target branch."""

    PLAIN = "plain"  # checkout an existing branch
    CREATE = "create"  # checkout, creating the branch if missing
    TRACK = "track"  # create a local branch tracking <remote>/<branch>
    FORCE = "force"  # reset --hard and clean before checking out

    @classmethod
    def from_flags(
        cls, *, create: bool = False, track: bool = False, force: bool = False
    ) -> SwitchMode:
        """Pick the mode for a set of CLI flags. Force wins over track, track over create."""
        if force:
            return cls.FORCE
        if track:
            return cls.TRACK
        if create:
            return cls.CREATE
        return cls.PLAIN


@dataclass(frozen=True)
class FleetConfig:
    """Settings for one invocation."""

    root: Path
    exclude: frozenset[str] = frozenset()
    parallel: bool = False
    workers: int = DEFAULT_WORKERS
    timeout: float | None = None


@dataclass(frozen=True)
class SwitchRequest:
    """Target branch and strategy for a switch."""

    branch: str
    mode: SwitchMode = SwitchMode.PLAIN
    create: bool = False  # only consulted by FORCE
    remote: str = DEFAULT_REMOTE
    fetch_first: bool = False  # only consulted by TRACK


@dataclass
class OperationResult:
    """Result of one operation on one repository."""

    path: Path
    name: str
    operation: str
    display_path: str = ""
    message: str = ""
    error: Exception | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "name": self.name,
            "display_path": self.display_path,
            "operation": self.operation,
            "success": self.success,
            "message": self.message,
            "error": str(self.error) if self.error is not None else "",
        }


@dataclass(frozen=True)
class BranchStatus:
    """Commits ahead of and behind the upstream branch."""

    ahead: int = 0
    behind: int = 0

    @property
    def display(self) -> str:
        parts = []
        if self.ahead > 0:
            parts.append(f"↑{self.ahead}")
        if self.behind > 0:
            parts.append(f"↓{self.behind}")
        return " ".join(parts)

    def to_dict(self) -> dict:
        return {"ahead": self.ahead, "behind": self.behind}


@dataclass
class BranchInfo:
    """Branch state of a repository."""

    path: Path
    name: str
    display_path: str = ""
    branch: str = ""
    status: BranchStatus | None = None
    dirty: bool = False
    branches: list[str] = field(default_factory=list)
    error: Exception | None = None

    @property
    def is_detached(self) -> bool:
        return self.error is None and is_detached_branch(self.branch)

    def to_dict(self) -> dict:
        local, remote, tags = classify_branches(self.branches)
        return {
            "path": str(self.path),
            "name": self.name,
            "display_path": self.display_path,
            "branch": self.branch,
            "detached": self.is_detached,
            "dirty": self.dirty,
            "status": self.status.to_dict() if self.status else None,
            "branches": {"local": local, "remote": remote, "tags": tags},
            "error": str(self.error) if self.error is not None else "",
        }


@dataclass
class RepositoryRemotes:
    """Remote configuration for a repository."""

    path: Path
    name: str
    display_path: str = ""
    remotes: dict[str, str] = field(default_factory=dict)
    error: Exception | None = None

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "name": self.name,
            "display_path": self.display_path,
            "remotes": dict(self.remotes),
            "error": str(self.error) if self.error is not None else "",
        }


@dataclass
class BranchSummary:
    """Branch histogram plus detached, failing and dirty repositories.

    Repositories that failed are only listed under ``errors``. The lists
    keep the order of the infos they were built from.
    """

    total: int = 0
    branches: dict[str, int] = field(default_factory=dict)
    detached: list[BranchInfo] = field(default_factory=list)
    errors: list[BranchInfo] = field(default_factory=list)
    dirty: list[BranchInfo] = field(default_factory=list)

    @classmethod
    def from_infos(cls, infos: Iterable[BranchInfo]) -> BranchSummary:
        summary = cls()
        for info in infos:
            summary.total += 1
            if info.error is not None:
                summary.errors.append(info)
                continue
            if info.is_detached:
                summary.detached.append(info)
            else:
                summary.branches[info.branch] = summary.branches.get(info.branch, 0) + 1
            if info.dirty:
                summary.dirty.append(info)
        return summary

    def branch_counts(self) -> list[tuple[str, int]]:
        """Branches ordered by repository count, then name."""
        return sorted(self.branches.items(), key=lambda item: (-item[1], item[0]))

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "branches": dict(self.branch_counts()),
            "detached": [i.name for i in self.detached],
            "errors": [i.name for i in self.errors],
            "dirty": [i.name for i in self.dirty],
        }


def is_detached_branch(branch: str) -> bool:
    return branch == DETACHED_HEAD or branch.startswith(DETACHED_PREFIX)


def classify_branches(branches: Iterable[str]) -> tuple[list[str], list[str], list[str]]:
    """Split a branch listing into sorted local, remote and tag names."""
    local, remote, tags = [], [], []
    for ref in branches:
        if ref.startswith("remotes/"):
            remote.append(ref.removeprefix("remotes/"))
        elif ref.startswith("tags/"):
            tags.append(ref.removeprefix("tags/"))
        else:
            local.append(ref)
    return sorted(local), sorted(remote), sorted(tags)


def tally(results: Iterable[OperationResult]) -> tuple[int, int]:
    """Return ``(succeeded, total)``."""
    succeeded = total = 0
    for result in results:
        total += 1
        if result.success:
            succeeded += 1
    return succeeded, total


# =============================================================================
# Repository Discovery
# =============================================================================


def parse_exclude(value: str | None) -> frozenset[str]:
    """Parse a comma-separated exclusion list, dropping empty entries."""
    if not value:
        return frozenset()
    return frozenset(part.strip() for part in value.split(",") if part.strip())


def is_excluded(path: str | os.PathLike[str], exclude: Iterable[str]) -> bool:
    path_str = os.fspath(path)
    return any(pattern in path_str for pattern in exclude)


def find_repositories(root: Path, exclude: Iterable[str] = ()) -> list[Path]:
    """Find all Git repository roots under ``root``.

    A directory is a repository root when it directly contains a ``.git``
    directory. Any directory whose path contains one of the ``exclude``
    substrings is skipped together with everything below it. Nested
    repositories are found; ``.git`` directories are never entered.

    Raises:
        DiscoveryError: if any part of the tree cannot be read.
    """
    patterns = tuple(exclude)
    root = Path(root).absolute()

    def _on_error(error: OSError) -> None:
        raise DiscoveryError(
            f"Failed to search {error.filename or root}: {error.strerror or error}"
        ) from error

    repos: list[Path] = []
    for dirpath, dirnames, _filenames in os.walk(root, onerror=_on_error):
        if is_excluded(dirpath, patterns):
            dirnames.clear()
            continue

        dirnames.sort()
        if GIT_DIR in dirnames:
            dirnames.remove(GIT_DIR)
            if not is_excluded(os.path.join(dirpath, GIT_DIR), patterns):
                repos.append(Path(dirpath))

    repos.sort()
    logger.info("Found %d repositories under %s", len(repos), root)
    return repos


def is_git_repository(path: Path, timeout: float | None = None) -> bool:
    """Check whether ``path`` is inside a Git working tree."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--is-inside-work-tree"],
            cwd=path,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("Could not check %s: %s", path, e)
        return False
    return result.returncode == 0


_ORIGIN_URL = re.compile(r'\[remote "origin"\][^\[]*?^\s*url\s*=\s*(\S+)', re.MULTILINE)


def get_repo_name(path: Path) -> str:
    """Name of a repository: its origin URL's last component, else the directory name."""
    config_path = path / GIT_DIR / "config"
    try:
        text = config_path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return path.name

    match = _ORIGIN_URL.search(text)
    if match:
        url = match.group(1).rstrip("/")
        name = re.split(r"[/:]", url)[-1].removesuffix(".git")
        if name:
            return name
    return path.name


def relative_display(path: Path, root: Path) -> str:
    """Path relative to ``root``; the root itself is shown by its name."""
    try:
        rel = path.relative_to(root)
    except ValueError:
        return str(path)
    if str(rel) == ".":
        return path.name
    return str(rel)


# =============================================================================
# Configuration
# =============================================================================


def load_exclude_file(exclude_file: Path) -> list[str]:
    """Load exclusion patterns from a file (one substring per line).

    Supports:
    - Comments starting with #
    - Environment variables: $HOME, ${HOME}, etc.
    - Tilde expansion: ~/path
    """
    patterns = []
    try:
        with open(exclude_file.expanduser(), encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#"):
                    patterns.append(os.path.expanduser(os.path.expandvars(line)))
    except FileNotFoundError:
        pass
    return patterns


def resolve_exclude_file() -> Path | None:
    """Auto-resolve the exclude file from environment and standard locations.

    Priority order:
    1. $SGIT_EXCLUDE_FILE environment variable
    2. ~/.config/sgit/exclude (XDG-compliant)
    3. ~/.sgit-exclude (legacy fallback)
    """
    env_file = os.environ.get("SGIT_EXCLUDE_FILE")
    if env_file:
        env_path = Path(env_file).expanduser()
        if env_path.is_file():
            return env_path

    xdg_path = Path.home() / ".config" / "sgit" / "exclude"
    if xdg_path.is_file():
        return xdg_path

    legacy_path = Path.home() / ".sgit-exclude"
    if legacy_path.is_file():
        return legacy_path

    return None


def build_exclusions(value: str | None, exclude_file: Path | None = None) -> frozenset[str]:
    """Merge ``--exclude`` patterns with those from the exclude file."""
    patterns = set(parse_exclude(value))
    source = exclude_file or resolve_exclude_file()
    if source is not None:
        file_patterns = load_exclude_file(source)
        logger.debug("Loaded %d exclusion patterns from %s", len(file_patterns), source)
        patterns.update(file_patterns)
    return frozenset(patterns)


def confirm_or_abort(confirm: Callable[[str], bool], prompt: str) -> None:
    """Ask ``confirm`` and raise ConfirmationDeclined unless it agrees."""
    if not confirm(prompt):
        raise ConfirmationDeclined(prompt)


# =============================================================================
# Git Operations (Low-level)
# =============================================================================


def _display_ref(refname: str) -> str:
    """refs/heads/x -> x, refs/remotes/o/x -> remotes/o/x, refs/tags/v -> tags/v."""
    if refname.startswith("refs/heads/"):
        return refname.removeprefix("refs/heads/")
    return refname.removeprefix("refs/")


class GitOperations:
    """Low-level Git operations for a single repository.

    Each method is one ``git`` invocation (``pull`` and
    ``checkout_tracking`` run two) and raises :class:`GitError` when the
    tool fails.
    """

    def __init__(self, repo_path: Path, timeout: float | None = None):
        self.repo_path = repo_path
        self.timeout = timeout

    def _run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        """Run a git command in the repository."""
        command = ["git", *args]
        logger.debug("Running %s in %s", " ".join(command), self.repo_path)
        try:
            result = subprocess.run(
                command,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
                timeout=self.timeout,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
            )
        except subprocess.TimeoutExpired as e:
            raise GitError(
                f"git {args[0]} timed out after {self.timeout}s", command=command
            ) from e
        except OSError as e:
            raise GitError(f"git {args[0]} could not run: {e}", command=command) from e

        if check and result.returncode != 0:
            output = result.stderr.strip() or result.stdout.strip()
            logger.debug("git %s exited with %d: %s", args[0], result.returncode, output)
            raise GitError(
                output or f"git {args[0]} exited with status {result.returncode}",
                command=command,
                returncode=result.returncode,
                output=output,
            )
        return result

    def current_branch(self) -> str:
        """Get current branch name (``HEAD`` when detached)."""
        return self._run("rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def is_dirty(self) -> bool:
        """Check for staged, modified, deleted or untracked files.

        Returns False if the working tree cannot be queried.
        """
        try:
            result = self._run("status", "--porcelain")
        except GitError as e:
            logger.warning("Could not read working tree of %s, assuming clean: %s", self.repo_path, e)
            return False
        return bool(result.stdout.strip())

    def get_upstream(self, branch: str) -> str | None:
        result = self._run("rev-parse", "--abbrev-ref", f"{branch}@{{upstream}}", check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def branch_status(self, branch: str) -> BranchStatus | None:
        """Ahead/behind counts against the upstream, None without one."""
        upstream = self.get_upstream(branch)
        if upstream is None:
            return None
        result = self._run(
            "rev-list", "--left-right", "--count", f"{branch}...{upstream}", check=False
        )
        if result.returncode != 0:
            return None
        parts = result.stdout.split()
        if len(parts) != 2:
            return None
        return BranchStatus(ahead=int(parts[0]), behind=int(parts[1]))

    def remotes(self) -> dict[str, str]:
        """Map remote names to their fetch URLs."""
        result = self._run("remote")
        names = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        return {name: self._run("remote", "get-url", name).stdout.strip() for name in names}

    def all_branches(self) -> tuple[str, list[str]]:
        """Current branch plus every local branch, remote branch and tag."""
        current = self.current_branch()
        result = self._run(
            "for-each-ref", "--format=%(refname)", "refs/heads", "refs/remotes", "refs/tags"
        )
        branches = [_display_ref(line.strip()) for line in result.stdout.splitlines() if line.strip()]
        return current, branches

    def fetch_all(self) -> None:
        self._run("fetch", "--all")

    def pull(self) -> str:
        """Fetch all remotes, then pull the current branch."""
        self.fetch_all()
        return self._run("pull").stdout.strip()

    def reset_hard(self) -> None:
        """Discard all uncommitted changes to tracked files."""
        self._run("reset", "--hard")

    def clean_untracked(self) -> None:
        """Delete untracked files and directories."""
        self._run("clean", "-f", "-d")

    def checkout(self, branch: str, create_if_missing: bool = False) -> None:
        """Switch to ``branch``, optionally creating it when the switch fails."""
        try:
            self._run("checkout", branch)
        except GitError:
            if not create_if_missing:
                raise
            logger.debug("Creating branch %s in %s", branch, self.repo_path)
            self._run("checkout", "-b", branch)

    def remote_branch_exists(self, branch: str, remote: str = DEFAULT_REMOTE) -> bool:
        result = self._run("ls-remote", "--heads", remote, branch)
        wanted = f"refs/heads/{branch}"
        return any(
            line.split("\t", 1)[-1].strip() == wanted for line in result.stdout.splitlines()
        )

    def checkout_tracking(self, branch: str, remote: str = DEFAULT_REMOTE) -> None:
        """Create and switch to a local branch tracking ``remote/branch``.

        Raises:
            RemoteBranchNotFoundError: if the remote has no such branch.
        """
        if not self.remote_branch_exists(branch, remote):
            raise RemoteBranchNotFoundError(
                f"remote branch {remote}/{branch} not found",
                command=["git", "ls-remote", "--heads", remote, branch],
            )
        self._run("checkout", "--track", "-b", branch, f"{remote}/{branch}")

    def remove_build_dir(self, name: str = BUILD_DIR) -> bool:
        """Delete the ``name`` directory at the repository root, if present."""
        target = self.repo_path / name
        if not target.is_dir():
            return False
        logger.info("Removing %s", target)
        try:
            shutil.rmtree(target)
        except OSError as e:
            raise SgitError(f"could not remove {target}: {e}") from e
        return True


# =============================================================================
# Branch Switching
# =============================================================================


def _step(step: str, func: Callable[..., T], *args: Any) -> T:
    try:
        return func(*args)
    except SgitError as e:
        raise StepError(step, e) from e


def switch_branch(ops: GitOperations, request: SwitchRequest) -> str:
    """Move one repository onto ``request.branch``.

    Returns the success message. Raises StepError naming the failing step;
    steps already completed (such as a hard reset) are not undone.
    """
    branch = request.branch
    mode = request.mode

    if mode is SwitchMode.PLAIN:
        _step("switch", ops.checkout, branch, False)
        return branch

    if mode is SwitchMode.CREATE:
        _step("switch", ops.checkout, branch, True)
        return branch

    if mode is SwitchMode.TRACK:
        if request.fetch_first:
            _step("fetch", ops.fetch_all)
        _step("track", ops.checkout_tracking, branch, request.remote)
        return f"tracking branch: {branch}"

    if mode is SwitchMode.FORCE:
        _step("reset", ops.reset_hard)
        _step("clean", ops.clean_untracked)
        _step("switch after discarding local changes", ops.checkout, branch, request.create)
        if request.create:
            return f"created and switched to: {branch}"
        return f"switched to: {branch}"

    assert_never(mode)


# =============================================================================
# Repository Manager
# =============================================================================


class GitRepository:
    """High-level interface for a single Git repository.

    Every method returns a result object; Git failures are recorded on it
    rather than raised.
    """

    def __init__(self, path: Path, root: Path | None = None, timeout: float | None = None):
        self.path = path
        self.name = get_repo_name(path)
        self.display_path = relative_display(path, root) if root is not None else str(path)
        self.ops = GitOperations(path, timeout=timeout)

    def _result(self, operation: str) -> OperationResult:
        return OperationResult(
            path=self.path,
            name=self.name,
            operation=operation,
            display_path=self.display_path,
        )

    def get_branch_info(self, detailed: bool = False) -> BranchInfo:
        """Get current branch, upstream status and dirtiness."""
        info = BranchInfo(path=self.path, name=self.name, display_path=self.display_path)
        try:
            if detailed:
                info.branch, info.branches = self.ops.all_branches()
            else:
                info.branch = self.ops.current_branch()
            info.status = self.ops.branch_status(info.branch)
        except GitError as e:
            info.error = e
            return info

        info.dirty = self.ops.is_dirty()
        return info

    def get_remotes(self) -> RepositoryRemotes:
        """Get remote configuration for this repository."""
        remotes = RepositoryRemotes(path=self.path, name=self.name, display_path=self.display_path)
        try:
            remotes.remotes = self.ops.remotes()
        except GitError as e:
            remotes.error = e
        return remotes

    def pull(self) -> OperationResult:
        """Fetch and pull."""
        result = self._result("pull")
        try:
            self.ops.pull()
            result.message = "Pulled successfully"
        except GitError as e:
            result.error = e
        return result

    def clean(self, remove_build_dir: bool = True) -> OperationResult:
        """Reset, remove untracked files and optionally the build directory."""
        result = self._result("clean")
        try:
            _step("reset", self.ops.reset_hard)
            _step("clean", self.ops.clean_untracked)
            removed = False
            if remove_build_dir:
                removed = _step(f"remove {BUILD_DIR}/", self.ops.remove_build_dir)
        except StepError as e:
            result.error = e
            return result
        result.message = f"Cleaned (removed {BUILD_DIR}/)" if removed else "Cleaned"
        return result

    def switch(self, request: SwitchRequest) -> OperationResult:
        """Switch branch according to ``request``."""
        result = self._result("switch")
        try:
            result.message = switch_branch(self.ops, request)
        except StepError as e:
            result.error = e
        return result


# =============================================================================
# Task Execution
# =============================================================================


def _sort_key(result: Any) -> Any:
    return result.path if hasattr(result, "path") else str(result)


def run_all(
    repos: Sequence[R],
    operation: Callable[[R], T],
    parallel: bool = False,
    workers: int = DEFAULT_WORKERS,
) -> list[T]:
    """Apply ``operation`` to every repository and collect one result each.

    Sequential runs keep the input order. Parallel runs use a pool of
    ``workers`` threads, wait for all of them, and return the results
    sorted by path.
    """
    if workers < 1:
        raise ValueError(f"workers must be at least 1, got {workers}")

    if not parallel or len(repos) <= 1:
        return [operation(repo) for repo in repos]

    results = []
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(operation, repo) for repo in repos]
        for future in as_completed(futures):
            results.append(future.result())

    results.sort(key=_sort_key)
    return results


class FleetManager:
    """Manage all Git repositories under one root."""

    def __init__(self, config: FleetConfig):
        self.config = config
        self.root_path = config.root.resolve()
        self._repositories: list[GitRepository] | None = None

    def discover_repositories(self) -> list[GitRepository]:
        """Discover all Git repositories under the root path."""
        if self._repositories is None:
            paths = find_repositories(self.root_path, self.config.exclude)
            self._repositories = [
                GitRepository(p, self.root_path, timeout=self.config.timeout) for p in paths
            ]
        return self._repositories

    def repository_at_root(self) -> GitRepository:
        """The root itself as a repository, for non-recursive commands."""
        if not is_git_repository(self.root_path, timeout=self.config.timeout):
            raise NotARepositoryError(f"{self.root_path} is not a Git repository")
        return GitRepository(self.root_path, self.root_path, timeout=self.config.timeout)

    def _execute(
        self,
        operation: Callable[[GitRepository], T],
        repos: list[GitRepository] | None = None,
        parallel: bool | None = None,
    ) -> list[T]:
        if repos is None:
            repos = self.discover_repositories()
        return run_all(
            repos,
            operation,
            parallel=self.config.parallel if parallel is None else parallel,
            workers=self.config.workers,
        )

    def get_all_branches(self, detailed: bool = False) -> list[BranchInfo]:
        """Get branch state of all repositories."""
        return self._execute(lambda repo: repo.get_branch_info(detailed=detailed))

    def get_all_remotes(self) -> list[RepositoryRemotes]:
        """Get remote configuration of all repositories."""
        return self._execute(lambda repo: repo.get_remotes())

    def pull_all(self) -> list[OperationResult]:
        """Fetch and pull all repositories."""
        return self._execute(lambda repo: repo.pull())

    def clean_all(
        self,
        repos: list[GitRepository] | None = None,
        remove_build_dir: bool = True,
    ) -> list[OperationResult]:
        """Hard-reset and clean repositories. Destructive: confirm first."""
        return self._execute(lambda repo: repo.clean(remove_build_dir=remove_build_dir), repos=repos)

    def switch_all(self, request: SwitchRequest) -> list[OperationResult]:
        """Switch all repositories to ``request.branch``."""
        return self._execute(lambda repo: repo.switch(request))


# =============================================================================
# CLI Application
# =============================================================================


app = typer.Typer(
    name="sgit",
    help="Run Git operations across every repository under a directory.",
    no_args_is_help=True,
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        print(f"sgit {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    schema: bool = typer.Option(
        False,
        "--schema",
        help="Output MCP-compatible tool schema for AI agents",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log every git invocation to stderr",
    ),
):
    """sgit: run Git operations across every repository under a directory."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    if schema:
        print(json.dumps(get_tool_schema(), indent=2))
        raise typer.Exit()


def get_console_and_formatter(
    json_output: bool, plain: bool = False
) -> tuple[Console, OutputFormatter]:
    """Create console and formatter."""
    console = Console(force_terminal=not (json_output or plain))
    formatter = OutputFormatter(console, use_json=json_output)
    return console, formatter


def _build_config(
    path: Path | None,
    path_option: Path | None,
    exclude: str,
    parallel: bool = False,
    workers: int = DEFAULT_WORKERS,
    timeout: float | None = None,
) -> FleetConfig:
    root = path_option or path or Path(".")
    return FleetConfig(
        root=root,
        exclude=build_exclusions(exclude),
        parallel=parallel,
        workers=workers,
        timeout=timeout,
    )


def _discover(
    fleet: FleetManager,
    console: Console,
    formatter: OutputFormatter,
    quiet: bool,
) -> list[GitRepository]:
    """Discover repositories, exiting on failure or when there are none."""
    try:
        if not quiet:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task("Scanning repositories...", total=None)
                repos = fleet.discover_repositories()
        else:
            repos = fleet.discover_repositories()
    except DiscoveryError as e:
        console.print(f"[red]Error: {escape(str(e))}[/]")
        raise typer.Exit(1)

    if not repos:
        formatter.print_no_repositories(fleet.root_path)
        raise typer.Exit()
    return repos


def _run_with_progress(
    console: Console, quiet: bool, description: str, func: Callable[[], T]
) -> T:
    if quiet:
        return func()
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(description, total=None)
        return func()


def _confirm(console: Console, prompt: str) -> None:
    try:
        confirm_or_abort(typer.confirm, prompt)
    except ConfirmationDeclined:
        console.print("Operation cancelled")
        raise typer.Exit()


def _require_no_prompt(json_output: bool, prompts: bool, skip_flag: str) -> None:
    """JSON output must stay parseable, so it cannot share stdout with a prompt."""
    if json_output and prompts:
        raise typer.BadParameter(
            f"needs {skip_flag}: a confirmation prompt would corrupt the JSON output",
            param_hint="'--json'",
        )


def _exit_for(results: list[OperationResult]) -> None:
    succeeded, total = tally(results)
    if succeeded != total:
        raise typer.Exit(1)


PATH_ARGUMENT = typer.Argument(None, help="Root path to scan for repositories")
PATH_OPTION = typer.Option(None, "--path", "-p", help="Root path to scan (overrides PATH)")
EXCLUDE_OPTION = typer.Option(
    "", "--exclude", "-e", help="Comma-separated substrings; matching paths are skipped"
)
JSON_OPTION = typer.Option(False, "--json", "-j", help="Output as JSON")
PARALLEL_OPTION = typer.Option(False, "--parallel", help="Run on a worker pool")
WORKERS_OPTION = typer.Option(
    DEFAULT_WORKERS, "--workers", "-w", min=1, envvar="SGIT_WORKERS", help="Worker pool size"
)
TIMEOUT_OPTION = typer.Option(
    None, "--timeout", min=0, envvar="SGIT_TIMEOUT", help="Seconds each git call may run"
)


@app.command()
def branch(
    path: Path = PATH_ARGUMENT,
    path_option: Path = PATH_OPTION,
    exclude: str = EXCLUDE_OPTION,
    simple: bool = typer.Option(False, "--simple", "-s", help="Compact table output"),
    show_all: bool = typer.Option(
        False, "--all", "-a", help="Show local branches, remote branches and tags"
    ),
    summary: bool = typer.Option(False, "--summary", "-m", help="Show a branch summary"),
    parallel: bool = PARALLEL_OPTION,
    workers: int = WORKERS_OPTION,
    timeout: float = TIMEOUT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Show the current branch of every repository."""
    console, formatter = get_console_and_formatter(json_output)
    fleet = FleetManager(_build_config(path, path_option, exclude, parallel, workers, timeout))
    _discover(fleet, console, formatter, quiet=json_output)

    if simple:
        view = BranchView.SIMPLE
    elif show_all:
        view = BranchView.ALL
    elif summary:
        view = BranchView.SUMMARY
    else:
        view = BranchView.CURRENT

    infos = _run_with_progress(
        console,
        json_output,
        "Reading branches...",
        lambda: fleet.get_all_branches(detailed=view is BranchView.ALL),
    )
    formatter.print_branch_list(infos, BranchSummary.from_infos(infos), fleet.root_path, view)


@app.command()
def remote(
    path: Path = PATH_ARGUMENT,
    path_option: Path = PATH_OPTION,
    exclude: str = EXCLUDE_OPTION,
    simple: bool = typer.Option(False, "--simple", "-s", help="Compact table output"),
    raw: bool = typer.Option(
        False, "--raw", "-r", help="One 'path:remote:url' line per remote, for scripts"
    ),
    parallel: bool = PARALLEL_OPTION,
    workers: int = WORKERS_OPTION,
    timeout: float = TIMEOUT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Show remote URLs of every repository."""
    console, formatter = get_console_and_formatter(json_output, plain=raw)
    fleet = FleetManager(_build_config(path, path_option, exclude, parallel, workers, timeout))
    quiet = json_output or raw
    _discover(fleet, console, formatter, quiet=quiet)

    if raw:
        view = RemoteView.RAW
    elif simple:
        view = RemoteView.SIMPLE
    else:
        view = RemoteView.DETAILED

    remotes = _run_with_progress(console, quiet, "Reading remotes...", fleet.get_all_remotes)
    formatter.print_remote_list(remotes, fleet.root_path, view)


@app.command()
def pull(
    path: Path = PATH_ARGUMENT,
    path_option: Path = PATH_OPTION,
    exclude: str = EXCLUDE_OPTION,
    parallel: bool = PARALLEL_OPTION,
    workers: int = WORKERS_OPTION,
    timeout: float = TIMEOUT_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    json_output: bool = JSON_OPTION,
):
    """Fetch and pull every repository."""
    _require_no_prompt(json_output, not yes, "--yes")
    console, formatter = get_console_and_formatter(json_output)
    fleet = FleetManager(_build_config(path, path_option, exclude, parallel, workers, timeout))
    repos = _discover(fleet, console, formatter, quiet=json_output)

    if not json_output:
        formatter.print_repo_list(repos, fleet.root_path)
    if not yes:
        _confirm(console, f"Pull {len(repos)} repositories under {fleet.root_path.name}?")

    results = _run_with_progress(console, json_output, "Pulling...", fleet.pull_all)
    formatter.print_operation_results(results, "pull")
    _exit_for(results)


@app.command()
def clean(
    path: Path = PATH_ARGUMENT,
    force: bool = typer.Option(False, "--force", "-f", help="Skip the confirmation prompt"),
    recursive: bool = typer.Option(
        False, "--recursive", "-r", help="Clean every repository below the path"
    ),
    exclude: str = EXCLUDE_OPTION,
    path_option: Path = PATH_OPTION,
    keep_target: bool = typer.Option(
        False, "--keep-target", help=f"Do not delete the {BUILD_DIR}/ directory"
    ),
    timeout: float = TIMEOUT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Discard all changes: reset --hard, clean -f -d and remove target/."""
    _require_no_prompt(json_output, not force, "--force")
    console, formatter = get_console_and_formatter(json_output)
    fleet = FleetManager(_build_config(path, path_option, exclude, timeout=timeout))

    if not force:
        console.print("[bold red]Warning: this permanently deletes all uncommitted changes![/]")
        _confirm(console, "Continue?")

    if recursive:
        repos = _discover(fleet, console, formatter, quiet=json_output)
        if not json_output:
            formatter.print_repo_list(repos, fleet.root_path)
    else:
        try:
            repos = [fleet.repository_at_root()]
        except NotARepositoryError as e:
            console.print(f"[red]Error: {escape(str(e))}[/]")
            console.print("Hint: use --recursive to clean every repository below this path")
            raise typer.Exit(1)

    results = fleet.clean_all(repos=repos, remove_build_dir=not keep_target)
    formatter.print_operation_results(results, "clean")
    _exit_for(results)


@app.command()
def switch(
    branch_name: str = typer.Argument(..., metavar="BRANCH", help="Branch to switch to"),
    path_option: Path = PATH_OPTION,
    exclude: str = EXCLUDE_OPTION,
    create: bool = typer.Option(False, "--create", "-c", help="Create the branch if missing"),
    track: bool = typer.Option(
        False, "--track", "-t", help="Create a local branch tracking the remote branch"
    ),
    remote_name: str = typer.Option(
        DEFAULT_REMOTE, "--remote", "-r", help="Remote used with --track"
    ),
    fetch_first: bool = typer.Option(
        False, "--fetch", "-f", help="Fetch all remotes before --track"
    ),
    force: bool = typer.Option(
        False, "--force", help="Discard all local changes before switching"
    ),
    silent: bool = typer.Option(False, "--silent", "-s", help="Only report failures"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    sequential: bool = typer.Option(
        False, "--sequential", help="Run sequentially instead of parallel"
    ),
    workers: int = WORKERS_OPTION,
    timeout: float = TIMEOUT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Switch every repository to BRANCH."""
    prompts = not (silent or yes) and (force or not create)
    _require_no_prompt(json_output, prompts, "--yes")
    console, formatter = get_console_and_formatter(json_output)
    fleet = FleetManager(
        _build_config(None, path_option, exclude, not sequential, workers, timeout)
    )
    quiet = silent or json_output
    repos = _discover(fleet, console, formatter, quiet=quiet)

    if not quiet:
        console.print(
            f"Switching [bold]{len(repos)}[/] repositories to [yellow]{escape(branch_name)}[/]"
        )
        if force:
            console.print("[bold red]Warning: --force discards all uncommitted changes![/]")

    if prompts:
        _confirm(console, "Continue?")

    request = SwitchRequest(
        branch=branch_name,
        mode=SwitchMode.from_flags(create=create, track=track, force=force),
        create=create,
        remote=remote_name or DEFAULT_REMOTE,
        fetch_first=fetch_first,
    )
    results = _run_with_progress(
        console, quiet, "Switching...", lambda: fleet.switch_all(request)
    )
    formatter.print_switch_results(results, branch_name, silent=silent)
    _exit_for(results)
