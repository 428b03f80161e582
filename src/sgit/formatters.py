"""Output formatters for console and JSON display."""

from __future__ import annotations

import json
from collections import defaultdict
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from .core import (
        BranchInfo,
        BranchSummary,
        GitRepository,
        OperationResult,
        RepositoryRemotes,
    )


class BranchView(StrEnum):
    """Layouts for the branch command."""

    CURRENT = "current"
    SIMPLE = "simple"
    ALL = "all"
    SUMMARY = "summary"


class RemoteView(StrEnum):
    """Layouts for the remote command."""

    DETAILED = "detailed"
    SIMPLE = "simple"
    RAW = "raw"


def compute_unique_display_names(
    items: list[Any],
    name_attr: str = "name",
    path_attr: str = "path",
) -> dict[Path, str]:
    """Compute unique display names for items with duplicate names.

    When multiple items share the same name, parent directory components
    are added until each name becomes unique.

    Args:
        items: List of objects with name and path attributes
        name_attr: Name of the attribute containing the item name
        path_attr: Name of the attribute containing the item path

    Returns:
        Dictionary mapping path to display name
    """
    name_groups: dict[str, list[Any]] = defaultdict(list)
    for item in items:
        name_groups[getattr(item, name_attr)].append(item)

    result: dict[Path, str] = {}
    for name, group in name_groups.items():
        if len(group) == 1:
            result[getattr(group[0], path_attr)] = name
        else:
            paths = [getattr(item, path_attr) for item in group]
            for path, unique_name in zip(paths, _make_paths_unique(paths)):
                result[path] = unique_name
    return result


def _make_paths_unique(paths: list[Path]) -> list[str]:
    """Generate shortest unique display names for a list of paths.

    For each path, adds parent directory components until the name
    is unique among all paths.
    """
    path_parts_list = [list(reversed(p.parts)) for p in paths]

    result = []
    for i, parts in enumerate(path_parts_list):
        for depth in range(1, len(parts) + 1):
            candidate = "/".join(reversed(parts[:depth]))
            clashes = any(
                "/".join(reversed(other[: min(depth, len(other))])) == candidate
                for j, other in enumerate(path_parts_list)
                if i != j
            )
            if not clashes:
                result.append(candidate)
                break
        else:
            result.append("/".join(reversed(parts)))
    return result


def remote_type(url: str) -> str:
    """Classify a remote URL by host or protocol."""
    if "github.com" in url:
        return "GitHub"
    if "gitlab.com" in url:
        return "GitLab"
    if "bitbucket.org" in url:
        return "Bitbucket"
    if url.startswith(("http://", "https://")):
        return "HTTP"
    if url.startswith("git://"):
        return "GIT"
    if "@" in url:
        return "SSH"
    return "Custom"


def shorten_url(url: str, max_len: int) -> str:
    if len(url) <= max_len:
        return url
    return url[: max_len - 3] + "..."


class OutputFormatter:
    """Format output for console or JSON."""

    def __init__(self, console: Console, use_json: bool = False):
        self.console = console
        self.use_json = use_json

    def _emit_json(self, payload: dict):
        self.console.print(
            json.dumps(payload, indent=2, default=str),
            markup=False,
            highlight=False,
            soft_wrap=True,
        )

    def _emit_line(self, line: str):
        """Print a line verbatim: no markup, no highlighting, no wrapping."""
        self.console.print(line, markup=False, highlight=False, soft_wrap=True)

    def print_no_repositories(self, root_path: Path):
        if self.use_json:
            self._emit_json({"root": str(root_path), "count": 0, "repositories": []})
        else:
            self.console.print(f"[yellow]No Git repositories found in {escape(str(root_path))}[/]")

    def print_repo_list(self, repos: list[GitRepository], root_path: Path):
        """Print the repositories about to be processed."""
        display_names = compute_unique_display_names(repos)
        self.console.print(f"[bold]Found {len(repos)} Git repositories in {escape(str(root_path))}[/]")
        for repo in repos:
            repo_display = display_names.get(repo.path, repo.name)
            self.console.print(f"  • [cyan]{escape(repo_display)}[/] [dim]{escape(repo.display_path)}[/]")
        self.console.print()

    # -------------------------------------------------------------------------
    # Branches
    # -------------------------------------------------------------------------

    def print_branch_list(
        self,
        infos: list[BranchInfo],
        summary: BranchSummary,
        root_path: Path,
        view: BranchView = BranchView.CURRENT,
    ):
        """Print branch information in the requested layout."""
        if self.use_json:
            self._emit_json(
                {
                    "root": str(root_path),
                    "repositories": [i.to_dict() for i in infos],
                    "summary": summary.to_dict(),
                }
            )
        elif view is BranchView.SIMPLE:
            self._print_branch_table(infos)
        elif view is BranchView.ALL:
            self._print_branch_details(infos, root_path)
        elif view is BranchView.SUMMARY:
            self._print_branch_summary(summary)
        else:
            self._print_current_branches(infos, root_path)

    def _branch_display(self, info: BranchInfo) -> str:
        color = "yellow" if info.is_detached else "green"
        return f"[{color}]{escape(info.branch)}[/]"

    def _print_current_branches(self, infos: list[BranchInfo], root_path: Path):
        display_names = compute_unique_display_names(infos)
        self.console.print(
            f"\nFound [bold]{len(infos)}[/] Git repositories in [bold]{escape(root_path.name)}[/]\n"
        )
        for info in infos:
            header = f"[cyan]► {escape(display_names.get(info.path, info.name))}[/]"
            if info.error is not None:
                self.console.print(f"{header} [red]\\[ERROR: {escape(str(info.error))}][/]")
            else:
                dirty = " [yellow](uncommitted changes)[/]" if info.dirty else ""
                self.console.print(f"{header} {self._branch_display(info)}{dirty}")
                if info.status and info.status.display:
                    self.console.print(f"  Status: {info.status.display}")
            self.console.print(f"  Path: [cyan]{escape(info.display_path)}[/]\n")

    def _print_branch_table(self, infos: list[BranchInfo]):
        display_names = compute_unique_display_names(infos)

        table = Table(title="Git repository branches")
        table.add_column("Repository", style="cyan", no_wrap=True)
        table.add_column("Branch")
        table.add_column("Status", justify="center")
        table.add_column("Changes", justify="center")

        for info in infos:
            repo_display = escape(display_names.get(info.path, info.name))
            if info.error is not None:
                table.add_row(repo_display, f"[red]ERROR: {escape(str(info.error))}[/]", "", "")
                continue
            status = info.status.display if info.status else ""
            changes = "[yellow]✗[/]" if info.dirty else ""
            table.add_row(repo_display, self._branch_display(info), status, changes)

        self.console.print(table)

    def _print_branch_details(self, infos: list[BranchInfo], root_path: Path):
        from .core import classify_branches

        display_names = compute_unique_display_names(infos)
        self.console.print(
            f"\nFound [bold]{len(infos)}[/] Git repositories in [bold]{escape(root_path.name)}[/]\n"
        )
        for info in infos:
            self.console.print(f"[cyan]► {escape(display_names.get(info.path, info.name))}[/]")
            self.console.print(f"  Path: [cyan]{escape(info.display_path)}[/]")
            if info.error is not None:
                self.console.print(f"  [red]Error: {escape(str(info.error))}[/]\n")
                continue

            dirty = " [yellow](uncommitted changes)[/]" if info.dirty else ""
            self.console.print(f"  Current branch: {self._branch_display(info)}{dirty}")
            if info.status and info.status.display:
                self.console.print(f"  Status: {info.status.display}")

            local, remote, tags = classify_branches(info.branches)
            self.console.print("  All branches:")
            if local:
                self.console.print("    Local:")
                for name in local:
                    marker = "[green]*[/]" if name == info.branch else " "
                    self.console.print(f"      {marker} {escape(name)}")
            if remote:
                self.console.print("    Remote:")
                for name in remote:
                    self.console.print(f"      [yellow]{escape(name)}[/]")
            if tags:
                self.console.print("    Tags:")
                for name in tags:
                    self.console.print(f"      [cyan]{escape(name)}[/]")
            self.console.print()

    def _print_branch_summary(self, summary: BranchSummary):
        self.console.print("\n[bold]Branch summary for Git repositories[/]")
        self.console.print("-" * 60)

        counts = summary.branch_counts()
        if counts:
            self.console.print("[green]Branches:[/]")
            for name, count in counts:
                self.console.print(f"  {escape(name):<30}: {count} repositories")
            self.console.print()

        for title, color, members in (
            ("Detached HEAD", "yellow", summary.detached),
            ("Errors", "red", summary.errors),
            ("Uncommitted changes", "yellow", summary.dirty),
        ):
            if not members:
                continue
            self.console.print(f"[{color}]{title}[/] ({len(members)} repositories)")
            for i, info in enumerate(members, 1):
                self.console.print(f"  {i}. {escape(info.name)} [dim]{escape(info.display_path)}[/]")
            self.console.print()

        self.console.print("-" * 60)
        self.console.print(f"Total repositories: {summary.total}")

    # -------------------------------------------------------------------------
    # Remotes
    # -------------------------------------------------------------------------

    def print_remote_list(
        self,
        remotes: list[RepositoryRemotes],
        root_path: Path,
        view: RemoteView = RemoteView.DETAILED,
    ):
        """Print remote list for all repositories."""
        if self.use_json:
            self._print_remote_json(remotes, root_path)
        elif view is RemoteView.RAW:
            self._print_remote_raw(remotes)
        elif view is RemoteView.SIMPLE:
            self._print_remote_table(remotes)
        else:
            self._print_remote_details(remotes)

    def _print_remote_raw(self, remotes: list[RepositoryRemotes]):
        """One colon-delimited line per (repository, remote, url)."""
        for repo_remotes in remotes:
            if repo_remotes.error is not None:
                error = " ".join(str(repo_remotes.error).split())
                self._emit_line(f"{repo_remotes.path}: ERROR: {error}")
            elif not repo_remotes.remotes:
                self._emit_line(f"{repo_remotes.path}: NO_REMOTES")
            else:
                for name, url in repo_remotes.remotes.items():
                    self._emit_line(f"{repo_remotes.path}:{name}:{url}")

    def _print_remote_table(self, remotes: list[RepositoryRemotes]):
        display_names = compute_unique_display_names(remotes)

        table = Table()
        table.add_column("Repository", style="cyan", no_wrap=True)
        table.add_column("Remote", style="blue")
        table.add_column("URL")
        table.add_column("Type", justify="center")

        for repo_remotes in remotes:
            repo_display = escape(display_names.get(repo_remotes.path, repo_remotes.name))
            if repo_remotes.error is not None:
                table.add_row(repo_display, "[red]ERROR[/]", f"[red]{escape(str(repo_remotes.error))}[/]", "")
                continue
            if not repo_remotes.remotes:
                table.add_row(repo_display, "[blue]LOCAL_ONLY[/]", "[dim]-[/]", "[dim]-[/]")
                continue
            for i, (name, url) in enumerate(repo_remotes.remotes.items()):
                # Only show repo name on first row
                table.add_row(
                    repo_display if i == 0 else "",
                    escape(name),
                    escape(shorten_url(url, 40)),
                    f"[green]{remote_type(url)}[/]",
                )

        self.console.print(table)
        self.console.print(f"Total repositories: {len(remotes)}")

    def _print_remote_details(self, remotes: list[RepositoryRemotes]):
        display_names = compute_unique_display_names(remotes)
        self.console.print(f"\nFound [bold]{len(remotes)}[/] Git repositories\n")
        for repo_remotes in remotes:
            self.console.print(
                f"[bold]► {escape(display_names.get(repo_remotes.path, repo_remotes.name))}[/]"
            )
            self.console.print(f"  Path: [cyan]{escape(repo_remotes.display_path)}[/]")
            if repo_remotes.error is not None:
                self.console.print(f"  [red]Error:[/] {escape(str(repo_remotes.error))}\n")
                continue
            if not repo_remotes.remotes:
                self.console.print("  [yellow]No remotes configured[/]")
            for name, url in repo_remotes.remotes.items():
                self.console.print(
                    f"  [green]{escape(name)}[/]: {escape(url)} ([green]{remote_type(url)}[/])"
                )
            self.console.print()

    def _print_remote_json(self, remotes: list[RepositoryRemotes], root_path: Path):
        type_counts: dict[str, int] = {}
        for repo_remotes in remotes:
            for url in repo_remotes.remotes.values():
                kind = remote_type(url)
                type_counts[kind] = type_counts.get(kind, 0) + 1

        self._emit_json(
            {
                "root": str(root_path),
                "repositories": [r.to_dict() for r in remotes],
                "summary": {
                    "total_repos": len(remotes),
                    "total_remotes": sum(len(r.remotes) for r in remotes),
                    "without_remotes": sum(
                        1 for r in remotes if r.error is None and not r.remotes
                    ),
                    "errors": sum(1 for r in remotes if r.error is not None),
                    "by_type": type_counts,
                },
            }
        )

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def print_operation_results(self, results: list[OperationResult], operation: str):
        """Print operation results."""
        if self.use_json:
            self._print_operation_json(results)
        else:
            self._print_operation_table(results, operation)

    def _print_operation_table(self, results: list[OperationResult], operation: str):
        if not results:
            self.console.print(f"[dim]No repositories to {operation}[/]")
            return

        display_names = compute_unique_display_names(results)

        table = Table(title=f"{operation.title()} Results")
        table.add_column("Repository", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Message")

        for result in results:
            repo_display = escape(display_names.get(result.path, result.name))
            if result.success:
                status = "[green]✓[/]"
                message = escape(result.message[:50]) if result.message else "OK"
            else:
                status = "[red]✗[/]"
                message = f"[red]{escape(str(result.error)[:50])}[/]"
            table.add_row(repo_display, status, message)

        self.console.print(table)
        self._print_tally(results)

    def _print_tally(self, results: list[OperationResult]):
        from .core import tally

        succeeded, total = tally(results)
        self.console.print(f"\n[bold]Success:[/] {succeeded}/{total}")

        failures = [r for r in results if not r.success]
        if failures:
            self.console.print("\n[bold red]Failures:[/]")
            for result in failures:
                self.console.print(
                    f"  [red]{escape(result.name)}[/] ({escape(result.display_path)}): "
                    f"{escape(str(result.error))}"
                )

    def _print_operation_json(self, results: list[OperationResult]):
        self._emit_json(
            {
                "results": [r.to_dict() for r in results],
                "summary": {
                    "total": len(results),
                    "success": sum(1 for r in results if r.success),
                    "failed": sum(1 for r in results if not r.success),
                },
            }
        )

    def print_switch_results(
        self, results: list[OperationResult], branch: str, silent: bool = False
    ):
        """Print one line per repository, the tally and the failures.

        In silent mode only failures are printed.
        """
        if self.use_json:
            self._print_operation_json(results)
            return

        display_names = compute_unique_display_names(results)
        for result in results:
            repo_display = escape(display_names.get(result.path, result.name))
            if result.success:
                if not silent:
                    self.console.print(
                        f"[green]✓[/] {repo_display}: [yellow]{escape(result.message)}[/]"
                    )
            else:
                self.console.print(f"[red]✗[/] {repo_display}: [red]{escape(str(result.error))}[/]")

        if silent:
            return

        self._print_tally(results)
        if all(r.success for r in results):
            self.console.print(f"\n[green]All repositories switched to {escape(branch)}![/]")
