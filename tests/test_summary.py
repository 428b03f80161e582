"""Tests for branch summary aggregation."""

from pathlib import Path

from sgit.core import (
    BranchInfo,
    BranchStatus,
    BranchSummary,
    FleetConfig,
    FleetManager,
    GitError,
    OperationResult,
    find_repositories,
    is_detached_branch,
    tally,
)


def _info(name: str, branch: str = "main", dirty: bool = False, error=None) -> BranchInfo:
    return BranchInfo(path=Path("/fleet") / name, name=name, branch=branch, dirty=dirty, error=error)


def test_counts_current_branches():
    summary = BranchSummary.from_infos(
        [_info("a"), _info("b", "develop"), _info("c"), _info("d", "develop"), _info("e", "zeta")]
    )

    assert summary.total == 5
    assert summary.branches == {"main": 2, "develop": 2, "zeta": 1}
    assert summary.branch_counts() == [("develop", 2), ("main", 2), ("zeta", 1)]


def test_detached_repositories_are_not_counted_as_branches():
    summary = BranchSummary.from_infos(
        [_info("a", "HEAD"), _info("b", "(detached from 1a2b3c)"), _info("c")]
    )

    assert [i.name for i in summary.detached] == ["a", "b"]
    assert summary.branches == {"main": 1}


def test_failing_repositories_only_listed_as_errors():
    broken = _info("broken", "HEAD", dirty=True, error=GitError("not a git repository"))
    summary = BranchSummary.from_infos([broken, _info("ok", dirty=True)])

    assert summary.errors == [broken]
    assert broken not in summary.detached
    assert broken not in summary.dirty
    assert [i.name for i in summary.dirty] == ["ok"]
    assert summary.total == 2


def test_dirty_includes_detached():
    summary = BranchSummary.from_infos([_info("a", "HEAD", dirty=True)])
    assert [i.name for i in summary.dirty] == ["a"]
    assert [i.name for i in summary.detached] == ["a"]


def test_to_dict():
    summary = BranchSummary.from_infos(
        [_info("a", dirty=True), _info("b", "HEAD"), _info("c", error=GitError("x"))]
    )
    assert summary.to_dict() == {
        "total": 3,
        "branches": {"main": 1},
        "detached": ["b"],
        "errors": ["c"],
        "dirty": ["a"],
    }


def test_is_detached_branch():
    assert is_detached_branch("HEAD")
    assert is_detached_branch("(detached from origin/main)")
    assert not is_detached_branch("main")
    assert not is_detached_branch("HEAD-fix")


def test_status_display():
    assert BranchStatus().display == ""
    assert BranchStatus(ahead=2).display == "↑2"
    assert BranchStatus(behind=3).display == "↓3"


def test_tally():
    results = [
        OperationResult(path=Path("/a"), name="a", operation="pull"),
        OperationResult(path=Path("/b"), name="b", operation="pull", error=GitError("x")),
    ]
    assert tally(results) == (1, 2)
    assert tally([]) == (0, 0)


def test_fleet_summary(tmp_path, make_repo, clone_repo, git):
    root = tmp_path / "root"
    _, a = clone_repo(root / "A")
    b = make_repo(root / "B")
    git(b, "checkout", "-q", "--detach")
    (b / "scratch.txt").write_text("scratch\n")
    c = root / "C"
    c.mkdir()
    (c / "notes.txt").write_text("not a repository\n")
    exclude = frozenset({str(c)})

    assert find_repositories(root, exclude) == [a, b]

    fleet = FleetManager(FleetConfig(root=root, exclude=exclude))
    infos = fleet.get_all_branches()
    summary = BranchSummary.from_infos(infos)

    assert summary.total == 2
    assert summary.branches == {"main": 1}
    assert [i.path for i in summary.detached] == [b.resolve()]
    assert [i.path for i in summary.dirty] == [b.resolve()]
    assert summary.errors == []

    info_a = infos[0]
    assert info_a.path == a.resolve()
    assert info_a.status == BranchStatus(0, 0)
    assert info_a.dirty is False


def test_parallel_branch_listing_matches_sequential(tmp_path, make_repo):
    root = tmp_path / "root"
    for name in ("delta", "alpha", "charlie", "bravo"):
        make_repo(root / name, branch=f"{name}-work")

    sequential = FleetManager(FleetConfig(root=root)).get_all_branches()
    parallel = FleetManager(FleetConfig(root=root, parallel=True, workers=2)).get_all_branches()

    assert [(i.path, i.branch) for i in parallel] == [(i.path, i.branch) for i in sequential]
    assert [i.branch for i in parallel] == [
        "alpha-work",
        "bravo-work",
        "charlie-work",
        "delta-work",
    ]
