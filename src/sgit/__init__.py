"""sgit: run Git operations across every repository under a directory."""

# Guard against deleted CWD (e.g. directory removed by another process).
# rich crashes on import if os.getcwd() fails, so recover before any imports.
import os

try:
    os.getcwd()
except (OSError, PermissionError):
    os.chdir(os.path.expanduser("~"))

from ._version import __version__
from .core import (
    BranchInfo,
    BranchStatus,
    BranchSummary,
    ConfirmationDeclined,
    DiscoveryError,
    FleetConfig,
    FleetManager,
    GitError,
    GitOperations,
    GitRepository,
    NotARepositoryError,
    OperationResult,
    RemoteBranchNotFoundError,
    RepositoryRemotes,
    SgitError,
    StepError,
    SwitchMode,
    SwitchRequest,
    app,
    find_repositories,
    run_all,
    switch_branch,
)
from .formatters import OutputFormatter
from .schema import get_tool_schema

__all__ = [
    # Version
    "__version__",
    # CLI
    "app",
    # Models
    "BranchInfo",
    "BranchStatus",
    "BranchSummary",
    "FleetConfig",
    "OperationResult",
    "RepositoryRemotes",
    "SwitchMode",
    "SwitchRequest",
    # Errors
    "ConfirmationDeclined",
    "DiscoveryError",
    "GitError",
    "NotARepositoryError",
    "RemoteBranchNotFoundError",
    "SgitError",
    "StepError",
    # Operations
    "FleetManager",
    "GitOperations",
    "GitRepository",
    # Functions
    "find_repositories",
    "get_tool_schema",
    "run_all",
    "switch_branch",
    # Formatters
    "OutputFormatter",
]
