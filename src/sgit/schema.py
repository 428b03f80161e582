"""MCP-compatible tool schema for AI agents."""

from __future__ import annotations

from ._version import __version__

_PATH_PROPERTIES = {
    "path": {
        "type": "string",
        "description": "Root path to scan for repositories (default: current directory)",
        "default": ".",
    },
    "exclude": {
        "type": "string",
        "description": "Comma-separated substrings; any directory whose path contains one is skipped with its subtree",
        "default": "",
    },
    "json": {
        "type": "boolean",
        "description": "Output as JSON for machine parsing",
        "default": False,
    },
    "timeout": {
        "type": "number",
        "description": "Seconds each git call may run before it fails that repository (default: no limit)",
    },
}

_OPERATION_OUTPUT = {
    "type": "object",
    "properties": {
        "results": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "path": {"type": "string"},
                    "name": {"type": "string"},
                    "display_path": {"type": "string"},
                    "operation": {"type": "string"},
                    "success": {"type": "boolean"},
                    "message": {"type": "string"},
                    "error": {"type": "string"},
                },
            },
        },
        "summary": {
            "type": "object",
            "properties": {
                "total": {"type": "integer"},
                "success": {"type": "integer"},
                "failed": {"type": "integer"},
            },
        },
    },
}


def get_tool_schema() -> dict:
    """Generate MCP-compatible tool schema for AI agents."""
    return {
        "name": "sgit",
        "version": __version__,
        "description": "Run Git operations across every repository under a directory tree: inspect branches and remotes, pull, hard-reset/clean, and switch branches, optionally on a worker pool.",
        "usage": "sgit <command> [path] [options]",
        "tools": [
            {
                "name": "branch",
                "description": "Show the current branch of every repository with ahead/behind counts against its upstream and a dirty flag. Detached HEAD repositories are reported separately in the summary.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        **_PATH_PROPERTIES,
                        "all": {
                            "type": "boolean",
                            "description": "Include every local branch, remote branch and tag",
                            "default": False,
                        },
                        "summary": {
                            "type": "boolean",
                            "description": "Group repositories by branch",
                            "default": False,
                        },
                    },
                    "required": [],
                },
                "outputSchema": {
                    "type": "object",
                    "properties": {
                        "root": {"type": "string"},
                        "repositories": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "path": {"type": "string"},
                                    "name": {"type": "string"},
                                    "branch": {"type": "string"},
                                    "detached": {"type": "boolean"},
                                    "dirty": {"type": "boolean"},
                                    "status": {
                                        "type": ["object", "null"],
                                        "properties": {
                                            "ahead": {"type": "integer"},
                                            "behind": {"type": "integer"},
                                        },
                                    },
                                    "error": {"type": "string"},
                                },
                            },
                        },
                        "summary": {
                            "type": "object",
                            "properties": {
                                "total": {"type": "integer"},
                                "branches": {"type": "object"},
                                "detached": {"type": "array", "items": {"type": "string"}},
                                "errors": {"type": "array", "items": {"type": "string"}},
                                "dirty": {"type": "array", "items": {"type": "string"}},
                            },
                        },
                    },
                },
                "examples": [
                    {
                        "description": "Branches of all repos in ~/work",
                        "command": "sgit branch ~/work --json",
                    },
                    {
                        "description": "Branch summary, skipping vendored checkouts",
                        "command": "sgit branch --summary --exclude vendor,node_modules",
                    },
                ],
            },
            {
                "name": "remote",
                "description": "Show remote names and URLs of every repository. Raw mode prints one 'path:remote:url' line per remote and 'path: NO_REMOTES' for repositories without any.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        **_PATH_PROPERTIES,
                        "raw": {
                            "type": "boolean",
                            "description": "Colon-delimited lines for scripts",
                            "default": False,
                        },
                    },
                    "required": [],
                },
                "examples": [
                    {
                        "description": "List every remote URL for scripting",
                        "command": "sgit remote --raw",
                    },
                ],
            },
            {
                "name": "pull",
                "description": "Fetch all remotes and pull every repository. Asks for confirmation unless --yes is given.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        **_PATH_PROPERTIES,
                        "parallel": {
                            "type": "boolean",
                            "description": "Pull on a worker pool",
                            "default": False,
                        },
                        "workers": {
                            "type": "integer",
                            "description": "Worker pool size",
                            "default": 4,
                        },
                        "yes": {
                            "type": "boolean",
                            "description": "Skip the confirmation prompt (required for non-interactive use)",
                            "default": False,
                        },
                    },
                    "required": [],
                },
                "outputSchema": _OPERATION_OUTPUT,
            },
            {
                "name": "clean",
                "description": "DESTRUCTIVE. Discard all uncommitted changes: git reset --hard, git clean -f -d and removal of the target/ directory. Works on the given repository, or every repository below it with --recursive.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        **_PATH_PROPERTIES,
                        "recursive": {
                            "type": "boolean",
                            "description": "Clean every repository below the path",
                            "default": False,
                        },
                        "force": {
                            "type": "boolean",
                            "description": "Skip the confirmation prompt (required for non-interactive use)",
                            "default": False,
                        },
                        "keep_target": {
                            "type": "boolean",
                            "description": "Do not delete the target/ directory",
                            "default": False,
                        },
                    },
                    "required": [],
                },
                "outputSchema": _OPERATION_OUTPUT,
            },
            {
                "name": "switch",
                "description": "Switch every repository to a branch. Modes: plain checkout, --create (create when missing), --track (local branch tracking <remote>/<branch>, fails with 'remote branch not found' when absent), --force (DESTRUCTIVE: reset --hard and clean first).",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "branch": {"type": "string", "description": "Branch to switch to"},
                        **_PATH_PROPERTIES,
                        "create": {"type": "boolean", "default": False},
                        "track": {"type": "boolean", "default": False},
                        "remote": {"type": "string", "default": "origin"},
                        "fetch": {
                            "type": "boolean",
                            "description": "Fetch all remotes before --track",
                            "default": False,
                        },
                        "force": {"type": "boolean", "default": False},
                        "yes": {
                            "type": "boolean",
                            "description": "Skip the confirmation prompt",
                            "default": False,
                        },
                    },
                    "required": ["branch"],
                },
                "outputSchema": _OPERATION_OUTPUT,
                "examples": [
                    {
                        "description": "Create feature/x everywhere",
                        "command": "sgit switch feature/x --create --yes --json",
                    },
                    {
                        "description": "Track release/1.0 from origin after fetching",
                        "command": "sgit switch release/1.0 --track --fetch --yes",
                    },
                ],
            },
        ],
        "globalOptions": {
            "--json, -j": "Output in JSON format; prompting commands need --yes (clean: --force)",
            "--timeout": "Seconds each git call may run (also $SGIT_TIMEOUT)",
            "--exclude, -e": "Comma-separated path substrings to skip",
            "--path, -p": "Root path to scan (overrides the positional path)",
            "--verbose, -v": "Log every git invocation to stderr",
        },
        "excludeFileAutoResolution": {
            "description": "Default exclusion patterns are merged with --exclude",
            "priority": [
                "$SGIT_EXCLUDE_FILE environment variable (path to exclude file)",
                "~/.config/sgit/exclude (XDG-compliant)",
                "~/.sgit-exclude (legacy fallback)",
            ],
        },
        "notes": [
            "Exit status is 1 when any repository fails; every failure is listed with its Git message",
            "Results are sorted by repository path, also in parallel mode",
            "clean and switch --force cannot be undone",
        ],
    }
