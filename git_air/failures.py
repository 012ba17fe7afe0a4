"""Failure taxonomy for git operations.

All decisions that depend on the wording of git's error output go through
:func:`classify_failure`; the rest of the package only sees :class:`FailureKind`.
"""

from enum import Enum
from typing import Optional, Tuple

from .utils import truncate


class FailureKind(str, Enum):
    NOTHING_TO_COMMIT = "nothing_to_commit"
    NO_UPSTREAM = "no_upstream"
    DIVERGED = "diverged"
    REPO_NOT_FOUND = "repo_not_found"
    HOST_KEY = "host_key"
    PERMISSION = "permission"
    NO_REMOTE = "no_remote"
    DETACHED_HEAD = "detached_head"
    SUBMODULE_SYNC = "submodule_sync"
    STATUS = "status"
    UNKNOWN = "unknown"


# Checked in order; the first matching kind wins.
_PATTERNS: Tuple[Tuple[FailureKind, Tuple[str, ...]], ...] = (
    (FailureKind.NOTHING_TO_COMMIT, ("nothing to commit", "no changes added to commit")),
    (FailureKind.HOST_KEY, ("host key verification failed",
                            "remote host identification has changed")),
    (FailureKind.REPO_NOT_FOUND, ("repository not found",
                                  "does not appear to be a git repository",
                                  "repository does not exist")),
    (FailureKind.PERMISSION, ("permission denied", "access denied", "access rights",
                              "authentication failed", "the requested url returned error: 403")),
    (FailureKind.NO_UPSTREAM, ("has no upstream branch", "no upstream configured",
                               "no tracking information")),
    (FailureKind.DIVERGED, ("fetch first", "non-fast-forward", "tip of your current branch is behind")),
    (FailureKind.NO_REMOTE, ("no configured push destination",)),
)

# Failures that need credentials or remote-side action.
NON_RECOVERABLE = frozenset({FailureKind.REPO_NOT_FOUND, FailureKind.HOST_KEY,
                             FailureKind.PERMISSION})

_REASONS = {
    FailureKind.NOTHING_TO_COMMIT: "Nothing to commit after staging",
    FailureKind.NO_UPSTREAM: "Branch has no upstream and setting one failed",
    FailureKind.DIVERGED: "Remote has diverged and automatic pull did not resolve it",
    FailureKind.REPO_NOT_FOUND: "Remote repository not found",
    FailureKind.HOST_KEY: "SSH host key verification failed",
    FailureKind.PERMISSION: "Permission denied by remote (check credentials or access rights)",
    FailureKind.NO_REMOTE: "No remote configured to push to",
    FailureKind.DETACHED_HEAD: "HEAD is detached; cannot determine branch to push",
    FailureKind.SUBMODULE_SYNC: "Submodule sync failed",
    FailureKind.STATUS: "Could not read repository status",
}


def classify_failure(text: Optional[str]) -> FailureKind:
    """Map raw git output onto a :class:`FailureKind`."""
    lowered = (text or "").lower()
    for kind, needles in _PATTERNS:
        if any(needle in lowered for needle in needles):
            return kind
    return FailureKind.UNKNOWN


def describe_failure(kind: FailureKind, raw: str = "", excerpt: int = 200) -> str:
    """Human-readable reason for a failure; unknown ones keep a truncated raw excerpt."""
    detail = truncate(" ".join(raw.split()), excerpt) if raw else ""
    if kind is FailureKind.UNKNOWN:
        return detail or "Unknown git error"
    reason = _REASONS[kind]
    if kind in (FailureKind.STATUS, FailureKind.SUBMODULE_SYNC) and detail:
        return f"{reason}: {detail}"
    return reason


def suggest_remedy(kind: FailureKind, branch: str = "") -> str:
    """Copy-pasteable command a human could start from."""
    target = branch or "<branch>"
    return {
        FailureKind.NO_UPSTREAM: f"git push --set-upstream origin {target}",
        FailureKind.DIVERGED: "git pull --rebase && git push",
        FailureKind.REPO_NOT_FOUND: "git remote -v",
        FailureKind.HOST_KEY: "ssh -T git@<host>",
        FailureKind.PERMISSION: "git remote -v && git push",
        FailureKind.NO_REMOTE: "git remote add origin <url>",
        FailureKind.DETACHED_HEAD: "git switch <branch>",
        FailureKind.SUBMODULE_SYNC: "git submodule update --remote --merge",
        FailureKind.STATUS: "git status",
        FailureKind.NOTHING_TO_COMMIT: "git status",
    }.get(kind, "git status && git push")
