"""Domain records shared by discovery, the sync engine and the orchestrator."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .failures import FailureKind


class RepoKind(str, Enum):
    """Where a repository sits relative to the scan root."""

    MAIN = "main"
    SUBMODULE = "submodule"
    NESTED = "nested"


@dataclass(frozen=True)
class RepositoryRecord:
    path: Path
    kind: RepoKind
    is_monorepo: bool = False

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def label(self) -> str:
        return "MONOREPO" if self.is_monorepo else "REPO"


@dataclass(frozen=True)
class ChangeStatus:
    """Snapshot of what a repository has to synchronize.

    ``branch`` and ``has_upstream`` come from the same branch-aware status call
    and are only used to pick push arguments.
    """

    has_uncommitted_changes: bool
    has_unpushed_commits: bool
    remote_descriptor: Optional[str] = None
    branch: str = ""
    has_upstream: bool = False

    @property
    def needs_sync(self) -> bool:
        return self.has_uncommitted_changes or self.has_unpushed_commits


class Outcome(str, Enum):
    SUCCESS = "success"
    NO_CHANGES = "no_changes"
    FAILURE = "failure"


@dataclass(frozen=True)
class OutcomeRecord:
    """Result of processing one repository; exactly one tag holds."""

    outcome: Outcome
    reason: str = ""
    failure_kind: Optional[FailureKind] = None
    remedy: str = ""

    @classmethod
    def success(cls, reason: str = "") -> "OutcomeRecord":
        return cls(Outcome.SUCCESS, reason=reason)

    @classmethod
    def no_changes(cls, reason: str = "") -> "OutcomeRecord":
        return cls(Outcome.NO_CHANGES, reason=reason)

    @classmethod
    def failure(cls, reason: str, kind: FailureKind = FailureKind.UNKNOWN,
                remedy: str = "") -> "OutcomeRecord":
        return cls(Outcome.FAILURE, reason=reason, failure_kind=kind, remedy=remedy)

    @property
    def is_failure(self) -> bool:
        return self.outcome is Outcome.FAILURE


@dataclass(frozen=True)
class FailureEntry:
    repository_name: str
    relative_path: str
    failure_reason: str
    remedy: str = ""


@dataclass
class RunSummary:
    """Aggregated outcomes of one scan cycle."""

    successes: int = 0
    no_changes: int = 0
    failures: List[FailureEntry] = field(default_factory=list)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def total(self) -> int:
        return self.successes + self.no_changes + self.failure_count

    @property
    def fully_synchronized(self) -> bool:
        return not self.failures

    def record(self, repository: RepositoryRecord, relative_path: str,
               result: OutcomeRecord) -> None:
        if result.outcome is Outcome.SUCCESS:
            self.successes += 1
        elif result.outcome is Outcome.NO_CHANGES:
            self.no_changes += 1
        else:
            self.failures.append(FailureEntry(
                repository_name=repository.name,
                relative_path=relative_path,
                failure_reason=result.reason,
                remedy=result.remedy,
            ))
