"""Per-repository stage/commit/push cycle with bounded push recovery.

    Inspecting -> Skip(NoChanges)
               -> Staging -> Committing -> Pushing -> Success
                                                   -> Recovering -> Success | Failure

Every git or oracle failure is turned into an :class:`OutcomeRecord`; nothing
propagates out of :meth:`SyncEngine.sync`.
"""

import logging
import os
import re
from typing import Callable, Optional

from .config import Config, default_config
from .discovery import is_sparse_checkout
from .failures import (NON_RECOVERABLE, FailureKind, classify_failure,
                       describe_failure, suggest_remedy)
from .git_ops import GitCommandError, GitRepository, GitResult
from .models import ChangeStatus, OutcomeRecord, RepositoryRecord
from .oracle import (OracleChain, build_advice_prompt, fallback_commit_message,
                     generate_commit_message)
from .utils import console

__all__ = ["SyncEngine", "suggests_pull"]

logger = logging.getLogger(__name__)

StatusCallback = Callable[[RepositoryRecord, ChangeStatus], None]

_PULL_RE = re.compile(r"\bpull\b", re.IGNORECASE)
_CLAUSE_BREAK_RE = re.compile(r"[.,;:!?\n]")
_NEGATION_RE = re.compile(
    r"\b(?:not|never|no need to|avoid|without|instead of|"
    r"(?:do|does|did|should|must|could|would)n[’']?t|can[’']?t|cannot)\b",
    re.IGNORECASE,
)


def suggests_pull(advice: Optional[str]) -> bool:
    """Whether an advisor answer recommends a plain ``git pull``.

    A ``pull`` counts only when nothing earlier in the same clause negates it,
    so "do not pull, check credentials" is not a recommendation.
    """
    if not advice:
        return False
    for match in _PULL_RE.finditer(advice):
        clause = _CLAUSE_BREAK_RE.split(advice[:match.start()])[-1]
        if not _NEGATION_RE.search(clause):
            return True
    return False


class SyncEngine:
    """Runs the synchronization state machine for one repository at a time."""

    def __init__(self, config: Config = default_config,
                 commit_oracle: Optional[OracleChain] = None,
                 advisor_oracle: Optional[OracleChain] = None,
                 repository_factory: Callable[..., GitRepository] = GitRepository) -> None:
        self.config = config
        self.commit_oracle = commit_oracle or OracleChain([])
        self.advisor_oracle = advisor_oracle or OracleChain([])
        self.repository_factory = repository_factory
        self.console = console

    def _fail(self, kind: FailureKind, raw: str = "", branch: str = "") -> OutcomeRecord:
        reason = describe_failure(kind, raw, self.config.error_excerpt)
        self.console.print(f"  [red]✗ {reason}[/red]")
        return OutcomeRecord.failure(reason, kind=kind, remedy=suggest_remedy(kind, branch))

    def sync(self, record: RepositoryRecord,
             status: Optional[ChangeStatus] = None,
             on_status: Optional[StatusCallback] = None) -> OutcomeRecord:
        """Synchronize one repository.

        Args:
            record: The repository to process.
            status: A status snapshot taken moments ago by the caller; inspected
                here when omitted.
            on_status: Called with the snapshot this method takes itself, which
                happens when none was given or after submodules moved.

        Returns:
            OutcomeRecord: Success, NoChanges or Failure(reason).
        """
        repo = self.repository_factory(record.path, self.config)
        try:
            return self._sync(repo, record, status, on_status)
        except GitCommandError as e:
            # Only status reads run with check=True
            kind = FailureKind.STATUS if "status" in e.command else classify_failure(e.output)
            return self._fail(kind, e.output)
        except TimeoutError as e:
            return self._fail(FailureKind.UNKNOWN, str(e))
        except OSError as e:
            return self._fail(FailureKind.UNKNOWN, str(e))

    def syncs_submodules(self, record: RepositoryRecord) -> bool:
        return (self.config.sync_submodules and record.is_monorepo
                and (record.path / ".gitmodules").exists())

    def _sync(self, repo: GitRepository, record: RepositoryRecord,
              status: Optional[ChangeStatus],
              on_status: Optional[StatusCallback] = None) -> OutcomeRecord:
        # git would otherwise fall back to an enclosing repository
        if not os.path.lexists(record.path / ".git"):
            return self._fail(FailureKind.STATUS, f"no .git entry in {record.path}")

        if self.syncs_submodules(record):
            # Submodule pointers may move, so any earlier snapshot is stale
            status = None
            self.console.print("  [cyan]- Syncing submodules...[/cyan]")
            synced = repo.update_submodules()
            if not synced.ok:
                return self._fail(FailureKind.SUBMODULE_SYNC, synced.output)

        if status is None:
            status = repo.inspect()
            if on_status is not None:
                on_status(record, status)
        if not status.needs_sync:
            return OutcomeRecord.no_changes()

        if status.has_uncommitted_changes:
            if is_sparse_checkout(record.path):
                self.console.print("  [dim]- Detected sparse-checkout repository[/dim]")
            committed = self.commit(repo)
            if committed is not None:
                return committed

        if not repo.has_remote():
            self.console.print("  [yellow]- No remote found. Skipping push.[/yellow]")
            return OutcomeRecord.success("committed locally")

        return self.push(repo, status)

    # -- staging and committing -------------------------------------------

    def commit(self, repo: GitRepository) -> Optional[OutcomeRecord]:
        """Stage everything and commit.

        Returns:
            Optional[OutcomeRecord]: None when a commit was created and the push
            phase should run, otherwise the final outcome.
        """
        staged = repo.stage_all()
        if not staged.ok:
            return self._fail(classify_failure(staged.output), staged.output)
        self.console.print("  - Changes staged")

        message = generate_commit_message(repo, self.commit_oracle, self.config)
        if message:
            self.console.print("  - [green]Using AI-generated commit message[/green]")
        else:
            message = fallback_commit_message(self.config.tool_name)
            self.console.print("  - [dim]Using fallback commit message[/dim]")

        result = repo.commit(message)
        if result.ok:
            self.console.print(f'  - Committed: "{message}"')
            return None

        kind = classify_failure(result.output)
        if kind is FailureKind.NOTHING_TO_COMMIT:
            self.console.print("  - Nothing to commit")
            return OutcomeRecord.no_changes("nothing to commit after staging")
        return self._fail(kind, result.output)

    # -- pushing and recovery ---------------------------------------------

    def push(self, repo: GitRepository, status: ChangeStatus) -> OutcomeRecord:
        branch = status.branch or repo.current_branch()
        result = repo.push()
        if result.ok:
            self.console.print("  - [green]Pushed to remote[/green]")
            return OutcomeRecord.success()

        kind = classify_failure(result.output)
        if kind is FailureKind.NO_UPSTREAM:
            if not branch:
                return self._fail(FailureKind.DETACHED_HEAD, result.output)
            self.console.print(f"  - Setting upstream for branch: {branch}")
            result = repo.push_set_upstream(branch)
            if result.ok:
                self.console.print("  - [green]Pushed with upstream set[/green]")
                return OutcomeRecord.success()
            kind = classify_failure(result.output)

        return self.recover(repo, kind, result, branch, status.has_upstream)

    def _retry_push(self, repo: GitRepository, branch: str, has_upstream: bool) -> GitResult:
        if has_upstream or not branch:
            return repo.push()
        return repo.push_set_upstream(branch)

    def _pull(self, repo: GitRepository, branch: str, has_upstream: bool,
              rebase: bool) -> GitResult:
        if has_upstream or not branch:
            return repo.pull(rebase=rebase)
        return repo.pull(rebase=rebase, remote="origin", branch=branch)

    def recover(self, repo: GitRepository, kind: FailureKind, failed: GitResult,
                branch: str, has_upstream: bool) -> OutcomeRecord:
        """Attempt at most one remediation per category, then one push retry."""
        if kind in NON_RECOVERABLE:
            self.console.print("  - [yellow]Not auto-fixable, needs manual action[/yellow]")
            return self._fail(kind, failed.output, branch)

        if kind is FailureKind.DIVERGED:
            self.console.print("  - Remote has diverged, pulling (merge)...")
            pulled = self._pull(repo, branch, has_upstream, rebase=False)
            if not pulled.ok:
                repo.abort_merge()
                self.console.print("  - Merge pull failed, pulling (rebase)...")
                pulled = self._pull(repo, branch, has_upstream, rebase=True)
                if not pulled.ok:
                    repo.abort_rebase()
                    return self._fail(FailureKind.DIVERGED, pulled.output, branch)

            retried = self._retry_push(repo, branch, has_upstream)
            if retried.ok:
                self.console.print("  - [green]Pushed after pull[/green]")
                return OutcomeRecord.success("pushed after pull")
            return self._fail(FailureKind.DIVERGED, retried.output, branch)

        if kind is FailureKind.NO_REMOTE:
            return self._fail(kind, failed.output, branch)

        advice = self.advisor_oracle.ask(build_advice_prompt(
            repo.path.name, "git push", failed.output, self.config))
        if advice:
            self.console.print(f"  - AI suggestion: {advice}")
        if suggests_pull(advice):
            pulled = self._pull(repo, branch, has_upstream, rebase=False)
            if pulled.ok:
                retried = self._retry_push(repo, branch, has_upstream)
                if retried.ok:
                    self.console.print("  - [green]Pushed after suggested pull[/green]")
                    return OutcomeRecord.success("pushed after suggested pull")
                return self._fail(classify_failure(retried.output), retried.output, branch)
            repo.abort_merge()

        return self._fail(kind, failed.output, branch)
