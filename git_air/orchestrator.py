"""One full scan cycle: discover, process every repository in order, report."""

import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from rich.table import Table

from .config import Config, default_config
from .discovery import discover_repositories
from .git_ops import GitCommandError
from .models import ChangeStatus, OutcomeRecord, RepositoryRecord, RunSummary
from .failures import FailureKind, describe_failure, suggest_remedy
from .oracle import build_advisor_chain, build_commit_chain
from .sync import SyncEngine
from .utils import console

__all__ = ["RunOrchestrator", "render_status_line", "render_summary"]

logger = logging.getLogger(__name__)


def render_status_line(record: RepositoryRecord, status: ChangeStatus) -> str:
    """One-line summary printed before a repository is processed."""
    flags = []
    if status.has_uncommitted_changes:
        flags.append("uncommitted changes")
    if status.has_unpushed_commits:
        flags.append("unpushed commits")
    state = ", ".join(flags) if flags else "clean"
    remote = status.remote_descriptor or "no remote"
    return f"  {state} | {remote}"


def render_summary(summary: RunSummary) -> None:
    console.print()
    console.print(
        f"[bold]Summary:[/bold] {summary.successes} synced, "
        f"{summary.no_changes} unchanged, {summary.failure_count} failed"
    )
    if summary.fully_synchronized:
        console.print("[bold green]✅ All repositories are fully synchronized[/bold green]")
        return

    console.print("[bold red]⚠️  Needs attention:[/bold red]")
    table = Table(show_header=True, header_style="bold")
    table.add_column("Repository")
    table.add_column("Path")
    table.add_column("Reason")
    table.add_column("Suggested command")
    for entry in summary.failures:
        table.add_row(entry.repository_name, entry.relative_path,
                      entry.failure_reason, entry.remedy)
    console.print(table)

    # Plain list for pasting into a ticket or another tool
    for entry in summary.failures:
        console.print(
            f"- {entry.repository_name} ({entry.relative_path}): "
            f"{entry.failure_reason} -> cd {entry.relative_path} && {entry.remedy}",
            markup=False, highlight=False,
        )


class RunOrchestrator:
    """Runs scan cycles over every repository below a root directory."""

    def __init__(self, root: Union[str, Path, None] = None, config: Config = default_config,
                 engine: Optional[SyncEngine] = None) -> None:
        self.root = Path(root or os.getcwd()).resolve()
        self.config = config
        self.engine = engine or SyncEngine(
            config,
            commit_oracle=build_commit_chain(config, search_from=self.root),
            advisor_oracle=build_advisor_chain(config),
        )
        self.console = console

    def relative_path(self, path: Path) -> str:
        try:
            relative = path.relative_to(self.root)
        except ValueError:
            return str(path)
        return str(relative) if str(relative) != "." else "."

    def discover(self) -> List[RepositoryRecord]:
        self.console.print(f"🔍 Scanning for Git repositories starting from: {self.root}")
        records = discover_repositories(self.root, self.config)
        if not records:
            self.console.print("❌ No Git repositories found in current directory or subdirectories.")
            return records

        self.console.print(f"📁 Found {len(records)} Git repositories:")
        for record in records:
            self.console.print(f"  📂 {self.relative_path(record.path)} [{record.label}]",
                               markup=False)
        return records

    def report_status(self, record: RepositoryRecord, status: ChangeStatus) -> None:
        self.console.print(render_status_line(record, status), markup=False)
        if not status.needs_sync:
            self.console.print("  [green]✅ No changes to sync[/green]")

    def process(self, record: RepositoryRecord) -> OutcomeRecord:
        """Inspect, report and synchronize one repository; never raises."""
        monorepo = " [MONOREPO]" if record.is_monorepo else ""
        self.console.print(f"\n📝 Processing {record.name}{monorepo} ({record.kind.value})...",
                           markup=False)
        try:
            status: Optional[ChangeStatus] = None
            if not self.engine.syncs_submodules(record) and os.path.lexists(record.path / ".git"):
                status = self.engine.repository_factory(record.path, self.config).inspect()
                self.report_status(record, status)
                if not status.needs_sync:
                    return OutcomeRecord.no_changes()
            result = self.engine.sync(record, status, on_status=self.report_status)
        except (GitCommandError, TimeoutError) as e:
            raw = e.output if isinstance(e, GitCommandError) else str(e)
            reason = describe_failure(FailureKind.STATUS, raw, self.config.error_excerpt)
            result = OutcomeRecord.failure(reason, FailureKind.STATUS,
                                           suggest_remedy(FailureKind.STATUS))
            self.console.print(f"  [red]✗ {reason}[/red]")
        except Exception as e:
            logger.exception("Unexpected error while processing %s", record.path)
            reason = describe_failure(FailureKind.UNKNOWN, str(e), self.config.error_excerpt)
            result = OutcomeRecord.failure(reason, FailureKind.UNKNOWN,
                                           suggest_remedy(FailureKind.UNKNOWN))
        return result

    def run_cycle(self) -> RunSummary:
        """Run one full cycle and print the summary."""
        summary = RunSummary()
        for record in self.discover():
            result = self.process(record)
            summary.record(record, self.relative_path(record.path), result)
        if summary.total:
            render_summary(summary)
        return summary
