"""
Git Air: recursive Git repository discovery with automated commit and push

Key Features:
    - Depth-first discovery of repositories, nested repositories and submodules
    - Submodules and nested repositories are processed before their parents
    - AI-generated commit messages from installed CLI tools or a g4f chat model,
      with a timestamp message as the last resort
    - Bounded auto-recovery for rejected pushes (merge pull, rebase pull, AI advice)
    - Per-repository failure isolation and an actionable end-of-run report

Usage:
    Run in the directory holding your repositories:
    $ git-air

    The tool will:
    1. Find every Git repository below the current directory
    2. Stage, commit and push each repository that has changes
    3. Print a summary of what needs human attention
    4. Re-scan every 5 minutes until told to quit

Commands:
    - [r]: Re-scan now
    - [R]: Restart the process
    - [q]: Quit
"""

__version__ = "1.0.0"
__author__ = "Alaamer"

from .config import Config, default_config
from .discovery import discover_repositories
from .models import ChangeStatus, Outcome, OutcomeRecord, RepoKind, RepositoryRecord, RunSummary
from .orchestrator import RunOrchestrator
from .sync import SyncEngine


def main() -> int:
    from .cli import main as cli_main
    return cli_main()


__all__ = [
    'main',
    'Config',
    'default_config',
    'discover_repositories',
    'ChangeStatus',
    'Outcome',
    'OutcomeRecord',
    'RepoKind',
    'RepositoryRecord',
    'RunSummary',
    'RunOrchestrator',
    'SyncEngine',
    '__version__',
    '__author__',
]
