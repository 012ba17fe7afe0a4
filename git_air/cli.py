#!/usr/bin/env python3
"""
git-air CLI Interface

Scans the working directory for Git repositories, commits and pushes each one,
then keeps running: a periodic rescan plus a small interactive command loop.

Usage:
    git-air [options]

Interactive commands:
    r    Re-scan now
    R    Restart the process
    q    Stop the timer and exit
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional

from rich.panel import Panel
from rich.text import Text

from . import __version__
from .config import DEFAULT_IGNORED_DIRS, Config
from .orchestrator import RunOrchestrator
from .scheduler import Scheduler, restart_process
from .utils import console

__all__ = [
    "create_argument_parser",
    "add_version_argument",
    "add_directory_argument",
    "add_discovery_arguments",
    "add_ai_arguments",
    "add_schedule_arguments",
    "add_output_arguments",
    "create_config_from_args",
    "configure_logging",
    "display_banner",
    "handle_command",
    "interactive_loop",
    "main",
]

COMMANDS_HELP = "Commands: r = re-scan, R = RELOAD script, q = quit"


def _bounded_float(low: float, high: float) -> Callable[[str], float]:
    def parse(value: str) -> float:
        try:
            number = float(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"invalid number: {value!r}")
        if not low <= number <= high:
            raise argparse.ArgumentTypeError(f"must be between {low:g} and {high:g}")
        return number
    return parse


def create_argument_parser() -> argparse.ArgumentParser:
    return argparse.ArgumentParser(
        prog="git-air",
        description="Recursively discover Git repositories and keep them committed and pushed.",
        epilog=COMMANDS_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )


def add_version_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")


def add_directory_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-r", "--root",
        type=Path,
        default=Path.cwd(),
        help="Directory to scan for repositories (default: current directory)",
    )


def add_discovery_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--ignore",
        nargs="+",
        default=[],
        metavar="NAME",
        help="Extra directory names never descended into "
             f"(always ignored: {', '.join(sorted(DEFAULT_IGNORED_DIRS))})",
    )
    parser.add_argument(
        "--no-nested",
        action="store_true",
        help="Do not look for repositories inside other repositories",
    )
    parser.add_argument(
        "--no-submodule-sync",
        action="store_true",
        help="Do not run 'git submodule update --remote --merge' on monorepos",
    )


def add_ai_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--no-ai",
        action="store_true",
        help="Never consult AI tools; always use the timestamp commit message",
    )
    parser.add_argument(
        "--no-model",
        action="store_true",
        help="Skip the g4f chat model at the end of the oracle chain",
    )
    parser.add_argument(
        "-m", "--model",
        type=str,
        default="gpt-4o-mini",
        help="g4f model used as the last commit-message oracle (default: gpt-4o-mini)",
    )
    parser.add_argument(
        "-t", "--timeout",
        type=_bounded_float(1.0, 600.0),
        default=30.0,
        help="Timeout in seconds for each AI tool invocation (default: 30)",
    )


def add_schedule_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-i", "--interval",
        type=_bounded_float(1.0, 86400.0),
        default=300.0,
        help="Seconds between periodic scans (default: 300)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single scan and exit (non-zero if any repository failed)",
    )


def add_output_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")


def build_parser() -> argparse.ArgumentParser:
    parser = create_argument_parser()
    add_version_argument(parser)
    add_directory_argument(parser)
    add_discovery_arguments(parser)
    add_ai_arguments(parser)
    add_schedule_arguments(parser)
    add_output_arguments(parser)
    return parser


def create_config_from_args(args: argparse.Namespace) -> Config:
    return Config(
        ignored_dirs=DEFAULT_IGNORED_DIRS | frozenset(args.ignore),
        nested_repos=not args.no_nested,
        sync_submodules=not args.no_submodule_sync,
        oracle_timeout=args.timeout,
        scan_interval=args.interval,
        use_ai=not args.no_ai,
        use_model=not args.no_model,
        model=args.model,
    )


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


def display_banner() -> None:
    banner = Text()
    banner.append("🚀 Git Air", style="bold cyan")
    banner.append(" - Git automation with recursive repository discovery\n")
    banner.append("📡 AI-powered commit messages for monorepos and multi-repos\n")
    banner.append(COMMANDS_HELP, style="dim")
    console.print(Panel(banner, expand=False))


def handle_command(command: str, scheduler: Scheduler,
                   restart: Callable[..., bool] = restart_process) -> Optional[int]:
    """Handle one interactive command.

    Returns:
        Optional[int]: Exit status when the loop should end, otherwise None.
    """
    if command == "r":
        console.print("\n----- Manual re-scan triggered -----")
        scheduler.trigger_now()
    elif command == "R":
        console.print("\n----- RELOADING script -----")
        if restart(scheduler):
            return 0
    elif command == "q":
        console.print("\n----- Shutting down git-air -----")
        scheduler.shutdown()
        return 0
    elif command:
        console.print(f"Unknown command: {command} (use r, R, or q)", markup=False)
    return None


def interactive_loop(scheduler: Scheduler,
                     read_line: Callable[[], str] = input) -> int:
    while True:
        try:
            line = read_line()
        except (EOFError, KeyboardInterrupt):
            scheduler.shutdown()
            return 0
        status = handle_command(line.strip(), scheduler)
        if status is not None:
            return status


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    if args.no_color:
        console.no_color = True

    root = args.root.resolve()
    if not root.is_dir():
        console.print(f"[red]Error: Not a directory: {root}[/red]")
        return 1

    try:
        config = create_config_from_args(args)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        return 1

    orchestrator = RunOrchestrator(root, config)
    if args.once:
        summary = orchestrator.run_cycle()
        return 0 if summary.fully_synchronized else 1

    display_banner()
    scheduler = Scheduler(orchestrator.run_cycle, config.scan_interval)
    scheduler.trigger_now()
    scheduler.start()
    return interactive_loop(scheduler)


if __name__ == "__main__":
    sys.exit(main())
