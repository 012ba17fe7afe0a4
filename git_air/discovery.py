"""Repository discovery and classification.

The walker is depth-first and visits entries in name order. A directory is a
repository root as soon as it holds an entry named ``.git``, whether that entry
is a directory or a ``gitdir:`` pointer file.
"""

import logging
import os
import re
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .config import Config, default_config
from .models import RepoKind, RepositoryRecord

__all__ = [
    "discover_repositories",
    "find_repository_roots",
    "classify_kind",
    "is_monorepo",
    "sort_for_processing",
    "resolve_git_dir",
    "is_sparse_checkout",
    "find_project_root",
]

logger = logging.getLogger(__name__)

GIT_ENTRY = ".git"

_GITDIR_RE = re.compile(r"^gitdir:\s*(.+)$", re.MULTILINE)

_KIND_ORDER = {RepoKind.SUBMODULE: 0, RepoKind.NESTED: 1, RepoKind.MAIN: 2}


def _scan_dir(directory: Path) -> Optional[List[os.DirEntry]]:
    try:
        with os.scandir(directory) as it:
            return sorted(it, key=lambda entry: entry.name)
    except OSError as e:
        logger.debug("Skipping unreadable directory %s: %s", directory, e)
        return None


def find_repository_roots(root: Union[str, Path],
                          ignored_dirs: Iterable[str] = default_config.ignored_dirs,
                          nested: bool = True) -> List[Path]:
    """Return repository roots below ``root`` in depth-first, name-sorted order."""
    ignored = frozenset(ignored_dirs)
    found: List[Path] = []

    def walk(directory: Path) -> None:
        entries = _scan_dir(directory)
        if entries is None:
            return

        if any(entry.name == GIT_ENTRY for entry in entries):
            found.append(directory)
            if not nested:
                return

        for entry in entries:
            if entry.name == GIT_ENTRY or entry.name in ignored:
                continue
            try:
                if not entry.is_dir(follow_symlinks=False):
                    continue
            except OSError:
                continue
            walk(Path(entry.path))

    walk(Path(root).resolve())
    return found


def classify_kind(path: Path, root: Path) -> RepoKind:
    """Label a repository as the scan root, a submodule or a nested repository."""
    if path == root:
        return RepoKind.MAIN
    if (path / GIT_ENTRY).is_file():
        return RepoKind.SUBMODULE
    return RepoKind.NESTED


def is_monorepo(path: Path) -> bool:
    """A monorepo declares submodules or directly contains another repository."""
    if (path / ".gitmodules").exists():
        return True

    entries = _scan_dir(path)
    for entry in entries or ():
        if entry.name == GIT_ENTRY:
            continue
        try:
            if entry.is_dir(follow_symlinks=False) and os.path.lexists(
                    os.path.join(entry.path, GIT_ENTRY)):
                return True
        except OSError:
            continue
    return False


def sort_for_processing(records: Iterable[RepositoryRecord]) -> List[RepositoryRecord]:
    """Submodules first, nested repositories next, main repositories last.

    The sort is stable, so discovery order is kept within each kind.
    """
    return sorted(records, key=lambda record: _KIND_ORDER[record.kind])


def discover_repositories(root: Union[str, Path],
                          config: Config = default_config) -> List[RepositoryRecord]:
    """Discover and classify every repository below ``root``.

    When ``config.classify`` is set the result is in processing order,
    otherwise in discovery order.
    """
    root_path = Path(root).resolve()
    records = [
        RepositoryRecord(path=path, kind=classify_kind(path, root_path),
                         is_monorepo=is_monorepo(path))
        for path in find_repository_roots(root_path, config.ignored_dirs,
                                          nested=config.nested_repos)
    ]
    if config.classify:
        return sort_for_processing(records)
    return records


def resolve_git_dir(path: Path) -> Optional[Path]:
    """Return the metadata directory of a repository, following ``gitdir:`` files."""
    git_entry = path / GIT_ENTRY
    if git_entry.is_dir():
        return git_entry
    if not git_entry.is_file():
        return None

    try:
        content = git_entry.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.debug("Cannot read %s: %s", git_entry, e)
        return None

    match = _GITDIR_RE.search(content)
    if not match:
        return None
    target = Path(match.group(1).strip())
    if not target.is_absolute():
        target = (path / target).resolve()
    return target


def is_sparse_checkout(path: Path) -> bool:
    git_dir = resolve_git_dir(path)
    return git_dir is not None and (git_dir / "info" / "sparse-checkout").exists()


def find_project_root(start: Union[str, Path]) -> Optional[Path]:
    """Walk up from ``start`` to the first directory holding a ``.git`` entry."""
    current = Path(start).resolve()
    for candidate in (current, *current.parents):
        if (candidate / GIT_ENTRY).exists():
            return candidate
    return None
