"""Configuration module for git-air.

This module provides a configuration class that holds all the settings
for repository discovery, the commit-message oracles and the sync engine.
"""

from typing import FrozenSet, Iterable, Optional, Sequence, Tuple, Union

from g4f.models import Model  # type: ignore

# Type alias for the supported model types
MODEL_TYPE = Union[Model, str]

# A command-line oracle: (name, argv template, prompt delivery)
TOOL_SPEC = Tuple[str, Tuple[str, ...], str]

DEFAULT_IGNORED_DIRS: FrozenSet[str] = frozenset(
    {"node_modules", "vendor", ".vscode", ".idea", "dist", "build"}
)

DEFAULT_COMMIT_TOOLS: Tuple[TOOL_SPEC, ...] = (
    ("claude", ("claude", "-p", "{prompt}"), "arg"),
    ("gemini", ("gemini", "-p", "{prompt}"), "arg"),
    ("llm", ("llm", "{prompt}"), "arg"),
)

DEFAULT_ADVISOR_TOOLS: Tuple[TOOL_SPEC, ...] = (
    ("claude", ("claude", "-p", "{prompt}"), "arg"),
    ("gemini", ("gemini", "-p", "{prompt}"), "arg"),
    ("llm", ("llm", "{prompt}"), "arg"),
)

PROMPT_MODES = ("arg", "stdin")


class Config:
    """Configuration class for git-air.

    Attributes:
        tool_name: Name used in the fallback commit message.
        ignored_dirs: Directory names the walker never descends into.
        nested_repos: Whether to keep scanning inside a repository for nested ones.
        classify: Whether to order repositories submodules first, main last.
        sync_submodules: Whether to run ``git submodule update`` on monorepos.
        oracle_timeout: Timeout in seconds for a single oracle invocation.
        git_timeout: Timeout in seconds for a single git invocation.
        max_output_bytes: Cap on the captured output of an oracle.
        summary_max_files: Number of file names included in the commit prompt.
        summary_max_chars: Number of diff-stat characters included in the prompt.
        scan_interval: Seconds between two periodic scans.
        use_ai: Whether to consult any oracle at all.
        use_model: Whether the g4f chat model is the last oracle in the chain.
        model: The g4f model used by the chat oracle.
        commit_tools: Command-line commit-message oracles, in priority order.
        advisor_tools: Command-line problem-solving oracles, in priority order.
        error_excerpt: Length raw git error text is truncated to in reports.
    """

    def __init__(
        self,
        tool_name: str = "git-air",
        ignored_dirs: Iterable[str] = DEFAULT_IGNORED_DIRS,
        nested_repos: bool = True,
        classify: bool = True,
        sync_submodules: bool = True,
        oracle_timeout: float = 30.0,
        git_timeout: float = 120.0,
        max_output_bytes: int = 1024 * 1024,
        summary_max_files: int = 10,
        summary_max_chars: int = 500,
        scan_interval: float = 300.0,
        use_ai: bool = True,
        use_model: bool = True,
        model: MODEL_TYPE = "gpt-4o-mini",
        commit_tools: Sequence[TOOL_SPEC] = DEFAULT_COMMIT_TOOLS,
        advisor_tools: Sequence[TOOL_SPEC] = DEFAULT_ADVISOR_TOOLS,
        error_excerpt: int = 200,
    ):
        self.tool_name: str = tool_name
        self.ignored_dirs: FrozenSet[str] = frozenset(ignored_dirs)
        self.nested_repos: bool = nested_repos
        self.classify: bool = classify
        self.sync_submodules: bool = sync_submodules
        self.oracle_timeout: float = oracle_timeout
        self.git_timeout: float = git_timeout
        self.max_output_bytes: int = max_output_bytes
        self.summary_max_files: int = summary_max_files
        self.summary_max_chars: int = summary_max_chars
        self.scan_interval: float = scan_interval
        self.use_ai: bool = use_ai
        self.use_model: bool = use_model
        self.model: MODEL_TYPE = model
        self.commit_tools: Tuple[TOOL_SPEC, ...] = tuple(commit_tools)
        self.advisor_tools: Tuple[TOOL_SPEC, ...] = tuple(advisor_tools)
        self.error_excerpt: int = error_excerpt

        error = self._validate()
        if error:
            raise ValueError(f"Invalid configuration: {error}")

    def _validate(self) -> Optional[str]:
        """Return the first validation error, or None if the configuration is valid."""
        if not isinstance(self.tool_name, str) or not self.tool_name.strip():
            return "tool_name must be a non-empty string"
        if any(not isinstance(name, str) or not name for name in self.ignored_dirs):
            return "ignored_dirs must contain non-empty directory names"
        for flag in ("nested_repos", "classify", "sync_submodules", "use_ai", "use_model"):
            if not isinstance(getattr(self, flag), bool):
                return f"{flag} must be a boolean value"
        if not _is_number_between(self.oracle_timeout, 1.0, 600.0):
            return "oracle_timeout must be a number between 1.0 and 600.0"
        if not _is_number_between(self.git_timeout, 1.0, 3600.0):
            return "git_timeout must be a number between 1.0 and 3600.0"
        if not _is_positive_int(self.max_output_bytes):
            return "max_output_bytes must be a positive integer"
        if not _is_positive_int(self.summary_max_files):
            return "summary_max_files must be a positive integer"
        if not _is_positive_int(self.summary_max_chars):
            return "summary_max_chars must be a positive integer"
        if not _is_number_between(self.scan_interval, 1.0, 86400.0):
            return "scan_interval must be a number between 1.0 and 86400.0"
        if not isinstance(self.model, (str, Model)) or not self.model:
            return "model must be a g4f Model or a non-empty string"
        for tools_name in ("commit_tools", "advisor_tools"):
            if not all(_is_tool_entry(tool) for tool in getattr(self, tools_name)):
                return f"{tools_name} must contain (name, argv, 'arg'|'stdin') entries"
        if not _is_positive_int(self.error_excerpt):
            return "error_excerpt must be a positive integer"
        return None

    def is_valid(self) -> bool:
        """Check whether the configuration is still valid."""
        return self._validate() is None


def _is_number_between(value: object, low: float, high: float) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return low <= value <= high


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _is_tool_entry(tool: object) -> bool:
    if not isinstance(tool, tuple) or len(tool) != 3:
        return False
    name, argv, mode = tool
    return (
        isinstance(name, str) and bool(name)
        and isinstance(argv, tuple) and bool(argv)
        and all(isinstance(part, str) for part in argv)
        and mode in PROMPT_MODES
    )


# Default configuration instance
default_config = Config()
