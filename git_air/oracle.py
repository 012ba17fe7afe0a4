"""Text oracles: external AI tools treated as prompt-in, text-out black boxes.

Commit messages and push-failure advice both go through an :class:`OracleChain`,
an ordered list of :class:`TextOracle` candidates. Each candidate is guarded by an
availability check, its own timeout and an output cap; the first non-empty answer
wins and is reduced to its first line. Nothing in this module raises to the caller.
"""

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from g4f.client import Client  # type: ignore

from .config import MODEL_TYPE, Config, default_config
from .discovery import find_project_root
from .git_ops import GitCommandError, GitRepository
from .utils import OutputLimitError, SubprocessHandler

__all__ = [
    "TextOracle",
    "CommandOracle",
    "ModelOracle",
    "OracleChain",
    "first_line",
    "build_commit_chain",
    "build_advisor_chain",
    "build_commit_prompt",
    "build_advice_prompt",
    "generate_commit_message",
    "fallback_commit_message",
    "LOCAL_AGENT_PATH",
]

logger = logging.getLogger(__name__)

LOCAL_AGENT_PATH = Path("ai-agent") / "bin" / "ai-commit-agent.ts"

COMMIT_SYSTEM_PROMPT = (
    "You write git commit messages. Answer with a single line in the imperative "
    "mood, at most 72 characters, and nothing else."
)
ADVISOR_SYSTEM_PROMPT = (
    "You are a git expert. Answer with one sentence suggesting how to fix the error."
)

_QUOTES = "\"'`"


@runtime_checkable
class TextOracle(Protocol):
    name: str

    def is_available(self) -> bool:
        ...

    def ask(self, prompt: str) -> Optional[str]:
        ...


def first_line(text: Optional[str]) -> Optional[str]:
    """Reduce oracle output to its first line, or None if there is nothing."""
    if not text:
        return None
    stripped = text.strip()
    if not stripped:
        return None
    line = stripped.splitlines()[0].strip()
    if len(line) >= 2 and line[0] == line[-1] and line[0] in _QUOTES:
        line = line[1:-1].strip()
    return line or None


class CommandOracle:
    """An installed command-line tool invoked with the prompt as argument or on stdin."""

    def __init__(self, name: str, argv: Sequence[str], prompt_via: str = "arg",
                 timeout: float = 30.0, max_output_bytes: int = 1024 * 1024,
                 cwd: Optional[Path] = None,
                 handler: Optional[SubprocessHandler] = None) -> None:
        self.name = name
        self.argv = tuple(argv)
        self.prompt_via = prompt_via
        self.timeout = timeout
        self.cwd = cwd
        self.handler = handler or SubprocessHandler(timeout=timeout,
                                                    max_output_size=max_output_bytes)

    def is_available(self) -> bool:
        return self.handler.command_exists(self.argv[0])

    def build_command(self, prompt: str) -> List[str]:
        if self.prompt_via == "stdin":
            return [part for part in self.argv if part != "{prompt}"]
        return [part.replace("{prompt}", prompt) for part in self.argv]

    def ask(self, prompt: str) -> Optional[str]:
        if not self.is_available():
            logger.debug("Oracle %s is not installed", self.name)
            return None

        command = self.build_command(prompt)
        try:
            stdout, stderr, code = self.handler.run_command(
                command,
                cwd=str(self.cwd) if self.cwd else None,
                input_text=prompt if self.prompt_via == "stdin" else None,
                timeout=self.timeout,
            )
        except (TimeoutError, OSError, OutputLimitError) as e:
            logger.debug("Oracle %s failed: %s", self.name, e)
            return None

        if code != 0:
            logger.debug("Oracle %s exited with %d: %s", self.name, code, stderr.strip())
            return None
        return stdout.strip() or None


class ModelOracle:
    """Asks a g4f chat model, bounded by a wall-clock timeout."""

    def __init__(self, model: MODEL_TYPE, system_prompt: str, timeout: float = 30.0,
                 max_output_bytes: int = 1024 * 1024, client: Any = None) -> None:
        self.name = f"g4f:{getattr(model, 'name', model)}"
        self.model = model
        self.system_prompt = system_prompt
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = Client()
        return self._client

    def is_available(self) -> bool:
        return True

    def _complete(self, prompt: str) -> Optional[str]:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": prompt},
            ],
        )
        if response and response.choices:
            return response.choices[0].message.content
        return None

    def _run(self, prompt: str, outcome: Dict[str, Any]) -> None:
        try:
            outcome["content"] = self._complete(prompt)
        except Exception as e:
            outcome["error"] = e

    def ask(self, prompt: str) -> Optional[str]:
        # Left running on timeout; must never block interpreter exit
        outcome: Dict[str, Any] = {}
        worker = threading.Thread(target=self._run, args=(prompt, outcome),
                                  name=f"oracle-{self.name}", daemon=True)
        worker.start()
        worker.join(self.timeout)

        if worker.is_alive():
            logger.debug("Oracle %s timed out after %s seconds", self.name, self.timeout)
            return None
        if "error" in outcome:
            logger.debug("Oracle %s failed: %s", self.name, outcome["error"])
            return None

        content = outcome.get("content")
        if not content:
            return None
        return content[:self.max_output_bytes].strip() or None


class OracleChain:
    """Prioritized list of oracles; the first usable answer wins."""

    def __init__(self, oracles: Sequence[TextOracle]) -> None:
        self.oracles = list(oracles)

    def __len__(self) -> int:
        return len(self.oracles)

    def ask(self, prompt: str) -> Optional[str]:
        for oracle in self.oracles:
            try:
                answer = first_line(oracle.ask(prompt))
            except Exception as e:
                logger.warning("Oracle %s raised unexpectedly: %s", oracle.name, e)
                continue
            if answer:
                logger.debug("Oracle %s answered: %s", oracle.name, answer)
                return answer
            logger.debug("Oracle %s gave no answer, trying next", oracle.name)
        return None


def _command_oracles(tools, config: Config) -> List[TextOracle]:
    return [
        CommandOracle(name, argv, prompt_via=mode, timeout=config.oracle_timeout,
                      max_output_bytes=config.max_output_bytes)
        for name, argv, mode in tools
    ]


def _local_agent_oracle(project_root: Optional[Path], config: Config) -> Optional[TextOracle]:
    if project_root is None:
        return None
    agent = project_root / LOCAL_AGENT_PATH
    if not agent.is_file():
        logger.debug("No local commit agent at %s", agent)
        return None

    oracle = CommandOracle("ai-commit-agent", ("npx", "ts-node", str(agent), "--man", "{prompt}"),
                           timeout=config.oracle_timeout,
                           max_output_bytes=config.max_output_bytes, cwd=project_root)
    if not oracle.is_available():
        logger.debug("Local commit agent found but npx is not installed")
        return None
    if not _agent_is_functional(oracle, agent):
        return None
    return oracle


def _agent_is_functional(oracle: CommandOracle, agent: Path) -> bool:
    """Run the agent's ``--check-models`` self test once, before it joins a chain."""
    command = ["npx", "ts-node", str(agent), "--check-models"]
    try:
        _, stderr, code = oracle.handler.run_command(
            command, cwd=str(oracle.cwd) if oracle.cwd else None, timeout=oracle.timeout)
    except (TimeoutError, OSError, OutputLimitError) as e:
        logger.debug("Local commit agent check failed: %s", e)
        return False
    if code != 0:
        logger.debug("Local commit agent is not functional (exit %d): %s", code, stderr.strip())
        return False
    return True


def build_commit_chain(config: Config = default_config,
                       search_from: Optional[Path] = None) -> OracleChain:
    """Commit-message oracles: the project-local agent, installed CLIs, then g4f."""
    if not config.use_ai:
        return OracleChain([])

    oracles: List[TextOracle] = []
    agent = _local_agent_oracle(find_project_root(search_from or Path.cwd()), config)
    if agent is not None:
        oracles.append(agent)
    oracles.extend(_command_oracles(config.commit_tools, config))
    if config.use_model:
        oracles.append(ModelOracle(config.model, COMMIT_SYSTEM_PROMPT,
                                   timeout=config.oracle_timeout,
                                   max_output_bytes=config.max_output_bytes))
    return OracleChain(oracles)


def build_advisor_chain(config: Config = default_config) -> OracleChain:
    """Problem-solving oracles consulted on unclassified push failures."""
    if not config.use_ai:
        return OracleChain([])

    oracles = _command_oracles(config.advisor_tools, config)
    if config.use_model:
        oracles.append(ModelOracle(config.model, ADVISOR_SYSTEM_PROMPT,
                                   timeout=config.oracle_timeout,
                                   max_output_bytes=config.max_output_bytes))
    return OracleChain(oracles)


def build_commit_prompt(repo_name: str, status_lines: Sequence[str], diff_stat: str,
                        config: Config = default_config) -> str:
    """Bounded summary of staged changes: file count, a few names, truncated stats."""
    files = [line[3:].strip() if len(line) > 3 else line.strip() for line in status_lines]
    shown = files[:config.summary_max_files]
    more = len(files) - len(shown)

    parts = [
        "Write a single-line git commit message for these changes. "
        "Reply with the message only.",
        f"{len(files)} files changed in {repo_name}.",
        "Files: " + ", ".join(shown) + (f" (and {more} more)" if more > 0 else ""),
        f"Stats: {diff_stat.strip()[:config.summary_max_chars]}",
    ]
    return "\n".join(parts)


def build_advice_prompt(repo_name: str, operation: str, error_text: str,
                        config: Config = default_config) -> str:
    return (
        f"A '{operation}' in the git repository '{repo_name}' failed with:\n"
        f"{error_text.strip()[:config.summary_max_chars]}\n"
        "Suggest the fix in one sentence."
    )


def generate_commit_message(repo: GitRepository, chain: OracleChain,
                            config: Config = default_config) -> Optional[str]:
    """Ask the oracle chain for a message describing the staged changes.

    Returns None when nothing is staged, no oracle is usable, or every oracle
    fails; the caller then uses :func:`fallback_commit_message`.
    """
    if not len(chain):
        return None
    try:
        status_lines = repo.status_lines()
        diff_stat = repo.diff_stat()
    except (GitCommandError, TimeoutError) as e:
        logger.debug("Cannot summarize changes in %s: %s", repo.path, e)
        return None

    if not status_lines:
        return None
    prompt = build_commit_prompt(repo.path.name, status_lines, diff_stat, config)
    return chain.ask(prompt)


def fallback_commit_message(tool_name: str = default_config.tool_name,
                            now: Optional[datetime] = None) -> str:
    """Deterministic message: ``Auto-commit by <tool> at <ISO-8601 UTC timestamp>``."""
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    stamp = moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"
    return f"Auto-commit by {tool_name} at {stamp}"
