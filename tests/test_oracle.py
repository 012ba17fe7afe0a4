"""Tests for the text oracles and commit-message generation."""

import os
import re
import subprocess
import sys
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from git_air.config import Config
from git_air.oracle import (
    LOCAL_AGENT_PATH,
    CommandOracle,
    ModelOracle,
    OracleChain,
    TextOracle,
    build_advice_prompt,
    build_advisor_chain,
    build_commit_chain,
    build_commit_prompt,
    fallback_commit_message,
    first_line,
    generate_commit_message,
)
from git_air.utils import SubprocessHandler

PYTHON = sys.executable
PROJECT_ROOT = Path(__file__).resolve().parents[1]

FALLBACK_RE = re.compile(
    r"^Auto-commit by (?P<tool>\S+) at (?P<stamp>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z)$")


class StaticOracle:
    def __init__(self, name, answer=None, error=None):
        self.name = name
        self.answer = answer
        self.error = error
        self.prompts = []

    def is_available(self):
        return True

    def ask(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.answer


def fake_client(content=None, error=None, delay=None):
    def create(**kwargs):
        if delay is not None:
            delay.wait(5)
        if error:
            raise error
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


@pytest.mark.parametrize("text,expected", [
    ("feat: add parser\n\nThis adds a parser.", "feat: add parser"),
    ("  \n  fix: trim input  \nmore", "fix: trim input"),
    ('"docs: update readme"', "docs: update readme"),
    ("`chore: bump`", "chore: bump"),
    ("", None),
    ("   \n  ", None),
    (None, None),
])
def test_first_line(text, expected):
    assert first_line(text) == expected


class TestCommandOracle:
    def test_answer_from_argument(self):
        oracle = CommandOracle("py", (PYTHON, "-c", "import sys; print(sys.argv[1].upper())",
                                      "{prompt}"), timeout=10)

        assert oracle.is_available()
        assert oracle.ask("fix bug") == "FIX BUG"

    def test_answer_from_stdin(self):
        oracle = CommandOracle("py", (PYTHON, "-c", "import sys; print(sys.stdin.read()[::-1])"),
                               prompt_via="stdin", timeout=10)

        assert oracle.ask("abc") == "cba"

    def test_missing_tool_is_unavailable(self):
        oracle = CommandOracle("ghost", ("command_does_not_exist_git_air", "{prompt}"))

        assert not oracle.is_available()
        assert oracle.ask("anything") is None

    def test_non_zero_exit_is_failure(self):
        oracle = CommandOracle("py", (PYTHON, "-c", "print('partial'); raise SystemExit(2)"),
                               timeout=10)

        assert oracle.ask("x") is None

    def test_empty_output_is_failure(self):
        oracle = CommandOracle("py", (PYTHON, "-c", "pass"), timeout=10)

        assert oracle.ask("x") is None

    def test_timeout_is_failure(self):
        oracle = CommandOracle("slow", (PYTHON, "-c", "import time; time.sleep(10)"), timeout=0.5)

        assert oracle.ask("x") is None

    def test_output_within_cap_is_answer(self):
        oracle = CommandOracle("quiet", (PYTHON, "-c", "print('y' * 50)"), timeout=10,
                               max_output_bytes=100)

        assert oracle.ask("x") == "y" * 50

    def test_output_over_cap_is_failure(self):
        oracle = CommandOracle("loud", (PYTHON, "-c", "print('y' * 5000)"), timeout=10,
                               max_output_bytes=100)

        assert oracle.ask("x") is None

    def test_satisfies_protocol(self):
        assert isinstance(CommandOracle("py", (PYTHON,)), TextOracle)


class TestModelOracle:
    def test_returns_model_content(self):
        oracle = ModelOracle("gpt-4o-mini", "system", client=fake_client("feat: add x"))

        assert oracle.ask("prompt") == "feat: add x"
        assert oracle.name == "g4f:gpt-4o-mini"

    def test_sends_system_and_user_messages(self):
        client = MagicMock()
        client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="ok"))])
        oracle = ModelOracle("some-model", "be brief", client=client)

        oracle.ask("the prompt")

        client.chat.completions.create.assert_called_once_with(
            model="some-model",
            messages=[
                {"role": "system", "content": "be brief"},
                {"role": "user", "content": "the prompt"},
            ],
        )

    def test_exception_is_failure(self):
        oracle = ModelOracle("m", "s", client=fake_client(error=RuntimeError("offline")))

        assert oracle.ask("prompt") is None

    def test_empty_content_is_failure(self):
        oracle = ModelOracle("m", "s", client=fake_client(content=""))

        assert oracle.ask("prompt") is None

    def test_timeout_is_failure(self):
        release = threading.Event()
        oracle = ModelOracle("m", "s", timeout=0.2,
                             client=fake_client(content="late", delay=release))
        try:
            assert oracle.ask("prompt") is None
        finally:
            release.set()

    def test_hung_model_does_not_block_exit(self):
        script = (
            "import time\n"
            "from types import SimpleNamespace\n"
            "from git_air.oracle import ModelOracle\n"
            "def create(**kwargs):\n"
            "    time.sleep(120)\n"
            "client = SimpleNamespace(chat=SimpleNamespace(\n"
            "    completions=SimpleNamespace(create=create)))\n"
            "print(ModelOracle('m', 's', timeout=0.5, client=client).ask('p'))\n"
        )
        env = dict(os.environ, PYTHONPATH=str(PROJECT_ROOT))

        started = time.monotonic()
        result = subprocess.run([PYTHON, "-c", script], capture_output=True, text=True,
                                env=env, timeout=90)

        assert result.returncode == 0, result.stderr
        assert result.stdout.strip() == "None"
        assert time.monotonic() - started < 60


class TestOracleChain:
    def test_first_answer_wins(self):
        first = StaticOracle("first", "feat: one\nexplanation")
        second = StaticOracle("second", "feat: two")

        assert OracleChain([first, second]).ask("p") == "feat: one"
        assert second.prompts == []

    def test_falls_through_failures(self):
        chain = OracleChain([
            CommandOracle("ghost", ("command_does_not_exist_git_air",)),
            StaticOracle("empty", ""),
            StaticOracle("broken", error=RuntimeError("crash")),
            StaticOracle("good", "fix: works"),
        ])

        assert chain.ask("p") == "fix: works"

    def test_all_failing_returns_none(self):
        chain = OracleChain([StaticOracle("a"), StaticOracle("b", error=ValueError("x"))])

        assert chain.ask("p") is None

    def test_empty_chain(self):
        assert OracleChain([]).ask("p") is None
        assert len(OracleChain([])) == 0


class TestChainBuilders:
    def test_no_ai_gives_empty_chains(self, tmp_path):
        config = Config(use_ai=False)

        assert len(build_commit_chain(config, search_from=tmp_path)) == 0
        assert len(build_advisor_chain(config)) == 0

    def test_commit_chain_order(self, tmp_path):
        config = Config(use_model=True)

        chain = build_commit_chain(config, search_from=tmp_path)

        names = [oracle.name for oracle in chain.oracles]
        assert names == ["claude", "gemini", "llm", "g4f:gpt-4o-mini"]

    def test_commit_chain_without_model(self, tmp_path):
        chain = build_commit_chain(Config(use_model=False), search_from=tmp_path)

        assert all(isinstance(oracle, CommandOracle) for oracle in chain.oracles)

    @pytest.fixture
    def agent_project(self, tmp_path):
        (tmp_path / ".git").mkdir()
        agent = tmp_path / LOCAL_AGENT_PATH
        agent.parent.mkdir(parents=True)
        agent.write_text("// agent")
        return tmp_path

    @pytest.fixture
    def npx_runs(self, monkeypatch):
        """Pretend npx is installed and record what it is asked to run."""
        npx = SimpleNamespace(commands=[], exit_code=0)

        def run_command(handler, command, **kwargs):
            npx.commands.append(command)
            return "ok", "", npx.exit_code

        monkeypatch.setattr(SubprocessHandler, "command_exists",
                            staticmethod(lambda executable: executable == "npx"))
        monkeypatch.setattr(SubprocessHandler, "run_command", run_command)
        return npx

    def test_local_agent_goes_first(self, agent_project, npx_runs):
        agent = (agent_project / LOCAL_AGENT_PATH).resolve()

        chain = build_commit_chain(Config(use_model=False), search_from=agent_project / "sub")

        first = chain.oracles[0]
        assert first.name == "ai-commit-agent"
        assert first.argv[:3] == ("npx", "ts-node", str(agent))
        assert first.cwd == agent_project.resolve()
        assert npx_runs.commands == [["npx", "ts-node", str(agent), "--check-models"]]

    def test_broken_local_agent_is_skipped(self, agent_project, npx_runs):
        npx_runs.exit_code = 1

        chain = build_commit_chain(Config(use_model=False), search_from=agent_project)

        assert [oracle.name for oracle in chain.oracles] == ["claude", "gemini", "llm"]
        assert npx_runs.commands[0][-1] == "--check-models"

    def test_local_agent_without_npx_is_skipped(self, agent_project, monkeypatch):
        monkeypatch.setattr(SubprocessHandler, "command_exists",
                            staticmethod(lambda executable: False))

        chain = build_commit_chain(Config(use_model=False), search_from=agent_project)

        assert "ai-commit-agent" not in [oracle.name for oracle in chain.oracles]

    def test_advisor_chain_uses_advisor_tools(self):
        config = Config(use_model=False, advisor_tools=[("helper", ("helper", "{prompt}"), "arg")])

        assert [oracle.name for oracle in build_advisor_chain(config).oracles] == ["helper"]


class TestPrompts:
    def test_commit_prompt_is_bounded(self):
        config = Config()
        status_lines = [f"?? file_{i}.py" for i in range(25)]
        diff_stat = "s" * 2000

        prompt = build_commit_prompt("proj", status_lines, diff_stat, config)

        assert "25 files changed in proj." in prompt
        assert "file_9.py" in prompt
        assert "file_10.py" not in prompt
        assert "(and 15 more)" in prompt
        assert "s" * 500 in prompt
        assert "s" * 501 not in prompt

    def test_commit_prompt_strips_status_codes(self):
        prompt = build_commit_prompt("proj", [" M src/app.py", "A  new.txt"], "", Config())

        assert "Files: src/app.py, new.txt" in prompt

    def test_advice_prompt_contains_error(self):
        prompt = build_advice_prompt("proj", "git push", "error: rejected", Config())

        assert "proj" in prompt
        assert "error: rejected" in prompt


class TestCommitMessage:
    def test_fallback_message_format(self):
        message = fallback_commit_message("git-air")

        match = FALLBACK_RE.match(message)
        assert match
        assert match.group("tool") == "git-air"
        stamp = datetime.strptime(match.group("stamp"), "%Y-%m-%dT%H:%M:%S.%fZ")
        assert abs((datetime.now(timezone.utc).replace(tzinfo=None) - stamp).total_seconds()) < 60

    def test_fallback_message_fixed_time(self):
        moment = datetime(2024, 5, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)

        assert fallback_commit_message("bot", moment) == \
            "Auto-commit by bot at 2024-05-01T12:30:45.123Z"

    def test_generate_uses_chain(self, fake_repo_factory, config):
        repo = fake_repo_factory()
        oracle = StaticOracle("s", "feat: add a and b")

        message = generate_commit_message(repo, OracleChain([oracle]), config)

        assert message == "feat: add a and b"
        assert "2 files changed in fake." in oracle.prompts[0]
        assert "a.txt, b.txt" in oracle.prompts[0]

    def test_generate_with_empty_chain_returns_none(self, fake_repo_factory, config):
        assert generate_commit_message(fake_repo_factory(), OracleChain([]), config) is None

    def test_generate_with_failing_chain_returns_none(self, fake_repo_factory, config):
        chain = OracleChain([StaticOracle("a", error=RuntimeError("x"))])

        assert generate_commit_message(fake_repo_factory(), chain, config) is None
