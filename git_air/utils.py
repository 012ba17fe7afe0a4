import logging
import os
import shutil
import subprocess
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

from rich.console import Console

__all__ = ["console", "OutputLimitError", "SubprocessHandler", "truncate"]

console = Console()

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096
POLL_INTERVAL = 0.05


class OutputLimitError(RuntimeError):
    """A process wrote more than the handler's ``max_output_size`` and was stopped."""


def truncate(text: str, limit: int) -> str:
    """Cut text to at most ``limit`` characters, marking the cut with an ellipsis."""
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)].rstrip() + "..."


class SubprocessHandler:
    """Dedicated class for handling subprocess execution to prevent leaked processes.

    This class encapsulates subprocess operations for both git and the external
    oracles, ensuring proper resource management, bounded output and consistent
    error handling across the application.
    """

    def __init__(self, timeout: Optional[float] = None,
                 max_termination_retries: Optional[int] = None,
                 termination_wait: Optional[float] = None,
                 max_output_size: Optional[int] = None) -> None:
        """Initialize the SubprocessHandler with configurable limits.

        Args:
            timeout: Maximum time in seconds to wait for a process to complete.
            max_termination_retries: Maximum number of attempts to terminate a process.
            termination_wait: Time to wait between termination attempts in seconds.
            max_output_size: Maximum number of characters read from stdout; a process
                writing more is stopped. stderr is truncated to the same size.
        """
        self.timeout: float = timeout or 30
        self.max_termination_retries: int = max_termination_retries or 3
        self.termination_wait: float = termination_wait or 0.5
        self.max_output_size: Optional[int] = max_output_size

    @staticmethod
    def create_env(overrides: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Create environment with explicit encoding settings for subprocess.

        Args:
            overrides: Extra variables layered on top of the current environment.

        Returns:
            Dict[str, str]: Environment variables dictionary with encoding settings.
        """
        env = os.environ.copy()
        env['PYTHONIOENCODING'] = 'utf-8'
        if overrides:
            env.update(overrides)
        return env

    @staticmethod
    def command_exists(executable: str) -> bool:
        """Check whether an executable can be found on PATH."""
        return shutil.which(executable) is not None

    @staticmethod
    def _drain(stream: Any, chunks: List[str], cap: int,
               overflow: Optional[threading.Event]) -> None:
        """Read ``stream`` to EOF, keeping at most ``cap`` characters."""
        kept = 0
        try:
            while True:
                chunk = stream.read(READ_CHUNK_SIZE)
                if not chunk:
                    return
                if kept < cap:
                    chunks.append(chunk[:cap - kept])
                kept += len(chunk)
                if kept > cap and overflow is not None:
                    overflow.set()
                    return
        except (ValueError, OSError):
            # Pipe closed underneath us while the process was being stopped
            return

    @staticmethod
    def _feed(stream: Any, text: str) -> None:
        try:
            stream.write(text)
            stream.close()
        except (BrokenPipeError, ValueError, OSError):
            pass

    def _communicate_capped(self, process: subprocess.Popen, command: List[str],
                            input_text: Optional[str], limit: float) -> Tuple[str, str]:
        """Collect output without ever holding more than ``max_output_size`` characters.

        Raises:
            OutputLimitError: As soon as stdout grows past the limit; the process is stopped.
            subprocess.TimeoutExpired: If the process outlives ``limit``.
        """
        cap = self.max_output_size or 0
        overflow = threading.Event()
        stdout_chunks: List[str] = []
        stderr_chunks: List[str] = []
        workers = [
            threading.Thread(target=self._drain, args=(process.stdout, stdout_chunks, cap, overflow),
                             daemon=True),
            threading.Thread(target=self._drain, args=(process.stderr, stderr_chunks, cap, None),
                             daemon=True),
        ]
        if input_text is not None:
            workers.append(threading.Thread(target=self._feed, args=(process.stdin, input_text),
                                            daemon=True))
        for worker in workers:
            worker.start()

        deadline = time.monotonic() + limit
        while process.poll() is None and not overflow.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise subprocess.TimeoutExpired(command, limit)
            overflow.wait(min(remaining, POLL_INTERVAL))

        if overflow.is_set():
            self._terminate_process(process)
        for worker in workers:
            worker.join(timeout=self.termination_wait)

        if overflow.is_set():
            raise OutputLimitError(
                f"Output exceeded {cap} characters, stopped: {' '.join(command)}")
        return "".join(stdout_chunks), "".join(stderr_chunks)

    def run_text_mode(self, command: List[str], cwd: Optional[str] = None,
                      input_text: Optional[str] = None,
                      env: Optional[Dict[str, str]] = None,
                      timeout: Optional[float] = None) -> Tuple[str, str, int]:
        """Run subprocess in text mode with UTF-8 decoding.

        Args:
            command: Command to execute as a list of strings.
            cwd: Working directory for the process.
            input_text: Text written to the process's standard input.
            env: Extra environment variables.
            timeout: Maximum time in seconds to wait for the process to complete.

        Returns:
            Tuple[str, str, int]: stdout, stderr, and return code.

        Raises:
            TimeoutError: If the process exceeds the specified timeout.
            OutputLimitError: If stdout grows past ``max_output_size``.
        """
        process: Optional[subprocess.Popen[Any]] = None
        limit = timeout or self.timeout
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.PIPE if input_text is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
                text=True,
                encoding='utf-8',
                errors='replace',
                env=self.create_env(env),
            )

            if self.max_output_size is None:
                stdout, stderr = process.communicate(input=input_text, timeout=limit)
            else:
                stdout, stderr = self._communicate_capped(process, command, input_text, limit)
            return stdout or "", stderr or "", process.returncode
        except subprocess.TimeoutExpired:
            self._terminate_process(process)
            raise TimeoutError(f"Command timed out after {limit} seconds: {' '.join(command)}")
        except OSError:
            self._terminate_process(process)
            raise
        finally:
            self._cleanup_process(process)

    def run_command(self, command: List[str], cwd: Optional[str] = None,
                    input_text: Optional[str] = None,
                    env: Optional[Dict[str, str]] = None,
                    timeout: Optional[float] = None) -> Tuple[str, str, int]:
        """Execute a command and return its output.

        Returns stdout, stderr, and the return code as a tuple.

        Raises:
            TimeoutError: If the process exceeds the specified timeout.
            FileNotFoundError: If the executable does not exist.
        """
        logger.debug("Running %s in %s", command, cwd or os.getcwd())
        return self.run_text_mode(command, cwd=cwd, input_text=input_text,
                                  env=env, timeout=timeout)

    def _terminate_process(self, process: Optional[subprocess.Popen[Any]]) -> None:
        """Terminate a process with multiple attempts if needed."""
        if process is None or process.poll() is not None:
            return

        try:
            process.terminate()

            for _ in range(self.max_termination_retries):
                if process.poll() is not None:
                    return
                time.sleep(self.termination_wait)

            if process.poll() is None:
                process.kill()
        except OSError:
            # Process might already be gone
            pass

    def _cleanup_process(self, process: Optional[subprocess.Popen[Any]]) -> None:
        """Close pipes and make sure the process is gone."""
        if process is None:
            return

        for fd in [process.stdin, process.stdout, process.stderr]:
            if fd is not None:
                try:
                    fd.close()
                except (IOError, OSError):
                    pass

        self._terminate_process(process)
