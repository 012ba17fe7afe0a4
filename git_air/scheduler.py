"""Periodic and manual triggering of scan cycles, at most one in flight."""

import logging
import os
import subprocess
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from .utils import console

__all__ = ["Scheduler", "restart_process"]

logger = logging.getLogger(__name__)


class Scheduler:
    """Owns the periodic timer and serializes scan cycles.

    ``trigger_now`` runs a cycle in the calling thread; the periodic timer runs
    cycles in a daemon thread. A cycle requested while another is running is
    dropped, never queued behind it.
    """

    def __init__(self, run_cycle: Callable[[], Any], interval: float = 300.0) -> None:
        self.run_cycle = run_cycle
        self.interval = interval
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def busy(self) -> bool:
        return self._cycle_lock.locked()

    def start(self) -> None:
        """Arm the periodic timer, replacing any previous one."""
        self.stop()
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._loop, args=(self._stop_event,),
                                        name="git-air-scheduler", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Cancel the timer; a cycle already running is left to finish."""
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread() and not self.busy:
            thread.join(timeout=1.0)

    def shutdown(self) -> None:
        """Cancel the timer and block until any cycle in flight has finished.

        Must not be called from inside ``run_cycle``.
        """
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if self.busy:
            console.print("[yellow]Waiting for the running scan to finish...[/yellow]")
        with self._cycle_lock:
            pass
        # The timer may have woken just before the stop and still be entering a cycle
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def trigger_now(self) -> bool:
        """Run a cycle immediately.

        Returns:
            bool: False if another cycle was in flight and this one was dropped.
        """
        if not self._cycle_lock.acquire(blocking=False):
            console.print("[yellow]A scan is already running; request dropped[/yellow]")
            return False
        try:
            self.run_cycle()
        except Exception:
            logger.exception("Scan cycle failed")
        finally:
            self._cycle_lock.release()
        return True

    def _loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval):
            console.print(f"\n----- Running periodic git check at "
                          f"{datetime.now(timezone.utc).isoformat()} -----")
            if not self.trigger_now():
                logger.info("Skipped periodic scan, previous one still running")


def restart_process(scheduler: Optional[Scheduler] = None,
                    argv: Optional[List[str]] = None) -> bool:
    """Launch a fresh copy of this process with the same arguments.

    Any scan in flight finishes first, so the two processes never sync at the
    same time. The caller exits with status 0 when this returns True. On
    failure the scheduler is re-armed and the current instance keeps running.
    """
    if scheduler is not None:
        scheduler.shutdown()

    args = list(argv if argv is not None else sys.argv)
    if args and os.path.basename(args[0]) == "__main__.py":
        # started with ``python -m git_air``
        args = ["-m", "git_air", *args[1:]]
    command = [sys.executable, *args]
    console.print(f"Restarting: {' '.join(command)}", markup=False)
    try:
        subprocess.Popen(command, cwd=os.getcwd(), start_new_session=True)
    except OSError as e:
        console.print(f"[red]Error reloading: {e}[/red]")
        console.print("Continuing with current instance...")
        if scheduler is not None:
            scheduler.start()
        return False
    return True
