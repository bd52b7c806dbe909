"""Asynchronous notification handling.

The kernel tells the shell about its children through signals that can
arrive between any two bytecodes of the control loop:

- **SIGCHLD** — at least one child exited, was killed, stopped, or
  continued.  Several changes may be folded into one delivery.
- **SIGINT** / **SIGTSTP** — the user pressed Ctrl-C / Ctrl-Z while the
  shell itself received the keystroke (no job owned the terminal, or
  there is no terminal at all).

Handling is split in two, like a hardware interrupt controller:

1. The OS-level handler (``record``) only queues the signal number.
   It touches no shared state beyond an append to a deque.
2. ``drain`` runs on the main path, at points the control loop chooses.
   It forwards queued interrupt/stop requests to the foreground job
   and then reaps **every** pending child state change with a
   non-blocking ``waitpid`` loop, so coalesced notifications are never
   lost.

Each reaped change is mapped onto a ``ProcessState`` (exited or killed
→ TERMINATED, stopped → STOPPED, continued → RUNNING), applied to the
matching process, and followed by ``JobRegistry.synchronize`` on its
job.  Pids the registry no longer knows are ignored.
"""

import os
import signal
from collections import deque
from collections.abc import Callable
from types import FrameType
from typing import Any, TypeAlias

from py_stsh.jobs import JobRegistry
from py_stsh.logging import Logger, LogLevel
from py_stsh.process.pcb import ProcessState
from py_stsh.process.signals import (
    FOREGROUND_REQUEST_SIGNALS,
    IGNORED_BY_SHELL,
    NOTIFICATION_SIGNALS,
)

_WAIT_FLAGS = os.WNOHANG | os.WUNTRACED | os.WCONTINUED

_Disposition: TypeAlias = Callable[[int, FrameType | None], Any] | int | None


def state_from_status(status: int) -> ProcessState | None:
    """Translate a ``waitpid`` status word into a process state.

    Returns:
        The reported state, or None for a status that carries none.

    """
    if os.WIFEXITED(status) or os.WIFSIGNALED(status):
        return ProcessState.TERMINATED
    if os.WIFCONTINUED(status):
        return ProcessState.RUNNING
    if os.WIFSTOPPED(status):
        return ProcessState.STOPPED
    return None


def _quit_shell(_signum: int, _frame: FrameType | None) -> None:
    raise SystemExit(0)


class NotificationHandler:
    """Turn raw child/terminal signals into job registry updates."""

    def __init__(self, *, registry: JobRegistry, logger: Logger | None = None) -> None:
        """Create a handler bound to *registry*.

        Nothing is installed until ``install`` is called, so tests can
        drive ``record`` and ``drain`` directly.
        """
        self._registry = registry
        self._logger = logger
        self._pending: deque[int] = deque()
        self._previous: dict[int, _Disposition] = {}

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source="notify")

    @property
    def installed(self) -> bool:
        """Return True while the OS-level handlers are installed."""
        return bool(self._previous)

    @property
    def pending(self) -> list[int]:
        """Return the signal numbers recorded but not yet drained."""
        return list(self._pending)

    # -- Interrupt context ---------------------------------------------------

    def record(self, signum: int, _frame: FrameType | None = None) -> None:
        """Queue a delivered signal.  Safe to run as an OS signal handler."""
        self._pending.append(signum)

    def install(self) -> None:
        """Install the shell's signal dispositions, remembering the old ones.

        Raises:
            RuntimeError: If the handlers are already installed.

        """
        if self._previous:
            msg = "Notification handlers are already installed"
            raise RuntimeError(msg)
        for sig in NOTIFICATION_SIGNALS:
            self._previous[sig] = signal.signal(sig, self.record)
        for sig in IGNORED_BY_SHELL:
            self._previous[sig] = signal.signal(sig, signal.SIG_IGN)
        self._previous[signal.SIGQUIT] = signal.signal(signal.SIGQUIT, _quit_shell)

    def uninstall(self) -> None:
        """Restore the dispositions that were in place before ``install``."""
        for sig, disposition in self._previous.items():
            signal.signal(sig, signal.SIG_DFL if disposition is None else disposition)
        self._previous.clear()

    # -- Main path -----------------------------------------------------------

    def drain(self) -> int:
        """Process everything recorded so far and reap all child changes.

        Returns:
            The number of process state transitions applied.

        """
        while self._pending:
            signum = self._pending.popleft()
            if signum in FOREGROUND_REQUEST_SIGNALS:
                self.forward_to_foreground(signal.Signals(signum))
        return self.reap()

    def forward_to_foreground(self, sig: signal.Signals) -> bool:
        """Deliver an interrupt/stop request to the foreground job's group.

        Returns:
            True if a foreground job received the signal, False if there
            was none (the request is then a no-op).

        """
        if not self._registry.has_foreground_job():
            return False
        job = self._registry.get_foreground_job()
        try:
            os.killpg(job.pgid, sig)
        except ProcessLookupError:
            self._log(LogLevel.WARNING, f"{sig.name} for job {job.handle}: group {job.pgid} gone")
            return False
        self._log(LogLevel.INFO, f"{sig.name} forwarded to job {job.handle}")
        return True

    def reap(self) -> int:
        """Collect child state changes until none remain.

        Returns:
            The number of process state transitions applied.

        """
        applied = 0
        while True:
            try:
                pid, status = os.waitpid(-1, _WAIT_FLAGS)
            except ChildProcessError:
                break
            if pid == 0:
                break
            state = state_from_status(status)
            if state is not None and self.apply(pid, state):
                applied += 1
        return applied

    def apply(self, pid: int, state: ProcessState) -> bool:
        """Apply one reported transition and resynchronize its job.

        Returns:
            True if a known process changed state.

        """
        if not self._registry.contains_process(pid):
            self._log(LogLevel.DEBUG, f"ignoring {state} report for unknown pid {pid}")
            return False
        job = self._registry.get_job_with_process(pid)
        if not job.get_process(pid).update(state):
            return False
        self._log(LogLevel.INFO, f"pid {pid} (job {job.handle}) is {state}")
        self._registry.synchronize(job)
        return True
