"""Foreground arbitration and terminal ownership.

While a job runs in the foreground the shell has nothing to do but
wait.  It must not spin, and it must not miss the SIGCHLD that tells it
the job is done — a classic lost-wakeup hazard if the shell checks
"is the job still in the foreground?" and *then* goes to sleep.

The arbiter closes that window the POSIX way:

1. Block SIGCHLD, SIGINT and SIGTSTP.
2. Drain the notification handler and test the predicate.
3. If the job still holds the foreground, ``sigwait`` on the blocked
   set.  A signal raised after step 2 stays pending and is collected
   here, so the sleep always ends.
4. Record the collected signal, go back to step 2.

When the job leaves the foreground (all processes terminated, or it was
displaced or backgrounded) the terminal is handed back to the shell's
process group and the previous mask restored.

``Terminal`` wraps ``tcsetpgrp`` on the controlling terminal.  With no
terminal (``fd`` is None, or the descriptor is not a tty) ownership
transfer quietly does nothing; any other failure is a ``LaunchError``.
"""

import errno
import os
import signal

from py_stsh.errors import LaunchError
from py_stsh.jobs import Job, JobRegistry
from py_stsh.logging import Logger, LogLevel
from py_stsh.notifications import NotificationHandler
from py_stsh.process.signals import NOTIFICATION_SIGNALS, blocked_signals


class Terminal:
    """Ownership of the controlling terminal."""

    def __init__(self, fd: int | None) -> None:
        """Wrap terminal descriptor *fd* (None when there is no terminal)."""
        self._fd = fd

    @property
    def fd(self) -> int | None:
        """Return the terminal descriptor, or None."""
        return self._fd

    def give_to(self, pgid: int) -> bool:
        """Make *pgid* the terminal's foreground process group.

        Returns:
            True if ownership moved, False if there is no terminal.

        Raises:
            LaunchError: If a real terminal refused the transfer.

        """
        if self._fd is None:
            return False
        try:
            os.tcsetpgrp(self._fd, pgid)
        except OSError as e:
            if e.errno == errno.ENOTTY:
                return False
            msg = "Error handing terminal control to child process."
            raise LaunchError(msg) from e
        return True

    def reclaim(self) -> bool:
        """Give the terminal back to the shell's own process group."""
        return self.give_to(os.getpgrp())


class ForegroundArbiter:
    """Block the control loop until a job leaves the foreground."""

    def __init__(
        self,
        *,
        registry: JobRegistry,
        notifications: NotificationHandler,
        terminal: Terminal,
        logger: Logger | None = None,
    ) -> None:
        """Create an arbiter over *registry*, woken via *notifications*."""
        self._registry = registry
        self._notifications = notifications
        self._terminal = terminal
        self._logger = logger

    def holds_foreground(self, job: Job) -> bool:
        """Return True while *job* is the registry's foreground job."""
        return (
            self._registry.has_foreground_job() and self._registry.get_foreground_job() is job
        )

    def wait_for(self, job: Job) -> None:
        """Suspend until *job* is no longer the foreground job.

        There is no timeout: a foreground job that neither finishes nor
        is displaced keeps the shell waiting.
        """
        if self._logger is not None:
            self._logger.log(LogLevel.DEBUG, f"waiting on job {job.handle}", source="foreground")
        with blocked_signals(*NOTIFICATION_SIGNALS):
            try:
                self._notifications.drain()
                while self.holds_foreground(job):
                    signum = signal.sigwait(NOTIFICATION_SIGNALS)
                    self._notifications.record(signum)
                    self._notifications.drain()
            finally:
                self._terminal.reclaim()
        if self._logger is not None:
            self._logger.log(
                LogLevel.DEBUG,
                f"job {job.handle} left the foreground",
                source="foreground",
            )
