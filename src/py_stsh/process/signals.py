"""Job-control signals and the scoped blocking guard.

Signals are the kernel's asynchronous notifications.  A job-control
shell cares about a small, fixed set of them:

    - **SIGCHLD** — some child changed state (exited, stopped, continued).
    - **SIGINT** / **SIGTSTP** — the user asked to interrupt or suspend
      whatever is running in the foreground (Ctrl-C / Ctrl-Z).
    - **SIGKILL** / **SIGTSTP** / **SIGCONT** — what the ``slay``,
      ``halt`` and ``cont`` builtins deliver to a single process.
    - **SIGQUIT** — terminate the shell itself.
    - **SIGTTIN** / **SIGTTOU** — ignored by the shell so it can move
      the terminal between process groups without being stopped.

Design choices:
    - **Data-driven builtin table** — ``BUILTIN_SIGNALS`` maps each
      process-signalling builtin to the signal it sends, and
      ``REDUNDANT_STATES`` names the state in which sending it would be
      a no-op.  The dispatcher consults the tables instead of branching.
    - **Blocking is scoped** — ``blocked_signals`` is a context manager,
      so the previous mask is restored on every exit path, including
      exceptions.
"""

import signal
from collections.abc import Iterator
from contextlib import contextmanager

from py_stsh.process.pcb import ProcessState

NOTIFICATION_SIGNALS: frozenset[signal.Signals] = frozenset(
    {signal.SIGCHLD, signal.SIGINT, signal.SIGTSTP},
)
"""Signals whose handlers only record that they happened.

The main path turns these raw facts into registry updates.
"""

FOREGROUND_REQUEST_SIGNALS: frozenset[signal.Signals] = frozenset(
    {signal.SIGINT, signal.SIGTSTP},
)
"""Interrupt/stop requests forwarded to the foreground job's group."""

IGNORED_BY_SHELL: frozenset[signal.Signals] = frozenset(
    {signal.SIGTTIN, signal.SIGTTOU},
)
"""Terminal-access signals the shell ignores (children restore them)."""

BUILTIN_SIGNALS: dict[str, signal.Signals] = {
    "slay": signal.SIGKILL,
    "halt": signal.SIGTSTP,
    "cont": signal.SIGCONT,
}
"""Map each process-signalling builtin to the signal it delivers."""

REDUNDANT_STATES: dict[str, ProcessState] = {
    "halt": ProcessState.STOPPED,
    "cont": ProcessState.RUNNING,
}
"""A builtin is a no-op when its target is already in this state."""


@contextmanager
def blocked_signals(*signals: signal.Signals) -> Iterator[set[signal.Signals]]:
    """Suppress delivery of *signals* for the duration of the block.

    Signals raised while blocked stay pending and are delivered (or
    collected by ``signal.sigwait``) once unblocked.

    Args:
        signals: The signals to block.

    Yields:
        The signal mask that was in effect before blocking.

    """
    previous = signal.pthread_sigmask(signal.SIG_BLOCK, set(signals))
    try:
        yield previous
    finally:
        signal.pthread_sigmask(signal.SIG_SETMASK, previous)


def reset_child_signals() -> None:
    """Restore default dispositions and an empty mask in a forked child.

    Called between fork and exec.  Ignored dispositions and blocked
    masks survive ``exec``, so the shell's own choices must be undone
    before the requested program starts.
    """
    for sig in NOTIFICATION_SIGNALS | IGNORED_BY_SHELL | {signal.SIGQUIT}:
        signal.signal(sig, signal.SIG_DFL)
    signal.pthread_sigmask(signal.SIG_SETMASK, set())
