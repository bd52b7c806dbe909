"""Process subsystem — per-stage process records and signal tables.

Re-exports public symbols so callers can write::

    from py_stsh.process import Process, ProcessState, blocked_signals
"""

from py_stsh.process.pcb import Process, ProcessState
from py_stsh.process.signals import (
    BUILTIN_SIGNALS,
    FOREGROUND_REQUEST_SIGNALS,
    IGNORED_BY_SHELL,
    NOTIFICATION_SIGNALS,
    REDUNDANT_STATES,
    blocked_signals,
    reset_child_signals,
)

__all__ = [
    "BUILTIN_SIGNALS",
    "FOREGROUND_REQUEST_SIGNALS",
    "IGNORED_BY_SHELL",
    "NOTIFICATION_SIGNALS",
    "REDUNDANT_STATES",
    "Process",
    "ProcessState",
    "blocked_signals",
    "reset_child_signals",
]
