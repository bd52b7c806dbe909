"""Process records for pipeline stages.

Each stage of a launched pipeline becomes one kernel process.  The
shell mirrors it with a small record: the kernel pid, the command text
the user typed for that stage, and the last run state the kernel
reported.

State machine::

    RUNNING ⇄ STOPPED
       ↓         ↓
        TERMINATED

The shell never *decides* a state — it only learns them from the
kernel (via the notification handler).  The one rule enforced here is
that TERMINATED is final: a reaped pid cannot come back to life.
"""

from enum import StrEnum


class ProcessState(StrEnum):
    """Run states the kernel can report for a child process."""

    RUNNING = "running"
    STOPPED = "stopped"
    TERMINATED = "terminated"


class Process:
    """One kernel process participating in a job's pipeline."""

    def __init__(self, *, pid: int, command: str) -> None:
        """Record a freshly forked process in the RUNNING state.

        Args:
            pid: The kernel process id returned by fork.
            command: Display text for the stage (program and arguments).

        """
        self._pid = pid
        self._command = command
        self._state = ProcessState.RUNNING

    @property
    def pid(self) -> int:
        """Return the kernel process id."""
        return self._pid

    @property
    def command(self) -> str:
        """Return the stage's display command text."""
        return self._command

    @property
    def state(self) -> ProcessState:
        """Return the last reported run state."""
        return self._state

    @property
    def is_terminated(self) -> bool:
        """Return True once the process has exited or been killed."""
        return self._state is ProcessState.TERMINATED

    def update(self, state: ProcessState) -> bool:
        """Apply a kernel-reported state.

        Args:
            state: The newly reported run state.

        Returns:
            True if the state changed, False if it was already current.

        Raises:
            RuntimeError: If the process is already TERMINATED and the
                report names a different state.

        """
        if self._state is state:
            return False
        if self._state is ProcessState.TERMINATED:
            msg = f"Cannot move process {self._pid} from terminated to {state}"
            raise RuntimeError(msg)
        self._state = state
        return True

    def __repr__(self) -> str:
        """Return a debug-friendly representation."""
        return f"Process(pid={self._pid}, command={self._command!r}, state={self._state})"
