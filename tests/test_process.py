"""Tests for process records and the job-control signal tables."""

import signal

import pytest

from py_stsh.process import (
    BUILTIN_SIGNALS,
    REDUNDANT_STATES,
    Process,
    ProcessState,
    blocked_signals,
)


class TestProcessState:
    """Verify process state values."""

    def test_state_values(self) -> None:
        """ProcessState should have running, stopped, and terminated."""
        assert ProcessState.RUNNING == "running"
        assert ProcessState.STOPPED == "stopped"
        assert ProcessState.TERMINATED == "terminated"


class TestProcess:
    """Verify the per-stage process record."""

    def test_new_process_is_running(self) -> None:
        """A freshly forked process starts RUNNING."""
        process = Process(pid=42, command="sleep 5")
        expected_pid = 42
        assert process.pid == expected_pid
        assert process.command == "sleep 5"
        assert process.state is ProcessState.RUNNING
        assert not process.is_terminated

    def test_stop_and_continue(self) -> None:
        """RUNNING → STOPPED → RUNNING are both accepted."""
        process = Process(pid=1, command="x")
        assert process.update(ProcessState.STOPPED)
        assert process.state is ProcessState.STOPPED
        assert process.update(ProcessState.RUNNING)
        assert process.state is ProcessState.RUNNING

    def test_repeated_state_is_not_a_change(self) -> None:
        """Reporting the current state again changes nothing."""
        process = Process(pid=1, command="x")
        assert not process.update(ProcessState.RUNNING)

    def test_terminated_is_final(self) -> None:
        """A terminated process cannot come back."""
        process = Process(pid=1, command="x")
        process.update(ProcessState.TERMINATED)
        assert process.is_terminated
        with pytest.raises(RuntimeError, match="terminated"):
            process.update(ProcessState.RUNNING)

    def test_repr(self) -> None:
        """The repr names pid, command, and state."""
        text = repr(Process(pid=7, command="cat"))
        assert "7" in text
        assert "cat" in text


class TestSignalTables:
    """Verify the builtin signal tables."""

    def test_builtin_signals(self) -> None:
        """slay kills, halt stops, cont continues."""
        assert BUILTIN_SIGNALS["slay"] is signal.SIGKILL
        assert BUILTIN_SIGNALS["halt"] is signal.SIGTSTP
        assert BUILTIN_SIGNALS["cont"] is signal.SIGCONT

    def test_redundant_states(self) -> None:
        """halt is redundant on stopped, cont on running, slay never."""
        assert REDUNDANT_STATES["halt"] is ProcessState.STOPPED
        assert REDUNDANT_STATES["cont"] is ProcessState.RUNNING
        assert "slay" not in REDUNDANT_STATES


class TestBlockedSignals:
    """The guard blocks signals and restores the previous mask."""

    def test_blocks_inside_and_restores_after(self) -> None:
        """SIGCHLD is blocked only within the block."""
        before = signal.pthread_sigmask(signal.SIG_BLOCK, set())
        with blocked_signals(signal.SIGCHLD):
            inside = signal.pthread_sigmask(signal.SIG_BLOCK, set())
            assert signal.SIGCHLD in inside
        after = signal.pthread_sigmask(signal.SIG_BLOCK, set())
        assert after == before

    def test_restores_on_exception(self) -> None:
        """The mask is restored even when the block raises."""
        before = signal.pthread_sigmask(signal.SIG_BLOCK, set())
        with pytest.raises(ValueError, match="boom"), blocked_signals(signal.SIGCHLD):
            msg = "boom"
            raise ValueError(msg)
        assert signal.pthread_sigmask(signal.SIG_BLOCK, set()) == before

    def test_nested_guards(self) -> None:
        """An inner guard does not unblock what the outer one blocked."""
        with blocked_signals(signal.SIGCHLD):
            with blocked_signals(signal.SIGCHLD, signal.SIGINT):
                pass
            assert signal.SIGCHLD in signal.pthread_sigmask(signal.SIG_BLOCK, set())
