"""Tests for the pipeline launcher.

These tests fork real processes.  The launcher is built without a
controlling terminal, so foreground launches still wait on the arbiter
but never touch terminal ownership.
"""

import os
import signal
import stat
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from py_stsh.errors import LaunchError
from py_stsh.foreground import ForegroundArbiter, Terminal
from py_stsh.jobs import Job, JobPlacement, JobRegistry
from py_stsh.launcher import PipelineLauncher
from py_stsh.notifications import NotificationHandler
from py_stsh.pipeline import Command, Pipeline, parse_pipeline

_FAST = 2.0


def _launcher() -> tuple[JobRegistry, NotificationHandler, PipelineLauncher]:
    """Wire a registry, notification handler, and launcher together."""
    registry = JobRegistry()
    notifications = NotificationHandler(registry=registry)
    terminal = Terminal(None)
    arbiter = ForegroundArbiter(registry=registry, notifications=notifications, terminal=terminal)
    launcher = PipelineLauncher(registry=registry, arbiter=arbiter, terminal=terminal)
    return registry, notifications, launcher


def _open_fd_count() -> int:
    """Return the number of descriptors open in this process."""
    return len(os.listdir("/proc/self/fd"))


def _kill_and_reap(job: Job, notifications: NotificationHandler) -> None:
    """Kill a job's group and wait until the registry has dropped it."""
    os.killpg(job.pgid, signal.SIGKILL)
    for process in job.processes:
        os.waitid(os.P_PID, process.pid, os.WEXITED | os.WNOWAIT)
    notifications.drain()


class TestForegroundLaunch:
    """Foreground pipelines block until they finish."""

    def test_three_stage_pipeline_passes_data(self, tmp_path: Path) -> None:
        """Output of stage one reaches the file after two pass-through stages."""
        registry, _notifications, launcher = _launcher()
        out = tmp_path / "out.txt"
        launcher.launch(parse_pipeline(f"printf 'alpha\\nbeta\\n' | cat | cat > {out}"))
        assert out.read_text() == "alpha\nbeta\n"
        assert len(registry) == 0

    def test_input_redirection(self, tmp_path: Path) -> None:
        """``<`` feeds the first stage."""
        _registry, _notifications, launcher = _launcher()
        src = tmp_path / "in.txt"
        src.write_text("b\na\nc\n")
        out = tmp_path / "out.txt"
        launcher.launch(
            Pipeline(
                commands=(Command("sort"), Command("head", ("-n", "2"))),
                input_path=str(src),
                output_path=str(out),
            ),
        )
        assert out.read_text() == "a\nb\n"

    def test_output_file_is_truncated_with_mode_0644(self, tmp_path: Path) -> None:
        """``>`` creates a 0644 file and truncates existing content."""
        _registry, _notifications, launcher = _launcher()
        out = tmp_path / "out.txt"
        launcher.launch(parse_pipeline(f"printf new > {out}"))
        assert out.read_text() == "new"
        assert stat.S_IMODE(out.stat().st_mode) & ~0o644 == 0
        launcher.launch(parse_pipeline(f"printf x > {out}"))
        assert out.read_text() == "x"

    def test_no_descriptor_leak(self, tmp_path: Path) -> None:
        """Every pipe and redirection descriptor is closed afterwards."""
        _registry, _notifications, launcher = _launcher()
        before = _open_fd_count()
        launcher.launch(parse_pipeline(f"printf x | cat | cat | cat > {tmp_path / 'o'}"))
        assert _open_fd_count() == before

    def test_pipeline_completes_only_when_writers_close(self, tmp_path: Path) -> None:
        """A reader downstream sees EOF, so ``wc`` terminates."""
        _registry, _notifications, launcher = _launcher()
        out = tmp_path / "count.txt"
        launcher.launch(parse_pipeline(f"printf 'a\\nb\\nc\\n' | cat | wc -l > {out}"))
        assert out.read_text().strip() == "3"

    def test_command_not_found(self, capfd: pytest.CaptureFixture[str]) -> None:
        """A missing program reports an error and only that child exits."""
        registry, _notifications, launcher = _launcher()
        parent = os.getpid()
        launcher.launch(parse_pipeline("no-such-program-stsh-test --flag"))
        assert os.getpid() == parent
        assert len(registry) == 0
        assert "no-such-program-stsh-test: Command not found." in capfd.readouterr().err


class TestBackgroundLaunch:
    """Background pipelines return immediately."""

    def test_background_returns_immediately(self) -> None:
        """``sleep 5 &`` does not block the caller."""
        registry, notifications, launcher = _launcher()
        start = time.monotonic()
        job = launcher.launch(parse_pipeline("sleep 5 &"))
        assert time.monotonic() - start < _FAST
        try:
            assert registry.get_job(job.handle) is job
            assert job.placement is JobPlacement.BACKGROUND
            assert not registry.has_foreground_job()
            assert job.summary() == f"[1] {job.processes[0].pid}"
        finally:
            _kill_and_reap(job, notifications)
        assert len(registry) == 0

    def test_stages_share_one_process_group(self) -> None:
        """Every stage is in the group named after the first stage."""
        _registry, notifications, launcher = _launcher()
        job = launcher.launch(parse_pipeline("sleep 5 | sleep 5 | sleep 5 &"))
        try:
            pids = [p.pid for p in job.processes]
            assert job.pgid == pids[0]
            assert all(os.getpgid(pid) == job.pgid for pid in pids)
            assert job.pgid != os.getpgrp()
        finally:
            _kill_and_reap(job, notifications)

    def test_command_text_recorded_per_stage(self) -> None:
        """Each process carries its own stage's command text."""
        _registry, notifications, launcher = _launcher()
        job = launcher.launch(parse_pipeline("sleep 5 | cat &"))
        try:
            assert [p.command for p in job.processes] == ["sleep 5", "cat"]
        finally:
            _kill_and_reap(job, notifications)

    def test_terminates_via_notifications(self) -> None:
        """A finished background job leaves the registry on the next drain."""
        registry, notifications, launcher = _launcher()
        job = launcher.launch(parse_pipeline("true &"))
        os.waitid(os.P_PID, job.pgid, os.WEXITED | os.WNOWAIT)
        assert registry.contains_job(job.handle)
        notifications.drain()
        assert not registry.contains_job(job.handle)


class TestLaunchErrors:
    """Resource errors abandon the command cleanly."""

    def test_missing_input_file(self, tmp_path: Path) -> None:
        """A bad ``<`` path fails before any process is spawned."""
        registry, _notifications, launcher = _launcher()
        with patch("py_stsh.launcher.os.fork") as fork:
            with pytest.raises(LaunchError, match="No such file"):
                launcher.launch(parse_pipeline(f"cat < {tmp_path / 'missing'}"))
            fork.assert_not_called()
        assert len(registry) == 0

    def test_unwritable_output_file(self, tmp_path: Path) -> None:
        """A bad ``>`` path is reported and nothing leaks."""
        registry, _notifications, launcher = _launcher()
        before = _open_fd_count()
        with pytest.raises(LaunchError):
            launcher.launch(parse_pipeline(f"cat > {tmp_path / 'no' / 'such' / 'dir'}"))
        assert _open_fd_count() == before
        assert len(registry) == 0

    def test_fork_failure_discards_job(self) -> None:
        """When the first fork fails no job and no descriptor remains."""
        registry, _notifications, launcher = _launcher()
        before = _open_fd_count()
        with (
            patch("py_stsh.launcher.os.fork", side_effect=BlockingIOError(11, "try again")),
            pytest.raises(LaunchError, match="Unable to fork"),
        ):
            launcher.launch(parse_pipeline("cat | cat"))
        assert _open_fd_count() == before
        assert len(registry) == 0
        assert not registry.has_foreground_job()

    def test_empty_pipeline(self) -> None:
        """A pipeline with no stages is rejected."""
        _registry, _notifications, launcher = _launcher()
        with pytest.raises(LaunchError):
            launcher.launch(Pipeline())
