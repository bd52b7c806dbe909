"""Tests for the read-only job API.

Tests use ``pytest.importorskip`` so they are skipped gracefully when
Flask is not installed.
"""

from __future__ import annotations

from typing import Any

import pytest

flask = pytest.importorskip("flask")

from py_stsh.jobs import JobPlacement  # noqa: E402
from py_stsh.logging import LogLevel  # noqa: E402
from py_stsh.process.pcb import Process, ProcessState  # noqa: E402
from py_stsh.shell import Shell  # noqa: E402
from py_stsh.web.app import create_app, job_to_dict  # noqa: E402

HTTP_OK = 200
HTTP_NOT_FOUND = 404
HTTP_BAD_REQUEST = 400


def _client_with_jobs() -> tuple[Shell, Any]:
    """Create a shell with one foreground and one stopped background job."""
    shell = Shell()
    fg = shell.registry.add_job(JobPlacement.FOREGROUND)
    fg.add_process(Process(pid=700, command="sort"))
    bg = shell.registry.add_job(JobPlacement.BACKGROUND)
    bg.add_process(Process(pid=701, command="sleep 100"))
    bg.get_process(701).update(ProcessState.STOPPED)
    app = create_app(shell)
    app.config["TESTING"] = True
    return shell, app.test_client()


class TestAppCreation:
    """Verify the app factory."""

    def test_create_app_returns_flask(self) -> None:
        """create_app should return a Flask application."""
        assert isinstance(create_app(Shell()), flask.Flask)

    def test_unknown_route(self) -> None:
        """Only the API routes exist."""
        _shell, client = _client_with_jobs()
        assert client.get("/").status_code == HTTP_NOT_FOUND


class TestJobsEndpoint:
    """Verify /api/jobs."""

    def test_lists_jobs(self) -> None:
        """Every job appears with its processes, ordered by handle."""
        _shell, client = _client_with_jobs()
        response = client.get("/api/jobs")
        assert response.status_code == HTTP_OK
        jobs = response.get_json()["jobs"]
        assert [job["handle"] for job in jobs] == [1, 2]
        assert jobs[1]["placement"] == "background"
        assert jobs[1]["processes"] == [{"pid": 701, "command": "sleep 100", "state": "stopped"}]

    def test_job_to_dict(self) -> None:
        """The process group is the first process's pid."""
        shell, _client = _client_with_jobs()
        assert job_to_dict(shell.registry.get_job(1))["pgid"] == 700  # noqa: PLR2004


class TestStatusAndLog:
    """Verify /api/status and /api/log."""

    def test_status(self) -> None:
        """Status reports the job count and the foreground handle."""
        _shell, client = _client_with_jobs()
        assert client.get("/api/status").get_json() == {"jobs": 2, "foreground": 1}

    def test_status_without_foreground(self) -> None:
        """No foreground job is reported as null."""
        client = create_app(Shell()).test_client()
        assert client.get("/api/status").get_json() == {"jobs": 0, "foreground": None}

    def test_log(self) -> None:
        """Log entries are returned as formatted lines."""
        shell, client = _client_with_jobs()
        shell.logger.log(LogLevel.WARNING, "job 2 stopped", source="notify")
        entries = client.get("/api/log").get_json()["entries"]
        assert entries[-1] == "[WARNING] notify: job 2 stopped"

    def test_log_filtered_by_source_and_level(self) -> None:
        """Query parameters narrow the log through the logger's filter."""
        shell, client = _client_with_jobs()
        shell.logger.log(LogLevel.WARNING, "group 12 gone", source="notify")
        shell.logger.log(LogLevel.INFO, "pid 701 is stopped", source="notify")
        by_source = client.get("/api/log?source=notify").get_json()["entries"]
        assert by_source == ["[WARNING] notify: group 12 gone", "[INFO] notify: pid 701 is stopped"]
        by_level = client.get("/api/log?level=warning").get_json()["entries"]
        assert by_level == ["[WARNING] notify: group 12 gone"]

    def test_log_rejects_unknown_level(self) -> None:
        """An unknown level name is a bad request."""
        _shell, client = _client_with_jobs()
        response = client.get("/api/log?level=loud")
        assert response.status_code == HTTP_BAD_REQUEST
        assert "loud" in response.get_json()["error"]

    def test_status_after_foreground_job_finishes(self) -> None:
        """A removed foreground job is reported as null, not an error."""
        shell, client = _client_with_jobs()
        job = shell.registry.get_job(1)
        job.get_process(700).update(ProcessState.TERMINATED)
        shell.registry.synchronize(job)
        response = client.get("/api/status")
        assert response.status_code == HTTP_OK
        assert response.get_json() == {"jobs": 1, "foreground": None}
