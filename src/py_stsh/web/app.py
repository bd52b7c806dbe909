"""Flask application factory for the job-table API.

The API only reads shell state; it never launches, signals, or
re-places a job.  Requests are served from a background thread while
the shell's main thread owns the registry, so every endpoint takes a
snapshot (``list_jobs``/``entries`` copy their contents) before
serialising.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any

from flask import Flask, Response, jsonify, request

from py_stsh.logging import LogLevel
from py_stsh.process.signals import NOTIFICATION_SIGNALS, blocked_signals

if TYPE_CHECKING:
    from py_stsh.jobs import Job
    from py_stsh.shell import Shell

_HTTP_BAD_REQUEST = 400


def job_to_dict(job: Job) -> dict[str, Any]:
    """Serialise a job and its processes."""
    return {
        "handle": job.handle,
        "pgid": job.pgid,
        "placement": str(job.placement),
        "processes": [
            {"pid": p.pid, "command": p.command, "state": str(p.state)} for p in job.processes
        ],
    }


def create_app(shell: Shell) -> Flask:
    """Create a Flask app exposing *shell*'s job table.

    Returns:
        A configured Flask application.

    """
    app = Flask(__name__)
    registry = shell.registry

    @app.route("/api/jobs")
    def jobs() -> Response:  # pyright: ignore[reportUnusedFunction]
        """Return the job table as JSON."""
        return jsonify({"jobs": [job_to_dict(job) for job in registry.list_jobs()]})

    @app.route("/api/log")
    def log() -> Response | tuple[Response, int]:  # pyright: ignore[reportUnusedFunction]
        """Return the event log as formatted lines.

        Optional query parameters narrow the result: ``level`` (a level
        name; that level and above) and ``source`` (one component).
        """
        level_name = request.args.get("level")
        min_level = None
        if level_name is not None:
            try:
                min_level = LogLevel[level_name.upper()]
            except KeyError:
                return jsonify({"error": f"Unknown level '{level_name}'"}), _HTTP_BAD_REQUEST
        entries = shell.logger.filter(min_level=min_level, source=request.args.get("source"))
        return jsonify({"entries": [str(entry) for entry in entries]})

    @app.route("/api/status")
    def status() -> Response:  # pyright: ignore[reportUnusedFunction]
        """Return a one-glance summary for polling."""
        job = registry.foreground_job()
        foreground = None if job is None else job.handle
        return jsonify({"jobs": len(registry), "foreground": foreground})

    return app


def serve_in_background(shell: Shell, *, port: int, host: str = "127.0.0.1") -> threading.Thread:
    """Serve the API from a daemon thread.

    The thread is started with the notification signals blocked, so the
    kernel always delivers them to the shell's main thread.

    Returns:
        The started server thread.

    """
    app = create_app(shell)
    thread = threading.Thread(
        target=app.run,
        kwargs={"host": host, "port": port, "use_reloader": False},
        name="stsh-web",
        daemon=True,
    )
    with blocked_signals(*NOTIFICATION_SIGNALS):
        thread.start()
    return thread
