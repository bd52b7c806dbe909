"""Read-only web API for the shell's job table.

This package provides a Flask application that exposes the live job
table and event log as JSON.  It is an **optional** extra — install
with::

    pip install py-stsh[web]

The ``create_app`` factory in ``app.py`` serves three endpoints:

- ``GET /api/jobs`` — every live job with its processes.
- ``GET /api/log`` — the shell's event log.
- ``GET /api/status`` — job count and current foreground job.
"""
