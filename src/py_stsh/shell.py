"""The shell — one turn of the job-control loop.

The shell owns every piece of job-control state and wires the
components together:

    Logger ─┬─ JobRegistry ── NotificationHandler
            │                      │
            ├─ Terminal ── ForegroundArbiter
            │                      │
            ├─ PipelineLauncher ───┤
            └─ BuiltinDispatcher ──┘

``execute`` takes one line of input and does what a real shell does
between two prompts: absorb any child state changes that arrived in
the meantime, parse the line, run it as a builtin if the leading
command is one, otherwise launch it as a job (waiting for it if it is a
foreground job).

Design choices:
    - **Returns strings, not prints.**  The caller decides where the
      output goes, which keeps the shell testable.
    - **Errors are exceptions.**  ``ShellError`` subclasses propagate to
      the caller, which reports them on stderr and keeps looping.
    - **Nothing is global.**  Two ``Shell`` objects never share a job
      table; only the OS-level signal handlers are process-wide, so
      ``install_handlers`` is a separate, explicit step.
"""

from py_stsh.builtins import EXIT_SENTINEL, BuiltinDispatcher
from py_stsh.config import ShellConfig
from py_stsh.foreground import ForegroundArbiter, Terminal
from py_stsh.jobs import JobRegistry
from py_stsh.launcher import PipelineLauncher
from py_stsh.logging import Logger
from py_stsh.notifications import NotificationHandler
from py_stsh.pipeline import Pipeline, parse_pipeline


class Shell:
    """Job-control command interpreter."""

    EXIT_SENTINEL = EXIT_SENTINEL

    def __init__(self, *, config: ShellConfig | None = None) -> None:
        """Create a shell with an empty job table.

        Args:
            config: Run-time settings; defaults manage no terminal.

        """
        self._config = config or ShellConfig()
        self._logger = Logger(
            min_level=self._config.log_level,
            max_entries=self._config.max_log_entries,
        )
        self._registry = JobRegistry(
            logger=self._logger,
            release_stopped_foreground=self._config.release_stopped_foreground,
        )
        self._notifications = NotificationHandler(registry=self._registry, logger=self._logger)
        self._terminal = Terminal(self._config.terminal_fd)
        self._arbiter = ForegroundArbiter(
            registry=self._registry,
            notifications=self._notifications,
            terminal=self._terminal,
            logger=self._logger,
        )
        self._launcher = PipelineLauncher(
            registry=self._registry,
            arbiter=self._arbiter,
            terminal=self._terminal,
            logger=self._logger,
        )
        self._builtins = BuiltinDispatcher(
            registry=self._registry,
            arbiter=self._arbiter,
            terminal=self._terminal,
            logger=self._logger,
        )

    @property
    def config(self) -> ShellConfig:
        """Return the shell's configuration."""
        return self._config

    @property
    def logger(self) -> Logger:
        """Return the shell's event log."""
        return self._logger

    @property
    def registry(self) -> JobRegistry:
        """Return the job table."""
        return self._registry

    @property
    def notifications(self) -> NotificationHandler:
        """Return the notification handler."""
        return self._notifications

    def install_handlers(self) -> None:
        """Install the shell's OS signal handlers (process-wide)."""
        self._notifications.install()

    def uninstall_handlers(self) -> None:
        """Restore the signal handlers that were in place before."""
        self._notifications.uninstall()

    def execute(self, line: str) -> str:
        """Parse and run one command line.

        Args:
            line: Raw text, e.g. ``"sort < in | uniq > out &"``.

        Returns:
            Text to print (possibly empty), or ``EXIT_SENTINEL``.

        Raises:
            ShellError: For usage, lookup, launch, or parse errors.

        """
        self._notifications.drain()
        if not line.strip():
            return ""
        return self.run(parse_pipeline(line))

    def run(self, pipeline: Pipeline) -> str:
        """Run an already-parsed pipeline (builtin or external).

        Returns:
            Text to print: a builtin's output, the ``[n] pid ...``
            announcement for a background job, or an empty string.

        """
        leading = pipeline.leading
        if self._builtins.is_builtin(leading.program):
            return self._builtins.dispatch(leading)
        job = self._launcher.launch(pipeline)
        return job.summary() if pipeline.background else ""
