"""Job-control builtins.

A handful of commands must run *inside* the shell because they act on
the shell's own job table rather than on files or data:

- ``quit`` / ``exit`` — leave the shell.
- ``fg <jobid>`` — resume a job in the foreground and wait for it.
- ``bg <jobid>`` — resume a job in the background.
- ``slay`` / ``halt`` / ``cont`` ``<jobid> <index> | <pid>`` — kill,
  stop, or continue a single process, addressed either by pid or by
  job number plus zero-based position in the pipeline.
- ``jobs`` — print the job table.

Handlers return the text to print and raise ``UsageError`` or
``JobLookupError`` for bad input; the shell never crashes on a typo.

Design choices:
    - **Command dispatch via a dict** — one method per builtin, one
      table entry each.
    - **Signals come from a table** — ``BUILTIN_SIGNALS`` and
      ``REDUNDANT_STATES`` decide what ``slay``/``halt``/``cont`` send
      and when they do nothing.
    - **Registry reads and writes happen with SIGCHLD blocked**, so a
      job cannot vanish between being looked up and being signalled.
"""

import os
import signal
from collections.abc import Callable
from typing import TypeAlias

from py_stsh.errors import JobLookupError, LaunchError, UsageError
from py_stsh.foreground import ForegroundArbiter, Terminal
from py_stsh.jobs import Job, JobPlacement, JobRegistry
from py_stsh.logging import Logger, LogLevel
from py_stsh.pipeline import Command
from py_stsh.process.pcb import Process
from py_stsh.process.signals import BUILTIN_SIGNALS, REDUNDANT_STATES, blocked_signals

# Type alias for a builtin handler: takes the argument list, returns output.
_Handler: TypeAlias = Callable[[list[str]], str]

EXIT_SENTINEL = "__EXIT__"

_MAX_TARGET_ARGS = 2


def _parse_int(text: str) -> int | None:
    try:
        return int(text)
    except ValueError:
        return None


class BuiltinDispatcher:
    """Recognise and run job-control builtins against the registry."""

    def __init__(
        self,
        *,
        registry: JobRegistry,
        arbiter: ForegroundArbiter,
        terminal: Terminal,
        logger: Logger | None = None,
    ) -> None:
        """Create a dispatcher over *registry*."""
        self._registry = registry
        self._arbiter = arbiter
        self._terminal = terminal
        self._logger = logger

        self._commands: dict[str, _Handler] = {
            "quit": self._cmd_exit,
            "exit": self._cmd_exit,
            "fg": self._cmd_fg,
            "bg": self._cmd_bg,
            "slay": self._cmd_slay,
            "halt": self._cmd_halt,
            "cont": self._cmd_cont,
            "jobs": self._cmd_jobs,
        }

    @property
    def names(self) -> list[str]:
        """Return the recognised builtin names."""
        return list(self._commands)

    def is_builtin(self, name: str) -> bool:
        """Return True if *name* is handled by the shell itself."""
        return name in self._commands

    def dispatch(self, command: Command) -> str:
        """Run a builtin command.

        Args:
            command: The leading command of the line.

        Returns:
            Output to print (possibly empty), or ``EXIT_SENTINEL``.

        Raises:
            KeyError: If the command is not a builtin.
            UsageError: If the arguments are malformed.
            JobLookupError: If the arguments name nothing that exists.

        """
        handler = self._commands[command.program]
        return handler(list(command.args))

    def _log(self, message: str) -> None:
        if self._logger is not None:
            self._logger.log(LogLevel.INFO, message, source="builtins")

    # -- Command handlers ------------------------------------------------

    def _cmd_exit(self, _args: list[str]) -> str:
        """Leave the shell."""
        return EXIT_SENTINEL

    def _cmd_jobs(self, _args: list[str]) -> str:
        """List every live job with its processes."""
        return str(self._registry)

    def _cmd_fg(self, args: list[str]) -> str:
        """Continue a job in the foreground and wait for it."""
        job = self._resume("fg", args, JobPlacement.FOREGROUND)
        self._arbiter.wait_for(job)
        return ""

    def _cmd_bg(self, args: list[str]) -> str:
        """Continue a job in the background."""
        self._resume("bg", args, JobPlacement.BACKGROUND)
        return ""

    def _cmd_slay(self, args: list[str]) -> str:
        """Kill one process."""
        return self._signal_process("slay", args)

    def _cmd_halt(self, args: list[str]) -> str:
        """Stop one process (no-op if it is already stopped)."""
        return self._signal_process("halt", args)

    def _cmd_cont(self, args: list[str]) -> str:
        """Continue one process (no-op if it is already running)."""
        return self._signal_process("cont", args)

    # -- Helpers -----------------------------------------------------------

    def _resume(self, name: str, args: list[str], placement: JobPlacement) -> Job:
        """Place a job, hand over the terminal if needed, and SIGCONT its group."""
        handle = _parse_int(args[0]) if len(args) == 1 else None
        if handle is None or handle <= 0:
            msg = f"Usage: {name} <jobid>"
            raise UsageError(msg)

        with blocked_signals(signal.SIGCHLD):
            if not self._registry.contains_job(handle):
                msg = f"{name} {handle}: No such job."
                raise JobLookupError(msg)
            job = self._registry.get_job(handle)
            self._registry.set_placement(job, placement)
            if placement is JobPlacement.FOREGROUND:
                try:
                    self._terminal.give_to(job.pgid)
                except LaunchError:
                    self._registry.set_placement(job, JobPlacement.BACKGROUND)
                    raise
            try:
                os.killpg(job.pgid, signal.SIGCONT)
            except ProcessLookupError:
                msg = f"{name} {handle}: No such job."
                raise JobLookupError(msg) from None
        self._log(f"job {handle} continued in the {placement}")
        return job

    def _signal_process(self, name: str, args: list[str]) -> str:
        """Resolve a ``<jobid> <index> | <pid>`` target and signal it."""
        numbers = [_parse_int(a) for a in args]
        if not 1 <= len(numbers) <= _MAX_TARGET_ARGS or None in numbers:
            msg = f"Usage: {name} <jobid> <index> | <pid>"
            raise UsageError(msg)

        with blocked_signals(signal.SIGCHLD):
            process = self._resolve_target([n for n in numbers if n is not None])
            if process.is_terminated:
                msg = f"No process with pid {process.pid}."
                raise JobLookupError(msg)
            if REDUNDANT_STATES.get(name) is process.state:
                return ""
            sig = BUILTIN_SIGNALS[name]
            try:
                os.kill(process.pid, sig)
            except ProcessLookupError:
                msg = f"No process with pid {process.pid}."
                raise JobLookupError(msg) from None
        self._log(f"{sig.name} sent to pid {process.pid}")
        return ""

    def _resolve_target(self, numbers: list[int]) -> Process:
        if len(numbers) == 1:
            pid = numbers[0]
            if not self._registry.contains_process(pid):
                msg = f"No process with pid {pid}."
                raise JobLookupError(msg)
            return self._registry.get_job_with_process(pid).get_process(pid)

        handle, index = numbers
        if not self._registry.contains_job(handle):
            msg = f"No job with id of {handle}."
            raise JobLookupError(msg)
        return self._registry.get_job(handle).process_at(index)
