"""Pipeline launcher — from a parsed pipeline to a running job.

Launching ``a < in | b | c > out`` means:

1. Open ``in`` and ``out`` first, so a bad path fails before anything
   is forked.
2. Allocate a job (foreground or background).
3. For every stage: create the pipe to the next stage (unless last),
   fork, and in the child wire stdin/stdout, close every inherited
   pipe or redirection descriptor, join the job's process group, and
   ``execvp`` the program.
4. In the parent: put the child in the group too (whichever of parent
   and child runs first wins the race), close the pipe ends the parent
   no longer needs, and record the process in stage order.
5. Foreground jobs get the terminal and the caller waits on the
   foreground arbiter; background jobs return immediately.

Pipe descriptors are created close-on-exec and every copy the parent
holds is closed as soon as the stage that needs it has been forked, so
the last writer closing really does deliver EOF downstream.

A child never returns into shell code: whatever happens after ``fork``
ends in ``os._exit``.
"""

import os
import signal
import sys
from dataclasses import dataclass

from py_stsh.errors import LaunchError
from py_stsh.foreground import ForegroundArbiter, Terminal
from py_stsh.jobs import Job, JobPlacement, JobRegistry
from py_stsh.logging import Logger, LogLevel
from py_stsh.pipeline import Command, Pipeline
from py_stsh.process.pcb import Process
from py_stsh.process.signals import blocked_signals, reset_child_signals

_OUTPUT_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_TRUNC
_OUTPUT_MODE = 0o644

# Exit status of a child whose program could not be executed.
EXEC_FAILURE_STATUS = 0


@dataclass
class _Redirections:
    """Descriptors opened for ``<`` and ``>`` before any fork."""

    stdin: int | None = None
    stdout: int | None = None

    def fds(self) -> list[int]:
        return [fd for fd in (self.stdin, self.stdout) if fd is not None]

    def close(self) -> None:
        for fd in self.fds():
            os.close(fd)
        self.stdin = self.stdout = None


def _open_redirections(pipeline: Pipeline) -> _Redirections:
    redirects = _Redirections()
    try:
        if pipeline.input_path is not None:
            redirects.stdin = os.open(pipeline.input_path, os.O_RDONLY)
        if pipeline.output_path is not None:
            redirects.stdout = os.open(pipeline.output_path, _OUTPUT_FLAGS, _OUTPUT_MODE)
    except OSError as e:
        redirects.close()
        msg = f"{e.filename}: {e.strerror}."
        raise LaunchError(msg) from e
    return redirects


def _exec_stage(
    command: Command,
    *,
    pgid: int,
    stdin: int | None,
    stdout: int | None,
    inherited: list[int],
) -> None:
    """Turn a freshly forked child into *command*.

    Returns only if exec failed; the caller must then ``os._exit``.
    """
    try:
        reset_child_signals()
        os.setpgid(0, pgid)
        if stdin is not None:
            os.dup2(stdin, 0)
        if stdout is not None:
            os.dup2(stdout, 1)
        for fd in inherited:
            if fd > 2:  # noqa: PLR2004
                os.close(fd)
    except OSError as e:
        os.write(2, f"{command.program}: {e.strerror}.\n".encode())
        return
    try:
        os.execvp(command.program, command.argv)
    except OSError:
        os.write(2, f"{command.program}: Command not found.\n".encode())


class PipelineLauncher:
    """Spawn pipelines as jobs in their own process groups."""

    def __init__(
        self,
        *,
        registry: JobRegistry,
        arbiter: ForegroundArbiter,
        terminal: Terminal,
        logger: Logger | None = None,
    ) -> None:
        """Create a launcher that records jobs in *registry*."""
        self._registry = registry
        self._arbiter = arbiter
        self._terminal = terminal
        self._logger = logger

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source="launcher")

    def launch(self, pipeline: Pipeline) -> Job:
        """Start every stage of *pipeline* as one job.

        For a foreground pipeline this blocks until the job leaves the
        foreground.

        Args:
            pipeline: The parsed pipeline (at least one stage).

        Returns:
            The job created for the pipeline.  It may already have been
            removed from the registry if it has finished.

        Raises:
            LaunchError: If a redirection, pipe, fork, or terminal
                hand-off fails.  No partial job is left in the
                foreground.

        """
        if not pipeline.commands:
            msg = "Cannot launch an empty pipeline"
            raise LaunchError(msg)
        placement = JobPlacement.BACKGROUND if pipeline.background else JobPlacement.FOREGROUND

        redirects = _open_redirections(pipeline)
        with blocked_signals(signal.SIGCHLD):
            job = self._registry.add_job(placement)
            try:
                self._spawn_stages(job, pipeline, redirects)
            except LaunchError:
                self._abandon(job)
                raise
            finally:
                redirects.close()
            if placement is JobPlacement.FOREGROUND:
                try:
                    self._terminal.give_to(job.pgid)
                except LaunchError:
                    self._registry.set_placement(job, JobPlacement.BACKGROUND)
                    raise

        self._log(LogLevel.INFO, f"job {job.handle} launched: {pipeline}")
        if placement is JobPlacement.FOREGROUND:
            self._arbiter.wait_for(job)
        return job

    def _abandon(self, job: Job) -> None:
        if job.processes:
            self._registry.set_placement(job, JobPlacement.BACKGROUND)
        else:
            self._registry.discard(job)

    def _spawn_stages(self, job: Job, pipeline: Pipeline, redirects: _Redirections) -> None:
        last = len(pipeline.commands) - 1
        upstream: int | None = None
        try:
            for i, command in enumerate(pipeline.commands):
                read_end = write_end = None
                if i < last:
                    try:
                        read_end, write_end = os.pipe()
                    except OSError as e:
                        msg = f"Unable to create pipe: {e.strerror}."
                        raise LaunchError(msg) from e

                stdin = upstream if i > 0 else redirects.stdin
                stdout = write_end if i < last else redirects.stdout
                inherited = [
                    fd for fd in (upstream, read_end, write_end) if fd is not None
                ] + redirects.fds()

                try:
                    self._fork(command, job, stdin=stdin, stdout=stdout, inherited=inherited)
                finally:
                    if upstream is not None:
                        os.close(upstream)
                    if write_end is not None:
                        os.close(write_end)
                    upstream = read_end
        finally:
            if upstream is not None:
                os.close(upstream)

    def _fork(
        self,
        command: Command,
        job: Job,
        *,
        stdin: int | None,
        stdout: int | None,
        inherited: list[int],
    ) -> int:
        sys.stdout.flush()
        sys.stderr.flush()
        try:
            pid = os.fork()
        except OSError as e:
            msg = f"Unable to fork {command.program}: {e.strerror}."
            raise LaunchError(msg) from e

        if pid == 0:
            try:
                _exec_stage(
                    command,
                    pgid=job.pgid,
                    stdin=stdin,
                    stdout=stdout,
                    inherited=inherited,
                )
            finally:
                os._exit(EXEC_FAILURE_STATUS)

        pgid = job.pgid or pid
        try:
            os.setpgid(pid, pgid)
        except (PermissionError, ProcessLookupError):
            # The child already exec'd or exited; it joined the group itself.
            self._log(LogLevel.DEBUG, f"setpgid({pid}, {pgid}) raced with the child")
        job.add_process(Process(pid=pid, command=str(command)))
        self._log(LogLevel.DEBUG, f"job {job.handle} stage {pid}: {command}")
        return pid
