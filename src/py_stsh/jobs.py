"""Job control — the shell's table of running pipelines.

In Unix, a "job" is a shell concept layered on top of kernel processes.
When you run ``sort data | uniq -c &``, the shell forks two processes,
puts them in one process group, and records a job entry so that the
whole pipeline can be stopped, continued, listed, or brought to the
foreground as a unit.

Key ideas:
    - **Jobs are not processes** — a job *owns* an ordered list of
      processes (one per pipeline stage) plus the group id they share.
    - **Job numbers are small** — ``[1]``, ``[2]``, ... and a freed
      number is handed out again: the next job always gets the smallest
      unused positive integer.
    - **Placement** — at most one job is in the FOREGROUND (owns the
      terminal, blocks the prompt); every other job is BACKGROUND.
    - **Jobs vanish on their own** — there is no "remove job" call.
      ``synchronize`` drops a job the moment its last process is
      reported terminated.

Design choices:
    - ``JobRegistry`` is owned by the shell and handed to every
      component that needs it, rather than living in a module global.
    - The pid → job lookup is derived by scanning the (small) table, so
      it can never disagree with the jobs themselves.
"""

from collections.abc import Iterator
from enum import StrEnum
from itertools import count

from py_stsh.errors import JobLookupError
from py_stsh.logging import Logger, LogLevel
from py_stsh.process.pcb import Process, ProcessState


class JobPlacement(StrEnum):
    """Whether a job owns the terminal."""

    FOREGROUND = "foreground"
    BACKGROUND = "background"


class Job:
    """One pipeline invocation: ordered processes sharing a process group."""

    def __init__(self, *, handle: int, placement: JobPlacement) -> None:
        """Create an empty job.

        The process group id is unknown until the first stage is
        forked; that stage's pid becomes the group id.

        Args:
            handle: Small job number shown to the user.
            placement: Initial foreground/background placement.

        """
        self._handle = handle
        self._placement = placement
        self._pgid = 0
        self._processes: list[Process] = []

    @property
    def handle(self) -> int:
        """Return the job number."""
        return self._handle

    @property
    def pgid(self) -> int:
        """Return the process group id (0 until the first stage exists)."""
        return self._pgid

    @property
    def placement(self) -> JobPlacement:
        """Return the current placement."""
        return self._placement

    @property
    def processes(self) -> list[Process]:
        """Return the member processes in pipeline stage order."""
        return list(self._processes)

    def add_process(self, process: Process) -> None:
        """Append a stage's process; the first one fixes the group id."""
        if not self._processes:
            self._pgid = process.pid
        self._processes.append(process)

    def contains_process(self, pid: int) -> bool:
        """Return True if *pid* is one of this job's live processes.

        Terminated members are skipped: once reaped, their pid may be
        reused by the kernel for an unrelated child.
        """
        return any(p.pid == pid and not p.is_terminated for p in self._processes)

    def get_process(self, pid: int) -> Process:
        """Return the member process with the given pid.

        Raises:
            JobLookupError: If the pid is not a live member of this job.

        """
        for process in self._processes:
            if process.pid == pid and not process.is_terminated:
                return process
        msg = f"Job {self._handle} has no process with pid {pid}."
        raise JobLookupError(msg)

    def process_at(self, index: int) -> Process:
        """Return the process at a zero-based stage index.

        Raises:
            JobLookupError: If the index is out of range.

        """
        if not 0 <= index < len(self._processes):
            msg = f"Job {self._handle} doesn't have a process at index {index}."
            raise JobLookupError(msg)
        return self._processes[index]

    @property
    def is_terminated(self) -> bool:
        """Return True if the job has processes and all have terminated."""
        return bool(self._processes) and all(p.is_terminated for p in self._processes)

    @property
    def is_stopped(self) -> bool:
        """Return True if every process that is still alive is stopped."""
        live = [p for p in self._processes if not p.is_terminated]
        return bool(live) and all(p.state is ProcessState.STOPPED for p in live)

    def summary(self) -> str:
        """Format the one-line launch announcement ``[n] pid pid ...``."""
        pids = " ".join(str(p.pid) for p in self._processes)
        return f"[{self._handle}] {pids}"

    def __str__(self) -> str:
        """Format the job and one indented line per process."""
        lines = [f"[{self._handle}] pgid {self._pgid} ({self._placement})"]
        lines.extend(f"    {p.pid:>7}  {p.state:<10} {p.command}" for p in self._processes)
        return "\n".join(lines)


class JobRegistry:
    """The single authoritative table of live jobs.

    Callers that perform a read-then-write across several calls must
    hold SIGCHLD blocked for the duration (see
    ``py_stsh.process.signals.blocked_signals``).
    """

    def __init__(
        self,
        *,
        logger: Logger | None = None,
        release_stopped_foreground: bool = False,
    ) -> None:
        """Create an empty registry.

        Args:
            logger: Event log for job additions and removals.
            release_stopped_foreground: When True, ``synchronize`` moves
                a foreground job whose live processes are all stopped
                into the background.

        """
        self._jobs: dict[int, Job] = {}
        self._foreground: int | None = None
        self._logger = logger
        self._release_stopped = release_stopped_foreground

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source="jobs")

    def _next_handle(self) -> int:
        return next(n for n in count(start=1) if n not in self._jobs)

    def add_job(self, placement: JobPlacement) -> Job:
        """Allocate a new empty job with the smallest free handle.

        Args:
            placement: FOREGROUND or BACKGROUND.  A new foreground job
                displaces any current foreground job.

        Returns:
            The newly stored job.

        """
        job = Job(handle=self._next_handle(), placement=JobPlacement.BACKGROUND)
        self._jobs[job.handle] = job
        self.set_placement(job, placement)
        self._log(LogLevel.INFO, f"job {job.handle} added ({placement})")
        return job

    def set_placement(self, job: Job, placement: JobPlacement) -> None:
        """Change a job's placement, keeping at most one foreground job."""
        if placement is JobPlacement.FOREGROUND:
            if self._foreground is not None and self._foreground != job.handle:
                displaced = self._jobs[self._foreground]
                displaced._placement = JobPlacement.BACKGROUND  # noqa: SLF001
                self._log(LogLevel.INFO, f"job {displaced.handle} displaced from foreground")
            self._foreground = job.handle
        elif self._foreground == job.handle:
            self._foreground = None
        job._placement = placement  # noqa: SLF001

    def contains_job(self, handle: int) -> bool:
        """Return True if a live job has this handle."""
        return handle in self._jobs

    def contains_process(self, pid: int) -> bool:
        """Return True if any live job owns this pid."""
        return any(job.contains_process(pid) for job in self._jobs.values())

    def get_job(self, handle: int) -> Job:
        """Return the job with this handle.

        Raises:
            JobLookupError: If no such job exists.

        """
        job = self._jobs.get(handle)
        if job is None:
            msg = f"No job with id of {handle}."
            raise JobLookupError(msg)
        return job

    def get_job_with_process(self, pid: int) -> Job:
        """Return the job that owns *pid*.

        Raises:
            JobLookupError: If no live job owns the pid.

        """
        for job in self._jobs.values():
            if job.contains_process(pid):
                return job
        msg = f"No process with pid {pid}."
        raise JobLookupError(msg)

    def has_foreground_job(self) -> bool:
        """Return True if some job currently holds the foreground."""
        return self._foreground is not None

    def get_foreground_job(self) -> Job:
        """Return the foreground job.

        Raises:
            JobLookupError: If no job is in the foreground.

        """
        job = self.foreground_job()
        if job is None:
            msg = "No foreground job."
            raise JobLookupError(msg)
        return job

    def foreground_job(self) -> Job | None:
        """Return the foreground job, or None.

        Reads the foreground handle once, so it is safe to call from
        another thread while the main path is removing jobs.
        """
        handle = self._foreground
        return None if handle is None else self._jobs.get(handle)

    def synchronize(self, job: Job) -> None:
        """Re-evaluate *job* after one of its processes changed state.

        A job whose processes have all terminated is removed and its
        handle freed.  Otherwise the job stays, except that with
        ``release_stopped_foreground`` a fully stopped foreground job is
        moved to the background.
        """
        if self._jobs.get(job.handle) is not job:
            return
        if job.is_terminated:
            if self._foreground == job.handle:
                self._foreground = None
            del self._jobs[job.handle]
            self._log(LogLevel.INFO, f"job {job.handle} removed")
        elif (
            self._release_stopped
            and job.is_stopped
            and job.placement is JobPlacement.FOREGROUND
        ):
            self.set_placement(job, JobPlacement.BACKGROUND)
            self._log(LogLevel.INFO, f"job {job.handle} stopped; moved to background")

    def discard(self, job: Job) -> None:
        """Drop a job that never acquired any process.

        Used when launching fails before the first fork.  Jobs with
        processes are removed only through ``synchronize``.

        Raises:
            ValueError: If the job already has processes.

        """
        if job.processes:
            msg = f"Job {job.handle} has processes and cannot be discarded"
            raise ValueError(msg)
        if self._jobs.get(job.handle) is job:
            if self._foreground == job.handle:
                self._foreground = None
            del self._jobs[job.handle]

    def list_jobs(self) -> list[Job]:
        """Return all live jobs ordered by handle."""
        snapshot = dict(self._jobs)
        return [snapshot[h] for h in sorted(snapshot)]

    def __iter__(self) -> Iterator[Job]:
        """Iterate over live jobs ordered by handle."""
        return iter(self.list_jobs())

    def __len__(self) -> int:
        """Return the number of live jobs."""
        return len(self._jobs)

    def __str__(self) -> str:
        """Format the full job table."""
        return "\n".join(str(job) for job in self.list_jobs())
