"""Shell error taxonomy.

Every error the shell can recover from derives from ``ShellError``.
The control loop catches the base class, prints the message to the
error stream, and moves on to the next line.

Kinds of error:
    - **UsageError** — a builtin was invoked with malformed arguments.
      The message is the ``Usage: ...`` line shown to the user.
    - **JobLookupError** — a job handle, pid, or process index does not
      name anything in the job registry.
    - **LaunchError** — the OS refused a resource needed to start a
      pipeline (redirection file, pipe, fork, terminal hand-off).
    - **ParseError** — the command line could not be turned into a
      pipeline.

Exec failures are deliberately absent: they happen inside a freshly
forked child, which reports and exits on its own and never raises back
into shell code.
"""


class ShellError(Exception):
    """Base class for recoverable shell errors."""


class UsageError(ShellError):
    """Raised when a builtin receives malformed arguments."""


class JobLookupError(ShellError):
    """Raised when a job, pid, or process index cannot be resolved."""


class LaunchError(ShellError):
    """Raised when a pipeline cannot be started."""


class ParseError(ShellError):
    """Raised when a command line is not a valid pipeline."""
