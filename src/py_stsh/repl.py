"""Interactive REPL (Read-Eval-Print Loop) for the shell.

The REPL is the thin I/O wrapper around ``Shell``:

    1. **Read** — display a prompt and read one line.
    2. **Eval** — pass it to ``shell.execute()``.
    3. **Print** — output to stdout, errors to stderr.
    4. **Loop** — until ``quit``/``exit`` or end of input.

The shell is fully testable without a terminal; this module is the
part that touches ``stdin``/``stdout``, installs the process-wide
signal handlers, and optionally starts the web API.
"""

import os
import readline  # noqa: F401  (line editing and history for input())
import sys
from collections.abc import Callable

from py_stsh.config import ShellConfig
from py_stsh.errors import ShellError
from py_stsh.logging import LogLevel
from py_stsh.shell import Shell


def build_config(environ: dict[str, str] | None = None, *, stdin_fd: int = 0) -> ShellConfig:
    """Build the REPL's configuration.

    The terminal is managed only when *stdin_fd* is a tty.

    Args:
        environ: Environment to read (defaults to ``os.environ``).
        stdin_fd: Descriptor the shell reads commands from.

    Returns:
        The resolved configuration.

    """
    terminal_fd = stdin_fd if os.isatty(stdin_fd) else None
    return ShellConfig.from_env(os.environ if environ is None else environ, terminal_fd=terminal_fd)


def run(
    shell: Shell,
    *,
    read_line: Callable[[str], str] = input,
) -> int:
    """Run the read-eval-print loop until exit.

    Args:
        shell: The shell to drive (its handlers should be installed).
        read_line: Prompting line reader; raises ``EOFError`` at end.

    Returns:
        The shell's exit status (always 0).

    """
    shell_pid = os.getpid()
    prompt = shell.config.prompt if shell.config.terminal_fd is not None else ""
    while True:
        try:
            line = read_line(prompt)
        except EOFError:
            break

        try:
            result = shell.execute(line)
        except ShellError as e:
            if os.getpid() != shell_pid:
                os._exit(0)
            shell.logger.log(LogLevel.WARNING, str(e), source="repl")
            print(e, file=sys.stderr)  # noqa: T201
            continue

        if result == Shell.EXIT_SENTINEL:
            break
        if result:
            print(result, flush=True)  # noqa: T201
    return 0


def main() -> None:
    """Start an interactive shell.

    This is the ``stsh`` console entry point.
    """
    try:
        config = build_config()
    except ValueError as e:
        print(f"stsh: {e}", file=sys.stderr)  # noqa: T201
        sys.exit(2)

    shell = Shell(config=config)
    if config.web_port is not None:
        from py_stsh.web.app import serve_in_background  # noqa: PLC0415

        serve_in_background(shell, port=config.web_port)

    shell.install_handlers()
    try:
        status = run(shell)
    finally:
        shell.uninstall_handlers()
    sys.exit(status)
