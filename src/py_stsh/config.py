"""Shell configuration.

A ``ShellConfig`` gathers the handful of knobs that change how the
shell behaves at run time.  Values come from keyword arguments (tests,
embedding) or from the process environment (``from_env``), in the same
``KEY=VALUE`` string form every Unix process inherits from its parent.

Recognised variables:
    - ``STSH_PROMPT`` — the prompt string.
    - ``STSH_LOG_LEVEL`` — minimum event-log level (``debug``, ``info``,
      ``warning``, ``error``).
    - ``STSH_RELEASE_STOPPED`` — ``1``/``true`` to move a foreground job
      to the background once all of its live processes are stopped.
    - ``STSH_WEB_PORT`` — serve the read-only job API on this port.
"""

from collections.abc import Mapping
from dataclasses import dataclass

from py_stsh.logging import LogLevel

_TRUE_WORDS = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "off", ""})


@dataclass(frozen=True)
class ShellConfig:
    """Run-time settings for a shell instance.

    Attributes:
        prompt: Text shown before each line is read.
        terminal_fd: Descriptor of the controlling terminal, or None
            when the shell should not manage terminal ownership.
        release_stopped_foreground: When True, a foreground job whose
            live processes are all stopped drops to the background.
        log_level: Minimum level recorded in the event log.
        max_log_entries: Number of event-log entries retained.
        web_port: Port for the optional web API, or None to disable it.

    """

    prompt: str = "stsh> "
    terminal_fd: int | None = None
    release_stopped_foreground: bool = False
    log_level: LogLevel = LogLevel.INFO
    max_log_entries: int = 1000
    web_port: int | None = None

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str],
        *,
        terminal_fd: int | None = None,
    ) -> "ShellConfig":
        """Build a config from ``STSH_*`` environment variables.

        Args:
            environ: The environment to read (usually ``os.environ``).
            terminal_fd: Controlling terminal descriptor, if any.

        Returns:
            A config with defaults for every unset variable.

        Raises:
            ValueError: If a variable holds an unparseable value.

        """
        prompt = environ.get("STSH_PROMPT", cls.prompt)

        level_name = environ.get("STSH_LOG_LEVEL", cls.log_level.name).upper()
        try:
            log_level = LogLevel[level_name]
        except KeyError:
            msg = f"invalid STSH_LOG_LEVEL '{level_name.lower()}'"
            raise ValueError(msg) from None

        release_word = environ.get("STSH_RELEASE_STOPPED", "").strip().lower()
        if release_word in _TRUE_WORDS:
            release = True
        elif release_word in _FALSE_WORDS:
            release = False
        else:
            msg = f"invalid STSH_RELEASE_STOPPED '{release_word}'"
            raise ValueError(msg)

        web_port: int | None = None
        port_text = environ.get("STSH_WEB_PORT")
        if port_text:
            try:
                web_port = int(port_text)
            except ValueError:
                msg = f"invalid STSH_WEB_PORT '{port_text}'"
                raise ValueError(msg) from None

        return cls(
            prompt=prompt,
            terminal_fd=terminal_fd,
            release_stopped_foreground=release,
            log_level=log_level,
            web_port=web_port,
        )
