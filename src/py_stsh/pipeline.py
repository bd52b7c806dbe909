"""Pipeline descriptors and a minimal command-line parser.

A ``Pipeline`` is what the launcher consumes: an ordered list of
``Command`` stages, optional input and output redirection paths, and a
background flag.  ``parse_pipeline`` is a deliberately small front end
that produces one from a line of text:

    sort < names.txt | uniq -c | head -n 3 > top.txt &

Supported syntax: ``|`` between stages, one ``< file`` and one
``> file`` anywhere in the line (input feeds the first stage, output
receives the last), a trailing ``&``, and shell-style quoting.  There
are no variables, globs, or control flow.
"""

import shlex
from dataclasses import dataclass, field

from py_stsh.errors import ParseError

_PUNCTUATION = "|<>&"


@dataclass(frozen=True)
class Command:
    """One pipeline stage: a program and its arguments.

    Attributes:
        program: Name (looked up on ``PATH``) or path of the executable.
        args: Arguments after the program name, in order.

    """

    program: str
    args: tuple[str, ...] = ()

    @property
    def argv(self) -> list[str]:
        """Return the full argument vector, program name first."""
        return [self.program, *self.args]

    def __str__(self) -> str:
        """Format as the text the user would type."""
        return shlex.join(self.argv)


@dataclass(frozen=True)
class Pipeline:
    """A parsed command line ready to launch.

    Attributes:
        commands: Stages in order; stage *i* writes to stage *i + 1*.
        input_path: File connected to the first stage's stdin, if any.
        output_path: File receiving the last stage's stdout, if any.
        background: True if the line ended with ``&``.

    """

    commands: tuple[Command, ...] = field(default_factory=tuple)
    input_path: str | None = None
    output_path: str | None = None
    background: bool = False

    @property
    def leading(self) -> Command:
        """Return the first stage (where builtins are recognised)."""
        return self.commands[0]

    def __str__(self) -> str:
        """Format the pipeline back into command-line text."""
        text = " | ".join(str(c) for c in self.commands)
        if self.input_path is not None:
            text += f" < {shlex.quote(self.input_path)}"
        if self.output_path is not None:
            text += f" > {shlex.quote(self.output_path)}"
        return text + (" &" if self.background else "")


def _tokenize(line: str) -> list[str]:
    lexer = shlex.shlex(line, posix=True, punctuation_chars=_PUNCTUATION)
    lexer.whitespace_split = True
    try:
        return list(lexer)
    except ValueError as e:
        msg = f"Parse error: {e}"
        raise ParseError(msg) from None


def parse_pipeline(line: str) -> Pipeline:
    """Parse one command line into a ``Pipeline``.

    Args:
        line: Raw text as read from the user.

    Returns:
        The parsed pipeline.

    Raises:
        ParseError: If the line is empty or malformed.

    """
    tokens = _tokenize(line)
    background = False
    if tokens and tokens[-1] == "&":
        background = True
        tokens.pop()
    if not tokens:
        msg = "Parse error: empty command"
        raise ParseError(msg)

    stages: list[list[str]] = [[]]
    redirects: dict[str, str] = {}
    it = iter(tokens)
    for token in it:
        if token == "|":
            stages.append([])
        elif token in {"<", ">"}:
            target = next(it, None)
            if target is None or target in {"|", "<", ">", "&"}:
                msg = f"Parse error: missing file after '{token}'"
                raise ParseError(msg)
            if token in redirects:
                msg = f"Parse error: duplicate '{token}' redirection"
                raise ParseError(msg)
            redirects[token] = target
        elif token in {"&", "<<", ">>", "||", "&&", "|&", "&>", ">&", "<>"}:
            msg = f"Parse error: unsupported '{token}'"
            raise ParseError(msg)
        else:
            stages[-1].append(token)

    if any(not stage for stage in stages):
        msg = "Parse error: empty pipeline stage"
        raise ParseError(msg)

    return Pipeline(
        commands=tuple(Command(program=s[0], args=tuple(s[1:])) for s in stages),
        input_path=redirects.get("<"),
        output_path=redirects.get(">"),
        background=background,
    )
