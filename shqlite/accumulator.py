"""
Statement accumulation for the REPL: decides whether the line editor has
read a whole logical statement or must keep reading continuation lines.
"""

import re
from dataclasses import dataclass
from typing import Self

DOT_COMMAND_PREFIX = "."
SQL_LINE_COMMENT_PREFIX = "--"
STATEMENT_TERMINATOR = ";"
QUOTE_CHARS = ('"', "'")
BLOCK_COMMENT_START = "/*"
BLOCK_COMMENT_END = "*/"
NEWLINE_WHITESPACE = re.compile(r"\s*\n\s*")
SPACE_BEFORE_TERMINATOR = re.compile(r"\s+;$")


@dataclass(frozen=True)
class NeedMore:
    """
    The input so far is not a complete statement.
    """


@dataclass(frozen=True)
class Complete:
    """
    A complete logical statement.

    statement is the form to execute, with newlines collapsed. lines holds
    the raw lines that made it up, in the order they were read.
    """

    statement: str
    lines: tuple[str, ...]


def scan_line(
    s: str, open_token: str | None = None
) -> tuple[str, str | None]:
    """
    Scan a line for quoted literals and comments. A doubled quote inside a
    literal (SQL's escape) closes and reopens it, which comes out the same.
    Quotes inside comments don't count.

    :param s: the line to scan
    :param open_token: the quote character, or "/*", that was already open
        before s, if any

    :returns: the line without any trailing "--" comment, and the quote
        character or "/*" still open at the end of it (None if nothing is)
    """
    i = 0
    while i < len(s):
        if open_token == BLOCK_COMMENT_START:
            end = s.find(BLOCK_COMMENT_END, i)
            if end < 0:
                return (s, open_token)
            open_token = None
            i = end + len(BLOCK_COMMENT_END)
            continue

        c = s[i]
        if open_token is not None:
            if c == open_token:
                open_token = None
        elif s.startswith(SQL_LINE_COMMENT_PREFIX, i):
            return (s[:i], None)
        elif s.startswith(BLOCK_COMMENT_START, i):
            open_token = BLOCK_COMMENT_START
            i += len(BLOCK_COMMENT_START)
            continue
        elif c in QUOTE_CHARS:
            open_token = c
        i += 1

    return (s, open_token)


def collapse_statement(lines: tuple[str, ...]) -> str:
    """
    Turn the lines of a statement into a single line for execution. Trailing
    "--" comments are dropped, since joining the lines would otherwise
    comment out what follows them.
    """
    code: list[str] = []
    open_token: str | None = None
    for line in lines:
        text, open_token = scan_line(line, open_token)
        code.append(text)

    text = NEWLINE_WHITESPACE.sub(" ", "\n".join(code)).strip()
    return SPACE_BEFORE_TERMINATOR.sub(STATEMENT_TERMINATOR, text)


class InputAccumulator:
    """
    Line-continuation state machine. Feed it raw lines; it answers NeedMore
    until a logical statement is complete.

    A line that starts a statement with "." is a dot command and is always
    complete on its own. Anything else is SQL, and is complete once it ends
    with a ";" that is not inside a quoted literal or a comment.
    """

    def __init__(self: Self) -> None:
        self._lines: list[str] = []
        self._in_quote: str | None = None

    @property
    def awaiting_continuation(self: Self) -> bool:
        """
        True if part of a statement has been read.
        """
        return len(self._lines) > 0

    @property
    def pending_text(self: Self) -> str:
        """
        The text accumulated so far.
        """
        return "\n".join(self._lines)

    def reset(self: Self) -> None:
        """
        Discard any partial statement.
        """
        self._lines = []
        self._in_quote = None

    def _keep(self: Self, line: str) -> bool:
        """
        Blank lines and "--" comment lines carry no SQL, unless they're part
        of a quoted literal or a block comment.
        """
        if self._in_quote is not None:
            return True

        stripped = line.strip()
        return stripped != "" and not stripped.startswith(
            SQL_LINE_COMMENT_PREFIX
        )

    def feed(self: Self, raw_line: str) -> NeedMore | Complete:
        """
        Add a line of input.

        :param raw_line: the line as read from the terminal, without its
            trailing newline

        :returns: Complete, with the whole statement, or NeedMore
        """
        trimmed = raw_line.strip()
        if not self.awaiting_continuation and trimmed.startswith(
            DOT_COMMAND_PREFIX
        ):
            return Complete(statement=trimmed, lines=(raw_line,))

        if not self._keep(raw_line):
            return NeedMore()

        self._lines.append(raw_line)
        code, self._in_quote = scan_line(raw_line, self._in_quote)
        if self._in_quote is not None or not code.strip().endswith(
            STATEMENT_TERMINATOR
        ):
            return NeedMore()

        lines = tuple(self._lines)
        self.reset()
        return Complete(statement=collapse_statement(lines), lines=lines)
