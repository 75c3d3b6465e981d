"""
Exceptions thrown by shqlite. Kept apart from the main module so the
command, session and database modules can share them without importing the
REPL.
"""


class ShellError(Exception):
    """
    Base class for exceptions thrown by the shell.
    """


class AbortError(ShellError):
    """
    Thrown to force an abort with a non-zero exit code.
    """


class TooManyMatchesError(ShellError):
    """
    Thrown to indicate that a database specification matched too many
    entries in the configuration file.
    """


class UserInputError(ShellError):
    """
    Thrown for malformed input, such as a bad dot-command argument. Always
    reported as a one-line diagnostic; the session continues.
    """


class ArgumentParseError(UserInputError):
    """
    Thrown when a dot-command argument can't be converted to the type the
    command requires.
    """


class DatabaseError(ShellError):
    """
    Thrown when SQLite rejects a statement or a schema query fails. The
    message is the engine's own message.
    """
