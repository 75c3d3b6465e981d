"""
Terminal I/O for the shell: writing output, reading lines with a prompt,
history and tab-completion. Built on the Python readline module, which is
either GNU Readline or the BSD Editline library, depending on how Python was
compiled.
"""

import atexit
import logging
import readline
import sys
from contextlib import suppress
from pathlib import Path
from typing import Callable, Self, TextIO

from termcolor import colored

logger = logging.getLogger(__name__)

HISTORY_LENGTH = 10000
# GNU Readline and Editline use different initialization files, so we load
# whichever one is appropriate.
EDITLINE_BINDINGS_FILE = Path("~/.editrc").expanduser()
READLINE_BINDINGS_FILE = Path("~/.inputrc").expanduser()
# "." is deliberately absent, so that a dot command is one completion word.
COMPLETER_DELIMS = " \t\n\"'`@$><=;|&{(,"


class Terminal:
    """
    Output and input for the REPL. Output goes to `out` (stdout by default),
    or to a file while .output is in effect. Errors always go to `err`.
    """

    def __init__(
        self: Self, out: TextIO | None = None, err: TextIO | None = None
    ) -> None:
        self._stdout = out or sys.stdout
        self._err = err or sys.stderr
        self._out: TextIO = self._stdout
        self._output_path: Path | None = None
        self._save_history: Callable[[], None] | None = None

    @property
    def output_path(self: Self) -> Path | None:
        """
        The file output is redirected to, or None for standard output.
        """
        return self._output_path

    def write(self: Self, line: str = "") -> None:
        """
        Write a line of output.
        """
        print(line, file=self._out)

    def flush(self: Self) -> None:
        """
        Flush buffered output.
        """
        self._out.flush()

    def error(self: Self, msg: str) -> None:
        """
        Print error messages in a consistent way.
        """
        print(f"{colored('Error:', 'red')} {msg}", file=self._err)

    def redirect(self: Self, path: Path | None) -> None:
        """
        Send subsequent output to a file (truncating it), or back to the
        original output stream if path is None.
        """
        if self._out is not self._stdout:
            self._out.close()

        if path is None:
            self._out = self._stdout
            self._output_path = None
        else:
            # pylint: disable=consider-using-with
            self._out = open(path, mode="w", encoding="utf-8")
            self._output_path = path

    def read_line(self: Self, prompt: str) -> str:
        """
        Read a line of input. input() automatically uses the readline
        library, since it has been loaded.

        :raises EOFError: on end of input (Ctrl-D)
        """
        self.flush()
        return input(prompt)

    def init_history(self: Self, history_path: Path) -> None:
        """
        Load the readline history file and arrange for it to be saved on
        exit. If a history file was already loaded, it's saved first and
        replaced.

        :param history_path: Path of the history file. It doesn't have to
            exist.
        """
        if self._save_history is not None:
            self._save_history()
            atexit.unregister(self._save_history)
            readline.clear_history()

        with suppress(FileNotFoundError):
            readline.read_history_file(str(history_path))
            logger.debug('Loaded history from "%s"', history_path)

        # default history len is -1 (infinite), which may grow unruly
        readline.set_history_length(HISTORY_LENGTH)

        # pylint: disable=unnecessary-lambda-assignment
        save = lambda: readline.write_history_file(str(history_path))
        atexit.register(save)
        self._save_history = save

    def init_completion(
        self: Self, completer: Callable[[str, int], str | None]
    ) -> None:
        """
        Initialize readline bindings and install a completer.
        """
        if (readline.__doc__ is not None) and ("libedit" in readline.__doc__):
            init_file = EDITLINE_BINDINGS_FILE
            completion_binding = "bind '^I' rl_complete"
        else:
            init_file = READLINE_BINDINGS_FILE
            completion_binding = "Control-I: rl_complete"

        if init_file.exists():
            logger.debug('Loading bindings from "%s"', init_file)
            readline.read_init_file(init_file)

        # Ensure that tab = complete
        readline.parse_and_bind(completion_binding)
        readline.set_completer_delims(COMPLETER_DELIMS)
        readline.set_completer(completer)

    def history_mark(self: Self) -> int:
        """
        The current length of the history, to pass to record_statement()
        once the statement is complete.
        """
        return readline.get_current_history_length()

    def record_statement(self: Self, mark: int, statement: str) -> None:
        """
        Replace the history entries added since mark (the lines of a
        possibly multi-line statement) with the single-line statement, so
        partial lines don't clutter the history.
        """
        while (length := readline.get_current_history_length()) > mark:
            # remove_history_item() is 0-based.
            readline.remove_history_item(length - 1)

        readline.add_history(statement)


def line_before_cursor() -> str:
    """
    Return the readline buffer up to the cursor.
    """
    return readline.get_line_buffer()[: readline.get_endidx()]
