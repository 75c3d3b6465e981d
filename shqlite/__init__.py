"""
shqlite is an interactive SQLite shell. It reads SQL statements and "dot"
commands from the terminal, runs them against an open database, and shows
query results as boxed tables. It uses the Python `readline` module, so it
supports history, command editing, and context-sensitive tab-completion of
dot commands, SQL keywords, table names and column names.

Run with -h or --help for an extended usage message.
"""

import logging
import sys
from pathlib import Path

import click
from termcolor import colored

from shqlite.accumulator import Complete, InputAccumulator, NeedMore
from shqlite.commands import DOT_COMMANDS, Dispatcher, Outcome
from shqlite.completion import CompletionEngine
from shqlite.config import (
    Configuration,
    ConfigurationError,
    load_configuration,
)
from shqlite.database import Database
from shqlite.errors import (
    AbortError,
    DatabaseError,
    ShellError,
    TooManyMatchesError,
    UserInputError,
)
from shqlite.session import Session, Settings
from shqlite.table import Alignment, render
from shqlite.terminal import Terminal

__all__ = [
    "Alignment",
    "CompletionEngine",
    "Database",
    "Dispatcher",
    "DOT_COMMANDS",
    "InputAccumulator",
    "Outcome",
    "Session",
    "ShellError",
    "main",
    "render",
    "run_command_loop",
    "run_statement",
]

NAME = "shqlite"
VERSION = "1.0.0"
CLICK_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
PROMPT = "shqlite> "
CONTINUATION_PROMPT = "   ...> "
DEFAULT_HISTORY_FILE = Path("~/.shqlite-history").expanduser()
DEFAULT_CONFIG_FILE = Path("~/.shqlite.toml").expanduser()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def make_prompt(primary: bool = True) -> str:
    """
    Make the prompt for the command loop.

    :param primary: whether this is the primary prompt (True) or the
        continuation prompt of a multi-line statement
    """
    prompt = PROMPT if primary else CONTINUATION_PROMPT
    return colored(prompt, "cyan", attrs=["bold"])


def run_statement(
    session: Session, dispatcher: Dispatcher, statement: str
) -> Outcome | bool:
    """
    Run one complete logical statement: a dot command or SQL.

    :returns: the dispatch Outcome for a dot command, or whether the SQL ran
        successfully
    """
    if statement.startswith("."):
        if session.settings.echo:
            session.terminal.write(statement)
        return dispatcher.dispatch(statement)

    return session.run_sql(statement)


def run_command_loop(session: Session, use_readline: bool = True) -> None:
    """
    Read and process statements until end of input. .exit and .quit leave
    by raising SystemExit.

    :param session: the session, owning the open database
    :param use_readline: whether to maintain the readline history
    """
    terminal = session.terminal
    dispatcher = Dispatcher(session)
    accumulator = InputAccumulator()
    mark = terminal.history_mark() if use_readline else 0

    while True:
        try:
            if not accumulator.awaiting_continuation and use_readline:
                mark = terminal.history_mark()

            line = terminal.read_line(
                make_prompt(not accumulator.awaiting_continuation)
            )

            match accumulator.feed(line):
                case NeedMore():
                    continue

                case Complete(statement=statement):
                    if use_readline:
                        terminal.record_statement(mark, statement)
                    run_statement(session, dispatcher, statement)

        except UserInputError as e:
            terminal.error(str(e))
        except EOFError:
            # Ctrl-D to input().
            print()
            break
        except KeyboardInterrupt:
            print()
            accumulator.reset()
            continue


def resolve_database(
    db_spec: str, configuration: Configuration | None, history: Path
) -> tuple[str, Path, str | None]:
    """
    Map the DATABASE argument to a database path, using the configuration if
    there is one.

    :param db_spec: a (partial) configuration section name, or a path
    :param configuration: the loaded configuration, or None
    :param history: the history file from the command line (or its default)

    :returns: the database path, the history file, and the configured NULL
        display value, if any

    :raises TooManyMatchesError: if db_spec matches several sections
    """
    if configuration is None:
        return (db_spec, history, None)

    match configuration.lookup(db_spec):
        case None:
            return (db_spec, history, None)
        case cfg:
            logger.debug(
                '"%s" is configuration section "%s"', db_spec, cfg.name
            )
            return (cfg.path, cfg.history_file or history, cfg.null_value)


def open_session(
    db_spec: str, configuration: Configuration | None, history: Path
) -> tuple[Session, Path]:
    """
    Open the initial database and build the session.

    :raises AbortError: if the database can't be opened
    """
    path, history_file, null_value = resolve_database(
        db_spec, configuration, history
    )

    try:
        database = Database.open(path)
    except DatabaseError as e:
        # pylint: disable=raise-missing-from
        raise AbortError(f'Unable to open "{path or ":memory:"}": {e}')

    settings = Settings()
    if null_value is not None:
        settings.null_value = null_value

    return (Session(database, Terminal(), settings), history_file)


@click.command(name=NAME, context_settings=CLICK_CONTEXT_SETTINGS)
@click.option(
    "-H",
    "--history",
    is_flag=False,
    default=str(DEFAULT_HISTORY_FILE),
    show_default=True,
    help="Specify location of the default history file. This can be "
    "overridden, on a per-database basis, in the configuration.",
)
@click.option(
    "-c",
    "--config",
    is_flag=False,
    default=str(DEFAULT_CONFIG_FILE),
    show_default=True,
    type=click.Path(dir_okay=False),
    help="The location of the optional configuration file.",
)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    default=False,
    help="Log debugging information to standard error.",
)
@click.version_option(VERSION)
@click.argument("database", required=False, default="", type=str)
def main(database: str, history: str, config: str, verbose: bool) -> None:
    """
    Prompt for SQL statements and dot commands, and run them against a
    SQLite database. <DATABASE> is either the path of a database file or the
    name of a section in the configuration file from which the path can be
    read. If it's omitted, a transient in-memory database is used.

    SQL statements end with a ";" and may span several lines. Dot commands
    (e.g., ".tables") are always a single line. Type ".help" at the prompt
    for the list of dot commands.

    The configuration file is TOML, with one section per database:

    \b
        [orders]
        path = "~/data/orders.db"
        history = "~/.orders-history"
        nullvalue = "-"

    This shell uses the Python readline library, which may use libedit
    (editline) or GNU Readline under the covers. If using GNU Readline, the
    shell will read bindings from ".inputrc" in your home directory. If using
    editline, it will read them from ".editrc".
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    try:
        configuration: Configuration | None = None
        p_config = Path(config).expanduser()
        if not p_config.exists():
            logger.debug('Configuration file "%s" does not exist.', config)
        elif not p_config.is_file():
            raise AbortError(f'Configuration file "{config}" is not a file.')
        else:
            configuration = load_configuration(p_config)

        session, history_file = open_session(
            database, configuration, Path(history).expanduser()
        )

    except (AbortError, ConfigurationError, TooManyMatchesError) as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)

    terminal = session.terminal
    terminal.init_history(history_file)
    completer = CompletionEngine(lambda: session.database)
    terminal.init_completion(completer.readline_completer)

    print(colored(f"{NAME}, version {VERSION}", "blue", attrs=["bold"]))
    where = session.database.path or "a transient in-memory database"
    print(f"Connected to {where}.")
    print('Enter ".help" for usage hints.')

    try:
        run_command_loop(session)
    finally:
        terminal.redirect(None)
        session.database.close()


if __name__ == "__main__":
    # pylint: disable=no-value-for-parameter
    main()
