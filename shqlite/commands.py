"""
Dot commands: client-side meta-commands that start with ".". DOT_COMMANDS
is the one table of commands. The dispatcher's routing, the .help listing
and tab-completion are all derived from it.
"""

# pylint: disable=unused-argument

import logging
import os
import re
import subprocess
import sys
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Callable, Self
from typing import Sequence as Seq

from shqlite.database import MAIN_DB, Database, RowSet
from shqlite.errors import ArgumentParseError, DatabaseError, UserInputError
from shqlite.session import Session
from shqlite.table import Alignment

logger = logging.getLogger(__name__)

QUIT_EXIT_CODE = 0
NO_ARGUMENTS = "None"
MULTI_WHITESPACE = re.compile(r"\s+")
DIGITS = re.compile(r"^[-+]?\d+$")
SWITCH_VALUES = {
    "on": True,
    "yes": True,
    "true": True,
    "1": True,
    "off": False,
    "no": False,
    "false": False,
    "0": False,
}

Handler = Callable[[Session, list[str]], None]


class Outcome(StrEnum):
    """
    The result of dispatching a dot command. None of these end the session.
    """

    OK = "ok"
    UNKNOWN_COMMAND = "unknown command"
    MISSING_ARGUMENT = "missing argument"
    NOT_IMPLEMENTED = "not implemented"
    FAILED = "failed"


@dataclass(frozen=True)
class DotCommandSpec:
    """
    A dot command: its name, a usage line, a one-line description, the
    minimum number of arguments, and the function that runs it. A handler of
    None marks a command that's recognized but not implemented.
    """

    name: str
    usage: str
    description: str
    min_args: int = 0
    handler: Handler | None = None

    def split_usage(self: Self) -> tuple[str, str]:
        """
        Split the usage line at its first space into the command and its
        arguments. The arguments are "None" if there's no space.
        """
        match self.usage.split(" ", 1):
            case [command, arguments]:
                return (command, arguments)
            case [command]:
                return (command, NO_ARGUMENTS)


def parse_switch(command: str, value: str) -> bool:
    """
    Parse an on/off argument.

    :raises ArgumentParseError: if value isn't a recognized boolean
    """
    try:
        return SWITCH_VALUES[value.lower()]
    except KeyError:
        # pylint: disable=raise-missing-from
        raise ArgumentParseError(
            f'{command} expects "on" or "off", not "{value}".'
        )


def main_db_path(command: str, args: list[str]) -> str:
    """
    Get the file argument of a command with the usage "?DB? FILE". Only the
    main database is supported.
    """
    match args:
        case [path]:
            return path
        case [db, path] if db == MAIN_DB:
            return path
        case [db, _]:
            raise UserInputError(
                f'{command} only supports the "{MAIN_DB}" database, '
                f'not "{db}".'
            )
        case _:
            raise UserInputError(f"Too many arguments for {command}.")


def dot_tables(session: Session, args: list[str]) -> None:
    """
    List tables and views, optionally only those matching a LIKE pattern.
    """
    pattern = args[0] if args else None
    names = session.database.list_tables(pattern)
    session.display(["tables"], [[n] for n in names])


def dot_indexes(session: Session, args: list[str]) -> None:
    """
    List indexes, optionally only those on one table.
    """
    table = args[0] if args else None
    names = session.database.list_indexes(table)
    session.display(["indexes"], [[n] for n in names])


def dot_schema(session: Session, args: list[str]) -> None:
    """
    Show the CREATE statements, each collapsed onto a single line.
    """
    pattern = args[0] if args else None
    statements = session.database.list_schema(pattern)
    rows = [[MULTI_WHITESPACE.sub(" ", s).strip()] for s in statements]
    session.display(["schemas"], rows, alignment=Alignment.RIGHT)


def dot_databases(session: Session, args: list[str]) -> None:
    """
    List the attached databases.
    """
    databases = session.database.list_attached_databases()
    session.display(["seq", "name", "file"], databases)


def dot_version(session: Session, args: list[str]) -> None:
    """
    Show the SQLite version and the date, time and hash of its source
    check-in.
    """
    version, source_id = session.database.get_engine_version_info()
    fields = source_id.split()
    if len(fields) < 3:
        raise DatabaseError(f'Unrecognized source identifier "{source_id}".')

    date, timestamp, hash_ = fields[:3]
    session.display(
        ["version", "date", "timestamp", "hash"],
        [[version, date, timestamp, hash_]],
    )


def dot_print(session: Session, args: list[str]) -> None:
    session.terminal.write(" ".join(args))


def dot_open(session: Session, args: list[str]) -> None:
    """
    Open another database. The current one is only closed once the new one
    is open.
    """
    path = args[-1]
    database = Database.open(path)
    session.replace_database(database)
    logger.debug("Switched to %s", database.url)


def dot_exit(session: Session, args: list[str]) -> None:
    """
    Exit with the given code.
    """
    code = args[0]
    if DIGITS.match(code) is None:
        raise ArgumentParseError(
            f'.exit requires a numeric code, not "{code}".'
        )

    session.terminal.flush()
    sys.exit(int(code))


def dot_quit(session: Session, args: list[str]) -> None:
    session.terminal.flush()
    sys.exit(QUIT_EXIT_CODE)


def dot_help(session: Session, args: list[str]) -> None:
    """
    Show the command table, or the commands whose names start with a
    pattern (with or without the leading ".").
    """
    specs: Seq[DotCommandSpec] = DOT_COMMANDS
    if args:
        prefix = args[0].removeprefix(".")
        specs = [s for s in DOT_COMMANDS if s.name[1:].startswith(prefix)]
        if len(specs) == 0:
            raise UserInputError(f'No commands match "{args[0]}".')

    rows = [[*spec.split_usage(), spec.description] for spec in specs]
    session.display(
        ["command", "arguments", "description"],
        rows,
        alignment=Alignment.RIGHT,
    )


def dot_backup(session: Session, args: list[str]) -> None:
    """
    Back up the main database to a file.
    """
    path = main_db_path(".backup", args)
    session.terminal.write(f"saving database to {path}")
    session.database.backup(path)
    session.terminal.write(f"successfully saved database to {path}")


def dot_restore(session: Session, args: list[str]) -> None:
    """
    Restore the main database from a file.
    """
    path = main_db_path(".restore", args)
    session.terminal.write(f"restoring database using {path}")
    session.database.restore(path)
    session.terminal.write(f"successfully restored database {path}")


def split_sql_script(text: str) -> list[str]:
    """
    Split a script on ";" into statements, dropping blank fragments. This is
    a plain split: a ";" inside a quoted literal splits too.
    """
    fragments = (fragment.strip() for fragment in text.split(";"))
    return [f for f in fragments if f != ""]


def dot_read(session: Session, args: list[str]) -> None:
    """
    Run the statements in a file as a single batch.
    """
    path = Path(args[0]).expanduser()
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        # pylint: disable=raise-missing-from
        raise UserInputError(f'Unable to read "{path}": {e}')

    statements = split_sql_script(text)
    session.database.execute_batch(statements)
    suffix = "" if len(statements) == 1 else "s"
    session.terminal.write(
        f"successfully executed {len(statements)} statement{suffix} "
        f"from {path}"
    )


def dot_shell(session: Session, args: list[str]) -> None:
    """
    Run a program, copying its output (stdout and stderr together) as it
    arrives. Blocks until the program exits.
    """
    try:
        with subprocess.Popen(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        ) as proc:
            assert proc.stdout is not None
            for line in proc.stdout:
                session.terminal.write(line.rstrip("\n"))
    except OSError as e:
        session.terminal.error(f'Unable to run "{args[0]}": {e}')
        return

    session.terminal.write(
        f"process terminated with exit code {proc.returncode}"
    )


def dot_cd(session: Session, args: list[str]) -> None:
    path = Path(args[0]).expanduser()
    try:
        os.chdir(path)
    except OSError as e:
        # pylint: disable=raise-missing-from
        raise UserInputError(f'Unable to change directory to "{path}": {e}')


def dot_echo(session: Session, args: list[str]) -> None:
    session.settings.echo = parse_switch(".echo", args[0])


def dot_headers(session: Session, args: list[str]) -> None:
    session.settings.headers = parse_switch(".headers", args[0])


def dot_timer(session: Session, args: list[str]) -> None:
    session.settings.timer = parse_switch(".timer", args[0])


def dot_changes(session: Session, args: list[str]) -> None:
    session.settings.changes = parse_switch(".changes", args[0])


def dot_nullvalue(session: Session, args: list[str]) -> None:
    session.settings.null_value = args[0]


def dot_output(session: Session, args: list[str]) -> None:
    """
    Redirect output to a file, or back to standard output.
    """
    if not args:
        session.terminal.redirect(None)
        return

    path = Path(args[0]).expanduser()
    try:
        session.terminal.redirect(path)
    except OSError as e:
        session.terminal.redirect(None)
        # pylint: disable=raise-missing-from
        raise UserInputError(f'Unable to write to "{path}": {e}')


def quote_identifier(name: str) -> str:
    """
    Double-quote an SQL identifier, doubling any embedded double quotes.
    """
    escaped = name.replace('"', '""')
    return f'"{escaped}"'


def dot_dump(session: Session, args: list[str]) -> None:
    """
    Write the database as SQL: each table's CREATE statement followed by an
    INSERT per row, then the other objects (indexes, views, triggers), all in
    one transaction.
    """
    database = session.database
    write = session.terminal.write

    write("PRAGMA foreign_keys=OFF;")
    write("BEGIN TRANSACTION;")
    for kind, name, sql in database.schema_objects():
        write(f"{sql};")
        if kind != "table":
            continue

        # Let SQLite produce the literals, so that every type round-trips.
        table = quote_identifier(name)
        quoted = ", ".join(
            f"quote({quote_identifier(c)})"
            for c in database.list_columns(name)
        )
        # execute() rather than execute_query(), so a ":" in a name isn't a
        # bind parameter.
        rows = database.execute(f"SELECT {quoted} FROM {table}")
        assert isinstance(rows, RowSet)
        for row in rows.rows:
            write(f"INSERT INTO {table} VALUES({','.join(row)});")

    write("COMMIT;")
    session.terminal.flush()


def dot_dbconfig(session: Session, args: list[str]) -> None:
    """
    Show the sqlite3_db_config() switches.
    """

    def on_off(value: bool | None) -> str:
        if value is None:
            return "N/A"
        return "on" if value else "off"

    rows = [[op, on_off(v)] for op, v in session.database.get_db_config()]
    session.display(["pragma", "value"], rows)


def dot_show(session: Session, args: list[str]) -> None:
    """
    Show the current settings.
    """
    settings = session.settings
    output = session.terminal.output_path

    def on_off(value: bool) -> str:
        return "on" if value else "off"

    rows = [
        ["echo", on_off(settings.echo)],
        ["headers", on_off(settings.headers)],
        ["nullvalue", settings.null_value],
        ["output", "stdout" if output is None else str(output)],
        ["timer", on_off(settings.timer)],
        ["changes", on_off(settings.changes)],
        ["filename", session.database.path or ":memory:"],
        ["cwd", os.getcwd()],
    ]
    session.display(["setting", "value"], rows, alignment=Alignment.LEFT)


# fmt: off
# pylint: disable=line-too-long
DOT_COMMANDS: tuple[DotCommandSpec, ...] = (
    DotCommandSpec(".archive", ".archive ...", "Manage SQL archives"),
    DotCommandSpec(".auth", ".auth ON|OFF", "Show authorizer callbacks"),
    DotCommandSpec(".backup", ".backup ?DB? FILE", 'Backup DB (default "main") to FILE', 1, dot_backup),
    DotCommandSpec(".bail", ".bail on|off", "Stop after hitting an error.  Default OFF"),
    DotCommandSpec(".cd", ".cd DIRECTORY", "Change the working directory to DIRECTORY", 1, dot_cd),
    DotCommandSpec(".changes", ".changes on|off", "Show number of rows changed by SQL", 1, dot_changes),
    DotCommandSpec(".check", ".check GLOB", "Fail if output since .testcase does not match"),
    DotCommandSpec(".clone", ".clone NEWDB", "Clone data into NEWDB from the existing database"),
    DotCommandSpec(".connection", ".connection [close] [#]", "Open or close an auxiliary database connection"),
    DotCommandSpec(".crlf", ".crlf ?on|off?", "Whether or not to use \\r\\n line endings"),
    DotCommandSpec(".databases", ".databases", "List names and files of attached databases", 0, dot_databases),
    DotCommandSpec(".dbconfig", ".dbconfig ?op? ?val?", "List or change sqlite3_db_config() options", 0, dot_dbconfig),
    DotCommandSpec(".dbinfo", ".dbinfo ?DB?", "Show status information about the database"),
    DotCommandSpec(".dbtotxt", ".dbtotxt", "Hex dump of the database file"),
    DotCommandSpec(".dump", ".dump ?OBJECTS?", "Render database content as SQL", 0, dot_dump),
    DotCommandSpec(".echo", ".echo on|off", "Turn command echo on or off", 1, dot_echo),
    DotCommandSpec(".eqp", ".eqp on|off|full|...", "Enable or disable automatic EXPLAIN QUERY PLAN"),
    DotCommandSpec(".excel", ".excel", "Display the output of next command in spreadsheet"),
    DotCommandSpec(".exit", ".exit ?CODE?", "Exit this program with return-code CODE", 1, dot_exit),
    DotCommandSpec(".expert", ".expert", "EXPERIMENTAL. Suggest indexes for queries"),
    DotCommandSpec(".explain", ".explain ?on|off|auto?", "Change the EXPLAIN formatting mode.  Default: auto"),
    DotCommandSpec(".filectrl", ".filectrl CMD ...", "Run various sqlite3_file_control() operations"),
    DotCommandSpec(".fullschema", ".fullschema ?--indent?", "Show schema and the content of sqlite_stat tables"),
    DotCommandSpec(".headers", ".headers on|off", "Turn display of headers on or off", 1, dot_headers),
    DotCommandSpec(".help", ".help ?PATTERN?", "Show help text for PATTERN", 0, dot_help),
    DotCommandSpec(".import", ".import FILE TABLE", "Import data from FILE into TABLE"),
    DotCommandSpec(".imposter", ".imposter INDEX TABLE", "Create imposter table TABLE on index INDEX"),
    DotCommandSpec(".indexes", ".indexes ?TABLE?", "Show names of indexes", 0, dot_indexes),
    DotCommandSpec(".intck", ".intck ?STEPS_PER_UNLOCK?", "Run an incremental integrity check on the db"),
    DotCommandSpec(".limit", ".limit ?LIMIT? ?VAL?", "Display or change the value of an SQLITE_LIMIT"),
    DotCommandSpec(".lint", ".lint OPTIONS", "Report potential schema issues."),
    DotCommandSpec(".load", ".load FILE ?ENTRY?", "Load an extension library"),
    DotCommandSpec(".log", ".log FILE|on|off", "Turn logging on or off.  FILE can be stderr/stdout"),
    DotCommandSpec(".mode", ".mode ?MODE? ?OPTIONS?", "Set output mode"),
    DotCommandSpec(".nonce", ".nonce STRING", "Suspend safe mode for one command if nonce matches"),
    DotCommandSpec(".nullvalue", ".nullvalue STRING", "Use STRING in place of NULL values", 1, dot_nullvalue),
    DotCommandSpec(".once", ".once ?OPTIONS? ?FILE?", "Output for the next SQL command only to FILE"),
    DotCommandSpec(".open", ".open ?OPTIONS? ?FILE?", "Close existing database and reopen FILE", 1, dot_open),
    DotCommandSpec(".output", ".output ?FILE?", "Send output to FILE or stdout if FILE is omitted", 0, dot_output),
    DotCommandSpec(".parameter", ".parameter CMD ...", "Manage SQL parameter bindings"),
    DotCommandSpec(".print", ".print STRING...", "Print literal STRING", 1, dot_print),
    DotCommandSpec(".progress", ".progress N", "Invoke progress handler after every N opcodes"),
    DotCommandSpec(".prompt", ".prompt MAIN CONTINUE", "Replace the standard prompts"),
    DotCommandSpec(".quit", ".quit", "Stop interpreting input stream, exit if primary.", 0, dot_quit),
    DotCommandSpec(".read", ".read FILE", "Read input from FILE or command output", 1, dot_read),
    DotCommandSpec(".recover", ".recover", "Recover as much data as possible from corrupt db."),
    DotCommandSpec(".restore", ".restore ?DB? FILE", 'Restore content of DB (default "main") from FILE', 1, dot_restore),
    DotCommandSpec(".save", ".save ?DB? FILE", "Write database to FILE (an alias for .backup ...)", 1, dot_backup),
    DotCommandSpec(".scanstats", ".scanstats on|off|est", "Turn sqlite3_stmt_scanstatus() metrics on or off"),
    DotCommandSpec(".schema", ".schema ?PATTERN?", "Show the CREATE statements matching PATTERN", 0, dot_schema),
    DotCommandSpec(".separator", ".separator COL ?ROW?", "Change the column and row separators"),
    DotCommandSpec(".session", ".session ?NAME? CMD ...", "Create or control sessions"),
    DotCommandSpec(".sha3sum", ".sha3sum ...", "Compute a SHA3 hash of database content"),
    DotCommandSpec(".shell", ".shell CMD ARGS ...", "Run CMD ARGS... in a system shell", 1, dot_shell),
    DotCommandSpec(".show", ".show", "Show the current values for various settings", 0, dot_show),
    DotCommandSpec(".stats", ".stats ?ARG?", "Show stats or turn stats on or off"),
    DotCommandSpec(".system", ".system CMD ARGS ...", "Run CMD ARGS... in a system shell", 1, dot_shell),
    DotCommandSpec(".tables", ".tables ?TABLE?", "List names of tables matching LIKE pattern TABLE", 0, dot_tables),
    DotCommandSpec(".timeout", ".timeout MS", "Try opening locked tables for MS milliseconds"),
    DotCommandSpec(".timer", ".timer on|off", "Turn SQL timer on or off", 1, dot_timer),
    DotCommandSpec(".trace", ".trace ?OPTIONS?", "Output each SQL statement as it is run"),
    DotCommandSpec(".unmodule", ".unmodule NAME ...", "Unregister virtual table modules"),
    DotCommandSpec(".version", ".version", "Show source, library and compiler versions", 0, dot_version),
    DotCommandSpec(".vfsinfo", ".vfsinfo ?AUX?", "Information about the top-level VFS"),
    DotCommandSpec(".vfslist", ".vfslist", "List all available VFSes"),
    DotCommandSpec(".vfsname", ".vfsname ?AUX?", "Print the name of the VFS stack"),
    DotCommandSpec(".width", ".width NUM1 NUM2 ...", "Set minimum column widths for columnar output"),
    DotCommandSpec(".www", ".www", "Display output of the next command in web browser"),
)
# pylint: enable=line-too-long
# fmt: on

COMMANDS_BY_NAME: dict[str, DotCommandSpec] = {s.name: s for s in DOT_COMMANDS}
assert len(COMMANDS_BY_NAME) == len(DOT_COMMANDS), "duplicate dot command"


class Dispatcher:
    """
    Routes dot commands to their handlers. Stateless apart from the session,
    whose database .open may replace.
    """

    def __init__(self: Self, session: Session) -> None:
        self._session = session

    def dispatch(self: Self, text: str) -> Outcome:
        """
        Run a dot command.

        :param text: the command line, starting with the command name

        :returns: the outcome. Unknown commands and missing arguments are
            reported to the user, not raised.

        :raises UserInputError: if an argument is invalid
        """
        terminal = self._session.terminal
        tokens = text.split()
        spec = COMMANDS_BY_NAME.get(tokens[0]) if tokens else None
        if spec is None:
            terminal.error(
                f'unknown command or invalid arguments: "{text}". '
                'Enter ".help" for help'
            )
            return Outcome.UNKNOWN_COMMAND

        name, args = spec.name, tokens[1:]
        if len(args) < spec.min_args:
            terminal.error(f"an argument is required for {name} command...")
            return Outcome.MISSING_ARGUMENT

        if spec.handler is None:
            terminal.error(f"This command {name} is not implemented.")
            return Outcome.NOT_IMPLEMENTED

        try:
            spec.handler(self._session, args)
        except DatabaseError as e:
            terminal.error(str(e))
            return Outcome.FAILED

        return Outcome.OK
