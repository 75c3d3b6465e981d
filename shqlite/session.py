"""
The state the REPL carries from one statement to the next: the open
database, the terminal, and the display settings the dot commands change.
"""

import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Self
from typing import Sequence as Seq

from shqlite.database import Database, RowSet, RowsAffected
from shqlite.errors import DatabaseError
from shqlite.table import Alignment, render
from shqlite.terminal import Terminal

logger = logging.getLogger(__name__)

DEFAULT_NULL_VALUE = "NULL"


@dataclass
class Settings:
    """
    Display switches, changed by .echo, .headers, .timer, .changes and
    .nullvalue.
    """

    echo: bool = False
    headers: bool = True
    timer: bool = False
    changes: bool = False
    null_value: str = DEFAULT_NULL_VALUE


def cell_text(value: Any, null_value: str) -> str:
    """
    Convert a database value to display text.
    """
    if value is None:
        return null_value

    if isinstance(value, bytes):
        return value.hex()

    return str(value)


@dataclass
class Session:
    """
    The REPL's context. The session exclusively owns the database handle;
    .open replaces it through replace_database().
    """

    database: Database
    terminal: Terminal
    settings: Settings = field(default_factory=Settings)

    def replace_database(self: Self, database: Database) -> None:
        """
        Make database the current one, closing the old one.
        """
        old = self.database
        self.database = database
        old.close()

    def display(
        self: Self,
        columns: Seq[str],
        rows: Seq[Seq[Any]],
        alignment: Alignment = Alignment.CENTER,
        headers: bool = True,
    ) -> None:
        """
        Render rows as a table and write it.
        """
        text_rows = [
            [cell_text(v, self.settings.null_value) for v in row]
            for row in rows
        ]
        self.terminal.write(render(columns, text_rows, alignment, headers))
        self.terminal.flush()

    def run_sql(self: Self, sql: str) -> bool:
        """
        Run a SQL statement and display the results.

        :returns: True if it ran successfully. False if it failed (and an
            error was reported).
        """
        if self.settings.echo:
            self.terminal.write(sql)

        start = perf_counter()
        try:
            result = self.database.execute(sql)
        except DatabaseError as e:
            self.terminal.error(str(e))
            return False

        elapsed = perf_counter() - start
        logger.debug("Statement ran in %.03f seconds", elapsed)
        match result:
            case RowSet(columns=columns, rows=rows):
                self.display(
                    columns,
                    rows,
                    alignment=Alignment.RIGHT,
                    headers=self.settings.headers,
                )
                suffix = "" if len(rows) == 1 else "s"
                epilog = f"{len(rows):,} row{suffix}"
            case RowsAffected(count=count):
                epilog = "Successfully executed statement"
                if self.settings.changes and count >= 0:
                    epilog = f"{epilog} (changes: {count:,})"

        if self.settings.timer:
            epilog = f"{epilog} ({elapsed:.03f} seconds)"

        self.terminal.write(f"{epilog}\n")
        self.terminal.flush()
        return True
