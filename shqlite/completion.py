"""
Context-sensitive tab-completion. The pool of candidates depends on where
the cursor is: dot commands, column names after SELECT, table names after
FROM, INTO or JOIN, and otherwise the session's default pool (SQL keywords).
"""

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, Self

from shqlite.commands import DOT_COMMANDS
from shqlite.database import Database
from shqlite.errors import DatabaseError
from shqlite.terminal import line_before_cursor

logger = logging.getLogger(__name__)

ALL_COLUMNS = "*"
COLUMN_CONTEXT_WORDS = ("SELECT",)
TABLE_CONTEXT_WORDS = ("FROM", "INTO", "JOIN")


class PoolName(StrEnum):
    """
    The candidate pools.
    """

    DOT_COMMANDS = "dot commands"
    KEYWORDS = "keywords"
    TABLES = "tables"
    COLUMNS = "columns"


@dataclass(frozen=True)
class Candidate:
    """
    A completion candidate. value is what gets inserted; display and help
    are for listings.
    """

    value: str
    display: str
    help: str = ""


def plain_candidate(value: str) -> Candidate:
    return Candidate(value=value, display=value)


SQL_KEYWORDS = (
    "ABORT", "ACTION", "ADD", "AFTER", "ALL", "ALTER", "ALWAYS", "ANALYZE",
    "AND", "AS", "ASC", "ATTACH", "AUTOINCREMENT", "BEFORE", "BEGIN",
    "BETWEEN", "BY", "CASCADE", "CASE", "CAST", "CHECK", "COLLATE", "COLUMN",
    "COMMIT", "CONFLICT", "CONSTRAINT", "CREATE", "CROSS", "CURRENT",
    "CURRENT_DATE", "CURRENT_TIME", "CURRENT_TIMESTAMP", "DATABASE",
    "DEFAULT", "DEFERRABLE", "DEFERRED", "DELETE", "DESC", "DETACH",
    "DISTINCT", "DO", "DROP", "EACH", "ELSE", "END", "ESCAPE", "EXCEPT",
    "EXCLUDE", "EXCLUSIVE", "EXISTS", "EXPLAIN", "FAIL", "FILTER", "FIRST",
    "FOLLOWING", "FOR", "FOREIGN", "FROM", "FULL", "GENERATED", "GLOB",
    "GROUP", "GROUPS", "HAVING", "IF", "IGNORE", "IMMEDIATE", "IN", "INDEX",
    "INDEXED", "INITIALLY", "INNER", "INSERT", "INSTEAD", "INTERSECT",
    "INTO", "IS", "ISNULL", "JOIN", "KEY", "LAST", "LEFT", "LIKE", "LIMIT",
    "MATCH", "MATERIALIZED", "NATURAL", "NO", "NOT", "NOTHING", "NOTNULL",
    "NULL", "NULLS", "OF", "OFFSET", "ON", "OR", "ORDER", "OTHERS", "OUTER",
    "OVER", "PARTITION", "PLAN", "PRAGMA", "PRECEDING", "PRIMARY", "QUERY",
    "RAISE", "RANGE", "RECURSIVE", "REFERENCES", "REGEXP", "REINDEX",
    "RELEASE", "RENAME", "REPLACE", "RESTRICT", "RETURNING", "RIGHT",
    "ROLLBACK", "ROW", "ROWS", "SAVEPOINT", "SELECT", "SET", "TABLE", "TEMP",
    "TEMPORARY", "THEN", "TIES", "TO", "TRANSACTION", "TRIGGER", "UNBOUNDED",
    "UNION", "UNIQUE", "UPDATE", "USING", "VACUUM", "VALUES", "VIEW",
    "VIRTUAL", "WHEN", "WHERE", "WINDOW", "WITH", "WITHOUT",
)  # fmt: skip

# The static pools, built once.
KEYWORD_CANDIDATES = tuple(plain_candidate(k) for k in SQL_KEYWORDS)
DOT_COMMAND_CANDIDATES = tuple(
    Candidate(value=s.name, display=s.usage, help=s.description)
    for s in DOT_COMMANDS
)


def preceding_token(line: str, word: str) -> str | None:
    """
    The last whitespace-delimited token before the word being completed, or
    None if there isn't one.

    :param line: the input line up to the cursor
    :param word: the word being completed, which ends the line
    """
    before = line[: len(line) - len(word)] if line.endswith(word) else line
    tokens = before.split()
    return tokens[-1] if tokens else None


class CompletionEngine:
    """
    Produces completion candidates for the line being edited. Table and
    column names are read from the current database on every request.

    :param database: a callable returning the current database, so that the
        engine follows .open
    """

    def __init__(self: Self, database: Callable[[], Database]) -> None:
        self._database = database
        self.default_pool = PoolName.KEYWORDS
        self._matches: list[str] = []

    def select_pool(self: Self, line: str, word: str) -> PoolName:
        """
        Decide which pool applies at the cursor. Keyword context is matched
        case-blind.
        """
        if word.startswith("."):
            return PoolName.DOT_COMMANDS

        match (preceding_token(line, word) or "").upper():
            case token if token in COLUMN_CONTEXT_WORDS:
                return PoolName.COLUMNS
            case token if token in TABLE_CONTEXT_WORDS:
                return PoolName.TABLES
            case _:
                return self.default_pool

    def table_candidates(self: Self) -> list[Candidate]:
        try:
            names = self._database().list_tables()
        except DatabaseError as e:
            logger.debug("Unable to list tables for completion: %s", e)
            return []

        return [plain_candidate(n) for n in names]

    def column_candidates(self: Self) -> list[Candidate]:
        """
        "*", then the union of the columns of every table, sorted.
        """
        columns: set[str] = set()
        try:
            database = self._database()
            for table in database.list_tables():
                columns.update(database.list_columns(table))
        except DatabaseError as e:
            logger.debug("Unable to list columns for completion: %s", e)
            columns = set()

        candidates = [plain_candidate(ALL_COLUMNS)]
        candidates.extend(plain_candidate(c) for c in sorted(columns))
        return candidates

    def pool(self: Self, name: PoolName) -> list[Candidate]:
        """
        The full contents of a pool.
        """
        match name:
            case PoolName.DOT_COMMANDS:
                return list(DOT_COMMAND_CANDIDATES)
            case PoolName.KEYWORDS:
                return list(KEYWORD_CANDIDATES)
            case PoolName.TABLES:
                return self.table_candidates()
            case PoolName.COLUMNS:
                return self.column_candidates()

    def complete(self: Self, line: str, word: str) -> list[Candidate]:
        """
        Candidates for the word at the cursor, in pool order.

        :param line: the input line up to the cursor
        :param word: the (possibly empty) word being completed
        """
        name = self.select_pool(line, word)
        candidates = self.pool(name)
        if name == PoolName.DOT_COMMANDS:
            return [c for c in candidates if c.value.startswith(word)]

        prefix = word.lower()
        return [c for c in candidates if c.value.lower().startswith(prefix)]

    def readline_completer(self: Self, text: str, state: int) -> str | None:
        """
        A readline completer, called with state 0, 1, 2, ... until it
        returns None.
        """
        if state == 0:
            line = line_before_cursor()
            self._matches = [c.value for c in self.complete(line, text)]

        if state < len(self._matches):
            return self._matches[state]

        return None
