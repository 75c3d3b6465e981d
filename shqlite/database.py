"""
The execution and schema-introspection interface the shell uses to talk to
SQLite. Everything goes through a single SQLAlchemy connection that the
session owns; .open replaces the whole Database object.
"""

import logging
import sqlite3
from contextlib import closing, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Self
from typing import Sequence as Seq

import sqlalchemy
from sqlalchemy.engine import Connection, Engine

from shqlite.errors import DatabaseError

logger = logging.getLogger(__name__)

IN_MEMORY_URL = "sqlite://"
MAIN_DB = "main"

# The sqlite3_db_config() switches shown by .dbconfig, in display order.
DB_CONFIG_OPTIONS = (
    "defensive",
    "dqs_ddl",
    "dqs_dml",
    "enable_fkey",
    "enable_fts3_tokenizer",
    "enable_load_extension",
    "enable_qpsg",
    "enable_trigger",
    "enable_view",
    "legacy_alter_table",
    "legacy_file_format",
    "no_ckpt_on_close",
    "reset_database",
    "trigger_eqp",
    "trusted_schema",
    "writable_schema",
)

TABLES_SQL = (
    "SELECT name FROM sqlite_schema WHERE type IN ('table', 'view') "
    "AND name NOT LIKE 'sqlite_%'"
)
INDEXES_SQL = (
    "SELECT name FROM sqlite_schema WHERE type = 'index' "
    "AND name NOT LIKE 'sqlite_%'"
)
SCHEMA_SQL = "SELECT sql FROM sqlite_schema WHERE sql IS NOT NULL"
SCHEMA_ORDER = (
    " ORDER BY tbl_name, CASE type WHEN 'table' THEN 0 WHEN 'view' THEN 1 "
    "WHEN 'index' THEN 2 ELSE 3 END, name"
)


@dataclass(frozen=True)
class RowSet:
    """
    The columns and rows produced by a query.
    """

    columns: list[str]
    rows: list[tuple[Any, ...]]


@dataclass(frozen=True)
class RowsAffected:
    """
    The result of a statement that doesn't produce rows.
    """

    count: int


@contextmanager
def translate_errors() -> Iterator[None]:
    """
    Re-raise SQLAlchemy and sqlite3 errors as DatabaseError, carrying the
    driver's message rather than SQLAlchemy's decorated one.
    """
    try:
        yield
    except sqlalchemy.exc.DBAPIError as e:
        raise DatabaseError(str(e.orig)) from e
    except (sqlalchemy.exc.SQLAlchemyError, sqlite3.Error) as e:
        raise DatabaseError(str(e)) from e


def make_url(path: str) -> str:
    """
    Map a database path to a SQLAlchemy URL. The empty string means a
    transient, in-memory database.
    """
    if path == "":
        return IN_MEMORY_URL

    return f"sqlite:///{Path(path).expanduser()}"


class Database:
    """
    An open SQLite database.
    """

    def __init__(self: Self, path: str, engine: Engine, conn: Connection):
        self._path = path
        self._engine = engine
        self._conn = conn

    @classmethod
    def open(cls, path: str) -> "Database":
        """
        Open (creating, if necessary) the database at path.

        :param path: the database file, or "" for an in-memory database

        :raises DatabaseError: if the database can't be opened
        """
        url = make_url(path)
        logger.debug("Opening %s", url)
        with translate_errors():
            engine = sqlalchemy.create_engine(url)
            try:
                conn = engine.connect()
            except sqlalchemy.exc.SQLAlchemyError:
                engine.dispose()
                raise

            try:
                # SQLite doesn't notice a file that isn't a database until
                # the first read.
                conn.exec_driver_sql("SELECT count(*) FROM sqlite_schema")
                conn.commit()
            except sqlalchemy.exc.SQLAlchemyError:
                conn.close()
                engine.dispose()
                raise

        return cls(path, engine, conn)

    @property
    def path(self: Self) -> str:
        """
        The path the database was opened with ("" for in-memory).
        """
        return self._path

    @property
    def url(self: Self) -> str:
        """
        The SQLAlchemy URL of the database.
        """
        return str(self._engine.url)

    def close(self: Self) -> None:
        """
        Close the connection and release the engine.
        """
        logger.debug("Closing %s", self.url)
        self._conn.close()
        self._engine.dispose()

    def _driver_connection(self: Self) -> sqlite3.Connection:
        """
        The underlying sqlite3 connection, for the operations SQLAlchemy
        doesn't wrap.
        """
        return self._conn.connection.driver_connection

    def execute(self: Self, sql: str) -> RowSet | RowsAffected:
        """
        Run one SQL statement, as typed by the user, and commit.

        :returns: a RowSet if the statement produced rows, RowsAffected
            otherwise
        """
        with translate_errors():
            try:
                result = self._conn.exec_driver_sql(sql)
                if result.returns_rows:
                    outcome: RowSet | RowsAffected = RowSet(
                        columns=list(result.keys()),
                        rows=[tuple(row) for row in result.fetchall()],
                    )
                else:
                    outcome = RowsAffected(count=result.rowcount)

                self._conn.commit()
                return outcome
            except sqlalchemy.exc.SQLAlchemyError:
                self._conn.rollback()
                raise

    def execute_query(
        self: Self, sql: str, params: dict[str, Any] | None = None
    ) -> RowSet:
        """
        Run a query built by the shell itself. Unlike execute(), this uses
        named bind parameters (":name").
        """
        with translate_errors():
            try:
                result = self._conn.execute(sqlalchemy.text(sql), params or {})
                rows = RowSet(
                    columns=list(result.keys()),
                    rows=[tuple(row) for row in result.fetchall()],
                )
                self._conn.commit()
                return rows
            except sqlalchemy.exc.SQLAlchemyError:
                self._conn.rollback()
                raise

    def execute_batch(self: Self, statements: Seq[str]) -> None:
        """
        Run several statements as a single transaction. Either all of them
        take effect, or (on the first error) none do.
        """
        logger.debug("Running a batch of %d statements", len(statements))
        with translate_errors():
            try:
                # pysqlite only opens transactions implicitly for DML, so DDL
                # in the batch would otherwise be committed immediately.
                self._conn.exec_driver_sql("BEGIN")
                for sql in statements:
                    self._conn.exec_driver_sql(sql)
                self._conn.commit()
            except sqlalchemy.exc.SQLAlchemyError:
                self._conn.rollback()
                raise

    def backup(self: Self, path: str) -> None:
        """
        Copy the main database to a file, using SQLite's backup API.
        """
        target_path = Path(path).expanduser()
        with translate_errors():
            self._conn.commit()
            with closing(sqlite3.connect(target_path)) as target:
                self._driver_connection().backup(target)

    def restore(self: Self, path: str) -> None:
        """
        Replace the main database with the contents of a file, using SQLite's
        backup API.
        """
        source_path = Path(path).expanduser()
        if not source_path.is_file():
            raise DatabaseError(f'"{source_path}" does not exist.')

        with translate_errors():
            self._conn.commit()
            with closing(sqlite3.connect(source_path)) as source:
                source.backup(self._driver_connection())

    def list_tables(self: Self, pattern: str | None = None) -> list[str]:
        """
        Names of all tables and views, excluding SQLite's internal ones,
        sorted.

        :param pattern: an optional LIKE pattern the names must match
        """
        sql = TABLES_SQL
        params = {}
        if pattern is not None:
            sql += " AND name LIKE :pattern"
            params["pattern"] = pattern
        rows = self.execute_query(f"{sql} ORDER BY 1", params)
        return [r[0] for r in rows.rows]

    def list_columns(self: Self, table: str) -> list[str]:
        """
        Column names of a table or view, in declaration order.
        """
        with translate_errors():
            inspector = sqlalchemy.inspect(self._conn)
            return [c["name"] for c in inspector.get_columns(table)]

    def list_indexes(self: Self, table: str | None = None) -> list[str]:
        """
        Names of all indexes, excluding SQLite's automatic ones, sorted.

        :param table: if given, only indexes on this table
        """
        sql = INDEXES_SQL
        params = {}
        if table is not None:
            sql += " AND tbl_name = :table"
            params["table"] = table
        rows = self.execute_query(f"{sql} ORDER BY 1", params)
        return [r[0] for r in rows.rows]

    def list_schema(self: Self, pattern: str | None = None) -> list[str]:
        """
        The stored CREATE statements, ordered by owning table, then kind
        (tables before views, indexes and triggers), then name.

        :param pattern: an optional LIKE pattern for the object names
        """
        sql = SCHEMA_SQL
        params = {}
        if pattern is not None:
            sql += " AND name LIKE :pattern"
            params["pattern"] = pattern
        rows = self.execute_query(sql + SCHEMA_ORDER, params)
        return [r[0] for r in rows.rows]

    def schema_objects(self: Self) -> list[tuple[str, str, str]]:
        """
        (type, name, sql) for every user object with stored SQL, tables
        first.
        """
        rows = self.execute_query(
            "SELECT type, name, sql FROM sqlite_schema "
            "WHERE sql IS NOT NULL AND name NOT LIKE 'sqlite_%' "
            "ORDER BY CASE type WHEN 'table' THEN 0 ELSE 1 END, rowid"
        )
        return [(r[0], r[1], r[2]) for r in rows.rows]

    def list_attached_databases(self: Self) -> list[tuple[int, str, str]]:
        """
        (seq, name, file) for each attached database.
        """
        rows = self.execute_query(
            "SELECT seq, name, file FROM pragma_database_list"
        )
        return [(r[0], r[1], r[2]) for r in rows.rows]

    def get_engine_version_info(self: Self) -> tuple[str, str]:
        """
        SQLite's version string and its source identifier (date, time and
        check-in hash).
        """
        rows = self.execute_query(
            "SELECT sqlite_version(), sqlite_source_id()"
        )
        version, source_id = rows.rows[0]
        return (version, source_id)

    def get_db_config(self: Self) -> list[tuple[str, bool | None]]:
        """
        The current value of each DB_CONFIG_OPTIONS switch, or None if this
        SQLite build doesn't know it.
        """
        conn = self._driver_connection()
        values: list[tuple[str, bool | None]] = []
        for option in DB_CONFIG_OPTIONS:
            op = getattr(sqlite3, f"SQLITE_DBCONFIG_{option.upper()}", None)
            value: bool | None = None
            if op is not None:
                try:
                    value = conn.getconfig(op)
                except sqlite3.Error as e:
                    logger.debug("getconfig(%s) failed: %s", option, e)
            values.append((option, value))

        return values
