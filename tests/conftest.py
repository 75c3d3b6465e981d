"""Shared fixtures: a fake execution backend and sessions built on it."""

import io

import pytest

from shqlite.database import Database, RowSet, RowsAffected
from shqlite.errors import DatabaseError
from shqlite.session import Session
from shqlite.terminal import Terminal


class FakeDatabase:
    """
    Stands in for Database. Tables map to their column lists; any method can
    be made to fail by naming it in `failing`.
    """

    def __init__(self, tables=None, path="fake.db"):
        self.tables = dict(tables or {})
        self.path = path
        self.url = f"sqlite:///{path}"
        self.failing = set()
        self.executed = []
        self.batches = []
        self.backups = []
        self.restores = []
        self.closed = False
        self.result = RowsAffected(count=1)

    def _check(self, method):
        if method in self.failing:
            raise DatabaseError(f"{method} failed")

    def close(self):
        self.closed = True

    def execute(self, sql):
        self._check("execute")
        self.executed.append(sql)
        return self.result

    def execute_query(self, sql, params=None):
        self._check("execute_query")
        self.executed.append(sql)
        return RowSet(columns=[], rows=[])

    def execute_batch(self, statements):
        self._check("execute_batch")
        self.batches.append(list(statements))

    def backup(self, path):
        self._check("backup")
        self.backups.append(path)

    def restore(self, path):
        self._check("restore")
        self.restores.append(path)

    def list_tables(self, pattern=None):
        self._check("list_tables")
        return sorted(self.tables)

    def list_columns(self, table):
        self._check("list_columns")
        return list(self.tables[table])

    def list_indexes(self, table=None):
        self._check("list_indexes")
        return []

    def list_schema(self, pattern=None):
        self._check("list_schema")
        return []

    def list_attached_databases(self):
        return [(0, "main", self.path)]

    def get_engine_version_info(self):
        return (
            "3.45.1",
            "2024-01-30 16:01:20 "
            "e876e51a0ed5c5b3126f52e532044363a014bc594cfefa87ffb5b82257cc467a",
        )

    def get_db_config(self):
        return [("defensive", False), ("enable_fkey", True), ("odd", None)]


@pytest.fixture
def out():
    return io.StringIO()


@pytest.fixture
def err():
    return io.StringIO()


@pytest.fixture
def terminal(out, err):
    return Terminal(out=out, err=err)


@pytest.fixture
def fake_db():
    return FakeDatabase(tables={"users": ["id", "name"], "orders": ["id"]})


@pytest.fixture
def fake_session(fake_db, terminal):
    return Session(database=fake_db, terminal=terminal)


@pytest.fixture
def db():
    database = Database.open("")
    yield database
    database.close()


@pytest.fixture
def session(db, terminal):
    return Session(database=db, terminal=terminal)
