from shqlite.commands import Dispatcher, Outcome
from shqlite.database import Database
from shqlite.session import DEFAULT_NULL_VALUE, cell_text


def body_lines(text):
    return text.split("\n")[3:]


class TestCellText:
    def test_values(self):
        assert cell_text(None, "NULL") == "NULL"
        assert cell_text(3, "NULL") == "3"
        assert cell_text(1.5, "NULL") == "1.5"
        assert cell_text(b"\x01\xff", "NULL") == "01ff"


class TestRunSql:
    def test_query(self, session, out):
        assert session.run_sql("SELECT 1 AS n, NULL AS m;")
        text = out.getvalue()
        assert "│  n│     m│" in text
        assert f"│  1│  {DEFAULT_NULL_VALUE}│" in text
        assert text.endswith("1 row\n\n")

    def test_row_count_is_plural(self, session, out):
        session.run_sql("SELECT 1 UNION ALL SELECT 2;")
        assert out.getvalue().endswith("2 rows\n\n")

    def test_statement(self, session, out):
        assert session.run_sql("CREATE TABLE t (x);")
        assert out.getvalue() == "Successfully executed statement\n\n"

    def test_changes(self, session, out):
        session.run_sql("CREATE TABLE t (x);")
        session.settings.changes = True
        session.run_sql("INSERT INTO t VALUES (1), (2);")
        assert "Successfully executed statement (changes: 2)" in out.getvalue()

    def test_timer(self, session, out):
        session.settings.timer = True
        session.run_sql("SELECT 1;")
        assert " seconds)" in out.getvalue()

    def test_echo(self, session, out):
        session.settings.echo = True
        session.run_sql("SELECT 1;")
        assert out.getvalue().startswith("SELECT 1;\n")

    def test_headers_off(self, session, out):
        session.settings.headers = False
        session.run_sql("SELECT 7 AS seven;")
        lines = out.getvalue().split("\n")
        assert lines[1] == "│      7│"
        assert "seven" not in out.getvalue()

    def test_null_value(self, session, out):
        session.settings.null_value = "-"
        session.run_sql("SELECT NULL AS m;")
        assert "│  -│" in out.getvalue()

    def test_error_is_reported(self, session, out, err):
        assert not session.run_sql("SELECT * FROM nowhere;")
        assert "no such table: nowhere" in err.getvalue()
        assert out.getvalue() == ""


class TestAgainstSqlite:
    def test_open_replaces_database(self, session, tmp_path):
        old = session.database
        path = tmp_path / "other.db"
        Dispatcher(session).dispatch(f".open {path}")
        assert session.database is not old
        assert session.database.path == str(path)

    def test_failed_open_keeps_database(self, session, tmp_path, err):
        old = session.database
        path = tmp_path / "missing" / "dir" / "x.db"
        Dispatcher(session).dispatch(f".open {path}")
        assert session.database is old
        assert err.getvalue() != ""

    def test_read_then_query(self, session, out, tmp_path):
        script = tmp_path / "setup.sql"
        script.write_text(
            "CREATE TABLE t (x);\nINSERT INTO t VALUES (1);\n"
            "INSERT INTO t VALUES (2);\n"
        )
        Dispatcher(session).dispatch(f".read {script}")
        assert "successfully executed 3 statements" in out.getvalue()
        assert session.database.execute("SELECT sum(x) FROM t").rows == [(3,)]

    def test_failed_read_is_atomic(self, session, tmp_path, err):
        script = tmp_path / "broken.sql"
        script.write_text("CREATE TABLE t (x);\nINSERT INTO nope VALUES (1);")
        Dispatcher(session).dispatch(f".read {script}")
        assert "no such table: nope" in err.getvalue()
        assert session.database.list_tables() == []

    def test_dump(self, session, out):
        database: Database = session.database
        database.execute("CREATE TABLE t (x, y)")
        database.execute("INSERT INTO t VALUES (1, 'it''s'), (NULL, 2.5)")
        database.execute("CREATE INDEX t_x ON t (x)")
        Dispatcher(session).dispatch(".dump")
        assert out.getvalue().split("\n") == [
            "PRAGMA foreign_keys=OFF;",
            "BEGIN TRANSACTION;",
            "CREATE TABLE t (x, y);",
            "INSERT INTO \"t\" VALUES(1,'it''s');",
            'INSERT INTO "t" VALUES(NULL,2.5);',
            "CREATE INDEX t_x ON t (x);",
            "COMMIT;",
            "",
        ]

    def test_dump_quotes_awkward_names(self, session, out):
        session.database.execute('CREATE TABLE "x""y" ("a""b", "c:d")')
        session.database.execute("INSERT INTO \"x\"\"y\" VALUES (1, 'z')")
        outcome = Dispatcher(session).dispatch(".dump")
        assert outcome == Outcome.OK
        lines = out.getvalue().split("\n")
        assert 'INSERT INTO "x""y" VALUES(1,\'z\');' in lines
        assert lines[-2] == "COMMIT;"

    def test_dump_round_trips(self, session, out):
        session.database.execute("CREATE TABLE t (n INTEGER, s TEXT, b BLOB)")
        session.database.execute(
            "INSERT INTO t VALUES (1, 'a;b', x'00ff'), (NULL, 'it''s', NULL)"
        )
        Dispatcher(session).dispatch(".dump")

        copy = Database.open("")
        try:
            copy.execute_batch(
                [
                    line.rstrip(";")
                    for line in out.getvalue().split("\n")
                    if line.startswith(("CREATE", "INSERT"))
                ]
            )
            rows = copy.execute("SELECT n, s, b FROM t ORDER BY rowid").rows
        finally:
            copy.close()
        assert rows == [(1, "a;b", b"\x00\xff"), (None, "it's", None)]

    def test_schema(self, session, out):
        session.database.execute("CREATE TABLE t (\n  a INTEGER,\n  b TEXT\n)")
        Dispatcher(session).dispatch(".schema")
        assert "│  CREATE TABLE t ( a INTEGER, b TEXT )│" in out.getvalue()
