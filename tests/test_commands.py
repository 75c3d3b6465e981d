import os

import pytest

from shqlite.commands import (
    COMMANDS_BY_NAME,
    DOT_COMMANDS,
    NO_ARGUMENTS,
    Dispatcher,
    DotCommandSpec,
    Outcome,
    main_db_path,
    parse_switch,
    quote_identifier,
    split_sql_script,
)
from shqlite.completion import CompletionEngine
from shqlite.errors import ArgumentParseError, UserInputError


def table_cells(text):
    """
    The stripped cells of each body row of a rendered table.
    """
    lines = text.rstrip("\n").split("\n")
    return [
        [cell.strip() for cell in line.strip("│").split("│")]
        for line in lines[3:-1]
    ]


@pytest.fixture
def dispatcher(fake_session):
    return Dispatcher(fake_session)


class TestCommandTable:
    def test_names_are_unique_and_dotted(self):
        assert len(COMMANDS_BY_NAME) == len(DOT_COMMANDS)
        assert all(s.name.startswith(".") for s in DOT_COMMANDS)

    def test_usage_starts_with_name(self):
        for spec in DOT_COMMANDS:
            assert spec.split_usage()[0] == spec.name

    def test_split_usage(self):
        spec = DotCommandSpec(".backup", ".backup ?DB? FILE", "Backup")
        assert spec.split_usage() == (".backup", "?DB? FILE")
        spec = DotCommandSpec(".show", ".show", "Show")
        assert spec.split_usage() == (".show", NO_ARGUMENTS)

    def test_commands_requiring_arguments(self):
        for name in (".open", ".read", ".backup", ".restore", ".exit"):
            assert COMMANDS_BY_NAME[name].min_args >= 1
        for name in (".tables", ".help", ".quit", ".schema"):
            assert COMMANDS_BY_NAME[name].min_args == 0


class TestDispatch:
    def test_unknown_command(self, dispatcher, err):
        outcome = dispatcher.dispatch(".frobnicate now")
        assert outcome == Outcome.UNKNOWN_COMMAND
        message = err.getvalue()
        assert '".frobnicate now"' in message
        assert '".help"' in message

    def test_missing_argument_never_runs_handler(
        self, dispatcher, fake_session, fake_db, err
    ):
        assert dispatcher.dispatch(".open") == Outcome.MISSING_ARGUMENT
        assert "an argument is required for .open" in err.getvalue()
        assert fake_session.database is fake_db

    def test_not_implemented(self, dispatcher, err):
        assert dispatcher.dispatch(".mode box") == Outcome.NOT_IMPLEMENTED
        assert "This command .mode is not implemented." in err.getvalue()

    def test_database_error_is_reported(self, dispatcher, fake_db, err):
        fake_db.failing.add("list_tables")
        assert dispatcher.dispatch(".tables") == Outcome.FAILED
        assert "list_tables failed" in err.getvalue()

    def test_session_continues_after_errors(self, dispatcher, out):
        dispatcher.dispatch(".nope")
        assert dispatcher.dispatch(".print still here") == Outcome.OK
        assert out.getvalue() == "still here\n"


class TestHandlers:
    def test_tables_sorted(self, dispatcher, out):
        assert dispatcher.dispatch(".tables") == Outcome.OK
        assert table_cells(out.getvalue()) == [["orders"], ["users"]]

    def test_tables_matches_completion_pool(
        self, dispatcher, fake_session, out
    ):
        dispatcher.dispatch(".tables")
        engine = CompletionEngine(lambda: fake_session.database)
        names = [c.value for c in engine.complete("SELECT * FROM ", "")]
        assert [row[0] for row in table_cells(out.getvalue())] == names

    def test_help_lists_every_command(self, dispatcher, out):
        dispatcher.dispatch(".help")
        rows = table_cells(out.getvalue())
        assert len(rows) == len(DOT_COMMANDS)
        for row, spec in zip(rows, DOT_COMMANDS):
            assert row[0] == spec.name
            assert row[2] == spec.description

    def test_help_filter(self, dispatcher, out):
        dispatcher.dispatch(".help tab")
        assert table_cells(out.getvalue()) == [
            [".tables", "?TABLE?", COMMANDS_BY_NAME[".tables"].description]
        ]

    def test_help_filter_is_a_name_prefix(self, dispatcher, out):
        dispatcher.dispatch(".help .sc")
        names = [row[0] for row in table_cells(out.getvalue())]
        assert names == [".scanstats", ".schema"]

    def test_help_filter_without_matches(self, dispatcher):
        with pytest.raises(UserInputError):
            dispatcher.dispatch(".help zzz")

    def test_version(self, dispatcher, out):
        dispatcher.dispatch(".version")
        [row] = table_cells(out.getvalue())
        assert row[:3] == ["3.45.1", "2024-01-30", "16:01:20"]
        assert row[3].startswith("e876e51a")

    def test_databases(self, dispatcher, out):
        dispatcher.dispatch(".databases")
        assert table_cells(out.getvalue()) == [["0", "main", "fake.db"]]

    def test_exit_with_code(self, dispatcher):
        with pytest.raises(SystemExit) as info:
            dispatcher.dispatch(".exit 3")
        assert info.value.code == 3

    def test_exit_with_bad_code(self, dispatcher):
        with pytest.raises(ArgumentParseError):
            dispatcher.dispatch(".exit abc")

    def test_quit(self, dispatcher):
        with pytest.raises(SystemExit) as info:
            dispatcher.dispatch(".quit")
        assert info.value.code == 0

    def test_backup_and_save(self, dispatcher, fake_db, out):
        dispatcher.dispatch(".backup copy.db")
        dispatcher.dispatch(".save main other.db")
        assert fake_db.backups == ["copy.db", "other.db"]
        assert "successfully saved database to other.db" in out.getvalue()

    def test_backup_of_other_database(self, dispatcher, fake_db):
        with pytest.raises(UserInputError):
            dispatcher.dispatch(".backup temp copy.db")
        assert fake_db.backups == []

    def test_restore(self, dispatcher, fake_db, out):
        dispatcher.dispatch(".restore copy.db")
        assert fake_db.restores == ["copy.db"]
        assert "successfully restored database copy.db" in out.getvalue()

    def test_read(self, dispatcher, fake_db, out, tmp_path):
        script = tmp_path / "script.sql"
        script.write_text("CREATE TABLE a (x);\n\nINSERT INTO a VALUES (1);\n")
        assert dispatcher.dispatch(f".read {script}") == Outcome.OK
        assert fake_db.batches == [
            ["CREATE TABLE a (x)", "INSERT INTO a VALUES (1)"]
        ]
        assert "successfully executed 2 statements" in out.getvalue()

    def test_read_file_that_is_not_utf8(self, dispatcher, fake_db, tmp_path):
        script = tmp_path / "latin1.sql"
        script.write_bytes("SELECT 'café';".encode("latin-1"))
        with pytest.raises(UserInputError):
            dispatcher.dispatch(f".read {script}")
        assert fake_db.batches == []

    def test_read_missing_file(self, dispatcher, tmp_path):
        with pytest.raises(UserInputError):
            dispatcher.dispatch(f".read {tmp_path / 'missing.sql'}")

    def test_switches(self, dispatcher, fake_session):
        dispatcher.dispatch(".echo on")
        dispatcher.dispatch(".headers off")
        dispatcher.dispatch(".timer yes")
        dispatcher.dispatch(".changes 1")
        dispatcher.dispatch(".nullvalue -")
        settings = fake_session.settings
        assert settings.echo
        assert not settings.headers
        assert settings.timer
        assert settings.changes
        assert settings.null_value == "-"

    def test_bad_switch(self, dispatcher):
        with pytest.raises(ArgumentParseError):
            dispatcher.dispatch(".headers maybe")

    def test_dbconfig(self, dispatcher, out):
        dispatcher.dispatch(".dbconfig")
        assert table_cells(out.getvalue()) == [
            ["defensive", "off"],
            ["enable_fkey", "on"],
            ["odd", "N/A"],
        ]

    def test_show(self, dispatcher, out):
        dispatcher.dispatch(".show")
        settings = dict(table_cells(out.getvalue()))
        assert settings["headers"] == "on"
        assert settings["output"] == "stdout"
        assert settings["filename"] == "fake.db"

    def test_output_redirect(self, dispatcher, fake_session, out, tmp_path):
        target = tmp_path / "out.txt"
        dispatcher.dispatch(f".output {target}")
        assert fake_session.terminal.output_path == target
        dispatcher.dispatch(".print hello")
        dispatcher.dispatch(".output")
        dispatcher.dispatch(".print back")
        assert target.read_text() == "hello\n"
        assert out.getvalue() == "back\n"

    def test_cd(self, dispatcher, tmp_path):
        cwd = os.getcwd()
        try:
            dispatcher.dispatch(f".cd {tmp_path}")
            assert os.path.samefile(os.getcwd(), tmp_path)
        finally:
            os.chdir(cwd)

    def test_shell(self, dispatcher, out):
        assert dispatcher.dispatch(".shell echo hello") == Outcome.OK
        assert out.getvalue() == "hello\nprocess terminated with exit code 0\n"

    def test_shell_output_that_is_not_utf8(self, dispatcher, out):
        assert dispatcher.dispatch(".shell printf \\377\\n") == Outcome.OK
        assert out.getvalue() == (
            "\ufffd\nprocess terminated with exit code 0\n"
        )

    def test_shell_missing_program(self, dispatcher, err):
        dispatcher.dispatch(".system no-such-program-anywhere")
        assert "no-such-program-anywhere" in err.getvalue()


class TestHelpers:
    def test_parse_switch(self):
        assert parse_switch(".echo", "ON")
        assert not parse_switch(".echo", "off")
        with pytest.raises(ArgumentParseError):
            parse_switch(".echo", "sometimes")

    def test_main_db_path(self):
        assert main_db_path(".backup", ["x.db"]) == "x.db"
        assert main_db_path(".backup", ["main", "x.db"]) == "x.db"
        with pytest.raises(UserInputError):
            main_db_path(".backup", ["a", "b", "c"])

    def test_split_sql_script(self):
        script = "SELECT 1;\n  ;\nSELECT 2"
        assert split_sql_script(script) == ["SELECT 1", "SELECT 2"]

    def test_quote_identifier(self):
        assert quote_identifier("users") == '"users"'
        assert quote_identifier('a"b') == '"a""b"'
