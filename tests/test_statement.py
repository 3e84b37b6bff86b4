import pytest

from sqlitekit.codec import ColumnType
from sqlitekit.statement import QueryParameter, ResultColumn
from sqlitekit.status import InterfaceError, SQLiteError, StatusCode

from helpers import FOO, fill_foo, read_rows


def test_foo_scenario(db):
    FOO.create(db)
    db.execute("INSERT INTO foo VALUES (?, ?)", 1, "a")
    db.execute("INSERT INTO foo VALUES (?, ?)", 2, "b")
    rows = []
    count = db.prepare("SELECT * FROM foo").all(lambda _s, row: rows.append(row))
    assert count == 2
    assert rows == [(1, "a"), (2, "b")]


def test_all_counts_every_row(db):
    FOO.create(db)
    fill_foo(db, 25)
    assert FOO.rows(db) == 25
    assert db.prepare("SELECT * FROM foo").all() == 25


def test_manual_stepping_and_auto_reset(db):
    FOO.create(db)
    fill_foo(db, 2)
    with db.prepare("SELECT number FROM foo ORDER BY number") as stmt:
        seen = []
        while stmt.step() == StatusCode.ROW:
            seen.append(stmt.column(0))
        assert seen == [0, 1]
        # DONE reset the statement, so it runs again without an explicit reset()
        assert stmt.step() == StatusCode.ROW
        assert stmt.column(0) == 0


def test_rebind_after_done(db):
    FOO.create(db)
    fill_foo(db, 5)
    with db.prepare("SELECT text FROM foo WHERE number = ?") as stmt:
        for n in (1, 3):
            stmt.bind(1, n)
            got = []
            while stmt.step(lambda _s, row: got.append(row[0])) == StatusCode.ROW:
                pass
            assert got == [f"This is row {n}"]


def test_callback_error_propagates(db):
    FOO.create(db)
    fill_foo(db, 3)

    def boom(_stmt, _row):
        raise RuntimeError("stop")

    stmt = db.prepare("SELECT * FROM foo")
    with pytest.raises(RuntimeError, match="stop"):
        stmt.all(boom)
    # all() leaves a failed statement live for the caller to clean up
    assert stmt.handle is not None
    stmt.finalize()
    assert stmt.handle is None


def test_step_error_raises_with_engine_message(db):
    db.execute("CREATE TABLE u (k INTEGER PRIMARY KEY)")
    db.execute("INSERT INTO u VALUES (1)")
    with pytest.raises(SQLiteError) as exc:
        db.execute("INSERT INTO u VALUES (1)")
    assert exc.value.status is StatusCode.CONSTRAINT
    assert "UNIQUE" in exc.value.message


def test_bind_reports_failing_index(db):
    with db.prepare("SELECT ?, ?") as stmt:
        assert stmt.parameters() == 2
        with pytest.raises(InterfaceError) as exc:
            stmt.bind(2, "ok", "too many")
        assert exc.value.status is StatusCode.RANGE
        assert exc.value.index == 3


def test_reset_keeps_bindings_and_clear_bindings_nulls_them(db):
    with db.prepare("SELECT ?") as stmt:
        stmt.bind(1, 9)
        assert stmt.step() == StatusCode.ROW
        assert stmt.row() == (9,)
        stmt.reset()
        assert stmt.step() == StatusCode.ROW
        assert stmt.row() == (9,)
        stmt.reset()
        stmt.clear_bindings()
        assert stmt.step() == StatusCode.ROW
        assert stmt.row() == (None,)


def test_column_metadata(db):
    FOO.create(db)
    db.execute("INSERT INTO foo VALUES (?, ?)", 7, "seven")
    with db.prepare("SELECT number, text, NULL, 1.5 FROM foo") as stmt:
        assert stmt.columns() == 4
        assert stmt.step() == StatusCode.ROW
        assert stmt.column_name(0) == "number"
        assert stmt.column_name(1) == "text"
        assert stmt.column_type(0) == ColumnType.INTEGER
        assert stmt.column_type(1) == ColumnType.TEXT
        assert stmt.column_type(2) == ColumnType.NULL
        assert stmt.column_type(3) == ColumnType.FLOAT
        col = ResultColumn(1)
        assert col.name(stmt) == "text"
        assert col.byte_count(stmt) == len("seven")
        assert col.value(stmt) == "seven"


def test_query_parameter_binds_by_position(db):
    with db.prepare("SELECT ?2, ?1") as stmt:
        QueryParameter(1).bind(stmt, "first")
        QueryParameter(2).bind(stmt, "second")
        assert stmt.step() == StatusCode.ROW
        assert stmt.row() == ("second", "first")


def test_sql_source_and_finalize_idempotent(db):
    stmt = db.prepare("SELECT 1")
    assert stmt.sql_source() == "SELECT 1"
    assert stmt.timestamp > 0
    stmt.finalize()
    stmt.finalize()
    assert stmt.sql_source() == ""
    with pytest.raises(InterfaceError):
        stmt.step()


def test_blank_sql_steps_to_done(db):
    stmt = db.prepare("   ")
    assert stmt.blank
    assert stmt.step() == StatusCode.DONE
    assert stmt.sql_source() == ""
    assert db.execute("-- only a comment") == 0


def test_prepare_syntax_error(db):
    with pytest.raises(SQLiteError) as exc:
        db.prepare("SELEC nonsense")
    assert exc.value.status is StatusCode.ERROR
    assert "syntax error" in exc.value.message
    assert read_rows(db, "SELECT 1") == [(1,)]
