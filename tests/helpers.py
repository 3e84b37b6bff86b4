"""Shared tables and fixtures data for the test suite."""
from dataclasses import dataclass

from sqlitekit.table import Table

FOO = Table("foo", "number INTEGER, text VARCHAR(20)")
BAR = Table("bar", "number INTEGER, value BLOB")


@dataclass
class TwoItems:
    left: str
    right: str

    def __str__(self):
        return f"[{self.left}, {self.right}]"


def fill_foo(db, count):
    stmt = db.prepare("INSERT INTO foo values (?, ?)")
    try:
        for i in range(count):
            stmt.bind(1, i, f"This is row {i}")
            stmt.step()
    finally:
        stmt.finalize()


def fill_bar(db, count):
    with db.prepare("INSERT INTO bar values (?, ?)") as stmt:
        for i in range(count):
            stmt.bind(1, i, TwoItems(str(i), "bar"))
            stmt.step()


def read_rows(db, sql, *values):
    rows = []
    db.execute(sql, *values, callback=lambda _stmt, row: rows.append(row))
    return rows
