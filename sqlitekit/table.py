from __future__ import annotations
from dataclasses import dataclass

from .connection import Connection, quote_identifier


@dataclass(frozen=True)
class Table:
    """Named table with a literal column spec, e.g. Table("foo", "number INTEGER, text VARCHAR(20)")."""
    name: str
    column_spec: str

    def create(self, db: Connection) -> None:
        db.execute(f"CREATE TABLE {quote_identifier(self.name)} ({self.column_spec})")

    def drop(self, db: Connection) -> None:
        db.execute(f"DROP TABLE IF EXISTS {quote_identifier(self.name)}")

    def rows(self, db: Connection) -> int:
        counts = []
        db.execute(f"SELECT COUNT(*) FROM {quote_identifier(self.name)}",
                   callback=lambda _stmt, row: counts.append(row[0]))
        return counts[0] if counts else 0
