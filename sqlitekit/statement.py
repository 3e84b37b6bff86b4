"""Prepared statements.

Lifecycle: Prepared -> (Bound)* -> Stepping(ROW | DONE) -> Reset -> Prepared,
or Finalized (terminal). Stepping to DONE resets the statement automatically
so it can be re-run with the same bindings without an explicit ``reset()``.
"""
from __future__ import annotations
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional, Tuple

from .codec import ColumnType, bind_value, read_column
from .logging_util import debug
from .status import StatusCode, error_for

if TYPE_CHECKING:  # pragma: no cover
    from .connection import Connection

Row = Tuple[Any, ...]
RowCallback = Callable[["Statement", Row], Any]


class Statement:
    """One compiled SQL statement owned by a ``Connection``.

    The connection must outlive the statement. Not safe for concurrent use.
    """

    def __init__(self, connection: "Connection", handle: Optional[int], sql: str):
        self.connection = connection
        self.engine = connection.engine
        self.handle = handle
        self.sql = sql
        self.timestamp = time.time_ns()
        self.blank = handle is None

    def __repr__(self) -> str:
        state = "finalized" if self.handle is None else "live"
        return f"<Statement {state} {self.sql_source()!r}>"

    def __enter__(self) -> "Statement":
        return self

    def __exit__(self, *exc) -> None:
        self.finalize()

    # --- Binding --------------------------------------------------------------------
    def parameters(self) -> int:
        if self.handle is None:
            return 0
        return self.engine.bind_parameter_count(self.handle)

    def bind(self, start: int, *values: Any) -> None:
        """Bind ``values`` to consecutive parameters beginning at ``start`` (1-based).

        Stops at the first rejected value and raises with ``index`` naming it.
        """
        handle = self._live()
        for offset, value in enumerate(values):
            index = start + offset
            rc = bind_value(self.engine, handle, index, value)
            if rc != StatusCode.OK:
                raise self._error(rc, index=index)

    def clear_bindings(self) -> None:
        if self.handle is not None:
            self.engine.clear_bindings(self.handle)

    # --- Execution ------------------------------------------------------------------
    def step(self, callback: Optional[RowCallback] = None) -> StatusCode:
        """Advance one row.

        ROW: ``callback(statement, row)`` runs before returning (its exceptions
        propagate unchanged). DONE: the statement is reset. Anything else raises.
        """
        if self.blank:
            return StatusCode.DONE  # blank SQL compiles to no program
        rc = self.engine.step(self._live())
        if rc == StatusCode.ROW:
            if callback is not None:
                callback(self, self.row())
            return StatusCode.ROW
        if rc == StatusCode.DONE:
            self.engine.reset(self.handle)
            return StatusCode.DONE
        raise self._error(rc)

    def all(self, callback: Optional[RowCallback] = None) -> int:
        """Step to completion, returning the number of rows produced.

        Finalizes the statement on success. When a step or the callback raises,
        the statement is left live; finalizing it is the caller's job.
        """
        count = 0
        while self.step(callback) == StatusCode.ROW:
            count += 1
        self.finalize()
        return count

    def reset(self) -> None:
        """Rewind to the start; bound values are kept.

        The engine echoes the last step's failure here, which ``step`` already
        raised, so the code is only logged.
        """
        if self.handle is None:
            return
        rc = self.engine.reset(self.handle)
        if rc != StatusCode.OK:
            debug("statement_reset_status", code=rc, sql=self.sql)

    def finalize(self) -> None:
        if self.handle is None:
            return
        handle, self.handle = self.handle, None
        rc = self.engine.finalize(handle)
        if rc != StatusCode.OK:
            debug("statement_finalize_status", code=rc, sql=self.sql)

    # --- Results --------------------------------------------------------------------
    def columns(self) -> int:
        if self.handle is None:
            return 0
        return self.engine.column_count(self.handle)

    def column_name(self, column: int) -> str:
        return self.engine.column_name(self._live(), column)

    def column_type(self, column: int) -> int:
        typ = self.engine.column_type(self._live(), column)
        try:
            return ColumnType(typ)
        except ValueError:
            return typ

    def column(self, column: int) -> Any:
        return read_column(self.engine, self._live(), column)

    def row(self) -> Row:
        """Every column of the current row, decoded. Only valid right after ROW."""
        handle = self._live()
        return tuple(read_column(self.engine, handle, i) for i in range(self.engine.column_count(handle)))

    def sql_source(self) -> str:
        if self.handle is None:
            return ""
        return self.engine.sql(self.handle)

    # --- Internal -------------------------------------------------------------------
    def _live(self) -> int:
        if self.handle is None:
            state = "blank" if self.blank else "finalized"
            raise error_for(StatusCode.MISUSE, f"statement is {state}: {self.sql!r}")
        return self.handle

    def _error(self, rc: int, index: Optional[int] = None):
        message = self.connection.error_message() if self.connection.is_open else None
        return error_for(rc, message, index)


@dataclass(frozen=True)
class ResultColumn:
    """0-based handle on a column of a statement's current row."""
    index: int

    def name(self, statement: Statement) -> str:
        return statement.column_name(self.index)

    def type(self, statement: Statement) -> int:
        return statement.column_type(self.index)

    def byte_count(self, statement: Statement) -> int:
        return statement.engine.column_bytes(statement._live(), self.index)

    def value(self, statement: Statement) -> Any:
        return statement.column(self.index)


@dataclass(frozen=True)
class QueryParameter:
    """1-based handle on a statement parameter (?, ?NNN, :VVV, @VVV, $VVV)."""
    index: int

    def bind(self, statement: Statement, value: Any) -> None:
        statement.bind(self.index, value)
