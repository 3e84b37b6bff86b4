"""Engine abstraction layer.

Defines the foreign-call surface the driver consumes so an alternative binding
(or a fault-injecting test double) can stand in for the ctypes one. Handles
are opaque ints; every mutating call returns a numeric status code.

KISS: only the calls the driver actually makes are listed.
"""
from __future__ import annotations
from typing import Optional, Protocol, Tuple


class EngineLike(Protocol):  # pragma: no cover - structural typing helper
    library_path: Optional[str]

    # process lifecycle
    def initialize(self) -> int: ...
    def shutdown(self) -> int: ...
    def libversion(self) -> str: ...
    def threadsafe(self) -> int: ...

    # connections
    def open(self, filename: str, flags: int) -> Tuple[int, Optional[int]]: ...
    def close(self, db: int) -> int: ...
    def busy_timeout(self, db: int, ms: int) -> int: ...
    def last_insert_rowid(self, db: int) -> int: ...
    def changes(self, db: int) -> int: ...
    def total_changes(self, db: int) -> int: ...
    def errcode(self, db: int) -> int: ...
    def errmsg(self, db: int) -> str: ...
    def errstr(self, code: int) -> str: ...

    # statements
    def prepare(self, db: int, sql: str) -> Tuple[int, Optional[int]]: ...
    def bind_parameter_count(self, stmt: int) -> int: ...
    def bind_null(self, stmt: int, index: int) -> int: ...
    def bind_int(self, stmt: int, index: int, value: int) -> int: ...
    def bind_int64(self, stmt: int, index: int, value: int) -> int: ...
    def bind_double(self, stmt: int, index: int, value: float) -> int: ...
    def bind_text(self, stmt: int, index: int, value: bytes) -> int: ...
    def bind_blob(self, stmt: int, index: int, value: bytes) -> int: ...
    def step(self, stmt: int) -> int: ...
    def reset(self, stmt: int) -> int: ...
    def clear_bindings(self, stmt: int) -> int: ...
    def finalize(self, stmt: int) -> int: ...
    def sql(self, stmt: int) -> str: ...
    def column_count(self, stmt: int) -> int: ...
    def data_count(self, stmt: int) -> int: ...
    def column_name(self, stmt: int, column: int) -> str: ...
    def column_type(self, stmt: int, column: int) -> int: ...
    def column_bytes(self, stmt: int, column: int) -> int: ...
    def column_int64(self, stmt: int, column: int) -> int: ...
    def column_double(self, stmt: int, column: int) -> float: ...
    def column_text(self, stmt: int, column: int) -> bytes: ...
    def column_blob(self, stmt: int, column: int) -> bytes: ...

    # online backup
    def backup_init(self, dest: int, dest_name: str, source: int, source_name: str) -> Optional[int]: ...
    def backup_step(self, backup: int, pages: int) -> int: ...
    def backup_remaining(self, backup: int) -> int: ...
    def backup_pagecount(self, backup: int) -> int: ...
    def backup_finish(self, backup: int) -> int: ...


class Transactable(Protocol):  # pragma: no cover - structural typing helper
    """Capability handed to transaction operations."""

    def begin(self) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...
