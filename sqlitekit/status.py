"""Engine result codes and the driver's error taxonomy.

Every call across the engine boundary yields a numeric status. ``StatusCode``
names the primary codes plus two driver-defined extensions (ENCODER and
SAVEPOINT); ``error_for`` turns a failing status into the matching exception.
ROW and DONE are continuation signals and never become exceptions.
"""
from __future__ import annotations
from enum import IntEnum
from typing import Optional, Union


class StatusCode(IntEnum):
    OK = 0
    ERROR = 1
    INTERNAL = 2
    PERM = 3
    ABORT = 4
    BUSY = 5
    LOCKED = 6
    NOMEM = 7
    READONLY = 8
    INTERRUPT = 9
    IOERR = 10
    CORRUPT = 11
    NOTFOUND = 12
    FULL = 13
    CANTOPEN = 14
    PROTOCOL = 15
    EMPTY = 16
    SCHEMA = 17
    TOOBIG = 18
    CONSTRAINT = 19
    MISMATCH = 20
    MISUSE = 21
    NOLFS = 22
    AUTH = 23
    FORMAT = 24
    RANGE = 25
    NOTADB = 26
    ROW = 100
    DONE = 101
    ENCODER = 1000
    SAVEPOINT = 1001

    @classmethod
    def of(cls, code: int) -> Union["StatusCode", int]:
        """Known member for ``code``; extended codes fold to their primary code.

        Codes the driver has never heard of come back as the plain int.
        """
        code = int(code)
        try:
            return cls(code)
        except ValueError:
            pass
        try:
            return cls(code & 0xFF)
        except ValueError:
            return code

    def __str__(self) -> str:
        return status_text(self)


_TEXT = {
    StatusCode.OK: "not an error",
    StatusCode.ERROR: "SQL error or missing database",
    StatusCode.INTERNAL: "Internal logic error in SQLite",
    StatusCode.PERM: "Access permission denied",
    StatusCode.ABORT: "Callback routine requested an abort",
    StatusCode.BUSY: "The database file is locked",
    StatusCode.LOCKED: "A table in the database is locked",
    StatusCode.NOMEM: "A malloc() failed",
    StatusCode.READONLY: "Attempt to write a readonly database",
    StatusCode.INTERRUPT: "Operation terminated by sqlite3_interrupt()",
    StatusCode.IOERR: "Some kind of disk I/O error occurred",
    StatusCode.CORRUPT: "The database disk image is malformed",
    StatusCode.NOTFOUND: "Unknown opcode in sqlite3_file_control()",
    StatusCode.FULL: "Insertion failed because database is full",
    StatusCode.CANTOPEN: "Unable to open the database file",
    StatusCode.PROTOCOL: "Database lock protocol error",
    StatusCode.EMPTY: "Database is empty",
    StatusCode.SCHEMA: "The database schema changed",
    StatusCode.TOOBIG: "String or BLOB exceeds size limit",
    StatusCode.CONSTRAINT: "Abort due to constraint violation",
    StatusCode.MISMATCH: "Data type mismatch",
    StatusCode.MISUSE: "Library used incorrectly",
    StatusCode.NOLFS: "Uses OS features not supported on host",
    StatusCode.AUTH: "Authorization denied",
    StatusCode.FORMAT: "Auxiliary database format error",
    StatusCode.RANGE: "2nd parameter to sqlite3_bind out of range",
    StatusCode.NOTADB: "File opened that is not a database file",
    StatusCode.ROW: "sqlite3_step() has another row ready",
    StatusCode.DONE: "sqlite3_step() has finished executing",
    StatusCode.ENCODER: "blob encoding failed",
    StatusCode.SAVEPOINT: "invalid or unknown savepoint identifier",
}

RETRYABLE = frozenset({StatusCode.BUSY, StatusCode.LOCKED})


def status_text(code: int) -> str:
    text = _TEXT.get(code)  # IntEnum hashes like int
    if text is None:
        return f"errno {int(code)}"
    return text


def is_error(code: int) -> bool:
    """Only OK, ROW and DONE are not failures."""
    return int(code) not in (StatusCode.OK, StatusCode.ROW, StatusCode.DONE)


def is_retryable(code: Optional[int]) -> bool:
    return code is not None and int(code) in RETRYABLE


# --- Exceptions -----------------------------------------------------------------

class Error(Exception):
    """Base class for everything the driver raises."""


class SQLiteError(Error):
    """A failing engine (or driver-defined) status code.

    ``index`` is set when a parameter bind failed and names the 1-based
    position that was rejected.
    """

    def __init__(self, code: int, message: Optional[str] = None, index: Optional[int] = None):
        self.code = int(code)
        status = StatusCode.of(code)
        self.status = status if isinstance(status, StatusCode) else None
        self.message = message or status_text(code)
        self.index = index
        super().__init__(self.message)

    def __str__(self) -> str:
        name = self.status.name if self.status is not None else str(self.code)
        where = f" (parameter {self.index})" if self.index is not None else ""
        return f"[{name}] {self.message}{where}"


class InterfaceError(SQLiteError):
    pass


class IntegrityError(SQLiteError):
    pass


class OperationalError(SQLiteError):
    pass


class EncoderError(SQLiteError):
    def __init__(self, message: Optional[str] = None, index: Optional[int] = None):
        super().__init__(StatusCode.ENCODER, message, index)


class SavepointError(SQLiteError):
    def __init__(self, message: Optional[str] = None):
        super().__init__(StatusCode.SAVEPOINT, message)


class UnrecoverableError(Error):
    """Setup or contract violation that must abort the whole operation."""


class DoubleFaultError(UnrecoverableError):
    """Rollback failed while a transaction was already failing."""

    def __init__(self, original: BaseException, rollback_error: BaseException):
        self.original = original
        self.rollback_error = rollback_error
        super().__init__(f"rollback failed ({rollback_error}) while handling: {original}")


_CLASS_FOR = {
    StatusCode.MISUSE: InterfaceError,
    StatusCode.RANGE: InterfaceError,
    StatusCode.CONSTRAINT: IntegrityError,
    StatusCode.ENCODER: EncoderError,
    StatusCode.SAVEPOINT: SavepointError,
}
for _code in (StatusCode.PERM, StatusCode.ABORT, StatusCode.BUSY, StatusCode.LOCKED,
              StatusCode.NOMEM, StatusCode.READONLY, StatusCode.INTERRUPT, StatusCode.IOERR,
              StatusCode.FULL, StatusCode.CANTOPEN, StatusCode.PROTOCOL, StatusCode.NOLFS,
              StatusCode.AUTH):
    _CLASS_FOR[_code] = OperationalError


def error_for(code: int, message: Optional[str] = None, index: Optional[int] = None) -> SQLiteError:
    status = StatusCode.of(code)
    cls = _CLASS_FOR.get(status, SQLiteError) if isinstance(status, StatusCode) else SQLiteError
    if cls is EncoderError:
        return EncoderError(message, index)
    if cls is SavepointError:
        return SavepointError(message)
    return cls(code, message, index)


def check(code: int, message: Optional[str] = None) -> None:
    """Raise for a failing status; OK, ROW and DONE pass through silently."""
    if is_error(code):
        raise error_for(code, message)
