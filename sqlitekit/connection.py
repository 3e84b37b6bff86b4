"""Database connections.

A ``Connection`` owns exactly one native database handle between ``open()`` and
``close()``. It compiles statements, wraps BEGIN/COMMIT/ROLLBACK and savepoints,
and drives the online backup API for ``load``/``save``/``backup``.

Behaviour notes:
    - Default open flags are FULLMUTEX | READWRITE | CREATE
    - Opening refuses to run against a library built without thread-safety
    - Busy timeout + optional pragmas (DriverConfig) are applied after open; a
      failing pragma is logged, never fatal
    - ``close()`` is idempotent
"""
from __future__ import annotations
from enum import IntFlag
from typing import Any, List, Optional

from .base_engine import EngineLike
from .config import DriverConfig
from .engine import Engine
from .logging_util import debug, warn
from .statement import RowCallback, Statement
from .status import (SavepointError, StatusCode, UnrecoverableError, error_for,
                     status_text)

MEMORY = ":memory:"


class OpenFlag(IntFlag):
    READONLY = 0x00000001
    READWRITE = 0x00000002
    CREATE = 0x00000004
    DELETEONCLOSE = 0x00000008
    EXCLUSIVE = 0x00000010
    AUTOPROXY = 0x00000020
    URI = 0x00000040
    MEMORY = 0x00000080
    MAIN_DB = 0x00000100
    TEMP_DB = 0x00000200
    TRANSIENT_DB = 0x00000400
    MAIN_JOURNAL = 0x00000800
    TEMP_JOURNAL = 0x00001000
    SUBJOURNAL = 0x00002000
    SUPER_JOURNAL = 0x00004000
    NOMUTEX = 0x00008000
    FULLMUTEX = 0x00010000
    SHAREDCACHE = 0x00020000
    PRIVATECACHE = 0x00040000
    WAL = 0x00080000
    NOFOLLOW = 0x01000000


DEFAULT_FLAGS = OpenFlag.FULLMUTEX | OpenFlag.READWRITE | OpenFlag.CREATE


def flag_names(flags: int) -> str:
    """"READWRITE|CREATE|FULLMUTEX" style rendering, lowest bit first."""
    return "|".join(f.name for f in OpenFlag if f.value & int(flags))


def savepoint_id(value: Any) -> str:
    """Convert a savepoint identifier to its text form.

    Accepted: str, bytes/bytearray (UTF-8), int (not bool), and objects that
    define their own ``__str__``. Anything else raises ``SavepointError``.
    """
    if isinstance(value, str):
        text = value
    elif isinstance(value, (bytes, bytearray)):
        try:
            text = bytes(value).decode("utf-8")
        except UnicodeDecodeError as e:
            raise SavepointError(f"savepoint id is not valid UTF-8: {value!r}") from e
    elif isinstance(value, bool):
        raise SavepointError(f"unsupported savepoint id type: {type(value).__name__}")
    elif isinstance(value, int):
        text = str(value)
    elif type(value).__str__ is not object.__str__:
        text = str(value)
    else:
        raise SavepointError(f"unsupported savepoint id type: {type(value).__name__}")
    if not text:
        raise SavepointError("savepoint id is empty")
    return text


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class Connection:
    """One open SQLite database.

    Not safe for concurrent use from several threads; statements derived from
    a connection must be finalized before it is closed.
    """

    def __init__(self, filename: str = MEMORY, engine: Optional[EngineLike] = None,
                 config: Optional[DriverConfig] = None):
        self.filename = str(filename)
        self.config = config or DriverConfig.from_env()
        if engine is None:
            engine = Engine(self.config.library_path) if self.config.library_path else Engine.default()
        self.engine = engine
        self.flags = OpenFlag(0)
        self.handle: Optional[int] = None
        self._savepoints: List[str] = []

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<Connection {self.filename!r} {state}>"

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self.handle is not None

    def flag_names(self) -> str:
        return flag_names(self.flags)

    # --- Lifecycle ------------------------------------------------------------------
    def open(self, *flags: int) -> "Connection":
        if not self.engine.threadsafe():
            raise UnrecoverableError("sqlite library is not thread-safe")
        if self.handle is not None:
            raise error_for(StatusCode.CANTOPEN, f"database already open: {self.filename}")
        combined = OpenFlag(0)
        for f in flags or (DEFAULT_FLAGS,):
            combined |= f
        rc, handle = self.engine.open(self.filename, combined)
        if rc != StatusCode.OK:
            message = self.engine.errmsg(handle) if handle else (self.engine.errstr(rc) or status_text(rc))
            if handle:
                self.engine.close(handle)
            warn("open_failed", filename=self.filename, flags=flag_names(combined), code=rc, error=message)
            raise error_for(rc, f"{message}: {self.filename}")
        if not handle:
            raise error_for(StatusCode.CANTOPEN, f"engine returned no handle for {self.filename}")
        self.handle = handle
        self.flags = combined
        self._savepoints = []
        self._apply_settings()
        debug("connection_opened", filename=self.filename, flags=self.flag_names())
        return self

    def close(self) -> None:
        if self.handle is None:
            return
        handle, self.handle = self.handle, None
        self._savepoints = []
        rc = self.engine.close(handle)
        if rc != StatusCode.OK:
            warn("connection_close_status", filename=self.filename, code=rc)
        debug("connection_closed", filename=self.filename)

    # --- Counters / diagnostics -----------------------------------------------------
    def last_insert_rowid(self) -> int:
        return self.engine.last_insert_rowid(self._live())

    def changes(self) -> int:
        return self.engine.changes(self._live())

    def total_changes(self) -> int:
        return self.engine.total_changes(self._live())

    def error(self) -> Optional[StatusCode]:
        """Status of the most recent failed call on this connection, None for OK.

        Only meaningful immediately after the failing call.
        """
        code = StatusCode.of(self.engine.errcode(self._live()))
        if code == StatusCode.OK:
            return None
        return code

    def error_message(self) -> str:
        return self.engine.errmsg(self._live())

    # --- Statements -----------------------------------------------------------------
    def prepare(self, sql: str, *values: Any) -> Statement:
        """Compile one statement; ``values`` are bound to parameters 1..n."""
        handle = self._live()
        rc, stmt = self.engine.prepare(handle, sql)
        if rc != StatusCode.OK:
            message = self.engine.errmsg(handle)
            debug("statement_prepare_failed", sql=sql, code=rc, error=message)
            raise error_for(rc, message)
        statement = Statement(self, stmt, sql)
        if values:
            try:
                statement.bind(1, *values)
            except Exception:
                statement.finalize()
                raise
        return statement

    def execute(self, sql: str, *values: Any, callback: Optional[RowCallback] = None) -> int:
        """Prepare and run ``sql`` to completion; returns the number of result rows."""
        statement = self.prepare(sql, *values)
        try:
            return statement.all(callback)
        except Exception:
            statement.finalize()
            raise

    # --- Transactions ---------------------------------------------------------------
    def begin(self) -> None:
        self.execute("BEGIN")

    def commit(self) -> None:
        self.execute("COMMIT")

    def rollback(self) -> None:
        self.execute("ROLLBACK")

    def mark(self, id: Any) -> None:
        """SAVEPOINT <id>: a named, nestable transaction marker."""
        name = savepoint_id(id)
        self.execute(f"SAVEPOINT {quote_identifier(name)}")
        self._savepoints.append(name)

    def merge_steps(self, id: Any) -> None:
        """RELEASE SAVEPOINT <id>: fold the marked steps into the enclosing transaction."""
        name = savepoint_id(id)
        self.execute(f"RELEASE SAVEPOINT {quote_identifier(name)}")
        self._forget_savepoint(name, keep=False)

    def release(self, id: Any) -> None:
        """ROLLBACK TO SAVEPOINT <id>: undo everything after the mark; the mark stays."""
        name = savepoint_id(id)
        self.execute(f"ROLLBACK TRANSACTION TO SAVEPOINT {quote_identifier(name)}")
        self._forget_savepoint(name, keep=True)

    def savepoints(self) -> List[str]:
        return list(self._savepoints)

    # --- Backup ---------------------------------------------------------------------
    def load(self, source: "Connection", dbname: str = "main") -> None:
        """Overwrite database ``dbname`` of this connection with ``source``'s."""
        from .backup import Backup
        dbname = dbname or "main"
        Backup(self, dbname, source, dbname).full()

    def save(self, target: "Connection", dbname: str = "main") -> None:
        target.load(self, dbname)

    def backup(self, params):
        """Start an online backup to ``params.target``; returns a ``Reporter``."""
        from .backup import start_backup
        return start_backup(self, params)

    # --- Internal -------------------------------------------------------------------
    def _live(self) -> int:
        if self.handle is None:
            raise error_for(StatusCode.MISUSE, f"connection is closed: {self.filename}")
        return self.handle

    def _forget_savepoint(self, name: str, keep: bool) -> None:
        for i in range(len(self._savepoints) - 1, -1, -1):
            if self._savepoints[i] == name:
                del self._savepoints[i + 1 if keep else i:]
                return

    def _apply_settings(self) -> None:
        rc = self.engine.busy_timeout(self.handle, self.config.busy_timeout_ms)
        if rc != StatusCode.OK:
            warn("busy_timeout_failed", filename=self.filename, code=rc)
        for name, value in self.config.pragmas:
            try:
                self.execute(f"PRAGMA {name}={value}")
            except Exception as e:
                warn("pragma_failed", pragma=f"{name}={value}", filename=self.filename, error=str(e))


def connect(filename: str = MEMORY, *flags: int, engine: Optional[EngineLike] = None,
            config: Optional[DriverConfig] = None) -> Connection:
    """Open ``filename`` (default flags when none given) and return the connection."""
    return Connection(filename, engine=engine, config=config).open(*flags)


def transient(engine: Optional[EngineLike] = None, config: Optional[DriverConfig] = None) -> Connection:
    """Unopened connection to a private in-memory database."""
    return Connection(MEMORY, engine=engine, config=config)
