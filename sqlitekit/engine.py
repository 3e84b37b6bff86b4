"""ctypes binding to the SQLite C library.

Library search order:
  1. explicit path passed to ``Engine(...)``
  2. SQLITEKIT_LIBRARY environment variable
  3. ``ctypes.util.find_library("sqlite3")``
  4. platform soname (libsqlite3.so.0 / libsqlite3.dylib / sqlite3.dll)
  5. the interpreter's own ``_sqlite3`` extension (its dependency tree exports the C API)

Each loaded library gets its signatures configured once and is cached by path.
Methods mirror the C calls one-to-one and return raw ints; interpretation of
status codes lives in the layers above.
"""
from __future__ import annotations
import ctypes, ctypes.util, os, sys, threading
from ctypes import POINTER, byref, c_char_p, c_double, c_int, c_int64, c_void_p
from typing import Dict, Iterator, Optional, Tuple

from .logging_util import debug
from .status import UnrecoverableError

# Destructor sentinel telling the engine to copy text/blob buffers during the call.
SQLITE_TRANSIENT = c_void_p(-1)

_SIGNATURES = {
    # lifecycle
    "sqlite3_initialize": (c_int, []),
    "sqlite3_shutdown": (c_int, []),
    "sqlite3_libversion": (c_char_p, []),
    "sqlite3_threadsafe": (c_int, []),
    # connections
    "sqlite3_open_v2": (c_int, [c_char_p, POINTER(c_void_p), c_int, c_char_p]),
    "sqlite3_close": (c_int, [c_void_p]),
    "sqlite3_busy_timeout": (c_int, [c_void_p, c_int]),
    "sqlite3_last_insert_rowid": (c_int64, [c_void_p]),
    "sqlite3_changes": (c_int, [c_void_p]),
    "sqlite3_total_changes": (c_int, [c_void_p]),
    "sqlite3_errcode": (c_int, [c_void_p]),
    "sqlite3_errmsg": (c_char_p, [c_void_p]),
    # statements
    "sqlite3_prepare_v2": (c_int, [c_void_p, c_char_p, c_int, POINTER(c_void_p), POINTER(c_char_p)]),
    "sqlite3_bind_parameter_count": (c_int, [c_void_p]),
    "sqlite3_bind_null": (c_int, [c_void_p, c_int]),
    "sqlite3_bind_int": (c_int, [c_void_p, c_int, c_int]),
    "sqlite3_bind_int64": (c_int, [c_void_p, c_int, c_int64]),
    "sqlite3_bind_double": (c_int, [c_void_p, c_int, c_double]),
    "sqlite3_bind_text": (c_int, [c_void_p, c_int, c_char_p, c_int, c_void_p]),
    "sqlite3_bind_blob": (c_int, [c_void_p, c_int, c_char_p, c_int, c_void_p]),
    "sqlite3_step": (c_int, [c_void_p]),
    "sqlite3_reset": (c_int, [c_void_p]),
    "sqlite3_clear_bindings": (c_int, [c_void_p]),
    "sqlite3_finalize": (c_int, [c_void_p]),
    "sqlite3_sql": (c_char_p, [c_void_p]),
    "sqlite3_column_count": (c_int, [c_void_p]),
    "sqlite3_data_count": (c_int, [c_void_p]),
    "sqlite3_column_name": (c_char_p, [c_void_p, c_int]),
    "sqlite3_column_type": (c_int, [c_void_p, c_int]),
    "sqlite3_column_bytes": (c_int, [c_void_p, c_int]),
    "sqlite3_column_int64": (c_int64, [c_void_p, c_int]),
    "sqlite3_column_double": (c_double, [c_void_p, c_int]),
    "sqlite3_column_text": (c_void_p, [c_void_p, c_int]),
    "sqlite3_column_blob": (c_void_p, [c_void_p, c_int]),
    # online backup
    "sqlite3_backup_init": (c_void_p, [c_void_p, c_char_p, c_void_p, c_char_p]),
    "sqlite3_backup_step": (c_int, [c_void_p, c_int]),
    "sqlite3_backup_remaining": (c_int, [c_void_p]),
    "sqlite3_backup_pagecount": (c_int, [c_void_p]),
    "sqlite3_backup_finish": (c_int, [c_void_p]),
}
# Present on every supported build but checked separately so older libraries still load.
_OPTIONAL = {
    "sqlite3_close_v2": (c_int, [c_void_p]),
    "sqlite3_errstr": (c_char_p, [c_int]),
}

_loaded: Dict[str, ctypes.CDLL] = {}
_load_lock = threading.Lock()


def _candidates(explicit: Optional[str]) -> Iterator[str]:
    if explicit:
        yield explicit
    env_path = os.environ.get("SQLITEKIT_LIBRARY")
    if env_path:
        yield env_path
    found = ctypes.util.find_library("sqlite3")
    if found:
        yield found
    if sys.platform == "darwin":
        yield "libsqlite3.dylib"
    elif sys.platform == "win32":
        yield "sqlite3.dll"
    else:
        yield "libsqlite3.so.0"
        yield "libsqlite3.so"
    try:
        import _sqlite3
    except ImportError:
        return
    ext_path = getattr(_sqlite3, "__file__", None)
    if ext_path:
        yield ext_path


def _configure(lib: ctypes.CDLL) -> None:
    for name, (restype, argtypes) in _SIGNATURES.items():
        fn = getattr(lib, name)  # AttributeError => not a usable SQLite build
        fn.restype = restype
        fn.argtypes = argtypes
    for name, (restype, argtypes) in _OPTIONAL.items():
        fn = getattr(lib, name, None)
        if fn is not None:
            fn.restype = restype
            fn.argtypes = argtypes


def load_library(path: Optional[str] = None) -> Tuple[ctypes.CDLL, str]:
    """Locate, load and configure the SQLite library; cached per resolved path."""
    tried = []
    with _load_lock:
        for candidate in _candidates(path):
            if candidate in _loaded:
                return _loaded[candidate], candidate
            try:
                lib = ctypes.CDLL(candidate)
                _configure(lib)
            except (OSError, AttributeError) as e:
                tried.append(f"{candidate} ({e.__class__.__name__})")
                continue
            _loaded[candidate] = lib
            debug("engine_loaded", library=candidate)
            return lib, candidate
    raise UnrecoverableError(
        "Could not load the SQLite library. Tried: " + ", ".join(tried)
        + ". Set SQLITEKIT_LIBRARY to the shared library path."
    )


def _text(raw: Optional[bytes]) -> str:
    if raw is None:
        return ""
    return raw.decode("utf-8", errors="replace")


class Engine:
    """Synchronous foreign-call surface over one loaded SQLite library."""

    _default: Optional["Engine"] = None
    _default_lock = threading.Lock()

    def __init__(self, library_path: Optional[str] = None):
        self.lib, self.library_path = load_library(library_path)
        self._close = getattr(self.lib, "sqlite3_close_v2", None) or self.lib.sqlite3_close

    @classmethod
    def default(cls) -> "Engine":
        with cls._default_lock:
            if cls._default is None:
                cls._default = Engine()
            return cls._default

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.library_path}>"

    # --- Lifecycle ------------------------------------------------------------------
    def initialize(self) -> int:
        return self.lib.sqlite3_initialize()

    def shutdown(self) -> int:
        return self.lib.sqlite3_shutdown()

    def libversion(self) -> str:
        return _text(self.lib.sqlite3_libversion())

    def threadsafe(self) -> int:
        return self.lib.sqlite3_threadsafe()

    # --- Connections ----------------------------------------------------------------
    def open(self, filename: str, flags: int) -> Tuple[int, Optional[int]]:
        handle = c_void_p()
        rc = self.lib.sqlite3_open_v2(filename.encode("utf-8"), byref(handle), int(flags), None)
        return rc, handle.value

    def close(self, db: int) -> int:
        return self._close(db)

    def busy_timeout(self, db: int, ms: int) -> int:
        return self.lib.sqlite3_busy_timeout(db, int(ms))

    def last_insert_rowid(self, db: int) -> int:
        return self.lib.sqlite3_last_insert_rowid(db)

    def changes(self, db: int) -> int:
        return self.lib.sqlite3_changes(db)

    def total_changes(self, db: int) -> int:
        return self.lib.sqlite3_total_changes(db)

    def errcode(self, db: int) -> int:
        return self.lib.sqlite3_errcode(db)

    def errmsg(self, db: int) -> str:
        return _text(self.lib.sqlite3_errmsg(db))

    def errstr(self, code: int) -> str:
        fn = getattr(self.lib, "sqlite3_errstr", None)
        if fn is None:
            return ""
        return _text(fn(int(code)))

    # --- Statements -----------------------------------------------------------------
    def prepare(self, db: int, sql: str) -> Tuple[int, Optional[int]]:
        encoded = sql.encode("utf-8")
        stmt = c_void_p()
        rc = self.lib.sqlite3_prepare_v2(db, encoded, len(encoded), byref(stmt), None)
        return rc, stmt.value

    def bind_parameter_count(self, stmt: int) -> int:
        return self.lib.sqlite3_bind_parameter_count(stmt)

    def bind_null(self, stmt: int, index: int) -> int:
        return self.lib.sqlite3_bind_null(stmt, index)

    def bind_int(self, stmt: int, index: int, value: int) -> int:
        return self.lib.sqlite3_bind_int(stmt, index, value)

    def bind_int64(self, stmt: int, index: int, value: int) -> int:
        return self.lib.sqlite3_bind_int64(stmt, index, value)

    def bind_double(self, stmt: int, index: int, value: float) -> int:
        return self.lib.sqlite3_bind_double(stmt, index, value)

    def bind_text(self, stmt: int, index: int, value: bytes) -> int:
        return self.lib.sqlite3_bind_text(stmt, index, value, len(value), SQLITE_TRANSIENT)

    def bind_blob(self, stmt: int, index: int, value: bytes) -> int:
        return self.lib.sqlite3_bind_blob(stmt, index, value, len(value), SQLITE_TRANSIENT)

    def step(self, stmt: int) -> int:
        return self.lib.sqlite3_step(stmt)

    def reset(self, stmt: int) -> int:
        return self.lib.sqlite3_reset(stmt)

    def clear_bindings(self, stmt: int) -> int:
        return self.lib.sqlite3_clear_bindings(stmt)

    def finalize(self, stmt: int) -> int:
        return self.lib.sqlite3_finalize(stmt)

    def sql(self, stmt: int) -> str:
        return _text(self.lib.sqlite3_sql(stmt))

    def column_count(self, stmt: int) -> int:
        return self.lib.sqlite3_column_count(stmt)

    def data_count(self, stmt: int) -> int:
        return self.lib.sqlite3_data_count(stmt)

    def column_name(self, stmt: int, column: int) -> str:
        return _text(self.lib.sqlite3_column_name(stmt, column))

    def column_type(self, stmt: int, column: int) -> int:
        return self.lib.sqlite3_column_type(stmt, column)

    def column_bytes(self, stmt: int, column: int) -> int:
        return self.lib.sqlite3_column_bytes(stmt, column)

    def column_int64(self, stmt: int, column: int) -> int:
        return self.lib.sqlite3_column_int64(stmt, column)

    def column_double(self, stmt: int, column: int) -> float:
        return self.lib.sqlite3_column_double(stmt, column)

    # Pointer first, then the byte count: the count is only valid after the conversion.
    def column_text(self, stmt: int, column: int) -> bytes:
        ptr = self.lib.sqlite3_column_text(stmt, column)
        size = self.lib.sqlite3_column_bytes(stmt, column)
        if not ptr or size <= 0:
            return b""
        return ctypes.string_at(ptr, size)

    def column_blob(self, stmt: int, column: int) -> bytes:
        ptr = self.lib.sqlite3_column_blob(stmt, column)
        size = self.lib.sqlite3_column_bytes(stmt, column)
        if not ptr or size <= 0:
            return b""
        return ctypes.string_at(ptr, size)

    # --- Online backup --------------------------------------------------------------
    def backup_init(self, dest: int, dest_name: str, source: int, source_name: str) -> Optional[int]:
        return self.lib.sqlite3_backup_init(dest, dest_name.encode("utf-8"), source, source_name.encode("utf-8"))

    def backup_step(self, backup: int, pages: int) -> int:
        return self.lib.sqlite3_backup_step(backup, int(pages))

    def backup_remaining(self, backup: int) -> int:
        return self.lib.sqlite3_backup_remaining(backup)

    def backup_pagecount(self, backup: int) -> int:
        return self.lib.sqlite3_backup_pagecount(backup)

    def backup_finish(self, backup: int) -> int:
        return self.lib.sqlite3_backup_finish(backup)
