"""Process-wide engine lifecycle and scoped sessions."""
from __future__ import annotations
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from .base_engine import EngineLike
from .config import DriverConfig
from .connection import MEMORY, Connection
from .engine import Engine
from .logging_util import debug, warn
from .status import StatusCode, error_for


class EngineLifecycle:
    """Reference-counted sqlite3_initialize / sqlite3_shutdown.

    The first ``acquire()`` initializes the library and the last matching
    ``release()`` shuts it down. Every connection must be closed before the
    last release.
    """

    def __init__(self, engine: Optional[EngineLike] = None):
        self.engine = engine or Engine.default()
        self._lock = threading.Lock()
        self._refs = 0

    @property
    def active(self) -> bool:
        return self._refs > 0

    def acquire(self) -> "EngineLifecycle":
        with self._lock:
            if self._refs == 0:
                rc = self.engine.initialize()
                if rc != StatusCode.OK:
                    raise error_for(rc, "sqlite3_initialize failed")
                debug("engine_initialized", library=self.engine.library_path)
            self._refs += 1
        return self

    def release(self) -> None:
        with self._lock:
            if self._refs == 0:
                raise error_for(StatusCode.MISUSE, "engine lifecycle released more often than acquired")
            self._refs -= 1
            if self._refs:
                return
            rc = self.engine.shutdown()
        if rc != StatusCode.OK:
            warn("engine_shutdown_status", code=rc)
        else:
            debug("engine_shutdown")

    def __enter__(self) -> "EngineLifecycle":
        return self.acquire()

    def __exit__(self, *exc) -> None:
        self.release()


_lifecycles = {}
_lifecycles_lock = threading.Lock()


def lifecycle(engine: Optional[EngineLike] = None) -> EngineLifecycle:
    """Shared lifecycle for ``engine`` (the default engine when omitted)."""
    engine = engine or Engine.default()
    with _lifecycles_lock:
        lc = _lifecycles.get(id(engine))
        if lc is None or lc.engine is not engine:
            lc = _lifecycles[id(engine)] = EngineLifecycle(engine)
        return lc


@contextmanager
def session(filename: str, *flags: int, engine: Optional[EngineLike] = None,
            config: Optional[DriverConfig] = None) -> Iterator[Connection]:
    """initialize -> open -> yield connection -> close -> shutdown, on every exit path."""
    with lifecycle(engine) as lc:
        db = Connection(filename, engine=lc.engine, config=config)
        try:
            db.open(*flags)
            yield db
        finally:
            db.close()


@contextmanager
def transient_session(engine: Optional[EngineLike] = None,
                      config: Optional[DriverConfig] = None) -> Iterator[Connection]:
    with session(MEMORY, engine=engine, config=config) as db:
        yield db


def lib_version(engine: Optional[EngineLike] = None) -> str:
    return (engine or Engine.default()).libversion()
