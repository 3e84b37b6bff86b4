"""Online backup: page-by-page copies between two open databases.

``Backup`` is the thin cursor over sqlite3_backup_*. ``start_backup`` (behind
``Connection.backup``) opens the target file, then runs the copy loop on a
daemon thread and streams one ``ProgressReport`` per step through a bounded
``Reporter``:

    step N pages -> report -> stop unless OK/BUSY/LOCKED -> sleep interval

BUSY and LOCKED are contention signals and only delay the copy. When the loop
ends the cursor is finished, the target connection closed, and then the
reporter closed; iteration over the reporter stops after the terminal report.
There is no cancellation; ``interval`` is the only pacing control.
"""
from __future__ import annotations
import threading, time
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Deque, Iterator, Optional

from .logging_util import debug, error, info
from .status import (SQLiteError, StatusCode, error_for, is_error, is_retryable,
                     status_text)

if TYPE_CHECKING:  # pragma: no cover
    from .connection import Connection


class Backup:
    """Backup cursor copying ``source_name`` of ``source`` into ``dest_name`` of ``destination``."""

    def __init__(self, destination: "Connection", dest_name: str, source: "Connection", source_name: str):
        self.destination = destination
        self.dest_name = dest_name
        self.source = source
        self.source_name = source_name
        self.engine = destination.engine
        handle = self.engine.backup_init(destination._live(), dest_name, source._live(), source_name)
        if not handle:
            code = destination.error() or StatusCode.ERROR
            raise error_for(code, destination.error_message())
        self.handle: Optional[int] = handle

    def __enter__(self) -> "Backup":
        return self

    def __exit__(self, *exc) -> None:
        self.finish()

    def step(self, pages: int) -> int:
        """Copy up to ``pages`` pages (negative: all remaining). Returns the status, never raises."""
        if self.handle is None:
            return StatusCode.MISUSE
        return StatusCode.of(self.engine.backup_step(self.handle, pages))

    def remaining(self) -> int:
        if self.handle is None:
            return 0
        return self.engine.backup_remaining(self.handle)

    def page_count(self) -> int:
        if self.handle is None:
            return 0
        return self.engine.backup_pagecount(self.handle)

    def finish(self) -> int:
        """Release the cursor. Only the first call reaches the engine."""
        if self.handle is None:
            return StatusCode.OK
        handle, self.handle = self.handle, None
        return StatusCode.of(self.engine.backup_finish(handle))

    def full(self) -> None:
        rc = self.step(-1)
        finished = self.finish()
        if rc not in (StatusCode.OK, StatusCode.DONE):
            raise error_for(rc, self._message(rc))
        if is_error(finished):
            raise error_for(finished, self._message(finished))

    def _message(self, rc: int) -> str:
        if self.destination.is_open:
            return self.destination.error_message()
        return status_text(rc)


@dataclass(frozen=True)
class BackupParameters:
    target: str
    pages_per_step: int = 64
    queue_length: int = 8
    interval: float = 0.0  # seconds between steps
    verbose: bool = False
    database: str = "main"


@dataclass(frozen=True)
class ProgressReport:
    source: str
    target: str
    status: int
    total: int
    remaining: int
    verbose: bool = False

    @property
    def error(self) -> Optional[SQLiteError]:
        if is_error(self.status):
            return error_for(self.status)
        return None

    @property
    def done(self) -> bool:
        return self.status == StatusCode.DONE

    @property
    def retryable(self) -> bool:
        return is_retryable(self.status)

    def as_dict(self) -> dict:
        return {
            "source": self.source,
            "target": self.target,
            "status": status_text(self.status),
            "total": self.total,
            "remaining": self.remaining,
        }


class Reporter:
    """Bounded, closable stream of progress reports.

    ``put`` blocks while the queue is full. ``get`` blocks while it is empty and
    returns None once the producer has closed it and every report was consumed.
    """

    def __init__(self, queue_length: Optional[int] = 8):
        # None: unbounded, for a producer running on the consumer's own thread
        self.capacity = None if queue_length is None else max(1, int(queue_length))
        self._items: Deque[ProgressReport] = deque()
        self._cond = threading.Condition()
        self._closed = False
        self._thread: Optional[threading.Thread] = None

    def __iter__(self) -> Iterator[ProgressReport]:
        while True:
            report = self.get()
            if report is None:
                return
            yield report

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def put(self, report: ProgressReport) -> None:
        with self._cond:
            if self._closed:
                raise error_for(StatusCode.MISUSE, "report stream is closed")
            self._cond.wait_for(lambda: self.capacity is None or len(self._items) < self.capacity)
            self._items.append(report)
            self._cond.notify_all()

    def get(self, timeout: Optional[float] = None) -> Optional[ProgressReport]:
        """Next report; None at end of stream. Raises TimeoutError if ``timeout`` elapses first."""
        with self._cond:
            if not self._cond.wait_for(lambda: self._items or self._closed, timeout):
                raise TimeoutError("no progress report within timeout")
            if not self._items:
                return None
            report = self._items.popleft()
            self._cond.notify_all()
            return report

    def close(self) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._cond.notify_all()

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the copy thread (if any) to exit."""
        if self._thread is not None:
            self._thread.join(timeout)


def _report(cursor: Backup, source: "Connection", params: BackupParameters, status: int) -> ProgressReport:
    return ProgressReport(
        source=source.filename,
        target=params.target,
        status=status,
        total=cursor.page_count(),
        remaining=cursor.remaining(),
        verbose=params.verbose,
    )


def _teardown(cursor: Backup, target: "Connection", reporter: Reporter, status: Optional[int]) -> None:
    finished = cursor.finish()
    target.close()
    reporter.close()
    fields = {"target": target.filename, "status": status_text(status) if status is not None else None}
    if status != StatusCode.DONE:
        error("backup_failed", finish=status_text(finished), **fields)
    else:
        info("backup_finished", **fields)


def _copy_loop(cursor: Backup, source: "Connection", target: "Connection",
               reporter: Reporter, params: BackupParameters, pages: int) -> None:
    log = info if params.verbose else debug
    status = None
    try:
        while True:
            status = cursor.step(pages)
            report = _report(cursor, source, params, status)
            reporter.put(report)
            log("backup_step", **report.as_dict())
            if not (status == StatusCode.OK or is_retryable(status)):
                break
            if params.interval > 0:
                time.sleep(params.interval)
    except Exception as e:
        error("backup_loop_crashed", target=params.target, error=str(e))
        raise
    finally:
        _teardown(cursor, target, reporter, status)


def start_backup(source: "Connection", params: BackupParameters) -> Reporter:
    """Copy ``params.database`` of ``source`` into the file ``params.target``.

    Setup failures (target cannot be opened, cursor cannot be created) raise
    here, with the target already closed. With ``pages_per_step <= 0`` the copy
    runs on the calling thread with step(-1), retrying BUSY/LOCKED like the
    threaded loop, and the returned reporter is already closed.
    """
    from .connection import Connection

    target = Connection(params.target, engine=source.engine, config=source.config).open()
    try:
        cursor = Backup(target, params.database, source, params.database)
    except Exception:
        target.close()
        raise
    debug("backup_started", source=source.filename, target=params.target,
          pages_per_step=params.pages_per_step, interval=params.interval)
    if params.pages_per_step <= 0:
        reporter = Reporter(None)
        _copy_loop(cursor, source, target, reporter, params, -1)
        return reporter
    reporter = Reporter(params.queue_length)
    thread = threading.Thread(
        target=_copy_loop,
        args=(cursor, source, target, reporter, params, params.pages_per_step),
        name=f"sqlitekit-backup-{params.target}",
        daemon=True,
    )
    reporter._thread = thread
    thread.start()
    return reporter
