"""Lightweight structured logging helper.

Avoids external deps; emits JSON lines to stderr. The backup loop logs from its
own thread, so writes are serialized and every record carries the thread name.
"""
from __future__ import annotations
import os, sys, json, time, threading

_lock = threading.Lock()
LEVEL_ORDER = ["DEBUG", "INFO", "WARN", "ERROR"]
DEFAULT_LEVEL = "INFO"


def current_level() -> str:
    """Threshold level; SQLITEKIT_LOG_LEVEL wins over the generic LOG_LEVEL."""
    raw = os.environ.get("SQLITEKIT_LOG_LEVEL") or os.environ.get("LOG_LEVEL") or DEFAULT_LEVEL
    raw = raw.upper()
    if raw == "WARNING":
        raw = "WARN"
    return raw


def _should(level: str) -> bool:
    try:
        return LEVEL_ORDER.index(level) >= LEVEL_ORDER.index(current_level())
    except ValueError:
        return True


def log(level: str, event: str, **fields):
    level = level.upper()
    if not _should(level):
        return
    record = {
        "ts": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime()),
        "level": level,
        "event": event,
    }
    thread = threading.current_thread()
    if thread is not threading.main_thread():
        record["thread"] = thread.name
    record.update(fields)
    line = json.dumps(record, separators=(',', ':'), default=str)
    with _lock:
        sys.stderr.write(line + "\n")
        sys.stderr.flush()


def debug(event: str, **fields): log("DEBUG", event, **fields)
def info(event: str, **fields): log("INFO", event, **fields)
def warn(event: str, **fields): log("WARN", event, **fields)
def error(event: str, **fields): log("ERROR", event, **fields)
