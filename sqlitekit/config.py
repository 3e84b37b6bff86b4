"""Driver configuration resolved from the environment.

Knobs:
    - SQLITEKIT_BUSY_TIMEOUT_MS   busy handler timeout applied on every open
    - SQLITEKIT_PAGES_PER_STEP    default page batch for online backups
    - SQLITEKIT_QUEUE_LENGTH      default progress queue capacity
    - SQLITEKIT_INTERVAL_MS       default pause between backup steps
    - SQLITEKIT_PRAGMAS           "name=value;name=value" applied after open
    - SQLITEKIT_LIBRARY           explicit path to the SQLite shared library

Out of range values are clamped (and logged once); unparsable values fall back
to the default with a warning.
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .logging_util import warn

MAX_BUSY_TIMEOUT_MS = 600_000
DEFAULT_BUSY_TIMEOUT_MS = 5000
MAX_PAGES_PER_STEP = 1_000_000
DEFAULT_PAGES_PER_STEP = 64
MAX_QUEUE_LENGTH = 1024
DEFAULT_QUEUE_LENGTH = 8
MAX_INTERVAL_MS = 60_000
DEFAULT_INTERVAL_MS = 0


def parse_pragmas(raw: Optional[str]) -> Tuple[Tuple[str, str], ...]:
    """Split "a=1;b=2" into (("a", "1"), ("b", "2")); malformed items are skipped."""
    if not raw:
        return ()
    out = []
    for item in raw.split(";"):
        item = item.strip()
        if not item:
            continue
        name, sep, value = item.partition("=")
        name, value = name.strip(), value.strip()
        if not sep or not name.replace("_", "").isalnum() or not value:
            warn("invalid_pragma_spec", item=item)
            continue
        out.append((name, value))
    return tuple(out)


@dataclass
class DriverConfig:
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
    pages_per_step: int = DEFAULT_PAGES_PER_STEP
    queue_length: int = DEFAULT_QUEUE_LENGTH
    interval_ms: int = DEFAULT_INTERVAL_MS
    pragmas: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    library_path: Optional[str] = None

    @classmethod
    def from_env(cls) -> "DriverConfig":
        def _int(name: str, default: int) -> int:
            raw = os.environ.get(name)
            if raw is None:
                return default
            try:
                return int(raw)
            except ValueError:
                warn("invalid_env_int", key=name, value=raw, default=default)
                return default
        busy = _int("SQLITEKIT_BUSY_TIMEOUT_MS", DEFAULT_BUSY_TIMEOUT_MS)
        pages = _int("SQLITEKIT_PAGES_PER_STEP", DEFAULT_PAGES_PER_STEP)
        queue_length = _int("SQLITEKIT_QUEUE_LENGTH", DEFAULT_QUEUE_LENGTH)
        interval = _int("SQLITEKIT_INTERVAL_MS", DEFAULT_INTERVAL_MS)
        # Clamp
        adjusted = {}
        if busy < 0 or busy > MAX_BUSY_TIMEOUT_MS:
            adjusted["busy_timeout_ms"] = busy
            busy = min(MAX_BUSY_TIMEOUT_MS, max(0, busy))
        if pages < 1 or pages > MAX_PAGES_PER_STEP:
            adjusted["pages_per_step"] = pages
            pages = min(MAX_PAGES_PER_STEP, max(1, pages))
        if queue_length < 1 or queue_length > MAX_QUEUE_LENGTH:
            adjusted["queue_length"] = queue_length
            queue_length = min(MAX_QUEUE_LENGTH, max(1, queue_length))
        if interval < 0 or interval > MAX_INTERVAL_MS:
            adjusted["interval_ms"] = interval
            interval = min(MAX_INTERVAL_MS, max(0, interval))
        if adjusted:
            final_values = {"busy_timeout_ms": busy, "pages_per_step": pages,
                            "queue_length": queue_length, "interval_ms": interval}
            warn("driver_config_clamped", original=adjusted, clamped=final_values)
        return cls(
            busy_timeout_ms=busy,
            pages_per_step=pages,
            queue_length=queue_length,
            interval_ms=interval,
            pragmas=parse_pragmas(os.environ.get("SQLITEKIT_PRAGMAS")),
            library_path=os.environ.get("SQLITEKIT_LIBRARY") or None,
        )

    def backup_parameters(self, target: str, verbose: bool = False, database: str = "main"):
        from .backup import BackupParameters
        return BackupParameters(
            target=target,
            pages_per_step=self.pages_per_step,
            queue_length=self.queue_length,
            interval=self.interval_ms / 1000.0,
            verbose=verbose,
            database=database,
        )


def cli_dump_config():  # pragma: no cover - thin CLI wrapper
    """CLI helper: print resolved DriverConfig + engine facts as JSON."""
    import argparse, json
    from .engine import Engine
    from .session import lib_version
    ap = argparse.ArgumentParser(description='Dump driver config and engine info')
    ap.add_argument('db', nargs='?', help='Optional database to open and describe')
    args = ap.parse_args()
    cfg = DriverConfig.from_env()
    engine = Engine.default()
    out = {
        'config': {**cfg.__dict__, 'pragmas': [f"{k}={v}" for k, v in cfg.pragmas]},
        'engine': {
            'library': engine.library_path,
            'version': lib_version(engine),
            'threadsafe': engine.threadsafe(),
        },
    }
    if args.db:
        from .connection import connect
        with connect(args.db, engine=engine, config=cfg) as db:
            out['database'] = {'filename': db.filename, 'flags': db.flag_names(), 'total_changes': db.total_changes()}
    print(json.dumps(out, indent=2))


if __name__ == '__main__':  # pragma: no cover
    cli_dump_config()
