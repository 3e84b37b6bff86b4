#!/usr/bin/env python3
"""Create a consistent online backup of an SQLite database.

Copies SRC into DST page batch by page batch through the engine's online
backup API, printing one progress line per step. BUSY/LOCKED steps are retried
on the next iteration; any other failure ends the copy with exit status 1.

Usage:
  python scripts/backup_safe.py SRC DST [--pages N] [--interval-ms N] [--json]
"""
from __future__ import annotations
import sys, json, time, pathlib, argparse

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))

from sqlitekit.config import DriverConfig  # noqa: E402
from sqlitekit.connection import OpenFlag, connect  # noqa: E402
from sqlitekit.status import Error, status_text  # noqa: E402


def main(argv=None):
    ap = argparse.ArgumentParser(description='Online backup of an SQLite database')
    ap.add_argument('src')
    ap.add_argument('dst')
    ap.add_argument('--pages', type=int, default=None, help='pages per step (<=0 copies in one step)')
    ap.add_argument('--interval-ms', type=int, default=None, help='pause between steps')
    ap.add_argument('--json', action='store_true', help='emit progress as JSON lines')
    args = ap.parse_args(argv)
    src = pathlib.Path(args.src)
    if not src.exists():
        print(f"source missing: {src}", file=sys.stderr)
        return 1
    cfg = DriverConfig.from_env()
    if args.pages is not None:
        cfg.pages_per_step = args.pages
    if args.interval_ms is not None:
        cfg.interval_ms = max(0, args.interval_ms)
    params = cfg.backup_parameters(str(args.dst), verbose=True)
    start = time.time()
    last = None
    try:
        with connect(str(src), OpenFlag.READONLY | OpenFlag.FULLMUTEX, config=cfg) as db:
            reporter = db.backup(params)
            for report in reporter:
                last = report
                if args.json:
                    print(json.dumps(report.as_dict()))
                else:
                    print(f"backup_step status={status_text(report.status)} remaining={report.remaining} total={report.total}")
            reporter.join()
    except Error as e:
        print(f"backup_failed error={e}", file=sys.stderr)
        return 1
    dur_ms = int((time.time()-start)*1000)
    if last is None or not last.done:
        status = status_text(last.status) if last is not None else 'no report'
        print(f"backup_failed status={status}", file=sys.stderr)
        return 1
    print(f"backup_created path={args.dst} pages={last.total} ms={dur_ms}")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
