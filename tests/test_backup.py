import json
import pytest

from sqlitekit.backup import Backup, BackupParameters, ProgressReport, Reporter
from sqlitekit.config import DriverConfig
from sqlitekit.connection import MEMORY, connect
from sqlitekit.engine import Engine
from sqlitekit.status import OperationalError, SQLiteError, StatusCode

from helpers import BAR, FOO, fill_bar, fill_foo


class ScriptedEngine(Engine):
    """Real engine whose backup steps can be overridden by call number (1-based)."""

    def __init__(self, script):
        super().__init__()
        self.script = dict(script)
        self.step_calls = 0

    def backup_step(self, backup, pages):
        self.step_calls += 1
        injected = self.script.get(self.step_calls)
        if injected is not None:
            return injected
        return super().backup_step(backup, pages)


@pytest.fixture()
def source(config):
    db = connect(MEMORY, config=config)
    FOO.create(db)
    BAR.create(db)
    fill_foo(db, 2000)
    fill_bar(db, 50)
    try:
        yield db
    finally:
        db.close()


def params(target, **kw):
    kw.setdefault('pages_per_step', 2)
    kw.setdefault('queue_length', 2)
    return BackupParameters(target=str(target), **kw)


def assert_copy(path, config, foo=2000, bar=50):
    with connect(str(path), config=config) as copy:
        assert FOO.rows(copy) == foo
        assert BAR.rows(copy) == bar


def test_backup_cursor_steps_to_done(source, config):
    with connect(MEMORY, config=config) as target:
        with Backup(target, "main", source, "main") as cursor:
            assert cursor.step(1) == StatusCode.OK
            total = cursor.page_count()
            assert total > 1
            assert cursor.remaining() == total - 1
            while cursor.step(5) == StatusCode.OK:
                pass
            assert cursor.remaining() == 0
        assert cursor.finish() == StatusCode.OK
        assert cursor.step(1) == StatusCode.MISUSE
        assert FOO.rows(target) == 2000


def test_full_backup(source, config):
    with connect(MEMORY, config=config) as target:
        Backup(target, "main", source, "main").full()
        assert FOO.rows(target) == FOO.rows(source)
        assert BAR.rows(target) == BAR.rows(source)


def test_backup_init_failure_uses_destination_error(source):
    with pytest.raises(SQLiteError) as exc:
        Backup(source, "main", source, "main")
    assert exc.value.status is StatusCode.ERROR


def test_async_backup_stream(source, config, tmp_path):
    target = tmp_path / 'copy.db'
    reporter = source.backup(params(target))
    reports = list(reporter)
    reporter.join(timeout=10)
    assert reporter.closed
    assert reporter.get() is None
    assert len(reports) > 1
    assert all(r.source == MEMORY and r.target == str(target) for r in reports)
    remaining = [r.remaining for r in reports]
    assert remaining == sorted(remaining, reverse=True)
    assert [r.status for r in reports[:-1]] == [StatusCode.OK] * (len(reports) - 1)
    last = reports[-1]
    assert last.done and last.remaining == 0 and last.error is None
    assert_copy(target, config)


def test_busy_steps_do_not_end_the_loop(config, tmp_path):
    engine = ScriptedEngine({2: StatusCode.BUSY, 3: StatusCode.BUSY, 4: StatusCode.LOCKED})
    with connect(MEMORY, engine=engine, config=config) as src:
        FOO.create(src)
        BAR.create(src)
        fill_foo(src, 2000)
        fill_bar(src, 50)
        target = tmp_path / 'busy.db'
        reporter = src.backup(params(target, pages_per_step=1, queue_length=1))
        first = reporter.get(timeout=10)
        assert first.status == StatusCode.OK
        contended = [reporter.get(timeout=10) for _ in range(3)]
        assert [r.status for r in contended] == [StatusCode.BUSY, StatusCode.BUSY, StatusCode.LOCKED]
        assert all(r.retryable and r.error is not None for r in contended)
        assert all(r.remaining == first.remaining for r in contended)
        assert not reporter.closed
        rest = list(reporter)
        reporter.join(timeout=10)
    assert rest and rest[-1].done
    assert reporter.closed
    assert_copy(target, config)


def test_fatal_step_ends_backup(config, tmp_path):
    engine = ScriptedEngine({2: StatusCode.CORRUPT})
    with connect(MEMORY, engine=engine, config=config) as src:
        FOO.create(src)
        fill_foo(src, 2000)
        reporter = src.backup(params(tmp_path / 'bad.db', pages_per_step=1))
        reports = list(reporter)
        reporter.join(timeout=10)
    assert [r.status for r in reports] == [StatusCode.OK, StatusCode.CORRUPT]
    assert isinstance(reports[-1].error, SQLiteError)
    assert not reports[-1].retryable
    assert reporter.closed


def test_synchronous_backup_when_pages_per_step_not_positive(source, config, tmp_path):
    target = tmp_path / 'sync.db'
    reporter = source.backup(params(target, pages_per_step=0))
    assert reporter.closed
    reports = list(reporter)
    assert len(reports) == 1 and reports[0].done
    assert_copy(target, config)


def test_synchronous_backup_retries_contention(config, tmp_path):
    engine = ScriptedEngine({1: StatusCode.BUSY, 2: StatusCode.LOCKED, 3: StatusCode.BUSY})
    with connect(MEMORY, engine=engine, config=config) as src:
        FOO.create(src)
        BAR.create(src)
        fill_foo(src, 2000)
        fill_bar(src, 50)
        target = tmp_path / 'sync-busy.db'
        # more retries than queue slots: the caller's thread must not block
        reporter = src.backup(params(target, pages_per_step=0, queue_length=1))
    assert reporter.closed
    reports = list(reporter)
    assert [r.status for r in reports] == [StatusCode.BUSY, StatusCode.LOCKED, StatusCode.BUSY, StatusCode.DONE]
    assert reports[-1].done
    assert engine.step_calls == 4
    assert_copy(target, config)


def test_backup_open_failure_is_synchronous(source, tmp_path):
    with pytest.raises(OperationalError) as exc:
        source.backup(params(tmp_path / 'missing' / 'x.db'))
    assert exc.value.status is StatusCode.CANTOPEN


def test_interval_and_verbose_logging(source, config, tmp_path, capsys, monkeypatch):
    monkeypatch.setenv('SQLITEKIT_LOG_LEVEL', 'INFO')
    target = tmp_path / 'slow.db'
    reporter = source.backup(params(target, pages_per_step=50, interval=0.001, verbose=True))
    reports = list(reporter)
    reporter.join(timeout=10)
    assert reports[-1].done and all(r.verbose for r in reports)
    events = [json.loads(line) for line in capsys.readouterr().err.splitlines() if line.startswith('{')]
    steps = [e for e in events if e['event'] == 'backup_step']
    assert len(steps) == len(reports)
    assert all(e.get('thread', '').startswith('sqlitekit-backup-') for e in steps)
    assert any(e['event'] == 'backup_finished' for e in events)


def test_config_backup_parameters(tmp_path):
    cfg = DriverConfig(pages_per_step=3, queue_length=4, interval_ms=250)
    p = cfg.backup_parameters(str(tmp_path / 'x.db'), verbose=True)
    assert (p.pages_per_step, p.queue_length, p.interval, p.verbose) == (3, 4, 0.25, True)
    assert p.database == "main"


def test_reporter_blocks_and_closes():
    reporter = Reporter(0)
    assert reporter.capacity == 1
    report = ProgressReport("a", "b", StatusCode.DONE, 1, 0)
    reporter.put(report)
    with pytest.raises(TimeoutError):
        Reporter(1).get(timeout=0.01)
    reporter.close()
    reporter.close()
    assert reporter.get() is report
    assert reporter.get() is None
    with pytest.raises(SQLiteError):
        reporter.put(report)


def test_progress_report_dict():
    report = ProgressReport("src.db", "dst.db", StatusCode.BUSY, 10, 4)
    assert report.as_dict() == {
        "source": "src.db", "target": "dst.db", "status": "The database file is locked",
        "total": 10, "remaining": 4,
    }
    assert report.retryable and not report.done
