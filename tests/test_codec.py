import threading
import pytest

from sqlitekit.codec import (BlobReader, Blob, Float, Int, Int64, Null, Opaque, Text,
                             to_value)
from sqlitekit.status import EncoderError, UnrecoverableError
from sqlitekit import codec

from helpers import BAR, TwoItems, fill_bar, read_rows


def test_to_value_variants():
    assert to_value(None) == Null()
    assert to_value(7) == Int(7)
    assert to_value(True) == Int(1)
    assert to_value(2**31) == Int64(2**31)
    assert to_value(-2**63) == Int64(-2**63)
    assert to_value(1.5) == Float(1.5)
    assert to_value("abc") == Text("abc")
    assert to_value(b"\x00\x01") == Blob(b"\x00\x01")
    assert to_value(bytearray(b"xy")) == Blob(b"xy")
    assert to_value(memoryview(b"mv")) == Blob(b"mv")
    assert isinstance(to_value([1, 2]), Opaque)
    assert to_value(Text("pre-tagged")) == Text("pre-tagged")


def test_int_beyond_64_bits_overflows():
    with pytest.raises(OverflowError):
        to_value(2**63)


def test_scalar_round_trip(db):
    db.execute("CREATE TABLE t (v)")
    values = [None, 42, -2**40, 3.25, "héllo", "", b"\x00raw\xff"]
    for v in values:
        db.execute("INSERT INTO t VALUES (?)", v)
    rows = [r[0] for r in read_rows(db, "SELECT v FROM t ORDER BY rowid")]
    assert rows[:6] == values[:6]
    assert isinstance(rows[6], BlobReader)
    assert bytes(rows[6]) == b"\x00raw\xff"
    assert rows[6] == b"\x00raw\xff"


def test_text_keeps_embedded_nul(db):
    db.execute("CREATE TABLE t (v TEXT)")
    db.execute("INSERT INTO t VALUES (?)", "a\x00b")
    assert read_rows(db, "SELECT v FROM t") == [("a\x00b",)]


def test_invalid_utf8_text_round_trips(db):
    (text,), = read_rows(db, "SELECT CAST(x'ff61' AS TEXT)")
    assert isinstance(text, str)
    assert text.encode("utf-8", "surrogateescape") == b"\xffa"
    db.execute("CREATE TABLE t (v TEXT)")
    db.execute("INSERT INTO t VALUES (?)", text)
    assert read_rows(db, "SELECT hex(v) FROM t") == [("FF61",)]


def test_pre_tagged_int_out_of_range_is_rejected(db):
    db.execute("CREATE TABLE t (v)")
    with pytest.raises(OverflowError):
        db.execute("INSERT INTO t VALUES (?)", Int(2**40 + 5))
    with pytest.raises(OverflowError):
        db.execute("INSERT INTO t VALUES (?)", Int64(2**63))
    assert read_rows(db, "SELECT COUNT(*) FROM t") == [(0,)]
    db.execute("INSERT INTO t VALUES (?)", Int64(-2**63))
    assert read_rows(db, "SELECT v FROM t") == [(-2**63,)]


def test_opaque_round_trips_to_equal_object(db):
    BAR.create(db)
    fill_bar(db, 3)
    rows = read_rows(db, "SELECT number, value FROM bar ORDER BY number")
    assert [r[0] for r in rows] == [0, 1, 2]
    for number, blob in rows:
        assert isinstance(blob, BlobReader)
        assert blob.decode() == TwoItems(str(number), "bar")
        assert blob.stream().read() == blob.data


def test_unserializable_value_raises_encoder_error(db):
    db.execute("CREATE TABLE t (a, b)")
    with pytest.raises(EncoderError) as exc:
        db.execute("INSERT INTO t VALUES (?, ?)", 1, threading.Lock())
    assert exc.value.index == 2
    # nothing was inserted and nothing was silently bound as NULL
    assert read_rows(db, "SELECT COUNT(*) FROM t") == [(0,)]


def test_blob_reader_equality():
    reader = BlobReader(b"abc")
    assert reader == b"abc"
    assert reader == BlobReader(bytearray(b"abc"))
    assert reader != b"abd"
    assert len(reader) == 3
    with pytest.raises(TypeError):
        hash(reader)


class _OddTypeEngine:
    def column_type(self, stmt, column):
        return 99


def test_unknown_column_type_is_unrecoverable():
    with pytest.raises(UnrecoverableError):
        codec.read_column(_OddTypeEngine(), 1, 0)
