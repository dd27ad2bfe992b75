from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from aquamon.config import LogSettings
from aquamon.errors import LogWriteError
from aquamon.logwriter import FIELDNAMES, CsvLogWriter, LogRecord, RotationPolicy


def make_record(minute: int = 0) -> LogRecord:
    return LogRecord(
        timestamp=datetime(2026, 10, 18, 12, minute, 5),
        cf=1.0,
        ec=0.1,
        tds=50.0,
        ph=6.99,
        orp=-300.0,
        relative_value=10,
        temperature=10.0,
    )


def test_record_line_format():
    assert make_record().as_line() == "18-10-2026 12:00:05,1.00,0.10,50.00,6.99,-300.0,10,10.0\n"


def test_append_creates_file_without_header(tmp_path: Path):
    path = tmp_path / "logs" / "data.csv"
    writer = CsvLogWriter(path)
    writer.append_record(make_record(0))
    writer.append_record(make_record(1))
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert lines[0].startswith("18-10-2026 12:00:05,")
    assert lines[1].startswith("18-10-2026 12:01:05,")


def test_header_written_once(tmp_path: Path):
    path = tmp_path / "data.csv"
    writer = CsvLogWriter(path, header=True)
    writer.append_record(make_record(0))
    writer.append_record(make_record(1))
    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == ",".join(FIELDNAMES)
    assert len(lines) == 3


def _seed(path: Path, count: int, header: bool = False) -> list[str]:
    lines = [f"old-{i}" for i in range(count)]
    prefix = [",".join(FIELDNAMES)] if header else []
    path.write_text("\n".join(prefix + lines) + "\n", encoding="utf-8")
    return lines


def test_size_bounded_rotation_evicts_fixed_batch(tmp_path: Path):
    path = tmp_path / "data.csv"
    old = _seed(path, 10)
    writer = CsvLogWriter(path, RotationPolicy.size_bounded(max_bytes=16, eviction_lines=3))
    writer.append_record(make_record())
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 10 - 3 + 1
    assert lines[:-1] == old[3:]
    assert lines[-1] == make_record().as_line().rstrip("\n")
    assert writer.rotations == 1
    assert not (tmp_path / "data.csv.tmp").exists()


def test_rotation_only_at_ceiling(tmp_path: Path):
    path = tmp_path / "data.csv"
    _seed(path, 4)
    writer = CsvLogWriter(path, RotationPolicy.size_bounded(max_bytes=10_000, eviction_lines=3))
    writer.append_record(make_record())
    assert len(path.read_text(encoding="utf-8").splitlines()) == 5
    assert writer.rotations == 0


def test_rotation_keeps_header(tmp_path: Path):
    path = tmp_path / "data.csv"
    old = _seed(path, 5, header=True)
    writer = CsvLogWriter(path, RotationPolicy.size_bounded(max_bytes=1, eviction_lines=2), header=True)
    writer.append_record(make_record())
    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == ",".join(FIELDNAMES)
    assert lines[1:-1] == old[2:]


def test_rotation_with_fewer_lines_than_batch(tmp_path: Path):
    path = tmp_path / "data.csv"
    _seed(path, 2)
    writer = CsvLogWriter(path, RotationPolicy.size_bounded(max_bytes=1, eviction_lines=5))
    writer.append_record(make_record())
    assert path.read_text(encoding="utf-8").splitlines() == [make_record().as_line().rstrip("\n")]


@pytest.mark.parametrize("header", [False, True])
def test_file_stays_within_one_record_of_ceiling(tmp_path: Path, header: bool):
    path = tmp_path / "data.csv"
    line_len = len(make_record().as_line())
    max_bytes = 40 * line_len + 7
    writer = CsvLogWriter(path, RotationPolicy.size_bounded(max_bytes=max_bytes, eviction_lines=10), header=header)
    for i in range(300):
        record = make_record(i % 60)
        writer.append_record(record)
        assert path.stat().st_size <= max_bytes + len(record.as_line())
    assert writer.rotations > 0
    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[-1] == make_record(299 % 60).as_line().rstrip("\n")
    if header:
        assert lines[0] == ",".join(FIELDNAMES)


def test_rotation_from_a_full_file_of_records(tmp_path: Path):
    path = tmp_path / "data.csv"
    path.write_text("".join(make_record(i).as_line() for i in range(50)), encoding="utf-8")
    max_bytes = path.stat().st_size
    writer = CsvLogWriter(path, RotationPolicy.size_bounded(max_bytes=max_bytes, eviction_lines=5))
    record = make_record(59)
    writer.append_record(record)
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 50 - 5 + 1
    assert lines[0] == make_record(5).as_line().rstrip("\n")
    assert path.stat().st_size <= max_bytes + len(record.as_line())


def test_write_failure_raises_log_write_error(tmp_path: Path):
    writer = CsvLogWriter(tmp_path)
    with pytest.raises(LogWriteError):
        writer.append_record(make_record())


def test_policy_from_settings(tmp_path: Path):
    writer = CsvLogWriter.from_settings(
        LogSettings(path=tmp_path / "x.csv", rotation="size_bounded", max_bytes=100, eviction_lines=7)
    )
    assert writer.policy.bounded
    assert writer.policy.eviction_lines == 7
    assert not CsvLogWriter.from_settings(LogSettings(rotation="unbounded")).policy.bounded


def test_size_bounded_policy_requires_positive_values():
    with pytest.raises(ValueError):
        RotationPolicy.size_bounded(0, 10)
