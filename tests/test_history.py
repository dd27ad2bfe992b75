from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from aquamon.history import load_log, summarize
from aquamon.logwriter import CsvLogWriter, LogRecord


def write_log(path: Path, header: bool) -> None:
    writer = CsvLogWriter(path, header=header)
    for minute, ph in enumerate([6.5, 7.0, 7.5]):
        writer.append_record(
            LogRecord(
                timestamp=datetime(2026, 10, 18, 9, minute, 0),
                cf=1.0 + minute,
                ec=(1.0 + minute) / 10.0,
                tds=(1.0 + minute) * 50.0,
                ph=ph,
                orp=-100.0 * minute,
                relative_value=40 + minute,
                temperature=25.0,
            )
        )


@pytest.mark.parametrize("header", [False, True])
def test_load_log_with_and_without_header(tmp_path: Path, header: bool):
    path = tmp_path / "data.csv"
    write_log(path, header)
    df = load_log(path)
    assert len(df) == 3
    assert list(df.columns) == ["cf", "ec", "tds", "ph", "orp", "re", "temp"]
    assert df.index[0] == datetime(2026, 10, 18, 9, 0, 0)
    assert df["ph"].tolist() == [6.5, 7.0, 7.5]


def test_summarize(tmp_path: Path):
    path = tmp_path / "data.csv"
    write_log(path, header=False)
    summary = summarize(load_log(path))
    assert summary.loc["ph", "mean"] == pytest.approx(7.0)
    assert summary.loc["orp", "min"] == pytest.approx(-200.0)
    assert summary.loc["tds", "max"] == pytest.approx(150.0)
    assert summary.loc["re", "count"] == 3


def test_load_log_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_log(tmp_path / "nope.csv")
