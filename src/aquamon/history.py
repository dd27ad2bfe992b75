"""Offline analysis of the monitor's CSV log."""
from __future__ import annotations

from pathlib import Path

import pandas as pd

from .logwriter import FIELDNAMES, TIMESTAMP_FORMAT

CHANNELS = ["cf", "ec", "tds", "ph", "orp", "re", "temp"]


def load_log(path: str | Path) -> pd.DataFrame:
    """Load a log written with or without a header row.

    Returns a frame indexed by parsed timestamp, one float column per channel.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    with path.open("r", encoding="utf-8") as fh:
        first = fh.readline().strip()
    has_header = first.split(",")[0] == FIELDNAMES[0]
    df = pd.read_csv(path, header=0 if has_header else None, names=None if has_header else FIELDNAMES)
    missing = set(FIELDNAMES) - set(df.columns)
    if missing:
        raise ValueError(f"Missing log columns: {sorted(missing)}")
    df["timestamp"] = pd.to_datetime(df["timestamp"], format=TIMESTAMP_FORMAT)
    df = df.set_index("timestamp").sort_index(kind="mergesort")
    return df[CHANNELS].astype(float)


def summarize(df: pd.DataFrame) -> pd.DataFrame:
    """min / mean / max / count per channel, one row per channel."""

    if df.empty:
        return pd.DataFrame(columns=["min", "mean", "max", "count"], index=CHANNELS)
    summary = df.agg(["min", "mean", "max", "count"]).T
    summary["count"] = summary["count"].astype(int)
    return summary
