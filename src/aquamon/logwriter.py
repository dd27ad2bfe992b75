from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .config import LogSettings
from .errors import LogWriteError
from .state import Snapshot

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%d-%m-%Y %H:%M:%S"
FIELDNAMES = ["timestamp", "cf", "ec", "tds", "ph", "orp", "re", "temp"]


@dataclass(frozen=True)
class LogRecord:
    timestamp: datetime
    cf: float
    ec: float
    tds: float
    ph: float
    orp: float
    relative_value: int
    temperature: float

    @staticmethod
    def from_snapshot(snapshot: Snapshot, timestamp: Optional[datetime] = None) -> "LogRecord":
        reading = snapshot.reading
        return LogRecord(
            timestamp=timestamp or datetime.now(),
            cf=reading.cf,
            ec=reading.ec,
            tds=reading.tds,
            ph=snapshot.avg_ph,
            orp=snapshot.avg_orp,
            relative_value=reading.relative_value,
            temperature=reading.temperature,
        )

    def as_row(self) -> List[str]:
        return [
            self.timestamp.strftime(TIMESTAMP_FORMAT),
            f"{self.cf:.2f}",
            f"{self.ec:.2f}",
            f"{self.tds:.2f}",
            f"{self.ph:.2f}",
            f"{self.orp:.1f}",
            str(self.relative_value),
            f"{self.temperature:.1f}",
        ]

    def as_line(self) -> str:
        return ",".join(self.as_row()) + "\n"


@dataclass(frozen=True)
class RotationPolicy:
    mode: str = "unbounded"
    max_bytes: int = 0
    eviction_lines: int = 0

    @staticmethod
    def unbounded() -> "RotationPolicy":
        return RotationPolicy()

    @staticmethod
    def size_bounded(max_bytes: int, eviction_lines: int) -> "RotationPolicy":
        if max_bytes <= 0 or eviction_lines <= 0:
            raise ValueError("size_bounded rotation needs a positive ceiling and eviction batch")
        return RotationPolicy("size_bounded", max_bytes, eviction_lines)

    @property
    def bounded(self) -> bool:
        return self.mode == "size_bounded"


class CsvLogWriter:
    """
    Appends one CSV line per report.

    With a size-bounded policy, once the file has reached ``max_bytes`` the next
    append drops the oldest ``eviction_lines`` records and rewrites the file.
    A header row, when enabled, is never evicted.
    """

    def __init__(self, path: Path, policy: Optional[RotationPolicy] = None, *, header: bool = False):
        self.path = Path(path)
        self.policy = policy or RotationPolicy.unbounded()
        self.header = header
        self.rotations = 0

    @staticmethod
    def from_settings(settings: LogSettings) -> "CsvLogWriter":
        if settings.rotation == "size_bounded":
            policy = RotationPolicy.size_bounded(settings.max_bytes, settings.eviction_lines)
        else:
            policy = RotationPolicy.unbounded()
        return CsvLogWriter(settings.path, policy, header=settings.header)

    def append_record(self, record: LogRecord) -> None:
        try:
            size = self.path.stat().st_size if self.path.exists() else 0
            if self.policy.bounded and size >= self.policy.max_bytes:
                self._rotate(record)
            else:
                self._append(record, write_header=self.header and size == 0)
        except OSError as exc:
            raise LogWriteError(f"Cannot write {self.path}: {exc}") from exc

    def _append(self, record: LogRecord, *, write_header: bool) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", newline="", encoding="utf-8") as fh:
            writer = csv.writer(fh, lineterminator="\n")
            if write_header:
                writer.writerow(FIELDNAMES)
            writer.writerow(record.as_row())

    def _rotate(self, record: LogRecord) -> None:
        lines = self.path.read_text(encoding="utf-8").splitlines()
        header: List[str] = []
        if self.header and lines and lines[0] == ",".join(FIELDNAMES):
            header, lines = lines[:1], lines[1:]
        evicted = min(self.policy.eviction_lines, len(lines))
        kept = header + lines[evicted:]
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with tmp_path.open("w", newline="", encoding="utf-8") as fh:
            for line in kept:
                fh.write(line + "\n")
            fh.write(record.as_line())
        tmp_path.replace(self.path)
        self.rotations += 1
        logger.info("Rotated %s: evicted %d oldest records", self.path, evicted)
