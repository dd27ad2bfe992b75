"""Periodic reporting: CSV log append plus UDP status line to the remote display."""
from __future__ import annotations

import logging
import socket
import threading
from datetime import datetime
from typing import Dict, Optional

from .errors import LogWriteError
from .logwriter import CsvLogWriter, LogRecord
from .state import SensorState, Snapshot

logger = logging.getLogger(__name__)


def format_status(snapshot: Snapshot) -> str:
    r = snapshot.reading
    return (
        f"EC: {r.ec:.2f} mS/cm | TDS: {r.tds:.2f} ppm | CF: {r.cf:.2f} CF | "
        f"pH: {snapshot.avg_ph:.2f} pH | ORP: {snapshot.avg_orp:.1f} mV | "
        f"Humidity: {r.relative_value} % | Temp: {r.temperature:.1f} C"
    )


class UdpBroadcaster:
    """Fire-and-forget UTF-8 datagrams. Send failures are logged, never retried."""

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self.sent = 0
        self.failures = 0

    def send(self, text: str) -> bool:
        payload = text.encode("utf-8")
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
                sock.sendto(payload, (self.host, self.port))
        except OSError as exc:
            self.failures += 1
            logger.warning("UDP send to %s:%d failed: %s", self.host, self.port, exc)
            return False
        self.sent += 1
        return True


class ReportingThread(threading.Thread):
    """
    Every ``interval_sec``: take one atomic snapshot, then (outside the lock)
    append it to the CSV log and broadcast it.
    """

    def __init__(
        self,
        state: SensorState,
        writer: Optional[CsvLogWriter],
        broadcaster: Optional[UdpBroadcaster],
        *,
        interval_sec: float = 60.0,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        super().__init__(name="reporting", daemon=True)
        self.sensor_state = state
        self.writer = writer
        self.broadcaster = broadcaster
        self.interval_sec = interval_sec
        self._stop_event = stop_event or threading.Event()
        self._stats: Dict[str, int] = {"reports": 0, "log_errors": 0, "send_errors": 0}

    def run(self) -> None:
        while not self._stop_event.wait(self.interval_sec):
            self.report_once()

    def stop(self) -> None:
        self._stop_event.set()

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def report_once(self, now: Optional[datetime] = None) -> LogRecord:
        snapshot = self.sensor_state.snapshot()
        record = LogRecord.from_snapshot(snapshot, now)
        self._stats["reports"] += 1
        if self.writer is not None:
            try:
                self.writer.append_record(record)
                logger.debug("Record appended to %s", self.writer.path)
            except LogWriteError as exc:
                self._stats["log_errors"] += 1
                logger.error("Error saving data to CSV file: %s", exc)
        if self.broadcaster is not None:
            text = format_status(snapshot)
            if self.broadcaster.send(text):
                logger.info("Status sent: %s", text)
            else:
                self._stats["send_errors"] += 1
        return record


class BannerThread(threading.Thread):
    """Low-frequency fixed-text broadcast shown between status lines."""

    def __init__(
        self,
        broadcaster: UdpBroadcaster,
        text: str,
        *,
        initial_delay_sec: float = 30.0,
        interval_sec: float = 60.0,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        super().__init__(name="banner", daemon=True)
        self.broadcaster = broadcaster
        self.text = text
        self.initial_delay_sec = initial_delay_sec
        self.interval_sec = interval_sec
        self._stop_event = stop_event or threading.Event()

    def run(self) -> None:
        if self._stop_event.wait(self.initial_delay_sec):
            return
        while True:
            if self.broadcaster.send(self.text):
                logger.info("Banner sent: %s", self.text)
            if self._stop_event.wait(self.interval_sec):
                return

    def stop(self) -> None:
        self._stop_event.set()
