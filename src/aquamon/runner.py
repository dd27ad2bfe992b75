from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from .acquisition import AcquisitionThread
from .broadcast import BannerThread, ReportingThread, UdpBroadcaster
from .config import MonitorConfig
from .logwriter import CsvLogWriter
from .state import SensorState
from .transport import Transport, open_transport

logger = logging.getLogger(__name__)


class MonitorHost:
    """Wires acquisition, reporting and banner threads around one shared SensorState."""

    def __init__(
        self,
        config: MonitorConfig,
        *,
        simulate: bool = False,
        transport_factory: Optional[Callable[[], Transport]] = None,
    ) -> None:
        self.config = config
        self.state = SensorState(config.acquisition.window_size)
        self.stop_event = threading.Event()
        factory = transport_factory or (lambda: open_transport(config.serial, simulate=simulate))
        self.acquisition = AcquisitionThread(
            factory,
            self.state,
            config.acquisition,
            address=config.serial.address,
            stop_event=self.stop_event,
        )
        self.broadcaster: Optional[UdpBroadcaster] = None
        if config.broadcast.enabled:
            self.broadcaster = UdpBroadcaster(config.broadcast.host, config.broadcast.port)
        self.writer = CsvLogWriter.from_settings(config.log)
        self.reporter = ReportingThread(
            self.state,
            self.writer,
            self.broadcaster,
            interval_sec=config.report.interval_sec,
            stop_event=self.stop_event,
        )
        self.banner: Optional[BannerThread] = None
        if self.broadcaster is not None and config.broadcast.banner_enabled:
            self.banner = BannerThread(
                self.broadcaster,
                config.broadcast.banner_text,
                initial_delay_sec=config.broadcast.banner_initial_delay_sec,
                interval_sec=config.broadcast.banner_interval_sec,
                stop_event=self.stop_event,
            )

    @property
    def threads(self) -> List[threading.Thread]:
        threads: List[threading.Thread] = [self.acquisition, self.reporter]
        if self.banner is not None:
            threads.append(self.banner)
        return threads

    def run(self) -> int:
        """Block until acquisition terminates or Ctrl+C. Returns a process exit code."""
        for thread in self.threads:
            thread.start()
        try:
            while self.acquisition.is_alive():
                self.acquisition.join(timeout=1.0)
        except KeyboardInterrupt:
            logger.info("Stopping monitor (Ctrl+C)")
        finally:
            self.stop()
        acq = self.acquisition.stats()
        rep = self.reporter.stats()
        logger.info(
            "Final stats: cycles=%d ok=%d crc_errors=%d io_errors=%d ph_rejected=%d reports=%d log_errors=%d",
            acq["cycles"],
            acq["ok"],
            acq["crc_errors"],
            acq["io_errors"],
            acq["ph_rejected"],
            rep["reports"],
            rep["log_errors"],
        )
        if self.acquisition.fatal_error is not None:
            return 1
        return 0

    def stop(self, timeout: float = 5.0) -> None:
        self.stop_event.set()
        for thread in self.threads:
            if thread.is_alive():
                thread.join(timeout=timeout)
