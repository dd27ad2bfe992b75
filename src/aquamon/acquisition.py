from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .config import AcquisitionSettings
from .decoder import PartialReading, decode_response
from .errors import AquamonError, CrcMismatchError, TransportOpenError
from .frames import ResponseFormat, issue_read_data, issue_set_response_format
from .state import SensorState
from .transport import Transport

logger = logging.getLogger(__name__)


class AcquisitionState(str, enum.Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    READ_CYCLE = "read_cycle"
    FORMAT_SWITCH = "format_switch"
    TERMINATED = "terminated"


@dataclass
class CycleResult:
    index: int
    fmt: ResponseFormat
    reading: Optional[PartialReading] = None
    error: Optional[Exception] = None
    ph_rejected: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class AcquisitionThread(threading.Thread):
    """
    Drives the sensor: select pH format, settle, then read / (optionally) toggle
    format until the cycle budget is spent or ``stop()`` is called.

    A failed cycle is logged and counted; it never ends the loop. Failing to open
    the transport (or to send the very first format command) is fatal and is
    reported through ``fatal_error``.
    """

    def __init__(
        self,
        transport_factory: Callable[[], Transport],
        state: SensorState,
        settings: AcquisitionSettings,
        *,
        address: int = 0x01,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        super().__init__(name="acquisition", daemon=True)
        self._transport_factory = transport_factory
        self.sensor_state = state
        self.settings = settings
        self.address = address
        self._stop_event = stop_event or threading.Event()
        self.fmt = ResponseFormat(settings.initial_format.lower())
        self.state = AcquisitionState.IDLE
        self.fatal_error: Optional[Exception] = None
        self.termination_reason: Optional[str] = None
        self._callbacks: List[Callable[[CycleResult], None]] = []
        self._stats: Dict[str, int] = {
            "cycles": 0,
            "ok": 0,
            "crc_errors": 0,
            "io_errors": 0,
            "ph_rejected": 0,
            "format_switches": 0,
        }

    def register_callback(self, callback: Callable[[CycleResult], None]) -> None:
        self._callbacks.append(callback)

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def run(self) -> None:
        self.state = AcquisitionState.INITIALIZING
        try:
            transport = self._transport_factory()
        except TransportOpenError as exc:
            self._fail(exc)
            return
        try:
            try:
                issue_set_response_format(transport, self.address, self.fmt)
            except AquamonError as exc:
                self._fail(exc)
                return
            # Reading too soon after the format command mixes up pH and ORP replies.
            if self._stop_event.wait(self.settings.initial_settle_sec):
                self.termination_reason = "stopped"
                return
            index = 0
            max_cycles = self.settings.max_cycles
            while not self._stop_event.is_set() and (max_cycles == 0 or index < max_cycles):
                self.run_cycle(transport, index)
                index += 1
            if self.termination_reason is None:
                if self._stop_event.is_set():
                    self.termination_reason = "stopped"
                else:
                    self.termination_reason = "completed"
                    logger.info("Data collection completed after %d cycles", index)
        finally:
            try:
                transport.close()
            except AquamonError as exc:
                logger.warning("Error closing transport: %s", exc)
            self._terminate()

    def run_cycle(self, transport: Transport, index: int = 0) -> CycleResult:
        self.state = AcquisitionState.READ_CYCLE
        result = CycleResult(index=index, fmt=self.fmt)
        self._stats["cycles"] += 1
        try:
            response = issue_read_data(transport, self.address)
            result.reading = decode_response(response, self.fmt)
            result.ph_rejected = self.sensor_state.apply(
                result.reading, validate_range=self.settings.validate_ph_range
            )
        except CrcMismatchError as exc:
            self._stats["crc_errors"] += 1
            result.error = exc
            logger.warning(
                "Cycle %d: CRC mismatch (expected=0x%04X, computed=0x%04X)", index, exc.expected, exc.computed
            )
        except AquamonError as exc:
            self._stats["io_errors"] += 1
            result.error = exc
            logger.warning("Cycle %d: %s", index, exc)
        except Exception as exc:  # pragma: no cover - unexpected transport failure
            self._stats["io_errors"] += 1
            result.error = exc
            logger.exception("Cycle %d: unexpected error", index)

        if result.ok:
            self._stats["ok"] += 1
            if result.ph_rejected:
                self._stats["ph_rejected"] += 1
                logger.warning("Cycle %d: pH %.2f outside [0, 14], not averaged", index, result.reading.ph)
            self._narrate()
        self._emit(result)

        if self._stop_event.wait(self.settings.read_interval_sec):
            return result
        if result.ok and self.settings.alternate_formats:
            self._switch_format(transport, index)
        return result

    def _switch_format(self, transport: Transport, index: int) -> None:
        self.state = AcquisitionState.FORMAT_SWITCH
        target = self.fmt.toggled()
        try:
            issue_set_response_format(transport, self.address, target)
        except AquamonError as exc:
            self._stats["io_errors"] += 1
            logger.warning("Cycle %d: format switch to %s failed: %s", index, target.value, exc)
            return
        self.fmt = target
        self._stats["format_switches"] += 1
        self._stop_event.wait(self.settings.switch_settle_sec)

    def _narrate(self) -> None:
        r = self.sensor_state.reading()
        logger.info(
            "cf: %.2f, ec: %.2f mS, tds: %.2f ppm, ph: %.2f pH, orp: %d mV, re: %d %%, temp: %.1f C",
            r.cf,
            r.ec,
            r.tds,
            r.ph,
            r.orp,
            r.relative_value,
            r.temperature,
        )

    def _emit(self, result: CycleResult) -> None:
        for callback in self._callbacks:
            try:
                callback(result)
            except Exception:
                logger.exception("Cycle callback failed")

    def _fail(self, exc: Exception) -> None:
        self.fatal_error = exc
        self.termination_reason = "fatal"
        logger.error("Acquisition cannot start: %s", exc)
        self._terminate()

    def _terminate(self) -> None:
        if self.state is AcquisitionState.TERMINATED:
            return
        self.state = AcquisitionState.TERMINATED
        # The rest of the monitor has nothing to report without acquisition.
        self._stop_event.set()
