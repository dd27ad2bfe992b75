"""
Byte transports for the sensor's Modbus-RTU link.

`SerialTransport` wraps a pyserial port. `SimulatedSensor` answers the same two
commands the monitor issues with plausible register values, so the whole
monitor can run on a bench without hardware.
"""
from __future__ import annotations

import logging
import struct
import threading
from typing import Optional, Protocol

import numpy as np
import serial

from .config import SerialSettings
from .errors import TransportIoError, TransportOpenError
from .frames import (
    FORMAT_REGISTER,
    FUNC_READ_HOLDING,
    FUNC_WRITE_SINGLE,
    ResponseFormat,
    append_crc,
    crc16_modbus,
)

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Subset of the pyserial API the acquisition loop relies on."""

    def write(self, data: bytes) -> int | None: ...

    def read(self, size: int = 1) -> bytes: ...

    def reset_input_buffer(self) -> None: ...

    def close(self) -> None: ...


class SerialTransport:
    def __init__(self, settings: SerialSettings):
        self.settings = settings
        try:
            self._serial = serial.Serial(
                port=settings.port,
                baudrate=settings.baudrate,
                bytesize=settings.bytesize,
                parity=settings.parity,
                stopbits=settings.stopbits,
                timeout=settings.timeout,
            )
        except (serial.SerialException, ValueError) as exc:
            raise TransportOpenError(f"Cannot open {settings.port}: {exc}") from exc
        logger.info("Opened %s at %d baud", settings.port, settings.baudrate)

    def write(self, data: bytes) -> int | None:
        try:
            written = self._serial.write(data)
            self._serial.flush()
        except serial.SerialException as exc:
            raise TransportIoError(f"Write to {self.settings.port} failed: {exc}") from exc
        return written

    def read(self, size: int = 1) -> bytes:
        try:
            return self._serial.read(size)
        except serial.SerialException as exc:
            raise TransportIoError(f"Read from {self.settings.port} failed: {exc}") from exc

    def reset_input_buffer(self) -> None:
        try:
            self._serial.reset_input_buffer()
        except serial.SerialException as exc:
            raise TransportIoError(f"Flush of {self.settings.port} failed: {exc}") from exc

    def close(self) -> None:
        if self._serial.is_open:
            self._serial.close()
            logger.info("Closed %s", self.settings.port)


def encode_orp(value: int) -> bytes:
    """Inverse of the sensor's ORP encoding: bit 6 of the high byte is the sign, 14-bit magnitude."""
    magnitude = min(abs(int(value)), 0x3FFF)
    hi = (magnitude >> 8) & 0x3F
    if value < 0:
        hi |= 0x40
    return bytes([hi, magnitude & 0xFF])


class SimulatedSensor:
    """
    In-process stand-in for the sensor.

    Replies to a read-holding-registers request with a 16-byte response whose
    second word carries pH or ORP depending on the last format written.
    Writes with a bad CRC or for another address are ignored, like the device.
    """

    def __init__(
        self,
        address: int = 0x01,
        *,
        seed: Optional[int] = None,
        cf: float = 1.20,
        ph: float = 7.0,
        orp: float = 250.0,
        humidity: int = 55,
        temperature: float = 26.5,
    ) -> None:
        self.address = address
        self.format = ResponseFormat.PH
        self._rng = np.random.default_rng(seed)
        self._base = {"cf": cf, "ph": ph, "orp": orp, "humidity": humidity, "temperature": temperature}
        self._pending = bytearray()
        self._lock = threading.Lock()
        self.closed = False
        self.requests = 0

    def write(self, data: bytes) -> int:
        frame = bytes(data)
        if len(frame) != 8 or frame[0] != self.address:
            return len(frame)
        if crc16_modbus(frame, 0, 6) != struct.unpack_from("<H", frame, 6)[0]:
            logger.debug("Simulated sensor ignoring frame with bad CRC")
            return len(frame)
        function = frame[1]
        register, value = struct.unpack_from(">HH", frame, 2)
        if function == FUNC_WRITE_SINGLE and register == FORMAT_REGISTER:
            self.format = ResponseFormat.ORP if value == 0x01 else ResponseFormat.PH
        elif function == FUNC_READ_HOLDING:
            self.requests += 1
            with self._lock:
                self._pending.extend(self._response())
        return len(frame)

    def read(self, size: int = 1) -> bytes:
        with self._lock:
            chunk = bytes(self._pending[:size])
            del self._pending[:size]
        return chunk

    def reset_input_buffer(self) -> None:
        with self._lock:
            self._pending.clear()

    def close(self) -> None:
        self.closed = True

    def _response(self) -> bytes:
        base = self._base
        noise = self._rng.normal(size=5)
        cf_raw = max(int(round((base["cf"] + 0.02 * noise[0]) * 100)), 0)
        if self.format is ResponseFormat.PH:
            ph = float(np.clip(base["ph"] + 0.05 * noise[1], 0.0, 14.0))
            selected = struct.pack(">H", int(round(ph * 100)))
        else:
            selected = encode_orp(int(round(base["orp"] + 5.0 * noise[1])))
        humidity = int(np.clip(base["humidity"] + noise[2], 0, 100))
        temp_raw = max(int(round((base["temperature"] + 0.1 * noise[3]) * 10)), 0)
        body = (
            bytes([self.address, FUNC_READ_HOLDING, 0x0C, 0x00])
            + struct.pack(">H", cf_raw)
            + selected
            + struct.pack(">HH", humidity, temp_raw)
            + b"\x00\x00"
        )
        return append_crc(body)


def open_transport(settings: SerialSettings, *, simulate: bool = False) -> Transport:
    if simulate:
        logger.info("Using simulated sensor (address 0x%02X)", settings.address)
        return SimulatedSensor(settings.address)
    return SerialTransport(settings)
