from __future__ import annotations

import enum
import logging
import struct
from typing import TYPE_CHECKING, Optional

from .errors import CrcMismatchError, TransportIoError

if TYPE_CHECKING:
    from .transport import Transport


logger = logging.getLogger(__name__)

FUNC_READ_HOLDING = 0x03
FUNC_WRITE_SINGLE = 0x06
DATA_REGISTER_START = 0x0000
DATA_REGISTER_COUNT = 4
FORMAT_REGISTER = 0x0005
RESPONSE_LENGTH = 16


class ResponseFormat(str, enum.Enum):
    """Which of pH / ORP the sensor reports in the shared data register."""

    PH = "ph"
    ORP = "orp"

    @property
    def register_value(self) -> int:
        return 0x01 if self is ResponseFormat.ORP else 0x00

    def toggled(self) -> "ResponseFormat":
        return ResponseFormat.PH if self is ResponseFormat.ORP else ResponseFormat.ORP


def crc16_modbus(data: bytes, offset: int = 0, count: Optional[int] = None) -> int:
    """CRC-16/MODBUS (reflected poly 0xA001, init 0xFFFF) over ``count`` bytes from ``offset``."""
    end = len(data) if count is None else min(len(data), offset + count)
    crc = 0xFFFF
    for byte in data[offset:end]:
        crc ^= byte
        for _ in range(8):
            if crc & 0x0001:
                crc = (crc >> 1) ^ 0xA001
            else:
                crc >>= 1
    return crc


def append_crc(frame: bytes) -> bytes:
    return bytes(frame) + struct.pack("<H", crc16_modbus(frame))


def verify_crc(frame: bytes) -> None:
    """Raise :class:`CrcMismatchError` unless the trailing two bytes match the body CRC."""
    if len(frame) < 3:
        raise TransportIoError(f"Frame too short for CRC check ({len(frame)} bytes)")
    expected = struct.unpack_from("<H", frame, len(frame) - 2)[0]
    computed = crc16_modbus(frame, 0, len(frame) - 2)
    if expected != computed:
        raise CrcMismatchError(expected=expected, computed=computed)


def build_read_command(address: int) -> bytes:
    body = struct.pack(">BBHH", address, FUNC_READ_HOLDING, DATA_REGISTER_START, DATA_REGISTER_COUNT)
    return append_crc(body)


def build_set_format_command(address: int, fmt: ResponseFormat) -> bytes:
    body = struct.pack(">BBHH", address, FUNC_WRITE_SINGLE, FORMAT_REGISTER, fmt.register_value)
    return append_crc(body)


def read_exact(transport: Transport, n: int) -> bytes:
    """
    Accumulate exactly ``n`` bytes from the transport.

    There is no deadline here: each ``transport.read`` blocks for at most the
    transport's own timeout, and an empty read means that timeout elapsed.
    """
    buffer = bytearray()
    while len(buffer) < n:
        chunk = transport.read(n - len(buffer))
        if not chunk:
            raise TransportIoError(f"Timeout waiting for response ({len(buffer)} of {n} bytes)")
        buffer.extend(chunk)
    return bytes(buffer)


def issue_read_data(transport: Transport, address: int) -> bytes:
    command = build_read_command(address)
    transport.reset_input_buffer()
    transport.write(command)
    response = read_exact(transport, RESPONSE_LENGTH)
    verify_crc(response)
    logger.debug("RX %s", response.hex(" "))
    return response


def issue_set_response_format(transport: Transport, address: int, fmt: ResponseFormat) -> None:
    # The sensor does not reliably answer this write, so no reply is awaited.
    command = build_set_format_command(address, fmt)
    transport.reset_input_buffer()
    transport.write(command)
    logger.debug("Requested %s response format", fmt.value)
