"""Register decoding for the sensor's 16-byte read response."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import TransportIoError
from .frames import RESPONSE_LENGTH, ResponseFormat


@dataclass(frozen=True)
class PartialReading:
    """Values carried by one response. Only the field matching ``fmt`` is set."""

    fmt: ResponseFormat
    cf: float
    relative_value: int
    temperature: float
    ph: Optional[float] = None
    orp: Optional[int] = None

    @property
    def ec(self) -> float:
        return self.cf / 10.0

    @property
    def tds(self) -> float:
        return self.cf * 50.0


def _word(response: bytes, offset: int) -> int:
    return (response[offset] << 8) | response[offset + 1]


def decode_orp(hi: int, lo: int) -> int:
    sign = -1 if hi & 0x40 else 1
    return sign * (((hi & 0x3F) << 8) | lo)


def decode_response(response: bytes, fmt: ResponseFormat) -> PartialReading:
    # Words sit at fixed byte offsets 4, 6, 8 and 10 of the response.
    if len(response) != RESPONSE_LENGTH:
        raise TransportIoError(f"Expected {RESPONSE_LENGTH}-byte response, got {len(response)}")
    cf = _word(response, 4) / 100.0
    relative_value = _word(response, 8)
    temperature = _word(response, 10) / 10.0
    if fmt is ResponseFormat.PH:
        return PartialReading(fmt, cf, relative_value, temperature, ph=_word(response, 6) / 100.0)
    return PartialReading(fmt, cf, relative_value, temperature, orp=decode_orp(response[6], response[7]))
