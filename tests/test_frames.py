from __future__ import annotations

import numpy as np
import pytest

from aquamon.errors import CrcMismatchError, TransportIoError
from aquamon.frames import (
    RESPONSE_LENGTH,
    ResponseFormat,
    append_crc,
    build_read_command,
    build_set_format_command,
    crc16_modbus,
    issue_read_data,
    issue_set_response_format,
    read_exact,
    verify_crc,
)

PH_FRAME = bytes.fromhex("01030C00006402BB000A0064000077DD")


class FakeSerial:
    """Replies to every write with the next scripted response, served in small chunks."""

    def __init__(self, responses: list[bytes], chunk: int = 16):
        self.responses = list(responses)
        self.chunk = chunk
        self.written: list[bytes] = []
        self.resets = 0
        self._pending = bytearray()

    def write(self, data: bytes) -> int:
        self.written.append(bytes(data))
        if data[1] == 0x03 and self.responses:
            self._pending.extend(self.responses.pop(0))
        return len(data)

    def read(self, size: int = 1) -> bytes:
        n = min(size, self.chunk)
        out = bytes(self._pending[:n])
        del self._pending[:n]
        return out

    def reset_input_buffer(self) -> None:
        self.resets += 1
        self._pending.clear()

    def close(self) -> None:
        pass


def test_crc16_modbus_check_value():
    assert crc16_modbus(b"123456789") == 0x4B37


def test_crc16_offset_and_count():
    data = b"\xAA\xBB" + b"123456789" + b"\xCC"
    assert crc16_modbus(data, 2, 9) == 0x4B37
    # count past the end stops at the buffer end
    assert crc16_modbus(b"123456789", 0, 100) == 0x4B37


def test_append_crc_is_little_endian():
    assert append_crc(bytes.fromhex("01030000000A")) == bytes.fromhex("01030000000AC5CD")


def test_build_read_command():
    assert build_read_command(0x01) == bytes.fromhex("0103000000044409")


def test_build_set_format_command():
    assert build_set_format_command(0x01, ResponseFormat.PH) == bytes.fromhex("01060005000099CB")
    assert build_set_format_command(0x01, ResponseFormat.ORP) == bytes.fromhex("010600050001580B")


def test_verify_crc_accepts_appended_frames():
    for body in (b"\x01", bytes(range(20)), bytes.fromhex("01030C00006402BB000A00640000")):
        verify_crc(append_crc(body))
    verify_crc(PH_FRAME)


@pytest.mark.parametrize(
    "frame",
    [build_read_command(0x01), build_set_format_command(0x01, ResponseFormat.ORP), PH_FRAME],
    ids=["read-command", "set-format-command", "response"],
)
def test_single_bit_flip_fails_verification(frame: bytes):
    for index in range(len(frame)):
        for bit in range(8):
            corrupted = bytearray(frame)
            corrupted[index] ^= 1 << bit
            with pytest.raises(CrcMismatchError):
                verify_crc(bytes(corrupted))


def test_random_bodies_round_trip_and_detect_bit_flips():
    rng = np.random.default_rng(20240601)
    for _ in range(200):
        length = int(rng.integers(1, 65))
        body = rng.integers(0, 256, size=length, dtype=np.uint8).tobytes()
        frame = append_crc(body)
        verify_crc(frame)
        assert crc16_modbus(frame, 0, length) == int.from_bytes(frame[-2:], "little")

        corrupted = bytearray(frame)
        corrupted[int(rng.integers(0, len(frame)))] ^= 1 << int(rng.integers(0, 8))
        with pytest.raises(CrcMismatchError):
            verify_crc(bytes(corrupted))


def test_crc_error_reports_expected_and_computed():
    corrupted = PH_FRAME[:-1] + b"\x00"
    with pytest.raises(CrcMismatchError) as info:
        verify_crc(corrupted)
    assert info.value.expected == 0x0077
    assert info.value.computed == 0xDD77
    assert "0xDD77" in str(info.value)


def test_read_exact_accumulates_chunks():
    fake = FakeSerial([], chunk=3)
    fake._pending.extend(PH_FRAME)
    assert read_exact(fake, RESPONSE_LENGTH) == PH_FRAME


def test_read_exact_raises_on_timeout():
    fake = FakeSerial([], chunk=4)
    fake._pending.extend(PH_FRAME[:10])
    with pytest.raises(TransportIoError):
        read_exact(fake, RESPONSE_LENGTH)


def test_issue_read_data_writes_command_and_verifies():
    fake = FakeSerial([PH_FRAME], chunk=5)
    assert issue_read_data(fake, 0x01) == PH_FRAME
    assert fake.written == [bytes.fromhex("0103000000044409")]
    assert fake.resets == 1


def test_issue_read_data_crc_mismatch():
    bad = PH_FRAME[:-2] + b"\x00\x00"
    fake = FakeSerial([bad])
    with pytest.raises(CrcMismatchError) as info:
        issue_read_data(fake, 0x01)
    assert info.value.expected == 0x0000
    assert info.value.computed == 0xDD77


def test_issue_set_response_format_does_not_read():
    fake = FakeSerial([])
    issue_set_response_format(fake, 0x01, ResponseFormat.ORP)
    assert fake.written == [bytes.fromhex("010600050001580B")]
    assert fake.resets == 1


def test_response_format_toggle():
    assert ResponseFormat.PH.toggled() is ResponseFormat.ORP
    assert ResponseFormat.ORP.toggled() is ResponseFormat.PH
