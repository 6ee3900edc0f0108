"""Compact little-endian binary encoding for records and messages."""

from __future__ import annotations

import struct


class DecodeError(ValueError):
    """Raised when encoded bytes cannot be decoded."""


_INT_FORMATS = {8: "<B", 16: "<H", 32: "<I", 64: "<Q"}


class Encoder:
    """Accumulates encoded values into a byte string."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def _write_int(self, bits: int, value: int) -> None:
        if not 0 <= value < (1 << bits):
            raise ValueError(f"value {value} does not fit in an unsigned {bits}-bit integer")
        self._buffer += struct.pack(_INT_FORMATS[bits], value)

    def write_u8(self, value: int) -> None:
        self._write_int(8, value)

    def write_u16(self, value: int) -> None:
        self._write_int(16, value)

    def write_u32(self, value: int) -> None:
        self._write_int(32, value)

    def write_u64(self, value: int) -> None:
        self._write_int(64, value)

    def write_bool(self, value: bool) -> None:
        self._buffer.append(1 if value else 0)

    def write_fixed(self, data: bytes) -> None:
        """Write raw bytes with no length prefix."""
        self._buffer += data

    def write_bytes(self, data: bytes) -> None:
        """Write a u64 length prefix followed by the bytes."""
        self.write_u64(len(data))
        self._buffer += data

    def write_str(self, text: str) -> None:
        self.write_bytes(text.encode("utf-8"))

    def getvalue(self) -> bytes:
        return bytes(self._buffer)


class Decoder:
    """Reads values written by :class:`Encoder` from a byte string."""

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def _take(self, size: int) -> bytes:
        if size > self.remaining:
            raise DecodeError(
                f"unexpected end of input: need {size} bytes at offset {self._pos}, "
                f"{self.remaining} left"
            )
        chunk = self._data[self._pos : self._pos + size]
        self._pos += size
        return chunk

    def _read_int(self, bits: int) -> int:
        return struct.unpack(_INT_FORMATS[bits], self._take(bits // 8))[0]

    def read_u8(self) -> int:
        return self._read_int(8)

    def read_u16(self) -> int:
        return self._read_int(16)

    def read_u32(self) -> int:
        return self._read_int(32)

    def read_u64(self) -> int:
        return self._read_int(64)

    def read_bool(self) -> bool:
        value = self.read_u8()
        if value > 1:
            raise DecodeError(f"invalid boolean byte {value}")
        return value == 1

    def read_fixed(self, size: int) -> bytes:
        return self._take(size)

    def read_bytes(self) -> bytes:
        return self._take(self.read_u64())

    def read_str(self) -> str:
        raw = self.read_bytes()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"invalid utf-8 string: {exc}") from exc

    def finish(self) -> None:
        """Raise if any input is left unread."""
        if self.remaining:
            raise DecodeError(f"{self.remaining} trailing bytes after decoding")