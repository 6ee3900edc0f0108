"""Checksums and hashes used by the on-disk formats: CRC-32C and BLAKE3."""

from __future__ import annotations

import struct
from dataclasses import dataclass

_CRC32C_POLY = 0x82F63B78


def _build_crc_table() -> tuple[int, ...]:
    table = []
    for byte in range(256):
        crc = byte
        for _ in range(8):
            crc = (crc >> 1) ^ _CRC32C_POLY if crc & 1 else crc >> 1
        table.append(crc)
    return tuple(table)


_CRC_TABLE = _build_crc_table()


def crc32c(data: bytes) -> int:
    """Return the CRC-32C (Castagnoli) checksum of ``data``."""
    crc = 0xFFFFFFFF
    table = _CRC_TABLE
    for byte in bytes(data):
        crc = table[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF


# --- BLAKE3 (default hash mode, 32-byte output) ---------------------------

_MASK = 0xFFFFFFFF
_BLOCK_LEN = 64
_CHUNK_LEN = 1024

_CHUNK_START = 1 << 0
_CHUNK_END = 1 << 1
_PARENT = 1 << 2
_ROOT = 1 << 3

_IV = (
    0x6A09E667,
    0xBB67AE85,
    0x3C6EF372,
    0xA54FF53A,
    0x510E527F,
    0x9B05688C,
    0x1F83D9AB,
    0x5BE0CD19,
)

_MSG_PERMUTATION = (2, 6, 3, 10, 7, 0, 4, 13, 1, 11, 12, 5, 9, 14, 15, 8)


def _rotr(value: int, shift: int) -> int:
    return ((value >> shift) | (value << (32 - shift))) & _MASK


def _g(s: list[int], a: int, b: int, c: int, d: int, mx: int, my: int) -> None:
    s[a] = (s[a] + s[b] + mx) & _MASK
    s[d] = _rotr(s[d] ^ s[a], 16)
    s[c] = (s[c] + s[d]) & _MASK
    s[b] = _rotr(s[b] ^ s[c], 12)
    s[a] = (s[a] + s[b] + my) & _MASK
    s[d] = _rotr(s[d] ^ s[a], 8)
    s[c] = (s[c] + s[d]) & _MASK
    s[b] = _rotr(s[b] ^ s[c], 7)


def _round(s: list[int], m: list[int]) -> None:
    _g(s, 0, 4, 8, 12, m[0], m[1])
    _g(s, 1, 5, 9, 13, m[2], m[3])
    _g(s, 2, 6, 10, 14, m[4], m[5])
    _g(s, 3, 7, 11, 15, m[6], m[7])
    _g(s, 0, 5, 10, 15, m[8], m[9])
    _g(s, 1, 6, 11, 12, m[10], m[11])
    _g(s, 2, 7, 8, 13, m[12], m[13])
    _g(s, 3, 4, 9, 14, m[14], m[15])


def _compress(
    cv: tuple[int, ...], block_words: tuple[int, ...], counter: int, block_len: int, flags: int
) -> list[int]:
    state = [
        *cv,
        *_IV[:4],
        counter & _MASK,
        (counter >> 32) & _MASK,
        block_len,
        flags,
    ]
    message = list(block_words)
    for round_number in range(7):
        _round(state, message)
        if round_number < 6:
            message = [message[i] for i in _MSG_PERMUTATION]
    for i in range(8):
        state[i] ^= state[i + 8]
        state[i + 8] ^= cv[i]
    return state


def _words(block: bytes) -> tuple[int, ...]:
    return struct.unpack("<16I", block.ljust(_BLOCK_LEN, b"\x00"))


@dataclass(frozen=True)
class _Output:
    input_cv: tuple[int, ...]
    block_words: tuple[int, ...]
    counter: int
    block_len: int
    flags: int

    def chaining_value(self) -> tuple[int, ...]:
        return tuple(
            _compress(self.input_cv, self.block_words, self.counter, self.block_len, self.flags)[:8]
        )

    def root_bytes(self) -> bytes:
        words = _compress(self.input_cv, self.block_words, 0, self.block_len, self.flags | _ROOT)
        return struct.pack("<16I", *words)[:32]


def _chunk_output(chunk: bytes, counter: int) -> _Output:
    blocks = [chunk[i : i + _BLOCK_LEN] for i in range(0, len(chunk), _BLOCK_LEN)] or [b""]
    cv = _IV
    for position, block in enumerate(blocks[:-1]):
        start = _CHUNK_START if position == 0 else 0
        cv = tuple(_compress(cv, _words(block), counter, _BLOCK_LEN, start)[:8])
    last = blocks[-1]
    start = _CHUNK_START if len(blocks) == 1 else 0
    return _Output(cv, _words(last), counter, len(last), start | _CHUNK_END)


def _parent_output(left: tuple[int, ...], right: tuple[int, ...]) -> _Output:
    return _Output(_IV, left + right, 0, _BLOCK_LEN, _PARENT)


def blake3_hash(data: bytes) -> bytes:
    """Return the 32-byte BLAKE3 digest of ``data``."""
    data = bytes(data)
    chunks = [data[i : i + _CHUNK_LEN] for i in range(0, len(data), _CHUNK_LEN)] or [b""]
    cv_stack: list[tuple[int, ...]] = []
    for counter, chunk in enumerate(chunks[:-1]):
        cv = _chunk_output(chunk, counter).chaining_value()
        total_chunks = counter + 1
        while total_chunks & 1 == 0:
            cv = _parent_output(cv_stack.pop(), cv).chaining_value()
            total_chunks >>= 1
        cv_stack.append(cv)
    output = _chunk_output(chunks[-1], len(chunks) - 1)
    while cv_stack:
        output = _parent_output(cv_stack.pop(), output.chaining_value())
    return output.root_bytes()