"""Snapshot files: a 64-byte checksummed header followed by serialized state."""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass
from pathlib import Path

from chronon.checksums import crc32c

SNAPSHOT_MAGIC = b"SNAP"
SNAPSHOT_VERSION = 1
SNAPSHOT_HEADER_SIZE = 64

_HEADER_PREFIX = struct.Struct("<4sHHQQ16sQI")  # bytes 0..52
_U64_MAX = (1 << 64) - 1


class SnapshotError(Exception):
    """Base class for snapshot load failures."""


class InvalidMagic(SnapshotError):
    def __init__(self) -> None:
        super().__init__("Invalid snapshot magic")


class UnsupportedVersion(SnapshotError):
    def __init__(self, version: int) -> None:
        super().__init__(f"Unsupported version: {version}")
        self.version = version


class HeaderChecksumMismatch(SnapshotError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Header checksum mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class StateChecksumMismatch(SnapshotError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"State checksum mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class FileTooSmall(SnapshotError):
    def __init__(self) -> None:
        super().__init__("File too small for snapshot header")


class StateSizeMismatch(SnapshotError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"State size mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


@dataclass
class SnapshotManifest:
    """A state snapshot; ``chain_hash`` links it to the log entries after it."""

    last_included_index: int
    last_included_term: int
    chain_hash: bytes
    state: bytes
    side_effects_dropped: bool = True

    def __post_init__(self) -> None:
        if len(self.chain_hash) != 16:
            raise ValueError(f"chain_hash must be 16 bytes, got {len(self.chain_hash)}")
        self.chain_hash = bytes(self.chain_hash)
        self.state = bytes(self.state)

    def serialize_header(self) -> bytes:
        header = bytearray(SNAPSHOT_HEADER_SIZE)
        _HEADER_PREFIX.pack_into(
            header,
            0,
            SNAPSHOT_MAGIC,
            SNAPSHOT_VERSION,
            0,
            self.last_included_index,
            self.last_included_term,
            self.chain_hash,
            len(self.state),
            crc32c(self.state),
        )
        header[56] = 1 if self.side_effects_dropped else 0
        struct.pack_into("<I", header, 52, crc32c(header[:52]))
        return bytes(header)

    def save_to_file(self, path: str | os.PathLike[str]) -> None:
        """Write atomically: temporary file, fsync, rename, then fsync the directory."""
        path = Path(path)
        parent = path.parent
        parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_name(f"{path.stem}.snap.tmp")

        with open(temp_path, "wb") as handle:
            handle.write(self.serialize_header())
            handle.write(self.state)
            handle.flush()
            os.fsync(handle.fileno())

        os.replace(temp_path, path)

        try:
            dir_fd = os.open(parent, os.O_RDONLY)
        except OSError:
            return
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)

    @classmethod
    def load_from_file(cls, path: str | os.PathLike[str]) -> SnapshotManifest:
        with open(path, "rb") as handle:
            header = handle.read(SNAPSHOT_HEADER_SIZE)
            if len(header) < SNAPSHOT_HEADER_SIZE:
                raise FileTooSmall()

            (
                magic,
                version,
                _reserved,
                last_included_index,
                last_included_term,
                chain_hash,
                state_size,
                stored_state_checksum,
            ) = _HEADER_PREFIX.unpack_from(header)

            if magic != SNAPSHOT_MAGIC:
                raise InvalidMagic()
            if version != SNAPSHOT_VERSION:
                raise UnsupportedVersion(version)

            (stored_header_checksum,) = struct.unpack_from("<I", header, 52)
            computed_header_checksum = crc32c(header[:52])
            if stored_header_checksum != computed_header_checksum:
                raise HeaderChecksumMismatch(stored_header_checksum, computed_header_checksum)

            side_effects_dropped = header[56] != 0
            state = handle.read(state_size)

        if len(state) != state_size:
            raise StateSizeMismatch(state_size, len(state))

        computed_state_checksum = crc32c(state)
        if stored_state_checksum != computed_state_checksum:
            raise StateChecksumMismatch(stored_state_checksum, computed_state_checksum)

        return cls(
            last_included_index=last_included_index,
            last_included_term=last_included_term,
            chain_hash=chain_hash,
            state=state,
            side_effects_dropped=side_effects_dropped,
        )

    @staticmethod
    def filename_for_index(index: int) -> str:
        return f"snapshot_{index:020d}.snap"

    @staticmethod
    def index_from_filename(filename: str) -> int | None:
        if not filename.startswith("snapshot_") or not filename.endswith(".snap"):
            return None
        if len(filename) != 34:
            return None
        digits = filename[9:29]
        if digits.startswith("+"):
            digits = digits[1:]
        if not digits or not all("0" <= ch <= "9" for ch in digits):
            return None
        value = int(digits)
        return value if value <= _U64_MAX else None