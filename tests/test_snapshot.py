import pytest

from chronon.kernel.snapshot import (
    SNAPSHOT_HEADER_SIZE,
    SNAPSHOT_MAGIC,
    FileTooSmall,
    HeaderChecksumMismatch,
    InvalidMagic,
    SnapshotManifest,
    StateChecksumMismatch,
    StateSizeMismatch,
    UnsupportedVersion,
)

CHAIN = bytes([1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11, 12, 13, 14, 15, 16])


def test_snapshot_roundtrip(tmp_path):
    path = tmp_path / "chr_snapshot_test.snap"
    manifest = SnapshotManifest(100, 5, CHAIN, b"test state data")
    manifest.save_to_file(path)

    loaded = SnapshotManifest.load_from_file(path)
    assert loaded.last_included_index == 100
    assert loaded.last_included_term == 5
    assert loaded.chain_hash == CHAIN
    assert loaded.state == b"test state data"
    assert loaded.side_effects_dropped is True


def test_snapshot_roundtrip_without_dropped_flag(tmp_path):
    path = tmp_path / "s.snap"
    SnapshotManifest(3, 1, bytes(16), b"", side_effects_dropped=False).save_to_file(path)
    loaded = SnapshotManifest.load_from_file(path)
    assert loaded.side_effects_dropped is False
    assert loaded.state == b""


def test_snapshot_invalid_magic(tmp_path):
    path = tmp_path / "chr_snapshot_test.snap"
    path.write_bytes(bytes(64))
    with pytest.raises(InvalidMagic):
        SnapshotManifest.load_from_file(path)


def test_snapshot_corrupted_header(tmp_path):
    path = tmp_path / "corrupted_header.snap"
    SnapshotManifest(100, 5, bytes(16), b"state").save_to_file(path)
    data = bytearray(path.read_bytes())
    data[10] ^= 0xFF
    path.write_bytes(bytes(data))
    with pytest.raises(HeaderChecksumMismatch):
        SnapshotManifest.load_from_file(path)


def test_snapshot_corrupted_state(tmp_path):
    path = tmp_path / "corrupted_state.snap"
    SnapshotManifest(100, 5, bytes(16), b"state data here").save_to_file(path)
    data = bytearray(path.read_bytes())
    data[70] ^= 0xFF
    path.write_bytes(bytes(data))
    with pytest.raises(StateChecksumMismatch):
        SnapshotManifest.load_from_file(path)


def test_snapshot_file_too_small(tmp_path):
    path = tmp_path / "tiny.snap"
    path.write_bytes(SNAPSHOT_MAGIC + b"\x01")
    with pytest.raises(FileTooSmall):
        SnapshotManifest.load_from_file(path)


def test_snapshot_unsupported_version(tmp_path):
    path = tmp_path / "v2.snap"
    SnapshotManifest(1, 1, bytes(16), b"state").save_to_file(path)
    data = bytearray(path.read_bytes())
    data[4] = 2
    path.write_bytes(bytes(data))
    with pytest.raises(UnsupportedVersion) as exc_info:
        SnapshotManifest.load_from_file(path)
    assert exc_info.value.version == 2


def test_snapshot_state_truncated(tmp_path):
    path = tmp_path / "short.snap"
    state = b"state data here"
    SnapshotManifest(1, 1, bytes(16), state).save_to_file(path)
    data = path.read_bytes()
    path.write_bytes(data[: SNAPSHOT_HEADER_SIZE + 3])
    with pytest.raises(StateSizeMismatch) as exc_info:
        SnapshotManifest.load_from_file(path)
    assert exc_info.value.expected == len(state)
    assert exc_info.value.actual == 3


def test_serialize_header_layout():
    header = SnapshotManifest(100, 5, CHAIN, b"state").serialize_header()
    assert len(header) == SNAPSHOT_HEADER_SIZE
    assert header[:4] == SNAPSHOT_MAGIC
    assert header[24:40] == CHAIN
    assert header[56] == 1


def test_manifest_rejects_bad_chain_hash_length():
    with pytest.raises(ValueError):
        SnapshotManifest(1, 1, b"short", b"")


def test_snapshot_filename_generation():
    assert SnapshotManifest.filename_for_index(0) == "snapshot_00000000000000000000.snap"
    assert SnapshotManifest.filename_for_index(12345) == "snapshot_00000000000000012345.snap"
    assert (
        SnapshotManifest.filename_for_index(2**64 - 1) == "snapshot_18446744073709551615.snap"
    )


def test_snapshot_filename_parsing():
    assert SnapshotManifest.index_from_filename("snapshot_00000000000000000000.snap") == 0
    assert SnapshotManifest.index_from_filename("snapshot_00000000000000012345.snap") == 12345
    assert SnapshotManifest.index_from_filename("invalid.snap") is None
    assert SnapshotManifest.index_from_filename("snapshot_abc.snap") is None


def test_snapshot_filename_parsing_rejects_overflow_and_junk():
    assert SnapshotManifest.index_from_filename("snapshot_99999999999999999999.snap") is None
    assert SnapshotManifest.index_from_filename("snapshot_0000000000000000000x.snap") is None


@pytest.mark.parametrize("index", [0, 7, 123456789, 2**64 - 1])
def test_filename_round_trip(index):
    name = SnapshotManifest.filename_for_index(index)
    assert SnapshotManifest.index_from_filename(name) == index


def test_snapshot_atomic_write(tmp_path):
    path = tmp_path / "chr_snapshot_test.snap"
    temp_path = tmp_path / "chr_snapshot_test.snap.tmp"
    SnapshotManifest(100, 5, bytes(16), b"state").save_to_file(path)
    assert not temp_path.exists()
    assert path.exists()


def test_save_creates_missing_directories(tmp_path):
    path = tmp_path / "nested" / "dir" / SnapshotManifest.filename_for_index(4)
    SnapshotManifest(4, 0, bytes(16), b"abc").save_to_file(path)
    assert SnapshotManifest.load_from_file(path).last_included_index == 4