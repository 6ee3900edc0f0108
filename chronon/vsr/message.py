"""Replication protocol messages and their binary wire format."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Optional, Union

from chronon.codec import DecodeError, Decoder, Encoder


def _write_opt_u64(encoder: Encoder, value: Optional[int]) -> None:
    if value is None:
        encoder.write_u8(0)
    else:
        encoder.write_u8(1)
        encoder.write_u64(value)


def _read_opt_u64(decoder: Decoder) -> Optional[int]:
    flag = decoder.read_u8()
    if flag == 0:
        return None
    if flag == 1:
        return decoder.read_u64()
    raise DecodeError(f"invalid option tag {flag}")


@dataclass(frozen=True)
class PreparedEntry:
    """One entry of a batched prepare."""

    index: int
    payload: bytes

    def _encode(self, encoder: Encoder) -> None:
        encoder.write_u64(self.index)
        encoder.write_bytes(self.payload)

    @classmethod
    def _decode(cls, decoder: Decoder) -> PreparedEntry:
        return cls(decoder.read_u64(), decoder.read_bytes())


@dataclass(frozen=True)
class CatchUpEntry:
    """A log entry with the metadata a lagging backup needs to replay it."""

    index: int
    payload: bytes
    timestamp_ns: int
    stream_id: int
    flags: int

    def _encode(self, encoder: Encoder) -> None:
        encoder.write_u64(self.index)
        encoder.write_bytes(self.payload)
        encoder.write_u64(self.timestamp_ns)
        encoder.write_u64(self.stream_id)
        encoder.write_u16(self.flags)

    @classmethod
    def _decode(cls, decoder: Decoder) -> CatchUpEntry:
        return cls(
            decoder.read_u64(),
            decoder.read_bytes(),
            decoder.read_u64(),
            decoder.read_u64(),
            decoder.read_u16(),
        )


@dataclass(frozen=True)
class LogEntrySummary:
    """A log entry exchanged during view change reconciliation."""

    index: int
    payload: bytes

    def _encode(self, encoder: Encoder) -> None:
        encoder.write_u64(self.index)
        encoder.write_bytes(self.payload)

    @classmethod
    def _decode(cls, decoder: Decoder) -> LogEntrySummary:
        return cls(decoder.read_u64(), decoder.read_bytes())


@dataclass(frozen=True)
class ClientRequest:
    """A client request carrying its idempotency key."""

    client_id: int
    sequence_number: int
    payload: bytes


@dataclass(frozen=True)
class Success:
    log_index: int


@dataclass(frozen=True)
class Failure:
    message: str


@dataclass(frozen=True)
class NotThePrimary:
    leader_hint: Optional[int] = None


@dataclass(frozen=True)
class Pending:
    """The request has not been committed yet."""


ClientResult = Union[Success, Failure, NotThePrimary, Pending]


@dataclass(frozen=True)
class ClientResponse:
    sequence_number: int
    result: ClientResult


def _encode_list(encoder: Encoder, items: list) -> None:
    encoder.write_u64(len(items))
    for item in items:
        item._encode(encoder)


def _decode_list(decoder: Decoder, item_type: type) -> list:
    return [item_type._decode(decoder) for _ in range(decoder.read_u64())]


@dataclass(frozen=True)
class Prepare:
    """Primary to backups: replicate one entry; ``commit_index`` None means nothing committed."""

    view: int
    index: int
    payload: bytes
    commit_index: Optional[int]
    timestamp_ns: int

    def _encode(self, encoder: Encoder) -> None:
        encoder.write_u64(self.view)
        encoder.write_u64(self.index)
        encoder.write_bytes(self.payload)
        _write_opt_u64(encoder, self.commit_index)
        encoder.write_u64(self.timestamp_ns)

    @classmethod
    def _decode(cls, decoder: Decoder) -> Prepare:
        return cls(
            decoder.read_u64(),
            decoder.read_u64(),
            decoder.read_bytes(),
            _read_opt_u64(decoder),
            decoder.read_u64(),
        )


@dataclass(frozen=True)
class PrepareBatch:
    """Primary to backups: replicate consecutive entries starting at ``start_index``."""

    view: int
    start_index: int
    entries: list[PreparedEntry] = field(default_factory=list)
    commit_index: Optional[int] = None
    timestamp_ns: int = 0

    def _encode(self, encoder: Encoder) -> None:
        encoder.write_u64(self.view)
        encoder.write_u64(self.start_index)
        _encode_list(encoder, self.entries)
        _write_opt_u64(encoder, self.commit_index)
        encoder.write_u64(self.timestamp_ns)

    @classmethod
    def _decode(cls, decoder: Decoder) -> PrepareBatch:
        return cls(
            decoder.read_u64(),
            decoder.read_u64(),
            _decode_list(decoder, PreparedEntry),
            _read_opt_u64(decoder),
            decoder.read_u64(),
        )


@dataclass(frozen=True)
class PrepareOk:
    """Backup to primary: the entry at ``index`` is durable."""

    index: int
    node_id: int

    def _encode(self, encoder: Encoder) -> None:
        encoder.write_u64(self.index)
        encoder.write_u32(self.node_id)

    @classmethod
    def _decode(cls, decoder: Decoder) -> PrepareOk:
        return cls(decoder.read_u64(), decoder.read_u32())


@dataclass(frozen=True)
class Commit:
    """Commit notification, also sent as a heartbeat."""

    view: int
    commit_index: int

    def _encode(self, encoder: Encoder) -> None:
        encoder.write_u64(self.view)
        encoder.write_u64(self.commit_index)

    @classmethod
    def _decode(cls, decoder: Decoder) -> Commit:
        return cls(decoder.read_u64(), decoder.read_u64())


@dataclass(frozen=True)
class StartViewChange:
    new_view: int
    node_id: int

    def _encode(self, encoder: Encoder) -> None:
        encoder.write_u64(self.new_view)
        encoder.write_u32(self.node_id)

    @classmethod
    def _decode(cls, decoder: Decoder) -> StartViewChange:
        return cls(decoder.read_u64(), decoder.read_u32())


@dataclass(frozen=True)
class DoViewChange:
    """A node's log state, sent to the prospective primary of ``new_view``."""

    new_view: int
    node_id: int
    commit_index: int
    last_log_index: int
    last_log_hash: bytes
    log_suffix: list[LogEntrySummary] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.last_log_hash) != 16:
            raise ValueError(f"last_log_hash must be 16 bytes, got {len(self.last_log_hash)}")

    def _encode(self, encoder: Encoder) -> None:
        encoder.write_u64(self.new_view)
        encoder.write_u32(self.node_id)
        encoder.write_u64(self.commit_index)
        encoder.write_u64(self.last_log_index)
        encoder.write_fixed(bytes(self.last_log_hash))
        _encode_list(encoder, self.log_suffix)

    @classmethod
    def _decode(cls, decoder: Decoder) -> DoViewChange:
        return cls(
            decoder.read_u64(),
            decoder.read_u32(),
            decoder.read_u64(),
            decoder.read_u64(),
            decoder.read_fixed(16),
            _decode_list(decoder, LogEntrySummary),
        )


@dataclass(frozen=True)
class StartView:
    """The new primary's reconciled log state."""

    new_view: int
    primary_id: int
    commit_index: int
    last_log_index: int
    log_entries: list[LogEntrySummary] = field(default_factory=list)

    def _encode(self, encoder: Encoder) -> None:
        encoder.write_u64(self.new_view)
        encoder.write_u32(self.primary_id)
        encoder.write_u64(self.commit_index)
        encoder.write_u64(self.last_log_index)
        _encode_list(encoder, self.log_entries)

    @classmethod
    def _decode(cls, decoder: Decoder) -> StartView:
        return cls(
            decoder.read_u64(),
            decoder.read_u32(),
            decoder.read_u64(),
            decoder.read_u64(),
            _decode_list(decoder, LogEntrySummary),
        )


@dataclass(frozen=True)
class CatchUpRequest:
    """Backup asks for entries ``from_index`` to ``to_index`` inclusive."""

    view: int
    node_id: int
    from_index: int
    to_index: int

    def _encode(self, encoder: Encoder) -> None:
        encoder.write_u64(self.view)
        encoder.write_u32(self.node_id)
        encoder.write_u64(self.from_index)
        encoder.write_u64(self.to_index)

    @classmethod
    def _decode(cls, decoder: Decoder) -> CatchUpRequest:
        return cls(decoder.read_u64(), decoder.read_u32(), decoder.read_u64(), decoder.read_u64())


@dataclass(frozen=True)
class CatchUpResponse:
    view: int
    entries: list[CatchUpEntry] = field(default_factory=list)
    has_more: bool = False
    commit_index: int = 0

    def _encode(self, encoder: Encoder) -> None:
        encoder.write_u64(self.view)
        _encode_list(encoder, self.entries)
        encoder.write_bool(self.has_more)
        encoder.write_u64(self.commit_index)

    @classmethod
    def _decode(cls, decoder: Decoder) -> CatchUpResponse:
        return cls(
            decoder.read_u64(),
            _decode_list(decoder, CatchUpEntry),
            decoder.read_bool(),
            decoder.read_u64(),
        )


VsrMessage = Union[
    Prepare,
    PrepareBatch,
    PrepareOk,
    Commit,
    StartViewChange,
    DoViewChange,
    StartView,
    CatchUpRequest,
    CatchUpResponse,
]

_MESSAGE_TYPES: tuple[type, ...] = (
    Prepare,
    PrepareBatch,
    PrepareOk,
    Commit,
    StartViewChange,
    DoViewChange,
    StartView,
    CatchUpRequest,
    CatchUpResponse,
)

_MESSAGE_TAGS: ClassVar = None  # placeholder removed below
del _MESSAGE_TAGS
_TAG_BY_TYPE = {message_type: tag for tag, message_type in enumerate(_MESSAGE_TYPES)}


def serialize_message(message: VsrMessage) -> bytes:
    """Encode a message as a u32 variant tag followed by its fields."""
    tag = _TAG_BY_TYPE.get(type(message))
    if tag is None:
        raise TypeError(f"not a protocol message: {message!r}")
    encoder = Encoder()
    encoder.write_u32(tag)
    message._encode(encoder)
    return encoder.getvalue()


def deserialize_message(data: bytes) -> VsrMessage:
    """Decode a message; raises DecodeError on malformed input."""
    decoder = Decoder(data)
    tag = decoder.read_u32()
    if tag >= len(_MESSAGE_TYPES):
        raise DecodeError(f"unknown message variant {tag}")
    return _MESSAGE_TYPES[tag]._decode(decoder)


def message_index(message: VsrMessage) -> Optional[int]:
    """Return the log index a message refers to, if any."""
    if isinstance(message, (Prepare, PrepareOk)):
        return message.index
    if isinstance(message, PrepareBatch):
        if not message.entries:
            return message.start_index
        return message.start_index + len(message.entries) - 1
    if isinstance(message, CatchUpRequest):
        return message.to_index
    if isinstance(message, CatchUpResponse):
        return message.entries[-1].index if message.entries else None
    if isinstance(message, (Commit, StartViewChange, DoViewChange, StartView)):
        return None
    raise TypeError(f"not a protocol message: {message!r}")