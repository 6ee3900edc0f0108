"""Core types shared by the executor and applications."""

from __future__ import annotations

import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from chronon.checksums import blake3_hash
from chronon.codec import DecodeError, Decoder, Encoder


@dataclass(frozen=True, order=True)
class BlockTime:
    """Consensus time of an event, in nanoseconds since the Unix epoch."""

    nanos: int

    @classmethod
    def from_nanos(cls, nanos: int) -> BlockTime:
        return cls(nanos)

    def as_millis(self) -> int:
        return self.nanos // 1_000_000

    def as_secs(self) -> int:
        return self.nanos // 1_000_000_000


@dataclass(frozen=True)
class ApplyContext:
    """Deterministic inputs available to an application while applying an event."""

    block_time: BlockTime
    random_seed: bytes
    event_index: int
    view_id: int


@dataclass(frozen=True)
class EventFlags:
    config_change: bool = False
    tombstone: bool = False
    checkpoint: bool = False

    @classmethod
    def from_bits(cls, bits: int) -> EventFlags:
        return cls(
            config_change=bool(bits & 0x01),
            tombstone=bool(bits & 0x02),
            checkpoint=bool(bits & 0x04),
        )


@dataclass(frozen=True)
class EventHeader:
    index: int
    view_id: int
    stream_id: int
    schema_version: int
    flags: EventFlags = field(default_factory=EventFlags)


@dataclass(frozen=True)
class Event:
    header: EventHeader
    payload: bytes


@dataclass(frozen=True)
class EffectId:
    """16-byte identifier of a side effect."""

    value: bytes

    def __post_init__(self) -> None:
        if len(self.value) != 16:
            raise ValueError(f"EffectId must be 16 bytes, got {len(self.value)}")
        object.__setattr__(self, "value", bytes(self.value))

    @classmethod
    def new(cls, client_id: int, sequence_number: int, sub_index: int) -> EffectId:
        digest = blake3_hash(struct.pack("<QQI", client_id, sequence_number, sub_index))
        return cls(digest[:16])

    def __str__(self) -> str:
        return self.value[:8].hex()


class SideEffectStatus(Enum):
    PENDING = 0
    ACKNOWLEDGED = 1


class LogLevel(Enum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3


@dataclass(frozen=True)
class EmitEffect:
    channel: str
    payload: bytes


@dataclass(frozen=True)
class ScheduleEffect:
    delay_ms: int
    payload: bytes


@dataclass(frozen=True)
class FetchEffect:
    request_id: int
    uri: str


@dataclass(frozen=True)
class LogEffect:
    level: LogLevel
    message: str


SideEffect = Union[EmitEffect, ScheduleEffect, FetchEffect, LogEffect]


def encode_side_effect(effect: SideEffect, encoder: Encoder) -> None:
    """Write a side effect as a variant tag followed by its fields."""
    if isinstance(effect, EmitEffect):
        encoder.write_u32(0)
        encoder.write_str(effect.channel)
        encoder.write_bytes(effect.payload)
    elif isinstance(effect, ScheduleEffect):
        encoder.write_u32(1)
        encoder.write_u64(effect.delay_ms)
        encoder.write_bytes(effect.payload)
    elif isinstance(effect, FetchEffect):
        encoder.write_u32(2)
        encoder.write_u64(effect.request_id)
        encoder.write_str(effect.uri)
    elif isinstance(effect, LogEffect):
        encoder.write_u32(3)
        encoder.write_u32(effect.level.value)
        encoder.write_str(effect.message)
    else:
        raise TypeError(f"not a side effect: {effect!r}")


def decode_side_effect(decoder: Decoder) -> SideEffect:
    tag = decoder.read_u32()
    if tag == 0:
        return EmitEffect(decoder.read_str(), decoder.read_bytes())
    if tag == 1:
        return ScheduleEffect(decoder.read_u64(), decoder.read_bytes())
    if tag == 2:
        return FetchEffect(decoder.read_u64(), decoder.read_str())
    if tag == 3:
        level_value = decoder.read_u32()
        try:
            level = LogLevel(level_value)
        except ValueError as exc:
            raise DecodeError(f"unknown log level {level_value}") from exc
        return LogEffect(level, decoder.read_str())
    raise DecodeError(f"unknown side effect variant {tag}")


@dataclass
class OutboxEntry:
    effect: SideEffect
    status: SideEffectStatus
    created_at_index: int


@dataclass
class Outbox:
    """Side effects recorded in state, tracked until acknowledged."""

    entries: dict[EffectId, OutboxEntry] = field(default_factory=dict)

    def add_pending(self, effect_id: EffectId, effect: SideEffect, created_at_index: int) -> None:
        self.entries[effect_id] = OutboxEntry(effect, SideEffectStatus.PENDING, created_at_index)

    def acknowledge(self, effect_id: EffectId) -> bool:
        """Mark a pending effect acknowledged; return whether anything changed."""
        entry = self.entries.get(effect_id)
        if entry is not None and entry.status is SideEffectStatus.PENDING:
            entry.status = SideEffectStatus.ACKNOWLEDGED
            return True
        return False

    def pending_effects(self) -> list[tuple[EffectId, OutboxEntry]]:
        return [
            (effect_id, entry)
            for effect_id, entry in self.entries.items()
            if entry.status is SideEffectStatus.PENDING
        ]

    def get(self, effect_id: EffectId) -> OutboxEntry | None:
        return self.entries.get(effect_id)

    def __contains__(self, effect_id: object) -> bool:
        return effect_id in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def pending_count(self) -> int:
        return sum(1 for entry in self.entries.values() if entry.status is SideEffectStatus.PENDING)

    def compact(self, before_index: int) -> None:
        """Drop acknowledged entries created before ``before_index``."""
        self.entries = {
            effect_id: entry
            for effect_id, entry in self.entries.items()
            if entry.status is SideEffectStatus.PENDING or entry.created_at_index >= before_index
        }

    def encode(self, encoder: Encoder) -> None:
        encoder.write_u64(len(self.entries))
        for effect_id, entry in self.entries.items():
            encoder.write_fixed(effect_id.value)
            encode_side_effect(entry.effect, encoder)
            encoder.write_u32(entry.status.value)
            encoder.write_u64(entry.created_at_index)

    @classmethod
    def decode(cls, decoder: Decoder) -> Outbox:
        entries: dict[EffectId, OutboxEntry] = {}
        for _ in range(decoder.read_u64()):
            effect_id = EffectId(decoder.read_fixed(16))
            effect = decode_side_effect(decoder)
            status_value = decoder.read_u32()
            try:
                status = SideEffectStatus(status_value)
            except ValueError as exc:
                raise DecodeError(f"unknown side effect status {status_value}") from exc
            entries[effect_id] = OutboxEntry(effect, status, decoder.read_u64())
        return cls(entries)


@dataclass(frozen=True)
class AcknowledgeEffect:
    """System event confirming that a side effect was carried out."""

    effect_id: EffectId


@dataclass(frozen=True)
class SnapshotStream:
    schema_version: int
    data: bytes


class Application(ABC):
    """A deterministic state machine driven by the executor."""

    @abstractmethod
    def apply(self, state: Any, event: Event, ctx: ApplyContext) -> tuple[Any, list[SideEffect]]:
        """Return the new state and side effects; raise an exception to reject the event."""

    @abstractmethod
    def query(self, state: Any, request: Any) -> Any:
        """Answer a read-only query against ``state``."""

    @abstractmethod
    def snapshot(self, state: Any) -> SnapshotStream:
        """Serialize ``state``."""

    @abstractmethod
    def restore(self, stream: SnapshotStream) -> Any:
        """Rebuild state from a snapshot stream."""

    @abstractmethod
    def genesis(self) -> Any:
        """Return the initial state."""