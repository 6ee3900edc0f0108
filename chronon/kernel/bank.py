"""A sample banking application used to exercise the executor."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Union

from chronon.codec import DecodeError, Decoder, Encoder
from chronon.kernel.traits import (
    ApplyContext,
    Application,
    EffectId,
    EmitEffect,
    Event,
    LogEffect,
    LogLevel,
    Outbox,
    SideEffect,
    SnapshotStream,
)

_U64_MAX = (1 << 64) - 1
SNAPSHOT_SCHEMA_VERSION = 2


@dataclass
class BankState:
    """Account balances plus the outbox of pending side effects."""

    balances: dict[str, int] = field(default_factory=dict)
    outbox: Outbox = field(default_factory=Outbox)

    def balance(self, user: str) -> int:
        return self.balances.get(user, 0)

    def copy(self) -> BankState:
        return BankState(dict(self.balances), copy.deepcopy(self.outbox))


@dataclass(frozen=True)
class Deposit:
    user: str
    amount: int


@dataclass(frozen=True)
class Withdraw:
    user: str
    amount: int


@dataclass(frozen=True)
class SendEmail:
    to: str
    subject: str
    client_id: int
    sequence_number: int


@dataclass(frozen=True)
class SystemAcknowledgeEffect:
    effect_id: EffectId


@dataclass(frozen=True)
class PoisonPill:
    """An event that makes the application crash, to test halting."""


BankEvent = Union[Deposit, Withdraw, SendEmail, SystemAcknowledgeEffect, PoisonPill]


def encode_event(event: BankEvent) -> bytes:
    """Serialize a bank event as a variant tag followed by its fields."""
    encoder = Encoder()
    if isinstance(event, Deposit):
        encoder.write_u32(0)
        encoder.write_str(event.user)
        encoder.write_u64(event.amount)
    elif isinstance(event, Withdraw):
        encoder.write_u32(1)
        encoder.write_str(event.user)
        encoder.write_u64(event.amount)
    elif isinstance(event, SendEmail):
        encoder.write_u32(2)
        encoder.write_str(event.to)
        encoder.write_str(event.subject)
        encoder.write_u64(event.client_id)
        encoder.write_u64(event.sequence_number)
    elif isinstance(event, SystemAcknowledgeEffect):
        encoder.write_u32(3)
        encoder.write_fixed(event.effect_id.value)
    elif isinstance(event, PoisonPill):
        encoder.write_u32(4)
    else:
        raise TypeError(f"not a bank event: {event!r}")
    return encoder.getvalue()


def decode_event(data: bytes) -> BankEvent:
    """Deserialize a bank event; raises DecodeError on malformed input."""
    decoder = Decoder(data)
    tag = decoder.read_u32()
    if tag == 0:
        return Deposit(decoder.read_str(), decoder.read_u64())
    if tag == 1:
        return Withdraw(decoder.read_str(), decoder.read_u64())
    if tag == 2:
        return SendEmail(
            decoder.read_str(), decoder.read_str(), decoder.read_u64(), decoder.read_u64()
        )
    if tag == 3:
        return SystemAcknowledgeEffect(EffectId(decoder.read_fixed(16)))
    if tag == 4:
        return PoisonPill()
    raise DecodeError(f"unknown bank event variant {tag}")


class BankError(Exception):
    """Base class for deterministic bank errors."""


class InsufficientFunds(BankError):
    def __init__(self, user: str, requested: int, available: int) -> None:
        super().__init__(
            f"Insufficient funds for {user}: requested {requested}, available {available}"
        )
        self.user = user
        self.requested = requested
        self.available = available


class BankDeserializeError(BankError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Deserialize error: {message}")
        self.message = message


class BankSnapshotError(BankError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Snapshot error: {message}")
        self.message = message


@dataclass(frozen=True)
class BalanceQuery:
    user: str


@dataclass(frozen=True)
class AllBalancesQuery:
    pass


BankQuery = Union[BalanceQuery, AllBalancesQuery]


def _encode_balances(balances: dict[str, int], encoder: Encoder) -> None:
    encoder.write_u64(len(balances))
    for user in sorted(balances):
        encoder.write_str(user)
        encoder.write_u64(balances[user])


def _decode_balances(decoder: Decoder) -> dict[str, int]:
    return {decoder.read_str(): decoder.read_u64() for _ in range(decoder.read_u64())}


class BankApp(Application):
    """Deposits, withdrawals and e-mail side effects over a balance map."""

    def apply(
        self, state: BankState, event: Event, ctx: ApplyContext
    ) -> tuple[BankState, list[SideEffect]]:
        try:
            bank_event = decode_event(event.payload)
        except DecodeError as exc:
            raise BankDeserializeError(str(exc)) from exc

        if isinstance(bank_event, Deposit):
            new_state = state.copy()
            current = new_state.balance(bank_event.user)
            new_state.balances[bank_event.user] = min(current + bank_event.amount, _U64_MAX)
            message = f"Deposited {bank_event.amount} to {bank_event.user}"
            return new_state, [LogEffect(LogLevel.INFO, message)]

        if isinstance(bank_event, Withdraw):
            available = state.balance(bank_event.user)
            if available < bank_event.amount:
                raise InsufficientFunds(bank_event.user, bank_event.amount, available)
            new_state = state.copy()
            new_state.balances[bank_event.user] = available - bank_event.amount
            message = f"Withdrew {bank_event.amount} from {bank_event.user}"
            return new_state, [LogEffect(LogLevel.INFO, message)]

        if isinstance(bank_event, SendEmail):
            new_state = state.copy()
            effect_id = EffectId.new(bank_event.client_id, bank_event.sequence_number, 0)
            effect = EmitEffect(
                "email", f"To: {bank_event.to}\nSubject: {bank_event.subject}".encode()
            )
            new_state.outbox.add_pending(effect_id, effect, ctx.event_index)
            return new_state, [effect]

        if isinstance(bank_event, SystemAcknowledgeEffect):
            new_state = state.copy()
            new_state.outbox.acknowledge(bank_event.effect_id)
            return new_state, []

        raise RuntimeError("POISON PILL: Intentional panic for testing")

    def query(self, state: BankState, request: BankQuery) -> int | dict[str, int]:
        if isinstance(request, BalanceQuery):
            return state.balance(request.user)
        if isinstance(request, AllBalancesQuery):
            return dict(state.balances)
        raise TypeError(f"not a bank query: {request!r}")

    def snapshot(self, state: BankState) -> SnapshotStream:
        encoder = Encoder()
        _encode_balances(state.balances, encoder)
        state.outbox.encode(encoder)
        return SnapshotStream(SNAPSHOT_SCHEMA_VERSION, encoder.getvalue())

    def restore(self, stream: SnapshotStream) -> BankState:
        decoder = Decoder(stream.data)
        try:
            if stream.schema_version == 1:
                return BankState(_decode_balances(decoder), Outbox())
            if stream.schema_version == 2:
                balances = _decode_balances(decoder)
                return BankState(balances, Outbox.decode(decoder))
        except DecodeError as exc:
            raise BankSnapshotError(str(exc)) from exc
        raise BankSnapshotError(f"Unknown schema version: {stream.schema_version}")

    def genesis(self) -> BankState:
        return BankState()