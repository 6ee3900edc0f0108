import pytest

from chronon.codec import DecodeError, Decoder, Encoder
from chronon.kernel.traits import (
    Application,
    BlockTime,
    EffectId,
    EmitEffect,
    EventFlags,
    FetchEffect,
    LogEffect,
    LogLevel,
    Outbox,
    ScheduleEffect,
    SideEffectStatus,
    decode_side_effect,
    encode_side_effect,
)


def test_block_time_conversions():
    t = BlockTime.from_nanos(1_000_000_000)
    assert t.nanos == 1_000_000_000
    assert t.as_secs() == 1
    assert t.as_millis() == 1000


def test_block_time_ordering():
    assert BlockTime.from_nanos(5) < BlockTime.from_nanos(6)
    assert BlockTime.from_nanos(7) == BlockTime(7)


def test_event_flags_from_bits():
    flags = EventFlags.from_bits(0x01 | 0x04)
    assert flags == EventFlags(config_change=True, tombstone=False, checkpoint=True)
    assert EventFlags.from_bits(0x02) == EventFlags(tombstone=True)
    assert EventFlags.from_bits(0) == EventFlags()


def test_effect_id_is_deterministic_and_distinct():
    a = EffectId.new(1, 2, 0)
    assert a == EffectId.new(1, 2, 0)
    assert len(a.value) == 16
    assert a != EffectId.new(1, 3, 0)
    assert a != EffectId.new(1, 2, 1)
    assert a != EffectId.new(2, 2, 0)


def test_effect_id_display_uses_first_eight_bytes():
    assert str(EffectId(bytes(range(16)))) == "0001020304050607"


def test_effect_id_rejects_wrong_length():
    with pytest.raises(ValueError):
        EffectId(b"short")


@pytest.mark.parametrize(
    "effect",
    [
        EmitEffect("email", b"To: a\nSubject: b"),
        ScheduleEffect(250, b"later"),
        FetchEffect(9, "https://example.com/data"),
        LogEffect(LogLevel.WARN, "careful"),
    ],
)
def test_side_effect_round_trip(effect):
    enc = Encoder()
    encode_side_effect(effect, enc)
    dec = Decoder(enc.getvalue())
    assert decode_side_effect(dec) == effect
    dec.finish()


def test_unknown_side_effect_variant_raises():
    enc = Encoder()
    enc.write_u32(9)
    with pytest.raises(DecodeError):
        decode_side_effect(Decoder(enc.getvalue()))


def test_encode_rejects_non_effect():
    with pytest.raises(TypeError):
        encode_side_effect("nope", Encoder())


def test_outbox_add_and_acknowledge():
    outbox = Outbox()
    eid = EffectId.new(1, 1, 0)
    outbox.add_pending(eid, EmitEffect("email", b"x"), 3)
    assert eid in outbox
    assert len(outbox) == 1
    assert outbox.pending_count() == 1
    assert outbox.acknowledge(eid) is True
    assert outbox.acknowledge(eid) is False
    assert outbox.get(eid).status is SideEffectStatus.ACKNOWLEDGED
    assert outbox.pending_count() == 0
    assert outbox.pending_effects() == []


def test_outbox_acknowledge_unknown_is_false():
    outbox = Outbox()
    assert outbox.acknowledge(EffectId.new(5, 5, 5)) is False
    assert outbox.get(EffectId.new(5, 5, 5)) is None


def test_outbox_pending_effects_lists_only_pending():
    outbox = Outbox()
    first, second = EffectId.new(1, 1, 0), EffectId.new(1, 2, 0)
    outbox.add_pending(first, EmitEffect("a", b""), 0)
    outbox.add_pending(second, EmitEffect("b", b""), 1)
    outbox.acknowledge(first)
    pending = outbox.pending_effects()
    assert [eid for eid, _ in pending] == [second]


def test_outbox_compact_keeps_pending_and_recent():
    outbox = Outbox()
    old_ack, new_ack, old_pending = (EffectId.new(1, n, 0) for n in (1, 2, 3))
    outbox.add_pending(old_ack, EmitEffect("a", b""), 1)
    outbox.add_pending(new_ack, EmitEffect("b", b""), 10)
    outbox.add_pending(old_pending, EmitEffect("c", b""), 1)
    outbox.acknowledge(old_ack)
    outbox.acknowledge(new_ack)
    outbox.compact(5)
    assert old_ack not in outbox
    assert new_ack in outbox
    assert old_pending in outbox
    assert len(outbox) == 2


def test_outbox_encode_decode_round_trip():
    outbox = Outbox()
    a, b = EffectId.new(7, 1, 0), EffectId.new(7, 2, 0)
    outbox.add_pending(a, EmitEffect("email", b"hello"), 4)
    outbox.add_pending(b, LogEffect(LogLevel.INFO, "msg"), 5)
    outbox.acknowledge(b)
    enc = Encoder()
    outbox.encode(enc)
    dec = Decoder(enc.getvalue())
    restored = Outbox.decode(dec)
    dec.finish()
    assert restored == outbox


def test_application_is_abstract():
    with pytest.raises(TypeError):
        Application()