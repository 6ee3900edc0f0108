# chronon

Building blocks for deterministic, replicated state machines, written in pure
Python with no runtime dependencies.

## What is in the package

- `chronon.checksums`: `crc32c(data)` (CRC-32C, Castagnoli) and
  `blake3_hash(data)` (32-byte BLAKE3 digest), both implemented in Python.
- `chronon.codec`: `Encoder` and `Decoder` for a compact little-endian binary
  format (unsigned integers, booleans, fixed and length-prefixed bytes, UTF-8
  strings). Malformed input raises `DecodeError`.
- `chronon.kernel.traits`: the application interface and its data types.
  - `Application`, an abstract base with `apply`, `query`, `snapshot`,
    `restore` and `genesis`. `apply` returns `(new_state, side_effects)` and
    rejects an event by raising.
  - `Event`, `EventHeader`, `EventFlags` (with `EventFlags.from_bits`),
    `BlockTime` and `ApplyContext` (block time, random seed, event index, view).
  - Side effects `EmitEffect`, `ScheduleEffect`, `FetchEffect`, `LogEffect`,
    with `encode_side_effect` / `decode_side_effect`.
  - `EffectId.new(client_id, sequence_number, sub_index)`, a 16-byte id taken
    from a BLAKE3 hash, and the `Outbox`, which records effects as pending until
    `acknowledge` is called, and can `compact` old acknowledged entries.
  - `SnapshotStream` and `AcknowledgeEffect`.
- `chronon.kernel.snapshot`: `SnapshotManifest`, a snapshot file made of a
  64-byte header (magic `SNAP`, version, last included index and term, 16-byte
  chain hash, state size, CRC-32C of the state and of the header) followed by
  the state bytes. `save_to_file` writes a temporary file, fsyncs it, renames
  it into place and fsyncs the directory. `load_from_file` raises a subclass of
  `SnapshotError` (`FileTooSmall`, `InvalidMagic`, `UnsupportedVersion`,
  `HeaderChecksumMismatch`, `StateSizeMismatch`, `StateChecksumMismatch`).
  `filename_for_index` and `index_from_filename` map between indices and
  names such as `snapshot_00000000000000000100.snap`.
- `chronon.kernel.bank`: `BankApp`, an example application. Events
  (`Deposit`, `Withdraw`, `SendEmail`, `SystemAcknowledgeEffect`,
  `PoisonPill`) are serialized with `encode_event` / `decode_event`.
  Withdrawing more than the balance raises `InsufficientFunds`; `SendEmail`
  adds a pending effect to the state's outbox; `PoisonPill` raises
  `RuntimeError`. Queries are `BalanceQuery` and `AllBalancesQuery`.
- `chronon.kernel.vsr_authority`: `VsrAuthority` and the thread-safe
  `SimpleVsrAuthority`, which allow a side effect to run only when the node is
  primary in exactly the view in which the effect was queued. Advancing to a
  later view clears primary status; earlier views are ignored.
- `chronon.vsr.message`: replication messages (`Prepare`, `PrepareBatch`,
  `PrepareOk`, `Commit`, `StartViewChange`, `DoViewChange`, `StartView`,
  `CatchUpRequest`, `CatchUpResponse`), client request and response types
  (`ClientRequest`, `ClientResponse`, and results `Success`, `Failure`,
  `NotThePrimary`, `Pending`), `serialize_message` / `deserialize_message`,
  and `message_index`.
- `chronon.vsr.network`: `MockNetwork`, an in-process network of queues.
  `create_endpoint(node_id)` hands out a `NetworkEndpoint` once per node, with
  `send_to`, `broadcast`, `try_recv`, `recv` and `recv_timeout`.
  `disconnect` / `reconnect` switch all links of a node off and on.
- `chronon.vsr.client`: `SessionMap`, which returns the cached response for a
  repeated request and a `Failure` for a stale one, and `ChrClient`, which
  numbers requests, tracks the leader, follows redirects round-robin and
  computes retry and overload backoff as `timedelta` values.

## Installation

```
pip install .
```

## Example

```python
from chronon.kernel.bank import BankApp, Deposit, BalanceQuery, encode_event
from chronon.kernel.traits import ApplyContext, BlockTime, Event, EventHeader, EventFlags

app = BankApp()
state = app.genesis()
event = Event(
    header=EventHeader(index=0, view_id=1, stream_id=0, schema_version=1, flags=EventFlags()),
    payload=encode_event(Deposit(user="Alice", amount=100)),
)
ctx = ApplyContext(block_time=BlockTime.from_nanos(1_000_000_000),
                   random_seed=bytes(32), event_index=0, view_id=1)
state, effects = app.apply(state, event, ctx)
print(app.query(state, BalanceQuery(user="Alice")))  # 100
```

Snapshots:

```python
from chronon.kernel.snapshot import SnapshotManifest

manifest = SnapshotManifest(100, 5, bytes(16), b"state")
manifest.save_to_file("snapshots/" + SnapshotManifest.filename_for_index(100))
loaded = SnapshotManifest.load_from_file("snapshots/snapshot_00000000000000000100.snap")
assert loaded.last_included_index == 100
```

Messages over the mock network:

```python
from chronon.vsr.message import Prepare, serialize_message, deserialize_message
from chronon.vsr.network import MockNetwork

network = MockNetwork(3)
node0 = network.create_endpoint(0)
node1 = network.create_endpoint(1)

message = Prepare(view=1, index=0, payload=b"op", commit_index=None, timestamp_ns=0)
node0.send_to(1, message)
sender, received = node1.recv_timeout(0.1)
assert deserialize_message(serialize_message(received)) == message
```

## What the package does not do

There is no log storage and nothing that reads entries from a committed log
and feeds them to an application: you call `Application.apply` yourself and
decide when to write a `SnapshotManifest`. There is no replica node that runs
the replication protocol, and no network transport other than the in-process
`MockNetwork`. There is no command-line program.

## Running the tests

```
pip install .[test]
pytest
```