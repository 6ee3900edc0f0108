"""Building blocks for deterministic replicated state machines: codecs, snapshots, side effects and replication messages."""

__version__ = "0.1.0"