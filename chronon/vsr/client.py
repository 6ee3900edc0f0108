"""Client sessions for exactly-once requests, and a cluster-aware client proxy."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from chronon.vsr.message import ClientRequest, ClientResponse, Failure

_MAX_BACKOFF_EXPONENT = 5
_OVERLOAD_BASE = timedelta(milliseconds=100)


@dataclass
class ClientSession:
    """The last request a client completed and the response it got."""

    last_sequence_number: int = 0
    last_response: Optional[ClientResponse] = None


@dataclass
class SessionMap:
    """Per-client idempotency state: caches the last response of each client."""

    sessions: dict[int, ClientSession] = field(default_factory=dict)

    def check_duplicate(self, client_id: int, sequence_number: int) -> Optional[ClientResponse]:
        """Return the cached response for a repeated request, an error for a stale one,
        or None for a new request that should be processed."""
        session = self.sessions.get(client_id)
        if session is None or sequence_number > session.last_sequence_number:
            return None
        if sequence_number == session.last_sequence_number:
            return session.last_response
        return ClientResponse(
            sequence_number,
            Failure(
                f"Stale request: sequence {sequence_number} < last processed "
                f"{session.last_sequence_number}"
            ),
        )

    def record_response(self, client_id: int, response: ClientResponse) -> None:
        """Remember ``response`` if it is newer than what the client last got."""
        session = self.sessions.setdefault(client_id, ClientSession())
        if response.sequence_number > session.last_sequence_number:
            session.last_sequence_number = response.sequence_number
            session.last_response = response

    def last_sequence(self, client_id: int) -> int:
        session = self.sessions.get(client_id)
        return session.last_sequence_number if session is not None else 0

    def clear(self) -> None:
        self.sessions.clear()

    def client_count(self) -> int:
        return len(self.sessions)


@dataclass
class PendingRequest:
    """A request appended to the log and awaiting commit."""

    request: ClientRequest
    log_index: int
    submitted_at: float = field(default_factory=time.monotonic)


class ChrClient:
    """Client proxy: numbers requests, tracks the leader and computes retry backoff."""

    def __init__(self, client_id: int, cluster_nodes: list[int]) -> None:
        self.client_id = client_id
        self.cluster_nodes = list(cluster_nodes)
        self.last_known_leader: Optional[int] = None
        self.max_retries = 5
        self.base_timeout = timedelta(milliseconds=100)
        self._next_sequence = 1

    @property
    def current_sequence(self) -> int:
        """The sequence number the next new request will use."""
        return self._next_sequence

    def create_request(self, payload: bytes) -> ClientRequest:
        """Build a request with the next sequence number."""
        sequence_number = self._next_sequence
        self._next_sequence += 1
        return ClientRequest(self.client_id, sequence_number, bytes(payload))

    def create_request_with_seq(self, payload: bytes, sequence_number: int) -> ClientRequest:
        """Build a request with a given sequence number, for retries."""
        return ClientRequest(self.client_id, sequence_number, bytes(payload))

    def update_leader(self, leader_id: int) -> None:
        self.last_known_leader = leader_id

    def target_node(self) -> int:
        """The last known leader, or the first node when none is known."""
        if self.last_known_leader is not None:
            return self.last_known_leader
        return self.cluster_nodes[0]

    def handle_redirect(self, leader_hint: Optional[int]) -> int:
        """Follow a not-the-primary reply; without a hint, try the next node round-robin."""
        if leader_hint is not None:
            self.last_known_leader = leader_hint
            return leader_hint
        current = self.last_known_leader if self.last_known_leader is not None else 0
        following = (current + 1) % len(self.cluster_nodes)
        self.last_known_leader = following
        return following

    def backoff_duration(self, attempt: int) -> timedelta:
        return self.base_timeout * (2 ** min(attempt, _MAX_BACKOFF_EXPONENT))

    @staticmethod
    def is_overload_error(response: ClientResponse) -> bool:
        """Whether the response is an error reporting system overload."""
        result = response.result
        return isinstance(result, Failure) and "System Overloaded" in result.message

    def overload_backoff_duration(self, attempt: int) -> timedelta:
        return _OVERLOAD_BASE * (2 ** min(attempt, _MAX_BACKOFF_EXPONENT))

    def handle_overload(self, attempt: int) -> timedelta:
        """Recommended wait before retrying after an overload error."""
        return self.overload_backoff_duration(attempt)