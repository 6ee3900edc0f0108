"""In-process network of message queues with switchable links, for testing."""

from __future__ import annotations

import queue
import threading
from datetime import timedelta
from typing import Optional, Union

from chronon.vsr.message import VsrMessage

Delivery = tuple[int, VsrMessage]


class NetworkEndpoint:
    """One node's view of the network: its inbox and links to its peers."""

    def __init__(
        self,
        node_id: int,
        inbox: queue.SimpleQueue,
        peers: dict[int, queue.SimpleQueue],
        links: dict[int, threading.Event],
    ) -> None:
        self.node_id = node_id
        self._inbox = inbox
        self._peers = peers
        self._links = links

    def _link_up(self, target_id: int) -> bool:
        link = self._links.get(target_id)
        return link is None or link.is_set()

    def send_to(self, target_id: int, message: VsrMessage) -> bool:
        """Send to one node; return False if the link is down or the node is unknown."""
        if not self._link_up(target_id):
            return False
        inbox = self._peers.get(target_id)
        if inbox is None:
            return False
        inbox.put((self.node_id, message))
        return True

    def broadcast(self, message: VsrMessage) -> int:
        """Send to every connected peer; return how many received it."""
        count = 0
        for target_id, inbox in self._peers.items():
            if self._link_up(target_id):
                inbox.put((self.node_id, message))
                count += 1
        return count

    def try_recv(self) -> Optional[Delivery]:
        """Return the next ``(sender, message)`` without blocking, or None."""
        try:
            return self._inbox.get_nowait()
        except queue.Empty:
            return None

    def recv(self) -> Delivery:
        """Block until a message arrives."""
        return self._inbox.get()

    def recv_timeout(self, timeout: Union[float, timedelta]) -> Optional[Delivery]:
        """Wait up to ``timeout`` (seconds or timedelta); return None on expiry."""
        seconds = timeout.total_seconds() if isinstance(timeout, timedelta) else float(timeout)
        try:
            return self._inbox.get(timeout=seconds)
        except queue.Empty:
            return None


class MockNetwork:
    """A fully connected cluster of ``cluster_size`` nodes."""

    def __init__(self, cluster_size: int) -> None:
        self.cluster_size = cluster_size
        self._inboxes = {node_id: queue.SimpleQueue() for node_id in range(cluster_size)}
        self._unclaimed = set(self._inboxes)
        self._connections: dict[tuple[int, int], threading.Event] = {}
        for source in range(cluster_size):
            for target in range(cluster_size):
                if source != target:
                    link = threading.Event()
                    link.set()
                    self._connections[(source, target)] = link

    def create_endpoint(self, node_id: int) -> Optional[NetworkEndpoint]:
        """Claim the endpoint for ``node_id``; None if unknown or already claimed."""
        if node_id not in self._unclaimed:
            return None
        self._unclaimed.discard(node_id)
        peers = {peer: inbox for peer, inbox in self._inboxes.items() if peer != node_id}
        links = {
            target: link
            for (source, target), link in self._connections.items()
            if source == node_id
        }
        return NetworkEndpoint(node_id, self._inboxes[node_id], peers, links)

    def _set_node_links(self, node_id: int, up: bool) -> None:
        for (source, target), link in self._connections.items():
            if node_id in (source, target):
                if up:
                    link.set()
                else:
                    link.clear()

    def disconnect(self, node_id: int) -> None:
        """Drop all traffic to and from ``node_id``."""
        self._set_node_links(node_id, False)

    def reconnect(self, node_id: int) -> None:
        self._set_node_links(node_id, True)

    def is_connected(self, source: int, target: int) -> bool:
        link = self._connections.get((source, target))
        return link is not None and link.is_set()