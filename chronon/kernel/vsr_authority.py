"""Fencing that lets side effects run only under a legitimate primary."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod


class VsrAuthority(ABC):
    """Source of truth for the durable view and primary status."""

    @abstractmethod
    def durable_view(self) -> int:
        """Return the current durable view number."""

    @abstractmethod
    def is_primary_in_view(self, view: int) -> bool:
        """Return whether this node is primary in exactly ``view``."""

    def can_execute_effect(self, queued_view: int) -> bool:
        return self.is_primary_in_view(queued_view)


class SimpleVsrAuthority(VsrAuthority):
    """Thread-safe in-memory authority."""

    def __init__(self, view: int = 0, is_primary: bool = False) -> None:
        self._lock = threading.Lock()
        self._current_view = view
        self._is_primary = is_primary

    def durable_view(self) -> int:
        with self._lock:
            return self._current_view

    def is_primary_in_view(self, view: int) -> bool:
        with self._lock:
            return self._is_primary and view == self._current_view

    def advance_view(self, new_view: int) -> None:
        """Move to a later view, losing primary status; earlier views are ignored."""
        with self._lock:
            if new_view > self._current_view:
                self._current_view = new_view
                self._is_primary = False

    def set_primary(self, is_primary: bool) -> None:
        with self._lock:
            self._is_primary = is_primary

    def become_primary_in_view(self, view: int) -> None:
        self.advance_view(view)
        with self._lock:
            self._current_view = view
            self._is_primary = True

    def step_down(self) -> None:
        with self._lock:
            self._is_primary = False