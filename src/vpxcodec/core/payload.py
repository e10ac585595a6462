"""Ownership-transfer table for opaque decode payloads.

The native decoder carries a `void *user_priv` from a decode submission to
the image it produces. Python objects cannot travel through that pointer
safely, so the registry keeps the object and hands the native layer a
non-zero integer token instead. Every token is either reclaimed (returned
with its frame) or discarded (submission failed, output unreachable, or
session closed), never both and never twice.
"""

from __future__ import annotations

import itertools
from typing import Generic, TypeVar

T = TypeVar("T")


class PayloadRegistry(Generic[T]):
    """Token -> payload table owned by one decoder session."""

    def __init__(self) -> None:
        self._slots: dict[int, T] = {}
        # Tokens are never reused, so a stale token can't alias a live one
        self._tokens = itertools.count(1)

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, token: int) -> bool:
        return token in self._slots

    def attach(self, payload: T) -> int:
        """Take ownership of `payload` and return its native handle."""
        token = next(self._tokens)
        self._slots[token] = payload
        return token

    def reclaim(self, token: int) -> T | None:
        """Give back the payload behind `token`, or None if unknown."""
        return self._slots.pop(token, None)

    def discard(self, token: int | None) -> bool:
        """Drop the payload behind `token`.

        Returns:
            True if a payload was dropped.
        """
        if token is None or token not in self._slots:
            return False
        del self._slots[token]
        return True

    def discard_all(self) -> int:
        """Drop every outstanding payload.

        Returns:
            Number of payloads dropped.
        """
        count = len(self._slots)
        self._slots.clear()
        return count
