"""Last-key-wins bookkeeping for cascading fetches.

Each fetcher issues a new generation per request and applies a response only
if the generation it was issued with is still the latest one.
"""

from __future__ import annotations


class Generation:
    """Monotonic request counter for one fetch slot."""

    def __init__(self) -> None:
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def issue(self) -> int:
        """Start a new request; all earlier generations become stale."""
        self._current += 1
        return self._current

    def is_current(self, generation: int) -> bool:
        return generation == self._current
