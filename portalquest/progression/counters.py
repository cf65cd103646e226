"""Cumulative event counters that drive achievements.

Every counter is monotonically non-decreasing except ``favoritesCount``,
which mirrors the size of the (editable) favorites set.  The store is
purely in-memory; the engine persists :meth:`CounterStore.snapshot`
after each mutation.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

logger = logging.getLogger(__name__)

PORTAL_USES = "portalUses"
FAVORITES_COUNT = "favoritesCount"
SECTIONS_VISITED = "sectionsVisited"
DAYS_ACTIVE = "daysActive"
EPISODES_WATCHED = "episodesWatched"
QUIZZES_COMPLETED = "quizzesCompleted"
LOCATIONS_DISCOVERED = "locationsDiscovered"

COUNTER_KEYS: tuple[str, ...] = (
    PORTAL_USES,
    FAVORITES_COUNT,
    SECTIONS_VISITED,
    DAYS_ACTIVE,
    EPISODES_WATCHED,
    QUIZZES_COMPLETED,
    LOCATIONS_DISCOVERED,
)

# Counters allowed to go down.
DECREASABLE: frozenset[str] = frozenset({FAVORITES_COUNT})


class CounterError(ValueError):
    """Base class for invalid counter operations."""


class UnknownCounterError(CounterError, KeyError):
    def __init__(self, key: str) -> None:
        super().__init__(f"unknown counter {key!r}")
        self.key = key

    def __str__(self) -> str:
        return self.args[0]


class CounterRegressionError(CounterError):
    """A monotonic counter would decrease, or any counter would go negative."""


class CounterStore:
    """Mapping of the fixed counter keys to non-negative integers."""

    def __init__(self, values: Mapping[str, int] | None = None) -> None:
        self._values: dict[str, int] = {k: 0 for k in COUNTER_KEYS}
        for key, value in (values or {}).items():
            if key not in self._values:
                continue
            try:
                self._values[key] = max(0, int(value))
            except (TypeError, ValueError, OverflowError):
                logger.warning("Resetting unreadable counter %s=%r", key, value)

    def _check_key(self, key: str) -> None:
        if key not in self._values:
            raise UnknownCounterError(key)

    def get(self, key: str) -> int:
        self._check_key(key)
        return self._values[key]

    def increment(self, key: str, delta: int = 1) -> int:
        """Add *delta* to *key* and return the new value."""
        self._check_key(key)
        return self.set(key, self._values[key] + delta)

    def set(self, key: str, value: int) -> int:
        self._check_key(key)
        if value < 0:
            raise CounterRegressionError(f"{key} cannot be negative ({value})")
        if value < self._values[key] and key not in DECREASABLE:
            raise CounterRegressionError(
                f"{key} is monotonic ({self._values[key]} -> {value})"
            )
        self._values[key] = value
        return value

    def raise_to(self, key: str, value: int) -> int:
        """Set *key* to ``max(current, value)``."""
        self._check_key(key)
        if value > self._values[key]:
            self._values[key] = value
        return self._values[key]

    def snapshot(self) -> dict[str, int]:
        return dict(self._values)

    def __getitem__(self, key: str) -> int:
        return self.get(key)

    def __repr__(self) -> str:
        inner = " ".join(f"{k}={v}" for k, v in self._values.items() if v)
        return f"<CounterStore {inner or 'empty'}>"
