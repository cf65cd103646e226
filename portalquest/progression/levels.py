"""XP and leveling for PortalQuest.

Leveling Curve
--------------
Levels use a fixed threshold table indexed by level::

    index  0    1    2    3    4    5     6     7     8     9
    xp     0  100  250  450  700  1000  1350  1750  2200  2700

A player at level *L* needs ``LEVEL_THRESHOLDS[L]`` total XP to reach
level *L + 1*, so ``next_level_xp`` always equals
``LEVEL_THRESHOLDS[level]``.  Level 9 is the cap: XP keeps accumulating
past 2700 but no further level-ups happen, so at the cap ``xp`` may sit
above ``next_level_xp`` for good.

One award can cross several thresholds; :meth:`LevelLedger.award_xp`
keeps advancing until the next threshold is out of reach.
"""

from __future__ import annotations

from dataclasses import dataclass

from .records import LevelState


# ── leveling constants ───────────────────────────────────────────────────

LEVEL_THRESHOLDS: tuple[int, ...] = (0, 100, 250, 450, 700, 1000, 1350, 1750, 2200, 2700)
MAX_LEVEL = len(LEVEL_THRESHOLDS) - 1


class InvalidAwardError(ValueError):
    """Raised for negative XP awards."""


# ── level math ───────────────────────────────────────────────────────────


def level_for_xp(total_xp: int) -> int:
    """Return the level a player is at given their total XP."""
    level = 1
    while level < MAX_LEVEL and total_xp >= LEVEL_THRESHOLDS[level]:
        level += 1
    return level


def xp_for_level(level: int) -> int:
    """Total cumulative XP required to *reach* the given level."""
    if level <= 1:
        return 0
    return LEVEL_THRESHOLDS[min(level, MAX_LEVEL) - 1]


def xp_in_current_level(state: LevelState) -> tuple[int, int]:
    """Return ``(earned_in_level, needed_for_level)`` for a progress bar.

    At the level cap the bar is reported full.
    """
    floor = xp_for_level(state.level)
    needed = state.next_level_xp - floor
    earned = min(state.xp - floor, needed)
    return earned, needed


def normalise_level_state(state: LevelState) -> LevelState:
    """Make *state* consistent with the threshold table.

    Stored data from older builds can carry a level that lags its XP or a
    stale ``next_level_xp``; the level never goes down here.
    """
    level = min(MAX_LEVEL, max(state.level, level_for_xp(state.xp)))
    return LevelState(level=level, xp=state.xp, next_level_xp=LEVEL_THRESHOLDS[level])


# ── ledger ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AwardResult:
    old_level: int
    new_level: int
    xp: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


class LevelLedger:
    """Owns one :class:`LevelState` and applies XP awards to it."""

    def __init__(self, state: LevelState | None = None) -> None:
        self._state = normalise_level_state(state or LevelState())

    @property
    def state(self) -> LevelState:
        return LevelState(self._state.level, self._state.xp, self._state.next_level_xp)

    @property
    def level(self) -> int:
        return self._state.level

    @property
    def xp(self) -> int:
        return self._state.xp

    @property
    def at_max_level(self) -> bool:
        return self._state.level >= MAX_LEVEL

    def award_xp(self, amount: int) -> AwardResult:
        """Add *amount* XP, cascading through every threshold it crosses."""
        if amount < 0:
            raise InvalidAwardError(f"XP award must be >= 0, got {amount}")
        s = self._state
        old_level = s.level
        s.xp += amount
        while s.xp >= s.next_level_xp and s.level < MAX_LEVEL:
            s.level += 1
            s.next_level_xp = LEVEL_THRESHOLDS[s.level]
        return AwardResult(old_level=old_level, new_level=s.level, xp=s.xp)

    def __repr__(self) -> str:
        s = self._state
        return f"<LevelLedger level={s.level} xp={s.xp}/{s.next_level_xp}>"
