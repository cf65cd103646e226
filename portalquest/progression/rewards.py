"""Badge and portal-style unlocks for PortalQuest.

Reward Catalog
--------------
**Badges** (7)::

    scientist       auto-unlocked
    collector       achievement: collector
    fanatic         achievement: fanatic
    binge_watcher   achievement: series_binger
    quiz_genius     achievement: quiz_master
    cartographer    achievement: location_explorer
    master          reaching level 5

**Portal styles** (6)::

    green     auto-unlocked
    blue      3 characters found on the map
    red       7 characters found on the map
    purple    12 characters found on the map
    gold      20 characters found on the map
    cosmic    achievement: portal_jumper

Unlock pathways
---------------
:class:`RewardUnlockResolver` handles three independent triggers:

* ``AchievementTrigger`` — the achievement's ``unlock_reward`` (an explicit
  :class:`RewardRef`, never a display string) unlocks one entry.  A ref
  that matches nothing in the catalog is ignored.
* ``DropCountTrigger`` — the map character-drop count is compared with
  every entry of :data:`PORTAL_DROP_THRESHOLDS` in ascending order; each
  crossed threshold unlocks its style independently.
* ``LevelTrigger`` — level >= :data:`MASTER_LEVEL` unlocks the master badge.

Unlocked flags are monotonic: nothing here ever re-locks an entry, and
an entry that is already unlocked is never reported again.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


# ── references ───────────────────────────────────────────────────────────


class RewardKind(Enum):
    BADGE = "badge"
    PORTAL_STYLE = "portal_style"


@dataclass(frozen=True)
class RewardRef:
    kind: RewardKind
    key: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.key}"


# ── catalog dataclasses ──────────────────────────────────────────────────


@dataclass(frozen=True)
class BadgeDef:
    key: str
    name: str
    description: str
    icon: str
    auto_unlocked: bool = False


@dataclass(frozen=True)
class PortalStyleDef:
    key: str
    name: str
    color: str
    auto_unlocked: bool = False


BADGES: list[BadgeDef] = [
    BadgeDef("scientist", "Scientist", "Every adventure starts somewhere.", "flask",
             auto_unlocked=True),
    BadgeDef("collector", "Collector", "Favorited 5 characters.", "heart"),
    BadgeDef("fanatic", "Fanatic", "Came back on 7 different days.", "flame"),
    BadgeDef("binge_watcher", "Binge Watcher", "Watched 10 episodes.", "tv"),
    BadgeDef("quiz_genius", "Quiz Genius", "Finished 5 quizzes.", "school"),
    BadgeDef("cartographer", "Cartographer", "Discovered 10 locations.", "map"),
    BadgeDef("master", "Master of the Multiverse", "Reached level 5.", "trophy"),
]

PORTAL_STYLES: list[PortalStyleDef] = [
    PortalStyleDef("green", "Green Portal", "#39FF14", auto_unlocked=True),
    PortalStyleDef("blue", "Blue Portal", "#00BFFF"),
    PortalStyleDef("red", "Red Portal", "#FF3131"),
    PortalStyleDef("purple", "Purple Portal", "#BF40BF"),
    PortalStyleDef("gold", "Gold Portal", "#FFD700"),
    PortalStyleDef("cosmic", "Cosmic Portal", "#7B68EE"),
]

# (characters found, style key), ascending
PORTAL_DROP_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (3, "blue"),
    (7, "red"),
    (12, "purple"),
    (20, "gold"),
)

MASTER_BADGE = "master"
MASTER_LEVEL = 5

_DEFS: dict[RewardKind, dict[str, BadgeDef | PortalStyleDef]] = {
    RewardKind.BADGE: {b.key: b for b in BADGES},
    RewardKind.PORTAL_STYLE: {p.key: p for p in PORTAL_STYLES},
}


def get_reward_def(ref: RewardRef) -> BadgeDef | PortalStyleDef | None:
    return _DEFS[ref.kind].get(ref.key)


class UnknownRewardError(KeyError):
    pass


class RewardLockedError(ValueError):
    """Tried to select a badge or portal style that is still locked."""


# ── triggers ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AchievementTrigger:
    achievement_id: str


@dataclass(frozen=True)
class DropCountTrigger:
    count: int


@dataclass(frozen=True)
class LevelTrigger:
    level: int


UnlockTrigger = AchievementTrigger | DropCountTrigger | LevelTrigger


# ── catalog state ────────────────────────────────────────────────────────


class RewardCatalog:
    """Unlocked flags and the current selection for badges and styles."""

    def __init__(
        self,
        unlocked_badges=(),
        unlocked_styles=(),
        selected_badge: str | None = None,
        selected_style: str | None = None,
    ) -> None:
        self._unlocked: dict[RewardKind, set[str]] = {
            RewardKind.BADGE: {b.key for b in BADGES if b.auto_unlocked},
            RewardKind.PORTAL_STYLE: {p.key for p in PORTAL_STYLES if p.auto_unlocked},
        }
        for key in unlocked_badges:
            self._add_known(RewardRef(RewardKind.BADGE, key))
        for key in unlocked_styles:
            self._add_known(RewardRef(RewardKind.PORTAL_STYLE, key))
        self._selected: dict[RewardKind, str | None] = {
            RewardKind.BADGE: None,
            RewardKind.PORTAL_STYLE: None,
        }
        if selected_badge:
            self._restore_selection(RewardRef(RewardKind.BADGE, selected_badge))
        if selected_style:
            self._restore_selection(RewardRef(RewardKind.PORTAL_STYLE, selected_style))

    def _add_known(self, ref: RewardRef) -> None:
        if get_reward_def(ref) is None:
            logger.debug("Ignoring unknown stored reward %s", ref)
            return
        self._unlocked[ref.kind].add(ref.key)

    def _restore_selection(self, ref: RewardRef) -> None:
        if self.is_unlocked(ref):
            self._selected[ref.kind] = ref.key
        else:
            logger.info("Dropping stored selection of locked reward %s", ref)

    # ── (de)serialisation ───────────────────────────────────────────

    @classmethod
    def from_payloads(cls, badges, styles, selected_badge, selected_style) -> RewardCatalog:
        def _unlocked_ids(entries) -> list[str]:
            if not isinstance(entries, list):
                return []
            return [
                str(e["id"]) for e in entries
                if isinstance(e, dict) and e.get("unlocked") and "id" in e
            ]

        return cls(
            unlocked_badges=_unlocked_ids(badges),
            unlocked_styles=_unlocked_ids(styles),
            selected_badge=selected_badge if isinstance(selected_badge, str) else None,
            selected_style=selected_style if isinstance(selected_style, str) else None,
        )

    def badges_payload(self) -> list[dict]:
        return [
            {"id": b.key, "name": b.name, "unlocked": b.key in self._unlocked[RewardKind.BADGE]}
            for b in BADGES
        ]

    def portal_styles_payload(self) -> list[dict]:
        return [
            {"id": p.key, "name": p.name,
             "unlocked": p.key in self._unlocked[RewardKind.PORTAL_STYLE]}
            for p in PORTAL_STYLES
        ]

    def copy(self) -> RewardCatalog:
        return RewardCatalog(
            self._unlocked[RewardKind.BADGE],
            self._unlocked[RewardKind.PORTAL_STYLE],
            self._selected[RewardKind.BADGE],
            self._selected[RewardKind.PORTAL_STYLE],
        )

    # ── queries ─────────────────────────────────────────────────────

    def is_unlocked(self, ref: RewardRef) -> bool:
        return ref.key in self._unlocked[ref.kind]

    def unlocked_keys(self, kind: RewardKind) -> list[str]:
        """Unlocked keys of *kind* in catalog order."""
        order = _DEFS[kind]
        return [k for k in order if k in self._unlocked[kind]]

    def selected(self, kind: RewardKind) -> str:
        """The selected key, defaulting to the first auto-unlocked entry."""
        chosen = self._selected[kind]
        if chosen is not None:
            return chosen
        defs = BADGES if kind is RewardKind.BADGE else PORTAL_STYLES
        return next(d.key for d in defs if d.auto_unlocked)

    @property
    def selected_badge(self) -> str:
        return self.selected(RewardKind.BADGE)

    @property
    def selected_portal_style(self) -> str:
        return self.selected(RewardKind.PORTAL_STYLE)

    # ── mutations ───────────────────────────────────────────────────

    def unlock(self, ref: RewardRef) -> bool:
        """Unlock *ref*; ``False`` if unknown or already unlocked."""
        if get_reward_def(ref) is None or self.is_unlocked(ref):
            return False
        self._unlocked[ref.kind].add(ref.key)
        return True

    def select(self, ref: RewardRef) -> None:
        if get_reward_def(ref) is None:
            raise UnknownRewardError(str(ref))
        if not self.is_unlocked(ref):
            raise RewardLockedError(f"{ref} is still locked")
        self._selected[ref.kind] = ref.key


# ── resolver ─────────────────────────────────────────────────────────────


class RewardUnlockResolver:
    """Turns unlock triggers into newly unlocked catalog entries."""

    def __init__(
        self,
        catalog: RewardCatalog,
        achievement_rewards: Mapping[str, RewardRef | None] | None = None,
    ) -> None:
        self._catalog = catalog
        if achievement_rewards is None:
            from .achievements import ACHIEVEMENTS
            achievement_rewards = {a.id: a.unlock_reward for a in ACHIEVEMENTS}
        self._achievement_rewards = dict(achievement_rewards)

    @property
    def catalog(self) -> RewardCatalog:
        return self._catalog

    def resolve_unlocks(self, trigger: UnlockTrigger) -> list[RewardRef]:
        """Apply *trigger* and return the refs it newly unlocked."""
        if isinstance(trigger, AchievementTrigger):
            candidates = self._for_achievement(trigger.achievement_id)
        elif isinstance(trigger, DropCountTrigger):
            candidates = [
                RewardRef(RewardKind.PORTAL_STYLE, key)
                for threshold, key in PORTAL_DROP_THRESHOLDS
                if trigger.count >= threshold
            ]
        elif isinstance(trigger, LevelTrigger):
            candidates = (
                [RewardRef(RewardKind.BADGE, MASTER_BADGE)]
                if trigger.level >= MASTER_LEVEL else []
            )
        else:
            raise TypeError(f"unsupported unlock trigger: {trigger!r}")

        return [ref for ref in candidates if self._catalog.unlock(ref)]

    def _for_achievement(self, achievement_id: str) -> list[RewardRef]:
        ref = self._achievement_rewards.get(achievement_id)
        if ref is None:
            return []
        if get_reward_def(ref) is None:
            logger.warning(
                "Achievement %s points at unknown reward %s", achievement_id, ref,
            )
            return []
        return [ref]
