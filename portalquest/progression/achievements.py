"""Achievement catalog and evaluator.

Catalog
-------
Seven achievements, each watching one counter::

    portal_jumper      portalUses            10    50 XP   cosmic portal
    collector          favoritesCount         5    50 XP   Collector badge
    explorer           sectionsVisited        4    30 XP   none
    fanatic            daysActive             7   100 XP   Fanatic badge
    series_binger      episodesWatched       10    75 XP   Binge Watcher badge
    quiz_master        quizzesCompleted       5    75 XP   Quiz Genius badge
    location_explorer  locationsDiscovered   10    60 XP   Cartographer badge

Declaration order is the reporting order when several achievements
complete at once (and so the order reward modals queue up).

Idempotence
-----------
:meth:`AchievementEvaluator.evaluate` never reports an id that is
already in the completed set.  The caller adds the reported ids to that
set and persists it together with the XP and unlocks they trigger.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass

from .counters import (
    PORTAL_USES, FAVORITES_COUNT, SECTIONS_VISITED, DAYS_ACTIVE,
    EPISODES_WATCHED, QUIZZES_COMPLETED, LOCATIONS_DISCOVERED,
)
from .rewards import RewardRef, RewardKind


@dataclass(frozen=True)
class AchievementDef:
    id: str
    title: str
    description: str
    icon: str
    requirement: int
    counter_key: str
    xp_reward: int
    unlock_reward: RewardRef | None = None


ACHIEVEMENTS: list[AchievementDef] = [
    AchievementDef(
        id="portal_jumper", title="Portal Jumper",
        description="Use the portal 10 times.", icon="planet",
        requirement=10, counter_key=PORTAL_USES, xp_reward=50,
        unlock_reward=RewardRef(RewardKind.PORTAL_STYLE, "cosmic"),
    ),
    AchievementDef(
        id="collector", title="Collector",
        description="Add 5 characters to your favorites.", icon="heart",
        requirement=5, counter_key=FAVORITES_COUNT, xp_reward=50,
        unlock_reward=RewardRef(RewardKind.BADGE, "collector"),
    ),
    AchievementDef(
        id="explorer", title="Explorer",
        description="Visit 4 different sections of the app.", icon="compass",
        requirement=4, counter_key=SECTIONS_VISITED, xp_reward=30,
    ),
    AchievementDef(
        id="fanatic", title="Fanatic",
        description="Open the app on 7 different days.", icon="flame",
        requirement=7, counter_key=DAYS_ACTIVE, xp_reward=100,
        unlock_reward=RewardRef(RewardKind.BADGE, "fanatic"),
    ),
    AchievementDef(
        id="series_binger", title="Series Binger",
        description="Mark 10 episodes as watched.", icon="tv",
        requirement=10, counter_key=EPISODES_WATCHED, xp_reward=75,
        unlock_reward=RewardRef(RewardKind.BADGE, "binge_watcher"),
    ),
    AchievementDef(
        id="quiz_master", title="Quiz Master",
        description="Complete 5 quizzes.", icon="school",
        requirement=5, counter_key=QUIZZES_COMPLETED, xp_reward=75,
        unlock_reward=RewardRef(RewardKind.BADGE, "quiz_genius"),
    ),
    AchievementDef(
        id="location_explorer", title="Location Explorer",
        description="Discover 10 locations on the map.", icon="map",
        requirement=10, counter_key=LOCATIONS_DISCOVERED, xp_reward=60,
        unlock_reward=RewardRef(RewardKind.BADGE, "cartographer"),
    ),
]

_ACHIEVEMENT_MAP: dict[str, AchievementDef] = {a.id: a for a in ACHIEVEMENTS}


def get_achievement_def(achievement_id: str) -> AchievementDef | None:
    return _ACHIEVEMENT_MAP.get(achievement_id)


@dataclass(frozen=True)
class AchievementProgress:
    """Progress bar data for one achievement."""
    definition: AchievementDef
    current: int
    completed: bool

    @property
    def fraction(self) -> float:
        if self.completed:
            return 1.0
        return min(1.0, self.current / self.definition.requirement)


class AchievementEvaluator:
    """Compares counters against the catalog's requirements."""

    def __init__(self, catalog: list[AchievementDef] | None = None) -> None:
        self._catalog = list(ACHIEVEMENTS if catalog is None else catalog)

    @property
    def catalog(self) -> list[AchievementDef]:
        return list(self._catalog)

    def evaluate(
        self, counters: Mapping[str, int], completed: Collection[str],
    ) -> list[str]:
        """Return ids of achievements newly satisfied by *counters*."""
        return [
            a.id for a in self._catalog
            if a.id not in completed
            and counters.get(a.counter_key, 0) >= a.requirement
        ]

    def progress(
        self, counters: Mapping[str, int], completed: Collection[str],
    ) -> list[AchievementProgress]:
        return [
            AchievementProgress(
                definition=a,
                current=counters.get(a.counter_key, 0),
                completed=a.id in completed,
            )
            for a in self._catalog
        ]
