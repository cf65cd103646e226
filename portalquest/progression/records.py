"""Typed records for everything the progression engine persists.

Storage layout
--------------
Each record lives under its own key in the key-value store as JSON:

    userAchievements        counter mapping
    userLevelData           {level, xp, nextLevelXp}
    completedAchievements   [achievement id, ...]
    userBadges              [{id, name, unlocked}, ...]
    portalStyles            [{id, name, unlocked}, ...]
    selectedBadge           "id"
    selectedPortalStyle     "id"
    discoveredLocations     [location id, ...]
    unlockedRegions         [region id, ...]
    discoveredMapCharacters [{id, characterId, locationId, discovered}, ...]
    quizStats               {totalQuestions, correctAnswers, quizzesCompleted, lastQuizDate}
    favorites               [character dict, ...]
    watchedEpisodes         {episode id: {id, rating, notes, watchedDate}}
    visitedSections         [section name, ...]
    lastLoginDate           "YYYY-MM-DD"
    schemaVersion           1

Schema migrations
-----------------
``schemaVersion`` is absent on data written before versioning.
:func:`migrate_payloads` upgrades decoded payloads step by step; every
step is idempotent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# ── storage keys ─────────────────────────────────────────────────────────

COUNTERS_KEY = "userAchievements"
LEVEL_KEY = "userLevelData"
COMPLETED_KEY = "completedAchievements"
BADGES_KEY = "userBadges"
PORTAL_STYLES_KEY = "portalStyles"
SELECTED_BADGE_KEY = "selectedBadge"
SELECTED_PORTAL_STYLE_KEY = "selectedPortalStyle"
DISCOVERED_LOCATIONS_KEY = "discoveredLocations"
UNLOCKED_REGIONS_KEY = "unlockedRegions"
MAP_CHARACTERS_KEY = "discoveredMapCharacters"
QUIZ_STATS_KEY = "quizStats"
FAVORITES_KEY = "favorites"
WATCHED_EPISODES_KEY = "watchedEpisodes"
VISITED_SECTIONS_KEY = "visitedSections"
LAST_LOGIN_KEY = "lastLoginDate"
SCHEMA_VERSION_KEY = "schemaVersion"

ALL_KEYS: tuple[str, ...] = (
    COUNTERS_KEY, LEVEL_KEY, COMPLETED_KEY, BADGES_KEY, PORTAL_STYLES_KEY,
    SELECTED_BADGE_KEY, SELECTED_PORTAL_STYLE_KEY, DISCOVERED_LOCATIONS_KEY,
    UNLOCKED_REGIONS_KEY, MAP_CHARACTERS_KEY, QUIZ_STATS_KEY, FAVORITES_KEY,
    WATCHED_EPISODES_KEY, VISITED_SECTIONS_KEY, LAST_LOGIN_KEY,
    SCHEMA_VERSION_KEY,
)


class RecordError(ValueError):
    """A persisted payload does not have the expected shape."""


def _int(value, default: int = 0) -> int:
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _require_dict(data, what: str) -> dict:
    if not isinstance(data, dict):
        raise RecordError(f"{what} must be an object, got {type(data).__name__}")
    return data


# ── records ──────────────────────────────────────────────────────────────


@dataclass
class LevelState:
    level: int = 1
    xp: int = 0
    next_level_xp: int = 100

    def to_dict(self) -> dict:
        return {"level": self.level, "xp": self.xp, "nextLevelXp": self.next_level_xp}

    @classmethod
    def from_dict(cls, data) -> LevelState:
        data = _require_dict(data, "userLevelData")
        return cls(
            level=max(1, _int(data.get("level"), 1)),
            xp=max(0, _int(data.get("xp"))),
            next_level_xp=_int(data.get("nextLevelXp"), 100),
        )


@dataclass
class QuizStats:
    total_questions: int = 0
    correct_answers: int = 0
    quizzes_completed: int = 0
    last_quiz_date: str | None = None

    @property
    def accuracy(self) -> float:
        if self.total_questions == 0:
            return 0.0
        return self.correct_answers / self.total_questions

    def to_dict(self) -> dict:
        return {
            "totalQuestions": self.total_questions,
            "correctAnswers": self.correct_answers,
            "quizzesCompleted": self.quizzes_completed,
            "lastQuizDate": self.last_quiz_date,
        }

    @classmethod
    def from_dict(cls, data) -> QuizStats:
        data = _require_dict(data, "quizStats")
        return cls(
            total_questions=max(0, _int(data.get("totalQuestions"))),
            correct_answers=max(0, _int(data.get("correctAnswers"))),
            quizzes_completed=max(0, _int(data.get("quizzesCompleted"))),
            last_quiz_date=data.get("lastQuizDate"),
        )


@dataclass(frozen=True)
class CharacterDrop:
    """A character found while exploring a map location."""

    id: int
    character_id: int
    location_id: int
    discovered: bool = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "characterId": self.character_id,
            "locationId": self.location_id,
            "discovered": self.discovered,
        }

    @classmethod
    def from_dict(cls, data) -> CharacterDrop:
        data = _require_dict(data, "character drop")
        return cls(
            id=_int(data.get("id")),
            character_id=_int(data.get("characterId")),
            location_id=_int(data.get("locationId")),
            discovered=bool(data.get("discovered", True)),
        )


@dataclass
class WatchedEpisode:
    id: int
    rating: int = 0
    notes: str = ""
    watched_date: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rating": self.rating,
            "notes": self.notes,
            "watchedDate": self.watched_date,
        }

    @classmethod
    def from_dict(cls, data) -> WatchedEpisode:
        data = _require_dict(data, "watched episode")
        return cls(
            id=_int(data.get("id")),
            rating=min(5, max(0, _int(data.get("rating")))),
            notes=str(data.get("notes") or ""),
            watched_date=str(data.get("watchedDate") or ""),
        )


# ── migrations ───────────────────────────────────────────────────────────


def _migrate_v0_to_v1(payloads: dict) -> dict:
    """Normalise blobs written by the unversioned app.

    The old app read-modify-wrote these keys independently from several
    screens, so derived counters drift from the collections they count.
    """
    from .counters import COUNTER_KEYS, FAVORITES_COUNT, EPISODES_WATCHED, LOCATIONS_DISCOVERED
    from .levels import normalise_level_state

    out = dict(payloads)

    raw_counters = out.get(COUNTERS_KEY)
    if not isinstance(raw_counters, dict):
        raw_counters = {}
    counters = {k: max(0, _int(raw_counters.get(k))) for k in COUNTER_KEYS}

    favorites = out.get(FAVORITES_KEY)
    if isinstance(favorites, list):
        counters[FAVORITES_COUNT] = len(favorites)
    watched = out.get(WATCHED_EPISODES_KEY)
    if isinstance(watched, dict):
        counters[EPISODES_WATCHED] = max(counters[EPISODES_WATCHED], len(watched))
    discovered = out.get(DISCOVERED_LOCATIONS_KEY)
    if isinstance(discovered, list):
        counters[LOCATIONS_DISCOVERED] = max(
            counters[LOCATIONS_DISCOVERED], len(set(discovered)),
        )
    out[COUNTERS_KEY] = counters

    level = out.get(LEVEL_KEY)
    if isinstance(level, dict):
        try:
            out[LEVEL_KEY] = normalise_level_state(LevelState.from_dict(level)).to_dict()
        except RecordError:
            out.pop(LEVEL_KEY)

    completed = out.get(COMPLETED_KEY)
    if isinstance(completed, list):
        seen: list[str] = []
        for item in completed:
            if isinstance(item, str) and item not in seen:
                seen.append(item)
        out[COMPLETED_KEY] = seen

    for key in (BADGES_KEY, PORTAL_STYLES_KEY):
        entries = out.get(key)
        if isinstance(entries, list):
            out[key] = [
                {
                    "id": str(e.get("id")),
                    "name": str(e.get("name", "")),
                    "unlocked": bool(e.get("unlocked", False)),
                }
                for e in entries
                if isinstance(e, dict) and e.get("id") is not None
            ]

    return out


_MIGRATIONS = {
    0: _migrate_v0_to_v1,
}


def migrate_payloads(payloads: dict, from_version: int) -> dict:
    """Upgrade decoded payloads from *from_version* to :data:`SCHEMA_VERSION`."""
    version = from_version
    while version < SCHEMA_VERSION:
        logger.info("Migrating progression data from schema v%d", version)
        payloads = _MIGRATIONS[version](payloads)
        version += 1
    return payloads
