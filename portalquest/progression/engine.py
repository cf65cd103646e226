"""The progression engine — single owner of all progression state.

Every screen routes its events through one :class:`ProgressionEngine`
instead of reading and writing storage on its own.  Each operation runs
as a transaction:

1. take the engine lock,
2. mutate counters / collections,
3. evaluate achievements, award their XP, resolve their unlocks,
4. apply the level-driven master badge,
5. write every record in one storage transaction,
6. emit signals for the UI.

A storage failure in step 5 is logged and the in-memory state stays the
source of truth for the rest of the session.  Data written by a newer schema
version is read but never overwritten.

Signals
-------
xp_awarded(data: dict)
    ``amount``, ``reason``, and ``total_xp`` / ``level`` right after that
    award. One per award.
level_up(data: dict)
    ``old_level``, ``new_level`` — at most once per operation.
achievement_completed(data: dict)
    ``id``, ``title``, ``xp_reward``.
reward_unlocked(data: dict)
    ``kind`` ("badge" | "portal_style"), ``key``, ``name``.
region_unlocked(data: dict)
    ``id``, ``name``.
character_dropped(data: dict)
    ``drop_id``, ``character_id``, ``location_id``, ``name``.
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime

import numpy as np
from PyQt6.QtCore import QObject, pyqtSignal

from ..api.models import Character, Location
from ..database.store import KeyValueStore, StorageError
from ..settings import Settings
from .achievements import AchievementEvaluator, AchievementProgress, get_achievement_def
from .counters import (
    CounterStore, PORTAL_USES, FAVORITES_COUNT, SECTIONS_VISITED, DAYS_ACTIVE,
    EPISODES_WATCHED, QUIZZES_COMPLETED, LOCATIONS_DISCOVERED,
)
from .exploration import MapExplorer, build_regions
from .levels import LevelLedger, InvalidAwardError, xp_in_current_level
from .quiz import quiz_xp_reward
from .records import (
    SCHEMA_VERSION, ALL_KEYS, RecordError, LevelState, QuizStats, CharacterDrop,
    WatchedEpisode, migrate_payloads,
    COUNTERS_KEY, LEVEL_KEY, COMPLETED_KEY, BADGES_KEY, PORTAL_STYLES_KEY,
    SELECTED_BADGE_KEY, SELECTED_PORTAL_STYLE_KEY, DISCOVERED_LOCATIONS_KEY,
    UNLOCKED_REGIONS_KEY, MAP_CHARACTERS_KEY, QUIZ_STATS_KEY, FAVORITES_KEY,
    WATCHED_EPISODES_KEY, VISITED_SECTIONS_KEY, LAST_LOGIN_KEY, SCHEMA_VERSION_KEY,
)
from .rewards import (
    RewardCatalog, RewardUnlockResolver, RewardRef, RewardKind,
    AchievementTrigger, DropCountTrigger, LevelTrigger, get_reward_def,
)

logger = logging.getLogger(__name__)

SECTIONS: tuple[str, ...] = (
    "characters", "episodes", "locations", "favorites",
    "quiz", "map", "portal", "profile",
)
PORTAL_DESTINATIONS: tuple[str, ...] = ("characters", "episodes", "locations")


class UnknownSectionError(ValueError):
    pass


class InvalidCharacterError(ValueError):
    """A custom character is missing a required field."""


@dataclass
class ProgressReport:
    """What one engine operation changed."""

    changed: bool = True
    xp_gained: int = 0
    old_level: int = 1
    new_level: int = 1
    achievements: list[str] = field(default_factory=list)
    unlocks: list[RewardRef] = field(default_factory=list)
    regions_unlocked: list[int] = field(default_factory=list)
    drop: CharacterDrop | None = None
    destination: str | None = None
    awards: list[tuple[int, str, int, int]] = field(default_factory=list, repr=False)
    dropped_character: Character | None = field(default=None, repr=False)

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


def _as_int_list(value) -> list[int]:
    if not isinstance(value, list):
        return []
    out: list[int] = []
    for v in value:
        try:
            out.append(int(v))
        except (TypeError, ValueError, OverflowError):
            continue
    return out


class ProgressionEngine(QObject):
    """Counters, XP ledger, achievements, rewards and map state."""

    xp_awarded = pyqtSignal(object)
    level_up = pyqtSignal(object)
    achievement_completed = pyqtSignal(object)
    reward_unlocked = pyqtSignal(object)
    region_unlocked = pyqtSignal(object)
    character_dropped = pyqtSignal(object)

    # ── award constants ──────────────────────────────────────────────────
    XP_LOCATION = 10
    XP_CHARACTER_DROP = 25

    def __init__(
        self,
        parent: QObject | None = None,
        *,
        store: KeyValueStore | None = None,
        provider=None,
        settings: Settings | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        super().__init__(parent)
        settings = settings or Settings()
        self._store = store if store is not None else KeyValueStore()
        self._provider = provider
        self._rng = rng if rng is not None else np.random.default_rng()
        self._drop_chance = settings.character_drop_chance
        self._daily_xp = settings.daily_visit_xp

        self._lock = threading.RLock()
        self._evaluator = AchievementEvaluator()
        self._loaded = False
        self._map_loaded = False
        self._read_only = False
        self._reset_state()

    def _reset_state(self) -> None:
        self._counters = CounterStore()
        self._ledger = LevelLedger()
        self._completed: list[str] = []
        self._rewards = RewardCatalog()
        self._resolver = RewardUnlockResolver(self._rewards)
        self._map = MapExplorer([])
        self._quiz_stats = QuizStats()
        self._favorites: list[dict] = []
        self._watched: dict[int, WatchedEpisode] = {}
        self._visited: list[str] = []
        self._last_login: str | None = None

    # ══════════════════════════════════════════════════════════════════
    #  LOAD / SAVE
    # ══════════════════════════════════════════════════════════════════

    def load(self) -> None:
        """(Re)load all state from storage, migrating old data first."""
        with self._lock:
            try:
                raw = self._store.get_many(ALL_KEYS)
            except StorageError as exc:
                logger.error("Could not load progression state, starting fresh: %s", exc)
                raw = {}

            payloads: dict = {}
            for key, value in raw.items():
                if value is None:
                    continue
                try:
                    payloads[key] = json.loads(value)
                except ValueError:
                    logger.warning("Discarding unreadable %s", key)

            try:
                version = int(payloads.get(SCHEMA_VERSION_KEY, 0))
            except (TypeError, ValueError, OverflowError):
                version = 0
            self._read_only = version > SCHEMA_VERSION
            if self._read_only:
                logger.warning(
                    "Stored schema v%d is newer than v%d; reading what we can, "
                    "changes will not be saved",
                    version, SCHEMA_VERSION,
                )
            migrated = version < SCHEMA_VERSION
            if migrated:
                payloads = migrate_payloads(payloads, version)

            self._reset_state()
            self._apply_payloads(payloads)
            self._loaded = True
            self._map_loaded = False
            if migrated:
                self._persist()

    def _apply_payloads(self, p: dict) -> None:
        def decode(key, factory, default):
            if key not in p:
                return default
            try:
                return factory(p[key])
            except (RecordError, TypeError, ValueError, AttributeError) as exc:
                logger.warning("Resetting malformed %s: %s", key, exc)
                return default

        counters = p.get(COUNTERS_KEY)
        self._counters = CounterStore(counters if isinstance(counters, dict) else None)
        self._ledger = LevelLedger(decode(LEVEL_KEY, LevelState.from_dict, None))

        completed = p.get(COMPLETED_KEY)
        if isinstance(completed, list):
            self._completed = list(dict.fromkeys(c for c in completed if isinstance(c, str)))

        self._rewards = RewardCatalog.from_payloads(
            p.get(BADGES_KEY), p.get(PORTAL_STYLES_KEY),
            p.get(SELECTED_BADGE_KEY), p.get(SELECTED_PORTAL_STYLE_KEY),
        )
        self._resolver = RewardUnlockResolver(self._rewards)

        drops = decode(
            MAP_CHARACTERS_KEY,
            lambda v: [CharacterDrop.from_dict(d) for d in v],
            [],
        )
        self._map = MapExplorer(
            [],
            discovered=_as_int_list(p.get(DISCOVERED_LOCATIONS_KEY)),
            unlocked=_as_int_list(p.get(UNLOCKED_REGIONS_KEY)),
            drops=drops,
        )
        self._quiz_stats = decode(QUIZ_STATS_KEY, QuizStats.from_dict, QuizStats())

        favorites = p.get(FAVORITES_KEY)
        if isinstance(favorites, list):
            self._favorites = [f for f in favorites if isinstance(f, dict) and "id" in f]
        self._watched = decode(
            WATCHED_EPISODES_KEY,
            lambda v: {int(k): WatchedEpisode.from_dict(e) for k, e in v.items()},
            {},
        )
        visited = p.get(VISITED_SECTIONS_KEY)
        if isinstance(visited, list):
            self._visited = list(dict.fromkeys(
                s for s in visited if isinstance(s, str) and s in SECTIONS
            ))

        last = p.get(LAST_LOGIN_KEY)
        self._last_login = last if isinstance(last, str) else None

    def _payloads(self) -> dict[str, str]:
        data = {
            COUNTERS_KEY: self._counters.snapshot(),
            LEVEL_KEY: self._ledger.state.to_dict(),
            COMPLETED_KEY: list(self._completed),
            BADGES_KEY: self._rewards.badges_payload(),
            PORTAL_STYLES_KEY: self._rewards.portal_styles_payload(),
            SELECTED_BADGE_KEY: self._rewards.selected_badge,
            SELECTED_PORTAL_STYLE_KEY: self._rewards.selected_portal_style,
            DISCOVERED_LOCATIONS_KEY: self._map.discovered,
            UNLOCKED_REGIONS_KEY: self._map.unlocked_region_ids,
            MAP_CHARACTERS_KEY: [d.to_dict() for d in self._map.drops],
            QUIZ_STATS_KEY: self._quiz_stats.to_dict(),
            FAVORITES_KEY: list(self._favorites),
            WATCHED_EPISODES_KEY: {str(k): w.to_dict() for k, w in self._watched.items()},
            VISITED_SECTIONS_KEY: list(self._visited),
            LAST_LOGIN_KEY: self._last_login,
            SCHEMA_VERSION_KEY: SCHEMA_VERSION,
        }
        return {k: json.dumps(v) for k, v in data.items()}

    def _persist(self) -> bool:
        if self._read_only:
            logger.debug("Not saving over newer schema data")
            return False
        try:
            self._store.set_many(self._payloads())
        except StorageError as exc:
            logger.error("Could not save progression state: %s", exc)
            return False
        return True

    def save(self) -> bool:
        """Write all state now; ``False`` if storage failed or is read-only."""
        with self._lock:
            self._ensure_loaded()
            return self._persist()

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    # ══════════════════════════════════════════════════════════════════
    #  TRANSACTION PLUMBING
    # ══════════════════════════════════════════════════════════════════

    @contextmanager
    def _transaction(self):
        with self._lock:
            self._ensure_loaded()
            level = self._ledger.level
            report = ProgressReport(old_level=level, new_level=level)
            yield report
            if report.changed:
                self._settle(report)
                report.new_level = self._ledger.level
                self._persist()
        if report.changed:
            self._emit(report)

    def _award(self, report: ProgressReport, amount: int, reason: str) -> None:
        result = self._ledger.award_xp(amount)
        report.xp_gained += amount
        report.awards.append((amount, reason, result.xp, result.new_level))

    def _settle(self, report: ProgressReport) -> None:
        new_ids = self._evaluator.evaluate(self._counters.snapshot(), self._completed)
        for achievement_id in new_ids:
            definition = get_achievement_def(achievement_id)
            self._completed.append(achievement_id)
            report.achievements.append(achievement_id)
            self._award(report, definition.xp_reward, f"Achievement: {definition.title}")
            report.unlocks.extend(
                self._resolver.resolve_unlocks(AchievementTrigger(achievement_id))
            )
        report.unlocks.extend(
            self._resolver.resolve_unlocks(LevelTrigger(self._ledger.level))
        )

    def _emit(self, report: ProgressReport) -> None:
        for achievement_id in report.achievements:
            definition = get_achievement_def(achievement_id)
            self.achievement_completed.emit({
                "id": achievement_id,
                "title": definition.title,
                "xp_reward": definition.xp_reward,
            })
        for ref in report.unlocks:
            self.reward_unlocked.emit({
                "kind": ref.kind.value,
                "key": ref.key,
                "name": get_reward_def(ref).name,
            })
        for region_id in report.regions_unlocked:
            region = self._map.get_region(region_id)
            self.region_unlocked.emit({
                "id": region_id,
                "name": region.name if region else str(region_id),
            })
        if report.drop is not None:
            self.character_dropped.emit({
                "drop_id": report.drop.id,
                "character_id": report.drop.character_id,
                "location_id": report.drop.location_id,
                "name": report.dropped_character.name if report.dropped_character else "",
            })
        for amount, reason, total_xp, level in report.awards:
            self.xp_awarded.emit({
                "amount": amount,
                "reason": reason,
                "total_xp": total_xp,
                "level": level,
            })
        if report.leveled_up:
            self.level_up.emit({
                "old_level": report.old_level,
                "new_level": report.new_level,
            })

    # ══════════════════════════════════════════════════════════════════
    #  OPERATIONS
    # ══════════════════════════════════════════════════════════════════

    def record_activity(self, today: date | None = None) -> ProgressReport:
        """Count today as an active day (once per calendar day)."""
        today_str = (today or date.today()).isoformat()
        with self._transaction() as report:
            if self._last_login == today_str:
                report.changed = False
            else:
                self._last_login = today_str
                self._counters.increment(DAYS_ACTIVE)
                self._award(report, self._daily_xp, "Daily visit")
        return report

    def award_xp(self, amount: int, reason: str = "Bonus") -> ProgressReport:
        if amount < 0:
            raise InvalidAwardError(f"XP award must be >= 0, got {amount}")
        with self._transaction() as report:
            self._award(report, amount, reason)
        return report

    def use_portal(self) -> ProgressReport:
        """Jump through the portal to a random section."""
        with self._transaction() as report:
            self._counters.increment(PORTAL_USES)
            idx = int(self._rng.integers(len(PORTAL_DESTINATIONS)))
            report.destination = PORTAL_DESTINATIONS[idx]
        return report

    def visit_section(self, section: str) -> ProgressReport:
        if section not in SECTIONS:
            raise UnknownSectionError(f"unknown section {section!r}")
        with self._transaction() as report:
            if section in self._visited:
                report.changed = False
            else:
                self._visited.append(section)
                self._counters.raise_to(SECTIONS_VISITED, len(self._visited))
        return report

    # ── favorites ───────────────────────────────────────────────────

    def add_favorite(self, character: Character) -> ProgressReport:
        with self._transaction() as report:
            if any(f.get("id") == character.id for f in self._favorites):
                report.changed = False
            else:
                self._favorites.append(character.to_dict())
                self._counters.set(FAVORITES_COUNT, len(self._favorites))
        return report

    def remove_favorite(self, character_id: int) -> ProgressReport:
        with self._transaction() as report:
            remaining = [f for f in self._favorites if f.get("id") != character_id]
            if len(remaining) == len(self._favorites):
                report.changed = False
            else:
                self._favorites = remaining
                self._counters.set(FAVORITES_COUNT, len(self._favorites))
        return report

    def add_custom_character(
        self, name: str, origin: str, image: str, when: datetime | None = None,
    ) -> ProgressReport:
        """Create a user-made character and add it to the favorites.

        *name*, *origin* and *image* are required.  The id is a millisecond
        timestamp, bumped past any favorite that already holds it.
        """
        fields = {"name": name, "origin": origin, "image": image}
        missing = [k for k, v in fields.items() if not (v or "").strip()]
        if missing:
            raise InvalidCharacterError(f"missing required fields: {', '.join(missing)}")
        with self._lock:
            self._ensure_loaded()
            character_id = int((when or datetime.now()).timestamp() * 1000)
            taken = {f["id"] for f in self._favorites if isinstance(f["id"], int)}
            while character_id in taken:
                character_id += 1
            character = Character(
                id=character_id,
                name=name.strip(),
                status="unknown",
                species="unknown",
                type="custom",
                gender="unknown",
                origin=origin.strip(),
                image=image.strip(),
            )
            return self.add_favorite(character)

    def favorites(self) -> list[Character]:
        with self._lock:
            self._ensure_loaded()
            return [Character.from_dict(f) for f in self._favorites]

    # ── episodes ────────────────────────────────────────────────────

    def mark_episode_watched(
        self,
        episode_id: int,
        rating: int = 0,
        notes: str = "",
        when: datetime | None = None,
    ) -> ProgressReport:
        """Record (or update) a watched episode with a 0-5 rating."""
        if not 0 <= rating <= 5:
            raise ValueError(f"rating must be between 0 and 5, got {rating}")
        with self._transaction() as report:
            self._watched[episode_id] = WatchedEpisode(
                id=episode_id,
                rating=rating,
                notes=notes,
                watched_date=(when or datetime.now()).isoformat(),
            )
            self._counters.raise_to(EPISODES_WATCHED, len(self._watched))
        return report

    def unmark_episode_watched(self, episode_id: int) -> ProgressReport:
        """Forget a watched episode.  ``episodesWatched`` does not go down."""
        with self._transaction() as report:
            if self._watched.pop(episode_id, None) is None:
                report.changed = False
        return report

    def watched_episodes(self) -> dict[int, WatchedEpisode]:
        with self._lock:
            self._ensure_loaded()
            return dict(self._watched)

    # ── quiz ────────────────────────────────────────────────────────

    def complete_quiz(
        self, total_questions: int, correct_answers: int, when: datetime | None = None,
    ) -> ProgressReport:
        if total_questions <= 0 or not 0 <= correct_answers <= total_questions:
            raise ValueError(
                f"invalid quiz result {correct_answers}/{total_questions}"
            )
        with self._transaction() as report:
            s = self._quiz_stats
            s.total_questions += total_questions
            s.correct_answers += correct_answers
            s.quizzes_completed += 1
            s.last_quiz_date = (when or datetime.now()).isoformat()
            self._counters.raise_to(QUIZZES_COMPLETED, s.quizzes_completed)
            self._award(
                report, quiz_xp_reward(correct_answers, total_questions), "Quiz completed",
            )
        return report

    def quiz_stats(self) -> QuizStats:
        with self._lock:
            self._ensure_loaded()
            return QuizStats(**vars(self._quiz_stats))

    # ── map ─────────────────────────────────────────────────────────

    def load_map(self, locations: list[Location] | None = None) -> list[int]:
        """Lay the discovery state over regions built from *locations*.

        Without *locations* the data provider is asked.  Returns region ids
        unlocked by re-checking stored discoveries against the new regions.
        """
        if locations is None:
            locations = self._provider.fetch_locations() if self._provider else []
        with self._transaction() as report:
            self._map = self._map.with_regions(build_regions(locations))
            self._map_loaded = True
            report.regions_unlocked = [r.id for r in self._map.refresh_regions()]
            report.changed = bool(report.regions_unlocked)
        return report.regions_unlocked

    @property
    def map(self) -> MapExplorer:
        with self._lock:
            self._ensure_loaded()
            return self._map.copy()

    def discover_location(self, location_id: int) -> ProgressReport:
        """Discover a map location: regions, a possible drop, and XP."""
        if not self._map_loaded and self._provider is not None:
            self.load_map()
        with self._transaction() as report:
            if not self._map.discover(location_id):
                report.changed = False
            else:
                self._counters.raise_to(LOCATIONS_DISCOVERED, len(self._map.discovered))
                report.regions_unlocked = [r.id for r in self._map.refresh_regions()]
                self._roll_character_drop(report, location_id)
                self._award(report, self.XP_LOCATION, "Location discovered")
                if report.drop is not None:
                    self._award(report, self.XP_CHARACTER_DROP, "Character found")
                    report.unlocks.extend(self._resolver.resolve_unlocks(
                        DropCountTrigger(len(self._map.drops))
                    ))
        return report

    def _roll_character_drop(self, report: ProgressReport, location_id: int) -> None:
        if self._rng.random() >= self._drop_chance:
            return
        roster = self._provider.fetch_characters() if self._provider else []
        if not roster:
            logger.info("Character drop at location %s skipped: empty roster", location_id)
            return
        character = roster[int(self._rng.integers(len(roster)))]
        report.drop = self._map.record_drop(character.id, location_id)
        report.dropped_character = character

    # ── cosmetics ───────────────────────────────────────────────────

    def select_badge(self, key: str) -> None:
        with self._transaction():
            self._rewards.select(RewardRef(RewardKind.BADGE, key))

    def select_portal_style(self, key: str) -> None:
        with self._transaction():
            self._rewards.select(RewardRef(RewardKind.PORTAL_STYLE, key))

    # ══════════════════════════════════════════════════════════════════
    #  QUERIES
    # ══════════════════════════════════════════════════════════════════

    @property
    def counters(self) -> dict[str, int]:
        with self._lock:
            self._ensure_loaded()
            return self._counters.snapshot()

    @property
    def level_state(self) -> LevelState:
        with self._lock:
            self._ensure_loaded()
            return self._ledger.state

    @property
    def completed_achievements(self) -> list[str]:
        with self._lock:
            self._ensure_loaded()
            return list(self._completed)

    @property
    def rewards(self) -> RewardCatalog:
        with self._lock:
            self._ensure_loaded()
            return self._rewards.copy()

    def level_progress(self) -> tuple[int, int]:
        return xp_in_current_level(self.level_state)

    def achievement_progress(self) -> list[AchievementProgress]:
        with self._lock:
            self._ensure_loaded()
            return self._evaluator.progress(self._counters.snapshot(), self._completed)

    def snapshot(self) -> dict:
        """Plain-data copy of everything the UI renders."""
        with self._lock:
            self._ensure_loaded()
            return {
                "counters": self._counters.snapshot(),
                "level": self._ledger.state.to_dict(),
                "completed_achievements": list(self._completed),
                "badges": self._rewards.badges_payload(),
                "portal_styles": self._rewards.portal_styles_payload(),
                "selected_badge": self._rewards.selected_badge,
                "selected_portal_style": self._rewards.selected_portal_style,
                "discovered_locations": self._map.discovered,
                "unlocked_regions": self._map.unlocked_region_ids,
                "map_characters": [d.to_dict() for d in self._map.drops],
                "quiz_stats": self._quiz_stats.to_dict(),
                "last_login": self._last_login,
            }
