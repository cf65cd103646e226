"""Tests for ProgressionEngine — the single owner of progression state.

Covers:
- daily activity and XP awards
- achievement completion through real operations
- reward unlocks (achievement, drop count, level)
- the location map and character drops
- signal emission
- persistence, reload and legacy-data migration
- storage failure fallback
"""

from __future__ import annotations

import json
import threading
from datetime import date, datetime, timedelta

import numpy as np
import pytest

from portalquest.database.store import KeyValueStore, StorageError
from portalquest.progression.engine import (
    InvalidCharacterError,
    ProgressionEngine,
    UnknownSectionError,
    PORTAL_DESTINATIONS,
)
from portalquest.progression.levels import InvalidAwardError, LEVEL_THRESHOLDS
from portalquest.progression.records import LevelState
from portalquest.progression.rewards import RewardKind, RewardRef, RewardLockedError
from portalquest.settings import Settings

from helpers import SignalCollector, make_characters

DAY = date(2024, 3, 1)


def _reload(store, provider) -> ProgressionEngine:
    e = ProgressionEngine(store=store, provider=provider,
                          settings=Settings(character_drop_chance=0.0))
    e.load()
    return e


def _collect(engine, signal_name):
    c = SignalCollector()
    getattr(engine, signal_name).connect(c.slot)
    return c


# ═══════════════════════════════════════════════════════════════════════
#  DAILY ACTIVITY & XP
# ═══════════════════════════════════════════════════════════════════════


class TestDailyActivity:

    def test_first_visit(self, engine):
        report = engine.record_activity(DAY)
        assert report.changed
        assert report.xp_gained == 20
        assert engine.counters["daysActive"] == 1
        assert engine.level_state.xp == 20

    def test_same_day_twice_counts_once(self, engine):
        engine.record_activity(DAY)
        report = engine.record_activity(DAY)
        assert report.changed is False
        assert report.xp_gained == 0
        assert engine.counters["daysActive"] == 1

    def test_seven_days_completes_fanatic(self, engine):
        for i in range(6):
            engine.record_activity(DAY + timedelta(days=i))
        report = engine.record_activity(DAY + timedelta(days=6))
        assert report.achievements == ["fanatic"]
        assert RewardRef(RewardKind.BADGE, "fanatic") in report.unlocks
        assert engine.level_state.xp == 7 * 20 + 100

    def test_daily_xp_from_settings(self, qapp, store, provider):
        e = ProgressionEngine(store=store, provider=provider,
                              settings=Settings(daily_visit_xp=5))
        assert e.record_activity(DAY).xp_gained == 5


class TestAwardXp:

    def test_cascade_example(self, engine):
        report = engine.award_xp(500, "Test")
        assert engine.level_state == LevelState(level=4, xp=500, next_level_xp=700)
        assert (report.old_level, report.new_level) == (1, 4)
        assert report.leveled_up

    def test_negative_rejected(self, engine):
        with pytest.raises(InvalidAwardError):
            engine.award_xp(-5)
        assert engine.level_state.xp == 0

    def test_zero_is_allowed(self, engine):
        report = engine.award_xp(0)
        assert report.xp_gained == 0
        assert not report.leveled_up

    def test_level_five_unlocks_master(self, engine):
        report = engine.award_xp(LEVEL_THRESHOLDS[4])
        assert report.new_level == 5
        assert report.unlocks == [RewardRef(RewardKind.BADGE, "master")]
        assert engine.rewards.is_unlocked(RewardRef(RewardKind.BADGE, "master"))

    def test_level_invariant_holds(self, engine):
        for amount in (30, 90, 5, 400, 1000, 2000):
            engine.award_xp(amount)
            s = engine.level_state
            assert LEVEL_THRESHOLDS[s.level - 1] <= s.xp
            assert s.level == 9 or s.xp < s.next_level_xp

    def test_level_progress(self, engine):
        engine.award_xp(300)
        assert engine.level_progress() == (50, 200)


# ═══════════════════════════════════════════════════════════════════════
#  ACHIEVEMENT-DRIVING OPERATIONS
# ═══════════════════════════════════════════════════════════════════════


class TestPortal:

    def test_destination(self, engine):
        report = engine.use_portal()
        assert report.destination in PORTAL_DESTINATIONS
        assert engine.counters["portalUses"] == 1

    def test_tenth_jump_completes_portal_jumper(self, engine):
        for _ in range(9):
            assert engine.use_portal().achievements == []
        report = engine.use_portal()
        assert report.achievements == ["portal_jumper"]
        assert report.xp_gained == 50
        assert report.unlocks == [RewardRef(RewardKind.PORTAL_STYLE, "cosmic")]

    def test_achievement_never_repeats(self, engine):
        for _ in range(25):
            engine.use_portal()
        assert engine.completed_achievements == ["portal_jumper"]
        assert engine.level_state.xp == 50


class TestSections:

    def test_four_distinct_sections(self, engine):
        for section in ("characters", "episodes", "quiz"):
            engine.visit_section(section)
        report = engine.visit_section("map")
        assert report.achievements == ["explorer"]
        assert report.xp_gained == 30
        assert report.unlocks == []

    def test_repeat_visit_is_noop(self, engine):
        engine.visit_section("quiz")
        assert engine.visit_section("quiz").changed is False
        assert engine.counters["sectionsVisited"] == 1

    def test_unknown_section(self, engine):
        with pytest.raises(UnknownSectionError):
            engine.visit_section("council-of-ricks")


class TestFavorites:

    def test_add_and_list(self, engine):
        chars = make_characters(2)
        for c in chars:
            engine.add_favorite(c)
        assert [c.id for c in engine.favorites()] == [1, 2]
        assert engine.counters["favoritesCount"] == 2

    def test_duplicate_is_noop(self, engine):
        c = make_characters(1)[0]
        engine.add_favorite(c)
        assert engine.add_favorite(c).changed is False
        assert engine.counters["favoritesCount"] == 1

    def test_five_completes_collector(self, engine):
        chars = make_characters(5)
        for c in chars[:4]:
            engine.add_favorite(c)
        report = engine.add_favorite(chars[4])
        assert report.achievements == ["collector"]
        assert report.unlocks == [RewardRef(RewardKind.BADGE, "collector")]

    def test_remove_lowers_count_but_keeps_achievement(self, engine):
        for c in make_characters(5):
            engine.add_favorite(c)
        engine.remove_favorite(3)
        assert engine.counters["favoritesCount"] == 4
        assert "collector" in engine.completed_achievements
        # Back to five: no second completion
        assert engine.add_favorite(make_characters(6)[5]).achievements == []

    def test_remove_missing(self, engine):
        assert engine.remove_favorite(99).changed is False

    def test_custom_character(self, engine):
        report = engine.add_custom_character(
            "Mr. Poopybutthole", "Earth (C-137)", "file:///poopy.png",
            when=datetime(2024, 3, 1, 12, 0),
        )
        assert report.changed
        (custom,) = engine.favorites()
        assert custom.name == "Mr. Poopybutthole"
        assert (custom.type, custom.status, custom.species) == ("custom", "unknown", "unknown")
        assert custom.id == int(datetime(2024, 3, 1, 12, 0).timestamp() * 1000)
        assert engine.counters["favoritesCount"] == 1

    def test_custom_characters_created_together_get_distinct_ids(self, engine):
        when = datetime(2024, 3, 1, 12, 0)
        engine.add_custom_character("A", "Here", "a.png", when=when)
        engine.add_custom_character("B", "There", "b.png", when=when)
        ids = [c.id for c in engine.favorites()]
        assert len(set(ids)) == 2

    @pytest.mark.parametrize("name,origin,image", [
        ("", "Earth", "img.png"),
        ("Rick", "   ", "img.png"),
        ("Rick", "Earth", ""),
        (None, "Earth", "img.png"),
    ])
    def test_custom_character_requires_every_field(self, engine, name, origin, image):
        with pytest.raises(InvalidCharacterError):
            engine.add_custom_character(name, origin, image)
        assert engine.favorites() == []
        assert engine.counters["favoritesCount"] == 0

    def test_custom_characters_count_toward_collector(self, engine):
        for c in make_characters(4):
            engine.add_favorite(c)
        report = engine.add_custom_character("Squanchy", "Squanch Planet", "sq.png")
        assert report.achievements == ["collector"]
        assert engine.counters["favoritesCount"] == 5


class TestEpisodes:

    def test_series_binger_on_tenth(self, engine):
        for ep in range(1, 10):
            engine.mark_episode_watched(ep)
        report = engine.mark_episode_watched(10, rating=5, notes="Pickle Rick")
        assert report.achievements == ["series_binger"]
        assert report.xp_gained == 75
        assert RewardRef(RewardKind.BADGE, "binge_watcher") in report.unlocks

    def test_rewatch_updates_without_counting(self, engine):
        engine.mark_episode_watched(1, rating=2)
        engine.mark_episode_watched(1, rating=4, notes="better the second time")
        assert engine.counters["episodesWatched"] == 1
        assert engine.watched_episodes()[1].rating == 4

    def test_unmark_keeps_counter(self, engine):
        engine.mark_episode_watched(1)
        assert engine.unmark_episode_watched(1).changed
        assert engine.watched_episodes() == {}
        assert engine.counters["episodesWatched"] == 1
        assert engine.unmark_episode_watched(1).changed is False

    def test_rating_range(self, engine):
        with pytest.raises(ValueError):
            engine.mark_episode_watched(1, rating=6)


class TestQuiz:

    def test_xp_and_stats(self, engine):
        report = engine.complete_quiz(10, 8)
        assert report.xp_gained == 35
        stats = engine.quiz_stats()
        assert (stats.total_questions, stats.correct_answers, stats.quizzes_completed) == (10, 8, 1)
        assert stats.accuracy == 0.8
        assert stats.last_quiz_date is not None

    def test_fifth_quiz_completes_quiz_master(self, engine):
        for _ in range(4):
            engine.complete_quiz(10, 3)
        report = engine.complete_quiz(10, 3)
        assert report.achievements == ["quiz_master"]
        assert report.xp_gained == 15 + 75

    @pytest.mark.parametrize("total,correct", [(0, 0), (10, 11), (10, -1)])
    def test_invalid_results(self, engine, total, correct):
        with pytest.raises(ValueError):
            engine.complete_quiz(total, correct)
        assert engine.quiz_stats().quizzes_completed == 0


# ═══════════════════════════════════════════════════════════════════════
#  MAP & CHARACTER DROPS
# ═══════════════════════════════════════════════════════════════════════


class TestMap:

    def test_locations_fetched_once(self, engine, provider):
        engine.discover_location(1)
        engine.discover_location(2)
        assert provider.calls.count("locations") == 1

    def test_location_xp(self, engine):
        report = engine.discover_location(1)
        assert report.xp_gained == 10
        assert report.drop is None
        assert engine.counters["locationsDiscovered"] == 1

    def test_rediscovery_is_noop(self, engine):
        engine.discover_location(1)
        report = engine.discover_location(1)
        assert report.changed is False
        assert report.xp_gained == 0

    def test_half_of_region_unlocks_next(self, engine):
        assert engine.discover_location(1).regions_unlocked == []
        assert engine.discover_location(2).regions_unlocked == [2]
        assert engine.map.is_unlocked(2)
        assert not engine.map.is_unlocked(3)

    def test_ten_locations_completes_location_explorer(self, engine):
        for loc in (1, 2, 5, 6, 9, 10, 13, 14, 3):
            engine.discover_location(loc)
        report = engine.discover_location(4)
        assert report.achievements == ["location_explorer"]
        assert RewardRef(RewardKind.BADGE, "cartographer") in report.unlocks
        assert engine.map.unlocked_region_ids == [1, 2, 3, 4]

    def test_load_map_rechecks_stored_discoveries(self, qapp, store, provider):
        store.set_many({
            "discoveredLocations": json.dumps([1, 2]),
            "schemaVersion": "1",
        })
        e = _reload(store, provider)
        assert e.load_map() == [2]
        assert e.map.unlocked_region_ids == [1, 2]

    def test_load_map_without_provider(self, qapp, store):
        e = ProgressionEngine(store=store, settings=Settings(character_drop_chance=0.0))
        assert e.load_map() == []
        assert all(r.location_ids == () for r in e.map.regions)


class TestDrops:

    def test_drop_awards_extra_xp(self, engine_drops):
        report = engine_drops.discover_location(1)
        assert report.drop is not None
        assert report.drop.id == 1
        assert report.drop.location_id == 1
        assert report.xp_gained == 10 + 25
        assert report.dropped_character.id == report.drop.character_id

    def test_three_drops_unlock_blue(self, engine_drops):
        engine_drops.discover_location(1)
        engine_drops.discover_location(2)
        report = engine_drops.discover_location(3)
        assert report.unlocks == [RewardRef(RewardKind.PORTAL_STYLE, "blue")]
        assert [d.id for d in engine_drops.map.drops] == [1, 2, 3]

    def test_four_to_six_unlock_nothing_then_seven_red(self, engine_drops):
        for loc in (1, 2, 3):
            engine_drops.discover_location(loc)
        for loc in (4, 5, 6):
            assert engine_drops.discover_location(loc).unlocks == []
        report = engine_drops.discover_location(7)
        assert report.unlocks == [RewardRef(RewardKind.PORTAL_STYLE, "red")]

    def test_empty_roster_skips_drop(self, qapp, store, provider):
        provider.characters = []
        e = ProgressionEngine(store=store, provider=provider,
                              settings=Settings(character_drop_chance=1.0))
        report = e.discover_location(1)
        assert report.drop is None
        assert report.xp_gained == 10

    def test_drop_rate_is_roughly_thirty_percent(self, qapp, store, provider):
        e = ProgressionEngine(store=store, provider=provider,
                              settings=Settings(character_drop_chance=0.3),
                              rng=np.random.default_rng(1234))
        e.load_map()
        drops = sum(1 for loc in range(1, 401) if e.discover_location(loc).drop)
        assert 80 <= drops <= 160


# ═══════════════════════════════════════════════════════════════════════
#  COSMETICS
# ═══════════════════════════════════════════════════════════════════════


class TestSelection:

    def test_select_locked_badge(self, engine):
        with pytest.raises(RewardLockedError):
            engine.select_badge("master")
        assert engine.rewards.selected_badge == "scientist"

    def test_select_unlocked_style_persists(self, engine, store, provider):
        for _ in range(10):
            engine.use_portal()
        engine.select_portal_style("cosmic")
        assert _reload(store, provider).rewards.selected_portal_style == "cosmic"

    def test_returned_catalog_is_a_copy(self, engine):
        before = engine.snapshot()
        catalog = engine.rewards
        catalog.unlock(RewardRef(RewardKind.BADGE, "master"))
        catalog.unlock(RewardRef(RewardKind.PORTAL_STYLE, "gold"))
        catalog.select(RewardRef(RewardKind.PORTAL_STYLE, "gold"))
        engine.record_activity(DAY)
        after = engine.snapshot()
        assert after["badges"] == before["badges"]
        assert after["portal_styles"] == before["portal_styles"]
        assert after["selected_portal_style"] == "green"

    def test_returned_map_is_a_copy(self, engine):
        engine.load_map()
        explorer = engine.map
        explorer.discover(1)
        explorer.discover(2)
        explorer.refresh_regions()
        explorer.record_drop(1, 1)
        engine.record_activity(DAY)
        snap = engine.snapshot()
        assert snap["discovered_locations"] == []
        assert snap["unlocked_regions"] == [1]
        assert snap["map_characters"] == []
        assert engine.discover_location(1).changed


# ═══════════════════════════════════════════════════════════════════════
#  SIGNALS
# ═══════════════════════════════════════════════════════════════════════


class TestSignals:

    def test_xp_awarded(self, engine):
        c = _collect(engine, "xp_awarded")
        engine.record_activity(DAY)
        assert len(c) == 1
        assert c.last["amount"] == 20
        assert c.last["reason"] == "Daily visit"
        assert c.last["total_xp"] == 20

    def test_level_up_once_per_operation(self, engine):
        c = _collect(engine, "level_up")
        engine.award_xp(1000)
        assert len(c) == 1
        assert c.last == {"old_level": 1, "new_level": 6}

    def test_no_signals_for_noop(self, engine):
        engine.record_activity(DAY)
        c = _collect(engine, "xp_awarded")
        engine.record_activity(DAY)
        assert len(c) == 0

    def test_achievement_and_reward(self, engine):
        ach = _collect(engine, "achievement_completed")
        rew = _collect(engine, "reward_unlocked")
        for _ in range(10):
            engine.use_portal()
        assert ach.items == [{"id": "portal_jumper", "title": "Portal Jumper", "xp_reward": 50}]
        assert rew.items == [{"kind": "portal_style", "key": "cosmic", "name": "Cosmic Portal"}]

    def test_region_unlocked(self, engine):
        c = _collect(engine, "region_unlocked")
        engine.discover_location(1)
        engine.discover_location(2)
        assert c.items == [{"id": 2, "name": "Citadel of Ricks"}]

    def test_character_dropped(self, engine_drops):
        c = _collect(engine_drops, "character_dropped")
        engine_drops.discover_location(1)
        assert len(c) == 1
        assert c.last["drop_id"] == 1
        assert c.last["name"].startswith("Character ")

    def test_signals_after_state_is_settled(self, engine):
        seen = []
        engine.achievement_completed.connect(
            lambda data: seen.append(engine.completed_achievements)
        )
        for _ in range(10):
            engine.use_portal()
        assert seen == [["portal_jumper"]]

    def test_xp_awarded_carries_running_totals(self, engine):
        for _ in range(4):
            engine.complete_quiz(10, 3)
        c = _collect(engine, "xp_awarded")
        engine.complete_quiz(10, 3)
        assert [(d["amount"], d["total_xp"], d["level"]) for d in c.items] == [
            (15, 75, 1),
            (75, 150, 2),
        ]


# ═══════════════════════════════════════════════════════════════════════
#  PERSISTENCE
# ═══════════════════════════════════════════════════════════════════════


class TestPersistence:

    def test_reload_restores_everything(self, engine, store, provider):
        engine.record_activity(DAY)
        for c in make_characters(5):
            engine.add_favorite(c)
        engine.mark_episode_watched(4, rating=3)
        engine.complete_quiz(10, 7)
        engine.discover_location(1)
        engine.discover_location(2)

        restored = _reload(store, provider)
        assert restored.snapshot() == engine.snapshot()
        assert [c.id for c in restored.favorites()] == [1, 2, 3, 4, 5]
        assert restored.watched_episodes()[4].rating == 3

    def test_same_day_after_reload(self, engine, store, provider):
        engine.record_activity(DAY)
        restored = _reload(store, provider)
        assert restored.record_activity(DAY).changed is False

    def test_schema_version_written(self, engine, store):
        engine.use_portal()
        assert store.get("schemaVersion") == "1"

    def test_drop_ids_continue_after_reload(self, engine_drops, store, provider):
        engine_drops.discover_location(1)
        engine_drops.discover_location(2)
        restored = ProgressionEngine(store=store, provider=provider,
                                     settings=Settings(character_drop_chance=1.0))
        restored.load()
        assert restored.discover_location(3).drop.id == 3

    def test_malformed_records_reset(self, qapp, store, provider):
        store.set_many({
            "userLevelData": json.dumps("garbage"),
            "quizStats": "{not json",
            "userAchievements": json.dumps({"portalUses": 4}),
            "schemaVersion": "1",
        })
        e = _reload(store, provider)
        assert e.level_state == LevelState()
        assert e.quiz_stats().quizzes_completed == 0
        assert e.counters["portalUses"] == 4

    @pytest.mark.parametrize("records", [
        {"userAchievements": json.dumps({"portalUses": None, "daysActive": 2})},
        {"userAchievements": json.dumps({"portalUses": "lots", "daysActive": 2})},
        {"completedAchievements": json.dumps([{"id": "collector"}, "fanatic", ["x"]])},
        {"visitedSections": json.dumps([["quiz"], "map", {"s": 1}, "map"])},
        {"favorites": json.dumps([{"id": [1]}, {"id": 2, "name": "Morty"}])},
    ])
    def test_corrupt_current_schema_records_still_load(self, qapp, store, provider, records):
        store.set_many({**records, "schemaVersion": "1"})
        e = _reload(store, provider)
        assert e.counters["portalUses"] == 0
        assert e.record_activity(DAY).changed
        assert e.counters["daysActive"] >= 1

    def test_corrupt_records_keep_readable_parts(self, qapp, store, provider):
        store.set_many({
            "userAchievements": json.dumps({"portalUses": None, "daysActive": 2}),
            "completedAchievements": json.dumps([{"id": "collector"}, "fanatic", "fanatic"]),
            "visitedSections": json.dumps([["quiz"], "map", "map"]),
            "schemaVersion": "1",
        })
        e = _reload(store, provider)
        assert e.counters["daysActive"] == 2
        assert e.completed_achievements == ["fanatic"]
        assert e.visit_section("map").changed is False

    def test_newer_schema_is_not_overwritten(self, qapp, store, provider):
        store.set_many({
            "userAchievements": json.dumps({"portalUses": 3}),
            "futureKey": json.dumps({"x": 1}),
            "schemaVersion": "2",
        })
        e = _reload(store, provider)
        assert e.counters["portalUses"] == 3
        e.use_portal()
        assert e.counters["portalUses"] == 4
        assert e.save() is False
        assert store.get("schemaVersion") == "2"
        assert json.loads(store.get("userAchievements")) == {"portalUses": 3}


class TestMigration:

    def test_unversioned_blobs(self, qapp, store, provider):
        store.set_many({
            "userAchievements": json.dumps({"portalUses": "3", "favoritesCount": 9}),
            "favorites": json.dumps([{"id": 1, "name": "Rick"}, {"id": 2, "name": "Morty"}]),
            "completedAchievements": json.dumps(["explorer", "explorer"]),
            "userLevelData": json.dumps({"level": 1, "xp": 500, "nextLevelXp": 100}),
            "watchedEpisodes": json.dumps({"1": {"id": 1, "rating": 9}}),
        })
        e = _reload(store, provider)
        assert e.counters["portalUses"] == 3
        assert e.counters["favoritesCount"] == 2
        assert e.counters["episodesWatched"] == 1
        assert e.completed_achievements == ["explorer"]
        assert e.level_state == LevelState(level=4, xp=500, next_level_xp=700)
        assert e.watched_episodes()[1].rating == 5
        assert store.get("schemaVersion") == "1"

    def test_unknown_badges_dropped(self, qapp, store, provider):
        store.set_many({
            "userBadges": json.dumps([
                {"id": "collector", "name": "Collector", "unlocked": True, "icon": "heart"},
                {"id": "pickle", "name": "Pickle", "unlocked": True},
            ]),
        })
        e = _reload(store, provider)
        assert e.rewards.unlocked_keys(RewardKind.BADGE) == ["scientist", "collector"]


# ═══════════════════════════════════════════════════════════════════════
#  STORAGE FAILURES
# ═══════════════════════════════════════════════════════════════════════


class TestStorageFailure:

    def test_write_failure_keeps_memory_state(self, engine, store, monkeypatch):
        def boom(values):
            raise StorageError("disk full")

        monkeypatch.setattr(store, "set_many", boom)
        report = engine.use_portal()
        assert report.changed
        assert engine.counters["portalUses"] == 1
        assert engine.save() is False

    def test_read_failure_starts_fresh(self, qapp, provider, monkeypatch):
        broken = KeyValueStore()

        def boom(keys):
            raise StorageError("locked")

        monkeypatch.setattr(broken, "get_many", boom)
        e = ProgressionEngine(store=broken, provider=provider)
        e.load()
        assert e.counters["daysActive"] == 0
        assert e.level_state == LevelState()


class TestConcurrency:

    def test_parallel_operations_are_serialized(self, engine, monkeypatch, store):
        monkeypatch.setattr(store, "set_many", lambda values: None)

        def jump():
            for _ in range(25):
                engine.use_portal()

        threads = [threading.Thread(target=jump) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert engine.counters["portalUses"] == 200
        assert engine.completed_achievements == ["portal_jumper"]
        assert engine.level_state.xp == 50
