"""Progression package: counters, levels, achievements, rewards, map."""

from .counters import (
    CounterStore,
    COUNTER_KEYS,
    UnknownCounterError,
    CounterRegressionError,
)
from .levels import (
    LevelLedger,
    InvalidAwardError,
    LEVEL_THRESHOLDS,
    MAX_LEVEL,
    level_for_xp,
    xp_for_level,
    xp_in_current_level,
)
from .achievements import (
    AchievementDef,
    AchievementEvaluator,
    ACHIEVEMENTS,
)
from .rewards import (
    RewardCatalog,
    RewardUnlockResolver,
    RewardRef,
    RewardKind,
    RewardLockedError,
    BADGES,
    PORTAL_STYLES,
    PORTAL_DROP_THRESHOLDS,
)
from .exploration import MapExplorer, Region, build_regions
from .engine import ProgressionEngine, ProgressReport, InvalidCharacterError

__all__ = [
    "CounterStore",
    "COUNTER_KEYS",
    "UnknownCounterError",
    "CounterRegressionError",
    "LevelLedger",
    "InvalidAwardError",
    "LEVEL_THRESHOLDS",
    "MAX_LEVEL",
    "level_for_xp",
    "xp_for_level",
    "xp_in_current_level",
    "AchievementDef",
    "AchievementEvaluator",
    "ACHIEVEMENTS",
    "RewardCatalog",
    "RewardUnlockResolver",
    "RewardRef",
    "RewardKind",
    "RewardLockedError",
    "BADGES",
    "PORTAL_STYLES",
    "PORTAL_DROP_THRESHOLDS",
    "MapExplorer",
    "Region",
    "build_regions",
    "ProgressionEngine",
    "ProgressReport",
    "InvalidCharacterError",
]
