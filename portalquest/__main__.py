"""Allow running PortalQuest as a module: python -m portalquest."""

import logging
import sys

from PyQt6.QtCore import QCoreApplication

from .api.client import ApiClient
from .daily import DailyPicks
from .database.db import configure_engine, init_db
from .database.store import KeyValueStore
from .notifications import NotificationSink
from .progression.achievements import ACHIEVEMENTS
from .progression.engine import ProgressionEngine
from .progression.levels import MAX_LEVEL
from .settings import load_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Attach one stream handler to the ``portalquest`` logger."""
    logger = logging.getLogger("portalquest")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def _summary(engine: ProgressionEngine) -> str:
    state = engine.level_state
    earned, needed = engine.level_progress()
    lines = [
        f"Level {state.level}"
        + (" (max)" if state.level >= MAX_LEVEL else f"  {earned}/{needed} XP to next"),
        f"Total XP: {state.xp}",
        "",
        "Achievements:",
    ]
    for p in engine.achievement_progress():
        mark = "x" if p.completed else " "
        lines.append(
            f"  [{mark}] {p.definition.title:<18} "
            f"{min(p.current, p.definition.requirement)}/{p.definition.requirement}"
        )
    rewards = engine.rewards
    lines += [
        "",
        f"Badge: {rewards.selected_badge}   Portal: {rewards.selected_portal_style}",
    ]
    return "\n".join(lines)


def main() -> None:
    settings = load_settings()
    configure_logging(settings.effective_log_level)

    app = QCoreApplication(sys.argv)
    app.setApplicationName("PortalQuest")
    app.setOrganizationName("PortalQuest")

    if settings.database_url:
        configure_engine(settings.database_url)
    init_db()

    store = KeyValueStore()
    client = ApiClient(settings, store=store)
    engine = ProgressionEngine(store=store, provider=client, settings=settings)
    sink = NotificationSink(enabled=settings.notifications_enabled)
    sink.attach(engine)

    engine.load()
    engine.record_activity()

    quote = DailyPicks(store, client).quote_of_the_day()
    print(f"\"{quote['text']}\" — {quote['character']}\n")
    print(_summary(engine))
    print(f"\n{len(engine.completed_achievements)}/{len(ACHIEVEMENTS)} achievements")


if __name__ == "__main__":
    main()
