"""Application settings with JSON persistence.

Settings are stored at:
    ~/.local/share/PortalQuest/settings.json

Usage::

    settings = load_settings()
    settings.character_drop_chance = 0.5
    save_settings(settings)
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, asdict, fields
from pathlib import Path

logger = logging.getLogger(__name__)

# Reuse the app-support directory from db.py
APP_SUPPORT_DIR = Path.home() / ".local" / "share" / "PortalQuest"
SETTINGS_PATH = APP_SUPPORT_DIR / "settings.json"

LOG_LEVEL_ENV = "PORTALQUEST_LOG_LEVEL"


@dataclass
class Settings:
    """All user-configurable preferences."""

    # ── data provider ─────────────────────────────────────────────────
    api_base_url: str = "https://sampleapis.assimilate.be/rickandmorty"
    request_timeout: float = 10.0          # seconds

    # ── progression ───────────────────────────────────────────────────
    character_drop_chance: float = 0.3     # per newly discovered location
    daily_visit_xp: int = 20

    # ── notifications ─────────────────────────────────────────────────
    notifications_enabled: bool = True

    # ── diagnostics / storage ─────────────────────────────────────────
    log_level: str = "INFO"
    database_url: str | None = None        # None → SQLite file in APP_SUPPORT_DIR

    @property
    def effective_log_level(self) -> str:
        """``log_level`` unless overridden by ``PORTALQUEST_LOG_LEVEL``."""
        return (os.environ.get(LOG_LEVEL_ENV) or self.log_level).upper()


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from disk, falling back to defaults."""
    path = path or SETTINGS_PATH
    try:
        if path.exists():
            data = json.loads(path.read_text(encoding="utf-8"))
            # Only use keys that exist in the dataclass
            valid_keys = {f.name for f in fields(Settings)}
            filtered = {k: v for k, v in data.items() if k in valid_keys}
            return Settings(**filtered)
    except (OSError, ValueError, TypeError, AttributeError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
    return Settings()


def save_settings(settings: Settings, path: Path | None = None) -> None:
    """Write settings to disk as JSON."""
    path = path or SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(asdict(settings), indent=2) + "\n",
        encoding="utf-8",
    )
