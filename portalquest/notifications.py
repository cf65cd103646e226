"""User-facing notifications for progression events.

:class:`NotificationSink` listens to a :class:`ProgressionEngine`'s
signals and turns them into short ``(title, body)`` messages.  Delivery
is fire-and-forget: a failing :meth:`NotificationSink.deliver` is logged
and never reaches the engine.  Subclasses override ``deliver`` to push
to a real channel; the base class logs and keeps a short history.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

from PyQt6.QtCore import QObject

logger = logging.getLogger(__name__)

HISTORY_SIZE = 50


@dataclass(frozen=True)
class Notification:
    kind: str       # "level_up" | "achievement" | "reward" | "region" | "character"
    title: str
    body: str


class NotificationSink(QObject):
    """Formats engine signals into notifications."""

    def __init__(self, parent: QObject | None = None, *, enabled: bool = True) -> None:
        super().__init__(parent)
        self.enabled = enabled
        self.history: deque[Notification] = deque(maxlen=HISTORY_SIZE)

    def attach(self, engine) -> None:
        engine.level_up.connect(self._on_level_up)
        engine.achievement_completed.connect(self._on_achievement)
        engine.reward_unlocked.connect(self._on_reward)
        engine.region_unlocked.connect(self._on_region)
        engine.character_dropped.connect(self._on_character)

    # ── delivery ────────────────────────────────────────────────────

    def deliver(self, notification: Notification) -> None:
        logger.info("%s: %s", notification.title, notification.body)

    def _send(self, kind: str, title: str, body: str) -> None:
        if not self.enabled:
            return
        notification = Notification(kind, title, body)
        self.history.append(notification)
        try:
            self.deliver(notification)
        except Exception:
            logger.exception("Notification delivery failed for %r", title)

    # ── slots ───────────────────────────────────────────────────────

    def _on_level_up(self, data: dict) -> None:
        self._send("level_up", "Level Up!", f"You reached level {data['new_level']}!")

    def _on_achievement(self, data: dict) -> None:
        self._send(
            "achievement", "Achievement Unlocked!",
            f"{data['title']} (+{data['xp_reward']} XP)",
        )

    def _on_reward(self, data: dict) -> None:
        title = "New Badge!" if data["kind"] == "badge" else "New Portal Style Unlocked!"
        self._send("reward", title, f"You've unlocked the {data['name']}!")

    def _on_region(self, data: dict) -> None:
        self._send(
            "region", "New Region Unlocked!",
            f"You've unlocked the {data['name']} region!",
        )

    def _on_character(self, data: dict) -> None:
        who = data.get("name") or f"character #{data['character_id']}"
        self._send("character", "Character Discovered!", f"You found {who}!")
