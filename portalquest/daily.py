"""Quote of the day and character of the day.

Both are rolled at most once per calendar day and cached in the
key-value store, so every screen that shows them agrees until midnight.
"""

from __future__ import annotations

import json
import logging
from datetime import date

import numpy as np

from .api.models import Character, DEFAULT_CHARACTER
from .database.store import KeyValueStore, StorageError

logger = logging.getLogger(__name__)

QUOTE_DATE_KEY = "quoteLastUpdated"
QUOTE_KEY = "currentQuote"
CHARACTER_DATE_KEY = "characterLastUpdated"
CHARACTER_KEY = "characterOfTheDay"

# Highest character id served by the API.
MAX_CHARACTER_ID = 826

QUOTES: list[dict[str, str]] = [
    {"text": "Wubba Lubba Dub Dub!", "character": "Rick Sanchez"},
    {"text": "Nobody exists on purpose. Nobody belongs anywhere. Everybody's "
             "gonna die. Come watch TV?", "character": "Morty Smith"},
    {"text": "Sometimes science is more art than science, Morty. A lot of "
             "people don't get that.", "character": "Rick Sanchez"},
    {"text": "I'm sorry, but your opinion means very little to me.",
     "character": "Rick Sanchez"},
    {"text": "To live is to risk it all; otherwise you're just an inert chunk "
             "of randomly assembled molecules drifting wherever the universe "
             "blows you.", "character": "Rick Sanchez"},
    {"text": "Don't be trippin', dog. We got you.", "character": "Rick Sanchez"},
    {"text": "Weddings are basically funerals with cake.", "character": "Rick Sanchez"},
]


class DailyPicks:
    """Picks that stay fixed for one calendar day."""

    def __init__(
        self,
        store: KeyValueStore | None = None,
        provider=None,
        rng: np.random.Generator | None = None,
    ) -> None:
        self._store = store if store is not None else KeyValueStore()
        self._provider = provider
        self._rng = rng if rng is not None else np.random.default_rng()

    def _cached(self, date_key: str, value_key: str, today: str):
        """The cached JSON value if it was stored today, else ``None``."""
        try:
            stored = self._store.get_many([date_key, value_key])
        except StorageError as exc:
            logger.warning("Daily cache unavailable: %s", exc)
            return None
        if stored[date_key] != today or stored[value_key] is None:
            return None
        try:
            return json.loads(stored[value_key])
        except ValueError:
            logger.warning("Discarding corrupt %s", value_key)
            return None

    def _remember(self, date_key: str, value_key: str, today: str, value) -> None:
        try:
            self._store.set_many({date_key: today, value_key: json.dumps(value)})
        except StorageError as exc:
            logger.warning("Could not cache %s: %s", value_key, exc)

    def quote_of_the_day(self, today: date | None = None) -> dict[str, str]:
        today_str = (today or date.today()).isoformat()
        cached = self._cached(QUOTE_DATE_KEY, QUOTE_KEY, today_str)
        if isinstance(cached, dict) and "text" in cached:
            return cached
        quote = QUOTES[int(self._rng.integers(len(QUOTES)))]
        self._remember(QUOTE_DATE_KEY, QUOTE_KEY, today_str, quote)
        return quote

    def character_of_the_day(self, today: date | None = None) -> Character:
        today_str = (today or date.today()).isoformat()
        cached = self._cached(CHARACTER_DATE_KEY, CHARACTER_KEY, today_str)
        if isinstance(cached, dict) and cached.get("name"):
            return Character.from_dict(cached)
        if self._provider is None:
            character = DEFAULT_CHARACTER
        else:
            character_id = int(self._rng.integers(1, MAX_CHARACTER_ID + 1))
            character = self._provider.fetch_character(character_id)
        self._remember(CHARACTER_DATE_KEY, CHARACTER_KEY, today_str, character.to_dict())
        return character
