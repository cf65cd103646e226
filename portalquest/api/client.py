"""HTTP client for the show's REST API.

Network failures never reach the caller.  Each list endpoint caches its
last good response in the key-value store; when a fetch fails the cached
copy is returned, and when there is no cache a hardcoded default is used
(the Rick Sanchez record for characters, an empty list otherwise).
"""

from __future__ import annotations

import json
import logging

import requests

from ..database.store import KeyValueStore, StorageError
from ..settings import Settings
from .models import Character, Episode, Location, DEFAULT_CHARACTER

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache."


class ApiClient:
    """Fetches characters, episodes and locations.

    *store* may be ``None`` to disable caching entirely.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: KeyValueStore | None = None,
        session: requests.Session | None = None,
    ) -> None:
        settings = settings or Settings()
        self._base_url = settings.api_base_url.rstrip("/")
        self._timeout = settings.request_timeout
        self._store = store
        self._session = session or requests.Session()

    # ── transport ────────────────────────────────────────────────────

    def _get_json(self, path: str):
        url = f"{self._base_url}/{path.lstrip('/')}"
        resp = self._session.get(url, timeout=self._timeout)
        resp.raise_for_status()
        return resp.json()

    def _fetch_list(self, path: str) -> list[dict] | None:
        """Return the decoded list at *path*, or ``None`` on any failure."""
        try:
            data = self._get_json(path)
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Fetching %s failed: %s", path, exc)
            return None
        if not isinstance(data, list):
            logger.warning("Unexpected payload for %s: %s", path, type(data).__name__)
            return None
        items = [d for d in data if isinstance(d, dict)]
        self._write_cache(path, items)
        return items

    # ── cache ────────────────────────────────────────────────────────

    def _write_cache(self, path: str, items: list[dict]) -> None:
        if self._store is None:
            return
        try:
            self._store.set(CACHE_PREFIX + path, json.dumps(items))
        except StorageError as exc:
            logger.warning("Could not cache %s: %s", path, exc)

    def _read_cache(self, path: str) -> list[dict] | None:
        if self._store is None:
            return None
        try:
            raw = self._store.get(CACHE_PREFIX + path)
        except StorageError as exc:
            logger.warning("Could not read cached %s: %s", path, exc)
            return None
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Discarding corrupt cache for %s", path)
            return None
        return [d for d in data if isinstance(d, dict)] if isinstance(data, list) else None

    def _list_or_fallback(self, path: str) -> list[dict]:
        items = self._fetch_list(path)
        if items is not None:
            return items
        cached = self._read_cache(path)
        if cached is not None:
            logger.info("Using cached %s (%d records)", path, len(cached))
            return cached
        return []

    # ── public API ───────────────────────────────────────────────────

    def fetch_characters(self) -> list[Character]:
        chars = [Character.from_dict(d) for d in self._list_or_fallback("characters")]
        return chars or [DEFAULT_CHARACTER]

    def fetch_episodes(self) -> list[Episode]:
        return [Episode.from_dict(d) for d in self._list_or_fallback("episodes")]

    def fetch_locations(self) -> list[Location]:
        return [Location.from_dict(d) for d in self._list_or_fallback("locations")]

    def fetch_character(self, character_id: int) -> Character:
        """Single character by id; the default character on any failure."""
        try:
            data = self._get_json(f"characters/{character_id}")
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Fetching character %s failed: %s", character_id, exc)
            return DEFAULT_CHARACTER
        if not isinstance(data, dict) or not data.get("name"):
            logger.warning("Invalid character payload for id %s", character_id)
            return DEFAULT_CHARACTER
        return Character.from_dict(data)
