"""Show API client and record types."""

from .client import ApiClient
from .models import Character, Episode, Location, DEFAULT_CHARACTER

__all__ = ["ApiClient", "Character", "Episode", "Location", "DEFAULT_CHARACTER"]
