"""Database package."""

from .db import get_session, init_db
from .models import KeyValue
from .store import KeyValueStore, StorageError

__all__ = ["get_session", "init_db", "KeyValue", "KeyValueStore", "StorageError"]
