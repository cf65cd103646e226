"""Key-value persistence provider backed by the ``kv_store`` table.

Values are opaque strings (the progression layer stores JSON).  Every
SQLAlchemy failure is re-raised as :class:`StorageError` so callers can
degrade to their in-memory state without knowing about the database.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from .db import get_session
from .models import KeyValue


class StorageError(Exception):
    """A read or write against the key-value store failed."""


class KeyValueStore:
    """``get`` / ``set`` / ``remove`` over string keys."""

    def get(self, key: str) -> str | None:
        try:
            with get_session() as db:
                row = db.get(KeyValue, key)
                return row.value if row is not None else None
        except SQLAlchemyError as exc:
            raise StorageError(f"could not read {key!r}") from exc

    def get_many(self, keys: Iterable[str]) -> dict[str, str | None]:
        """Read several keys at once; absent keys map to ``None``."""
        keys = list(keys)
        try:
            with get_session() as db:
                rows = db.query(KeyValue).filter(KeyValue.key.in_(keys)).all()
                found = {r.key: r.value for r in rows}
        except SQLAlchemyError as exc:
            raise StorageError("could not read progression state") from exc
        return {k: found.get(k) for k in keys}

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def set_many(self, values: Mapping[str, str]) -> None:
        """Write all *values* in a single transaction."""
        if not values:
            return
        now = datetime.now()
        try:
            with get_session() as db:
                for key, value in values.items():
                    row = db.get(KeyValue, key)
                    if row is None:
                        db.add(KeyValue(key=key, value=value, updated_at=now))
                    else:
                        row.value = value
                        row.updated_at = now
        except SQLAlchemyError as exc:
            raise StorageError(
                f"could not write {', '.join(sorted(values))}"
            ) from exc

    def remove(self, key: str) -> None:
        try:
            with get_session() as db:
                db.query(KeyValue).filter_by(key=key).delete()
        except SQLAlchemyError as exc:
            raise StorageError(f"could not remove {key!r}") from exc

    def keys(self) -> list[str]:
        try:
            with get_session() as db:
                return sorted(k for (k,) in db.query(KeyValue.key).all())
        except SQLAlchemyError as exc:
            raise StorageError("could not list keys") from exc
