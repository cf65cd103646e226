"""SQLAlchemy ORM models for PortalQuest."""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class KeyValue(Base):
    """One persisted blob: an opaque key mapped to a JSON-serialized value."""

    __tablename__ = "kv_store"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<KeyValue key={self.key} size={len(self.value or '')}>"
