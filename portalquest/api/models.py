"""Character, episode and location records returned by the show API.

The API is loose about shapes (``origin`` is sometimes a string and
sometimes ``{"name": ..., "url": ...}``, numeric fields arrive as
strings), so every ``from_dict`` tolerates missing or oddly typed fields.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict


def _as_int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_str(value) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        return str(value.get("name", ""))
    return str(value)


@dataclass(frozen=True)
class Character:
    id: int
    name: str
    status: str = ""
    species: str = ""
    type: str = ""
    gender: str = ""
    origin: str = ""
    image: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Character:
        return cls(
            id=_as_int(data.get("id")),
            name=_as_str(data.get("name")),
            status=_as_str(data.get("status")),
            species=_as_str(data.get("species")),
            type=_as_str(data.get("type")),
            gender=_as_str(data.get("gender")),
            origin=_as_str(data.get("origin")),
            image=_as_str(data.get("image")),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Episode:
    id: int
    name: str
    air_date: str = ""
    season: int = 0
    episode: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> Episode:
        return cls(
            id=_as_int(data.get("id")),
            name=_as_str(data.get("name")),
            air_date=_as_str(data.get("air_date")),
            season=_as_int(data.get("season")),
            episode=_as_int(data.get("episode")),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Location:
    id: int
    name: str
    type: str = ""
    dimension: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Location:
        return cls(
            id=_as_int(data.get("id")),
            name=_as_str(data.get("name")),
            type=_as_str(data.get("type")),
            dimension=_as_str(data.get("dimension")),
        )

    def to_dict(self) -> dict:
        return asdict(self)


# Shown whenever the API and the cache both come up empty.
DEFAULT_CHARACTER = Character(
    id=1,
    name="Rick Sanchez",
    status="Alive",
    species="Human",
    gender="Male",
    origin="Earth (C-137)",
    image="https://rickandmortyapi.com/api/character/avatar/1.jpeg",
)
