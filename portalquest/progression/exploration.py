"""Location map: regions, discoveries and character drops.

Regions
-------
The map has four regions forming a linear unlock chain::

    1 Earth Dimension C-137       always unlocked
    2 Citadel of Ricks            needs region 1
    3 Alien Worlds                needs region 2
    4 Interdimensional Spaces     needs region 3

A locked region unlocks once its prerequisite is unlocked **and** at
least half of the prerequisite's locations have been discovered.
Unlocking is one-way.  Regions are checked in chain order after every
new discovery, so one discovery can open several regions when their
location sets overlap, but never out of order.

Character drops
---------------
A drop is a character found at a location.  Drop ids are assigned
sequentially.  The engine decides *whether* a drop happens; this module
only records it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from ..api.models import Location
from .records import CharacterDrop

UNLOCK_FRACTION = 0.5


@dataclass(frozen=True)
class Region:
    id: int
    name: str
    location_ids: tuple[int, ...]
    required_region_id: int | None = None


@dataclass(frozen=True)
class RegionDef:
    id: int
    name: str
    matches: Callable[[Location], bool]
    required_region_id: int | None = None


def _in_c137(loc: Location) -> bool:
    return (
        loc.dimension == "Dimension C-137"
        or "Earth" in loc.name
        or "Smith" in loc.name
    )


def _in_citadel(loc: Location) -> bool:
    return "Citadel" in loc.name or "Rick" in loc.name


def _is_alien_world(loc: Location) -> bool:
    return "Planet" in loc.type or "Space" in loc.type


def _is_interdimensional(loc: Location) -> bool:
    return (
        loc.dimension not in ("Dimension C-137", "unknown")
        and "Earth" not in loc.name
    )


REGION_DEFS: list[RegionDef] = [
    RegionDef(1, "Earth Dimension C-137", _in_c137),
    RegionDef(2, "Citadel of Ricks", _in_citadel, required_region_id=1),
    RegionDef(3, "Alien Worlds", _is_alien_world, required_region_id=2),
    RegionDef(4, "Interdimensional Spaces", _is_interdimensional, required_region_id=3),
]


def build_regions(locations: Iterable[Location]) -> list[Region]:
    """Sort *locations* into the map regions.  A location may sit in several."""
    locations = list(locations)
    return [
        Region(
            id=d.id,
            name=d.name,
            location_ids=tuple(loc.id for loc in locations if d.matches(loc)),
            required_region_id=d.required_region_id,
        )
        for d in REGION_DEFS
    ]


class MapExplorer:
    """Discovered locations, region unlock state and character drops."""

    def __init__(
        self,
        regions: Iterable[Region],
        discovered: Iterable[int] = (),
        unlocked: Iterable[int] = (),
        drops: Iterable[CharacterDrop] = (),
    ) -> None:
        self._regions: dict[int, Region] = {r.id: r for r in regions}
        self._discovered: list[int] = []
        for loc_id in discovered:
            if loc_id not in self._discovered:
                self._discovered.append(loc_id)
        self._unlocked: set[int] = {
            r.id for r in REGION_DEFS if r.required_region_id is None
        }
        self._unlocked.update(
            r.id for r in self._regions.values() if r.required_region_id is None
        )
        # Stored ids are kept even before the regions are known.
        self._unlocked.update(unlocked)
        self._drops: list[CharacterDrop] = list(drops)

    # ── queries ─────────────────────────────────────────────────────

    @property
    def regions(self) -> list[Region]:
        return sorted(self._regions.values(), key=lambda r: r.id)

    @property
    def discovered(self) -> list[int]:
        return list(self._discovered)

    @property
    def unlocked_region_ids(self) -> list[int]:
        return sorted(self._unlocked)

    @property
    def drops(self) -> list[CharacterDrop]:
        return list(self._drops)

    def get_region(self, region_id: int) -> Region | None:
        return self._regions.get(region_id)

    def is_unlocked(self, region_id: int) -> bool:
        return region_id in self._unlocked

    def is_discovered(self, location_id: int) -> bool:
        return location_id in self._discovered

    def region_progress(self, region_id: int) -> float:
        """Fraction of the region's locations discovered (0 for empty regions)."""
        region = self._regions[region_id]
        if not region.location_ids:
            return 0.0
        found = sum(1 for loc_id in region.location_ids if loc_id in self._discovered)
        return found / len(region.location_ids)

    # ── mutations ───────────────────────────────────────────────────

    def discover(self, location_id: int) -> bool:
        """Mark *location_id* discovered; ``False`` if it already was."""
        if location_id in self._discovered:
            return False
        self._discovered.append(location_id)
        return True

    def refresh_regions(self) -> list[Region]:
        """Unlock every region whose condition now holds, in chain order."""
        newly: list[Region] = []
        for region in self.regions:
            if region.id in self._unlocked or region.required_region_id is None:
                continue
            required = region.required_region_id
            if required not in self._unlocked or required not in self._regions:
                continue
            if self.region_progress(required) >= UNLOCK_FRACTION:
                self._unlocked.add(region.id)
                newly.append(region)
        return newly

    def copy(self) -> MapExplorer:
        return self.with_regions(self._regions.values())

    def with_regions(self, regions: Iterable[Region]) -> MapExplorer:
        """Copy of this explorer's state laid over a new set of regions."""
        return MapExplorer(
            regions,
            discovered=self._discovered,
            unlocked=self._unlocked,
            drops=self._drops,
        )

    def record_drop(self, character_id: int, location_id: int) -> CharacterDrop:
        next_id = max((d.id for d in self._drops), default=0) + 1
        drop = CharacterDrop(id=next_id, character_id=character_id, location_id=location_id)
        self._drops.append(drop)
        return drop
