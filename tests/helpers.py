"""Shared test helpers for PortalQuest."""

from portalquest.api.models import Character, Location


class SignalCollector:
    """Utility to capture pyqtSignal emissions into a list."""

    def __init__(self):
        self.items: list = []

    def slot(self, *args):
        self.items.append(args if len(args) > 1 else args[0] if args else None)

    def __call__(self, *args):
        self.slot(*args)

    def __len__(self):
        return len(self.items)

    def __getitem__(self, idx):
        return self.items[idx]

    @property
    def last(self):
        return self.items[-1] if self.items else None

    def clear(self):
        self.items.clear()


SPECIES = ["Human", "Alien", "Robot", "Cronenberg", "Animal", "Mythological"]
ORIGINS = ["Earth (C-137)", "Gazorpazorp", "Bird World", "Citadel of Ricks", "unknown"]


def make_characters(n: int) -> list[Character]:
    return [
        Character(
            id=i,
            name=f"Character {i}",
            species=SPECIES[i % len(SPECIES)],
            origin=ORIGINS[i % len(ORIGINS)],
            image=f"https://example.test/{i}.jpeg",
        )
        for i in range(1, n + 1)
    ]


def make_locations() -> list[Location]:
    """Four locations per region, no overlaps between regions.

    Region 1 (C-137):      1-4
    Region 2 (Citadel):    5-8
    Region 3 (Planets):    9-12
    Region 4 (elsewhere): 13-16
    """
    locs = [
        Location(id=i, name=f"Suburb {i}", type="Neighborhood", dimension="Dimension C-137")
        for i in range(1, 5)
    ]
    locs += [
        Location(id=i, name=f"Citadel Sector {i}", type="Station", dimension="unknown")
        for i in range(5, 9)
    ]
    locs += [
        Location(id=i, name=f"Gazorpazorp {i}", type="Planet", dimension="unknown")
        for i in range(9, 13)
    ]
    locs += [
        Location(id=i, name=f"Pocket {i}", type="Dream", dimension="Fantasy Dimension")
        for i in range(13, 17)
    ]
    return locs


class FakeProvider:
    """Stands in for ``ApiClient`` with canned data."""

    def __init__(self, characters=None, locations=None, episodes=None):
        self.characters = list(characters or [])
        self.locations = list(locations or [])
        self.episodes = list(episodes or [])
        self.calls: list[str] = []

    def fetch_characters(self):
        self.calls.append("characters")
        return list(self.characters)

    def fetch_locations(self):
        self.calls.append("locations")
        return list(self.locations)

    def fetch_episodes(self):
        self.calls.append("episodes")
        return list(self.episodes)

    def fetch_character(self, character_id):
        self.calls.append(f"character:{character_id}")
        for c in self.characters:
            if c.id == character_id:
                return c
        return self.characters[0]
