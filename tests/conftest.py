"""Shared pytest fixtures for PortalQuest tests."""

import sys
import pytest

import numpy as np
from PyQt6.QtCore import QCoreApplication

from portalquest.database.db import configure_engine, init_db
from portalquest.database.store import KeyValueStore
from portalquest.progression.engine import ProgressionEngine
from portalquest.settings import Settings

from helpers import FakeProvider, make_characters, make_locations


@pytest.fixture(scope="session")
def qapp():
    """A single QCoreApplication instance shared across the entire test run."""
    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    yield app


@pytest.fixture(autouse=True)
def test_db():
    """Point every test at a fresh in-memory SQLite database."""
    configure_engine("sqlite:///:memory:")
    init_db()
    yield


@pytest.fixture
def store():
    return KeyValueStore()


@pytest.fixture
def provider():
    return FakeProvider(characters=make_characters(12), locations=make_locations())


@pytest.fixture
def engine(qapp, store, provider):
    """Fresh engine that never rolls a character drop."""
    e = ProgressionEngine(
        store=store, provider=provider,
        settings=Settings(character_drop_chance=0.0),
        rng=np.random.default_rng(7),
    )
    e.load()
    return e


@pytest.fixture
def engine_drops(qapp, store, provider):
    """Fresh engine where every new location yields a character drop."""
    e = ProgressionEngine(
        store=store, provider=provider,
        settings=Settings(character_drop_chance=1.0),
        rng=np.random.default_rng(7),
    )
    e.load()
    return e
