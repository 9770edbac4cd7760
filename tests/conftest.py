# tests/conftest.py
"""Shared fixtures: an in-memory SQLite database, a stepping clock and
in-memory stand-ins for the scraper, repository and notifier."""
from datetime import datetime, timedelta, timezone

import pytest

from cardsync.db import Base, create_db_engine, init_db, make_session_factory
from cardsync.schemas import ListingEntity

T0 = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


class SteppingClock:
    """Returns T0, T0+step, T0+2*step, ... on successive calls."""

    def __init__(self, start=T0, step=timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self):
        value = self.current
        self.current = self.current + self.step
        return value


class FakeScraper:
    def __init__(self, entities=None, error=None):
        self.entities = list(entities or [])
        self.error = error
        self.calls = 0

    def fetch_listings(self):
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.entities)


class FakeRepository:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def save(self, entities):
        self.calls.append(list(entities))
        if self.error:
            raise self.error
        return len(entities)


class FakeNotifier:
    def __init__(self):
        self.calls = []

    def send_digest(self, entities, source_label):
        self.calls.append((list(entities), source_label))
        return len(entities)


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def make_entity():
    def factory(**overrides):
        values = {
            "slug": "caja-coleccion-especial-pokemon-tcg-charizard-ex-castellano",
            "source": "gamestore",
            "title": "Caja Colección Especial Pokemon TCG Charizard Ex (Castellano)",
            "price": "MERCHANDISING",
            "link": "https://www.game.es/COLECCIONABLES/BARAJA-POKEMON/MERCHANDISING/CHARIZARD-EX/241281",
            "image_url": "https://media.game.es/COVERV2/3D_L/241/241281.png",
            "scraped_at": T0,
        }
        values.update(overrides)
        return ListingEntity(**values)
    return factory


@pytest.fixture
def many_entities(make_entity):
    def factory(count):
        return [
            make_entity(
                slug=f"card-{i}",
                title=f"Custom Test Card {i}",
                price=f"{i},99 €",
                link=f"https://www.game.es/cards/{i:03d}",
            )
            for i in range(1, count + 1)
        ]
    return factory
