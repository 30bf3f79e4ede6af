"""
Shared fixtures: an in-memory database and a small builder that plays the
role of the CRUD layer (rows are inserted directly, nothing is logged).
"""

from datetime import datetime

import pytest
from sqlalchemy.pool import StaticPool

from demonlist.store.models import Demon, Nationality, Player, Record, RecordStatus, Subdivision
from demonlist.store.session import configure, make_sessionmaker, session_scope

BASE_TIME = datetime(2024, 1, 1)


class ListBuilder:
    """Inserts list rows the way the CRUD layer would."""

    def __init__(self, sessions):
        self.sessions = sessions

    def _add(self, obj):
        with session_scope(self.sessions) as session:
            session.add(obj)
            session.flush()
        return obj

    def nation(self, code, name, continent="Europe"):
        return self._add(Nationality(iso_country_code=code, nation=name, continent=continent))

    def subdivision(self, nation, iso_code, name):
        return self._add(Subdivision(nation=nation, iso_code=iso_code, name=name))

    def player(self, name, nationality=None, subdivision=None, banned=False):
        return self._add(Player(name=name, nationality=nationality, subdivision=subdivision, banned=banned))

    def demon(self, name, position, verifier, requirement=50, rated=True, publisher=None):
        return self._add(Demon(
            name=name,
            position=position,
            requirement=requirement,
            verifier_id=verifier.id,
            publisher_id=(publisher or verifier).id,
            rated=rated,
            created_at=BASE_TIME,
        ))

    def record(self, player, demon, progress, status=RecordStatus.APPROVED):
        return self._add(Record(player_id=player.id, demon_id=demon.id, progress=progress, status=status))


@pytest.fixture
def sessions():
    sessions = make_sessionmaker(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    configure(sessions)
    yield sessions
    configure(None)


@pytest.fixture
def builder(sessions):
    return ListBuilder(sessions)


@pytest.fixture
def session(sessions):
    with session_scope(sessions) as s:
        yield s
