"""
Tests for the demon audit log and point-in-time list reconstruction.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from demonlist.history.audit import changed_fields, log_demon_modification
from demonlist.history.reconstruct import list_at
from demonlist.lifecycle import add_demon, move_demon, patch_demon, remove_demon
from demonlist.store.models import DemonModification
from demonlist.store.session import session_scope
from demonlist.utils import InvariantViolation

START = datetime(2024, 1, 1)
T0 = datetime(2024, 2, 1)
T1 = datetime(2024, 3, 1)
T2 = datetime(2024, 4, 1)
T3 = datetime(2024, 5, 1)
T4 = datetime(2024, 6, 1)


def positions(sessions, at):
    with session_scope(sessions) as session:
        return {demon.name: demon.position for demon in list_at(session, at)}


def log_entries(sessions, demon_id):
    with session_scope(sessions) as session:
        return session.scalars(
            select(DemonModification).where(DemonModification.demon_id == demon_id).order_by(DemonModification.id)
        ).all()


@pytest.fixture
def verifier(builder):
    return builder.player('verifier')


@pytest.fixture
def base_list(sessions, verifier):
    """Four demons, all added at START."""
    return [
        add_demon(sessions, name, position, 50, verifier.id, verifier.id, at=START)
        for position, name in enumerate(['B1', 'B2', 'B3', 'B4'], start=1)
    ]


class TestListAt:
    """Tests for list_at."""

    def test_created_then_moved(self, sessions, verifier, base_list):
        demon_a = add_demon(sessions, 'A', 5, 50, verifier.id, verifier.id, at=T1)
        move_demon(sessions, demon_a.id, 3, at=T3)

        assert positions(sessions, T2)['A'] == 5
        assert positions(sessions, T4)['A'] == 3
        assert 'A' not in positions(sessions, T0)

    def test_shifted_demons_reconstructed(self, sessions, verifier, base_list):
        demon_a = add_demon(sessions, 'A', 5, 50, verifier.id, verifier.id, at=T1)
        move_demon(sessions, demon_a.id, 3, at=T3)

        assert positions(sessions, T2) == {'B1': 1, 'B2': 2, 'B3': 3, 'B4': 4, 'A': 5}
        assert positions(sessions, T4) == {'B1': 1, 'B2': 2, 'A': 3, 'B3': 4, 'B4': 5}

    def test_insertion_in_the_middle(self, sessions, verifier, base_list):
        add_demon(sessions, 'New', 2, 50, verifier.id, verifier.id, at=T1)

        assert positions(sessions, T0) == {'B1': 1, 'B2': 2, 'B3': 3, 'B4': 4}
        assert positions(sessions, T2) == {'B1': 1, 'New': 2, 'B2': 3, 'B3': 4, 'B4': 5}

    def test_removed_demon_present_before_removal(self, sessions, base_list):
        remove_demon(sessions, base_list[1].id, at=T2)

        assert positions(sessions, T1) == {'B1': 1, 'B2': 2, 'B3': 3, 'B4': 4}
        assert positions(sessions, T3) == {'B1': 1, 'B3': 2, 'B4': 3}

    def test_before_any_data_is_empty(self, sessions, base_list):
        with session_scope(sessions) as session:
            assert list_at(session, START - timedelta(days=1)) == []

    def test_other_fields_reconstructed(self, sessions, base_list):
        patch_demon(sessions, base_list[0].id, {'name': 'Renamed', 'requirement': 70, 'rated': False}, at=T2)

        with session_scope(sessions) as session:
            before = list_at(session, T1)[0]
            after = list_at(session, T3)[0]

        assert (before.name, before.requirement, before.rated) == ('B1', 50, True)
        assert (after.name, after.requirement, after.rated) == ('Renamed', 70, False)

    def test_current_position_reported(self, sessions, verifier, base_list):
        demon_a = add_demon(sessions, 'A', 5, 50, verifier.id, verifier.id, at=T1)
        move_demon(sessions, demon_a.id, 1, at=T3)

        with session_scope(sessions) as session:
            state = {d.name: d for d in list_at(session, T2)}
        assert state['A'].position == 5
        assert state['A'].current_position == 1

    def test_aware_timestamps_accepted(self, sessions, verifier, base_list):
        add_demon(sessions, 'A', 5, 50, verifier.id, verifier.id, at=T1)
        aware = T2.replace(tzinfo=timezone.utc)
        assert positions(sessions, aware)['A'] == 5

    def test_list_at_does_not_write(self, sessions, verifier, base_list):
        demon_a = add_demon(sessions, 'A', 5, 50, verifier.id, verifier.id, at=T1)
        move_demon(sessions, demon_a.id, 3, at=T3)
        entries = len(log_entries(sessions, demon_a.id))

        positions(sessions, T2)

        assert len(log_entries(sessions, demon_a.id)) == entries


class TestAuditLog:
    """Tests for the demon modification log."""

    def test_only_changed_fields_logged(self, sessions, base_list):
        demon = base_list[0]
        patch_demon(sessions, demon.id, {'name': 'B1', 'requirement': 65}, user_id=7, at=T1)

        entries = log_entries(sessions, demon.id)
        assert len(entries) == 1
        entry = entries[0]
        assert entry.requirement == 50
        assert entry.name is None
        assert entry.position is None
        assert entry.user_id == 7
        assert entry.time == T1

    def test_noop_patch_writes_nothing(self, sessions, base_list):
        demon = base_list[0]
        patch_demon(sessions, demon.id, {'name': 'B1', 'requirement': 50}, at=T1)
        assert log_entries(sessions, demon.id) == []

    def test_one_entry_per_shifted_demon(self, sessions, base_list):
        move_demon(sessions, base_list[3].id, 1, at=T1)

        for demon, old in zip(base_list[:3], (1, 2, 3)):
            entries = log_entries(sessions, demon.id)
            assert [e.position for e in entries] == [old]
        assert [e.position for e in log_entries(sessions, base_list[3].id)] == [4]

    def test_changed_fields(self, base_list):
        demon = base_list[0]
        assert changed_fields(demon, {'name': 'B1', 'rated': False, 'position': 2}) == {'rated': True, 'position': 1}

    def test_unknown_field_rejected(self, session, base_list):
        with pytest.raises(InvariantViolation):
            log_demon_modification(session, base_list[0].id, {'thumbnail': 'x.png'})

    def test_empty_change_not_logged(self, session, base_list):
        assert log_demon_modification(session, base_list[0].id, {}) is None
