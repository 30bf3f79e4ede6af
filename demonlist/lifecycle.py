"""
Mutation paths that feed the scoring engine.

Every function here validates its input, applies one change in its own
transaction, appends the demon log entries that change requires, and then
reruns the rollups the change affects. Moving a demon shifts the demons in
between, and each shifted demon gets its own log entry so the list can be
reconstructed at any past moment.

Usage:
    from demonlist.lifecycle import add_demon, patch_demon, set_record_status
"""

from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from demonlist.engine import TRIGGERS, ChangeEvent, recompute
from demonlist.history.audit import LOGGED_FIELDS, changed_fields, log_demon_addition, log_demon_modification
from demonlist.store.models import Demon, Nationality, Player, Record, RecordStatus, Subdivision
from demonlist.store.session import session_scope
from demonlist.utils import (
    DemonlistError,
    InvariantViolation,
    ValidationError,
    as_naive_utc,
    setup_logging,
    utcnow,
    validate_percentage,
    validate_position,
)

# --- Module Logger ---
logger = setup_logging(__name__)


class RecordTransitionError(DemonlistError):
    """Raised when a record status change is not allowed"""
    pass


ALLOWED_TRANSITIONS = {
    RecordStatus.SUBMITTED: {RecordStatus.APPROVED, RecordStatus.REJECTED, RecordStatus.UNDER_CONSIDERATION},
    RecordStatus.UNDER_CONSIDERATION: {RecordStatus.APPROVED, RecordStatus.REJECTED, RecordStatus.SUBMITTED},
    RecordStatus.APPROVED: set(),
    RecordStatus.REJECTED: set(),
}

# Demon fields whose change affects scores
FIELD_EVENTS = {
    'position': ChangeEvent.DEMON_POSITION,
    'requirement': ChangeEvent.DEMON_REQUIREMENT,
    'rated': ChangeEvent.DEMON_RATED,
    'verifier_id': ChangeEvent.DEMON_VERIFIER,
}


def _trigger(events, sessions: sessionmaker | None) -> None:
    scopes = []
    for event in events:
        scopes.extend(s for s in TRIGGERS[event] if s not in scopes)
    if scopes:
        recompute(scopes, sessions)


# --- Demon positions ---
def list_size(session: Session) -> int:
    """Number of demons currently on the list."""
    return session.scalar(select(func.count(Demon.id)).where(Demon.removed_at.is_(None))) or 0


def _shift(session: Session, lower: int, upper: int | None, delta: int, user_id: int | None, at: datetime) -> int:
    """Move every listed demon with lower <= position <= upper by delta, logging each move."""
    stmt = select(Demon).where(Demon.removed_at.is_(None)).where(Demon.position >= lower)
    if upper is not None:
        stmt = stmt.where(Demon.position <= upper)

    shifted = session.scalars(stmt.order_by(Demon.position)).all()
    for demon in shifted:
        log_demon_modification(session, demon.id, {'position': demon.position}, user_id, at)
        demon.position += delta
    return len(shifted)


def check_positions(session: Session) -> None:
    """
    Fail fast unless listed demons occupy exactly positions 1..N.

    Raises:
        InvariantViolation: On gaps, duplicates or missing positions
    """
    session.flush()
    positions = sorted(session.scalars(select(Demon.position).where(Demon.removed_at.is_(None))))
    if positions != list(range(1, len(positions) + 1)):
        raise InvariantViolation(f"Demon positions are not dense and unique: {positions}")


# --- Demon mutations ---
def add_demon(
    sessions: sessionmaker | None,
    name: str,
    position: int,
    requirement: int,
    verifier_id: int,
    publisher_id: int,
    video: str | None = None,
    rated: bool = True,
    user_id: int | None = None,
    at: datetime | None = None,
) -> Demon:
    """
    Insert a demon at `position`, pushing everything from there down by one.

    Raises:
        ValidationError: On an out-of-range position or requirement
    """
    at = as_naive_utc(at) if at else utcnow()
    validate_percentage(requirement, "requirement")

    with session_scope(sessions) as session:
        validate_position(position, list_size(session) + 1)
        _shift(session, position, None, +1, user_id, at)

        demon = Demon(
            name=name,
            position=position,
            requirement=requirement,
            video=video,
            verifier_id=verifier_id,
            publisher_id=publisher_id,
            rated=rated,
            created_at=at,
        )
        session.add(demon)
        session.flush()
        log_demon_addition(session, demon.id, user_id, at)
        check_positions(session)

    logger.info(f"Added demon '{name}' at #{position}")
    _trigger([ChangeEvent.DEMON_ADDED], sessions)
    return demon


def patch_demon(
    sessions: sessionmaker | None,
    demon_id: int,
    changes: dict[str, Any],
    user_id: int | None = None,
    at: datetime | None = None,
) -> Demon:
    """
    Apply field changes to a listed demon and log their previous values.

    Only fields that actually change are logged; a patch that changes nothing
    writes no log entry and triggers no recompute.

    Raises:
        ValidationError: On unknown fields, a removed demon or out-of-range values
    """
    unknown = set(changes) - set(LOGGED_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot patch demon fields: {', '.join(sorted(unknown))}")
    if 'requirement' in changes:
        validate_percentage(changes['requirement'], "requirement")

    at = as_naive_utc(at) if at else utcnow()

    with session_scope(sessions) as session:
        demon = session.get(Demon, demon_id)
        if demon is None or demon.removed_at is not None:
            raise ValidationError(f"Demon {demon_id} is not on the list")

        previous = changed_fields(demon, changes)
        if not previous:
            return demon

        if 'position' in previous:
            old, new = demon.position, changes['position']
            validate_position(new, list_size(session))
            if new < old:
                _shift(session, new, old - 1, +1, user_id, at)
            else:
                _shift(session, old + 1, new, -1, user_id, at)

        for field in previous:
            setattr(demon, field, changes[field])

        log_demon_modification(session, demon.id, previous, user_id, at)
        check_positions(session)

    logger.info(f"Patched demon {demon_id}: {sorted(previous)}")
    _trigger([FIELD_EVENTS[f] for f in previous if f in FIELD_EVENTS], sessions)
    return demon


def move_demon(
    sessions: sessionmaker | None,
    demon_id: int,
    position: int,
    user_id: int | None = None,
    at: datetime | None = None,
) -> Demon:
    """Shorthand for patching only the position."""
    return patch_demon(sessions, demon_id, {'position': position}, user_id, at)


def remove_demon(
    sessions: sessionmaker | None,
    demon_id: int,
    user_id: int | None = None,
    at: datetime | None = None,
) -> Demon:
    """Take a demon off the list and close the gap it leaves."""
    at = as_naive_utc(at) if at else utcnow()

    with session_scope(sessions) as session:
        demon = session.get(Demon, demon_id)
        if demon is None or demon.removed_at is not None:
            raise ValidationError(f"Demon {demon_id} is not on the list")

        old = demon.position
        log_demon_modification(session, demon.id, {'position': old}, user_id, at)
        demon.position = None
        demon.removed_at = at
        session.flush()
        _shift(session, old + 1, None, -1, user_id, at)
        check_positions(session)

    logger.info(f"Removed demon {demon_id} from #{old}")
    _trigger([ChangeEvent.DEMON_REMOVED], sessions)
    return demon


# --- Records ---
def set_record_status(sessions: sessionmaker | None, record_id: int, status: RecordStatus) -> Record:
    """
    Move a record through its state machine.

    Raises:
        ValidationError: If the record does not exist
        RecordTransitionError: If the transition is not allowed
    """
    with session_scope(sessions) as session:
        record = session.get(Record, record_id)
        if record is None:
            raise ValidationError(f"Record {record_id} does not exist")
        if record.status == status:
            return record
        if status not in ALLOWED_TRANSITIONS[record.status]:
            raise RecordTransitionError(
                f"Record {record_id} cannot go from {record.status.value} to {status.value}"
            )
        old = record.status
        record.status = status

    logger.info(f"Record {record_id}: {old.value} -> {status.value}")
    _trigger([ChangeEvent.RECORD_STATUS], sessions)
    return record


# --- Players ---
def set_player_banned(sessions: sessionmaker | None, player_id: int, banned: bool) -> Player:
    """Ban or unban a player. Stored totals are kept; rankings and national sums exclude them."""
    with session_scope(sessions) as session:
        player = session.get(Player, player_id)
        if player is None:
            raise ValidationError(f"Player {player_id} does not exist")
        if player.banned == banned:
            return player
        player.banned = banned

    logger.info(f"Player {player_id} {'banned' if banned else 'unbanned'}")
    _trigger([ChangeEvent.PLAYER_BANNED], sessions)
    return player


def set_player_nationality(
    sessions: sessionmaker | None,
    player_id: int,
    nationality: str | None,
    subdivision: str | None = None,
) -> Player:
    """
    Change a player's nationality and subdivision.

    Raises:
        ValidationError: On unknown codes or a subdivision without nationality
    """
    if subdivision is not None and nationality is None:
        raise ValidationError("A subdivision requires a nationality")

    with session_scope(sessions) as session:
        player = session.get(Player, player_id)
        if player is None:
            raise ValidationError(f"Player {player_id} does not exist")
        if nationality is not None and session.get(Nationality, nationality) is None:
            raise ValidationError(f"Unknown nation code: {nationality}")
        if subdivision is not None and session.get(Subdivision, (nationality, subdivision)) is None:
            raise ValidationError(f"Unknown subdivision {subdivision} of {nationality}")
        if (player.nationality, player.subdivision) == (nationality, subdivision):
            return player
        player.nationality = nationality
        player.subdivision = subdivision

    logger.info(f"Player {player_id} now represents {nationality}/{subdivision}")
    _trigger([ChangeEvent.PLAYER_NATIONALITY], sessions)
    return player
