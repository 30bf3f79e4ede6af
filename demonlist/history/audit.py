"""
Demon Audit Log

Append-only writers for the demon modification and addition logs. The
mutation paths in demonlist.lifecycle call these explicitly, once per demon
they change; nothing in the engine ever updates or deletes a log row.

A modification entry stores, for every logged field, the value *before* the
change, or NULL when that field did not change.
"""

from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from demonlist.store.models import Demon, DemonAddition, DemonModification
from demonlist.utils import InvariantViolation, setup_logging, utcnow

# --- Module Logger ---
logger = setup_logging(__name__)

LOGGED_FIELDS = ('name', 'position', 'requirement', 'video', 'verifier_id', 'publisher_id', 'rated')


def changed_fields(demon: Demon, changes: dict[str, Any]) -> dict[str, Any]:
    """
    Previous values of the fields that the given changes would actually alter.

    Args:
        demon: Demon before the change is applied
        changes: Mapping of field name to new value

    Returns:
        Mapping of field name to old value, only for logged fields that differ
    """
    return {
        field: getattr(demon, field)
        for field, value in changes.items()
        if field in LOGGED_FIELDS and getattr(demon, field) != value
    }


def log_demon_modification(
    session: Session,
    demon_id: int,
    previous: dict[str, Any],
    user_id: int | None = None,
    at: datetime | None = None,
) -> DemonModification | None:
    """
    Append one modification entry for a demon.

    Args:
        session: Session of the mutating transaction
        demon_id: Demon that changed
        previous: Field name -> value before the change (see changed_fields)
        user_id: Acting user
        at: Time of the change (default: now)

    Returns:
        The new entry, or None when nothing changed
    """
    if not previous:
        return None

    unknown = set(previous) - set(LOGGED_FIELDS)
    if unknown:
        raise InvariantViolation(f"Cannot log unknown demon fields: {', '.join(sorted(unknown))}")

    entry = DemonModification(demon_id=demon_id, time=at or utcnow(), user_id=user_id, **previous)
    session.add(entry)
    logger.debug(f"Logged modification of demon {demon_id}: {sorted(previous)}")
    return entry


def log_demon_addition(
    session: Session,
    demon_id: int,
    user_id: int | None = None,
    at: datetime | None = None,
) -> DemonAddition:
    """Append the creation event of a demon."""
    entry = DemonAddition(demon_id=demon_id, time=at or utcnow(), user_id=user_id)
    session.add(entry)
    logger.debug(f"Logged addition of demon {demon_id}")
    return entry
