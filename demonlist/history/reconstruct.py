"""
Historical List Reconstruction

Rebuilds the list as it looked at a past moment from the demon log, without
storing snapshots. Every log entry holds the value a field had *before* the
change, so the value of a field at time T is:

- the stored value of the earliest entry at or after T that changed it, or
- the demon's current value if no such entry exists.

Demons created at or after T are left out, as are demons removed before T.
The state at T is the state before any event stamped T.

Usage:
    from demonlist.history.reconstruct import list_at
    demons = list_at(session, datetime(2024, 1, 1))
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pandas as pd
from sqlalchemy import select
from sqlalchemy.orm import Session

from demonlist.history.audit import LOGGED_FIELDS
from demonlist.store.models import Demon, DemonAddition, DemonModification
from demonlist.utils import InvariantViolation, as_naive_utc, setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)

DEMON_STATE_COLUMNS = ['id', *LOGGED_FIELDS, 'created_at', 'removed_at']
MODIFICATION_COLUMNS = ['entry_id', 'demon_id', 'time', *LOGGED_FIELDS]


@dataclass(frozen=True)
class DemonState:
    """A demon as it appeared on the list at some moment."""
    id: int
    position: int
    current_position: Optional[int]
    name: str
    requirement: int
    video: Optional[str]
    verifier_id: int
    publisher_id: int
    rated: bool


def reconstruct_frame(
    demons: pd.DataFrame,
    added_after: set[int],
    modifications: pd.DataFrame,
    at: datetime,
) -> pd.DataFrame:
    """
    Pure reconstruction over plain frames.

    Args:
        demons: Current demons, DEMON_STATE_COLUMNS
        added_after: Ids of demons whose addition was logged at or after `at`
        modifications: Log entries with time >= at, MODIFICATION_COLUMNS
        at: Moment to reconstruct

    Returns:
        DataFrame of the list at `at`, ordered by position, with an extra
        current_position column

    Raises:
        InvariantViolation: If the log does not yield a dense, unique position set
    """
    created_at = pd.to_datetime(demons['created_at'])
    removed_at = pd.to_datetime(demons['removed_at'])

    existed = ~demons['id'].isin(added_after) & (created_at < at)
    not_removed = removed_at.isna() | (removed_at >= at)
    state = demons[existed & not_removed].copy()
    state['current_position'] = state['position']

    if state.empty:
        return state

    state = state.set_index('id')
    if not modifications.empty:
        ordered = modifications.sort_values(['demon_id', 'time', 'entry_id'], kind='mergesort')
        for field in LOGGED_FIELDS:
            changed = ordered[ordered[field].notna()]
            earliest = changed.drop_duplicates('demon_id', keep='first').set_index('demon_id')[field]
            earliest = earliest.reindex(state.index)
            state[field] = earliest.where(earliest.notna(), state[field])

    state = state.reset_index()

    if state['position'].isna().any():
        missing = state.loc[state['position'].isna(), 'id'].tolist()
        raise InvariantViolation(f"No position recorded at {at} for demons {missing}")
    if state['position'].duplicated().any():
        duplicates = sorted(state.loc[state['position'].duplicated(keep=False), 'position'].unique())
        raise InvariantViolation(f"Positions {duplicates} are not unique at {at}")

    return state.sort_values('position', kind='mergesort').reset_index(drop=True)


def _to_state(row: dict) -> DemonState:
    current = row['current_position']
    return DemonState(
        id=int(row['id']),
        position=int(row['position']),
        current_position=None if pd.isna(current) else int(current),
        name=row['name'],
        requirement=int(row['requirement']),
        video=None if pd.isna(row['video']) else row['video'],
        verifier_id=int(row['verifier_id']),
        publisher_id=int(row['publisher_id']),
        rated=bool(row['rated']),
    )


def list_at(session: Session, at: datetime) -> list[DemonState]:
    """
    Reconstruct the ordered list at a past moment.

    Args:
        session: Open database session (only read from)
        at: Moment to reconstruct; aware datetimes are converted to UTC

    Returns:
        DemonState list ordered by position, empty before any data exists
    """
    at = as_naive_utc(at)

    demons = pd.DataFrame(
        session.execute(select(*(getattr(Demon, c) for c in DEMON_STATE_COLUMNS))).all(),
        columns=DEMON_STATE_COLUMNS,
    )
    added_after = set(session.scalars(select(DemonAddition.demon_id).where(DemonAddition.time >= at)))
    modifications = pd.DataFrame(
        session.execute(
            select(DemonModification.id, DemonModification.demon_id, DemonModification.time,
                   *(getattr(DemonModification, f) for f in LOGGED_FIELDS))
            .where(DemonModification.time >= at)
        ).all(),
        columns=MODIFICATION_COLUMNS,
    )

    if demons.empty:
        return []

    state = reconstruct_frame(demons, added_after, modifications, at)
    logger.debug(f"Reconstructed {len(state)} demons at {at} from {len(modifications)} log entries")
    return [_to_state(row) for row in state.to_dict('records')]
