"""
Score-Giving Record Selection

Builds the universe of records that may contribute to any total:
- approved records on listed demons, either inside the scored window or at 100%
- one synthetic 100% record per listed demon for its verifier

and deduplicates it per scope (one best record per demon and grouping key).

Usage:
    from demonlist.scoring.selection import load_score_giving, best_per_demon
"""

from collections.abc import Sequence

import pandas as pd
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from demonlist.config import SCORED_WINDOW
from demonlist.store.models import Demon, Player, Record, RecordStatus
from demonlist.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)

# Synthetic verification rows use record id 0, so they win ties against real records
VERIFICATION_RECORD_ID = 0

RECORD_COLUMNS = ['record_id', 'player_id', 'demon_id', 'progress', 'status']
DEMON_COLUMNS = ['demon_id', 'position', 'requirement', 'rated', 'verifier_id']
PLAYER_COLUMNS = ['player_id', 'nationality', 'subdivision', 'banned']

SCORE_GIVING_COLUMNS = [
    'record_id', 'player_id', 'demon_id', 'progress', 'position', 'requirement',
    'rated', 'verification', 'nationality', 'subdivision', 'banned',
]


def build_score_giving(
    records: pd.DataFrame,
    demons: pd.DataFrame,
    players: pd.DataFrame,
    scored_window: int = SCORED_WINDOW,
) -> pd.DataFrame:
    """
    Assemble the score-giving frame from plain record/demon/player frames.

    Args:
        records: DataFrame with RECORD_COLUMNS (status as RecordStatus or its value)
        demons: DataFrame with DEMON_COLUMNS, listed demons only
        players: DataFrame with PLAYER_COLUMNS
        scored_window: Last position where partial progress counts

    Returns:
        DataFrame with SCORE_GIVING_COLUMNS, one row per score-giving record
    """
    if demons.empty:
        return pd.DataFrame(columns=SCORE_GIVING_COLUMNS)

    status = records['status'].map(lambda s: getattr(s, 'value', s))
    approved = records[status == RecordStatus.APPROVED.value]
    if not approved.empty:
        approved = approved.merge(
            demons[['demon_id', 'position', 'requirement', 'rated']], on='demon_id', how='inner'
        )
        approved = approved[(approved['position'] <= scored_window) | (approved['progress'] == 100)]
        approved = approved.drop(columns=['status']).assign(verification=False)

    verifications = pd.DataFrame({
        'record_id': VERIFICATION_RECORD_ID,
        'player_id': demons['verifier_id'].to_numpy(),
        'demon_id': demons['demon_id'].to_numpy(),
        'progress': 100,
        'position': demons['position'].to_numpy(),
        'requirement': demons['requirement'].to_numpy(),
        'rated': demons['rated'].to_numpy(),
        'verification': True,
    })

    frames = [f for f in (approved, verifications) if not f.empty]
    combined = pd.concat(frames, ignore_index=True)
    combined = combined.merge(players, on='player_id', how='left')
    combined['banned'] = combined['banned'].fillna(False).astype(bool)
    combined['rated'] = combined['rated'].astype(bool)

    return combined[SCORE_GIVING_COLUMNS].reset_index(drop=True)


def best_per_demon(frame: pd.DataFrame, keys: Sequence[str] = ()) -> pd.DataFrame:
    """
    Keep the single best record per (demon, *keys).

    Best means highest progress; ties go to the lowest record id, so a
    verification beats an equally good submitted record.

    Args:
        frame: Score-giving frame
        keys: Extra grouping columns (e.g. ['nationality'])

    Returns:
        Deduplicated frame
    """
    keys = list(keys)
    if frame.empty:
        return frame.copy()

    ordered = frame.sort_values(
        keys + ['demon_id', 'progress', 'record_id'],
        ascending=[True] * len(keys) + [True, False, True],
        kind='mergesort',
    )
    return ordered.drop_duplicates(subset=keys + ['demon_id'], keep='first').reset_index(drop=True)


def player_stream(frame: pd.DataFrame) -> pd.DataFrame:
    """One best record per (player, demon), e.g. a verifier who also submitted a record counts once."""
    return best_per_demon(frame, ['player_id'])


def load_records(session: Session, scored_window: int = SCORED_WINDOW) -> pd.DataFrame:
    """Approved records that can be score-giving (window and removal filters applied in SQL)."""
    stmt = (
        select(Record.id, Record.player_id, Record.demon_id, Record.progress, Record.status)
        .join(Demon, Demon.id == Record.demon_id)
        .where(Record.status == RecordStatus.APPROVED)
        .where(Demon.removed_at.is_(None))
        .where(or_(Demon.position <= scored_window, Record.progress == 100))
    )
    return pd.DataFrame(session.execute(stmt).all(), columns=RECORD_COLUMNS)


def load_demons(session: Session) -> pd.DataFrame:
    """Demons currently on the list."""
    stmt = (
        select(Demon.id, Demon.position, Demon.requirement, Demon.rated, Demon.verifier_id)
        .where(Demon.removed_at.is_(None))
        .where(Demon.position.is_not(None))
    )
    return pd.DataFrame(session.execute(stmt).all(), columns=DEMON_COLUMNS)


def load_players(session: Session) -> pd.DataFrame:
    stmt = select(Player.id, Player.nationality, Player.subdivision, Player.banned)
    return pd.DataFrame(session.execute(stmt).all(), columns=PLAYER_COLUMNS)


def load_score_giving(session: Session, scored_window: int = SCORED_WINDOW) -> pd.DataFrame:
    """
    Read the current score-giving records from the database.

    Returns:
        DataFrame with SCORE_GIVING_COLUMNS
    """
    frame = build_score_giving(
        load_records(session, scored_window),
        load_demons(session),
        load_players(session),
        scored_window,
    )
    logger.debug(f"Loaded {len(frame)} score-giving records")
    return frame
