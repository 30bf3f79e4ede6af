"""
Aggregation Engine

Rolls score-giving records up into per-player, per-nation and per-subdivision
totals. Every rollup is recomputed from scratch; nothing here keeps state
between runs.

Two pools are summed side by side:
- score: rated demons only
- unrated_score: every demon
"""

import pandas as pd
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from demonlist.config import SCORED_WINDOW
from demonlist.scoring.formula import ScoreCurve, score_frame
from demonlist.scoring.selection import best_per_demon, load_score_giving, player_stream
from demonlist.store.models import Nationality, Player, Subdivision
from demonlist.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)

NATION_KEYS = ['nationality']
SUBDIVISION_KEYS = ['nationality', 'subdivision']


def with_scores(frame: pd.DataFrame, position_cap: int = SCORED_WINDOW, curve: ScoreCurve | None = None) -> pd.DataFrame:
    """Return a copy of frame with a 'score' column holding each record's contribution."""
    scored = frame.copy()
    scored['score'] = score_frame(scored, position_cap, curve)
    return scored


def _sum_pools(scored: pd.DataFrame, keys: list[str]) -> pd.DataFrame:
    if scored.empty:
        return pd.DataFrame(columns=keys + ['score', 'unrated_score'])

    unrated = scored.groupby(keys)['score'].sum()
    rated = scored[scored['rated']].groupby(keys)['score'].sum()

    totals = pd.DataFrame({'score': rated, 'unrated_score': unrated}).fillna(0.0)
    return totals.reset_index()


def member_records(frame: pd.DataFrame, keys: list[str]) -> pd.DataFrame:
    """Records of non-banned players that have every grouping key set."""
    if frame.empty:
        return frame.copy()
    mask = ~frame['banned']
    for key in keys:
        mask &= frame[key].notna()
    return frame[mask]


def player_totals(frame: pd.DataFrame, curve: ScoreCurve | None = None) -> pd.DataFrame:
    """
    Per-player totals.

    Args:
        frame: Score-giving frame (see selection.build_score_giving)
        curve: Optional replacement score curve

    Returns:
        DataFrame with columns [player_id, score, unrated_score]
    """
    return _sum_pools(with_scores(player_stream(frame), curve=curve), ['player_id'])


def nation_totals(frame: pd.DataFrame, curve: ScoreCurve | None = None) -> pd.DataFrame:
    """
    Per-nation totals, counting each demon once per nation (its best regional record).

    Returns:
        DataFrame with columns [nationality, score, unrated_score]
    """
    best = best_per_demon(member_records(frame, NATION_KEYS), NATION_KEYS)
    return _sum_pools(with_scores(best, curve=curve), NATION_KEYS)


def subdivision_totals(frame: pd.DataFrame, curve: ScoreCurve | None = None) -> pd.DataFrame:
    """
    Per-subdivision totals, counting each demon once per (nation, subdivision).

    Returns:
        DataFrame with columns [nationality, subdivision, score, unrated_score]
    """
    best = best_per_demon(member_records(frame, SUBDIVISION_KEYS), SUBDIVISION_KEYS)
    return _sum_pools(with_scores(best, curve=curve), SUBDIVISION_KEYS)


# --- Drill-down queries (uncached) ---
def _pool_score(frame: pd.DataFrame, keys: list[str], rated: bool) -> float:
    eligible = member_records(frame, keys)
    if eligible.empty:
        return 0.0
    eligible = eligible[eligible['rated'] == rated]
    best = best_per_demon(eligible, keys)
    return float(with_scores(best)['score'].sum()) if not best.empty else 0.0


def score_of_nation(session: Session, rated: bool, nation: str) -> float:
    """
    Compute a nation's score on demand from the rated or the unrated-only demons.

    Args:
        session: Open database session
        rated: True for rated demons, False for demons outside the rated pool
        nation: ISO country code
    """
    frame = load_score_giving(session)
    frame = frame[frame['nationality'] == nation]
    return _pool_score(frame, NATION_KEYS, rated)


def score_of_subdivision(session: Session, rated: bool, nation: str, subdivision: str) -> float:
    """Compute a subdivision's score on demand (see score_of_nation)."""
    frame = load_score_giving(session)
    frame = frame[(frame['nationality'] == nation) & (frame['subdivision'] == subdivision)]
    return _pool_score(frame, SUBDIVISION_KEYS, rated)


# --- Write-back ---
def _updates(all_keys: pd.DataFrame, totals: pd.DataFrame, key_map: dict[str, str]) -> list[dict]:
    """
    Join totals onto every entity key, defaulting missing entities to 0.

    key_map maps totals columns to model primary key attributes.
    """
    keys = list(key_map.values())
    pools = ['score', 'unrated_score']
    if totals.empty:
        merged = all_keys.assign(score=0.0, unrated_score=0.0)
    else:
        merged = all_keys.merge(totals.rename(columns=key_map), on=keys, how='left')
        merged[pools] = merged[pools].astype(float).fillna(0.0)

    columns = {key: merged[key].tolist() for key in keys + pools}
    return [dict(zip(columns, row)) for row in zip(*columns.values())]


def write_player_totals(session: Session, totals: pd.DataFrame) -> int:
    """Replace every player's cached totals. Returns the number of rows written."""
    all_keys = pd.DataFrame(session.execute(select(Player.id)).all(), columns=['id'])
    rows = _updates(all_keys, totals, {'player_id': 'id'})
    if rows:
        session.execute(update(Player), rows)
    return len(rows)


def write_nation_totals(session: Session, totals: pd.DataFrame) -> int:
    """Replace every nation's cached totals."""
    all_keys = pd.DataFrame(
        session.execute(select(Nationality.iso_country_code)).all(), columns=['iso_country_code']
    )
    rows = _updates(all_keys, totals, {'nationality': 'iso_country_code'})
    if rows:
        session.execute(update(Nationality), rows)
    return len(rows)


def write_subdivision_totals(session: Session, totals: pd.DataFrame) -> int:
    """Replace every subdivision's cached totals."""
    all_keys = pd.DataFrame(
        session.execute(select(Subdivision.nation, Subdivision.iso_code)).all(), columns=['nation', 'iso_code']
    )
    rows = _updates(all_keys, totals, {'nationality': 'nation', 'subdivision': 'iso_code'})
    if rows:
        session.execute(update(Subdivision), rows)
    return len(rows)
