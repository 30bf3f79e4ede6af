"""
Ranking Materializer

Derives competition ranks (1, 1, 3, ...) and a dense display index from the
cached totals, and stores them in the player/nation/subdivision rank tables.
Readers page through those tables instead of ranking on every request.

The rated and unrated pools are ranked independently. An entity whose total in
a pool is zero is unranked there (its rank columns are NULL), not last.
"""

from dataclasses import dataclass
from typing import Any, Optional

import pandas as pd
from sqlalchemy import delete, insert, select
from sqlalchemy.orm import Session

from demonlist.store.models import (
    Nationality,
    NationRank,
    Player,
    PlayerRank,
    Subdivision,
    SubdivisionRank,
)
from demonlist.utils import ValidationError, setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)

POOLS = (('rated', 'score'), ('unrated', 'unrated_score'))


@dataclass(frozen=True)
class RankedEntry:
    """One row of a ranked view."""
    index: int
    rank: int
    id: Any
    name: str
    score: float
    nationality: Optional[str] = None


def competition_ranks(totals: pd.DataFrame, id_columns: list[str]) -> pd.DataFrame:
    """
    Rank entities in both pools.

    Ties share a rank and the next rank skips (standard competition ranking).
    The display index orders by (rank, id) so tied entities still get a total order.

    Args:
        totals: DataFrame with id_columns + [score, unrated_score]
        id_columns: Identity columns used as the tie-breaker

    Returns:
        DataFrame with id_columns + [rated_rank, rated_index, unrated_rank, unrated_index],
        holding only entities ranked in at least one pool. Unranked cells are NaN.
    """
    result = totals[id_columns].copy()

    for pool, column in POOLS:
        ranked = totals[totals[column] > 0]
        rank = ranked[column].rank(method='min', ascending=False)
        order = ranked[id_columns].assign(_rank=rank).sort_values(['_rank'] + id_columns, kind='mergesort')
        result[f'{pool}_rank'] = rank
        result[f'{pool}_index'] = pd.Series(range(1, len(order) + 1), index=order.index, dtype=float)

    ranked_anywhere = result['rated_rank'].notna() | result['unrated_rank'].notna()
    return result[ranked_anywhere].reset_index(drop=True)


def _nullable_ints(series: pd.Series) -> list:
    return [None if pd.isna(value) else int(value) for value in series]


def _rank_rows(ranks: pd.DataFrame, key_map: dict[str, str]) -> list[dict]:
    columns = {key_map[c]: ranks[c].tolist() for c in key_map}
    for pool, _ in POOLS:
        columns[f'{pool}_rank'] = _nullable_ints(ranks[f'{pool}_rank'])
        columns[f'{pool}_index'] = _nullable_ints(ranks[f'{pool}_index'])
    return [dict(zip(columns, row)) for row in zip(*columns.values())]


def _replace(session: Session, model, rows: list[dict]) -> int:
    session.execute(delete(model))
    if rows:
        session.execute(insert(model), rows)
    return len(rows)


def rematerialize_player_ranks(session: Session) -> int:
    """Rebuild player_ranks from the cached player totals (banned players excluded)."""
    stmt = select(Player.id, Player.score, Player.unrated_score).where(Player.banned.is_(False))
    totals = pd.DataFrame(session.execute(stmt).all(), columns=['id', 'score', 'unrated_score'])
    ranks = competition_ranks(totals, ['id'])
    count = _replace(session, PlayerRank, _rank_rows(ranks, {'id': 'player_id'}))
    logger.debug(f"Materialized {count} player ranks")
    return count


def rematerialize_nation_ranks(session: Session) -> int:
    """Rebuild nation_ranks from the cached nation totals."""
    stmt = select(Nationality.iso_country_code, Nationality.score, Nationality.unrated_score)
    totals = pd.DataFrame(session.execute(stmt).all(), columns=['iso_country_code', 'score', 'unrated_score'])
    ranks = competition_ranks(totals, ['iso_country_code'])
    count = _replace(session, NationRank, _rank_rows(ranks, {'iso_country_code': 'iso_country_code'}))
    logger.debug(f"Materialized {count} nation ranks")
    return count


def rematerialize_subdivision_ranks(session: Session) -> int:
    """Rebuild subdivision_ranks from the cached subdivision totals."""
    stmt = select(Subdivision.nation, Subdivision.iso_code, Subdivision.score, Subdivision.unrated_score)
    totals = pd.DataFrame(session.execute(stmt).all(), columns=['nation', 'iso_code', 'score', 'unrated_score'])
    ranks = competition_ranks(totals, ['nation', 'iso_code'])
    count = _replace(session, SubdivisionRank, _rank_rows(ranks, {'nation': 'nation', 'iso_code': 'iso_code'}))
    logger.debug(f"Materialized {count} subdivision ranks")
    return count


# --- Read side ---
def _pool_columns(model, rated: bool):
    if rated:
        return model.rated_rank, model.rated_index
    return model.unrated_rank, model.unrated_index


def _page(entries: list, offset: int, limit: int | None) -> list:
    return entries[offset:offset + limit] if limit is not None else entries[offset:]


def ranked_players(
    session: Session,
    rated: bool = True,
    nation: str | None = None,
    subdivision: str | None = None,
    continent: str | None = None,
    name_contains: str | None = None,
    offset: int = 0,
    limit: int | None = None,
) -> list[RankedEntry]:
    """
    Ranked players, optionally restricted to a nation, subdivision, continent or name.

    Ranks are global; the index is renumbered inside the filtered scope so it
    can be used for paging. Subdivision codes are only unique within a nation,
    so filtering by subdivision requires the nation too.

    Raises:
        ValidationError: If subdivision is given without nation
    """
    if subdivision is not None and nation is None:
        raise ValidationError("Filtering by subdivision requires a nation")

    rank_col, index_col = _pool_columns(PlayerRank, rated)
    score_col = Player.score if rated else Player.unrated_score

    stmt = (
        select(rank_col, Player.id, Player.name, score_col, Player.nationality)
        .join(Player, Player.id == PlayerRank.player_id)
        .outerjoin(Nationality, Nationality.iso_country_code == Player.nationality)
        .where(rank_col.is_not(None))
        .where(Player.banned.is_(False))
        .order_by(index_col)
    )
    if nation is not None:
        stmt = stmt.where(Player.nationality == nation)
    if subdivision is not None:
        stmt = stmt.where(Player.subdivision == subdivision)
    if continent is not None:
        stmt = stmt.where(Nationality.continent == continent)
    if name_contains:
        stmt = stmt.where(Player.name.icontains(name_contains, autoescape=True))

    entries = [
        RankedEntry(index=i, rank=rank, id=pid, name=name, score=score, nationality=code)
        for i, (rank, pid, name, score, code) in enumerate(session.execute(stmt).all(), start=1)
    ]
    return _page(entries, offset, limit)


def ranked_nations(
    session: Session,
    rated: bool = True,
    continent: str | None = None,
    offset: int = 0,
    limit: int | None = None,
) -> list[RankedEntry]:
    """Ranked nations, optionally restricted to one continent."""
    rank_col, index_col = _pool_columns(NationRank, rated)
    score_col = Nationality.score if rated else Nationality.unrated_score

    stmt = (
        select(rank_col, Nationality.iso_country_code, Nationality.nation, score_col)
        .join(Nationality, Nationality.iso_country_code == NationRank.iso_country_code)
        .where(rank_col.is_not(None))
        .order_by(index_col)
    )
    if continent is not None:
        stmt = stmt.where(Nationality.continent == continent)

    entries = [
        RankedEntry(index=i, rank=rank, id=code, name=name, score=score, nationality=code)
        for i, (rank, code, name, score) in enumerate(session.execute(stmt).all(), start=1)
    ]
    return _page(entries, offset, limit)


def ranked_subdivisions(
    session: Session,
    nation: str | None = None,
    rated: bool = True,
    offset: int = 0,
    limit: int | None = None,
) -> list[RankedEntry]:
    """Ranked subdivisions, optionally restricted to one nation. Entry ids are (nation, iso_code)."""
    rank_col, index_col = _pool_columns(SubdivisionRank, rated)
    score_col = Subdivision.score if rated else Subdivision.unrated_score

    stmt = (
        select(rank_col, Subdivision.nation, Subdivision.iso_code, Subdivision.name, score_col)
        .join(
            Subdivision,
            (Subdivision.nation == SubdivisionRank.nation) & (Subdivision.iso_code == SubdivisionRank.iso_code),
        )
        .where(rank_col.is_not(None))
        .order_by(index_col)
    )
    if nation is not None:
        stmt = stmt.where(Subdivision.nation == nation)

    entries = [
        RankedEntry(index=i, rank=rank, id=(code, iso), name=name, score=score, nationality=code)
        for i, (rank, code, iso, name, score) in enumerate(session.execute(stmt).all(), start=1)
    ]
    return _page(entries, offset, limit)


def rank_of_player(session: Session, player_id: int, rated: bool = True) -> int | None:
    """Materialized rank of one player, None when unranked."""
    row = session.get(PlayerRank, player_id)
    if row is None:
        return None
    return row.rated_rank if rated else row.unrated_rank


def rank_of_nation(session: Session, nation: str, rated: bool = True) -> int | None:
    """Materialized rank of one nation, None when unranked."""
    row = session.get(NationRank, nation)
    if row is None:
        return None
    return row.rated_rank if rated else row.unrated_rank
