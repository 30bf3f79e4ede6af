"""
Stats viewer drill-downs.

Breaks a player's or a nation's score down into the demons behind it. These
are read-only and computed on demand.
"""

from dataclasses import dataclass, field

import pandas as pd
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from demonlist.config import EXTENDED_LIST_SIZE, SCORED_WINDOW
from demonlist.ranking.materializer import rank_of_nation, rank_of_player
from demonlist.scoring.aggregation import NATION_KEYS, member_records, with_scores
from demonlist.scoring.selection import best_per_demon, load_score_giving
from demonlist.store.models import Demon, Nationality, Player, Record, RecordStatus
from demonlist.utils import ValidationError


@dataclass
class PlayerStats:
    player_id: int
    name: str
    rank: int | None
    unrated_rank: int | None
    score: float
    unrated_score: float
    main_beaten: list[str] = field(default_factory=list)
    extended_beaten: list[str] = field(default_factory=list)
    legacy_beaten: list[str] = field(default_factory=list)
    hardest: str | None = None
    verified: list[str] = field(default_factory=list)
    published: list[str] = field(default_factory=list)
    progress: list[tuple[str, int]] = field(default_factory=list)


@dataclass
class NationStats:
    iso_country_code: str
    nation: str
    rank: int | None
    score: float
    unrated_score: float
    players: int
    best_records: pd.DataFrame
    unbeaten: list[str] = field(default_factory=list)


def _split_by_list(beaten: pd.DataFrame) -> tuple[list[str], list[str], list[str]]:
    main = beaten[beaten['position'] <= SCORED_WINDOW]
    extended = beaten[(beaten['position'] > SCORED_WINDOW) & (beaten['position'] <= EXTENDED_LIST_SIZE)]
    legacy = beaten[beaten['position'] > EXTENDED_LIST_SIZE]
    return main['name'].tolist(), extended['name'].tolist(), legacy['name'].tolist()


def player_stats(session: Session, player_id: int) -> PlayerStats:
    """Rank, score and demon breakdown of one player."""
    player = session.get(Player, player_id)
    if player is None:
        raise ValidationError(f"Player {player_id} does not exist")

    listed = Demon.removed_at.is_(None)
    records = pd.DataFrame(
        session.execute(
            select(Demon.name, Demon.position, Record.progress)
            .join(Demon, Demon.id == Record.demon_id)
            .where(Record.player_id == player_id)
            .where(Record.status == RecordStatus.APPROVED)
            .where(listed)
        ).all(),
        columns=['name', 'position', 'progress'],
    )
    verified = pd.DataFrame(
        session.execute(select(Demon.name, Demon.position).where(Demon.verifier_id == player_id).where(listed)).all(),
        columns=['name', 'position'],
    )
    published = session.scalars(
        select(Demon.name).where(Demon.publisher_id == player_id).where(listed).order_by(Demon.position)
    ).all()

    completions = records[records['progress'] == 100][['name', 'position']]
    beaten = pd.concat([completions, verified]).drop_duplicates('name').sort_values('position')
    main, extended, legacy = _split_by_list(beaten)
    partial = records[records['progress'] < 100].sort_values('position')

    return PlayerStats(
        player_id=player.id,
        name=player.name,
        rank=rank_of_player(session, player_id),
        unrated_rank=rank_of_player(session, player_id, rated=False),
        score=player.score,
        unrated_score=player.unrated_score,
        main_beaten=main,
        extended_beaten=extended,
        legacy_beaten=legacy,
        hardest=beaten['name'].iloc[0] if not beaten.empty else None,
        verified=verified.sort_values('position')['name'].tolist(),
        published=list(published),
        progress=list(zip(partial['name'].tolist(), partial['progress'].tolist())),
    )


def nation_stats(session: Session, nation: str) -> NationStats:
    """
    Rank, score and the records that make up a nation's total.

    best_records holds one row per demon: the best record any non-banned member
    has on it, with its score contribution.
    """
    nationality = session.get(Nationality, nation)
    if nationality is None:
        raise ValidationError(f"Unknown nation code: {nation}")

    frame = load_score_giving(session)
    members = member_records(frame[frame['nationality'] == nation], NATION_KEYS)
    best = with_scores(best_per_demon(members, NATION_KEYS))

    names = pd.DataFrame(session.execute(select(Player.id, Player.name)).all(), columns=['player_id', 'player'])
    demons = pd.DataFrame(
        session.execute(select(Demon.id, Demon.name).where(Demon.removed_at.is_(None)).order_by(Demon.position)).all(),
        columns=['demon_id', 'demon'],
    )
    if not best.empty:
        best = best.merge(names, on='player_id').merge(demons, on='demon_id').sort_values('position')
        best = best[['demon', 'position', 'player', 'progress', 'verification', 'rated', 'score']]

    beaten_ids = set(members.loc[members['progress'] == 100, 'demon_id']) if not members.empty else set()
    unbeaten = demons.loc[~demons['demon_id'].isin(beaten_ids), 'demon'].tolist()

    player_count = session.scalar(
        select(func.count(Player.id)).where(Player.nationality == nation).where(Player.banned.is_(False))
    )

    return NationStats(
        iso_country_code=nation,
        nation=nationality.nation,
        rank=rank_of_nation(session, nation),
        score=nationality.score,
        unrated_score=nationality.unrated_score,
        players=player_count or 0,
        best_records=best.reset_index(drop=True),
        unbeaten=unbeaten,
    )
