"""
Scoring Engine for the Demonlist

This module is the entry point the CRUD layer talks to. It runs the three
rollups (player, nation, subdivision) and refreshes the matching rank table
right after each one, inside a single transaction:

    aggregate -> write totals -> rematerialize ranks -> commit

so readers only ever see totals and ranks that belong together.

- Each scope has a single writer at a time; requests that arrive while a run
  is in progress are coalesced into the next run.
- Transient database errors roll the whole pass back and retry it from scratch.

Usage:
    python -m demonlist.engine
    python -m demonlist.engine --scope nation
    python -m demonlist.engine --list-at 2024-01-01T00:00:00
    OR
    from demonlist.engine import recompute_all, on_change, ChangeEvent
"""

import argparse
import threading
import time
import weakref
from datetime import datetime
from enum import Enum
from typing import Callable

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from demonlist.config import DATABASE_URL, RECOMPUTE_MAX_ATTEMPTS, RECOMPUTE_RETRY_DELAY
from demonlist.history.reconstruct import list_at
from demonlist.ranking.materializer import (
    ranked_nations,
    ranked_players,
    ranked_subdivisions,
    rematerialize_nation_ranks,
    rematerialize_player_ranks,
    rematerialize_subdivision_ranks,
)
from demonlist.scoring.aggregation import (
    nation_totals,
    player_totals,
    score_of_nation,
    score_of_subdivision,
    subdivision_totals,
    write_nation_totals,
    write_player_totals,
    write_subdivision_totals,
)
from demonlist.scoring.selection import load_score_giving
from demonlist.store.session import get_sessionmaker, make_sessionmaker, session_scope
from demonlist.utils import DemonlistError, setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)


class AggregationError(DemonlistError):
    """A recompute pass kept failing; the previous totals and ranks are still in place"""
    pass


class Scope(Enum):
    PLAYER = "player"
    NATION = "nation"
    SUBDIVISION = "subdivision"


class ChangeEvent(Enum):
    RECORD_STATUS = "record_status"
    DEMON_ADDED = "demon_added"
    DEMON_REMOVED = "demon_removed"
    DEMON_POSITION = "demon_position"
    DEMON_REQUIREMENT = "demon_requirement"
    DEMON_RATED = "demon_rated"
    DEMON_VERIFIER = "demon_verifier"
    PLAYER_BANNED = "player_banned"
    PLAYER_NATIONALITY = "player_nationality"


ALL_SCOPES = (Scope.PLAYER, Scope.NATION, Scope.SUBDIVISION)

# Which rollups have to rerun after each kind of change
TRIGGERS = {
    ChangeEvent.RECORD_STATUS: ALL_SCOPES,
    ChangeEvent.DEMON_ADDED: ALL_SCOPES,
    ChangeEvent.DEMON_REMOVED: ALL_SCOPES,
    ChangeEvent.DEMON_POSITION: ALL_SCOPES,
    ChangeEvent.DEMON_REQUIREMENT: ALL_SCOPES,
    ChangeEvent.DEMON_RATED: ALL_SCOPES,
    ChangeEvent.DEMON_VERIFIER: ALL_SCOPES,
    # Totals stay, but ranks and national sums exclude banned players
    ChangeEvent.PLAYER_BANNED: ALL_SCOPES,
    ChangeEvent.PLAYER_NATIONALITY: (Scope.NATION, Scope.SUBDIVISION),
}


# --- Rollup passes (run inside one transaction each) ---
def _player_pass(session: Session) -> tuple[int, int]:
    totals = player_totals(load_score_giving(session))
    return write_player_totals(session, totals), rematerialize_player_ranks(session)


def _nation_pass(session: Session) -> tuple[int, int]:
    totals = nation_totals(load_score_giving(session))
    return write_nation_totals(session, totals), rematerialize_nation_ranks(session)


def _subdivision_pass(session: Session) -> tuple[int, int]:
    totals = subdivision_totals(load_score_giving(session))
    return write_subdivision_totals(session, totals), rematerialize_subdivision_ranks(session)


def run_in_transaction(
    label: str,
    work: Callable[[Session], tuple[int, int]],
    sessions: sessionmaker | None = None,
    max_attempts: int = RECOMPUTE_MAX_ATTEMPTS,
    retry_delay: float = RECOMPUTE_RETRY_DELAY,
) -> tuple[int, int]:
    """
    Run one rollup pass atomically, retrying the whole pass on transient errors.

    Raises:
        AggregationError: If every attempt failed
    """
    for attempt in range(1, max_attempts + 1):
        try:
            with session_scope(sessions) as session:
                return work(session)
        except OperationalError as e:
            logger.warning(f"{label} recompute failed (attempt {attempt}/{max_attempts}): {e}")
            if attempt == max_attempts:
                raise AggregationError(f"{label} recompute failed after {max_attempts} attempts") from e
            time.sleep(retry_delay)


class ScopeRunner:
    """
    Serializes recomputes of one scope and coalesces overlapping requests.

    A request is skipped when a pass against the same database that started
    after the request was made has already finished, since that pass saw
    every change the request was about. Tickets are counted per sessionmaker.
    """

    def __init__(self, scope: Scope, work: Callable[[Session], tuple[int, int]]):
        self.scope = scope
        self.work = work
        self._run_lock = threading.Lock()
        self._counter_lock = threading.Lock()
        self._requested = weakref.WeakKeyDictionary()
        self._covered = weakref.WeakKeyDictionary()

    def request(self, sessions: sessionmaker | None = None) -> bool:
        """Recompute this scope. Returns False if the request was coalesced into another run."""
        sessions = sessions or get_sessionmaker()
        with self._counter_lock:
            ticket = self._requested[sessions] = self._requested.get(sessions, 0) + 1

        with self._run_lock:
            if self._covered.get(sessions, 0) >= ticket:
                logger.debug(f"{self.scope.value} recompute request {ticket} already covered")
                return False

            with self._counter_lock:
                covers = self._requested[sessions]

            started = time.perf_counter()
            written, ranked = run_in_transaction(self.scope.value, self.work, sessions)
            self._covered[sessions] = covers

        logger.info(
            f"Recomputed {self.scope.value} scores: {written} totals, {ranked} ranked "
            f"({time.perf_counter() - started:.2f}s)"
        )
        return True


RUNNERS = {
    Scope.PLAYER: ScopeRunner(Scope.PLAYER, _player_pass),
    Scope.NATION: ScopeRunner(Scope.NATION, _nation_pass),
    Scope.SUBDIVISION: ScopeRunner(Scope.SUBDIVISION, _subdivision_pass),
}


# --- Public operations ---
def recompute_player_scores(sessions: sessionmaker | None = None) -> None:
    """Recompute every player's score/unrated_score and refresh player ranks."""
    RUNNERS[Scope.PLAYER].request(sessions)


def recompute_nation_scores(sessions: sessionmaker | None = None) -> None:
    """Recompute every nation's totals and refresh nation ranks."""
    RUNNERS[Scope.NATION].request(sessions)


def recompute_subdivision_scores(sessions: sessionmaker | None = None) -> None:
    """Recompute every subdivision's totals and refresh subdivision ranks."""
    RUNNERS[Scope.SUBDIVISION].request(sessions)


def recompute(scopes, sessions: sessionmaker | None = None) -> None:
    for scope in scopes:
        RUNNERS[scope].request(sessions)


def recompute_all(sessions: sessionmaker | None = None) -> None:
    """Run all three rollups, players first."""
    recompute(ALL_SCOPES, sessions)


def on_change(event: ChangeEvent, sessions: sessionmaker | None = None) -> None:
    """Rerun the rollups affected by a committed change."""
    scopes = TRIGGERS[event]
    logger.debug(f"{event.value} changed, recomputing {[s.value for s in scopes]}")
    recompute(scopes, sessions)


# --- CLI ---
def _log_top(title: str, entries) -> None:
    logger.info(title)
    for entry in entries:
        logger.info(f"  #{entry.rank:<4} {entry.name:<30} {entry.score:10.2f}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Recompute Demonlist scores and ranks")
    parser.add_argument("--database-url", default=DATABASE_URL)
    parser.add_argument("--scope", choices=[s.value for s in Scope], action="append",
                        help="Rollup to run (repeatable, default: all)")
    parser.add_argument("--list-at", type=datetime.fromisoformat,
                        help="Print the list as it was at this ISO timestamp instead of recomputing")
    parser.add_argument("--top", type=int, default=20)
    args = parser.parse_args(argv)

    sessions = make_sessionmaker(args.database_url)

    if args.list_at is not None:
        with session_scope(sessions) as session:
            demons = list_at(session, args.list_at)
        logger.info(f"List at {args.list_at.isoformat()} ({len(demons)} demons):")
        for demon in demons:
            logger.info(f"  {demon.position:>4}. {demon.name} (now #{demon.current_position})")
        return demons

    scopes = [Scope(s) for s in args.scope] if args.scope else ALL_SCOPES
    recompute(scopes, sessions)

    with session_scope(sessions) as session:
        _log_top(f"Top {args.top} players:", ranked_players(session, limit=args.top))
        _log_top(f"Top {args.top} nations:", ranked_nations(session, limit=args.top))


__all__ = [
    'AggregationError',
    'ChangeEvent',
    'Scope',
    'TRIGGERS',
    'on_change',
    'recompute_player_scores',
    'recompute_nation_scores',
    'recompute_subdivision_scores',
    'recompute_all',
    'ranked_players',
    'ranked_nations',
    'ranked_subdivisions',
    'score_of_nation',
    'score_of_subdivision',
    'list_at',
]


if __name__ == "__main__":
    main()
