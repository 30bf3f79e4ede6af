"""
Tests for rank computation and the materialized ranking tables.
"""

import pandas as pd
import pytest

from demonlist.engine import recompute_all
from demonlist.ranking.materializer import (
    competition_ranks,
    rank_of_player,
    ranked_nations,
    ranked_players,
    ranked_subdivisions,
)
from demonlist.store.models import Player
from demonlist.store.session import session_scope
from demonlist.utils import ValidationError


def ranks_by_id(ranks):
    return ranks.set_index('id').to_dict('index')


class TestCompetitionRanks:
    """Tests for competition_ranks."""

    def test_ties_share_rank_and_skip(self):
        totals = pd.DataFrame({
            'id': [1, 2, 3, 4],
            'score': [10.0, 10.0, 5.0, 1.0],
            'unrated_score': [10.0, 10.0, 5.0, 1.0],
        })
        ranks = ranks_by_id(competition_ranks(totals, ['id']))
        assert [ranks[i]['rated_rank'] for i in (1, 2, 3, 4)] == [1, 1, 3, 4]

    def test_index_is_dense_and_ordered_by_id_within_ties(self):
        totals = pd.DataFrame({
            'id': [7, 3, 5],
            'score': [10.0, 10.0, 20.0],
            'unrated_score': [10.0, 10.0, 20.0],
        })
        ranks = ranks_by_id(competition_ranks(totals, ['id']))
        assert ranks[5]['rated_index'] == 1
        assert ranks[3]['rated_index'] == 2
        assert ranks[7]['rated_index'] == 3

    def test_zero_score_unranked_in_rated_pool_only(self):
        totals = pd.DataFrame({
            'id': [1, 2],
            'score': [0.0, 4.0],
            'unrated_score': [8.0, 4.0],
        })
        ranks = ranks_by_id(competition_ranks(totals, ['id']))
        assert pd.isna(ranks[1]['rated_rank'])
        assert ranks[1]['unrated_rank'] == 1
        assert ranks[2]['rated_rank'] == 1
        assert ranks[2]['unrated_rank'] == 2

    def test_entities_without_points_dropped(self):
        totals = pd.DataFrame({'id': [1, 2], 'score': [0.0, 3.0], 'unrated_score': [0.0, 3.0]})
        assert competition_ranks(totals, ['id'])['id'].tolist() == [2]

    def test_composite_ids(self):
        totals = pd.DataFrame({
            'nation': ['US', 'US', 'DE'],
            'iso_code': ['NY', 'CA', 'BE'],
            'score': [5.0, 5.0, 9.0],
            'unrated_score': [5.0, 5.0, 9.0],
        })
        ranks = competition_ranks(totals, ['nation', 'iso_code']).set_index(['nation', 'iso_code'])
        assert ranks.loc[('DE', 'BE'), 'rated_index'] == 1
        assert ranks.loc[('US', 'CA'), 'rated_index'] == 2
        assert ranks.loc[('US', 'NY'), 'rated_rank'] == 2


class TestRankedViews:
    """Tests for the ranked views over the materialized tables."""

    @pytest.fixture
    def world(self, builder, sessions):
        builder.nation('US', 'United States', 'North America')
        builder.nation('DE', 'Germany', 'Europe')
        builder.subdivision('US', 'CA', 'California')
        builder.subdivision('US', 'NY', 'New York')
        verifier = builder.player('verifier')
        players = {
            'alice': builder.player('alice', 'US', 'CA'),
            'bob': builder.player('bob', 'US', 'NY'),
            'carl': builder.player('carl', 'DE'),
            'dora': builder.player('dora', 'DE', banned=True),
            'eve': builder.player('eve', 'US', 'CA'),
        }
        hard = builder.demon('Hard', 1, verifier)
        easy = builder.demon('Easy', 2, verifier)
        side = builder.demon('Side', 3, verifier, rated=False)
        builder.record(players['alice'], hard, 100)
        builder.record(players['bob'], hard, 100)
        builder.record(players['carl'], easy, 100)
        builder.record(players['dora'], hard, 100)
        builder.record(players['eve'], side, 100)
        recompute_all(sessions)
        return players

    def test_banned_player_never_listed(self, world, sessions):
        with session_scope(sessions) as session:
            names = [e.name for e in ranked_players(session)]
        assert 'dora' not in names

    def test_tied_players_share_rank(self, world, sessions):
        with session_scope(sessions) as session:
            entries = {e.name: e for e in ranked_players(session)}
        # the verifier holds both rated demons
        assert entries['verifier'].rank == 1
        assert entries['alice'].rank == entries['bob'].rank == 2
        assert entries['alice'].index == 2
        assert entries['bob'].index == 3
        assert entries['carl'].rank == 4

    def test_zero_rated_score_absent_from_rated_view(self, world, sessions):
        with session_scope(sessions) as session:
            rated = [e.name for e in ranked_players(session)]
            unrated = [e.name for e in ranked_players(session, rated=False)]
        assert 'eve' not in rated
        assert 'eve' in unrated

    def test_nation_filter_renumbers_index(self, world, sessions):
        with session_scope(sessions) as session:
            german = ranked_players(session, nation='DE')
        assert [(e.name, e.index) for e in german] == [('carl', 1)]
        assert german[0].rank > 1

    def test_continent_filter(self, world, sessions):
        with session_scope(sessions) as session:
            european = ranked_players(session, continent='Europe')
        assert [e.name for e in european] == ['carl']

    def test_paging(self, world, sessions):
        with session_scope(sessions) as session:
            page = ranked_players(session, offset=1, limit=2)
        assert [e.index for e in page] == [2, 3]

    def test_ranked_nations(self, world, sessions):
        with session_scope(sessions) as session:
            nations = ranked_nations(session)
        assert [e.id for e in nations] == ['US', 'DE']
        assert nations[0].rank == 1

    def test_ranked_subdivisions(self, world, sessions):
        with session_scope(sessions) as session:
            rated = ranked_subdivisions(session, nation='US')
            unrated = ranked_subdivisions(session, nation='US', rated=False)
        assert [e.id for e in rated] == [('US', 'CA'), ('US', 'NY')]
        assert rated[0].rank == rated[1].rank == 1
        assert unrated[0].id == ('US', 'CA')

    def test_rank_lookup(self, world, sessions):
        with session_scope(sessions) as session:
            assert rank_of_player(session, world['alice'].id) == 2
            assert rank_of_player(session, world['eve'].id) is None
            assert rank_of_player(session, world['dora'].id) is None

    def test_subdivision_filter_scoped_to_nation(self, world, builder, sessions):
        builder.subdivision('DE', 'CA', 'Cham')
        with session_scope(sessions) as session:
            session.get(Player, world['carl'].id).subdivision = 'CA'

        with session_scope(sessions) as session:
            californian = ranked_players(session, nation='US', subdivision='CA')
            with pytest.raises(ValidationError):
                ranked_players(session, subdivision='CA')
        assert [e.name for e in californian] == ['alice']

    def test_name_search_is_literal_and_case_insensitive(self, world, sessions):
        with session_scope(sessions) as session:
            assert [e.name for e in ranked_players(session, name_contains='AL')] == ['alice']
            assert ranked_players(session, name_contains='_') == []
            assert ranked_players(session, name_contains='%') == []
