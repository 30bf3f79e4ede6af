"""
Tests for the record score formula.
"""

import pandas as pd
import pytest

from demonlist.config import SCORED_WINDOW
from demonlist.scoring.formula import ScoreCurve, record_score, score_frame


class TestThresholds:
    """Tests for the zero-score cases."""

    def test_below_requirement_scores_zero(self):
        for progress in range(0, 60):
            assert record_score(progress, 10, SCORED_WINDOW, 60) == 0.0

    def test_partial_outside_cap_scores_zero(self):
        assert record_score(90, SCORED_WINDOW + 5, SCORED_WINDOW, 50) == 0.0

    def test_full_completion_outside_cap_scores(self):
        assert record_score(100, SCORED_WINDOW + 5, SCORED_WINDOW, 50) > 0.0

    def test_requirement_of_100_only_counts_completions(self):
        assert record_score(99, 1, SCORED_WINDOW, 100) == 0.0
        assert record_score(100, 1, SCORED_WINDOW, 100) > 0.0


class TestCurveShape:
    """Tests for the monotonicity of the formula."""

    def test_full_credit_strictly_decreases_with_position(self):
        scores = [record_score(100, p, SCORED_WINDOW, 50) for p in range(1, 201)]
        for i in range(len(scores) - 1):
            assert scores[i] > scores[i + 1]

    def test_partial_credit_strictly_increases_with_progress(self):
        scores = [record_score(p, 10, SCORED_WINDOW, 40) for p in range(40, 101)]
        for i in range(len(scores) - 1):
            assert scores[i] < scores[i + 1]

    def test_requirement_gives_minimum_nonzero_credit(self):
        full = record_score(100, 10, SCORED_WINDOW, 60)
        at_requirement = record_score(60, 10, SCORED_WINDOW, 60)
        assert at_requirement == pytest.approx(full / 10)
        assert at_requirement > 0.0

    def test_top_position_is_worth_most(self):
        assert record_score(100, 1, SCORED_WINDOW, 50) == pytest.approx(250.0)

    def test_always_positive_inside_list(self):
        for position in range(1, 300):
            assert record_score(100, position, SCORED_WINDOW, 50) > 0.0


class TestCustomCurve:
    """Tests for swapping the curve."""

    def test_flat_curve(self):
        curve = ScoreCurve(segments=((None, 0.0, 1.0, 0, 10.0),), partial_base=2, partial_divisor=2)
        assert record_score(100, 7, SCORED_WINDOW, 50, curve) == pytest.approx(10.0)
        # at the requirement: 10 * 2**0 / 2
        assert record_score(50, 7, SCORED_WINDOW, 50, curve) == pytest.approx(5.0)

    def test_curve_is_deterministic(self):
        assert record_score(87, 33, SCORED_WINDOW, 55) == record_score(87, 33, SCORED_WINDOW, 55)


class TestScoreFrame:
    """Tests for the vectorized formula."""

    def test_matches_scalar_formula(self):
        df = pd.DataFrame({
            'progress': [100, 75, 40, 100, 90],
            'position': [1, 20, 30, 90, 90],
            'requirement': [50, 50, 50, 60, 60],
        })
        result = score_frame(df, SCORED_WINDOW)
        expected = [record_score(r.progress, r.position, SCORED_WINDOW, r.requirement) for r in df.itertuples()]
        assert result.tolist() == pytest.approx(expected)
        assert result.iloc[2] == 0.0
        assert result.iloc[4] == 0.0

    def test_empty_frame(self):
        df = pd.DataFrame(columns=['progress', 'position', 'requirement'])
        assert score_frame(df, SCORED_WINDOW).empty
