"""
Score Formula

Maps a single record (progress on a demon at some list position) to its
score contribution. The formula is pure and total: every input in range
yields a finite, non-negative float.

- Full completions earn the curve value for the demon's position.
- Partial completions between the requirement and 100% earn an exponentially
  growing fraction of it, starting at 1/PARTIAL_CREDIT_DIVISOR.
- Below the requirement, or partial progress outside the position cap, earns 0.

The curve itself is a tunable business rule and can be swapped by passing a
different ScoreCurve.
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd

from demonlist.config import PARTIAL_CREDIT_BASE, PARTIAL_CREDIT_DIVISOR, SCORE_CURVE


@dataclass(frozen=True)
class ScoreCurve:
    """Piecewise curve: segments of (last_position, a, b, s, c) -> a * b ** (s - position) + c"""
    segments: tuple = SCORE_CURVE
    partial_base: float = PARTIAL_CREDIT_BASE
    partial_divisor: float = PARTIAL_CREDIT_DIVISOR

    def full_credit(self, position):
        """Score of a 100% record at the given position(s)."""
        position = np.asarray(position, dtype=float)
        result = np.zeros_like(position)
        lower = 0
        for last, a, b, s, c in self.segments:
            if last is None:
                mask = position > lower
            else:
                mask = (position > lower) & (position <= last)
            result = np.where(mask, a * np.power(b, s - position) + c, result)
            if last is None:
                break
            lower = last
        return result

    def partial_credit(self, progress, requirement):
        """Fraction of full credit earned at the given progress (1.0 at 100%)."""
        progress = np.asarray(progress, dtype=float)
        requirement = np.asarray(requirement, dtype=float)

        # requirement == 100 divides by zero, but those rows are masked below
        with np.errstate(divide='ignore', invalid='ignore'):
            ratio = (progress - requirement) / (100.0 - requirement)
            partial = np.power(self.partial_base, ratio) / self.partial_divisor

        return np.where(
            progress >= 100,
            1.0,
            np.where(progress < requirement, 0.0, partial),
        )


DEFAULT_CURVE = ScoreCurve()


def score_array(progress, position, position_cap, requirement, curve: ScoreCurve | None = None):
    """
    Vectorized score formula over numpy arrays (or scalars).

    Args:
        progress: Record progress, 0-100
        position: Demon position, 1-based
        position_cap: Last position where partial progress counts
        requirement: Demon requirement, 0-100
        curve: Curve to use (default: config.SCORE_CURVE)

    Returns:
        numpy array of scores
    """
    curve = curve or DEFAULT_CURVE
    progress = np.asarray(progress, dtype=float)
    position = np.asarray(position, dtype=float)

    outside_cap = (position > position_cap) & (progress < 100)
    scores = curve.full_credit(position) * curve.partial_credit(progress, requirement)
    return np.where(outside_cap, 0.0, scores)


def record_score(progress, position, position_cap, requirement, curve: ScoreCurve | None = None) -> float:
    """Score contribution of a single record."""
    return float(score_array(progress, position, position_cap, requirement, curve))


def score_frame(df: pd.DataFrame, position_cap, curve: ScoreCurve | None = None) -> pd.Series:
    """
    Apply the formula to every row of a DataFrame.

    Args:
        df: DataFrame with columns [progress, position, requirement]
        position_cap: Last position where partial progress counts
        curve: Curve to use (default: config.SCORE_CURVE)

    Returns:
        Float Series aligned with df's index
    """
    if df.empty:
        return pd.Series(index=df.index, dtype=float)

    values = score_array(
        df['progress'].to_numpy(),
        df['position'].to_numpy(),
        position_cap,
        df['requirement'].to_numpy(),
        curve,
    )
    return pd.Series(values, index=df.index, dtype=float)
