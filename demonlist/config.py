"""
Central configuration for the Demonlist scoring engine.

All shared constants and configuration values should be defined here
to avoid duplication and ensure consistency across modules.
"""

import math
import os
from pathlib import Path

# --- Project Paths ---
PROJECT_ROOT = Path(__file__).parent.parent
DATA_FOLDER = PROJECT_ROOT / "data"

# --- Database ---
DATABASE_URL = os.environ.get(
    "DEMONLIST_DATABASE_URL",
    f"sqlite:///{DATA_FOLDER / 'demonlist.db'}",
)
ECHO_SQL = os.environ.get("DEMONLIST_ECHO_SQL", "0") == "1"

# --- List Layout ---
SCORED_WINDOW = 75  # Main list: partial progress only counts up to here
EXTENDED_LIST_SIZE = 150  # Extended list ends here, everything after is legacy

# --- Score Curve ---
# Each segment is (last_position, a, b, s, c) and scores a full completion as
#   a * b ** (s - position) + c
# for positions up to and including last_position. The last segment applies
# to every position after the previous one. Values must keep the curve
# strictly decreasing across segment boundaries.
SCORE_CURVE = (
    (20, 149.61, 1.168, 1, 100.39),
    (35, 166.611, 1.0099685, 2, -31.152),
    (55, 212.61, 1.036, 1, 25.071),
    (None, 56.191, 2 ** (math.log(50) / 99), 50.947, 6.273),
)

# Partial completions earn base * PARTIAL_CREDIT_BASE ** ratio / PARTIAL_CREDIT_DIVISOR,
# where ratio runs from 0 (at the requirement) towards 1 (at 100%).
PARTIAL_CREDIT_BASE = 5
PARTIAL_CREDIT_DIVISOR = 10

# --- Recompute Policy ---
RECOMPUTE_MAX_ATTEMPTS = 3
RECOMPUTE_RETRY_DELAY = 0.5  # seconds between attempts

# --- Input Validation ---
MIN_PROGRESS = 0
MAX_PROGRESS = 100
