"""
Scoring

Modules:
- formula: Record score formula (scalar and vectorized)
- selection: Score-giving record selection and deduplication
- aggregation: Player, nation and subdivision rollups
"""


def __getattr__(name):
    """Lazy imports to avoid loading pandas/SQLAlchemy until needed."""
    if name == "record_score":
        from demonlist.scoring.formula import record_score
        return record_score
    if name == "load_score_giving":
        from demonlist.scoring.selection import load_score_giving
        return load_score_giving
    if name in ("score_of_nation", "score_of_subdivision"):
        from demonlist.scoring import aggregation
        return getattr(aggregation, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
