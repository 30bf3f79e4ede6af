"""
Demonlist Scoring Engine - Core Package

This package contains the core modules for:
- Score computation and aggregation (demonlist.scoring)
- Materialized rankings (demonlist.ranking)
- Demon audit log and list history (demonlist.history)
- Storage schema and transactions (demonlist.store)
- Shared configuration and utilities
"""

__version__ = "1.0.0"


def __getattr__(name):
    """Lazy imports so `python -m demonlist.engine` does not import the engine twice."""
    if name in ("recompute_all", "recompute_player_scores", "recompute_nation_scores",
                "recompute_subdivision_scores", "on_change", "ChangeEvent"):
        from demonlist import engine
        return getattr(engine, name)
    if name == "list_at":
        from demonlist.history.reconstruct import list_at
        return list_at
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
