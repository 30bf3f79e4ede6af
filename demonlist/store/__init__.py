"""
Storage

Modules:
- models: SQLAlchemy schema (list data, demon log, materialized ranks)
- session: Engine construction and transactional scopes
"""

from demonlist.store.models import (
    Base,
    Nationality,
    Subdivision,
    Player,
    Demon,
    Record,
    RecordStatus,
    DemonModification,
    DemonAddition,
    PlayerRank,
    NationRank,
    SubdivisionRank,
)
from demonlist.store.session import configure, get_sessionmaker, make_sessionmaker, session_scope
