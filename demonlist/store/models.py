"""
Relational schema for the Demonlist.

The CRUD layer owns nationalities, subdivisions, players, demons and records.
The engine only writes the cached score columns, the materialized rank tables
and the append-only demon log.
"""

from enum import Enum

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Float,
    ForeignKey, ForeignKeyConstraint, Enum as SQLEnum, CheckConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class RecordStatus(Enum):
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    UNDER_CONSIDERATION = "under_consideration"


class Nationality(Base):
    __tablename__ = 'nationalities'

    iso_country_code = Column(String(2), primary_key=True)
    nation = Column(String(100), nullable=False, unique=True)
    continent = Column(String(40), nullable=True)

    # Cached totals, written by the aggregation engine
    score = Column(Float, nullable=False, default=0.0)
    unrated_score = Column(Float, nullable=False, default=0.0)

    subdivisions = relationship("Subdivision", back_populates="nationality")
    players = relationship("Player", back_populates="nation")

    def __repr__(self):
        return f"<Nationality(code='{self.iso_country_code}', nation='{self.nation}')>"


class Subdivision(Base):
    __tablename__ = 'subdivisions'

    nation = Column(String(2), ForeignKey('nationalities.iso_country_code'), primary_key=True)
    iso_code = Column(String(3), primary_key=True)
    name = Column(String(100), nullable=False)

    score = Column(Float, nullable=False, default=0.0)
    unrated_score = Column(Float, nullable=False, default=0.0)

    nationality = relationship("Nationality", back_populates="subdivisions")

    def __repr__(self):
        return f"<Subdivision(nation='{self.nation}', iso_code='{self.iso_code}')>"


class Player(Base):
    __tablename__ = 'players'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    nationality = Column(String(2), ForeignKey('nationalities.iso_country_code'), nullable=True)
    subdivision = Column(String(3), nullable=True)
    banned = Column(Boolean, nullable=False, default=False)

    score = Column(Float, nullable=False, default=0.0)
    unrated_score = Column(Float, nullable=False, default=0.0)

    nation = relationship("Nationality", back_populates="players")
    records = relationship("Record", back_populates="player")

    __table_args__ = (
        CheckConstraint('subdivision IS NULL OR nationality IS NOT NULL', name='subdivision_requires_nation'),
    )

    def __repr__(self):
        return f"<Player(id={self.id}, name='{self.name}', banned={self.banned})>"


class Demon(Base):
    __tablename__ = 'demons'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    # NULL once the demon has been removed from the list
    position = Column(Integer, nullable=True, index=True)
    requirement = Column(Integer, nullable=False)
    video = Column(String(200), nullable=True)
    verifier_id = Column(Integer, ForeignKey('players.id'), nullable=False)
    publisher_id = Column(Integer, ForeignKey('players.id'), nullable=False)
    rated = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False)
    removed_at = Column(DateTime, nullable=True)

    verifier = relationship("Player", foreign_keys=[verifier_id])
    publisher = relationship("Player", foreign_keys=[publisher_id])
    records = relationship("Record", back_populates="demon")

    __table_args__ = (
        CheckConstraint('requirement >= 0 AND requirement <= 100', name='requirement_is_percentage'),
    )

    def __repr__(self):
        return f"<Demon(id={self.id}, name='{self.name}', position={self.position})>"


class Record(Base):
    __tablename__ = 'records'

    id = Column(Integer, primary_key=True)
    player_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    demon_id = Column(Integer, ForeignKey('demons.id'), nullable=False, index=True)
    progress = Column(Integer, nullable=False)
    status = Column(SQLEnum(RecordStatus), nullable=False, default=RecordStatus.SUBMITTED)

    player = relationship("Player", back_populates="records")
    demon = relationship("Demon", back_populates="records")

    __table_args__ = (
        CheckConstraint('progress >= 0 AND progress <= 100', name='progress_is_percentage'),
    )

    def __repr__(self):
        return f"<Record(id={self.id}, player={self.player_id}, demon={self.demon_id}, progress={self.progress})>"


# --- Append-only demon log ---
# Each logged column holds the value *before* the change, NULL when the field did not change.
class DemonModification(Base):
    __tablename__ = 'demon_modifications'

    id = Column(Integer, primary_key=True)
    demon_id = Column(Integer, ForeignKey('demons.id'), nullable=False)
    time = Column(DateTime, nullable=False)
    user_id = Column(Integer, nullable=True)

    name = Column(String(100), nullable=True)
    position = Column(Integer, nullable=True)
    requirement = Column(Integer, nullable=True)
    video = Column(String(200), nullable=True)
    verifier_id = Column(Integer, nullable=True)
    publisher_id = Column(Integer, nullable=True)
    rated = Column(Boolean, nullable=True)

    __table_args__ = (
        Index('demon_modifications_demon_time_idx', 'demon_id', 'time'),
    )


class DemonAddition(Base):
    __tablename__ = 'demon_additions'

    demon_id = Column(Integer, ForeignKey('demons.id'), primary_key=True)
    time = Column(DateTime, nullable=False)
    user_id = Column(Integer, nullable=True)


# --- Materialized rankings ---
# Rank columns are NULL when the entity is unranked in that pool.
class PlayerRank(Base):
    __tablename__ = 'player_ranks'

    player_id = Column(Integer, ForeignKey('players.id'), primary_key=True)
    rated_rank = Column(Integer, nullable=True)
    rated_index = Column(Integer, nullable=True, index=True)
    unrated_rank = Column(Integer, nullable=True)
    unrated_index = Column(Integer, nullable=True, index=True)


class NationRank(Base):
    __tablename__ = 'nation_ranks'

    iso_country_code = Column(String(2), ForeignKey('nationalities.iso_country_code'), primary_key=True)
    rated_rank = Column(Integer, nullable=True)
    rated_index = Column(Integer, nullable=True, index=True)
    unrated_rank = Column(Integer, nullable=True)
    unrated_index = Column(Integer, nullable=True, index=True)


class SubdivisionRank(Base):
    __tablename__ = 'subdivision_ranks'

    nation = Column(String(2), primary_key=True)
    iso_code = Column(String(3), primary_key=True)
    rated_rank = Column(Integer, nullable=True)
    rated_index = Column(Integer, nullable=True, index=True)
    unrated_rank = Column(Integer, nullable=True)
    unrated_index = Column(Integer, nullable=True, index=True)

    __table_args__ = (
        ForeignKeyConstraint(['nation', 'iso_code'], ['subdivisions.nation', 'subdivisions.iso_code']),
    )
