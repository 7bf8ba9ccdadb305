"""Database tables / schema"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from chess_arena.core.models import utc_now

Money = Numeric(12, 2)


class Base(DeclarativeBase):
    type_annotation_map = {datetime: DateTime(timezone=True)}


class DBAgent(Base):
    __tablename__ = "agents"
    id: Mapped[UUID] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(unique=True)
    playstyle: Mapped[str]
    rating: Mapped[int] = mapped_column(default=1500, index=True)
    games_played: Mapped[int] = mapped_column(default=0)
    wins: Mapped[int] = mapped_column(default=0)
    losses: Mapped[int] = mapped_column(default=0)
    draws: Mapped[int] = mapped_column(default=0)
    current_streak: Mapped[int] = mapped_column(default=0)
    longest_win_streak: Mapped[int] = mapped_column(default=0)
    reputation: Mapped[int] = mapped_column(default=50)
    training_level: Mapped[str] = mapped_column(default="beginner")
    training_xp: Mapped[int] = mapped_column(default=0)
    tactical_score: Mapped[int] = mapped_column(default=50)
    positional_score: Mapped[int] = mapped_column(default=50)
    endgame_score: Mapped[int] = mapped_column(default=50)
    opening_score: Mapped[int] = mapped_column(default=50)
    games_analyzed: Mapped[int] = mapped_column(default=0)
    strengths: Mapped[list[str]] = mapped_column(JSON, default=list)
    weaknesses: Mapped[list[str]] = mapped_column(JSON, default=list)
    preferred_openings: Mapped[dict[str, list[str]]] = mapped_column(JSON, default=dict)
    lessons_learned: Mapped[list[str]] = mapped_column(JSON, default=list)
    last_trained_at: Mapped[Optional[datetime]]
    # The unfinished match the agent plays. Claimed and released with conditional UPDATEs
    active_match_id: Mapped[Optional[UUID]] = mapped_column(index=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)


class DBMatch(Base):
    __tablename__ = "matches"
    id: Mapped[UUID] = mapped_column(primary_key=True)
    white_agent_id: Mapped[UUID] = mapped_column(ForeignKey("agents.id"), index=True)
    black_agent_id: Mapped[UUID] = mapped_column(ForeignKey("agents.id"), index=True)
    status: Mapped[str] = mapped_column(index=True)
    starting_fen: Mapped[str]
    current_fen: Mapped[str]
    betting_ends_at: Mapped[datetime]
    moves: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    move_count: Mapped[int] = mapped_column(default=0)
    total_pool: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    white_pool: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    black_pool: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    started_at: Mapped[Optional[datetime]]
    completed_at: Mapped[Optional[datetime]]
    result: Mapped[Optional[str]]
    result_reason: Mapped[Optional[str]]
    winner_agent_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("agents.id"))
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    # Optimistic concurrency: every write checks and bumps it
    version: Mapped[int] = mapped_column(default=0)


class DBBet(Base):
    __tablename__ = "bets"
    __table_args__ = (UniqueConstraint("match_id", "bettor_id", name="uq_bet_match_bettor"),)
    id: Mapped[UUID] = mapped_column(primary_key=True)
    match_id: Mapped[UUID] = mapped_column(ForeignKey("matches.id"), index=True)
    bettor_id: Mapped[str]
    side: Mapped[str]
    stake: Mapped[Decimal] = mapped_column(Money)
    potential_payout: Mapped[Decimal] = mapped_column(Money)
    status: Mapped[str] = mapped_column(default="pending")
    payout: Mapped[Optional[Decimal]] = mapped_column(Money)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    settled_at: Mapped[Optional[datetime]]
