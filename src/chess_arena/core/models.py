"""
Boundary layer data model(s).

These objects are used to communicate with the Service.
Both the API layer (higher) and the domain/db layers (lower) use the models defined here to send to/receive from the Service
(decouples the data model specific to the DB layer, API layer, or domain layer from the information needed to send across boundaries)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Self
from uuid import UUID

# Type aliases to make the models easier to read
AgentName = str
BettorID = str


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Some backends (SQLite) drop the tzinfo. Everything in the core is compared in UTC."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass
class AgentModel:
    """Transport-safe representation of an agent: identity, rating, reputation and training state."""

    id: UUID
    name: AgentName
    playstyle: str
    rating: int = 1500
    games_played: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    current_streak: int = 0
    longest_win_streak: int = 0
    reputation: int = 50
    training_level: str = "beginner"
    training_xp: int = 0
    tactical_score: int = 50
    positional_score: int = 50
    endgame_score: int = 50
    opening_score: int = 50
    games_analyzed: int = 0
    strengths: list[str] = field(default_factory=list)
    weaknesses: list[str] = field(default_factory=list)
    preferred_openings: dict[str, list[str]] = field(default_factory=dict)
    lessons_learned: list[str] = field(default_factory=list)
    last_trained_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)

    @property
    def win_rate(self) -> float:
        if self.games_played == 0:
            return 0.0
        return self.wins / self.games_played * 100


@dataclass
class MoveRecord:
    """One entry of the append-only move log of a match."""

    ply: int
    move: str  # SAN
    uci: str
    side: str
    actor: AgentName
    fen: str  # position after the move
    timestamp: datetime
    explanation: Optional[str] = None
    phase: Optional[str] = None
    confidence: Optional[float] = None
    thinking_time_ms: Optional[int] = None
    rank: Optional[int] = None
    score_gap: Optional[float] = None
    style_aligned: Optional[bool] = None

    def to_dict(self) -> dict[str, Any]:
        """JSON friendly encoding (used by the persistence layer)."""
        return {
            "ply": self.ply,
            "move": self.move,
            "uci": self.uci,
            "side": self.side,
            "actor": self.actor,
            "fen": self.fen,
            "timestamp": self.timestamp.isoformat(),
            "explanation": self.explanation,
            "phase": self.phase,
            "confidence": self.confidence,
            "thinking_time_ms": self.thinking_time_ms,
            "rank": self.rank,
            "score_gap": self.score_gap,
            "style_aligned": self.style_aligned,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        values = dict(data)
        values["timestamp"] = as_utc(datetime.fromisoformat(values["timestamp"]))
        return cls(**values)


@dataclass
class MatchModel:
    """Transport-safe representation of a match used between API, Service, DB, and domain layers."""

    id: UUID
    white_agent_id: UUID
    black_agent_id: UUID
    status: str
    starting_fen: str
    current_fen: str
    betting_ends_at: datetime
    moves: list[MoveRecord] = field(default_factory=list)
    move_count: int = 0  # plies played
    total_pool: Decimal = Decimal("0")
    white_pool: Decimal = Decimal("0")
    black_pool: Decimal = Decimal("0")
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Optional[str] = None
    result_reason: Optional[str] = None
    winner_agent_id: Optional[UUID] = None
    created_at: datetime = field(default_factory=utc_now)
    version: int = 0

    @property
    def moves_uci(self) -> list[str]:
        return [record.uci for record in self.moves]

    def agent_ids(self) -> tuple[UUID, UUID]:
        return self.white_agent_id, self.black_agent_id


@dataclass
class BetModel:
    """Transport-safe representation of a spectator's wager on one side of a match."""

    id: UUID
    match_id: UUID
    bettor_id: BettorID
    side: str
    stake: Decimal
    potential_payout: Decimal
    status: str = "pending"
    payout: Optional[Decimal] = None
    created_at: datetime = field(default_factory=utc_now)
    settled_at: Optional[datetime] = None
