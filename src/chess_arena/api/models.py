"""Requests and Response models"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator

from chess_arena.core.exceptions import InvalidRequestError
from chess_arena.core.models import AgentName, BettorID
from chess_arena.core.shared_types import AdvanceOutcome, GamePhase, Playstyle, Side
from chess_arena.game.pool import parse_side, parse_stake
from chess_arena.game.rules import validate_fen
from chess_arena.game.traits import parse_playstyle

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 40


# --- REQUEST MODELS ---
class RegisterAgentRequest(BaseModel):
    name: AgentName
    playstyle: Playstyle

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, value: Any) -> str:
        name = str(value).strip()
        if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
            raise InvalidRequestError(
                f"Agent name must have {NAME_MIN_LENGTH} to {NAME_MAX_LENGTH} characters, got {name!r}."
            )
        return name

    @field_validator("playstyle", mode="before")
    @classmethod
    def validate_playstyle(cls, value: Any) -> Playstyle:
        return parse_playstyle(str(value))


class CreateMatchRequest(BaseModel):
    white_agent_id: UUID
    black_agent_id: UUID
    starting_fen: Optional[str] = None

    @field_validator("starting_fen")
    @classmethod
    def validate_starting_fen(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return validate_fen(value.strip())


class FindOpponentRequest(BaseModel):
    agent_id: UUID


class MatchRequest(BaseModel):
    """Start, cancel, advance or look at one match."""

    match_id: UUID


class PlaceBetRequest(BaseModel):
    match_id: UUID
    bettor_id: BettorID
    side: Side
    stake: Decimal

    @field_validator("bettor_id", mode="before")
    @classmethod
    def validate_bettor(cls, value: Any) -> str:
        bettor_id = str(value).strip()
        if not bettor_id:
            raise InvalidRequestError("A bet needs a bettor id.")
        return bettor_id

    @field_validator("side", mode="before")
    @classmethod
    def validate_side(cls, value: Any) -> Side:
        return parse_side(value)

    @field_validator("stake", mode="before")
    @classmethod
    def validate_stake(cls, value: Any) -> Decimal:
        return parse_stake(value)


class DecideRequest(BaseModel):
    """Ask an agent personality for a move in an arbitrary position (analysis/testing)."""

    fen: str
    playstyle: Playstyle
    rating: int = 1500
    tactical_score: int = 50
    positional_score: int = 50
    endgame_score: int = 50
    opening_score: int = 50

    @field_validator("fen")
    @classmethod
    def check_fen(cls, value: str) -> str:
        return validate_fen(value.strip())

    @field_validator("playstyle", mode="before")
    @classmethod
    def validate_playstyle(cls, value: Any) -> Playstyle:
        return parse_playstyle(str(value))

    @field_validator(
        *["tactical_score", "positional_score", "endgame_score", "opening_score"]
    )
    @classmethod
    def validate_skill(cls, value: int) -> int:
        if not 0 <= value <= 100:
            raise InvalidRequestError(f"Skill scores range from 0 to 100, got {value}.")
        return value


class TrainAgentRequest(BaseModel):
    agent_id: UUID


# --- RESPONSE MODELS ---
class AgentResponse(BaseModel):
    agent_id: UUID
    name: AgentName
    playstyle: str
    rating: int
    rating_bracket: str
    games_played: int
    wins: int
    losses: int
    draws: int
    win_rate: float
    current_streak: int
    longest_win_streak: int
    reputation: int
    training_level: str
    training_xp: int
    skills: dict[str, int]
    strengths: list[str]
    weaknesses: list[str]
    preferred_openings: dict[str, list[str]]
    lessons_learned: list[str]
    last_trained_at: Optional[datetime]
    created_at: datetime


class MoveResponse(BaseModel):
    ply: int
    move: str
    uci: str
    side: Side
    actor: AgentName
    fen: str
    timestamp: datetime
    explanation: Optional[str] = None
    phase: Optional[GamePhase] = None
    confidence: Optional[float] = None
    thinking_time_ms: Optional[int] = None


class MatchResponse(BaseModel):
    match_id: UUID
    white_agent_id: UUID
    black_agent_id: UUID
    white_agent_name: Optional[AgentName] = None
    black_agent_name: Optional[AgentName] = None
    status: str
    starting_fen: str
    current_fen: str
    move_count: int
    moves: list[MoveResponse]
    total_pool: Decimal
    white_pool: Decimal
    black_pool: Decimal
    white_odds: Decimal
    black_odds: Decimal
    betting_ends_at: datetime
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    result: Optional[str]
    result_reason: Optional[str]
    winner_agent_id: Optional[UUID]


class BetResponse(BaseModel):
    accepted: bool = True
    bet_id: UUID
    match_id: UUID
    bettor_id: BettorID
    side: Side
    stake: Decimal
    potential_payout: Decimal
    status: str
    payout: Optional[Decimal]


class AdvanceResponse(BaseModel):
    match_id: UUID
    outcome: AdvanceOutcome
    detail: str
    move: Optional[str] = None
    match: Optional[MatchResponse] = None


class DecisionResponse(BaseModel):
    move: str
    uci: str
    explanation: str
    confidence: float
    thinking_time_ms: int
    phase: GamePhase
    considerations: list[str]


class MatchmakingResponse(BaseModel):
    agent_id: UUID
    rating_bracket: str
    match_id: Optional[UUID] = None
    opponent_id: Optional[UUID] = None
    opponent_name: Optional[AgentName] = None
    side: Optional[Side] = None
    rating_band: Optional[int] = None
    message: str


class TrainingResponse(BaseModel):
    agent_id: UUID
    games_analyzed: int
    xp_gained: int
    total_xp: int
    level: str
    level_progress: int
    next_level: Optional[str]
    xp_to_next_level: int
    lessons: list[str]
    improvements: dict[str, int]
    skills: dict[str, int]
    message: str
