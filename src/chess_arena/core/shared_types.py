"""
Type definitions used across layers
"""

from enum import StrEnum


class Playstyle(StrEnum):
    AGGRESSIVE = "aggressive"
    POSITIONAL = "positional"
    DEFENSIVE = "defensive"
    TACTICAL = "tactical"
    ENDGAME_ORIENTED = "endgame-oriented"


class Side(StrEnum):
    WHITE = "white"
    BLACK = "black"


class MatchStatus(StrEnum):
    BETTING = "betting"
    LIVE = "live"
    COMPLETED = "completed"


class MatchResult(StrEnum):
    WHITE_WIN = "white_win"
    BLACK_WIN = "black_win"
    DRAW = "draw"
    CANCELLED = "cancelled"

    @property
    def winning_side(self) -> Side | None:
        if self == MatchResult.WHITE_WIN:
            return Side.WHITE
        if self == MatchResult.BLACK_WIN:
            return Side.BLACK
        return None


class ResultReason(StrEnum):
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    REPETITION = "repetition"
    INSUFFICIENT_MATERIAL = "insufficient_material"
    FIFTY_MOVE_RULE = "fifty_move_rule"
    MOVE_LIMIT = "move_limit"
    CANCELLED = "cancelled"
    # Rules engine says game over, but none of the specific checks matched.
    DRAW = "draw"


class BetStatus(StrEnum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"
    REFUNDED = "refunded"


class TrainingLevel(StrEnum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    MASTER = "master"


class GamePhase(StrEnum):
    OPENING = "opening"
    MIDDLEGAME = "middlegame"
    ENDGAME = "endgame"


class AdvanceOutcome(StrEnum):
    STARTED = "started"
    MOVED = "moved"
    COMPLETED = "completed"
    NO_OP = "no-op"
    ERROR = "error"


class GameOutcome(StrEnum):
    """A match result seen from one agent's point of view."""

    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"
