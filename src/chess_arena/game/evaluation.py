"""
Move evaluation
----

Every legal move gets a scalar score: a weighted sum of features. The features are evaluated the same way for every
playstyle, the weights come from the trait table (see traits.py).

The scale of the terms (roughly):
* checkmate: dominant, nothing else comes close
* promotion in the endgame: 50
* near-promotion in the endgame: 10
* everything else: single digits
* jitter: a few tenths, so it only breaks ties between moves that are close anyway
"""

import random
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Optional

import chess

from chess_arena.core.shared_types import GamePhase
from chess_arena.game.traits import PlaystyleTraits

MATE_SCORE = 1000.0

PIECE_VALUES: dict[chess.PieceType, int] = {
    chess.PAWN: 1,
    chess.KNIGHT: 3,
    chess.BISHOP: 3,
    chess.ROOK: 5,
    chess.QUEEN: 9,
    chess.KING: 0,
}

CENTER_SQUARES = frozenset(
    chess.parse_square(name) for name in ["d4", "d5", "e4", "e5", "c4", "c5", "f4", "f5"]
)
CORNER_SQUARES = frozenset([chess.A1, chess.A8, chess.H1, chess.H8])

# Non-pawn, non-king pieces on the board (both colors). 14 at the start of a game.
OPENING_PIECE_THRESHOLD = 12
MIDDLEGAME_PIECE_THRESHOLD = 6

# --- Bonuses (before scaling by the trait weights) ---
CHECK_BONUS = 2.0
ENDGAME_CHECK_BONUS = 5.0
CASTLING_BONUS = 3.0
NEAR_PROMOTION_BONUS = 3.0
DEVELOPMENT_BONUS = 2.0
# endgame only
APPROACH_KING_BONUS = 3.0
CUT_OFF_BONUS = 4.0
EDGE_BONUS = 2.0
CORNER_BONUS = 5.0
KING_SUPPORT_BONUS = 3.0
KING_SUPPORT_DISTANCE = 2
ENDGAME_NEAR_PROMOTION_BONUS = 10.0
ENDGAME_PROMOTION_BONUS = 50.0
# per point of the promoted piece: queen above rook above the minor pieces
PROMOTION_PIECE_WEIGHT = 0.5

JITTER_BASE = 0.15
JITTER_PER_RISK = 0.15


class Feature(StrEnum):
    """What a move does. Used for the explanation and for judging style adherence."""

    CHECKMATE = "delivers checkmate"
    CHECK = "gives check"
    CAPTURE = "wins material"
    TRADE = "trades material"
    CENTER = "controls the center"
    CASTLING = "castles for king safety"
    PAWN_ADVANCE = "advances a pawn"
    NEAR_PROMOTION = "pushes a pawn toward promotion"
    PROMOTION = "promotes a pawn"
    DEVELOPMENT = "develops a minor piece"
    ATTACK = "brings a piece into the attack"
    APPROACH_KING = "closes in on the enemy king"
    CUT_OFF = "cuts off the enemy king"
    KING_ON_EDGE = "keeps the enemy king on the edge"
    KING_SUPPORT = "brings the king in to support the mating net"


@dataclass
class ScoredMove:
    move: chess.Move
    san: str
    score: float
    features: list[Feature] = field(default_factory=list)

    @property
    def is_mate(self) -> bool:
        return Feature.CHECKMATE in self.features

    @property
    def uci(self) -> str:
        return self.move.uci()


# --- GAME PHASE ---
def count_major_minor_pieces(board: chess.Board) -> int:
    """Pieces that are neither pawns nor kings, both colors."""
    return sum(
        len(board.pieces(piece_type, color))
        for piece_type in (chess.KNIGHT, chess.BISHOP, chess.ROOK, chess.QUEEN)
        for color in (chess.WHITE, chess.BLACK)
    )


def game_phase(board: chess.Board) -> GamePhase:
    pieces = count_major_minor_pieces(board)
    if pieces > OPENING_PIECE_THRESHOLD:
        return GamePhase.OPENING
    if pieces > MIDDLEGAME_PIECE_THRESHOLD:
        return GamePhase.MIDDLEGAME
    return GamePhase.ENDGAME


# --- GEOMETRY HELPERS ---
def manhattan_distance(a: chess.Square, b: chess.Square) -> int:
    return abs(chess.square_file(a) - chess.square_file(b)) + abs(
        chess.square_rank(a) - chess.square_rank(b)
    )


def is_edge_square(square: chess.Square) -> bool:
    return chess.square_file(square) in (0, 7) or chess.square_rank(square) in (0, 7)


def relative_rank(square: chess.Square, color: chess.Color) -> int:
    """1-8, counted from the moving side's own back rank."""
    rank = chess.square_rank(square) + 1
    return rank if color == chess.WHITE else 9 - rank


# --- SCORING ---
def score_move(
    board: chess.Board,
    move: chess.Move,
    traits: PlaystyleTraits,
    phase: GamePhase,
    rng: random.Random,
) -> ScoredMove:
    """
    Score one legal move from the perspective of the side to move.

    NOTE the board gets the move pushed and popped again, callers should pass a board they own.
    """
    mover = board.turn
    piece_type = board.piece_type_at(move.from_square)
    assert piece_type is not None, "a legal move always starts on an occupied square"

    san = board.san(move)
    features: list[Feature] = []
    score = rng.uniform(0, JITTER_BASE + JITTER_PER_RISK * traits.risk_tolerance)

    captured_type = _captured_piece_type(board, move)
    is_castling = board.is_castling(move)

    board.push(move)
    try:
        if board.is_checkmate():
            return ScoredMove(move, san, MATE_SCORE + score, [Feature.CHECKMATE])
        if board.is_check():
            bonus = ENDGAME_CHECK_BONUS if phase == GamePhase.ENDGAME else CHECK_BONUS
            score += bonus * traits.check_preference
            features.append(Feature.CHECK)
        enemy_king: Optional[chess.Square] = board.king(not mover)
    finally:
        board.pop()

    if phase == GamePhase.ENDGAME:
        score += _endgame_terms(move, piece_type, mover, enemy_king, features)

    if captured_type is not None:
        captured_value = PIECE_VALUES[captured_type]
        # a king capturing counts as the cheapest possible attacker
        mover_value = max(PIECE_VALUES[piece_type], 1)
        if captured_value >= mover_value:
            score += captured_value * traits.capture_preference * 2
            features.append(Feature.CAPTURE)
        else:
            score += captured_value * traits.capture_preference
            features.append(Feature.TRADE)

    if move.to_square in CENTER_SQUARES and phase != GamePhase.ENDGAME:
        score += traits.center_control_preference
        features.append(Feature.CENTER)

    if is_castling:
        score += CASTLING_BONUS * traits.king_safety_preference
        features.append(Feature.CASTLING)

    if piece_type == chess.PAWN:
        to_rank = relative_rank(move.to_square, mover)
        advancement = to_rank - 2
        score += (advancement / 4) * traits.pawn_advance_preference
        features.append(Feature.PAWN_ADVANCE)
        if to_rank >= 6:
            score += NEAR_PROMOTION_BONUS * traits.pawn_advance_preference
            features.append(Feature.NEAR_PROMOTION)

    if phase == GamePhase.OPENING and piece_type in (chess.KNIGHT, chess.BISHOP):
        if relative_rank(move.from_square, mover) == 1:
            score += DEVELOPMENT_BONUS
            features.append(Feature.DEVELOPMENT)

    if phase == GamePhase.MIDDLEGAME and traits.attack_preference > 0.5:
        score += (relative_rank(move.to_square, mover) / 8) * traits.attack_preference
        if relative_rank(move.to_square, mover) >= 5:
            features.append(Feature.ATTACK)

    return ScoredMove(move, san, score, features)


def score_moves(
    board: chess.Board,
    moves: list[chess.Move],
    traits: PlaystyleTraits,
    rng: random.Random,
) -> list[ScoredMove]:
    """Score all candidate moves, best first."""
    work = board.copy(stack=False)
    phase = game_phase(board)
    scored = [score_move(work, move, traits, phase, rng) for move in moves]
    scored.sort(key=lambda scored_move: scored_move.score, reverse=True)
    return scored


def _captured_piece_type(board: chess.Board, move: chess.Move) -> Optional[chess.PieceType]:
    if board.is_en_passant(move):
        return chess.PAWN
    if board.is_castling(move):
        # python-chess encodes castling as king-takes-own-rook in Chess960 notation
        return None
    return board.piece_type_at(move.to_square)


def _endgame_terms(
    move: chess.Move,
    piece_type: chess.PieceType,
    mover: chess.Color,
    enemy_king: Optional[chess.Square],
    features: list[Feature],
) -> float:
    """Mating-net heuristics and promotion races."""
    score = 0.0

    if enemy_king is not None and piece_type in (chess.QUEEN, chess.ROOK, chess.KING):
        distance_before = manhattan_distance(move.from_square, enemy_king)
        distance_after = manhattan_distance(move.to_square, enemy_king)
        if distance_after < distance_before:
            score += APPROACH_KING_BONUS
            features.append(Feature.APPROACH_KING)

        if piece_type in (chess.QUEEN, chess.ROOK):
            same_file = chess.square_file(move.to_square) == chess.square_file(enemy_king)
            same_rank = chess.square_rank(move.to_square) == chess.square_rank(enemy_king)
            if same_file or same_rank:
                score += CUT_OFF_BONUS
                features.append(Feature.CUT_OFF)

        # the pursuing pieces get rewarded for keeping the king where it is weakest
        if enemy_king in CORNER_SQUARES:
            score += CORNER_BONUS
            features.append(Feature.KING_ON_EDGE)
        elif is_edge_square(enemy_king):
            score += EDGE_BONUS
            features.append(Feature.KING_ON_EDGE)

        if piece_type == chess.KING and distance_after <= KING_SUPPORT_DISTANCE:
            score += KING_SUPPORT_BONUS
            features.append(Feature.KING_SUPPORT)

    if piece_type == chess.PAWN:
        to_rank = relative_rank(move.to_square, mover)
        if to_rank == 8:
            promoted = move.promotion or chess.QUEEN
            score += ENDGAME_PROMOTION_BONUS + PROMOTION_PIECE_WEIGHT * PIECE_VALUES[promoted]
            features.append(Feature.PROMOTION)
        elif to_rank >= 6:
            score += ENDGAME_NEAR_PROMOTION_BONUS

    return score


# --- STYLE ADHERENCE ---
SIGNATURE_WEIGHT = 0.7
WEAK_WEIGHT = 0.5


def _trait_weight(feature: Feature, traits: PlaystyleTraits) -> Optional[float]:
    """The trait that makes a feature attractive. None for features every playstyle values the same way."""
    weights = {
        Feature.CHECK: traits.check_preference,
        Feature.CAPTURE: traits.capture_preference,
        Feature.TRADE: traits.capture_preference,
        Feature.CENTER: traits.center_control_preference,
        Feature.CASTLING: traits.king_safety_preference,
        Feature.PAWN_ADVANCE: traits.pawn_advance_preference,
        Feature.NEAR_PROMOTION: traits.pawn_advance_preference,
        Feature.PROMOTION: traits.pawn_advance_preference,
        Feature.ATTACK: traits.attack_preference,
    }
    return weights.get(feature)


def style_alignment(features: list[Feature], traits: PlaystyleTraits) -> Optional[bool]:
    """
    Does the move fit the playstyle?
    ---

    * True: at least one of its features belongs to a signature trait of the style.
    * False: all of its style-relevant features belong to traits the style does not care about.
    * None: nothing style-relevant about the move (quiet moves, forced mates, ...)
    """
    weights = [
        weight
        for weight in (_trait_weight(feature, traits) for feature in features)
        if weight is not None
    ]
    if not weights:
        return None
    if max(weights) >= SIGNATURE_WEIGHT:
        return True
    if max(weights) < WEAK_WEIGHT:
        return False
    return None
