"""
Rules adapter
----

The arena does not implement chess rules itself. Legal move generation, move application and
terminal-state detection are delegated to python-chess, wrapped behind a small Protocol so the
rest of the domain layer only depends on these few calls.

Positions are always rebuilt from the persisted starting FEN plus the UCI move log. That keeps the
move stack available, which python-chess needs to detect threefold repetition.
"""

from typing import Optional, Protocol

import chess

from chess_arena.core.exceptions import DecisionError, InvalidRequestError, MatchStateError
from chess_arena.core.shared_types import MatchResult, ResultReason, Side

STARTING_FEN = chess.STARTING_FEN
FIFTY_MOVE_HALFMOVES = 100


class RulesAdapter(Protocol):
    """Just the parts of a rules engine the arena needs."""

    def load(self, starting_fen: str, moves_uci: list[str]) -> chess.Board: ...
    def legal_moves(self, board: chess.Board) -> list[chess.Move]: ...
    def apply(self, board: chess.Board, move: chess.Move) -> chess.Board: ...
    def is_terminal(self, board: chess.Board) -> bool: ...
    def terminal_reason(self, board: chess.Board) -> Optional[ResultReason]: ...
    def side_to_move(self, board: chess.Board) -> Side: ...


class PythonChessRules:
    """RulesAdapter implemented with python-chess."""

    def load(self, starting_fen: str, moves_uci: list[str]) -> chess.Board:
        """Replay the move log on top of the starting position."""
        try:
            board = chess.Board(starting_fen)
        except ValueError as error:
            raise MatchStateError(f"Stored starting FEN is invalid: {starting_fen!r}") from error

        for ply, uci in enumerate(moves_uci, start=1):
            try:
                board.push_uci(uci)
            except ValueError as error:
                raise MatchStateError(
                    f"Stored move log cannot be replayed: ply {ply} ({uci!r}) is illegal."
                ) from error
        return board

    def legal_moves(self, board: chess.Board) -> list[chess.Move]:
        return list(board.legal_moves)

    def apply(self, board: chess.Board, move: chess.Move) -> chess.Board:
        """Return the position after the move. The board passed in is left untouched."""
        if not board.is_legal(move):
            raise DecisionError(f"Move {move.uci()} is not legal in {board.fen()}")
        after = board.copy()
        after.push(move)
        return after

    def is_terminal(self, board: chess.Board) -> bool:
        # Threefold repetition and the fifty-move rule end the game without anyone having to claim them.
        return (
            board.is_game_over()
            or board.is_repetition(3)
            or board.halfmove_clock >= FIFTY_MOVE_HALFMOVES
        )

    def terminal_reason(self, board: chess.Board) -> Optional[ResultReason]:
        """
        Classify a terminal position
        ----

        Checked in priority order: checkmate, stalemate, repetition, insufficient material, fifty-move rule.
        Falls back to a generic draw when the game is over for any other reason. Returns None if the game is not over.
        """
        if board.is_checkmate():
            return ResultReason.CHECKMATE
        if board.is_stalemate():
            return ResultReason.STALEMATE
        if board.is_fivefold_repetition() or board.is_repetition(3):
            return ResultReason.REPETITION
        if board.is_insufficient_material():
            return ResultReason.INSUFFICIENT_MATERIAL
        if board.is_seventyfive_moves() or board.halfmove_clock >= FIFTY_MOVE_HALFMOVES:
            return ResultReason.FIFTY_MOVE_RULE
        if self.is_terminal(board):
            return ResultReason.DRAW
        return None

    def side_to_move(self, board: chess.Board) -> Side:
        return Side.WHITE if board.turn == chess.WHITE else Side.BLACK


def result_for(reason: ResultReason, side_to_move: Side) -> MatchResult:
    """Only checkmate is decisive. The side to move in a mated position is the side that lost."""
    if reason != ResultReason.CHECKMATE:
        return MatchResult.DRAW
    return MatchResult.BLACK_WIN if side_to_move == Side.WHITE else MatchResult.WHITE_WIN


def validate_fen(fen: str) -> str:
    """Used at the API boundary for custom starting positions."""
    try:
        board = chess.Board(fen)
    except ValueError as error:
        raise InvalidRequestError(f"Invalid FEN: {fen!r}") from error
    if not board.is_valid():
        raise InvalidRequestError(f"FEN does not describe a legal position: {fen!r}")
    return board.fen()
