"""
Training
----

A training pass replays an agent's recently completed games and turns move patterns into XP and skill points.
XP only ever grows. The training level is a step function of XP, the skill scores feed back into the
skill factor of the decision brain.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional
from uuid import UUID

import chess

from chess_arena.core.models import AgentModel, MatchModel, as_utc
from chess_arena.core.shared_types import GameOutcome, MatchResult, Side, TrainingLevel
from chess_arena.game.rating import clamp_score, outcome_for

LEVEL_THRESHOLDS: dict[TrainingLevel, int] = {
    TrainingLevel.BEGINNER: 0,
    TrainingLevel.INTERMEDIATE: 500,
    TrainingLevel.ADVANCED: 2000,
    TrainingLevel.MASTER: 5000,
}
LEVEL_ORDER = list(LEVEL_THRESHOLDS)

MAX_LESSONS = 20

BASE_XP = 10
OPENING_WINDOW_PLIES = 20
EARLY_QUEEN_PLIES = 10
DEVELOPED_PIECES_TARGET = 3
CHECKS_TARGET = 3
SHORT_GAME_PLIES = 30
LONG_GAME_PLIES = 60
ENDGAME_EXPERIENCE_PLIES = 50


@dataclass
class GameAnalysis:
    """What one completed game taught the agent."""

    xp: int = BASE_XP
    tactical: int = 0
    positional: int = 0
    endgame: int = 0
    opening: int = 0
    lessons: list[str] = field(default_factory=list)


@dataclass
class TrainingReport:
    games_analyzed: int
    xp_gained: int
    total_xp: int
    level: TrainingLevel
    level_progress: int
    next_level: Optional[TrainingLevel]
    xp_to_next_level: int
    lessons: list[str]
    improvements: dict[str, int]


# --- LEVELS ---
def level_for_xp(xp: int) -> TrainingLevel:
    reached = TrainingLevel.BEGINNER
    for level, threshold in LEVEL_THRESHOLDS.items():
        if xp >= threshold:
            reached = level
    return reached


def next_level(level: TrainingLevel) -> Optional[TrainingLevel]:
    index = LEVEL_ORDER.index(level)
    return LEVEL_ORDER[index + 1] if index + 1 < len(LEVEL_ORDER) else None


def xp_to_next_level(xp: int) -> int:
    upcoming = next_level(level_for_xp(xp))
    if upcoming is None:
        return 0
    return LEVEL_THRESHOLDS[upcoming] - xp


def level_progress(xp: int) -> int:
    """Percentage of the way from the current level to the next one (100 at the top level)."""
    level = level_for_xp(xp)
    upcoming = next_level(level)
    if upcoming is None:
        return 100
    floor = LEVEL_THRESHOLDS[level]
    return round((xp - floor) / (LEVEL_THRESHOLDS[upcoming] - floor) * 100)


# --- GAME ANALYSIS ---
def analyze_game(match: MatchModel, agent_id: UUID) -> GameAnalysis:
    """Replay a completed match from the agent's point of view."""
    side = Side.WHITE if match.white_agent_id == agent_id else Side.BLACK
    color = chess.WHITE if side == Side.WHITE else chess.BLACK
    analysis = GameAnalysis()

    board = chess.Board(match.starting_fen)
    developed = 0
    early_queen = False
    castled = False
    checks = 0
    mates = 0

    for ply, uci in enumerate(match.moves_uci):
        move = chess.Move.from_uci(uci)
        own_move = board.turn == color
        piece_type = board.piece_type_at(move.from_square)

        if own_move and ply < OPENING_WINDOW_PLIES:
            back_rank = 0 if color == chess.WHITE else 7
            if piece_type in (chess.KNIGHT, chess.BISHOP) and chess.square_rank(move.from_square) == back_rank:
                developed += 1
            if piece_type == chess.QUEEN and ply < EARLY_QUEEN_PLIES:
                early_queen = True
            if board.is_castling(move):
                castled = True

        board.push(move)
        if own_move:
            if board.is_checkmate():
                mates += 1
            elif board.is_check():
                checks += 1

    total_plies = len(match.moves_uci)

    # Opening
    if developed >= DEVELOPED_PIECES_TARGET:
        analysis.lessons.append("Good piece development in the opening")
        analysis.opening += 2
        analysis.xp += 5
    if early_queen:
        analysis.lessons.append("Lesson: avoid moving the queen too early")
        analysis.opening += 1
    if castled:
        analysis.lessons.append("Good: castled for king safety")
        analysis.opening += 2
        analysis.xp += 3
    elif total_plies > OPENING_WINDOW_PLIES:
        analysis.lessons.append("Lesson: castle early to protect the king")

    # Tactics
    for _ in range(mates):
        analysis.lessons.append("Achieved checkmate!")
        analysis.tactical += 5
        analysis.xp += 20
    if checks >= CHECKS_TARGET:
        analysis.lessons.append("Active piece play with multiple checks")
        analysis.tactical += 2
        analysis.xp += 5

    # Result
    outcome = outcome_for(side, MatchResult(match.result or MatchResult.DRAW))
    if outcome == GameOutcome.WIN:
        analysis.lessons.append("Victory! Reinforcing winning patterns")
        analysis.xp += 15
        analysis.tactical += 1
        analysis.positional += 1
    elif outcome == GameOutcome.LOSS:
        analysis.lessons.append("Defeat analyzed: identifying improvement areas")
        analysis.xp += 10
        if total_plies < SHORT_GAME_PLIES:
            analysis.lessons.append("Lesson: lost quickly, review opening preparation")
            analysis.opening += 2
        elif total_plies > LONG_GAME_PLIES:
            analysis.lessons.append("Lesson: lost in the endgame, study endgame technique")
            analysis.endgame += 2
        else:
            analysis.lessons.append("Lesson: lost in the middlegame, improve tactical awareness")
            analysis.tactical += 2
    else:
        analysis.lessons.append("Draw achieved: solid defensive play")
        analysis.xp += 8
        analysis.positional += 1

    if total_plies > ENDGAME_EXPERIENCE_PLIES:
        analysis.lessons.append("Endgame experience gained")
        analysis.endgame += 2
        analysis.xp += 5

    return analysis


def merge_lessons(new: list[str], existing: list[str]) -> list[str]:
    """Most recent first, no duplicates, capped."""
    merged = list(dict.fromkeys([*new, *existing]))
    return merged[:MAX_LESSONS]


def _training_cursor(agent: AgentModel, matches: list[MatchModel]) -> Optional[datetime]:
    """Completion time of the newest analysed game. The next pass picks up the games finished after it."""
    finished = [as_utc(match.completed_at) for match in matches if match.completed_at is not None]
    if agent.last_trained_at is not None:
        finished.append(as_utc(agent.last_trained_at))
    return max(finished, default=None)


def apply_training(agent: AgentModel, matches: list[MatchModel]) -> tuple[AgentModel, TrainingReport]:
    """Analyse the given completed matches and return the trained agent plus a report."""
    analyses = [analyze_game(match, agent.id) for match in matches]

    xp_gained = sum(analysis.xp for analysis in analyses)
    improvements = {
        "tactical": sum(analysis.tactical for analysis in analyses),
        "positional": sum(analysis.positional for analysis in analyses),
        "endgame": sum(analysis.endgame for analysis in analyses),
        "opening": sum(analysis.opening for analysis in analyses),
    }
    lessons = [lesson for analysis in analyses for lesson in analysis.lessons]

    total_xp = agent.training_xp + xp_gained
    level = level_for_xp(total_xp)
    trained = replace(
        agent,
        training_xp=total_xp,
        training_level=level.value,
        games_analyzed=agent.games_analyzed + len(analyses),
        tactical_score=clamp_score(agent.tactical_score + improvements["tactical"]),
        positional_score=clamp_score(agent.positional_score + improvements["positional"]),
        endgame_score=clamp_score(agent.endgame_score + improvements["endgame"]),
        opening_score=clamp_score(agent.opening_score + improvements["opening"]),
        lessons_learned=merge_lessons(lessons, agent.lessons_learned),
        last_trained_at=_training_cursor(agent, matches),
    )

    report = TrainingReport(
        games_analyzed=len(analyses),
        xp_gained=xp_gained,
        total_xp=total_xp,
        level=level,
        level_progress=level_progress(total_xp),
        next_level=next_level(level),
        xp_to_next_level=xp_to_next_level(total_xp),
        lessons=lessons,
        improvements=improvements,
    )
    return trained, report
