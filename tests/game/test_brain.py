"""Unit tests for chess_arena/game/brain.py"""

import random

import chess
import pytest
from conftest import AlwaysBest, make_agent

from chess_arena.core.shared_types import GamePhase, Playstyle
from chess_arena.game.brain import (
    MAX_CONFIDENCE,
    MAX_LATENCY_MS,
    MIN_CONFIDENCE,
    MIN_LATENCY_MS,
    DecisionBrain,
    Personality,
    select_index,
)
from chess_arena.game.evaluation import score_moves
from chess_arena.game.traits import PLAYSTYLE_TRAITS

POSITIONS = [
    chess.STARTING_FEN,
    "r1bqkbnr/pppp1ppp/2n5/4p3/4P3/5N2/PPPP1PPP/RNBQKB1R w KQkq - 2 3",
    "4k3/8/8/8/8/8/R7/4K3 w - - 0 1",
    "6k1/5ppp/8/8/8/8/5PPP/3R2K1 b - - 0 1",
]
# Only Qxf7# mates (scholar's mate pattern)
MATE_IN_ONE_FEN = "r1bqkbnr/pppp1ppp/2n5/4p2Q/2B1P3/8/PPPP1PPP/RNB1K1NR w KQkq - 4 4"


# --- PERSONALITY ---
@pytest.mark.parametrize(
    "rating, skills, expected",
    [
        (2000, 50, 1.0),
        (1000, 50, 0.5),
        (1000, 70, 0.7),
        (1000, 30, 0.3),
        (3000, 100, 1.0),  # clamped
        (100, 0, 0.0),  # clamped
    ],
)
def test_skill_factor(rating: int, skills: int, expected: float) -> None:
    personality = Personality(
        playstyle=Playstyle.TACTICAL,
        rating=rating,
        tactical_score=skills,
        positional_score=skills,
        endgame_score=skills,
        opening_score=skills,
    )
    assert personality.skill_factor == pytest.approx(expected)


def test_personality_from_agent() -> None:
    agent = make_agent(playstyle="Endgame-Oriented", rating=1720, opening_score=64)
    personality = Personality.from_agent(agent)
    assert personality.playstyle == Playstyle.ENDGAME_ORIENTED
    assert personality.rating == 1720
    assert personality.opening_score == 64
    assert personality.traits == PLAYSTYLE_TRAITS[Playstyle.ENDGAME_ORIENTED]


# --- DECIDE ---
@pytest.mark.parametrize("playstyle", list(Playstyle))
@pytest.mark.parametrize("fen", POSITIONS)
def test_decision_is_always_legal(playstyle: Playstyle, fen: str) -> None:
    board = chess.Board(fen)
    brain = DecisionBrain(rng=random.Random(11))
    for rating in (300, 1500, 2600):
        decision = brain.decide(board, Personality(playstyle=playstyle, rating=rating))
        assert decision is not None
        assert decision.move in board.legal_moves
        assert board.fen() == fen


@pytest.mark.parametrize("playstyle", list(Playstyle))
@pytest.mark.parametrize("rating, skills", [(100, 0), (1200, 40), (2800, 100)])
def test_mate_in_one_is_always_found(playstyle: Playstyle, rating: int, skills: int) -> None:
    """Whatever the skill factor, a mating move is never passed over."""
    board = chess.Board(MATE_IN_ONE_FEN)
    brain = DecisionBrain(rng=random.Random(rating + skills))
    personality = Personality(
        playstyle=playstyle,
        rating=rating,
        tactical_score=skills,
        positional_score=skills,
        endgame_score=skills,
        opening_score=skills,
    )
    for _ in range(25):
        decision = brain.decide(board, personality)
        assert decision is not None
        assert decision.san == "Qxf7#"
        assert decision.rank == 0


def test_no_move_in_terminal_position() -> None:
    board = chess.Board("rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3")
    assert DecisionBrain().decide(board, Personality(playstyle=Playstyle.DEFENSIVE)) is None


def test_forced_top_pick_with_always_best_rng() -> None:
    """With an injected random source the weakest agent still plays the top-ranked move."""
    board = chess.Board()
    traits = PLAYSTYLE_TRAITS[Playstyle.POSITIONAL]
    best = score_moves(board, list(board.legal_moves), traits, AlwaysBest())[0]

    brain = DecisionBrain(rng=AlwaysBest())
    decision = brain.decide(board, Personality(playstyle=Playstyle.POSITIONAL, rating=100))
    assert decision is not None
    assert decision.move == best.move
    assert decision.rank == 0
    assert decision.score_gap == 0


def test_decision_observability_outputs() -> None:
    board = chess.Board(POSITIONS[1])
    brain = DecisionBrain(rng=random.Random(3))
    decision = brain.decide(board, Personality(playstyle=Playstyle.AGGRESSIVE))
    assert decision is not None
    assert MIN_CONFIDENCE <= decision.confidence <= MAX_CONFIDENCE
    assert MIN_LATENCY_MS <= decision.thinking_time_ms <= MAX_LATENCY_MS
    assert decision.phase == GamePhase.OPENING
    assert decision.san in decision.explanation
    assert len(decision.considerations) == 3


def test_single_legal_move_has_max_confidence() -> None:
    # black king in check from the rook with a single escape square
    board = chess.Board("k7/8/1K6/8/8/8/8/R7 b - - 0 1")
    assert board.legal_moves.count() == 1
    decision = DecisionBrain(rng=random.Random(1)).decide(board, Personality(playstyle=Playstyle.TACTICAL))
    assert decision is not None
    assert decision.confidence == MAX_CONFIDENCE


# --- SELECTION ---
def test_best_move_rate_is_monotonic_in_skill() -> None:
    """Empirical rate of picking rank 0 never decreases as the skill factor grows."""
    trials = 4000
    rates = []
    for skill_factor in (0.0, 0.25, 0.5, 0.75, 1.0):
        rng = random.Random(2024)
        picks = [select_index(20, skill_factor, rng) for _ in range(trials)]
        rates.append(picks.count(0) / trials)
    assert rates == sorted(rates)
    assert rates[-1] > 0.85
    assert rates[0] < 0.3


def test_selection_is_not_deterministic() -> None:
    rng = random.Random(5)
    picks = {select_index(20, 0.5, rng) for _ in range(200)}
    assert len(picks) > 1


def test_selection_stays_within_candidates() -> None:
    rng = random.Random(9)
    for candidates in (1, 2, 4, 7, 30):
        for _ in range(200):
            assert 0 <= select_index(candidates, 0.1, rng) < candidates
