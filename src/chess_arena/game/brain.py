"""
Decision brain
----

Turns a position and an agent's personality into one chosen move.

1. every legal move is scored (see evaluation.py), best first
2. a skill factor derived from rating + training decides how far down the ranking the agent may reach
3. confidence and a synthetic "thinking time" are derived from the score distribution

The brain keeps no state between calls. The only shared object is the random source, which is injectable so that
tests can force a deterministic pick.
"""

import logging
import random
import statistics
from dataclasses import dataclass, field
from typing import Optional, Self

import chess

from chess_arena.core.models import AgentModel
from chess_arena.core.shared_types import GamePhase, Playstyle
from chess_arena.game.evaluation import (
    ScoredMove,
    game_phase,
    score_moves,
    style_alignment,
)
from chess_arena.game.rules import PythonChessRules, RulesAdapter
from chess_arena.game.traits import PlaystyleTraits, parse_playstyle, traits_for

logger = logging.getLogger(__name__)

# Rating at which the rating part of the skill factor saturates
RATING_NORMALIZER = 2000
SKILL_BASELINE = 50

# Synthetic thinking time (ms)
BASE_LATENCY_MS = 2000
LATENCY_SPREAD_MS = 3000
HARD_DECISION_EXTRA_MS = 2000
HARD_DECISION_VARIANCE = 0.5
MIDDLEGAME_LATENCY_FACTOR = 1.3
IN_CHECK_LATENCY_FACTOR = 0.7
MIN_LATENCY_MS = int(BASE_LATENCY_MS * IN_CHECK_LATENCY_FACTOR)
MAX_LATENCY_MS = int(
    (BASE_LATENCY_MS + LATENCY_SPREAD_MS + HARD_DECISION_EXTRA_MS) * MIDDLEGAME_LATENCY_FACTOR
)

MIN_CONFIDENCE = 0.05
MAX_CONFIDENCE = 0.95


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class Personality:
    """Everything about an agent the brain is allowed to read."""

    playstyle: Playstyle
    rating: int = 1500
    tactical_score: int = SKILL_BASELINE
    positional_score: int = SKILL_BASELINE
    endgame_score: int = SKILL_BASELINE
    opening_score: int = SKILL_BASELINE
    name: str = "agent"

    @classmethod
    def from_agent(cls, agent: AgentModel) -> Self:
        return cls(
            playstyle=parse_playstyle(agent.playstyle),
            rating=agent.rating,
            tactical_score=agent.tactical_score,
            positional_score=agent.positional_score,
            endgame_score=agent.endgame_score,
            opening_score=agent.opening_score,
            name=agent.name,
        )

    @property
    def traits(self) -> PlaystyleTraits:
        return traits_for(self.playstyle)

    @property
    def training_bonus(self) -> float:
        """Average skill score mapped onto [-0.5, 0.5]."""
        average = (
            self.tactical_score + self.positional_score + self.endgame_score + self.opening_score
        ) / 4
        return (average - SKILL_BASELINE) / 100

    @property
    def skill_factor(self) -> float:
        rating_part = min(1.0, self.rating / RATING_NORMALIZER)
        return clamp(rating_part + self.training_bonus, 0.0, 1.0)


@dataclass
class Decision:
    """The chosen move together with the observability outputs of the decision."""

    move: chess.Move
    san: str
    explanation: str
    confidence: float
    thinking_time_ms: int
    phase: GamePhase
    rank: int  # 0 = best scored move
    score: float
    score_gap: float  # best score - chosen score
    style_aligned: Optional[bool] = None
    considerations: list[str] = field(default_factory=list)

    @property
    def uci(self) -> str:
        return self.move.uci()


# --- SELECTION ---
def select_index(candidates: int, skill_factor: float, rng: random.Random) -> int:
    """
    Pick a rank in the (best first) candidate list.
    ----

    Cascade of chances, each one reached only if the previous one failed:
    * skill * 0.85: the best move
    * skill * 0.7: one of the top 3
    * 0.6: one of the top 5
    * otherwise: one of the top 5 (skill above 0.7) or top 10

    The chance of picking the best move never decreases when skill increases.
    """
    if candidates <= 1:
        return 0
    if rng.random() < skill_factor * 0.85:
        return 0
    if rng.random() < skill_factor * 0.7:
        return _uniform_rank(min(3, candidates), rng)
    if rng.random() < 0.6:
        return _uniform_rank(min(5, candidates), rng)
    tail = 5 if skill_factor > 0.7 else 10
    return _uniform_rank(min(tail, candidates), rng)


def _uniform_rank(width: int, rng: random.Random) -> int:
    return min(int(rng.random() * width), width - 1)


def confidence_for(scored: list[ScoredMove], chosen_index: int) -> float:
    """Grows with the margin of the chosen move over the best alternative."""
    if len(scored) == 1:
        return MAX_CONFIDENCE
    best_other = max(
        candidate.score for index, candidate in enumerate(scored) if index != chosen_index
    )
    margin = scored[chosen_index].score - best_other
    return round(clamp(0.5 + margin / 10, MIN_CONFIDENCE, MAX_CONFIDENCE), 2)


def thinking_time_for(
    scored: list[ScoredMove], phase: GamePhase, in_check: bool, rng: random.Random
) -> int:
    """Synthetic latency: longer for close calls and in the middlegame, shorter under check."""
    latency = BASE_LATENCY_MS + rng.random() * LATENCY_SPREAD_MS

    top_scores = [candidate.score for candidate in scored[:5]]
    if len(top_scores) > 1 and statistics.pvariance(top_scores) < HARD_DECISION_VARIANCE:
        latency += HARD_DECISION_EXTRA_MS
    if phase == GamePhase.MIDDLEGAME:
        latency *= MIDDLEGAME_LATENCY_FACTOR
    if in_check:
        latency *= IN_CHECK_LATENCY_FACTOR

    return int(clamp(latency, MIN_LATENCY_MS, MAX_LATENCY_MS))


def explain(chosen: ScoredMove, traits: PlaystyleTraits, phase: GamePhase) -> str:
    if chosen.features:
        reasons = ", ".join(feature.value for feature in chosen.features)
    else:
        reasons = "a quiet move that keeps the position together"
    return f"{chosen.san}: {reasons} ({phase.value}). {traits.thinking_style}"


# --- BRAIN ---
class DecisionBrain:
    """Playstyle-driven move choice on top of a rules adapter."""

    def __init__(
        self, rules: Optional[RulesAdapter] = None, rng: Optional[random.Random] = None
    ) -> None:
        self.rules = rules or PythonChessRules()
        # SystemRandom has no shared seed state, so concurrent calls do not interfere.
        self.rng = rng or random.SystemRandom()

    def decide(self, board: chess.Board, personality: Personality) -> Optional[Decision]:
        """Returns None when the position has no legal moves."""
        legal_moves = self.rules.legal_moves(board)
        if not legal_moves:
            return None

        traits = personality.traits
        phase = game_phase(board)
        scored = score_moves(board, legal_moves, traits, self.rng)

        if scored[0].is_mate:
            index = 0
        else:
            index = select_index(len(scored), personality.skill_factor, self.rng)
        chosen = scored[index]

        decision = Decision(
            move=chosen.move,
            san=chosen.san,
            explanation=explain(chosen, traits, phase),
            confidence=confidence_for(scored, index),
            thinking_time_ms=thinking_time_for(scored, phase, board.is_check(), self.rng),
            phase=phase,
            rank=index,
            score=round(chosen.score, 3),
            score_gap=round(scored[0].score - chosen.score, 3),
            style_aligned=style_alignment(chosen.features, traits),
            considerations=[
                f"{candidate.san} ({candidate.score:.2f})" for candidate in scored[:3]
            ],
        )
        logger.debug(
            "%s (%s, skill %.2f) picked %s at rank %d of %d",
            personality.name,
            personality.playstyle,
            personality.skill_factor,
            decision.san,
            index,
            len(scored),
        )
        return decision
