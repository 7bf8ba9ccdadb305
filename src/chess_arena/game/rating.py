"""
Rating progression
----

Applied once per finished match, to both agents:
* Elo: a fixed delta of K/2 for the winner (+) and the loser (-). Opponent strength is deliberately not part of the
  delta. Draws leave the rating as is.
* streaks: wins extend a positive streak, losses a negative one, draws reset it
* reputation: nudged by the outcome and by how the agent played (style adherence, mistakes), derived from the
  decisions recorded in the move history

Cancelled matches change nothing.
"""

from dataclasses import dataclass, replace

from chess_arena.core.exceptions import MatchStateError
from chess_arena.core.models import AgentModel, MatchModel, MoveRecord
from chess_arena.core.shared_types import GameOutcome, MatchResult, Side

REPUTATION_MIN = 0
REPUTATION_MAX = 100

WIN_REPUTATION = 2
LOSS_REPUTATION = -1
HIGH_ADHERENCE = 80.0
HIGH_ADHERENCE_REPUTATION = 1
LOW_ADHERENCE = 50.0
LOW_ADHERENCE_REPUTATION = -2
MISTAKE_ALLOWANCE = 3
MISTAKES_REPUTATION = -1

# Adherence assumed when no move of the game said anything about the style
DEFAULT_ADHERENCE = 75.0
# A move counts as a mistake when a clearly better candidate was passed over
MISTAKE_SCORE_GAP = 2.0


@dataclass(frozen=True)
class RatingPolicy:
    k_factor: int = 32
    floor: int = 100
    ceiling: int = 3000

    @property
    def fixed_delta(self) -> int:
        return round(self.k_factor * 0.5)

    def rating_change(self, outcome: GameOutcome) -> int:
        if outcome == GameOutcome.WIN:
            return self.fixed_delta
        if outcome == GameOutcome.LOSS:
            return -self.fixed_delta
        return 0

    def clamp_rating(self, rating: int) -> int:
        return max(self.floor, min(self.ceiling, int(rating)))


def outcome_for(side: Side, result: MatchResult) -> GameOutcome:
    winner = result.winning_side
    if winner is None:
        return GameOutcome.DRAW
    return GameOutcome.WIN if winner == side else GameOutcome.LOSS


def next_streak(current: int, outcome: GameOutcome) -> int:
    """Positive: consecutive wins, negative: consecutive losses."""
    if outcome == GameOutcome.WIN:
        return max(0, current) + 1
    if outcome == GameOutcome.LOSS:
        return min(0, current) - 1
    return 0


def clamp_score(value: int, low: int = REPUTATION_MIN, high: int = REPUTATION_MAX) -> int:
    return max(low, min(high, value))


# --- POST-GAME ANALYSIS OF THE RECORDED DECISIONS ---
def _moves_of(moves: list[MoveRecord], side: Side) -> list[MoveRecord]:
    return [record for record in moves if record.side == side]


def style_adherence(moves: list[MoveRecord], side: Side) -> float:
    """Percentage of style-relevant moves that fit the agent's playstyle."""
    verdicts = [
        record.style_aligned
        for record in _moves_of(moves, side)
        if record.style_aligned is not None
    ]
    if not verdicts:
        return DEFAULT_ADHERENCE
    return sum(1 for aligned in verdicts if aligned) / len(verdicts) * 100


def count_mistakes(moves: list[MoveRecord], side: Side) -> int:
    return sum(
        1
        for record in _moves_of(moves, side)
        if record.rank is not None
        and record.rank > 0
        and record.score_gap is not None
        and record.score_gap >= MISTAKE_SCORE_GAP
    )


def reputation_change(outcome: GameOutcome, adherence: float, mistakes: int) -> int:
    change = 0
    if outcome == GameOutcome.WIN:
        change += WIN_REPUTATION
    elif outcome == GameOutcome.LOSS:
        change += LOSS_REPUTATION

    if adherence >= HIGH_ADHERENCE:
        change += HIGH_ADHERENCE_REPUTATION
    elif adherence < LOW_ADHERENCE:
        change += LOW_ADHERENCE_REPUTATION

    if mistakes > MISTAKE_ALLOWANCE:
        change += MISTAKES_REPUTATION
    return change


class RatingProgression:
    """Rating, record, streak and reputation updates after a finished match."""

    def __init__(self, policy: RatingPolicy | None = None) -> None:
        self.policy = policy or RatingPolicy()

    def update_agent(
        self, agent: AgentModel, side: Side, result: MatchResult, moves: list[MoveRecord]
    ) -> AgentModel:
        """Return an updated copy of the agent."""
        if result == MatchResult.CANCELLED:
            return agent

        outcome = outcome_for(side, result)
        streak = next_streak(agent.current_streak, outcome)
        adherence = style_adherence(moves, side)
        mistakes = count_mistakes(moves, side)

        return replace(
            agent,
            rating=self.policy.clamp_rating(agent.rating + self.policy.rating_change(outcome)),
            games_played=agent.games_played + 1,
            wins=agent.wins + (outcome == GameOutcome.WIN),
            losses=agent.losses + (outcome == GameOutcome.LOSS),
            draws=agent.draws + (outcome == GameOutcome.DRAW),
            current_streak=streak,
            longest_win_streak=max(agent.longest_win_streak, streak),
            reputation=clamp_score(
                agent.reputation + reputation_change(outcome, adherence, mistakes)
            ),
        )

    def apply(
        self, match: MatchModel, white: AgentModel, black: AgentModel
    ) -> tuple[AgentModel, AgentModel]:
        """Both agents after the match. The match must carry its result."""
        if match.result is None:
            raise MatchStateError(f"Match {match.id} has no result yet.")
        result = MatchResult(match.result)
        return (
            self.update_agent(white, Side.WHITE, result, match.moves),
            self.update_agent(black, Side.BLACK, result, match.moves),
        )
