"""
Matchmaking
----

Closest-rated available opponent within a rating band that widens step by step until a candidate shows up or the
band reaches its maximum. Colors are assigned at random.
"""

import random
from dataclasses import dataclass
from typing import Optional

from chess_arena.core.models import AgentModel

RATING_BRACKETS: list[tuple[str, int]] = [
    ("Beginner", 1300),
    ("Intermediate", 1600),
    ("Advanced", 1900),
    ("Expert", 2200),
]
TOP_BRACKET = "Master"


def rating_bracket(rating: int) -> str:
    for name, upper in RATING_BRACKETS:
        if rating < upper:
            return name
    return TOP_BRACKET


@dataclass(frozen=True)
class BandPolicy:
    initial: int = 100
    step: int = 100
    maximum: int = 800

    def bands(self) -> list[int]:
        """Successive band half-widths, e.g. 100, 200, ..., 800."""
        widths = list(range(self.initial, self.maximum + 1, self.step))
        if not widths or widths[-1] != self.maximum:
            widths.append(self.maximum)
        return widths


@dataclass(frozen=True)
class Pairing:
    white: AgentModel
    black: AgentModel
    opponent: AgentModel
    band: int  # half-width of the band the opponent was found in


def closest_opponent(
    agent: AgentModel, candidates: list[AgentModel], policy: BandPolicy
) -> tuple[Optional[AgentModel], int]:
    """Return the closest-rated candidate and the band it was found in (None, max band) if nobody qualifies."""
    others = [candidate for candidate in candidates if candidate.id != agent.id]
    for band in policy.bands():
        in_band = [
            candidate for candidate in others if abs(candidate.rating - agent.rating) <= band
        ]
        if in_band:
            # ties go to the agent that has played less
            best = min(
                in_band,
                key=lambda candidate: (abs(candidate.rating - agent.rating), candidate.games_played),
            )
            return best, band
    return None, policy.maximum


def find_opponent(
    agent: AgentModel,
    candidates: list[AgentModel],
    policy: BandPolicy,
    rng: random.Random,
) -> Optional[Pairing]:
    """`candidates` must only hold agents that are free to play right now."""
    opponent, band = closest_opponent(agent, candidates, policy)
    if opponent is None:
        return None
    if rng.random() < 0.5:
        return Pairing(white=agent, black=opponent, opponent=opponent, band=band)
    return Pairing(white=opponent, black=agent, opponent=opponent, band=band)
