"""
Playstyle trait table
----

A single lookup from playstyle to a fixed set of weights. The move evaluation uses one scoring function for
every playstyle, the weights below are the only thing that differs between personalities.
"""

from dataclasses import dataclass

from chess_arena.core.exceptions import InvalidPlaystyleError
from chess_arena.core.shared_types import Playstyle


@dataclass(frozen=True)
class PlaystyleTraits:
    attack_preference: float
    capture_preference: float
    check_preference: float
    center_control_preference: float
    king_safety_preference: float
    pawn_advance_preference: float
    risk_tolerance: float
    thinking_style: str


@dataclass(frozen=True)
class PlaystyleProfile:
    """Informational identity derived from the playstyle at registration."""

    strengths: tuple[str, ...]
    weaknesses: tuple[str, ...]
    openings_white: tuple[str, ...]
    openings_black: tuple[str, ...]


PLAYSTYLE_TRAITS: dict[Playstyle, PlaystyleTraits] = {
    Playstyle.AGGRESSIVE: PlaystyleTraits(
        attack_preference=0.9,
        capture_preference=0.8,
        check_preference=0.9,
        center_control_preference=0.5,
        king_safety_preference=0.3,
        pawn_advance_preference=0.7,
        risk_tolerance=0.8,
        thinking_style="I seek attacking chances and tactical shots.",
    ),
    Playstyle.POSITIONAL: PlaystyleTraits(
        attack_preference=0.4,
        capture_preference=0.5,
        check_preference=0.5,
        center_control_preference=0.9,
        king_safety_preference=0.7,
        pawn_advance_preference=0.4,
        risk_tolerance=0.3,
        thinking_style="I build long-term advantages through piece placement.",
    ),
    Playstyle.DEFENSIVE: PlaystyleTraits(
        attack_preference=0.3,
        capture_preference=0.4,
        check_preference=0.4,
        center_control_preference=0.6,
        king_safety_preference=0.95,
        pawn_advance_preference=0.3,
        risk_tolerance=0.2,
        thinking_style="I prioritize solid structure and king safety.",
    ),
    Playstyle.TACTICAL: PlaystyleTraits(
        attack_preference=0.7,
        capture_preference=0.75,
        check_preference=0.85,
        center_control_preference=0.6,
        king_safety_preference=0.5,
        pawn_advance_preference=0.5,
        risk_tolerance=0.6,
        thinking_style="I look for combinations and forcing sequences.",
    ),
    Playstyle.ENDGAME_ORIENTED: PlaystyleTraits(
        attack_preference=0.5,
        capture_preference=0.6,
        check_preference=0.5,
        center_control_preference=0.7,
        king_safety_preference=0.6,
        pawn_advance_preference=0.8,
        risk_tolerance=0.4,
        thinking_style="I aim for favorable endgames and pawn promotion.",
    ),
}


PLAYSTYLE_PROFILES: dict[Playstyle, PlaystyleProfile] = {
    Playstyle.AGGRESSIVE: PlaystyleProfile(
        strengths=("attacking play", "piece activity", "initiative", "tactical combinations"),
        weaknesses=("quiet positions", "deep defense", "over-extension"),
        openings_white=("King's Gambit", "Italian Game", "Scotch Game", "Danish Gambit"),
        openings_black=("Sicilian Dragon", "King's Indian Defense", "Grünfeld Defense"),
    ),
    Playstyle.POSITIONAL: PlaystyleProfile(
        strengths=("pawn structure", "piece placement", "long-term planning", "prophylaxis"),
        weaknesses=("sharp tactics", "time pressure complications"),
        openings_white=("Queen's Gambit", "English Opening", "Reti Opening", "Catalan"),
        openings_black=("Queen's Gambit Declined", "Nimzo-Indian", "Caro-Kann"),
    ),
    Playstyle.DEFENSIVE: PlaystyleProfile(
        strengths=("solid positions", "counterattack timing", "patience", "fortress building"),
        weaknesses=("dynamic positions", "attacking when required"),
        openings_white=("London System", "Colle System", "Torre Attack"),
        openings_black=("French Defense", "Caro-Kann", "Petroff Defense"),
    ),
    Playstyle.TACTICAL: PlaystyleProfile(
        strengths=("calculation", "pattern recognition", "complications", "sacrifices"),
        weaknesses=("quiet technical positions", "long maneuvering games"),
        openings_white=("Italian Game", "Ruy Lopez", "Vienna Game"),
        openings_black=("Sicilian Najdorf", "Two Knights Defense", "Marshall Attack"),
    ),
    Playstyle.ENDGAME_ORIENTED: PlaystyleProfile(
        strengths=("technique", "king activity", "pawn endgames", "conversion"),
        weaknesses=("sharp middlegame attacks", "complex calculations"),
        openings_white=("Exchange Variation QGD", "Berlin Defense (as White)", "Symmetrical English"),
        openings_black=("Berlin Defense", "Exchange French", "Petrosian System"),
    ),
}


def parse_playstyle(value: str) -> Playstyle:
    """Accepts the enum value in any case, e.g. 'Endgame-Oriented'."""
    normalized = value.strip().lower().replace("_", "-")
    try:
        return Playstyle(normalized)
    except ValueError as error:
        raise InvalidPlaystyleError(
            f"Unknown playstyle {value!r}. Pick one from {', '.join(style.value for style in Playstyle)}"
        ) from error


def traits_for(playstyle: str) -> PlaystyleTraits:
    return PLAYSTYLE_TRAITS[parse_playstyle(playstyle)]


def profile_for(playstyle: str) -> PlaystyleProfile:
    return PLAYSTYLE_PROFILES[parse_playstyle(playstyle)]
