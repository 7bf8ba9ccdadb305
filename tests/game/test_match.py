"""Unit tests for chess_arena/game/match.py"""

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest
from conftest import T0, AlwaysBest, make_agent

from chess_arena.core.exceptions import MatchStateError
from chess_arena.core.models import AgentModel, MatchModel
from chess_arena.core.shared_types import (
    AdvanceOutcome,
    BetStatus,
    MatchResult,
    MatchStatus,
    ResultReason,
)
from chess_arena.game.brain import DecisionBrain
from chess_arena.game.match import MOVE_LIMIT, MatchStateMachine, Termination
from chess_arena.game.pool import WageringPool
from chess_arena.game.rules import PythonChessRules

MATE_IN_ONE_FEN = "r1bqkbnr/pppp1ppp/2n5/4p2Q/2B1P3/8/PPPP1PPP/RNB1K1NR w KQkq - 4 4"
FOOLS_MATE_FEN = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"
BETTING_WINDOW = timedelta(seconds=60)


class SilentBrain(DecisionBrain):
    """Brain that never comes up with a move."""

    def decide(self, board, personality):
        return None


def machine(max_plies: int = 200, brain: DecisionBrain | None = None) -> MatchStateMachine:
    return MatchStateMachine(
        PythonChessRules(),
        brain or DecisionBrain(rng=AlwaysBest()),
        min_move_interval=timedelta(seconds=5),
        max_plies=max_plies,
    )


@pytest.fixture
def agents() -> tuple[AgentModel, AgentModel]:
    return make_agent("white-bot", "aggressive"), make_agent("black-bot", "defensive")


def live_match(
    state_machine: MatchStateMachine, agents: tuple[AgentModel, AgentModel], fen: str | None = None
) -> MatchModel:
    white, black = agents
    kwargs = {"starting_fen": fen} if fen else {}
    match = state_machine.open(white.id, black.id, T0 - BETTING_WINDOW, BETTING_WINDOW, **kwargs)
    return state_machine.start(match, T0)


# --- BETTING PHASE ---
def test_open_match_is_in_betting(agents: tuple[AgentModel, AgentModel]) -> None:
    white, black = agents
    match = machine().open(white.id, black.id, T0, BETTING_WINDOW)
    assert match.status == MatchStatus.BETTING
    assert match.betting_ends_at == T0 + BETTING_WINDOW
    assert match.moves == []
    assert match.total_pool == Decimal("0")


def test_betting_match_waits_for_window(agents: tuple[AgentModel, AgentModel]) -> None:
    state_machine = machine()
    white, black = agents
    match = state_machine.open(white.id, black.id, T0, BETTING_WINDOW)

    step = state_machine.step(match, white, black, T0 + timedelta(seconds=59))
    assert step.outcome == AdvanceOutcome.NO_OP
    assert step.match is match

    step = state_machine.step(match, white, black, T0 + BETTING_WINDOW)
    assert step.outcome == AdvanceOutcome.STARTED
    assert step.match.status == MatchStatus.LIVE
    assert step.match.started_at == T0 + BETTING_WINDOW
    assert step.match.moves == []


def test_only_betting_matches_can_start(agents: tuple[AgentModel, AgentModel]) -> None:
    state_machine = machine()
    match = live_match(state_machine, agents)
    with pytest.raises(MatchStateError):
        state_machine.start(match, T0)


# --- LIVE PHASE ---
def test_one_move_per_step_and_throttle(agents: tuple[AgentModel, AgentModel]) -> None:
    state_machine = machine()
    white, black = agents
    match = live_match(state_machine, agents)

    # started at T0: the first move also waits for the interval
    assert state_machine.step(match, white, black, T0 + timedelta(seconds=1)).outcome == AdvanceOutcome.NO_OP

    step = state_machine.step(match, white, black, T0 + timedelta(seconds=5))
    assert step.outcome == AdvanceOutcome.MOVED
    assert step.match.move_count == 1
    assert len(step.match.moves) == 1
    record = step.match.moves[0]
    assert (record.ply, record.side, record.actor) == (1, "white", "white-bot")
    assert record.fen == step.match.current_fen
    assert record.timestamp == T0 + timedelta(seconds=5)
    assert record.explanation
    assert match.moves == []  # the input is not mutated

    again = state_machine.step(step.match, white, black, T0 + timedelta(seconds=6))
    assert again.outcome == AdvanceOutcome.NO_OP
    assert again.match.move_count == 1

    later = state_machine.step(step.match, white, black, T0 + timedelta(seconds=10))
    assert later.outcome == AdvanceOutcome.MOVED
    assert [record.side for record in later.match.moves] == ["white", "black"]


def test_move_limit_forces_draw(agents: tuple[AgentModel, AgentModel]) -> None:
    state_machine = machine(max_plies=2)
    white, black = agents
    match = live_match(state_machine, agents)

    now = T0
    for _ in range(2):
        now += timedelta(seconds=5)
        match = state_machine.step(match, white, black, now).match
    assert match.move_count == 2

    now += timedelta(seconds=5)
    step = state_machine.step(match, white, black, now)
    assert step.outcome == AdvanceOutcome.COMPLETED
    assert step.termination == MOVE_LIMIT
    assert step.match.move_count == 2


def test_mating_move_completes_the_game(agents: tuple[AgentModel, AgentModel]) -> None:
    state_machine = machine()
    white, black = agents
    match = live_match(state_machine, agents, MATE_IN_ONE_FEN)

    step = state_machine.step(match, white, black, T0 + timedelta(seconds=5))
    assert step.outcome == AdvanceOutcome.COMPLETED
    assert step.decision is not None
    assert step.decision.san == "Qxf7#"
    assert step.termination == Termination(MatchResult.WHITE_WIN, ResultReason.CHECKMATE)
    assert step.match.move_count == 1


def test_terminal_position_is_reported_without_moving(agents: tuple[AgentModel, AgentModel]) -> None:
    state_machine = machine()
    white, black = agents
    match = live_match(state_machine, agents, FOOLS_MATE_FEN)

    step = state_machine.step(match, white, black, T0 + timedelta(seconds=30))
    assert step.outcome == AdvanceOutcome.COMPLETED
    assert step.termination == Termination(MatchResult.BLACK_WIN, ResultReason.CHECKMATE)
    assert step.match.moves == []


def test_decision_failure_leaves_match_unchanged(agents: tuple[AgentModel, AgentModel]) -> None:
    state_machine = machine(brain=SilentBrain())
    white, black = agents
    match = live_match(state_machine, agents)

    step = state_machine.step(match, white, black, T0 + timedelta(seconds=5))
    assert step.outcome == AdvanceOutcome.ERROR
    assert step.match is match
    assert "white-bot" in step.detail


def test_completed_match_is_absorbing(agents: tuple[AgentModel, AgentModel]) -> None:
    state_machine = machine()
    white, black = agents
    match = replace(live_match(state_machine, agents), status=MatchStatus.COMPLETED.value, result="draw")

    step = state_machine.step(match, white, black, T0 + timedelta(hours=1))
    assert step.outcome == AdvanceOutcome.NO_OP
    assert step.match is match


# --- FINALIZATION ---
def betting_on(state_machine: MatchStateMachine, agents: tuple[AgentModel, AgentModel]):
    white, black = agents
    match = state_machine.open(white.id, black.id, T0, BETTING_WINDOW)
    white_bet, match = WageringPool.from_match(match).place_bet(match, "alice", "white", "10", T0)
    black_bet, match = WageringPool.from_match(match).place_bet(match, "bob", "black", "30", T0)
    return match, [white_bet, black_bet]


def test_finalize_settles_bets_and_ratings(agents: tuple[AgentModel, AgentModel]) -> None:
    state_machine = machine()
    white, black = agents
    match, bets = betting_on(state_machine, agents)
    match = state_machine.start(match, T0 + BETTING_WINDOW)

    done_at = T0 + timedelta(minutes=5)
    final = state_machine.finalize(
        match, Termination(MatchResult.WHITE_WIN, ResultReason.CHECKMATE), white, black, bets, done_at
    )
    assert final.applied
    assert final.match.status == MatchStatus.COMPLETED
    assert final.match.result == MatchResult.WHITE_WIN
    assert final.match.result_reason == ResultReason.CHECKMATE
    assert final.match.winner_agent_id == white.id
    assert final.match.completed_at == done_at

    payouts = {bet.bettor_id: (bet.status, bet.payout) for bet in final.bets}
    assert payouts == {"alice": (BetStatus.WON, Decimal("40.00")), "bob": (BetStatus.LOST, Decimal("0"))}

    updated_white, updated_black = final.agents
    assert (updated_white.rating, updated_black.rating) == (1516, 1484)


def test_finalize_twice_changes_nothing(agents: tuple[AgentModel, AgentModel]) -> None:
    state_machine = machine()
    white, black = agents
    match, bets = betting_on(state_machine, agents)
    first = state_machine.finalize(match, MOVE_LIMIT, white, black, bets, T0)
    new_white, new_black = first.agents

    second = state_machine.finalize(
        first.match,
        Termination(MatchResult.BLACK_WIN, ResultReason.CHECKMATE),
        new_white,
        new_black,
        first.bets,
        T0 + timedelta(minutes=1),
    )
    assert not second.applied
    assert second.match == first.match
    assert second.bets == first.bets
    assert second.agents == [new_white, new_black]


def test_cancel_refunds_and_keeps_ratings(agents: tuple[AgentModel, AgentModel]) -> None:
    state_machine = machine()
    white, black = agents
    match, bets = betting_on(state_machine, agents)

    final = state_machine.cancel(match, white, black, bets, T0)
    assert final.match.result == MatchResult.CANCELLED
    assert final.match.winner_agent_id is None
    assert {bet.status for bet in final.bets} == {BetStatus.REFUNDED}
    assert final.agents == [white, black]

    with pytest.raises(MatchStateError):
        state_machine.cancel(final.match, white, black, final.bets, T0)
