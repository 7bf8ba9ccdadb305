"""
Match state machine
----

`betting` -> `live` -> `completed`. The status only ever moves forward, `completed` is absorbing.

One call to `step` does at most one thing:
* betting match whose window closed: start it
* live match in a terminal position, or at the ply cutoff: report the termination (the caller finalizes)
* live match whose last move is recent enough: nothing
* otherwise: one move by the side to move

All methods work on copies of the transport models: persisting them is the caller's business.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID, uuid4

import chess

from chess_arena.core.exceptions import DecisionError, MatchStateError
from chess_arena.core.models import AgentModel, BetModel, MatchModel, MoveRecord, as_utc
from chess_arena.core.shared_types import (
    AdvanceOutcome,
    MatchResult,
    MatchStatus,
    ResultReason,
    Side,
)
from chess_arena.game.brain import Decision, DecisionBrain, Personality
from chess_arena.game.pool import WageringPool
from chess_arena.game.rating import RatingProgression
from chess_arena.game.rules import STARTING_FEN, RulesAdapter, result_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Termination:
    result: MatchResult
    reason: ResultReason


MOVE_LIMIT = Termination(MatchResult.DRAW, ResultReason.MOVE_LIMIT)
CANCELLATION = Termination(MatchResult.CANCELLED, ResultReason.CANCELLED)


@dataclass
class StepResult:
    outcome: AdvanceOutcome
    match: MatchModel
    detail: str = ""
    decision: Optional[Decision] = None
    # Set when the match has to be finalized
    termination: Optional[Termination] = None


@dataclass
class Finalization:
    """Everything finalization changes. Has to be persisted in one write."""

    match: MatchModel
    bets: list[BetModel] = field(default_factory=list)
    agents: list[AgentModel] = field(default_factory=list)
    # False when the match was already completed and nothing changed
    applied: bool = True


class MatchStateMachine:
    def __init__(
        self,
        rules: RulesAdapter,
        brain: DecisionBrain,
        rating: Optional[RatingProgression] = None,
        min_move_interval: timedelta = timedelta(seconds=5),
        max_plies: int = 200,
    ) -> None:
        self.rules = rules
        self.brain = brain
        self.rating = rating or RatingProgression()
        self.min_move_interval = min_move_interval
        self.max_plies = max_plies

    # --- LIFECYCLE ---
    def open(
        self,
        white_agent_id: UUID,
        black_agent_id: UUID,
        now: datetime,
        betting_window: timedelta,
        starting_fen: str = STARTING_FEN,
    ) -> MatchModel:
        """New match in the betting phase."""
        return MatchModel(
            id=uuid4(),
            white_agent_id=white_agent_id,
            black_agent_id=black_agent_id,
            status=MatchStatus.BETTING.value,
            starting_fen=starting_fen,
            current_fen=starting_fen,
            betting_ends_at=now + betting_window,
            created_at=now,
        )

    def betting_closed(self, match: MatchModel, now: datetime) -> bool:
        return now >= as_utc(match.betting_ends_at)

    def start(self, match: MatchModel, now: datetime) -> MatchModel:
        """betting -> live. Also used for an explicit start before the window has closed."""
        if match.status != MatchStatus.BETTING:
            raise MatchStateError(f"Match {match.id} is {match.status}, only betting matches can start.")
        return replace(
            match,
            status=MatchStatus.LIVE.value,
            started_at=now,
            current_fen=match.starting_fen,
        )

    # --- ADVANCING ---
    def step(
        self, match: MatchModel, white: AgentModel, black: AgentModel, now: datetime
    ) -> StepResult:
        if match.status == MatchStatus.COMPLETED:
            return StepResult(AdvanceOutcome.NO_OP, match, f"Match is already completed ({match.result}).")

        if match.status == MatchStatus.BETTING:
            if not self.betting_closed(match, now):
                return StepResult(AdvanceOutcome.NO_OP, match, "Betting window is still open.")
            return StepResult(AdvanceOutcome.STARTED, self.start(match, now), "Betting closed, match is live.")

        board = self.rules.load(match.starting_fen, match.moves_uci)

        termination = self.termination_of(board)
        if termination is not None:
            return StepResult(
                AdvanceOutcome.COMPLETED, match, f"Game over: {termination.reason}.", termination=termination
            )
        if match.move_count >= self.max_plies:
            return StepResult(
                AdvanceOutcome.COMPLETED, match, f"Reached {self.max_plies} plies.", termination=MOVE_LIMIT
            )

        last_activity = self._last_activity(match)
        if last_activity is not None and now - last_activity < self.min_move_interval:
            return StepResult(AdvanceOutcome.NO_OP, match, "Too soon after the previous move.")

        side = self.rules.side_to_move(board)
        agent = white if side == Side.WHITE else black
        try:
            decision = self.brain.decide(board, Personality.from_agent(agent))
            if decision is None:
                raise DecisionError(f"{agent.name} found no move in a position that is not over.")
            after = self.rules.apply(board, decision.move)
        except DecisionError as error:
            logger.warning("Match %s: %s", match.id, error)
            return StepResult(AdvanceOutcome.ERROR, match, str(error))

        moved = self._record_move(match, side, agent, decision, after, now)
        termination = self.termination_of(after)
        if termination is not None:
            return StepResult(
                AdvanceOutcome.COMPLETED,
                moved,
                f"{decision.san} ends the game: {termination.reason}.",
                decision=decision,
                termination=termination,
            )
        return StepResult(AdvanceOutcome.MOVED, moved, f"{agent.name} played {decision.san}.", decision=decision)

    def termination_of(self, board: chess.Board) -> Optional[Termination]:
        if not self.rules.is_terminal(board):
            return None
        reason = self.rules.terminal_reason(board) or ResultReason.DRAW
        return Termination(result_for(reason, self.rules.side_to_move(board)), reason)

    # --- FINALIZATION ---
    def finalize(
        self,
        match: MatchModel,
        termination: Termination,
        white: AgentModel,
        black: AgentModel,
        bets: list[BetModel],
        now: datetime,
    ) -> Finalization:
        """
        Completed match + settled bets + updated agents.
        ----

        On a match that is already completed this returns the inputs untouched with `applied=False`, so a second
        finalizer cannot settle bets or move ratings again.
        """
        if match.status == MatchStatus.COMPLETED:
            return Finalization(match, bets, [white, black], applied=False)

        winner_agent_id = None
        if termination.result.winning_side == Side.WHITE:
            winner_agent_id = match.white_agent_id
        elif termination.result.winning_side == Side.BLACK:
            winner_agent_id = match.black_agent_id

        completed = replace(
            match,
            status=MatchStatus.COMPLETED.value,
            result=termination.result.value,
            result_reason=termination.reason.value,
            winner_agent_id=winner_agent_id,
            completed_at=now,
        )
        settled = WageringPool.from_match(match).settle(bets, termination.result, now)
        updated_white, updated_black = self.rating.apply(completed, white, black)

        logger.info(
            "Match %s finished: %s (%s) after %d plies",
            match.id,
            termination.result,
            termination.reason,
            match.move_count,
        )
        return Finalization(completed, settled, [updated_white, updated_black])

    def cancel(
        self,
        match: MatchModel,
        white: AgentModel,
        black: AgentModel,
        bets: list[BetModel],
        now: datetime,
    ) -> Finalization:
        """Administrative end of a betting or live match. Every bet is refunded, ratings stay as they are."""
        if match.status == MatchStatus.COMPLETED:
            raise MatchStateError(f"Match {match.id} is already completed and cannot be cancelled.")
        return self.finalize(match, CANCELLATION, white, black, bets, now)

    # -- Internal helpers --
    def _last_activity(self, match: MatchModel) -> Optional[datetime]:
        if match.moves:
            return as_utc(match.moves[-1].timestamp)
        return as_utc(match.started_at)

    def _record_move(
        self,
        match: MatchModel,
        side: Side,
        agent: AgentModel,
        decision: Decision,
        after: chess.Board,
        now: datetime,
    ) -> MatchModel:
        record = MoveRecord(
            ply=match.move_count + 1,
            move=decision.san,
            uci=decision.uci,
            side=side.value,
            actor=agent.name,
            fen=after.fen(),
            timestamp=now,
            explanation=decision.explanation,
            phase=decision.phase.value,
            confidence=decision.confidence,
            thinking_time_ms=decision.thinking_time_ms,
            rank=decision.rank,
            score_gap=decision.score_gap,
            style_aligned=decision.style_aligned,
        )
        logger.info("Match %s ply %d: %s (%s) played %s", match.id, record.ply, agent.name, side, decision.san)
        return replace(
            match,
            current_fen=record.fen,
            moves=[*match.moves, record],
            move_count=match.move_count + 1,
        )
