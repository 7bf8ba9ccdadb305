"""Orchestration of communication from the API layer to the game logic and persistence layers (and the reverse direction)."""

import logging
import random
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID, uuid4

from chess_arena.api.models import (
    AdvanceResponse,
    AgentResponse,
    BetResponse,
    CreateMatchRequest,
    DecideRequest,
    DecisionResponse,
    FindOpponentRequest,
    MatchmakingResponse,
    MatchRequest,
    MatchResponse,
    MoveResponse,
    PlaceBetRequest,
    RegisterAgentRequest,
    TrainAgentRequest,
    TrainingResponse,
)
from chess_arena.core.config import Settings, get_settings
from chess_arena.core.exceptions import (
    AgentBusyError,
    AgentNotFoundError,
    ArenaError,
    ConcurrentUpdateError,
    DecisionError,
    InvalidPairingError,
    MatchNotFoundError,
)
from chess_arena.core.logging_setup import configure_logging
from chess_arena.core.models import AgentModel, BetModel, MatchModel, utc_now
from chess_arena.core.shared_types import AdvanceOutcome, MatchStatus, Side
from chess_arena.db.database import build_engine, build_session_factory, init_db
from chess_arena.db.repository import ArenaRepository
from chess_arena.db.sql_repository import SQLArenaRepository
from chess_arena.game.brain import DecisionBrain, Personality
from chess_arena.game.match import MatchStateMachine, Termination
from chess_arena.game.matchmaking import BandPolicy, find_opponent, rating_bracket
from chess_arena.game.pool import WageringPool
from chess_arena.game.rating import RatingPolicy, RatingProgression
from chess_arena.game.rules import STARTING_FEN, PythonChessRules, RulesAdapter
from chess_arena.game.training import apply_training
from chess_arena.game.traits import profile_for

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class KeyedLocks:
    """One lock per id (match or agent). Serializes writers of the same record inside this process."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[UUID, threading.Lock] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def lock(self, key: UUID) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    def discard(self, key: UUID) -> None:
        """Forget the lock of a record that is never written again (a completed match)."""
        with self._guard:
            self._locks.pop(key, None)


class ArenaService:
    """Orchestration of layers for the AI chess arena."""

    def __init__(
        self,
        repository: ArenaRepository,
        settings: Optional[Settings] = None,
        rules: Optional[RulesAdapter] = None,
        rng: Optional[random.Random] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.repo = repository
        self.settings = settings or get_settings()
        self.rules = rules or PythonChessRules()
        self.rng = rng or random.SystemRandom()
        self.clock = clock
        self.match_locks = KeyedLocks()
        self.agent_locks = KeyedLocks()

        self.brain = DecisionBrain(self.rules, self.rng)
        self.machine = MatchStateMachine(
            rules=self.rules,
            brain=self.brain,
            rating=RatingProgression(
                RatingPolicy(
                    k_factor=self.settings.elo_k_factor,
                    floor=self.settings.rating_floor,
                    ceiling=self.settings.rating_ceiling,
                )
            ),
            min_move_interval=timedelta(seconds=self.settings.min_move_interval_seconds),
            max_plies=self.settings.max_plies,
        )
        self.band_policy = BandPolicy(
            initial=self.settings.matchmaking_initial_band,
            step=self.settings.matchmaking_band_step,
            maximum=self.settings.matchmaking_max_band,
        )

    # -- Agents --
    def register_agent(self, request: RegisterAgentRequest) -> AgentResponse:
        """New agent with the identity derived from its playstyle."""
        profile = profile_for(request.playstyle)
        agent = AgentModel(
            id=uuid4(),
            name=request.name,
            playstyle=request.playstyle.value,
            strengths=list(profile.strengths),
            weaknesses=list(profile.weaknesses),
            preferred_openings={
                Side.WHITE.value: list(profile.openings_white),
                Side.BLACK.value: list(profile.openings_black),
            },
            created_at=self.clock(),
        )
        stored = self.repo.create_agent(agent)
        logger.info("Registered agent %s (%s)", stored.name, stored.playstyle)
        return self._agent_response(stored)

    def get_agent(self, agent_id: UUID) -> AgentResponse:
        return self._agent_response(self._fetch_agent(agent_id))

    def leaderboard(self, limit: int = 20) -> list[AgentResponse]:
        return [self._agent_response(agent) for agent in self.repo.list_agents(limit)]

    # -- Matches --
    def create_match(self, request: CreateMatchRequest) -> MatchResponse:
        """Direct pairing of two agents. The match opens for betting."""
        if request.white_agent_id == request.black_agent_id:
            raise InvalidPairingError("An agent cannot play against itself.")
        white = self._fetch_agent(request.white_agent_id)
        black = self._fetch_agent(request.black_agent_id)

        # early answer only: the repository claims both agents atomically when the match is stored
        busy = self.repo.busy_agent_ids()
        for agent in (white, black):
            if agent.id in busy:
                raise AgentBusyError(f"{agent.name} is already playing an unfinished match.")

        return self._open_match(white, black, request.starting_fen or STARTING_FEN)

    def find_opponent(self, request: FindOpponentRequest) -> MatchmakingResponse:
        """Pair the agent with the closest-rated free opponent, if there is one."""
        agent = self._fetch_agent(request.agent_id)
        busy = self.repo.busy_agent_ids()
        if agent.id in busy:
            raise AgentBusyError(f"{agent.name} is already playing an unfinished match.")

        candidates = [
            candidate
            for candidate in self.repo.list_agents()
            if candidate.id not in busy and candidate.id != agent.id
        ]
        pairing = find_opponent(agent, candidates, self.band_policy, self.rng)
        bracket = rating_bracket(agent.rating)
        if pairing is None:
            return MatchmakingResponse(
                agent_id=agent.id,
                rating_bracket=bracket,
                message=f"No opponent available within {self.band_policy.maximum} rating points.",
            )

        match = self._open_match(pairing.white, pairing.black, STARTING_FEN)
        side = Side.WHITE if pairing.white.id == agent.id else Side.BLACK
        return MatchmakingResponse(
            agent_id=agent.id,
            rating_bracket=bracket,
            match_id=match.match_id,
            opponent_id=pairing.opponent.id,
            opponent_name=pairing.opponent.name,
            side=side,
            rating_band=pairing.band,
            message=f"{agent.name} plays {side} against {pairing.opponent.name}.",
        )

    def start_match(self, request: MatchRequest) -> MatchResponse:
        """Close betting early and go live."""
        with self.match_locks.lock(request.match_id):
            match = self._fetch_match(request.match_id)
            started = self.machine.start(match, self.clock())
            stored = self.repo.update_match(started, match.version)
        logger.info("Match %s is live", stored.id)
        return self._match_response(stored)

    def cancel_match(self, request: MatchRequest) -> MatchResponse:
        """Administrative cancellation: every bet is refunded, ratings are untouched."""
        with self.match_locks.lock(request.match_id):
            match = self._fetch_match(request.match_id)
            white, black = self._fetch_players(match)
            finalization = self.machine.cancel(
                match, white, black, self.repo.list_bets(match.id), self.clock()
            )
            stored = self.repo.complete_match(
                finalization.match, match.version, finalization.bets, finalization.agents
            )
        self.match_locks.discard(stored.id)
        logger.info("Match %s cancelled, %d bet(s) refunded", stored.id, len(finalization.bets))
        return self._match_response(stored)

    def advance_match(self, request: MatchRequest) -> AdvanceResponse:
        """
        Progress autonomous play by at most one step.
        ----

        Safe to call as often as anyone likes: throttled, completed and contended calls come back as `no-op`, a
        failed decision as `error` with the match left untouched.
        """
        with self.match_locks.lock(request.match_id):
            match = self._fetch_match(request.match_id)
            white, black = self._fetch_players(match)
            now = self.clock()
            step = self.machine.step(match, white, black, now)

            try:
                if step.termination is not None:
                    stored = self._finalize(match, step.match, step.termination, white, black, now)
                elif step.outcome in (AdvanceOutcome.STARTED, AdvanceOutcome.MOVED):
                    stored = self.repo.update_match(step.match, match.version)
                else:
                    stored = match
            except ConcurrentUpdateError as error:
                logger.warning("Match %s: lost a write race (%s)", match.id, error)
                return AdvanceResponse(
                    match_id=match.id,
                    outcome=AdvanceOutcome.NO_OP,
                    detail="Another invocation advanced the match first.",
                    match=self._match_response(self._fetch_match(match.id)),
                )

        if stored.status == MatchStatus.COMPLETED:
            self.match_locks.discard(stored.id)
        if step.outcome == AdvanceOutcome.NO_OP:
            logger.debug("Match %s: %s", match.id, step.detail)
        return AdvanceResponse(
            match_id=stored.id,
            outcome=step.outcome,
            detail=step.detail,
            move=step.decision.san if step.decision else None,
            match=self._match_response(stored),
        )

    def advance_open_matches(self) -> list[AdvanceResponse]:
        """
        One sweep over every betting or live match (what a scheduler calls).
        ----

        A match that cannot be advanced is reported as `error` and the sweep moves on to the next one.
        """
        open_ids = [
            match.id
            for status in (MatchStatus.BETTING, MatchStatus.LIVE)
            for match in self.repo.list_matches(status.value)
        ]
        responses = []
        for match_id in open_ids:
            try:
                responses.append(self.advance_match(MatchRequest(match_id=match_id)))
            except ArenaError as error:
                logger.exception("Match %s: sweep could not advance it", match_id)
                responses.append(
                    AdvanceResponse(match_id=match_id, outcome=AdvanceOutcome.ERROR, detail=str(error))
                )
        return responses

    def get_match(self, request: MatchRequest) -> MatchResponse:
        """Spectator view of a match."""
        return self._match_response(self._fetch_match(request.match_id))

    def list_matches(self, status: Optional[MatchStatus] = None) -> list[MatchResponse]:
        matches = self.repo.list_matches(status.value if status else None)
        return [self._match_response(match) for match in matches]

    # -- Bets --
    def place_bet(self, request: PlaceBetRequest) -> BetResponse:
        with self.match_locks.lock(request.match_id):
            match = self._fetch_match(request.match_id)
            existing = self.repo.get_bet(match.id, request.bettor_id)
            bet, updated = WageringPool.from_match(match).place_bet(
                match, request.bettor_id, request.side, request.stake, self.clock(), existing
            )
            stored_bet, _ = self.repo.record_bet(bet, updated, match.version)
        logger.info(
            "Bet %s accepted: %s on %s for match %s",
            stored_bet.id,
            stored_bet.stake,
            stored_bet.side,
            stored_bet.match_id,
        )
        return self._bet_response(stored_bet)

    def list_bets(self, request: MatchRequest) -> list[BetResponse]:
        self._fetch_match(request.match_id)
        return [self._bet_response(bet) for bet in self.repo.list_bets(request.match_id)]

    # -- Decisions --
    def decide(self, request: DecideRequest) -> DecisionResponse:
        """Run the decision brain on an arbitrary position."""
        board = self.rules.load(request.fen, [])
        personality = Personality(
            playstyle=request.playstyle,
            rating=request.rating,
            tactical_score=request.tactical_score,
            positional_score=request.positional_score,
            endgame_score=request.endgame_score,
            opening_score=request.opening_score,
        )
        decision = self.brain.decide(board, personality)
        if decision is None:
            raise DecisionError(f"No legal moves in {request.fen!r}: the game is over.")
        return DecisionResponse(
            move=decision.san,
            uci=decision.uci,
            explanation=decision.explanation,
            confidence=decision.confidence,
            thinking_time_ms=decision.thinking_time_ms,
            phase=decision.phase,
            considerations=decision.considerations,
        )

    # -- Training --
    def train_agent(self, request: TrainAgentRequest) -> TrainingResponse:
        """
        Analyse the games the agent completed since its last training pass.
        ----

        Passes over the same agent run one at a time here. The repository rejects a pass that another process stored
        in the meantime (ConcurrentUpdateError), so no game is counted twice.
        """
        with self.agent_locks.lock(request.agent_id):
            agent = self._fetch_agent(request.agent_id)
            matches = self.repo.completed_matches_for(
                agent.id, agent.last_trained_at, self.settings.training_batch_size
            )
            trained, report = apply_training(agent, matches)
            if matches:
                trained = self.repo.save_training(trained, agent.games_analyzed)

        if matches:
            message = f"Analyzed {report.games_analyzed} game(s)."
            logger.info(
                "Trained %s on %d game(s): +%d XP, level %s",
                agent.name,
                report.games_analyzed,
                report.xp_gained,
                report.level,
            )
        else:
            message = "No new completed games to analyze. Play some matches first!"

        return TrainingResponse(
            agent_id=agent.id,
            games_analyzed=report.games_analyzed,
            xp_gained=report.xp_gained,
            total_xp=report.total_xp,
            level=report.level.value,
            level_progress=report.level_progress,
            next_level=report.next_level.value if report.next_level else None,
            xp_to_next_level=report.xp_to_next_level,
            lessons=report.lessons,
            improvements=report.improvements,
            skills=self._skills(trained),
            message=message,
        )

    # -- Internal helpers --
    def _open_match(self, white: AgentModel, black: AgentModel, starting_fen: str) -> MatchResponse:
        match = self.machine.open(
            white.id,
            black.id,
            self.clock(),
            timedelta(seconds=self.settings.betting_window_seconds),
            starting_fen,
        )
        stored = self.repo.create_match(match)
        logger.info("Match %s created: %s (white) vs %s (black)", stored.id, white.name, black.name)
        return self._match_response(stored, white, black)

    def _finalize(
        self,
        loaded: MatchModel,
        match: MatchModel,
        termination: Termination,
        white: AgentModel,
        black: AgentModel,
        now: datetime,
    ) -> MatchModel:
        """Completed match, settled bets and rating updates in one repository write (checked against `loaded`)."""
        bets: list[BetModel] = self.repo.list_bets(match.id)
        finalization = self.machine.finalize(match, termination, white, black, bets, now)
        if not finalization.applied:
            return loaded
        return self.repo.complete_match(
            finalization.match, loaded.version, finalization.bets, finalization.agents
        )

    def _fetch_agent(self, agent_id: UUID) -> AgentModel:
        """Attempt to find the agent in the repository and raise error if it fails."""
        agent = self.repo.get_agent(agent_id)
        if agent is None:
            raise AgentNotFoundError(f"Agent with {agent_id=} not found.")
        return agent

    def _fetch_match(self, match_id: UUID) -> MatchModel:
        """Attempt to find the match in the repository and raise error if it fails."""
        match = self.repo.get_match(match_id)
        if match is None:
            raise MatchNotFoundError(f"Match with {match_id=} not found.")
        return match

    def _fetch_players(self, match: MatchModel) -> tuple[AgentModel, AgentModel]:
        return self._fetch_agent(match.white_agent_id), self._fetch_agent(match.black_agent_id)

    def _skills(self, agent: AgentModel) -> dict[str, int]:
        return {
            "tactical": agent.tactical_score,
            "positional": agent.positional_score,
            "endgame": agent.endgame_score,
            "opening": agent.opening_score,
        }

    def _agent_response(self, agent: AgentModel) -> AgentResponse:
        return AgentResponse(
            agent_id=agent.id,
            name=agent.name,
            playstyle=agent.playstyle,
            rating=agent.rating,
            rating_bracket=rating_bracket(agent.rating),
            games_played=agent.games_played,
            wins=agent.wins,
            losses=agent.losses,
            draws=agent.draws,
            win_rate=round(agent.win_rate, 1),
            current_streak=agent.current_streak,
            longest_win_streak=agent.longest_win_streak,
            reputation=agent.reputation,
            training_level=agent.training_level,
            training_xp=agent.training_xp,
            skills=self._skills(agent),
            strengths=agent.strengths,
            weaknesses=agent.weaknesses,
            preferred_openings=agent.preferred_openings,
            lessons_learned=agent.lessons_learned,
            last_trained_at=agent.last_trained_at,
            created_at=agent.created_at,
        )

    def _match_response(
        self,
        match: MatchModel,
        white: Optional[AgentModel] = None,
        black: Optional[AgentModel] = None,
    ) -> MatchResponse:
        """Convert a MatchModel into the spectator view (pool, live odds, history)."""
        white = white or self.repo.get_agent(match.white_agent_id)
        black = black or self.repo.get_agent(match.black_agent_id)
        pool = WageringPool.from_match(match)
        return MatchResponse(
            match_id=match.id,
            white_agent_id=match.white_agent_id,
            black_agent_id=match.black_agent_id,
            white_agent_name=white.name if white else None,
            black_agent_name=black.name if black else None,
            status=match.status,
            starting_fen=match.starting_fen,
            current_fen=match.current_fen,
            move_count=match.move_count,
            moves=[
                MoveResponse(
                    ply=record.ply,
                    move=record.move,
                    uci=record.uci,
                    side=record.side,
                    actor=record.actor,
                    fen=record.fen,
                    timestamp=record.timestamp,
                    explanation=record.explanation,
                    phase=record.phase,
                    confidence=record.confidence,
                    thinking_time_ms=record.thinking_time_ms,
                )
                for record in match.moves
            ],
            total_pool=match.total_pool,
            white_pool=match.white_pool,
            black_pool=match.black_pool,
            white_odds=pool.odds(Side.WHITE),
            black_odds=pool.odds(Side.BLACK),
            betting_ends_at=match.betting_ends_at,
            started_at=match.started_at,
            completed_at=match.completed_at,
            result=match.result,
            result_reason=match.result_reason,
            winner_agent_id=match.winner_agent_id,
        )

    def _bet_response(self, bet: BetModel) -> BetResponse:
        return BetResponse(
            bet_id=bet.id,
            match_id=bet.match_id,
            bettor_id=bet.bettor_id,
            side=bet.side,
            stake=bet.stake,
            potential_payout=bet.potential_payout,
            status=bet.status,
            payout=bet.payout,
        )


def create_arena_service(settings: Optional[Settings] = None) -> ArenaService:
    """Wire an ArenaService onto the configured database (tables are created if missing)."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    engine = build_engine(settings)
    init_db(engine)
    return ArenaService(SQLArenaRepository(build_session_factory(engine)), settings=settings)
