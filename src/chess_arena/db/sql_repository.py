"""Implementation of ArenaRepository using SQLAlchemy"""

import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from chess_arena.core.exceptions import (
    AgentBusyError,
    AgentNotFoundError,
    ConcurrentUpdateError,
    DuplicateAgentError,
    DuplicateBetError,
    MatchNotFoundError,
)
from chess_arena.core.models import (
    AgentModel,
    BetModel,
    BettorID,
    MatchModel,
    MoveRecord,
    as_utc,
)
from chess_arena.core.shared_types import MatchResult, MatchStatus
from chess_arena.db.schema import DBAgent, DBBet, DBMatch

logger = logging.getLogger(__name__)

# Agent columns written by match finalization
RESULT_FIELDS = (
    "rating",
    "games_played",
    "wins",
    "losses",
    "draws",
    "current_streak",
    "longest_win_streak",
    "reputation",
)
# Agent columns written by a training pass
TRAINING_FIELDS = (
    "training_level",
    "training_xp",
    "tactical_score",
    "positional_score",
    "endgame_score",
    "opening_score",
    "games_analyzed",
    "lessons_learned",
    "last_trained_at",
)


class SQLArenaRepository:
    """
    Data stored using SQL / methods implemented using SQLAlchemy
    ----

    Every call opens its own session (one transaction per write), so one repository can serve several threads.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    # --- Agents ---
    def create_agent(self, agent: AgentModel) -> AgentModel:
        """Store a new agent. Raises DuplicateAgentError if the name is taken."""
        agent_db = DBAgent(
            id=agent.id,
            name=agent.name,
            playstyle=agent.playstyle,
            strengths=list(agent.strengths),
            weaknesses=list(agent.weaknesses),
            preferred_openings=dict(agent.preferred_openings),
            created_at=agent.created_at,
            **self._agent_values(agent, RESULT_FIELDS + TRAINING_FIELDS),
        )
        try:
            with self.session_factory.begin() as db:
                db.add(agent_db)
        except IntegrityError as error:
            raise DuplicateAgentError(f"An agent named {agent.name!r} already exists.") from error
        return self._reload_agent(agent.id)

    def get_agent(self, agent_id: UUID) -> AgentModel | None:
        """Get agent by ID, if record exists."""
        with self.session_factory() as db:
            agent_db = db.get(DBAgent, agent_id)
            if agent_db:
                return self._to_agent_model(agent_db)
            return None

    def save_training(self, agent: AgentModel, expected_games_analyzed: int) -> AgentModel:
        """
        Write the training state of an agent. Rating and record are left to finalization.
        ----

        Only applied while the stored `games_analyzed` still equals `expected_games_analyzed`: a concurrent training
        pass that got there first makes this one fail with ConcurrentUpdateError.
        """
        with self.session_factory.begin() as db:
            if db.get(DBAgent, agent.id) is None:
                raise AgentNotFoundError(f"Agent with {agent.id=} not found.")
            statement = (
                update(DBAgent)
                .where(DBAgent.id == agent.id, DBAgent.games_analyzed == expected_games_analyzed)
                .values(**self._agent_values(agent, TRAINING_FIELDS))
                .execution_options(synchronize_session=False)
            )
            if db.execute(statement).rowcount == 0:
                raise ConcurrentUpdateError(
                    f"Agent {agent.id} was trained since {expected_games_analyzed} game(s) were analysed."
                )
        return self._reload_agent(agent.id)

    def list_agents(self, limit: Optional[int] = None) -> list[AgentModel]:
        query = select(DBAgent).order_by(
            DBAgent.rating.desc(), DBAgent.wins.desc(), DBAgent.name
        )
        if limit is not None:
            query = query.limit(limit)
        with self.session_factory() as db:
            return [self._to_agent_model(agent_db) for agent_db in db.scalars(query)]

    def busy_agent_ids(self) -> set[UUID]:
        query = select(DBAgent.id).where(DBAgent.active_match_id.is_not(None))
        with self.session_factory() as db:
            return set(db.scalars(query))

    # --- Matches ---
    def create_match(self, match: MatchModel) -> MatchModel:
        """Claim both agents and insert the match in one transaction. Nothing is written if an agent is taken."""
        agent_ids = {match.white_agent_id, match.black_agent_id}
        claim = (
            update(DBAgent)
            .where(DBAgent.id.in_(list(agent_ids)), DBAgent.active_match_id.is_(None))
            .values(active_match_id=match.id)
            .execution_options(synchronize_session=False)
        )
        with self.session_factory.begin() as db:
            if db.execute(claim).rowcount != len(agent_ids):
                raise AgentBusyError(
                    f"Agent(s) {sorted(map(str, agent_ids))} are not all free to start a new match."
                )
            db.add(DBMatch(id=match.id, **self._match_values(match)))
        return self._reload_match(match.id)

    def get_match(self, match_id: UUID) -> MatchModel | None:
        with self.session_factory() as db:
            match_db = db.get(DBMatch, match_id)
            if match_db:
                return self._to_match_model(match_db)
            return None

    def list_matches(self, status: Optional[str] = None) -> list[MatchModel]:
        query = select(DBMatch).order_by(DBMatch.created_at.desc())
        if status is not None:
            query = query.where(DBMatch.status == status)
        with self.session_factory() as db:
            return [self._to_match_model(match_db) for match_db in db.scalars(query)]

    def update_match(self, match: MatchModel, expected_version: int) -> MatchModel:
        with self.session_factory.begin() as db:
            self._write_match(db, match, expected_version)
        return self._reload_match(match.id)

    def completed_matches_for(
        self, agent_id: UUID, finished_after: Optional[datetime], limit: int
    ) -> list[MatchModel]:
        conditions = [
            DBMatch.status == MatchStatus.COMPLETED.value,
            DBMatch.result != MatchResult.CANCELLED.value,
            or_(DBMatch.white_agent_id == agent_id, DBMatch.black_agent_id == agent_id),
        ]
        if finished_after is not None:
            conditions.append(DBMatch.completed_at > finished_after)
        query = select(DBMatch).where(*conditions).order_by(DBMatch.completed_at).limit(limit)
        with self.session_factory() as db:
            return [self._to_match_model(match_db) for match_db in db.scalars(query)]

    # --- Bets ---
    def get_bet(self, match_id: UUID, bettor_id: BettorID) -> BetModel | None:
        query = select(DBBet).where(DBBet.match_id == match_id, DBBet.bettor_id == bettor_id)
        with self.session_factory() as db:
            bet_db = db.scalar(query)
            if bet_db:
                return self._to_bet_model(bet_db)
            return None

    def list_bets(self, match_id: UUID) -> list[BetModel]:
        query = select(DBBet).where(DBBet.match_id == match_id).order_by(DBBet.created_at)
        with self.session_factory() as db:
            return [self._to_bet_model(bet_db) for bet_db in db.scalars(query)]

    def record_bet(
        self, bet: BetModel, match: MatchModel, expected_version: int
    ) -> tuple[BetModel, MatchModel]:
        bet_db = DBBet(
            id=bet.id,
            match_id=bet.match_id,
            bettor_id=bet.bettor_id,
            side=bet.side,
            stake=bet.stake,
            potential_payout=bet.potential_payout,
            status=bet.status,
            payout=bet.payout,
            created_at=bet.created_at,
        )
        try:
            with self.session_factory.begin() as db:
                db.add(bet_db)
                db.flush()
                self._write_match(db, match, expected_version)
        except IntegrityError as error:
            raise DuplicateBetError(
                f"Bettor {bet.bettor_id!r} already has a bet on match {bet.match_id}."
            ) from error
        stored_bet = self.get_bet(bet.match_id, bet.bettor_id)
        return stored_bet, self._reload_match(match.id)

    # --- Finalization ---
    def complete_match(
        self,
        match: MatchModel,
        expected_version: int,
        bets: list[BetModel],
        agents: list[AgentModel],
    ) -> MatchModel:
        release = (
            update(DBAgent)
            .where(DBAgent.active_match_id == match.id)
            .values(active_match_id=None)
            .execution_options(synchronize_session=False)
        )
        with self.session_factory.begin() as db:
            self._write_match(db, match, expected_version)
            for bet in bets:
                bet_db = db.get(DBBet, bet.id)
                if bet_db is None:
                    continue
                bet_db.status = bet.status
                bet_db.payout = bet.payout
                bet_db.settled_at = bet.settled_at
            for agent in agents:
                agent_db = db.get(DBAgent, agent.id)
                if agent_db is not None:
                    for name, value in self._agent_values(agent, RESULT_FIELDS).items():
                        setattr(agent_db, name, value)
            db.execute(release)
        logger.debug("Stored completion of match %s with %d bet(s)", match.id, len(bets))
        return self._reload_match(match.id)

    # -- Internal helpers --
    def _write_match(self, db: Session, match: MatchModel, expected_version: int) -> None:
        """Versioned UPDATE, not committed. Completed matches are never written again."""
        statement = (
            update(DBMatch)
            .where(
                DBMatch.id == match.id,
                DBMatch.version == expected_version,
                DBMatch.status != MatchStatus.COMPLETED.value,
            )
            .values(version=expected_version + 1, **self._match_values(match))
            .execution_options(synchronize_session=False)
        )
        result = db.execute(statement)
        if result.rowcount == 0:
            raise ConcurrentUpdateError(
                f"Match {match.id} changed since version {expected_version} was read."
            )

    def _reload_agent(self, agent_id: UUID) -> AgentModel:
        agent = self.get_agent(agent_id)
        if agent is None:
            raise AgentNotFoundError(f"Agent with {agent_id=} not found.")
        return agent

    def _reload_match(self, match_id: UUID) -> MatchModel:
        match = self.get_match(match_id)
        if match is None:
            raise MatchNotFoundError(f"Match with {match_id=} not found.")
        return match

    def _match_values(self, match: MatchModel) -> dict[str, Any]:
        return {
            "white_agent_id": match.white_agent_id,
            "black_agent_id": match.black_agent_id,
            "status": match.status,
            "starting_fen": match.starting_fen,
            "current_fen": match.current_fen,
            "betting_ends_at": match.betting_ends_at,
            "moves": [record.to_dict() for record in match.moves],
            "move_count": match.move_count,
            "total_pool": match.total_pool,
            "white_pool": match.white_pool,
            "black_pool": match.black_pool,
            "started_at": match.started_at,
            "completed_at": match.completed_at,
            "result": match.result,
            "result_reason": match.result_reason,
            "winner_agent_id": match.winner_agent_id,
            "created_at": match.created_at,
        }

    def _agent_values(self, agent: AgentModel, fields: tuple[str, ...]) -> dict[str, Any]:
        values = {}
        for name in fields:
            value = getattr(agent, name)
            values[name] = list(value) if isinstance(value, list) else value
        return values

    def _to_agent_model(self, agent_db: DBAgent) -> AgentModel:
        """Convert SQLAlchemy model to data transfer model."""
        return AgentModel(
            id=agent_db.id,
            name=agent_db.name,
            playstyle=agent_db.playstyle,
            rating=agent_db.rating,
            games_played=agent_db.games_played,
            wins=agent_db.wins,
            losses=agent_db.losses,
            draws=agent_db.draws,
            current_streak=agent_db.current_streak,
            longest_win_streak=agent_db.longest_win_streak,
            reputation=agent_db.reputation,
            training_level=agent_db.training_level,
            training_xp=agent_db.training_xp,
            tactical_score=agent_db.tactical_score,
            positional_score=agent_db.positional_score,
            endgame_score=agent_db.endgame_score,
            opening_score=agent_db.opening_score,
            games_analyzed=agent_db.games_analyzed,
            strengths=list(agent_db.strengths or []),
            weaknesses=list(agent_db.weaknesses or []),
            preferred_openings=dict(agent_db.preferred_openings or {}),
            lessons_learned=list(agent_db.lessons_learned or []),
            last_trained_at=as_utc(agent_db.last_trained_at),
            created_at=as_utc(agent_db.created_at),
        )

    def _to_match_model(self, match_db: DBMatch) -> MatchModel:
        """Convert SQLAlchemy model to data transfer model."""
        return MatchModel(
            id=match_db.id,
            white_agent_id=match_db.white_agent_id,
            black_agent_id=match_db.black_agent_id,
            status=match_db.status,
            starting_fen=match_db.starting_fen,
            current_fen=match_db.current_fen,
            betting_ends_at=as_utc(match_db.betting_ends_at),
            moves=[MoveRecord.from_dict(entry) for entry in match_db.moves or []],
            move_count=match_db.move_count,
            total_pool=match_db.total_pool,
            white_pool=match_db.white_pool,
            black_pool=match_db.black_pool,
            started_at=as_utc(match_db.started_at),
            completed_at=as_utc(match_db.completed_at),
            result=match_db.result,
            result_reason=match_db.result_reason,
            winner_agent_id=match_db.winner_agent_id,
            created_at=as_utc(match_db.created_at),
            version=match_db.version,
        )

    def _to_bet_model(self, bet_db: DBBet) -> BetModel:
        """Convert SQLAlchemy model to data transfer model."""
        return BetModel(
            id=bet_db.id,
            match_id=bet_db.match_id,
            bettor_id=bet_db.bettor_id,
            side=bet_db.side,
            stake=bet_db.stake,
            potential_payout=bet_db.potential_payout,
            status=bet_db.status,
            payout=bet_db.payout,
            created_at=as_utc(bet_db.created_at),
            settled_at=as_utc(bet_db.settled_at),
        )
