"""Protocol repository (implemented with SQLAlchemy in sql_repository.py, with a dict in the service tests)"""

from datetime import datetime
from typing import Optional, Protocol
from uuid import UUID

from chess_arena.core.models import AgentModel, BetModel, BettorID, MatchModel


class ArenaRepository(Protocol):
    """Persistence layer orchestration"""

    # --- Agents ---
    def create_agent(self, agent: AgentModel) -> AgentModel:
        """Store a new agent. Raises DuplicateAgentError if the name is taken."""
        ...

    def get_agent(self, agent_id: UUID) -> AgentModel | None:
        """Get agent by ID, if record exists."""
        ...

    def save_training(self, agent: AgentModel, expected_games_analyzed: int) -> AgentModel:
        """
        Write the training state (XP, level, skills, lessons) of an existing agent.
        Raises ConcurrentUpdateError if another training pass was stored since `expected_games_analyzed` was read.
        """
        ...

    def list_agents(self, limit: Optional[int] = None) -> list[AgentModel]:
        """Agents ordered by rating, best first."""
        ...

    def busy_agent_ids(self) -> set[UUID]:
        """Agents currently claimed by a match that is not completed."""
        ...

    # --- Matches ---
    def create_match(self, match: MatchModel) -> MatchModel:
        """
        Store a new match and claim both of its agents, atomically.
        Raises AgentBusyError (writing nothing) if one of its agents is already in an unfinished match.
        """
        ...

    def get_match(self, match_id: UUID) -> MatchModel | None: ...

    def list_matches(self, status: Optional[str] = None) -> list[MatchModel]:
        """Newest first, optionally filtered by status."""
        ...

    def update_match(self, match: MatchModel, expected_version: int) -> MatchModel:
        """
        Write the match if nobody else wrote it since `expected_version` was read.
        Returns the stored match (with its bumped version), raises ConcurrentUpdateError otherwise.
        """
        ...

    def completed_matches_for(
        self, agent_id: UUID, finished_after: Optional[datetime], limit: int
    ) -> list[MatchModel]:
        """Decided or drawn (not cancelled) matches of an agent, oldest completion first."""
        ...

    # --- Bets ---
    def get_bet(self, match_id: UUID, bettor_id: BettorID) -> BetModel | None: ...

    def list_bets(self, match_id: UUID) -> list[BetModel]: ...

    def record_bet(
        self, bet: BetModel, match: MatchModel, expected_version: int
    ) -> tuple[BetModel, MatchModel]:
        """
        Insert the bet and write the updated pool totals of its match in one transaction.
        Raises DuplicateBetError / ConcurrentUpdateError without writing anything.
        """
        ...

    # --- Finalization ---
    def complete_match(
        self,
        match: MatchModel,
        expected_version: int,
        bets: list[BetModel],
        agents: list[AgentModel],
    ) -> MatchModel:
        """Completed match, settled bets and updated agents, all or nothing. Both agents are free again afterwards."""
        ...
