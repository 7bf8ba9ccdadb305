"""Unit tests for chess_arena/db/sql_repository.py"""

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from conftest import T0, make_agent
from sqlalchemy.orm import Session, sessionmaker

from chess_arena.core.exceptions import (
    AgentBusyError,
    AgentNotFoundError,
    ConcurrentUpdateError,
    DuplicateAgentError,
    DuplicateBetError,
)
from chess_arena.core.models import AgentModel, BetModel, MatchModel, MoveRecord
from chess_arena.core.shared_types import BetStatus, MatchResult, MatchStatus
from chess_arena.db.sql_repository import SQLArenaRepository
from chess_arena.game.rules import STARTING_FEN


@pytest.fixture
def repo(db_session_factory: sessionmaker[Session]) -> SQLArenaRepository:
    return SQLArenaRepository(db_session_factory)


@pytest.fixture
def players(repo: SQLArenaRepository) -> tuple[AgentModel, AgentModel]:
    return repo.create_agent(make_agent("white-bot")), repo.create_agent(make_agent("black-bot", "defensive"))


def new_match(white: AgentModel, black: AgentModel, **fields) -> MatchModel:
    values = dict(
        id=uuid4(),
        white_agent_id=white.id,
        black_agent_id=black.id,
        status=MatchStatus.BETTING.value,
        starting_fen=STARTING_FEN,
        current_fen=STARTING_FEN,
        betting_ends_at=T0 + timedelta(minutes=5),
        created_at=T0,
    )
    values.update(fields)
    return MatchModel(**values)


def new_bet(match: MatchModel, bettor: str, side: str, stake: str) -> BetModel:
    return BetModel(
        id=uuid4(),
        match_id=match.id,
        bettor_id=bettor,
        side=side,
        stake=Decimal(stake),
        potential_payout=Decimal(stake),
        created_at=T0,
    )


def with_pool(match: MatchModel, white: str = "0", black: str = "0") -> MatchModel:
    return replace(
        match,
        white_pool=Decimal(white),
        black_pool=Decimal(black),
        total_pool=Decimal(white) + Decimal(black),
    )


# --- AGENTS ---
def test_create_and_get_agent(repo: SQLArenaRepository) -> None:
    """Conversion from an AgentModel to DBAgent and back."""
    model = make_agent("Tal-bot", "tactical", lessons_learned=["Achieved checkmate!"])
    stored = repo.create_agent(model)
    assert stored == model
    assert repo.get_agent(model.id) == model


def test_get_unknown_agent(repo: SQLArenaRepository) -> None:
    assert repo.get_agent(uuid4()) is None


def test_duplicate_agent_name_is_rejected(repo: SQLArenaRepository) -> None:
    repo.create_agent(make_agent("Tal-bot"))
    with pytest.raises(DuplicateAgentError):
        repo.create_agent(make_agent("Tal-bot", "defensive"))
    assert len(repo.list_agents()) == 1


def test_list_agents_best_rated_first(repo: SQLArenaRepository) -> None:
    repo.create_agent(make_agent("low", rating=1200))
    repo.create_agent(make_agent("high", rating=1900))
    repo.create_agent(make_agent("mid", rating=1500))
    assert [agent.name for agent in repo.list_agents()] == ["high", "mid", "low"]
    assert [agent.name for agent in repo.list_agents(limit=2)] == ["high", "mid"]


def test_save_training_leaves_rating_alone(
    repo: SQLArenaRepository, players: tuple[AgentModel, AgentModel]
) -> None:
    agent, _ = players
    trained = replace(
        agent,
        training_xp=120,
        tactical_score=61,
        lessons_learned=["Victory! Reinforcing winning patterns"],
        games_analyzed=2,
        last_trained_at=T0,
        rating=2999,
    )
    stored = repo.save_training(trained, agent.games_analyzed)
    assert stored.training_xp == 120
    assert stored.tactical_score == 61
    assert stored.lessons_learned == ["Victory! Reinforcing winning patterns"]
    assert stored.last_trained_at == T0
    assert stored.rating == agent.rating


def test_save_training_of_unknown_agent(repo: SQLArenaRepository) -> None:
    with pytest.raises(AgentNotFoundError):
        repo.save_training(make_agent("ghost"), 0)


def test_save_training_rejects_a_pass_stored_in_between(
    repo: SQLArenaRepository, players: tuple[AgentModel, AgentModel]
) -> None:
    """Two passes read the same state: only the first one is written."""
    agent, _ = players
    first = replace(agent, training_xp=45, games_analyzed=1, last_trained_at=T0)
    second = replace(agent, training_xp=45, games_analyzed=1, last_trained_at=T0)
    repo.save_training(first, agent.games_analyzed)

    with pytest.raises(ConcurrentUpdateError):
        repo.save_training(second, agent.games_analyzed)
    assert repo.get_agent(agent.id).training_xp == 45


# --- MATCHES ---
def test_create_and_get_match(repo: SQLArenaRepository, players: tuple[AgentModel, AgentModel]) -> None:
    match = new_match(*players)
    stored = repo.create_match(match)
    assert stored == match
    assert repo.get_match(match.id) == match
    assert repo.get_match(uuid4()) is None


def test_agent_cannot_join_two_unfinished_matches(
    repo: SQLArenaRepository, players: tuple[AgentModel, AgentModel]
) -> None:
    white, black = players
    third = repo.create_agent(make_agent("third"))
    repo.create_match(new_match(white, black))
    assert repo.busy_agent_ids() == {white.id, black.id}

    with pytest.raises(AgentBusyError):
        repo.create_match(new_match(third, black))


class StaleReadRepository(SQLArenaRepository):
    """Sees every agent as free, like a second writer that read before the first one stored its match."""

    def busy_agent_ids(self) -> set[UUID]:
        return set()


def test_claiming_agents_does_not_trust_an_earlier_read(
    repo: SQLArenaRepository, db_session_factory: sessionmaker[Session], players: tuple[AgentModel, AgentModel]
) -> None:
    """Pairings A-C and B-C read C as free: the second one to be stored fails and writes nothing."""
    white, black = players
    third = repo.create_agent(make_agent("third"))
    stale = StaleReadRepository(db_session_factory)

    first = repo.create_match(new_match(white, black))
    with pytest.raises(AgentBusyError):
        stale.create_match(new_match(third, black))

    assert [match.id for match in repo.list_matches()] == [first.id]
    # the claim on the free agent was rolled back with the rest of the transaction
    assert repo.busy_agent_ids() == {white.id, black.id}
    fourth = repo.create_agent(make_agent("fourth"))
    repo.create_match(new_match(third, fourth))
    assert repo.busy_agent_ids() == {white.id, black.id, third.id, fourth.id}


def test_completion_frees_both_agents(repo: SQLArenaRepository, players: tuple[AgentModel, AgentModel]) -> None:
    white, black = players
    match = repo.create_match(new_match(white, black))
    repo.complete_match(replace(match, status=MatchStatus.COMPLETED.value), match.version, [], [])

    assert repo.busy_agent_ids() == set()
    rematch = repo.create_match(new_match(black, white))
    assert rematch.white_agent_id == black.id


def test_update_match_bumps_version(repo: SQLArenaRepository, players: tuple[AgentModel, AgentModel]) -> None:
    match = repo.create_match(new_match(*players))
    record = MoveRecord(
        ply=1,
        move="e4",
        uci="e2e4",
        side="white",
        actor="white-bot",
        fen="rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1",
        timestamp=T0 + timedelta(minutes=6),
        confidence=0.62,
        style_aligned=True,
    )
    live = replace(
        match,
        status=MatchStatus.LIVE.value,
        started_at=T0 + timedelta(minutes=5),
        moves=[record],
        move_count=1,
        current_fen=record.fen,
    )

    stored = repo.update_match(live, match.version)
    assert stored.version == match.version + 1
    assert stored.moves == [record]
    assert stored.status == MatchStatus.LIVE


def test_stale_version_is_rejected(repo: SQLArenaRepository, players: tuple[AgentModel, AgentModel]) -> None:
    match = repo.create_match(new_match(*players))
    repo.update_match(replace(match, status=MatchStatus.LIVE.value), match.version)

    with pytest.raises(ConcurrentUpdateError):
        repo.update_match(replace(match, current_fen="8/8/8/8/8/8/8/K6k w - - 0 1"), match.version)
    assert repo.get_match(match.id).current_fen == STARTING_FEN


def test_list_matches_by_status(repo: SQLArenaRepository, players: tuple[AgentModel, AgentModel]) -> None:
    match = repo.create_match(new_match(*players))
    assert [found.id for found in repo.list_matches(MatchStatus.BETTING.value)] == [match.id]
    assert repo.list_matches(MatchStatus.LIVE.value) == []


# --- BETS ---
def test_record_bet_updates_pool_in_same_write(
    repo: SQLArenaRepository, players: tuple[AgentModel, AgentModel]
) -> None:
    match = repo.create_match(new_match(*players))
    bet = new_bet(match, "alice", "white", "10.00")

    stored_bet, stored_match = repo.record_bet(bet, with_pool(match, white="10.00"), match.version)
    assert stored_bet == bet
    assert stored_match.white_pool == Decimal("10.00")
    assert stored_match.total_pool == Decimal("10.00")
    assert stored_match.version == match.version + 1
    assert repo.get_bet(match.id, "alice") == bet
    assert repo.list_bets(match.id) == [bet]


def test_duplicate_bet_leaves_pools_unchanged(
    repo: SQLArenaRepository, players: tuple[AgentModel, AgentModel]
) -> None:
    match = repo.create_match(new_match(*players))
    _, match = repo.record_bet(new_bet(match, "alice", "white", "10.00"), with_pool(match, white="10.00"), 0)

    with pytest.raises(DuplicateBetError):
        repo.record_bet(
            new_bet(match, "alice", "black", "5.00"),
            with_pool(match, white="10.00", black="5.00"),
            match.version,
        )
    stored = repo.get_match(match.id)
    assert (stored.white_pool, stored.black_pool, stored.total_pool) == (
        Decimal("10.00"),
        Decimal("0"),
        Decimal("10.00"),
    )
    assert len(repo.list_bets(match.id)) == 1


def test_bet_against_stale_match_is_not_stored(
    repo: SQLArenaRepository, players: tuple[AgentModel, AgentModel]
) -> None:
    match = repo.create_match(new_match(*players))
    repo.update_match(replace(match, status=MatchStatus.LIVE.value), match.version)

    with pytest.raises(ConcurrentUpdateError):
        repo.record_bet(new_bet(match, "bob", "black", "30.00"), with_pool(match, black="30.00"), match.version)
    assert repo.list_bets(match.id) == []


# --- FINALIZATION ---
def completed(match: MatchModel, white: AgentModel) -> MatchModel:
    return replace(
        match,
        status=MatchStatus.COMPLETED.value,
        result=MatchResult.WHITE_WIN.value,
        result_reason="checkmate",
        winner_agent_id=white.id,
        completed_at=T0 + timedelta(minutes=30),
    )


def test_complete_match_writes_everything(
    repo: SQLArenaRepository, players: tuple[AgentModel, AgentModel]
) -> None:
    white, black = players
    match = repo.create_match(new_match(white, black))
    bet = new_bet(match, "alice", "white", "10.00")
    _, match = repo.record_bet(bet, with_pool(match, white="10.00"), match.version)

    settled = replace(bet, status=BetStatus.WON.value, payout=Decimal("10.00"), settled_at=T0 + timedelta(minutes=30))
    winner = replace(white, rating=1516, games_played=1, wins=1, current_streak=1, longest_win_streak=1)
    loser = replace(black, rating=1484, games_played=1, losses=1, current_streak=-1)

    stored = repo.complete_match(completed(match, white), match.version, [settled], [winner, loser])
    assert stored.status == MatchStatus.COMPLETED
    assert stored.winner_agent_id == white.id
    assert repo.get_bet(match.id, "alice") == settled
    assert repo.get_agent(white.id) == winner
    assert repo.get_agent(black.id) == loser
    assert repo.busy_agent_ids() == set()


def test_complete_match_is_all_or_nothing(
    repo: SQLArenaRepository, players: tuple[AgentModel, AgentModel]
) -> None:
    """A second finalizer holding the same version changes nothing."""
    white, black = players
    match = repo.create_match(new_match(white, black))
    bet = new_bet(match, "alice", "white", "10.00")
    _, match = repo.record_bet(bet, with_pool(match, white="10.00"), match.version)

    settled = replace(bet, status=BetStatus.WON.value, payout=Decimal("10.00"))
    repo.complete_match(completed(match, white), match.version, [settled], [replace(white, rating=1516), black])

    with pytest.raises(ConcurrentUpdateError):
        repo.complete_match(
            completed(match, white),
            match.version,
            [replace(bet, status=BetStatus.LOST.value, payout=Decimal("0"))],
            [replace(white, rating=1532), black],
        )
    assert repo.get_agent(white.id).rating == 1516
    assert repo.get_bet(match.id, "alice").status == BetStatus.WON


def test_completed_match_is_never_rewritten(
    repo: SQLArenaRepository, players: tuple[AgentModel, AgentModel]
) -> None:
    white, black = players
    match = repo.create_match(new_match(white, black))
    stored = repo.complete_match(completed(match, white), match.version, [], [])

    with pytest.raises(ConcurrentUpdateError):
        repo.update_match(replace(stored, result=MatchResult.DRAW.value), stored.version)


def test_completed_matches_for_training(repo: SQLArenaRepository, players: tuple[AgentModel, AgentModel]) -> None:
    white, black = players
    first = repo.create_match(new_match(white, black))
    repo.complete_match(completed(first, white), first.version, [], [])
    second = repo.create_match(new_match(black, white))
    repo.complete_match(
        replace(completed(second, white), completed_at=T0 + timedelta(hours=2)), second.version, [], []
    )
    cancelled = repo.create_match(new_match(white, black))
    repo.complete_match(
        replace(cancelled, status=MatchStatus.COMPLETED.value, result=MatchResult.CANCELLED.value),
        cancelled.version,
        [],
        [],
    )

    found = repo.completed_matches_for(white.id, None, limit=10)
    assert [match.id for match in found] == [first.id, second.id]

    after_first = repo.completed_matches_for(white.id, T0 + timedelta(minutes=30), limit=10)
    assert [match.id for match in after_first] == [second.id]

    assert len(repo.completed_matches_for(white.id, None, limit=1)) == 1
