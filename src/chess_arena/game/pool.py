"""
Pari-mutuel wagering pool
----

All stakes on one side of a match are pooled. At settlement the winners split the combined pool pro rata to their
stake. Amounts are ledger entries (Decimal, two places), not fund transfers.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional
from uuid import uuid4

from chess_arena.core.exceptions import (
    BettingClosedError,
    DuplicateBetError,
    InvalidSideError,
    InvalidStakeError,
)
from chess_arena.core.models import BetModel, BettorID, MatchModel, as_utc
from chess_arena.core.shared_types import BetStatus, MatchResult, MatchStatus, Side

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
# Guards the odds against an empty side
EPSILON = Decimal("0.01")
EVEN_ODDS = Decimal("1.00")


def to_money(value: Decimal, rounding: str = ROUND_HALF_UP) -> Decimal:
    return value.quantize(CENT, rounding=rounding)


def parse_side(value: str) -> Side:
    try:
        return Side(str(value).strip().lower())
    except ValueError as error:
        raise InvalidSideError(f"Side must be 'white' or 'black', got {value!r}") from error


def parse_stake(value: Decimal | int | float | str) -> Decimal:
    """Positive amount, rounded to cents."""
    try:
        stake = Decimal(str(value))
    except InvalidOperation as error:
        raise InvalidStakeError(f"Stake is not a number: {value!r}") from error
    if not stake.is_finite():
        raise InvalidStakeError(f"Stake must be a finite amount, got {value!r}")
    stake = to_money(stake)
    if stake <= 0:
        raise InvalidStakeError(f"Stake must be positive, got {value!r}")
    return stake


@dataclass
class WageringPool:
    white: Decimal = Decimal("0")
    black: Decimal = Decimal("0")

    @classmethod
    def from_match(cls, match: MatchModel) -> "WageringPool":
        return cls(white=match.white_pool, black=match.black_pool)

    @property
    def total(self) -> Decimal:
        return self.white + self.black

    def side_pool(self, side: Side) -> Decimal:
        return self.white if side == Side.WHITE else self.black

    # --- ODDS ---
    def odds(self, side: Side) -> Decimal:
        """Decimal odds `total / side pool`. Even odds while nobody has bet."""
        if self.total == 0:
            return EVEN_ODDS
        return to_money(self.total / max(self.side_pool(side), EPSILON))

    def potential_payout(self, side: Side, stake: Decimal) -> Decimal:
        """Share of the combined pool if no further bets arrive."""
        side_after = self.side_pool(side) + stake
        total_after = self.total + stake
        return to_money(stake * total_after / side_after, rounding=ROUND_DOWN)

    # --- PLACING ---
    def place_bet(
        self,
        match: MatchModel,
        bettor_id: BettorID,
        side: str,
        stake: Decimal | int | float | str,
        now: datetime,
        existing_bet: Optional[BetModel] = None,
    ) -> tuple[BetModel, MatchModel]:
        """
        Validate and price a bet.
        ----

        Returns the new bet and a copy of the match with the pool totals updated. The match passed in is left as is,
        the caller persists both in one write.
        """
        chosen_side = parse_side(side)
        amount = parse_stake(stake)

        if match.status != MatchStatus.BETTING:
            raise BettingClosedError(f"Match {match.id} is {match.status}, betting is closed.")
        if now >= as_utc(match.betting_ends_at):
            raise BettingClosedError(f"Betting window of match {match.id} has closed.")
        if existing_bet is not None:
            raise DuplicateBetError(f"Bettor {bettor_id!r} already has a bet on match {match.id}.")

        bet = BetModel(
            id=uuid4(),
            match_id=match.id,
            bettor_id=bettor_id,
            side=chosen_side.value,
            stake=amount,
            potential_payout=self.potential_payout(chosen_side, amount),
            status=BetStatus.PENDING.value,
            created_at=now,
        )

        if chosen_side == Side.WHITE:
            self.white += amount
        else:
            self.black += amount
        updated = replace(
            match, total_pool=self.total, white_pool=self.white, black_pool=self.black
        )
        return bet, updated

    # --- SETTLEMENT ---
    def settle(self, bets: list[BetModel], result: MatchResult, now: datetime) -> list[BetModel]:
        """
        Resolve every pending bet of a finished match.
        ----

        * decisive result: winners get `stake / winning pool * total pool`, losers get 0
        * draw / cancelled: every stake is refunded

        Bets that are not pending are returned unchanged, so settling twice changes nothing.
        """
        winning_side = result.winning_side
        winning_pool = self.side_pool(winning_side) if winning_side is not None else Decimal("0")

        settled: list[BetModel] = []
        for bet in bets:
            if bet.status != BetStatus.PENDING:
                settled.append(bet)
                continue

            if winning_side is None:
                settled.append(
                    replace(bet, status=BetStatus.REFUNDED.value, payout=bet.stake, settled_at=now)
                )
            elif bet.side == winning_side:
                payout = to_money(bet.stake * self.total / winning_pool, rounding=ROUND_DOWN)
                settled.append(replace(bet, status=BetStatus.WON.value, payout=payout, settled_at=now))
            else:
                settled.append(
                    replace(bet, status=BetStatus.LOST.value, payout=Decimal("0"), settled_at=now)
                )

        logger.debug("Settled %d bet(s) for result %s", len(bets), result)
        return settled
