"""Pot distribution and final awards for an expired tournament."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from tradeleague.core.database import atomic
from tradeleague.core.errors import NotFoundError
from tradeleague.models import prize_distribution as prize_distribution_model
from tradeleague.models import tournament as tournament_model
from tradeleague.models import user as user_model
from tradeleague.models.ledger_entry import REASON_PRIZE_CREATOR, REASON_PRIZE_WINNER
from tradeleague.services.achievement_service import AchievementService
from tradeleague.services.ledger_service import ZERO, Ledger, money
from tradeleague.services.state_machine import TournamentStateMachine
from tradeleague.services.valuation_service import PortfolioValuator, Standing

logger = logging.getLogger(__name__)

WINNER_SHARE = Decimal("0.95")
CREATOR_SHARE = Decimal("0.05")


def split_pot(pot) -> Tuple[Decimal, Decimal]:
    """95% to the winner, 5% to the creator, each rounded to the cent on its own.

    The two amounts can differ from the pot by up to one cent.
    """
    pot = Decimal(str(pot))
    return money(pot * WINNER_SHARE), money(pot * CREATOR_SHARE)


@dataclass
class SettlementResult:
    tournament_id: int
    winner_id: Optional[int] = None
    total_pot: Decimal = ZERO
    winner_amount: Decimal = ZERO
    creator_amount: Decimal = ZERO
    awarded: List[Tuple[int, str]] = field(default_factory=list)


class SettlementEngine:
    def __init__(self, ledger: Ledger = None, state_machine: TournamentStateMachine = None,
                 achievements: AchievementService = None, valuator: PortfolioValuator = None):
        self.ledger = ledger or Ledger()
        self.state_machine = state_machine or TournamentStateMachine()
        self.achievements = achievements or AchievementService()
        self.valuator = valuator

    def finalize(self, db: Session, tournament_id: int, now: datetime) -> SettlementResult:
        """Value every portfolio and settle. Used by the scheduler for expired tournaments."""
        tournament = self.load_tournament(db, tournament_id)
        standings = self.valuator.valuate(db, tournament_id)
        return self.settle(db, tournament, standings, now)

    def settle(self, db: Session, tournament: tournament_model.Tournament,
               standings: List[Standing], now: datetime) -> SettlementResult:
        """Complete the tournament, pay out the pot and hand out achievements.

        Runs as one transaction. If anything fails the tournament stays active
        and the next scheduler pass tries again.
        """
        tournament_id = tournament.id
        result = SettlementResult(tournament_id=tournament_id)

        with atomic(db):
            tournament = self.load_tournament(db, tournament_id)
            self.state_machine.complete(db, tournament_id, now)

            pot = money(tournament.current_pot or 0)
            result.total_pot = pot
            if not standings:
                logger.info(f"Tournament {tournament_id} completed with no participants")
                return result

            winner = standings[0]
            result.winner_id = winner.user_id

            if pot > 0:
                self._distribute(db, tournament, winner, pot, len(standings), now, result)
            else:
                logger.info(f"Tournament {tournament_id} completed without a pot")

            for standing in standings:
                for achievement_type in self.achievements.award_standing(
                    db, standing.user_id, standing.rank, standing.total_value,
                    tournament.starting_balance, tournament_id, now,
                ):
                    result.awarded.append((standing.user_id, achievement_type))

            wins = self._record_win(db, winner.user_id)
            if self.achievements.award_legend_if_due(db, winner.user_id, wins, tournament_id, now):
                result.awarded.append((winner.user_id, "tournament_legend"))

        logger.info(
            f"Settled tournament {tournament_id}: winner {result.winner_id}, "
            f"pot {result.total_pot:.2f}, {len(result.awarded)} achievements"
        )
        return result

    def load_tournament(self, db: Session, tournament_id: int) -> tournament_model.Tournament:
        tournament = db.query(tournament_model.Tournament).filter(
            tournament_model.Tournament.id == tournament_id
        ).populate_existing().first()
        if tournament is None:
            raise NotFoundError("Tournament not found")
        return tournament

    def _distribute(self, db: Session, tournament: tournament_model.Tournament, winner: Standing,
                    pot: Decimal, participant_count: int, now: datetime, result: SettlementResult) -> None:
        winner_amount, creator_amount = split_pot(pot)

        # unique tournament_id: a second payout for the same tournament fails here
        db.add(prize_distribution_model.PrizeDistribution(
            tournament_id=tournament.id,
            winner_id=winner.user_id,
            creator_id=tournament.creator_id,
            total_pot=pot,
            winner_amount=winner_amount,
            creator_amount=creator_amount,
            participant_count=participant_count,
            distributed_at=now,
        ))
        db.flush()

        if winner_amount > 0:
            self.ledger.credit(db, winner.user_id, winner_amount, REASON_PRIZE_WINNER, tournament.id, now)
        if creator_amount > 0:
            self.ledger.credit(db, tournament.creator_id, creator_amount, REASON_PRIZE_CREATOR, tournament.id, now)

        result.winner_amount = winner_amount
        result.creator_amount = creator_amount
        logger.info(
            f"Tournament {tournament.id} pot {pot:.2f}: {winner_amount:.2f} to winner {winner.user_id}, "
            f"{creator_amount:.2f} to creator {tournament.creator_id}"
        )

    def _record_win(self, db: Session, user_id: int) -> int:
        db.execute(
            update(user_model.User)
            .where(user_model.User.id == user_id)
            .values(tournament_wins=user_model.User.tournament_wins + 1)
            .execution_options(synchronize_session=False)
        )
        return db.query(user_model.User.tournament_wins).filter(user_model.User.id == user_id).scalar() or 0
