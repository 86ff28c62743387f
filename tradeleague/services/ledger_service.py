"""Money movements: user site cash, tournament pots and participant cash.

Every method issues a single conditional UPDATE whose WHERE clause carries the
precondition (enough balance, tournament still open, buy-in not yet refunded),
so concurrent callers never read-modify-write stale values. Nothing here
commits; callers group the calls of one operation inside ``atomic(db)``.
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import exists, update
from sqlalchemy.orm import Session

from tradeleague.core.errors import (
    ConcurrencyConflict,
    InsufficientFunds,
    NotFoundError,
    ValidationError,
    WrongState,
)
from tradeleague.models import ledger_entry as ledger_entry_model
from tradeleague.models import participant as participant_model
from tradeleague.models import tournament as tournament_model
from tradeleague.models import user as user_model
from tradeleague.models.ledger_entry import REASON_REFUND
from tradeleague.models.tournament import OPEN_STATUSES

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    """Round to the cent, half up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def _affected(result) -> bool:
    return result.rowcount == 1


class Ledger:

    # --- Real-money balances ---

    def debit(self, db: Session, user_id: int, amount, reason: str,
              tournament_id: Optional[int] = None, now: Optional[datetime] = None) -> Decimal:
        amount = money(amount)
        if amount <= 0:
            raise ValidationError("Debit amount must be positive")

        result = db.execute(
            update(user_model.User)
            .where(user_model.User.id == user_id, user_model.User.balance >= amount)
            .values(balance=user_model.User.balance - amount)
            .execution_options(synchronize_session=False)
        )
        if not _affected(result):
            balance = db.query(user_model.User.balance).filter(user_model.User.id == user_id).scalar()
            if balance is None:
                raise NotFoundError("User not found")
            raise InsufficientFunds(
                f"Insufficient site cash. You need {amount:.2f} but only have {money(balance):.2f}"
            )
        self._record(db, user_id, -amount, reason, tournament_id, now)
        return amount

    def credit(self, db: Session, user_id: int, amount, reason: str,
               tournament_id: Optional[int] = None, now: Optional[datetime] = None) -> Decimal:
        amount = money(amount)
        if amount <= 0:
            raise ValidationError("Credit amount must be positive")

        result = db.execute(
            update(user_model.User)
            .where(user_model.User.id == user_id)
            .values(balance=user_model.User.balance + amount)
            .execution_options(synchronize_session=False)
        )
        if not _affected(result):
            raise NotFoundError("User not found")
        self._record(db, user_id, amount, reason, tournament_id, now)
        return amount

    def _record(self, db: Session, user_id: int, amount: Decimal, reason: str,
                tournament_id: Optional[int], now: Optional[datetime]) -> None:
        entry = ledger_entry_model.LedgerEntry(
            user_id=user_id,
            tournament_id=tournament_id,
            amount=amount,
            reason=reason,
        )
        if now is not None:
            entry.created_at = now
        db.add(entry)

    # --- Tournament pot ---

    def accumulate_pot(self, db: Session, tournament_id: int, amount) -> None:
        amount = money(amount)
        result = db.execute(
            update(tournament_model.Tournament)
            .where(
                tournament_model.Tournament.id == tournament_id,
                tournament_model.Tournament.status.in_(OPEN_STATUSES),
            )
            .values(current_pot=tournament_model.Tournament.current_pot + amount)
            .execution_options(synchronize_session=False)
        )
        if not _affected(result):
            raise WrongState("Tournament is no longer accepting buy-ins")

    def release_pot(self, db: Session, tournament_id: int, amount) -> None:
        amount = money(amount)
        result = db.execute(
            update(tournament_model.Tournament)
            .where(
                tournament_model.Tournament.id == tournament_id,
                tournament_model.Tournament.current_pot >= amount,
            )
            .values(current_pot=tournament_model.Tournament.current_pot - amount)
            .execution_options(synchronize_session=False)
        )
        if not _affected(result):
            raise ConcurrencyConflict(f"Pot of tournament {tournament_id} cannot release {amount:.2f}")

    # --- Refunds ---

    def refund_participant(self, db: Session, tournament_id: int, user_id: int,
                           now: Optional[datetime] = None) -> Decimal:
        """Return a participant's escrowed buy-in from the pot. Refunds at most once."""
        participant = db.query(participant_model.Participant).filter(
            participant_model.Participant.tournament_id == tournament_id,
            participant_model.Participant.user_id == user_id,
        ).populate_existing().first()
        if participant is None:
            raise NotFoundError("Participant not found")

        amount = money(participant.buy_in_paid or 0)
        if amount <= 0:
            return ZERO

        result = db.execute(
            update(participant_model.Participant)
            .where(
                participant_model.Participant.id == participant.id,
                participant_model.Participant.buy_in_paid > 0,
            )
            .values(buy_in_paid=ZERO)
            .execution_options(synchronize_session=False)
        )
        if not _affected(result):
            raise ConcurrencyConflict(f"Buy-in of user {user_id} was already refunded")

        self.release_pot(db, tournament_id, amount)
        self.credit(db, user_id, amount, REASON_REFUND, tournament_id, now)
        logger.info(f"Refunded {amount:.2f} to user {user_id} for tournament {tournament_id}")
        return amount

    def refund_creator_buy_in(self, db: Session, tournament: tournament_model.Tournament,
                              now: Optional[datetime] = None) -> Decimal:
        return self.refund_participant(db, tournament.id, tournament.creator_id, now)

    # --- Participant (virtual) cash ---

    def _trading_open(self, tournament_id: int):
        return exists().where(
            tournament_model.Tournament.id == tournament_id,
            tournament_model.Tournament.status.in_(OPEN_STATUSES),
        )

    def _check_trading_open(self, db: Session, tournament_id: int) -> None:
        status = db.query(tournament_model.Tournament.status).filter(
            tournament_model.Tournament.id == tournament_id
        ).scalar()
        if status not in OPEN_STATUSES:
            raise WrongState(f"Trading is closed for {status} tournaments")

    def debit_cash(self, db: Session, tournament_id: int, user_id: int, amount) -> None:
        amount = money(amount)
        result = db.execute(
            update(participant_model.Participant)
            .where(
                participant_model.Participant.tournament_id == tournament_id,
                participant_model.Participant.user_id == user_id,
                participant_model.Participant.balance >= amount,
                self._trading_open(tournament_id),
            )
            .values(balance=participant_model.Participant.balance - amount)
            .execution_options(synchronize_session=False)
        )
        if not _affected(result):
            self._check_trading_open(db, tournament_id)
            raise InsufficientFunds("Insufficient balance for this purchase")

    def credit_cash(self, db: Session, tournament_id: int, user_id: int, amount) -> None:
        amount = money(amount)
        result = db.execute(
            update(participant_model.Participant)
            .where(
                participant_model.Participant.tournament_id == tournament_id,
                participant_model.Participant.user_id == user_id,
                self._trading_open(tournament_id),
            )
            .values(balance=participant_model.Participant.balance + amount)
            .execution_options(synchronize_session=False)
        )
        if not _affected(result):
            self._check_trading_open(db, tournament_id)
            raise NotFoundError("Participant not found")
