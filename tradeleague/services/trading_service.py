import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from tradeleague.core.clock import Clock, SystemClock
from tradeleague.core.database import atomic
from tradeleague.core.errors import NotFoundError, ValidationError, WrongState
from tradeleague.models import participant as participant_model
from tradeleague.models import trade as trade_model
from tradeleague.models import tournament as tournament_model
from tradeleague.models import user as user_model
from tradeleague.models.tournament import OPEN_STATUSES
from tradeleague.services.achievement_service import AchievementService
from tradeleague.services.holdings_service import HoldingsStore, normalize_symbol
from tradeleague.services.ledger_service import Ledger, money

logger = logging.getLogger(__name__)

TRADE_BUY = "buy"
TRADE_SELL = "sell"


@dataclass
class TradeResult:
    trade_id: int
    trade_type: str
    symbol: str
    shares: int
    price: Decimal
    total_value: Decimal
    cash_balance: Decimal
    lots: List[Tuple[int, int]] = None


class TradingService:
    """Buying and selling inside a tournament, with the participant's virtual cash."""

    def __init__(self, clock: Clock = None, ledger: Ledger = None, holdings: HoldingsStore = None,
                 achievements: AchievementService = None):
        self.clock = clock or SystemClock()
        self.ledger = ledger or Ledger()
        self.holdings = holdings or HoldingsStore()
        self.achievements = achievements or AchievementService()

    def _check_open(self, db: Session, tournament_id: int, user_id: int) -> None:
        status = db.query(tournament_model.Tournament.status).filter(
            tournament_model.Tournament.id == tournament_id
        ).scalar()
        if status is None:
            raise NotFoundError("Tournament not found")
        if status not in OPEN_STATUSES:
            raise WrongState(f"Trading is closed for {status} tournaments")

        participant_id = db.query(participant_model.Participant.id).filter(
            participant_model.Participant.tournament_id == tournament_id,
            participant_model.Participant.user_id == user_id,
        ).scalar()
        if participant_id is None:
            raise NotFoundError("You are not a participant in this tournament")

    def _validate(self, symbol: str, shares: int, price) -> Tuple[str, int, Decimal]:
        symbol = normalize_symbol(symbol)
        if not isinstance(shares, int) or shares <= 0:
            raise ValidationError("Shares must be a positive whole number")
        price = money(price)
        if price <= 0:
            raise ValidationError("Price must be positive")
        return symbol, shares, price

    def _log_trade(self, db: Session, tournament_id: int, user_id: int, trade_type: str, symbol: str,
                   shares: int, price: Decimal, total: Decimal) -> trade_model.Trade:
        trade = trade_model.Trade(
            tournament_id=tournament_id,
            user_id=user_id,
            trade_type=trade_type,
            symbol=symbol,
            shares=shares,
            price=price,
            total_value=total,
            executed_at=self.clock.now(),
        )
        db.add(trade)
        db.execute(
            update(user_model.User)
            .where(user_model.User.id == user_id)
            .values(total_trades=user_model.User.total_trades + 1)
            .execution_options(synchronize_session=False)
        )
        db.flush()
        return trade

    def _cash(self, db: Session, tournament_id: int, user_id: int) -> Decimal:
        balance = db.query(participant_model.Participant.balance).filter(
            participant_model.Participant.tournament_id == tournament_id,
            participant_model.Participant.user_id == user_id,
        ).scalar()
        return money(balance)

    def buy(self, db: Session, tournament_id: int, user_id: int, symbol: str, shares: int, price,
            company_name: str = "") -> TradeResult:
        symbol, shares, price = self._validate(symbol, shares, price)
        total = money(price * shares)
        now = self.clock.now()

        with atomic(db):
            self._check_open(db, tournament_id, user_id)
            first_purchase = not self.holdings.purchases(db, tournament_id, user_id, outstanding_only=False)
            self.ledger.debit_cash(db, tournament_id, user_id, total)
            self.holdings.record_purchase(db, tournament_id, user_id, symbol, shares, price, company_name, now)
            trade = self._log_trade(db, tournament_id, user_id, TRADE_BUY, symbol, shares, price, total)
            if first_purchase:
                self.achievements.award(db, user_id, "first_trade", tournament_id, now)
            cash = self._cash(db, tournament_id, user_id)

        logger.info(f"User {user_id} bought {shares} {symbol} @ {price:.2f} in tournament {tournament_id}")
        return TradeResult(trade.id, TRADE_BUY, symbol, shares, price, total, cash)

    def sell(self, db: Session, tournament_id: int, user_id: int, symbol: str, shares: int,
             price) -> TradeResult:
        symbol, shares, price = self._validate(symbol, shares, price)
        total = money(price * shares)

        with atomic(db):
            self._check_open(db, tournament_id, user_id)
            lots = self.holdings.consume_fifo(db, tournament_id, user_id, symbol, shares)
            self.ledger.credit_cash(db, tournament_id, user_id, total)
            trade = self._log_trade(db, tournament_id, user_id, TRADE_SELL, symbol, shares, price, total)
            cash = self._cash(db, tournament_id, user_id)

        logger.info(f"User {user_id} sold {shares} {symbol} @ {price:.2f} in tournament {tournament_id}")
        return TradeResult(trade.id, TRADE_SELL, symbol, shares, price, total, cash, lots)

    def trades(self, db: Session, tournament_id: int, user_id: int) -> List[trade_model.Trade]:
        return db.query(trade_model.Trade).filter(
            trade_model.Trade.tournament_id == tournament_id,
            trade_model.Trade.user_id == user_id,
        ).order_by(trade_model.Trade.executed_at.asc(), trade_model.Trade.id.asc()).all()
