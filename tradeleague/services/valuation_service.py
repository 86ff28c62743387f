"""Mark-to-market standings for a tournament."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from tradeleague.core.errors import NotFoundError
from tradeleague.models import participant as participant_model
from tradeleague.models import tournament as tournament_model
from tradeleague.models import user as user_model
from tradeleague.services.holdings_service import HoldingsStore
from tradeleague.services.ledger_service import ZERO, money
from tradeleague.services.quote_service import QuoteProvider

logger = logging.getLogger(__name__)


@dataclass
class Standing:
    user_id: int
    username: str
    cash_balance: Decimal
    stock_value: Decimal
    total_value: Decimal
    joined_at: Optional[datetime]
    rank: int = 0
    participant_id: int = 0
    fallback_symbols: List[str] = field(default_factory=list)


class PortfolioValuator:
    def __init__(self, quote_provider: QuoteProvider, holdings: HoldingsStore = None):
        self.quote_provider = quote_provider
        self.holdings = holdings or HoldingsStore()

    def _price(self, symbol: str, fallback: Decimal, cache: Dict[str, Optional[Decimal]]) -> Optional[Decimal]:
        """Current price, or None when only the fallback is available."""
        if symbol not in cache:
            try:
                cache[symbol] = Decimal(str(self.quote_provider.get_quote(symbol).price))
            except Exception as exc:
                # QuoteUnavailable, timeouts and provider bugs all degrade the same way
                logger.warning(f"Quote for {symbol} unavailable ({exc}); valuing at last purchase price {fallback}")
                cache[symbol] = None
        return cache[symbol]

    def value_participant(self, db: Session, participant: participant_model.Participant,
                          username: str = "", quote_cache: Dict[str, Optional[Decimal]] = None) -> Standing:
        quote_cache = {} if quote_cache is None else quote_cache
        stock_value = ZERO
        fallbacks = []
        for holding in self.holdings.holdings(db, participant.tournament_id, participant.user_id):
            price = self._price(holding.symbol, holding.last_purchase_price, quote_cache)
            if price is None:
                price = holding.last_purchase_price
                fallbacks.append(holding.symbol)
            stock_value += price * holding.shares

        cash = money(participant.balance)
        stock_value = money(stock_value)
        return Standing(
            user_id=participant.user_id,
            username=username,
            cash_balance=cash,
            stock_value=stock_value,
            total_value=cash + stock_value,
            joined_at=participant.joined_at,
            participant_id=participant.id,
            fallback_symbols=fallbacks,
        )

    def valuate(self, db: Session, tournament_id: int) -> List[Standing]:
        """Standings by total value, highest first; ties go to the earlier joiner."""
        exists = db.query(tournament_model.Tournament.id).filter(
            tournament_model.Tournament.id == tournament_id
        ).scalar()
        if exists is None:
            raise NotFoundError("Tournament not found")

        rows = db.query(participant_model.Participant, user_model.User.username).join(
            user_model.User, user_model.User.id == participant_model.Participant.user_id
        ).filter(
            participant_model.Participant.tournament_id == tournament_id
        ).populate_existing().all()

        quote_cache: Dict[str, Optional[Decimal]] = {}
        standings = [self.value_participant(db, p, username, quote_cache) for p, username in rows]
        standings.sort(key=lambda s: (
            -s.total_value,
            s.joined_at or datetime.max,
            s.participant_id,
        ))
        for index, standing in enumerate(standings):
            standing.rank = index + 1
        return standings
