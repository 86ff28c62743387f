"""Purchase records per (tournament, user, symbol) and FIFO consumption."""

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from tradeleague.core.errors import ConcurrencyConflict, InsufficientShares, ValidationError
from tradeleague.models import purchase as purchase_model
from tradeleague.services.ledger_service import money


@dataclass
class Holding:
    symbol: str
    company_name: str
    shares: int
    average_price: Decimal  # weighted over outstanding shares, display only
    cost_basis: Decimal
    last_purchase_price: Decimal


def normalize_symbol(symbol: str) -> str:
    symbol = (symbol or "").strip().upper()
    if not symbol:
        raise ValidationError("Symbol is required")
    return symbol


class HoldingsStore:

    def record_purchase(self, db: Session, tournament_id: int, user_id: int, symbol: str,
                        shares: int, price, company_name: str = "",
                        now: Optional[datetime] = None) -> purchase_model.Purchase:
        if shares <= 0:
            raise ValidationError("Shares must be a positive whole number")
        price = money(price)
        purchase = purchase_model.Purchase(
            tournament_id=tournament_id,
            user_id=user_id,
            symbol=normalize_symbol(symbol),
            company_name=company_name or "",
            shares=shares,
            remaining_shares=shares,
            purchase_price=price,
            total_cost=money(price * shares),
        )
        if now is not None:
            purchase.purchase_date = now
        db.add(purchase)
        db.flush()
        return purchase

    def purchases(self, db: Session, tournament_id: int, user_id: int,
                  symbol: Optional[str] = None, outstanding_only: bool = True) -> List[purchase_model.Purchase]:
        """Purchase rows oldest first."""
        query = db.query(purchase_model.Purchase).filter(
            purchase_model.Purchase.tournament_id == tournament_id,
            purchase_model.Purchase.user_id == user_id,
        )
        if symbol is not None:
            query = query.filter(purchase_model.Purchase.symbol == normalize_symbol(symbol))
        if outstanding_only:
            query = query.filter(purchase_model.Purchase.remaining_shares > 0)
        return query.order_by(
            purchase_model.Purchase.purchase_date.asc(),
            purchase_model.Purchase.id.asc(),
        ).populate_existing().all()

    def shares_held(self, db: Session, tournament_id: int, user_id: int, symbol: str) -> int:
        return sum(p.remaining_shares for p in self.purchases(db, tournament_id, user_id, symbol))

    def holdings(self, db: Session, tournament_id: int, user_id: int) -> List[Holding]:
        rows = self.purchases(db, tournament_id, user_id, outstanding_only=False)

        last_price: Dict[str, Decimal] = {}
        grouped: "OrderedDict[str, List[purchase_model.Purchase]]" = OrderedDict()
        for row in rows:
            # rows are oldest first, so the last assignment wins
            last_price[row.symbol] = money(row.purchase_price)
            if row.remaining_shares > 0:
                grouped.setdefault(row.symbol, []).append(row)

        result = []
        for symbol, lots in grouped.items():
            shares = sum(lot.remaining_shares for lot in lots)
            cost_basis = money(sum(money(lot.purchase_price) * lot.remaining_shares for lot in lots))
            result.append(Holding(
                symbol=symbol,
                company_name=lots[0].company_name,
                shares=shares,
                average_price=money(cost_basis / shares),
                cost_basis=cost_basis,
                last_purchase_price=last_price[symbol],
            ))
        return result

    def consume_fifo(self, db: Session, tournament_id: int, user_id: int, symbol: str,
                     shares: int) -> List[Tuple[int, int]]:
        """Take ``shares`` out of the oldest outstanding lots.

        Returns ``(purchase_id, shares_taken)`` pairs. An oversell raises
        ``InsufficientShares`` before anything is written.
        """
        if shares <= 0:
            raise ValidationError("Invalid number of shares to sell")

        lots = self.purchases(db, tournament_id, user_id, symbol)
        if not lots:
            raise InsufficientShares("No holdings found for this stock")
        owned = sum(lot.remaining_shares for lot in lots)
        if shares > owned:
            raise InsufficientShares(f"Cannot sell {shares} shares. You only own {owned} shares.")

        consumed = []
        left = shares
        for lot in lots:
            if left <= 0:
                break
            take = min(lot.remaining_shares, left)
            result = db.execute(
                update(purchase_model.Purchase)
                .where(
                    purchase_model.Purchase.id == lot.id,
                    purchase_model.Purchase.remaining_shares >= take,
                )
                .values(remaining_shares=purchase_model.Purchase.remaining_shares - take)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConcurrencyConflict(f"Purchase {lot.id} changed while selling")
            consumed.append((lot.id, take))
            left -= take
        return consumed

    def forfeit(self, db: Session, tournament_id: int, user_id: int) -> int:
        """Close every outstanding lot of a user leaving the tournament. Returns the shares dropped."""
        outstanding = self.purchases(db, tournament_id, user_id)
        dropped = 0
        for lot in outstanding:
            result = db.execute(
                update(purchase_model.Purchase)
                .where(
                    purchase_model.Purchase.id == lot.id,
                    purchase_model.Purchase.remaining_shares == lot.remaining_shares,
                )
                .values(remaining_shares=0)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConcurrencyConflict(f"Purchase {lot.id} changed while closing out")
            dropped += lot.remaining_shares
        return dropped
