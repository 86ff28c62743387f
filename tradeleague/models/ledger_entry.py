from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Numeric
from tradeleague.core.database import Base
import datetime

REASON_BUY_IN = "buy_in"
REASON_REFUND = "refund"
REASON_PRIZE_WINNER = "prize_winner"
REASON_PRIZE_CREATOR = "prize_creator"

class LedgerEntry(Base):
    """Audit row for every movement of a user's real-money balance."""
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=True, index=True)
    amount = Column(Numeric(15, 2), nullable=False) # Negative for debits
    reason = Column(String(20), nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
