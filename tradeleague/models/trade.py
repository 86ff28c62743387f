from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Numeric
from tradeleague.core.database import Base
import datetime

class Trade(Base):
    __tablename__ = "tournament_trades"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    trade_type = Column(String(4), nullable=False) # "buy" or "sell"
    symbol = Column(String, nullable=False)
    shares = Column(Integer, nullable=False)
    price = Column(Numeric(15, 2), nullable=False)
    total_value = Column(Numeric(15, 2), nullable=False)
    executed_at = Column(DateTime, default=datetime.datetime.utcnow)
