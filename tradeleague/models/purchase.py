from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Numeric
from tradeleague.core.database import Base
import datetime

class Purchase(Base):
    """One buy inside a tournament.

    Rows are never deleted. Sells consume ``remaining_shares`` oldest row first,
    so ``shares`` keeps the originally bought quantity.
    """
    __tablename__ = "tournament_purchases"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    symbol = Column(String, nullable=False, index=True)
    company_name = Column(String, nullable=False, default="")
    shares = Column(Integer, nullable=False)
    remaining_shares = Column(Integer, nullable=False)
    purchase_price = Column(Numeric(15, 2), nullable=False)
    total_cost = Column(Numeric(15, 2), nullable=False)
    purchase_date = Column(DateTime, default=datetime.datetime.utcnow, nullable=False)
