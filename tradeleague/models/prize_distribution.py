from sqlalchemy import Column, Integer, ForeignKey, DateTime, Numeric
from tradeleague.core.database import Base
import datetime

class PrizeDistribution(Base):
    __tablename__ = "prize_distributions"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False, unique=True)
    winner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    total_pot = Column(Numeric(15, 2), nullable=False)
    winner_amount = Column(Numeric(15, 2), nullable=False) # 95% of the pot
    creator_amount = Column(Numeric(15, 2), nullable=False) # 5% of the pot
    participant_count = Column(Integer, nullable=False)
    distributed_at = Column(DateTime, default=datetime.datetime.utcnow)
