from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Numeric, Boolean, Text
from sqlalchemy.orm import relationship
from tradeleague.core.database import Base
import datetime

STATUS_WAITING = "waiting"
STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)
OPEN_STATUSES = (STATUS_WAITING, STATUS_ACTIVE)

class Tournament(Base):
    __tablename__ = "tournaments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    code = Column(String(8), unique=True, index=True, nullable=False)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    max_players = Column(Integer, nullable=False, default=10)
    current_players = Column(Integer, nullable=False, default=1)
    starting_balance = Column(Numeric(15, 2), nullable=False, default=10000)
    timeframe = Column(String, nullable=False, default="4 weeks") # e.g. "2 weeks", "30 minutes"
    status = Column(String, nullable=False, default=STATUS_WAITING, index=True) # waiting, active, completed, cancelled
    buy_in_amount = Column(Numeric(15, 2), nullable=False, default=0) # Real money
    current_pot = Column(Numeric(15, 2), nullable=False, default=0) # Sum of escrowed buy-ins
    tournament_type = Column(String(20), nullable=False, default="stocks") # "stocks" or "crypto"
    is_public = Column(Boolean, nullable=False, default=True)
    scheduled_start_time = Column(DateTime, nullable=True) # None means start immediately
    cancellation_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)

    creator = relationship("User", back_populates="created_tournaments")
    participants = relationship("Participant", back_populates="tournament", order_by="Participant.joined_at")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
