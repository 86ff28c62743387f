from sqlalchemy import Column, Integer, ForeignKey, DateTime, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship
from tradeleague.core.database import Base
import datetime

class Participant(Base):
    __tablename__ = "tournament_participants"
    __table_args__ = (
        UniqueConstraint("tournament_id", "user_id", name="unique_user_tournament"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    balance = Column(Numeric(15, 2), nullable=False) # Virtual cash, never negative
    buy_in_paid = Column(Numeric(15, 2), nullable=False, default=0) # Real money escrowed in the pot
    joined_at = Column(DateTime, default=datetime.datetime.utcnow)

    user = relationship("User", back_populates="participations")
    tournament = relationship("Tournament", back_populates="participants")
