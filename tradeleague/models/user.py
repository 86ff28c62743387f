from sqlalchemy import Column, Integer, String, Numeric, DateTime
from sqlalchemy.orm import relationship
from tradeleague.core.database import Base
import datetime

ROLE_USER = "user"
ROLE_ADMIN = "admin"

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(15), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    balance = Column(Numeric(15, 2), nullable=False, default=0) # Real-money site cash, never negative
    role = Column(String(20), nullable=False, default=ROLE_USER) # The one authorization attribute: "user" or "admin"
    tournament_wins = Column(Integer, nullable=False, default=0)
    total_trades = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    created_tournaments = relationship("Tournament", back_populates="creator")
    participations = relationship("Participant", back_populates="user")
    achievements = relationship("Achievement", back_populates="user")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
