from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from tradeleague.core.database import Base
import datetime

class Achievement(Base):
    __tablename__ = "user_achievements"
    __table_args__ = (
        # A user holds each achievement type at most once
        UniqueConstraint("user_id", "achievement_type", name="unique_user_achievement"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=True)
    achievement_type = Column(String, nullable=False)
    achievement_tier = Column(String, nullable=False) # common, uncommon, rare, epic, legendary, mythic
    achievement_name = Column(String, nullable=False)
    achievement_description = Column(Text, nullable=False)
    earned_at = Column(DateTime, default=datetime.datetime.utcnow)

    user = relationship("User", back_populates="achievements")
