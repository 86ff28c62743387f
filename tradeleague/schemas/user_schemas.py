from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal

class UserRead(BaseModel):
    id: int
    username: str

    class Config:
        from_attributes = True

class UserStats(UserRead):
    balance: Decimal
    tournament_wins: int
    total_trades: int

    class Config:
        from_attributes = True

class AchievementRead(BaseModel):
    achievement_type: str
    achievement_tier: str # common, uncommon, rare, epic, legendary, mythic
    achievement_name: str
    achievement_description: str
    tournament_id: Optional[int] = None
    earned_at: Optional[datetime] = None

    class Config:
        from_attributes = True
