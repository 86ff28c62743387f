from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal
from .user_schemas import UserRead

class ParticipantRead(BaseModel):
    id: int
    tournament_id: int
    user_id: int
    balance: Decimal # Virtual cash
    buy_in_paid: Decimal
    joined_at: Optional[datetime] = None
    user: UserRead

    class Config:
        from_attributes = True
