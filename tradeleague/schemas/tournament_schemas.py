from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal
from .user_schemas import UserRead # Import UserRead

class TournamentBase(BaseModel):
    name: str
    max_players: int = 10
    starting_balance: Decimal = Decimal("10000")
    timeframe: str = "1 week" # e.g., "30 minutes", "2 weeks", "1 month"
    buy_in_amount: Decimal = Decimal("0")
    tournament_type: str = "stocks" # "stocks" or "crypto"
    is_public: bool = True

class TournamentCreate(TournamentBase):
    scheduled_start_time: Optional[datetime] = None # None starts right away

class TournamentRead(TournamentBase):
    id: int
    code: str
    creator_id: int
    current_players: int
    current_pot: Decimal
    status: str
    scheduled_start_time: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    creator: UserRead # Nested UserRead schema

    class Config:
        from_attributes = True

class StandingRead(BaseModel):
    rank: int
    user_id: int
    username: str
    cash_balance: Decimal
    stock_value: Decimal
    total_value: Decimal
    joined_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class TickReportRead(BaseModel):
    skipped: bool = False # True when a pass was already running
    started: list[int] = []
    cancelled: list[int] = []
    completed: list[int] = []
    failed: list[int] = []
