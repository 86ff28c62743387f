from pydantic import BaseModel
from typing import Optional
from decimal import Decimal

class TradeRequest(BaseModel):
    symbol: str
    shares: int
    price: Decimal # Quote the client traded against

class PurchaseRequest(TradeRequest):
    company_name: Optional[str] = None

class TradeRead(BaseModel):
    trade_id: int
    trade_type: str # "buy" or "sell"
    symbol: str
    shares: int
    price: Decimal
    total_value: Decimal
    cash_balance: Decimal # Participant cash after the trade

    class Config:
        from_attributes = True

class HoldingRead(BaseModel):
    symbol: str
    company_name: str
    shares: int
    average_price: Decimal
    cost_basis: Decimal

    class Config:
        from_attributes = True
