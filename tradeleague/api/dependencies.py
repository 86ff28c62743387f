from fastapi import Depends, Request
from sqlalchemy.orm import Session

from tradeleague.core import security
from tradeleague.core.database import SessionLocal
from tradeleague.models import user as user_model
from tradeleague.services.tournament_service import TournamentService
from tradeleague.services.trading_service import TradingService

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_current_user(token: str = Depends(security.oauth2_scheme), db: Session = Depends(get_db)) -> user_model.User:
    user_id = security.verify_token(token)
    user = db.query(user_model.User).filter(user_model.User.id == user_id).first()
    if user is None:
        raise security.credentials_exception
    return user

# Services are built once in the app lifespan and kept on app.state
def get_tournament_service(request: Request) -> TournamentService:
    return request.app.state.tournament_service

def get_trading_service(request: Request) -> TradingService:
    return request.app.state.trading_service
