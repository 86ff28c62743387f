from typing import List, Dict

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from tradeleague.services.tournament_service import TournamentService
from tradeleague.services.trading_service import TradingService
from tradeleague.models import user as user_model
from tradeleague.schemas import tournament_schemas, participant_schemas, trade_schemas
from tradeleague.api.dependencies import get_db, get_current_user, get_tournament_service, get_trading_service

router = APIRouter()

@router.post("/", response_model=tournament_schemas.TournamentRead, status_code=status.HTTP_201_CREATED)
async def create_tournament_endpoint(
    tournament_in: tournament_schemas.TournamentCreate,
    db: Session = Depends(get_db),
    current_user: user_model.User = Depends(get_current_user),
    service: TournamentService = Depends(get_tournament_service),
):
    return service.create_tournament(db=db, tournament_in=tournament_in, creator_id=current_user.id)

@router.get("/", response_model=List[tournament_schemas.TournamentRead])
async def get_user_tournaments_endpoint(
    db: Session = Depends(get_db),
    current_user: user_model.User = Depends(get_current_user),
    service: TournamentService = Depends(get_tournament_service),
):
    return service.get_user_tournaments(db=db, user_id=current_user.id)

@router.get("/public", response_model=List[tournament_schemas.TournamentRead])
async def get_public_tournaments_endpoint(
    db: Session = Depends(get_db),
    service: TournamentService = Depends(get_tournament_service),
):
    return service.list_public(db=db)

@router.get("/{tournament_id}", response_model=tournament_schemas.TournamentRead)
async def get_tournament_endpoint(
    tournament_id: int,
    db: Session = Depends(get_db),
    service: TournamentService = Depends(get_tournament_service),
):
    return service.get_tournament(db=db, tournament_id=tournament_id)

@router.get("/{tournament_id}/participants", response_model=List[participant_schemas.ParticipantRead])
async def list_participants_endpoint(
    tournament_id: int,
    db: Session = Depends(get_db),
    service: TournamentService = Depends(get_tournament_service),
):
    return service.list_participants(db=db, tournament_id=tournament_id)

@router.post("/{tournament_id}/join", response_model=participant_schemas.ParticipantRead)
async def join_tournament_endpoint(
    tournament_id: int,
    db: Session = Depends(get_db),
    current_user: user_model.User = Depends(get_current_user),
    service: TournamentService = Depends(get_tournament_service),
):
    return service.join_tournament(db=db, tournament_id=tournament_id, user_id=current_user.id)

@router.post("/code/{code}/join", response_model=participant_schemas.ParticipantRead)
async def join_tournament_by_code_endpoint(
    code: str,
    db: Session = Depends(get_db),
    current_user: user_model.User = Depends(get_current_user),
    service: TournamentService = Depends(get_tournament_service),
):
    return service.join_by_code(db=db, code=code, user_id=current_user.id)

@router.post("/{tournament_id}/start-early", response_model=tournament_schemas.TournamentRead)
async def start_early_endpoint(
    tournament_id: int,
    db: Session = Depends(get_db),
    current_user: user_model.User = Depends(get_current_user),
    service: TournamentService = Depends(get_tournament_service),
):
    return service.start_early(db=db, tournament_id=tournament_id, requester_id=current_user.id)

@router.delete("/{tournament_id}/cancel", response_model=tournament_schemas.TournamentRead)
async def cancel_tournament_endpoint(
    tournament_id: int,
    db: Session = Depends(get_db),
    current_user: user_model.User = Depends(get_current_user),
    service: TournamentService = Depends(get_tournament_service),
):
    return service.cancel(db=db, tournament_id=tournament_id, requester_id=current_user.id)

@router.delete("/{tournament_id}/participants/{user_id}", response_model=Dict[str, str])
async def kick_participant_endpoint(
    tournament_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: user_model.User = Depends(get_current_user),
    service: TournamentService = Depends(get_tournament_service),
):
    service.kick_participant(db=db, tournament_id=tournament_id, participant_user_id=user_id, requester_id=current_user.id)
    return {"message": "Participant removed successfully"}

@router.post("/{tournament_id}/purchase", response_model=trade_schemas.TradeRead)
async def purchase_endpoint(
    tournament_id: int,
    order: trade_schemas.PurchaseRequest,
    db: Session = Depends(get_db),
    current_user: user_model.User = Depends(get_current_user),
    trading: TradingService = Depends(get_trading_service),
):
    return trading.buy(
        db=db, tournament_id=tournament_id, user_id=current_user.id,
        symbol=order.symbol, shares=order.shares, price=order.price, company_name=order.company_name or "",
    )

@router.post("/{tournament_id}/sell", response_model=trade_schemas.TradeRead)
async def sell_endpoint(
    tournament_id: int,
    order: trade_schemas.TradeRequest,
    db: Session = Depends(get_db),
    current_user: user_model.User = Depends(get_current_user),
    trading: TradingService = Depends(get_trading_service),
):
    return trading.sell(
        db=db, tournament_id=tournament_id, user_id=current_user.id,
        symbol=order.symbol, shares=order.shares, price=order.price,
    )

@router.get("/{tournament_id}/holdings", response_model=List[trade_schemas.HoldingRead])
async def holdings_endpoint(
    tournament_id: int,
    db: Session = Depends(get_db),
    current_user: user_model.User = Depends(get_current_user),
    service: TournamentService = Depends(get_tournament_service),
):
    return service.holdings(db=db, tournament_id=tournament_id, user_id=current_user.id)

@router.get("/{tournament_id}/leaderboard", response_model=List[tournament_schemas.StandingRead])
def leaderboard_endpoint(
    tournament_id: int,
    db: Session = Depends(get_db),
    service: TournamentService = Depends(get_tournament_service),
):
    return service.leaderboard(db=db, tournament_id=tournament_id)
