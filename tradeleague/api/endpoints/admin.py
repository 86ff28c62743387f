from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tradeleague.services.tournament_service import TournamentService
from tradeleague.models import user as user_model
from tradeleague.schemas import tournament_schemas
from tradeleague.api.dependencies import get_db, get_current_user, get_tournament_service

router = APIRouter()

# Sync handler: the pass runs in FastAPI's threadpool, not on the event loop
@router.post("/tournaments/check-expiration", response_model=tournament_schemas.TickReportRead)
def check_expiration_endpoint(
    db: Session = Depends(get_db),
    current_user: user_model.User = Depends(get_current_user),
    service: TournamentService = Depends(get_tournament_service),
):
    report = service.manual_expiration_sweep(db=db, requester_id=current_user.id)
    if report is None:
        return tournament_schemas.TickReportRead(skipped=True)
    return tournament_schemas.TickReportRead(
        started=report.started,
        cancelled=report.cancelled,
        completed=report.completed,
        failed=report.failed,
    )
