from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from tradeleague.models import user as user_model
from tradeleague.schemas import user_schemas
from tradeleague.services.achievement_service import AchievementService
from tradeleague.api.dependencies import get_db, get_current_user

router = APIRouter()

@router.get("/me", response_model=user_schemas.UserStats)
async def read_users_me(
    current_user: user_model.User = Depends(get_current_user)
):
    return current_user

@router.get("/me/achievements", response_model=List[user_schemas.AchievementRead])
async def read_my_achievements(
    db: Session = Depends(get_db),
    current_user: user_model.User = Depends(get_current_user),
):
    return AchievementService().list_for_user(db=db, user_id=current_user.id)
