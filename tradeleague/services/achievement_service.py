"""Tournament achievements.

Each user holds an achievement type at most once: ``award`` checks first and
the ``unique_user_achievement`` constraint backs it up, so repeated settlement
attempts never produce duplicates.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from tradeleague.core.config import settings
from tradeleague.core.errors import ValidationError
from tradeleague.models import achievement as achievement_model

logger = logging.getLogger(__name__)

TIER_COMMON = "common"
TIER_UNCOMMON = "uncommon"
TIER_RARE = "rare"
TIER_EPIC = "epic"
TIER_LEGENDARY = "legendary"
TIER_MYTHIC = "mythic"

# type -> (tier, name, description)
CATALOG = {
    "tournament_winner": (TIER_LEGENDARY, "Tournament Champion", "Won 1st place in a tournament"),
    "tournament_second": (TIER_EPIC, "Silver Medalist", "Finished 2nd in a tournament"),
    "tournament_third": (TIER_RARE, "Bronze Medalist", "Finished 3rd in a tournament"),
    "tournament_top5": (TIER_UNCOMMON, "Top 5 Finisher", "Finished in the top 5 of a tournament"),
    "high_performer": (TIER_EPIC, "High Performer", "Achieved over 50% profit in a tournament"),
    "profit_maker": (TIER_RARE, "Profit Maker", "Achieved over 20% profit in a tournament"),
    "tournament_legend": (TIER_MYTHIC, "Tournament Legend", "Won 10 tournaments"),
    "tournament_creator": (TIER_RARE, "Tournament Creator", "Created a tournament"),
    "tournament_participant": (TIER_COMMON, "Tournament Participant", "Joined a tournament"),
    "first_trade": (TIER_COMMON, "First Trade", "Made your first trade"),
}

# Earned once across all tournaments, so not tied to the one that triggered them
GLOBAL_TYPES = ("tournament_winner", "tournament_legend")

HIGH_PERFORMER_RATIO = Decimal("1.5")
PROFIT_MAKER_RATIO = Decimal("1.2")


def rank_achievement(rank: int) -> Optional[str]:
    if rank == 1:
        return "tournament_winner"
    if rank == 2:
        return "tournament_second"
    if rank == 3:
        return "tournament_third"
    if rank in (4, 5):
        return "tournament_top5"
    return None


def performance_achievement(total_value, starting_balance) -> Optional[str]:
    total_value = Decimal(str(total_value))
    starting_balance = Decimal(str(starting_balance))
    if starting_balance <= 0:
        return None
    if total_value >= starting_balance * HIGH_PERFORMER_RATIO:
        return "high_performer"
    if total_value >= starting_balance * PROFIT_MAKER_RATIO:
        return "profit_maker"
    return None


class AchievementService:
    def __init__(self, legend_threshold: int = None):
        self.legend_threshold = settings.LEGEND_WIN_THRESHOLD if legend_threshold is None else legend_threshold

    def has(self, db: Session, user_id: int, achievement_type: str) -> bool:
        return db.query(achievement_model.Achievement.id).filter(
            achievement_model.Achievement.user_id == user_id,
            achievement_model.Achievement.achievement_type == achievement_type,
        ).first() is not None

    def award(self, db: Session, user_id: int, achievement_type: str,
              tournament_id: Optional[int] = None, now: Optional[datetime] = None) -> bool:
        """Grant an achievement unless already held. Returns True when a row was added."""
        if achievement_type not in CATALOG:
            raise ValidationError(f"Unknown achievement type: {achievement_type}")
        if self.has(db, user_id, achievement_type):
            return False

        tier, name, description = CATALOG[achievement_type]
        if achievement_type in GLOBAL_TYPES:
            tournament_id = None
        achievement = achievement_model.Achievement(
            user_id=user_id,
            tournament_id=tournament_id,
            achievement_type=achievement_type,
            achievement_tier=tier,
            achievement_name=name,
            achievement_description=description,
        )
        if now is not None:
            achievement.earned_at = now

        # A concurrent award of the same type fails the flush; the caller's
        # atomic() block then rolls back and the work is retried.
        db.add(achievement)
        db.flush()
        logger.info(f"User {user_id} earned {achievement_type} ({tier})")
        return True

    def award_standing(self, db: Session, user_id: int, rank: int, total_value, starting_balance,
                       tournament_id: Optional[int] = None, now: Optional[datetime] = None) -> List[str]:
        awarded = []
        for achievement_type in (rank_achievement(rank), performance_achievement(total_value, starting_balance)):
            if achievement_type and self.award(db, user_id, achievement_type, tournament_id, now):
                awarded.append(achievement_type)
        return awarded

    def award_legend_if_due(self, db: Session, user_id: int, wins: int,
                            tournament_id: Optional[int] = None, now: Optional[datetime] = None) -> bool:
        if wins < self.legend_threshold:
            return False
        return self.award(db, user_id, "tournament_legend", tournament_id, now)

    def list_for_user(self, db: Session, user_id: int) -> List[achievement_model.Achievement]:
        return db.query(achievement_model.Achievement).filter(
            achievement_model.Achievement.user_id == user_id
        ).order_by(achievement_model.Achievement.earned_at.asc()).all()
