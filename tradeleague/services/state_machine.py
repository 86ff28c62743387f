"""Tournament status transitions.

    waiting -> active | cancelled
    active  -> completed

``completed`` and ``cancelled`` are terminal. Each transition is one UPDATE
guarded by the expected current status, so two callers racing on the same
tournament cannot both apply it: the loser gets ``ConcurrencyConflict``.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from tradeleague.core.config import settings
from tradeleague.core.errors import ConcurrencyConflict, NotFoundError, WrongState
from tradeleague.models import tournament as tournament_model
from tradeleague.models.tournament import (
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_WAITING,
)

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
DAY_MS = 24 * 60 * MINUTE_MS
DEFAULT_DURATION_MS = 28 * DAY_MS

_DURATION_RE = re.compile(r"(\d+)\s*(minute|minutes|day|days|week|weeks|month|months)", re.IGNORECASE)
_UNIT_MS = {
    "minute": MINUTE_MS,
    "day": DAY_MS,
    "week": 7 * DAY_MS,
    "month": 30 * DAY_MS,
}

TRANSITIONS = {
    STATUS_WAITING: {STATUS_ACTIVE, STATUS_CANCELLED},
    STATUS_ACTIVE: {STATUS_COMPLETED},
    STATUS_COMPLETED: set(),
    STATUS_CANCELLED: set(),
}

INSUFFICIENT_PLAYERS_REASON = "Insufficient players - minimum {} players required to start"


def parse_duration(timeframe: Optional[str]) -> int:
    """Length of a timeframe string in milliseconds; 28 days when unrecognized."""
    match = _DURATION_RE.search(timeframe or "")
    if not match:
        return DEFAULT_DURATION_MS
    value = int(match.group(1))
    unit = match.group(2).lower().rstrip("s")
    return value * _UNIT_MS[unit]


class TournamentStateMachine:
    def __init__(self, min_players: int = None, expire_from_started_at: bool = None):
        self.min_players = settings.MIN_PLAYERS_TO_START if min_players is None else min_players
        self.expire_from_started_at = (
            settings.EXPIRE_FROM_STARTED_AT if expire_from_started_at is None else expire_from_started_at
        )

    # --- Rules ---

    def can_transition(self, from_status: str, to_status: str) -> bool:
        return to_status in TRANSITIONS.get(from_status, set())

    def expires_at(self, tournament: tournament_model.Tournament) -> datetime:
        origin = tournament.created_at
        if self.expire_from_started_at and tournament.started_at is not None:
            origin = tournament.started_at
        return origin + timedelta(milliseconds=parse_duration(tournament.timeframe))

    def is_expired(self, tournament: tournament_model.Tournament, now: datetime) -> bool:
        return tournament.status == STATUS_ACTIVE and now > self.expires_at(tournament)

    def is_start_due(self, tournament: tournament_model.Tournament, now: datetime) -> bool:
        if tournament.status != STATUS_WAITING:
            return False
        return tournament.scheduled_start_time is None or now >= tournament.scheduled_start_time

    def decide_waiting(self, tournament: tournament_model.Tournament, now: datetime) -> Optional[str]:
        """Where a waiting tournament should go at ``now``, or None to keep waiting."""
        if not self.is_start_due(tournament, now):
            return None
        if tournament.current_players >= self.min_players:
            return STATUS_ACTIVE
        if tournament.scheduled_start_time is None:
            # Unscheduled tournaments wait for players or for their creator.
            return None
        return STATUS_CANCELLED

    # --- Queries ---

    def due_waiting(self, db: Session, now: datetime) -> List[tournament_model.Tournament]:
        waiting = db.query(tournament_model.Tournament).filter(
            tournament_model.Tournament.status == STATUS_WAITING,
            or_(
                tournament_model.Tournament.scheduled_start_time.is_(None),
                tournament_model.Tournament.scheduled_start_time <= now,
            ),
        ).order_by(tournament_model.Tournament.id).all()
        return waiting

    def expired_active(self, db: Session, now: datetime) -> List[tournament_model.Tournament]:
        active = db.query(tournament_model.Tournament).filter(
            tournament_model.Tournament.status == STATUS_ACTIVE
        ).order_by(tournament_model.Tournament.id).all()
        return [t for t in active if self.is_expired(t, now)]

    # --- Transitions ---

    def transition(self, db: Session, tournament_id: int, from_status: str, to_status: str, **values) -> None:
        """Conditional status update. Does not commit."""
        if not self.can_transition(from_status, to_status):
            raise WrongState(f"Tournament cannot move from {from_status} to {to_status}")

        result = db.execute(
            update(tournament_model.Tournament)
            .where(
                tournament_model.Tournament.id == tournament_id,
                tournament_model.Tournament.status == from_status,
            )
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = db.query(tournament_model.Tournament.status).filter(
                tournament_model.Tournament.id == tournament_id
            ).scalar()
            if current is None:
                raise NotFoundError("Tournament not found")
            raise ConcurrencyConflict(
                f"Tournament {tournament_id} is {current}, expected {from_status}"
            )
        logger.info(f"Tournament {tournament_id}: {from_status} -> {to_status}")

    def activate(self, db: Session, tournament_id: int, now: datetime) -> None:
        self.transition(db, tournament_id, STATUS_WAITING, STATUS_ACTIVE, started_at=now)

    def cancel(self, db: Session, tournament_id: int, now: datetime, reason: str) -> None:
        self.transition(
            db, tournament_id, STATUS_WAITING, STATUS_CANCELLED,
            ended_at=now, cancellation_reason=reason,
        )

    def complete(self, db: Session, tournament_id: int, now: datetime) -> None:
        self.transition(db, tournament_id, STATUS_ACTIVE, STATUS_COMPLETED, ended_at=now)
