"""Background lifecycle pass.

Each pass starts or cancels due waiting tournaments, then settles expired
active ones. Every tournament is handled in its own session; a failure is
logged with the tournament id and the pass moves on.
"""

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from tradeleague.core.clock import Clock, SystemClock
from tradeleague.core.config import settings
from tradeleague.core.database import atomic
from tradeleague.core.errors import ConcurrencyConflict
from tradeleague.models import participant as participant_model
from tradeleague.models.tournament import STATUS_ACTIVE, STATUS_CANCELLED
from tradeleague.services.ledger_service import Ledger
from tradeleague.services.settlement_service import SettlementEngine
from tradeleague.services.state_machine import INSUFFICIENT_PLAYERS_REASON, TournamentStateMachine

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    started: List[int] = field(default_factory=list)
    cancelled: List[int] = field(default_factory=list)
    completed: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    ran_at: Optional[datetime] = None


class TournamentScheduler:
    def __init__(self, session_factory: Callable[[], Session], settlement: SettlementEngine,
                 clock: Clock = None, state_machine: TournamentStateMachine = None,
                 ledger: Ledger = None, interval_seconds: float = None):
        self.session_factory = session_factory
        self.settlement = settlement
        self.clock = clock or SystemClock()
        self.state_machine = state_machine or settlement.state_machine
        self.ledger = ledger or settlement.ledger
        self.interval_seconds = settings.SCHEDULER_INTERVAL_SECONDS if interval_seconds is None else interval_seconds

        # Shared by the background loop and the manual sweep
        self._pass_lock = threading.Lock()
        self._running = False
        self._task: Optional[asyncio.Task] = None

    # --- One pass ---

    def run_once(self) -> Optional[TickReport]:
        """Run a full pass. Returns None if another pass is still in progress."""
        if not self._pass_lock.acquire(blocking=False):
            logger.warning("Tournament pass already running, skipping")
            return None
        try:
            now = self.clock.now()
            report = TickReport(ran_at=now)
            self._process_waiting(now, report)
            self._process_expired(now, report)
            if report.started or report.cancelled or report.completed or report.failed:
                logger.info(
                    f"Tournament pass: {len(report.started)} started, {len(report.cancelled)} cancelled, "
                    f"{len(report.completed)} completed, {len(report.failed)} failed"
                )
            return report
        finally:
            self._pass_lock.release()

    def _process_waiting(self, now: datetime, report: TickReport) -> None:
        with self.session_factory() as db:
            due_ids = [t.id for t in self.state_machine.due_waiting(db, now)]

        for tournament_id in due_ids:
            try:
                with self.session_factory() as db:
                    outcome = self.resolve_waiting(db, tournament_id, now)
                if outcome == STATUS_ACTIVE:
                    report.started.append(tournament_id)
                elif outcome == STATUS_CANCELLED:
                    report.cancelled.append(tournament_id)
            except ConcurrencyConflict as exc:
                logger.warning(f"Tournament {tournament_id} changed during the pass: {exc.message}")
            except Exception:
                logger.exception(f"Failed to start or cancel tournament {tournament_id}")
                report.failed.append(tournament_id)

    def _process_expired(self, now: datetime, report: TickReport) -> None:
        with self.session_factory() as db:
            expired_ids = [t.id for t in self.state_machine.expired_active(db, now)]

        for tournament_id in expired_ids:
            try:
                with self.session_factory() as db:
                    self.settlement.finalize(db, tournament_id, now)
                report.completed.append(tournament_id)
            except ConcurrencyConflict as exc:
                logger.warning(f"Tournament {tournament_id} already settled elsewhere: {exc.message}")
            except Exception:
                # Stays active; retried on the next pass
                logger.exception(f"Failed to settle tournament {tournament_id}")
                report.failed.append(tournament_id)

    def resolve_waiting(self, db: Session, tournament_id: int, now: datetime) -> Optional[str]:
        """Start or cancel one waiting tournament. Returns the new status, if any."""
        tournament = self.settlement.load_tournament(db, tournament_id)
        decision = self.state_machine.decide_waiting(tournament, now)
        if decision == STATUS_ACTIVE:
            with atomic(db):
                self.state_machine.activate(db, tournament_id, now)
        elif decision == STATUS_CANCELLED:
            reason = INSUFFICIENT_PLAYERS_REASON.format(self.state_machine.min_players)
            with atomic(db):
                self.state_machine.cancel(db, tournament_id, now, reason)
                participants = db.query(participant_model.Participant).filter(
                    participant_model.Participant.tournament_id == tournament_id
                ).all()
                for participant in participants:
                    self.ledger.refund_participant(db, tournament_id, participant.user_id, now)
            logger.info(f"Tournament {tournament_id} cancelled: {reason}")
        return decision

    # --- Background loop ---

    async def run_forever(self) -> None:
        self._running = True
        logger.info(f"Tournament scheduler running every {self.interval_seconds}s")
        while self._running:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("Tournament pass crashed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Tournament scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
