import logging
import secrets
import string
from decimal import Decimal
from typing import List

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradeleague.core.clock import Clock, SystemClock, to_naive_utc
from tradeleague.core.database import atomic
from tradeleague.core.errors import (
    AlreadyParticipating,
    NotAuthorized,
    NotCreator,
    NotFoundError,
    TournamentFull,
    ValidationError,
    WrongState,
)
from tradeleague.models import participant as participant_model
from tradeleague.models import tournament as tournament_model
from tradeleague.models import user as user_model
from tradeleague.models.ledger_entry import REASON_BUY_IN
from tradeleague.models.tournament import OPEN_STATUSES, STATUS_WAITING
from tradeleague.schemas import tournament_schemas
from tradeleague.services.achievement_service import AchievementService
from tradeleague.services.holdings_service import Holding, HoldingsStore
from tradeleague.services.ledger_service import Ledger, money
from tradeleague.services.state_machine import TournamentStateMachine
from tradeleague.services.valuation_service import PortfolioValuator, Standing

logger = logging.getLogger(__name__)

CODE_LENGTH = 8
CODE_ALPHABET = string.ascii_uppercase + string.digits
TOURNAMENT_TYPES = ("stocks", "crypto")
CREATOR_CANCEL_REASON = "Cancelled by creator"


def generate_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


class TournamentService:
    """Request-facing tournament operations.

    Each public method is one transaction. The scheduler reaches the same
    ledger and state machine primitives through ``scheduler`` and
    ``settlement_service``.
    """

    def __init__(self, clock: Clock = None, ledger: Ledger = None,
                 state_machine: TournamentStateMachine = None, achievements: AchievementService = None,
                 holdings: HoldingsStore = None, valuator: PortfolioValuator = None, scheduler=None):
        self.clock = clock or SystemClock()
        self.ledger = ledger or Ledger()
        self.state_machine = state_machine or TournamentStateMachine()
        self.achievements = achievements or AchievementService()
        self.holdings_store = holdings or HoldingsStore()
        self.valuator = valuator
        self.scheduler = scheduler

    # --- Lookups ---

    def get_tournament(self, db: Session, tournament_id: int) -> tournament_model.Tournament:
        tournament = db.query(tournament_model.Tournament).filter(
            tournament_model.Tournament.id == tournament_id
        ).populate_existing().first()
        if not tournament:
            raise NotFoundError("Tournament not found")
        return tournament

    def get_by_code(self, db: Session, code: str) -> tournament_model.Tournament:
        tournament = db.query(tournament_model.Tournament).filter(
            tournament_model.Tournament.code == (code or "").strip().upper()
        ).first()
        if not tournament:
            raise NotFoundError("Tournament not found")
        return tournament

    def get_user_tournaments(self, db: Session, user_id: int) -> List[tournament_model.Tournament]:
        # Tournaments created by the user OR joined by the user
        return db.query(tournament_model.Tournament).outerjoin(
            participant_model.Participant,
            (participant_model.Participant.tournament_id == tournament_model.Tournament.id)
            & (participant_model.Participant.user_id == user_id),
        ).filter(
            or_(
                tournament_model.Tournament.creator_id == user_id,
                participant_model.Participant.id.isnot(None),
            )
        ).distinct().order_by(tournament_model.Tournament.created_at.desc()).all()

    def list_public(self, db: Session) -> List[tournament_model.Tournament]:
        """Public tournaments still accepting players."""
        return db.query(tournament_model.Tournament).filter(
            tournament_model.Tournament.is_public.is_(True),
            tournament_model.Tournament.status.in_(OPEN_STATUSES),
        ).order_by(tournament_model.Tournament.created_at.desc()).all()

    def list_participants(self, db: Session, tournament_id: int) -> List[participant_model.Participant]:
        self.get_tournament(db, tournament_id)
        return db.query(participant_model.Participant).filter(
            participant_model.Participant.tournament_id == tournament_id
        ).order_by(participant_model.Participant.joined_at.asc(), participant_model.Participant.id.asc()).all()

    def _get_user(self, db: Session, user_id: int) -> user_model.User:
        user = db.query(user_model.User).filter(user_model.User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found")
        return user

    def _unique_code(self, db: Session) -> str:
        while True:
            code = generate_code()
            taken = db.query(tournament_model.Tournament.id).filter(
                tournament_model.Tournament.code == code
            ).first()
            if taken is None:
                return code

    # --- Create / join ---

    def _validate_create(self, tournament_in: tournament_schemas.TournamentCreate) -> None:
        if not (tournament_in.name or "").strip():
            raise ValidationError("Tournament name is required")
        if tournament_in.max_players < 2:
            raise ValidationError("A tournament needs room for at least 2 players")
        if tournament_in.starting_balance is None or Decimal(str(tournament_in.starting_balance)) <= 0:
            raise ValidationError("Starting balance must be positive")
        if Decimal(str(tournament_in.buy_in_amount or 0)) < 0:
            raise ValidationError("Buy-in cannot be negative")
        if tournament_in.tournament_type not in TOURNAMENT_TYPES:
            raise ValidationError(f"Tournament type must be one of {', '.join(TOURNAMENT_TYPES)}")

    def create_tournament(self, db: Session, tournament_in: tournament_schemas.TournamentCreate,
                          creator_id: int) -> tournament_model.Tournament:
        """Create a tournament, escrow the creator's buy-in and seat the creator.

        Starts right away when no start time is given or the time has passed.
        """
        self._validate_create(tournament_in)
        now = self.clock.now()
        buy_in = money(tournament_in.buy_in_amount or 0)
        starting_balance = money(tournament_in.starting_balance)
        scheduled = to_naive_utc(tournament_in.scheduled_start_time) if tournament_in.scheduled_start_time else None

        with atomic(db):
            self._get_user(db, creator_id)
            tournament = tournament_model.Tournament(
                name=tournament_in.name.strip(),
                code=self._unique_code(db),
                creator_id=creator_id,
                max_players=tournament_in.max_players,
                current_players=1,
                starting_balance=starting_balance,
                timeframe=tournament_in.timeframe,
                status=STATUS_WAITING,
                buy_in_amount=buy_in,
                current_pot=0,
                tournament_type=tournament_in.tournament_type,
                is_public=tournament_in.is_public,
                scheduled_start_time=scheduled,
                created_at=now,
            )
            db.add(tournament)
            db.flush()

            if buy_in > 0:
                self.ledger.debit(db, creator_id, buy_in, REASON_BUY_IN, tournament.id, now)
                self.ledger.accumulate_pot(db, tournament.id, buy_in)

            db.add(participant_model.Participant(
                tournament_id=tournament.id,
                user_id=creator_id,
                balance=starting_balance,
                buy_in_paid=buy_in,
                joined_at=now,
            ))
            db.flush()

            self.achievements.award(db, creator_id, "tournament_creator", tournament.id, now)
            self.achievements.award(db, creator_id, "tournament_participant", tournament.id, now)

            if scheduled is None or scheduled <= now:
                self.state_machine.activate(db, tournament.id, now)
            tournament_id = tournament.id

        logger.info(f"User {creator_id} created tournament {tournament_id} (buy-in {buy_in:.2f})")
        return self.get_tournament(db, tournament_id)

    def join_tournament(self, db: Session, tournament_id: int, user_id: int) -> participant_model.Participant:
        now = self.clock.now()

        with atomic(db):
            tournament = self.get_tournament(db, tournament_id)
            if tournament.is_terminal:
                raise WrongState(f"Cannot join a {tournament.status} tournament")
            self._get_user(db, user_id)

            already = db.query(participant_model.Participant.id).filter(
                participant_model.Participant.tournament_id == tournament_id,
                participant_model.Participant.user_id == user_id,
            ).first()
            if already:
                raise AlreadyParticipating("Already participating in this tournament")

            # Seat reservation: only succeeds while a seat is free and the tournament is open
            seated = db.execute(
                update(tournament_model.Tournament)
                .where(
                    tournament_model.Tournament.id == tournament_id,
                    tournament_model.Tournament.status.in_(OPEN_STATUSES),
                    tournament_model.Tournament.current_players < tournament_model.Tournament.max_players,
                )
                .values(current_players=tournament_model.Tournament.current_players + 1)
                .execution_options(synchronize_session=False)
            )
            if seated.rowcount != 1:
                status = db.query(tournament_model.Tournament.status).filter(
                    tournament_model.Tournament.id == tournament_id
                ).scalar()
                if status not in OPEN_STATUSES:
                    raise WrongState(f"Cannot join a {status} tournament")
                raise TournamentFull("Tournament is full")

            buy_in = money(tournament.buy_in_amount or 0)
            if buy_in > 0:
                self.ledger.debit(db, user_id, buy_in, REASON_BUY_IN, tournament_id, now)
                self.ledger.accumulate_pot(db, tournament_id, buy_in)

            participant = participant_model.Participant(
                tournament_id=tournament_id,
                user_id=user_id,
                balance=money(tournament.starting_balance),
                buy_in_paid=buy_in,
                joined_at=now,
            )
            db.add(participant)
            try:
                db.flush()
            except IntegrityError:
                raise AlreadyParticipating("Already participating in this tournament")

            self.achievements.award(db, user_id, "tournament_participant", tournament_id, now)
            participant_id = participant.id

        logger.info(f"User {user_id} joined tournament {tournament_id}")
        return db.query(participant_model.Participant).filter(
            participant_model.Participant.id == participant_id
        ).first()

    def join_by_code(self, db: Session, code: str, user_id: int) -> participant_model.Participant:
        tournament = self.get_by_code(db, code)
        return self.join_tournament(db, tournament.id, user_id)

    # --- Creator controls ---

    def _creator_tournament(self, db: Session, tournament_id: int, requester_id: int,
                            action: str) -> tournament_model.Tournament:
        tournament = self.get_tournament(db, tournament_id)
        if tournament.creator_id != requester_id:
            raise NotCreator(f"Only tournament creators can {action}")
        return tournament

    def start_early(self, db: Session, tournament_id: int, requester_id: int) -> tournament_model.Tournament:
        tournament = self._creator_tournament(db, tournament_id, requester_id, "start tournaments early")
        if tournament.status != STATUS_WAITING:
            raise WrongState("Tournament has already started or ended")

        with atomic(db):
            self.state_machine.activate(db, tournament_id, self.clock.now())
        return self.get_tournament(db, tournament_id)

    def cancel(self, db: Session, tournament_id: int, requester_id: int) -> tournament_model.Tournament:
        """Cancel a waiting private tournament and refund every escrowed buy-in."""
        tournament = self._creator_tournament(db, tournament_id, requester_id, "cancel tournaments")
        if tournament.is_public:
            raise ValidationError("Only private tournaments can be cancelled")
        if tournament.status != STATUS_WAITING:
            raise WrongState("Cannot cancel tournaments that have already started")

        now = self.clock.now()
        refunded = Decimal("0.00")
        with atomic(db):
            # Flip status first so no join can slip in behind the refunds
            self.state_machine.cancel(db, tournament_id, now, CREATOR_CANCEL_REASON)
            for participant in self.list_participants(db, tournament_id):
                refunded += self.ledger.refund_participant(db, tournament_id, participant.user_id, now)

        logger.info(f"Tournament {tournament_id} cancelled by creator, refunded {refunded:.2f}")
        return self.get_tournament(db, tournament_id)

    def kick_participant(self, db: Session, tournament_id: int, participant_user_id: int,
                         requester_id: int) -> None:
        tournament = self._creator_tournament(db, tournament_id, requester_id, "kick participants")
        if tournament.is_public:
            raise ValidationError("Cannot kick participants from public tournaments")
        if tournament.status != STATUS_WAITING:
            raise WrongState("Cannot kick participants from tournaments that have already started")
        if participant_user_id == requester_id:
            raise ValidationError("Tournament creators cannot kick themselves")

        now = self.clock.now()
        with atomic(db):
            participant = db.query(participant_model.Participant).filter(
                participant_model.Participant.tournament_id == tournament_id,
                participant_model.Participant.user_id == participant_user_id,
            ).first()
            if participant is None:
                raise NotFoundError("Participant not found")

            refund = self.ledger.refund_participant(db, tournament_id, participant_user_id, now)
            # A rejoin starts from starting_balance with no lots
            self.holdings_store.forfeit(db, tournament_id, participant_user_id)
            freed = db.execute(
                update(tournament_model.Tournament)
                .where(
                    tournament_model.Tournament.id == tournament_id,
                    tournament_model.Tournament.status == STATUS_WAITING,
                    tournament_model.Tournament.current_players > 1,
                )
                .values(current_players=tournament_model.Tournament.current_players - 1)
                .execution_options(synchronize_session=False)
            )
            if freed.rowcount != 1:
                raise WrongState("Cannot kick participants from tournaments that have already started")
            db.delete(participant)

        logger.info(f"User {participant_user_id} kicked from tournament {tournament_id}, refunded {refund:.2f}")

    # --- Standings ---

    def leaderboard(self, db: Session, tournament_id: int) -> List[Standing]:
        return self.valuator.valuate(db, tournament_id)

    def holdings(self, db: Session, tournament_id: int, user_id: int) -> List[Holding]:
        self.get_tournament(db, tournament_id)
        return self.holdings_store.holdings(db, tournament_id, user_id)

    # --- Operations ---

    def manual_expiration_sweep(self, db: Session, requester_id: int):
        """Run one scheduler pass on demand. Admins only.

        Returns the pass report, or None when a pass was already running.
        """
        requester = self._get_user(db, requester_id)
        if not requester.is_admin:
            raise NotAuthorized("Admin access required")
        logger.info(f"Manual expiration sweep requested by user {requester_id}")
        return self.scheduler.run_once()
