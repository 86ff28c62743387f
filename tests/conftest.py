from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from tradeleague.core.clock import FrozenClock
from tradeleague.core.database import build_engine
from tradeleague.models import Base
from tradeleague.models import user as user_model
from tradeleague.schemas import tournament_schemas
from tradeleague.services.achievement_service import AchievementService
from tradeleague.services.holdings_service import HoldingsStore
from tradeleague.services.ledger_service import Ledger
from tradeleague.services.quote_service import StaticQuoteProvider
from tradeleague.services.scheduler import TournamentScheduler
from tradeleague.services.settlement_service import SettlementEngine
from tradeleague.services.state_machine import TournamentStateMachine
from tradeleague.services.tournament_service import TournamentService
from tradeleague.services.trading_service import TradingService
from tradeleague.services.valuation_service import PortfolioValuator

START = datetime(2025, 3, 3, 12, 0, 0)


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'tradeleague_test.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def quotes(clock):
    return StaticQuoteProvider(clock=clock)


@pytest.fixture
def users(db):
    """Seeded accounts: three players with 1000.00 site cash each and an admin."""
    seeded = {}
    for username, role in (("alice", "user"), ("bob", "user"), ("carol", "user"), ("root", "admin")):
        user = user_model.User(
            username=username,
            email=f"{username}@example.com",
            balance=Decimal("1000.00"),
            role=role,
        )
        db.add(user)
        db.flush()
        seeded[username] = user.id
    db.commit()
    return seeded


class Engine:
    """All engine components wired against the test database."""

    def __init__(self, session_factory, clock, quotes):
        self.clock = clock
        self.quotes = quotes
        self.ledger = Ledger()
        self.state_machine = TournamentStateMachine(min_players=2, expire_from_started_at=False)
        self.achievements = AchievementService(legend_threshold=10)
        self.holdings = HoldingsStore()
        self.valuator = PortfolioValuator(quotes, self.holdings)
        self.settlement = SettlementEngine(self.ledger, self.state_machine, self.achievements, self.valuator)
        self.scheduler = TournamentScheduler(session_factory, self.settlement, clock=clock, interval_seconds=0.01)
        self.tournaments = TournamentService(
            clock=clock, ledger=self.ledger, state_machine=self.state_machine,
            achievements=self.achievements, holdings=self.holdings, valuator=self.valuator,
            scheduler=self.scheduler,
        )
        self.trading = TradingService(
            clock=clock, ledger=self.ledger, holdings=self.holdings, achievements=self.achievements,
        )


@pytest.fixture
def engine(session_factory, clock, quotes):
    return Engine(session_factory, clock, quotes)


@pytest.fixture
def balance(db):
    """Reads a user's site cash straight from the database."""
    def read(user_id):
        db.expire_all()
        return db.query(user_model.User.balance).filter(user_model.User.id == user_id).scalar()
    return read


@pytest.fixture
def new_tournament():
    def build(**overrides):
        values = dict(name="Spring Cup", max_players=10, starting_balance=Decimal("10000"),
                      timeframe="1 week", buy_in_amount=Decimal("0"), is_public=False)
        values.update(overrides)
        return tournament_schemas.TournamentCreate(**values)
    return build
