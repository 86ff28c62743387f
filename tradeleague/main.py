import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tradeleague.api.endpoints import admin as admin_endpoints
from tradeleague.api.endpoints import tournaments as tournament_endpoints
from tradeleague.api.endpoints import users as user_endpoints
from tradeleague.core.clock import SystemClock
from tradeleague.core.config import settings
from tradeleague.core.database import SessionLocal, engine
from tradeleague.core.errors import EngineError
from tradeleague.models import Base
from tradeleague.services.achievement_service import AchievementService
from tradeleague.services.holdings_service import HoldingsStore
from tradeleague.services.ledger_service import Ledger
from tradeleague.services.quote_service import StaticQuoteProvider, build_quote_provider
from tradeleague.services.scheduler import TournamentScheduler
from tradeleague.services.settlement_service import SettlementEngine
from tradeleague.services.state_machine import TournamentStateMachine
from tradeleague.services.tournament_service import TournamentService
from tradeleague.services.trading_service import TradingService
from tradeleague.services.valuation_service import PortfolioValuator

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_services(app: FastAPI, quote_provider=None, clock=None, session_factory=SessionLocal) -> None:
    """Wire the engine components and keep them on ``app.state``.

    Without a market-data client plugged in, quotes come from an empty static
    table and valuation falls back to purchase prices.
    """
    clock = clock or SystemClock()
    quotes = build_quote_provider(
        quote_provider or StaticQuoteProvider(clock=clock),
        clock=clock,
        timeout_seconds=settings.QUOTE_TIMEOUT_SECONDS,
        cache_ttl_seconds=settings.QUOTE_CACHE_TTL_SECONDS,
    )
    ledger = Ledger()
    state_machine = TournamentStateMachine()
    achievements = AchievementService()
    holdings = HoldingsStore()
    valuator = PortfolioValuator(quotes, holdings)
    settlement = SettlementEngine(ledger, state_machine, achievements, valuator)
    scheduler = TournamentScheduler(session_factory, settlement, clock=clock)

    app.state.clock = clock
    app.state.quote_provider = quotes
    app.state.scheduler = scheduler
    app.state.tournament_service = TournamentService(
        clock=clock, ledger=ledger, state_machine=state_machine, achievements=achievements,
        holdings=holdings, valuator=valuator, scheduler=scheduler,
    )
    app.state.trading_service = TradingService(
        clock=clock, ledger=ledger, holdings=holdings, achievements=achievements,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    if not hasattr(app.state, "tournament_service"):
        build_services(app)
    logger.info(f"Trade League API starting (database: {settings.DATABASE_URL})")

    scheduler = app.state.scheduler
    if settings.SCHEDULER_ENABLED:
        scheduler.start()
    else:
        logger.info("Tournament scheduler disabled")

    yield

    await scheduler.stop()


app = FastAPI(title="Trade League API", lifespan=lifespan)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Include routers
app.include_router(tournament_endpoints.router, prefix="/tournaments", tags=["Tournaments"])
app.include_router(user_endpoints.router, prefix="/users", tags=["Users"])
app.include_router(admin_endpoints.router, prefix="/admin", tags=["Admin"])


@app.get("/")
async def read_root():
    return {"service": "Trade League API"}
