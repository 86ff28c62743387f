import pytest
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock
from fastapi.testclient import TestClient

from tradeleague.main import app
from tradeleague.api.dependencies import get_current_user, get_db, get_tournament_service, get_trading_service
from tradeleague.core import security
from tradeleague.core.errors import InsufficientFunds, NotAuthorized, NotCreator, NotFoundError, TournamentFull
from tradeleague.services.holdings_service import Holding
from tradeleague.services.tournament_service import TournamentService
from tradeleague.services.trading_service import TradeResult, TradingService
from tradeleague.services.valuation_service import Standing

MOCK_USER = SimpleNamespace(
    id=7, username="alice", balance=Decimal("1000.00"), tournament_wins=2, total_trades=15, role="user",
)
CREATED_AT = datetime(2025, 3, 3, 12, 0)


def make_tournament(**overrides):
    values = dict(
        id=1, name="Spring Cup", code="AB12CD34", creator_id=MOCK_USER.id, max_players=10,
        current_players=1, starting_balance=Decimal("10000.00"), timeframe="1 week",
        status="active", buy_in_amount=Decimal("100.00"), current_pot=Decimal("100.00"),
        tournament_type="stocks", is_public=True, scheduled_start_time=None, cancellation_reason=None,
        created_at=CREATED_AT, started_at=CREATED_AT, ended_at=None,
        creator=SimpleNamespace(id=MOCK_USER.id, username=MOCK_USER.username),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def make_participant(user_id=8, username="bob"):
    return SimpleNamespace(
        id=3, tournament_id=1, user_id=user_id, balance=Decimal("10000.00"), buy_in_paid=Decimal("100.00"),
        joined_at=CREATED_AT, user=SimpleNamespace(id=user_id, username=username),
    )


# --- Test Client Fixture ---
@pytest.fixture
def client():
    # No context manager: the lifespan (and its scheduler) is not started
    return TestClient(app)


# --- Mocked Dependencies ---
@pytest.fixture
def mock_db():
    return MagicMock()


@pytest.fixture
def mock_tournament_service():
    return MagicMock(spec=TournamentService)


@pytest.fixture
def mock_trading_service():
    return MagicMock(spec=TradingService)


@pytest.fixture(autouse=True)
def overrides(mock_db, mock_tournament_service, mock_trading_service):
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_current_user] = lambda: MOCK_USER
    app.dependency_overrides[get_tournament_service] = lambda: mock_tournament_service
    app.dependency_overrides[get_trading_service] = lambda: mock_trading_service
    yield
    app.dependency_overrides = {}


class TestTournamentRoutes:

    def test_create_tournament(self, client: TestClient, mock_db, mock_tournament_service: MagicMock):
        mock_tournament_service.create_tournament.return_value = make_tournament()

        response = client.post(
            "/tournaments/",
            json={"name": "Spring Cup", "buy_in_amount": "100", "timeframe": "1 week"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["code"] == "AB12CD34"
        assert data["creator"] == {"id": MOCK_USER.id, "username": "alice"}
        assert Decimal(str(data["current_pot"])) == Decimal("100")

        kwargs = mock_tournament_service.create_tournament.call_args.kwargs
        assert kwargs["creator_id"] == MOCK_USER.id
        assert kwargs["db"] is mock_db
        assert kwargs["tournament_in"].name == "Spring Cup"
        assert kwargs["tournament_in"].buy_in_amount == Decimal("100")

    def test_public_listing(self, client: TestClient, mock_tournament_service: MagicMock):
        mock_tournament_service.list_public.return_value = [make_tournament(), make_tournament(id=2, code="ZZ99ZZ99")]

        response = client.get("/tournaments/public")

        assert response.status_code == 200
        assert [t["id"] for t in response.json()] == [1, 2]

    def test_join_by_code(self, client: TestClient, mock_tournament_service: MagicMock):
        mock_tournament_service.join_by_code.return_value = make_participant(user_id=MOCK_USER.id, username="alice")

        response = client.post("/tournaments/code/ab12cd34/join")

        assert response.status_code == 200
        assert response.json()["user"]["username"] == "alice"
        kwargs = mock_tournament_service.join_by_code.call_args.kwargs
        assert kwargs["code"] == "ab12cd34"
        assert kwargs["user_id"] == MOCK_USER.id

    def test_full_tournament_maps_to_conflict(self, client: TestClient, mock_tournament_service: MagicMock):
        mock_tournament_service.join_tournament.side_effect = TournamentFull("Tournament is full")

        response = client.post("/tournaments/1/join")

        assert response.status_code == 409
        assert response.json() == {"detail": "Tournament is full"}

    def test_unknown_tournament_maps_to_not_found(self, client: TestClient, mock_tournament_service: MagicMock):
        mock_tournament_service.get_tournament.side_effect = NotFoundError("Tournament not found")

        response = client.get("/tournaments/99")

        assert response.status_code == 404
        assert response.json()["detail"] == "Tournament not found"

    def test_cancel_by_non_creator_is_forbidden(self, client: TestClient, mock_tournament_service: MagicMock):
        mock_tournament_service.cancel.side_effect = NotCreator("Only the tournament creator can do this")

        response = client.delete("/tournaments/1/cancel")

        assert response.status_code == 403

    def test_kick_participant(self, client: TestClient, mock_tournament_service: MagicMock):
        response = client.delete("/tournaments/1/participants/8")

        assert response.status_code == 200
        assert response.json() == {"message": "Participant removed successfully"}
        mock_tournament_service.kick_participant.assert_called_once()
        kwargs = mock_tournament_service.kick_participant.call_args.kwargs
        assert (kwargs["tournament_id"], kwargs["participant_user_id"], kwargs["requester_id"]) == (1, 8, MOCK_USER.id)

    def test_leaderboard(self, client: TestClient, mock_tournament_service: MagicMock):
        mock_tournament_service.leaderboard.return_value = [
            Standing(user_id=8, username="bob", cash_balance=Decimal("9000.00"), stock_value=Decimal("1500.00"),
                     total_value=Decimal("10500.00"), joined_at=CREATED_AT, rank=1),
            Standing(user_id=7, username="alice", cash_balance=Decimal("10000.00"), stock_value=Decimal("0.00"),
                     total_value=Decimal("10000.00"), joined_at=CREATED_AT, rank=2),
        ]

        response = client.get("/tournaments/1/leaderboard")

        assert response.status_code == 200
        assert [(s["rank"], s["username"]) for s in response.json()] == [(1, "bob"), (2, "alice")]


class TestTradingRoutes:

    def test_purchase(self, client: TestClient, mock_trading_service: MagicMock):
        mock_trading_service.buy.return_value = TradeResult(
            trade_id=11, trade_type="buy", symbol="AAPL", shares=10, price=Decimal("187.25"),
            total_value=Decimal("1872.50"), cash_balance=Decimal("8127.50"),
        )

        response = client.post(
            "/tournaments/1/purchase",
            json={"symbol": "AAPL", "shares": 10, "price": "187.25", "company_name": "Apple Inc."},
        )

        assert response.status_code == 200
        assert response.json()["trade_id"] == 11
        kwargs = mock_trading_service.buy.call_args.kwargs
        assert kwargs["shares"] == 10
        assert kwargs["price"] == Decimal("187.25")
        assert kwargs["company_name"] == "Apple Inc."

    def test_purchase_without_cash(self, client: TestClient, mock_trading_service: MagicMock):
        mock_trading_service.buy.side_effect = InsufficientFunds("Insufficient balance for this purchase")

        response = client.post("/tournaments/1/purchase", json={"symbol": "AAPL", "shares": 1000, "price": "100"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Insufficient balance for this purchase"

    def test_malformed_order_is_rejected(self, client: TestClient, mock_trading_service: MagicMock):
        response = client.post("/tournaments/1/sell", json={"symbol": "AAPL", "shares": "many", "price": "1"})

        assert response.status_code == 422
        mock_trading_service.sell.assert_not_called()

    def test_holdings(self, client: TestClient, mock_tournament_service: MagicMock):
        mock_tournament_service.holdings.return_value = [
            Holding(symbol="AAPL", company_name="Apple Inc.", shares=3, average_price=Decimal("120.00"),
                    cost_basis=Decimal("360.00"), last_purchase_price=Decimal("120.00")),
        ]

        response = client.get("/tournaments/1/holdings")

        assert response.status_code == 200
        assert response.json()[0]["shares"] == 3


class TestAdminRoutes:

    def test_manual_sweep(self, client: TestClient, mock_tournament_service: MagicMock):
        mock_tournament_service.manual_expiration_sweep.return_value = SimpleNamespace(
            started=[], cancelled=[4], completed=[1, 2], failed=[],
        )

        response = client.post("/admin/tournaments/check-expiration")

        assert response.status_code == 200
        assert response.json() == {"skipped": False, "started": [], "cancelled": [4], "completed": [1, 2], "failed": []}

    def test_sweep_already_running(self, client: TestClient, mock_tournament_service: MagicMock):
        mock_tournament_service.manual_expiration_sweep.return_value = None

        response = client.post("/admin/tournaments/check-expiration")

        assert response.json()["skipped"] is True

    def test_sweep_requires_admin(self, client: TestClient, mock_tournament_service: MagicMock):
        mock_tournament_service.manual_expiration_sweep.side_effect = NotAuthorized("Admin access required")

        response = client.post("/admin/tournaments/check-expiration")

        assert response.status_code == 403


class TestAuthentication:

    def test_missing_token_is_unauthorized(self, client: TestClient):
        del app.dependency_overrides[get_current_user]

        response = client.get("/users/me")

        assert response.status_code == 401

    def test_valid_token_resolves_the_user(self, client: TestClient, mock_db):
        del app.dependency_overrides[get_current_user]
        mock_db.query.return_value.filter.return_value.first.return_value = MOCK_USER
        token = security.create_access_token(MOCK_USER.id)

        response = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json()["tournament_wins"] == 2

    def test_unknown_user_in_token(self, client: TestClient, mock_db):
        del app.dependency_overrides[get_current_user]
        mock_db.query.return_value.filter.return_value.first.return_value = None
        token = security.create_access_token(404)

        response = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
