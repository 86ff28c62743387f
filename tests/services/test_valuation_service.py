import pytest
from decimal import Decimal

from tradeleague.core.errors import NotFoundError
from tradeleague.services.valuation_service import PortfolioValuator


class CountingProvider:
    """Answers from a table and counts lookups per symbol."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = {}

    def get_quote(self, symbol):
        self.calls[symbol] = self.calls.get(symbol, 0) + 1
        return self.inner.get_quote(symbol)


@pytest.fixture
def started(db, users, engine, new_tournament, clock):
    """Alice's tournament with Bob and Carol joined a minute apart each."""
    tournament = engine.tournaments.create_tournament(db, new_tournament(), users["alice"])
    clock.advance(minutes=1)
    engine.tournaments.join_tournament(db, tournament.id, users["bob"])
    clock.advance(minutes=1)
    engine.tournaments.join_tournament(db, tournament.id, users["carol"])
    return tournament.id


class TestPortfolioValuator:
    def test_marks_holdings_to_market(self, db, users, engine, quotes, started):
        engine.trading.buy(db, started, users["bob"], "AAPL", 10, "100")
        quotes.set_price("AAPL", "150")

        standings = engine.valuator.valuate(db, started)

        assert [s.username for s in standings] == ["bob", "alice", "carol"]
        bob = standings[0]
        assert bob.rank == 1
        assert bob.cash_balance == Decimal("9000.00")
        assert bob.stock_value == Decimal("1500.00")
        assert bob.total_value == Decimal("10500.00")

    def test_ties_go_to_the_earlier_joiner(self, db, users, engine, started):
        standings = engine.valuator.valuate(db, started)
        assert [s.user_id for s in standings] == [users["alice"], users["bob"], users["carol"]]
        assert [s.rank for s in standings] == [1, 2, 3]

    def test_missing_quote_falls_back_to_last_purchase_price(self, db, users, engine, clock, started):
        engine.trading.buy(db, started, users["carol"], "ZZZZ", 10, "100")
        clock.advance(minutes=1)
        engine.trading.buy(db, started, users["carol"], "ZZZZ", 5, "300")

        standings = {s.username: s for s in engine.valuator.valuate(db, started)}

        carol = standings["carol"]
        assert carol.stock_value == Decimal("4500.00")
        assert carol.total_value == Decimal("12000.00")
        assert carol.fallback_symbols == ["ZZZZ"]

    def test_each_symbol_is_quoted_once(self, db, users, engine, quotes, started):
        quotes.set_price("AAPL", "100")
        engine.trading.buy(db, started, users["bob"], "AAPL", 1, "100")
        engine.trading.buy(db, started, users["carol"], "AAPL", 2, "100")

        provider = CountingProvider(quotes)
        PortfolioValuator(provider).valuate(db, started)
        assert provider.calls == {"AAPL": 1}

    def test_unknown_tournament(self, db, engine):
        with pytest.raises(NotFoundError):
            engine.valuator.valuate(db, 404)
