import pytest
from decimal import Decimal

from tradeleague.core.errors import ConcurrencyConflict, InsufficientFunds, NotFoundError, WrongState
from tradeleague.models import ledger_entry as ledger_entry_model
from tradeleague.models import participant as participant_model
from tradeleague.models import tournament as tournament_model
from tradeleague.services.ledger_service import Ledger, money


@pytest.fixture
def ledger():
    return Ledger()


@pytest.fixture
def tournament_id(db, users):
    tournament = tournament_model.Tournament(
        name="Cup", code="LEDGER01", creator_id=users["alice"], starting_balance=10000,
        timeframe="1 week", status="waiting", buy_in_amount=100, current_pot=0,
    )
    db.add(tournament)
    db.commit()
    return tournament.id


def pot_of(db, tournament_id):
    db.expire_all()
    return db.query(tournament_model.Tournament.current_pot).filter(
        tournament_model.Tournament.id == tournament_id
    ).scalar()


class TestMoney:
    def test_rounds_half_up_to_the_cent(self):
        assert money("2.675") == Decimal("2.68")
        assert money(0.125) == Decimal("0.13")
        assert money(10) == Decimal("10.00")


class TestSiteCash:
    def test_debit_and_credit_write_ledger_entries(self, db, users, ledger, balance, tournament_id):
        ledger.debit(db, users["alice"], "100", "buy_in", tournament_id)
        ledger.credit(db, users["alice"], "40.5", "refund", tournament_id)
        db.commit()

        assert balance(users["alice"]) == Decimal("940.50")
        amounts = [e.amount for e in db.query(ledger_entry_model.LedgerEntry).order_by(ledger_entry_model.LedgerEntry.id)]
        assert amounts == [Decimal("-100.00"), Decimal("40.50")]

    def test_debit_more_than_balance_changes_nothing(self, db, users, ledger, balance):
        with pytest.raises(InsufficientFunds) as excinfo:
            ledger.debit(db, users["alice"], "1000.01", "buy_in")
        db.rollback()

        assert "only have 1000.00" in excinfo.value.message
        assert balance(users["alice"]) == Decimal("1000.00")
        assert db.query(ledger_entry_model.LedgerEntry).count() == 0

    def test_exact_balance_can_be_spent(self, db, users, ledger, balance):
        ledger.debit(db, users["bob"], "1000", "buy_in")
        db.commit()
        assert balance(users["bob"]) == Decimal("0.00")

    def test_unknown_user(self, db, users, ledger):
        with pytest.raises(NotFoundError):
            ledger.debit(db, 999, "1", "buy_in")
        with pytest.raises(NotFoundError):
            ledger.credit(db, 999, "1", "refund")


class TestPot:
    def test_accumulate_and_release(self, db, ledger, tournament_id):
        ledger.accumulate_pot(db, tournament_id, "100")
        ledger.accumulate_pot(db, tournament_id, "100")
        ledger.release_pot(db, tournament_id, "50")
        db.commit()
        assert pot_of(db, tournament_id) == Decimal("150.00")

    def test_pot_never_goes_negative(self, db, ledger, tournament_id):
        with pytest.raises(ConcurrencyConflict):
            ledger.release_pot(db, tournament_id, "0.01")
        db.rollback()
        assert pot_of(db, tournament_id) == Decimal("0.00")

    def test_terminal_tournament_rejects_buy_ins(self, db, ledger, tournament_id):
        db.query(tournament_model.Tournament).filter(
            tournament_model.Tournament.id == tournament_id
        ).update({"status": "cancelled"})
        db.commit()

        with pytest.raises(WrongState):
            ledger.accumulate_pot(db, tournament_id, "100")


class TestRefunds:
    def _seat(self, db, ledger, tournament_id, user_id, buy_in="100"):
        ledger.debit(db, user_id, buy_in, "buy_in", tournament_id)
        ledger.accumulate_pot(db, tournament_id, buy_in)
        db.add(participant_model.Participant(
            tournament_id=tournament_id, user_id=user_id, balance=10000, buy_in_paid=Decimal(buy_in),
        ))
        db.commit()

    def test_refund_returns_buy_in_once(self, db, users, ledger, balance, tournament_id):
        self._seat(db, ledger, tournament_id, users["alice"])
        self._seat(db, ledger, tournament_id, users["bob"])
        assert pot_of(db, tournament_id) == Decimal("200.00")

        refunded = ledger.refund_participant(db, tournament_id, users["bob"])
        db.commit()
        assert refunded == Decimal("100.00")
        assert balance(users["bob"]) == Decimal("1000.00")
        assert pot_of(db, tournament_id) == Decimal("100.00")

        # Second refund finds nothing escrowed
        assert ledger.refund_participant(db, tournament_id, users["bob"]) == Decimal("0.00")
        db.commit()
        assert balance(users["bob"]) == Decimal("1000.00")
        assert pot_of(db, tournament_id) == Decimal("100.00")

    def test_refund_creator_buy_in(self, db, users, ledger, balance, tournament_id):
        self._seat(db, ledger, tournament_id, users["alice"])
        tournament = db.get(tournament_model.Tournament, tournament_id)

        ledger.refund_creator_buy_in(db, tournament)
        db.commit()
        assert balance(users["alice"]) == Decimal("1000.00")
        assert pot_of(db, tournament_id) == Decimal("0.00")

    def test_refund_unknown_participant(self, db, users, ledger, tournament_id):
        with pytest.raises(NotFoundError):
            ledger.refund_participant(db, tournament_id, users["carol"])


class TestParticipantCash:
    def test_debit_cash_requires_enough_balance(self, db, users, ledger, tournament_id):
        db.add(participant_model.Participant(
            tournament_id=tournament_id, user_id=users["alice"], balance=100, buy_in_paid=0,
        ))
        db.commit()

        with pytest.raises(InsufficientFunds):
            ledger.debit_cash(db, tournament_id, users["alice"], "100.01")
        db.rollback()

        ledger.debit_cash(db, tournament_id, users["alice"], "60")
        ledger.credit_cash(db, tournament_id, users["alice"], "10")
        db.commit()
        db.expire_all()
        cash = db.query(participant_model.Participant.balance).filter(
            participant_model.Participant.user_id == users["alice"]
        ).scalar()
        assert cash == Decimal("50.00")

    def test_cash_moves_only_while_trading_is_open(self, db, users, ledger, tournament_id):
        db.add(participant_model.Participant(
            tournament_id=tournament_id, user_id=users["alice"], balance=100, buy_in_paid=0,
        ))
        db.query(tournament_model.Tournament).filter(tournament_model.Tournament.id == tournament_id).update(
            {"status": "completed"}
        )
        db.commit()

        with pytest.raises(WrongState):
            ledger.debit_cash(db, tournament_id, users["alice"], "10")
        with pytest.raises(WrongState):
            ledger.credit_cash(db, tournament_id, users["alice"], "10")
        db.rollback()

        db.expire_all()
        cash = db.query(participant_model.Participant.balance).filter(
            participant_model.Participant.user_id == users["alice"]
        ).scalar()
        assert cash == Decimal("100.00")
