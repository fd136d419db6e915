"""Tests for the commission transaction ledger."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from affiliate_ledger.commission.ledger import TransactionLedger
from affiliate_ledger.errors import (
    InvalidInputError,
    InvalidStatusTransitionError,
    TransactionNotFoundError,
)
from affiliate_ledger.storage.models import (
    CommissionTransaction,
    Creator,
    TransactionStatus,
    UnattributedConversion,
)
from affiliate_ledger.storage.repo import TransactionRepository

from conftest import T0

RECEIVED = T0 + timedelta(hours=2)


@pytest.fixture
def ledger(session):
    """Ledger bound to the test session."""
    return TransactionLedger(session)


def _count(session, model):
    return session.scalar(select(func.count()).select_from(model))


class TestRecordConversion:
    """Tests for record_conversion()."""

    def test_attributed_order_creates_pending_commission(
        self, ledger, session, make_creator, make_link, make_click
    ):
        """Test 10% of 125.99 with one prior click is a pending 12.60."""
        creator = make_creator(commission_rate="10")
        link = make_link(creator)
        click = make_click(link, clicked_at=T0)

        outcome = ledger.record_conversion("ORD-1", Decimal("125.99"), "visitor-1", RECEIVED)

        transaction = outcome.transaction
        assert not outcome.unattributed
        assert not outcome.duplicate
        assert transaction.commission_amount == Decimal("12.60")
        assert transaction.status == TransactionStatus.PENDING.value
        assert transaction.creator_id == creator.id
        assert transaction.click_id == click.id
        session.refresh(link)
        assert link.conversion_count == 1

    def test_uses_current_creator_rate(self, ledger, make_creator, make_link, make_click):
        """Test the rate is copied from the creator at creation time."""
        creator = make_creator(commission_rate="12.5")
        make_click(make_link(creator), clicked_at=T0)

        transaction = ledger.record_conversion("ORD-1", "80.00", "visitor-1", RECEIVED).transaction

        assert transaction.commission_rate == Decimal("12.5")
        assert transaction.commission_amount == Decimal("10.00")

    def test_repeat_report_returns_original(self, ledger, session, make_creator, make_link, make_click):
        """Test a second report with a different amount returns the first record."""
        link = make_link(make_creator())
        make_click(link, clicked_at=T0)

        first = ledger.record_conversion("ORD-1", "125.99", "visitor-1", RECEIVED)
        second = ledger.record_conversion("ORD-1", "999.00", "visitor-1", RECEIVED + timedelta(minutes=5))

        assert second.duplicate
        assert second.transaction.id == first.transaction.id
        assert second.transaction.order_amount == Decimal("125.99")
        assert second.transaction.commission_amount == Decimal("12.60")
        assert _count(session, CommissionTransaction) == 1
        session.refresh(link)
        assert link.conversion_count == 1

    def test_unattributed_order_is_observed(self, ledger, session):
        """Test an order without a click is recorded without commission."""
        outcome = ledger.record_conversion("ORD-9", "40.00", "nobody", RECEIVED)

        assert outcome.unattributed
        assert outcome.transaction is None
        assert _count(session, CommissionTransaction) == 0
        observation = session.scalar(select(UnattributedConversion))
        assert observation.order_id == "ORD-9"
        assert observation.order_amount == Decimal("40.00")

    def test_unattributed_repeat_does_not_duplicate(self, ledger, session):
        """Test repeat unattributed reports keep one observation."""
        ledger.record_conversion("ORD-9", "40.00", None, RECEIVED)
        ledger.record_conversion("ORD-9", "40.00", None, RECEIVED)

        assert _count(session, UnattributedConversion) == 1

    def test_unattributed_order_stays_unattributed(self, ledger, session, make_creator, make_link, make_click):
        """Test a resend after a qualifying click appears earns no commission."""
        first = ledger.record_conversion("ORD-X", "100.00", "visitor-1", RECEIVED)
        link = make_link(make_creator())
        make_click(link, clicked_at=RECEIVED + timedelta(minutes=1))

        second = ledger.record_conversion("ORD-X", "100.00", "visitor-1", RECEIVED + timedelta(minutes=2))

        assert first.unattributed
        assert not first.duplicate
        assert second.unattributed
        assert second.duplicate
        assert second.transaction is None
        assert _count(session, CommissionTransaction) == 0
        assert _count(session, UnattributedConversion) == 1
        session.refresh(link)
        assert link.conversion_count == 0

    def test_unattributed_resend_with_other_session(self, ledger, session, make_creator, make_link, make_click):
        """Test a resend carrying a different session id keeps the first outcome."""
        make_click(make_link(make_creator()), session_id="visitor-2", clicked_at=T0)
        ledger.record_conversion("ORD-X", "100.00", None, RECEIVED)

        outcome = ledger.record_conversion("ORD-X", "100.00", "visitor-2", RECEIVED)

        assert outcome.unattributed
        assert outcome.duplicate
        assert _count(session, CommissionTransaction) == 0

    @pytest.mark.parametrize("order_id,amount", [("", "10.00"), ("  ", "10.00"), ("ORD-1", "0"), ("ORD-1", "-5")])
    def test_invalid_input(self, ledger, order_id, amount):
        """Test empty order ids and non-positive amounts are rejected."""
        with pytest.raises(InvalidInputError):
            ledger.record_conversion(order_id, amount, "visitor-1", RECEIVED)

    def test_insert_race_returns_winner(self, session, make_creator, make_link, make_click):
        """Test a losing insert on the same order id yields the stored row."""
        creator = make_creator()
        link = make_link(creator)
        click = make_click(link)
        repo = TransactionRepository(session)

        def build(amount):
            return CommissionTransaction(
                creator_id=creator.id,
                order_id="ORD-RACE",
                link_id=link.id,
                click_id=click.id,
                order_amount=Decimal(amount),
                commission_rate=Decimal("10"),
                commission_amount=Decimal(amount) / 10,
            )

        winner, created = repo.insert_if_absent(build("100.00"))
        loser, loser_created = repo.insert_if_absent(build("200.00"))

        assert created
        assert not loser_created
        assert loser.id == winner.id
        assert loser.order_amount == Decimal("100.00")
        assert _count(session, CommissionTransaction) == 1


class TestTransitions:
    """Tests for the transaction state machine."""

    @pytest.fixture
    def pending(self, make_creator, make_link, make_click, make_transaction):
        creator = make_creator()
        link = make_link(creator)
        return make_transaction(creator, link, make_click(link), "12.60", status=TransactionStatus.PENDING)

    def test_approve(self, ledger, session, pending):
        """Test approval moves pending to approved and updates metrics."""
        assert ledger.approve([pending.id]) == 1

        session.refresh(pending)
        assert pending.status == TransactionStatus.APPROVED.value
        assert pending.processed_at is not None

    def test_approve_skips_non_pending(self, ledger, pending):
        """Test approving twice only counts once."""
        assert ledger.approve([pending.id]) == 1
        assert ledger.approve([pending.id]) == 0

    def test_approve_updates_creator_metrics(self, ledger, session, pending):
        """Test approved commission shows up in creator metrics."""
        ledger.approve([pending.id])

        creator = session.get(Creator, pending.creator_id)
        assert creator.total_sales == 1
        assert creator.total_commission == Decimal("12.60")

    def test_reject_records_reason(self, ledger, session, pending):
        """Test rejection is terminal and keeps the reason."""
        assert ledger.reject([pending.id], "chargeback") == 1

        session.refresh(pending)
        assert pending.status == TransactionStatus.REJECTED.value
        assert "chargeback" in pending.notes
        assert ledger.approve([pending.id]) == 0

    def test_reject_approved(self, ledger, session, pending):
        """Test approved transactions can still be rejected."""
        ledger.approve([pending.id])
        assert ledger.reject([pending.id], "fraud") == 1

    def test_paid_is_terminal(self, ledger, make_creator, make_link, make_click, make_transaction):
        """Test nothing leaves paid."""
        creator = make_creator()
        link = make_link(creator)
        paid = make_transaction(creator, link, make_click(link), "5.00", status=TransactionStatus.PAID)

        assert ledger.reject([paid.id], "late chargeback") == 0
        with pytest.raises(InvalidStatusTransitionError):
            ledger.transition(paid.id, TransactionStatus.REJECTED)

    def test_approved_to_paid_only_via_payout(self, ledger, pending):
        """Test the ledger refuses approved -> paid directly."""
        ledger.transition(pending.id, TransactionStatus.APPROVED)
        with pytest.raises(InvalidStatusTransitionError):
            ledger.transition(pending.id, TransactionStatus.PAID)

    def test_transition_unknown_transaction(self, ledger):
        """Test transitioning a missing id raises not found."""
        with pytest.raises(TransactionNotFoundError):
            ledger.transition(9999, TransactionStatus.APPROVED)

    def test_transition_returns_current_row(self, ledger, pending):
        """Test the returned transaction carries the written status and timestamp."""
        returned = ledger.transition(pending.id, TransactionStatus.APPROVED)

        assert returned.status == TransactionStatus.APPROVED.value
        assert returned.processed_at is not None


class TestReads:
    """Tests for ledger read helpers."""

    def test_get_by_order_id_and_list(self, ledger, make_creator, make_link, make_click):
        """Test lookups by order and by creator."""
        creator = make_creator()
        make_click(make_link(creator), clicked_at=T0)
        ledger.record_conversion("ORD-1", "10.00", "visitor-1", RECEIVED)
        ledger.record_conversion("ORD-2", "20.00", "visitor-1", RECEIVED)

        assert ledger.get_by_order_id(" ORD-1 ").order_amount == Decimal("10.00")
        assert len(ledger.list_for_creator(creator.id)) == 2
        assert ledger.list_for_creator(creator.id, status=TransactionStatus.APPROVED) == []
