"""Shared fixtures for the referral ledger tests."""

import itertools
import json
import os
import tempfile
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

# Keep the module-level engine away from the working directory
os.environ.setdefault(
    "DATABASE_URL", f"sqlite:///{os.path.join(tempfile.gettempdir(), 'affiliate_ledger_test.db')}"
)

from affiliate_ledger.payouts.gateway import GatewayResult, PayoutGateway  # noqa: E402
from affiliate_ledger.referral.clicks import ClickTracker  # noqa: E402
from affiliate_ledger.storage.db import Database  # noqa: E402
from affiliate_ledger.storage.models import (  # noqa: E402
    CommissionTransaction,
    CreatorStatus,
    TransactionStatus,
)
from affiliate_ledger.storage.repo import CreatorRepository, LinkRepository  # noqa: E402

T0 = datetime(2026, 10, 1, 12, 0, 0)


class FakeGateway(PayoutGateway):
    """Gateway double that records calls and returns a canned result."""

    def __init__(self, result: GatewayResult | None = None):
        self.result = result or GatewayResult(success=True, reference="tr_fake_001")
        self.calls = []

    def disburse(self, payout_id, amount, currency, payment_method, payment_details):
        self.calls.append(
            {
                "payout_id": payout_id,
                "amount": amount,
                "currency": currency,
                "payment_method": payment_method,
            }
        )
        return self.result


@pytest.fixture
def database(tmp_path):
    """Fresh SQLite database file with all tables."""
    database = Database(f"sqlite:///{tmp_path / 'ledger.db'}")
    database.create_tables()
    yield database
    database.engine.dispose()


@pytest.fixture
def session(database):
    """Session committed when the test finishes."""
    with database.session() as session:
        yield session


@pytest.fixture
def make_creator(session):
    """Factory for creators, approved by default."""
    counter = itertools.count(1)

    def _make(
        status: CreatorStatus = CreatorStatus.APPROVED,
        commission_rate: str = "10",
        minimum_payout: str = "50",
        **overrides,
    ):
        n = next(counter)
        values = {
            "creator_code": f"CRTR{n:04d}",
            "display_name": f"Creator {n}",
            "email": f"creator{n}@example.com",
            "status": CreatorStatus(status).value,
            "commission_rate": Decimal(commission_rate),
            "minimum_payout": Decimal(minimum_payout),
            "payment_method": "stripe",
            "payment_details": json.dumps({"stripeAccountId": f"acct_test{n:04d}"}),
        }
        values.update(overrides)
        return CreatorRepository(session).create(**values)

    return _make


@pytest.fixture
def make_link(session):
    """Factory for referral links."""
    counter = itertools.count(1)

    def _make(creator, is_active: bool = True, destination_url: str = "https://shop.example.com/p/1"):
        n = next(counter)
        return LinkRepository(session).create(
            creator_id=creator.id,
            code=f"LINK{n:06d}",
            destination_url=destination_url,
            is_active=is_active,
        )

    return _make


@pytest.fixture
def make_click(session):
    """Record a click through the tracker."""

    def _make(link, session_id: str = "visitor-1", clicked_at: datetime = T0, user_agent: str = "Mozilla/5.0"):
        return ClickTracker(session).track(
            link.code,
            ip_address="203.0.113.42",
            user_agent=user_agent,
            session_id=session_id,
            clicked_at=clicked_at,
        ).click

    return _make


@pytest.fixture
def make_transaction(session):
    """Insert a commission transaction directly, bypassing attribution."""
    counter = itertools.count(1)

    def _make(
        creator,
        link,
        click,
        commission_amount: str,
        status: TransactionStatus = TransactionStatus.APPROVED,
        order_amount: str | None = None,
        created_at: datetime | None = None,
    ):
        n = next(counter)
        transaction = CommissionTransaction(
            creator_id=creator.id,
            order_id=f"ORDER-{n:05d}",
            link_id=link.id,
            click_id=click.id,
            order_amount=Decimal(order_amount or Decimal(commission_amount) * 10),
            commission_rate=Decimal("10.00"),
            commission_amount=Decimal(commission_amount),
            status=TransactionStatus(status).value,
            created_at=created_at or T0 + timedelta(hours=1),
        )
        session.add(transaction)
        session.flush()
        return transaction

    return _make


@pytest.fixture
def fake_gateway():
    """Gateway that always succeeds."""
    return FakeGateway()
