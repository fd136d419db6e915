"""Tests for the command-line interface."""

import csv

import pytest
from rich.console import Console
from sqlalchemy import select
from typer.testing import CliRunner

from affiliate_ledger.cli import app
from affiliate_ledger.settings import settings
from affiliate_ledger.storage.models import CreatorPayout, PayoutStatus, TransactionStatus

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_database(monkeypatch, database):
    """Point the CLI at the test database with a wide console."""
    monkeypatch.setattr("affiliate_ledger.cli.db", database)
    monkeypatch.setattr("affiliate_ledger.cli.console", Console(width=200))
    return database


@pytest.fixture
def earning_creator(session, make_creator, make_link, make_click):
    """Approved creator with a link and a click, committed for the CLI."""
    creator = make_creator(display_name="Ada Lovelace", minimum_payout="50")
    link = make_link(creator)
    click = make_click(link)
    session.commit()
    return creator, link, click


class TestCli:
    """Tests for CLI commands."""

    def test_init(self):
        result = runner.invoke(app, ["init"])

        assert result.exit_code == 0
        assert "Database initialized" in result.stdout

    def test_creator_list(self, earning_creator):
        """Test the listing shows creators."""
        result = runner.invoke(app, ["creator-list", "--status", "approved"])

        assert result.exit_code == 0
        assert earning_creator[0].creator_code in result.stdout

    def test_creator_list_empty(self):
        result = runner.invoke(app, ["creator-list"])

        assert result.exit_code == 0
        assert "No creators found" in result.stdout

    def test_creator_list_bad_tier(self):
        result = runner.invoke(app, ["creator-list", "--tier", "diamond"])
        assert result.exit_code == 1

    def test_commission_approve(self, session, earning_creator, make_transaction):
        """Test approval reports how many were actually approved."""
        creator, link, click = earning_creator
        pending = make_transaction(creator, link, click, "10.00", TransactionStatus.PENDING)
        rejected = make_transaction(creator, link, click, "10.00", TransactionStatus.REJECTED)
        session.commit()

        result = runner.invoke(app, ["commission-approve", f"{pending.id},{rejected.id}"])

        assert result.exit_code == 0
        assert "Approved 1 of 2 transactions" in result.stdout
        session.refresh(pending)
        assert pending.status == TransactionStatus.APPROVED.value

    def test_commission_approve_bad_ids(self):
        result = runner.invoke(app, ["commission-approve", "1,two"])
        assert result.exit_code == 1

    def test_metrics_reconcile(self, session, earning_creator):
        """Test counters are rebuilt for every creator."""
        creator, link, _ = earning_creator
        link.click_count = 40
        session.commit()

        result = runner.invoke(app, ["metrics-reconcile"])

        assert result.exit_code == 0
        assert "Reconciled 1 creators" in result.stdout
        session.refresh(link)
        assert link.click_count == 1

    def test_metrics_reconcile_unknown_creator(self):
        result = runner.invoke(app, ["metrics-reconcile", "999"])
        assert result.exit_code == 1

    def test_payout_without_disburse(self, session, earning_creator, make_transaction):
        """Test a payout can be created and left pending."""
        creator, link, click = earning_creator
        make_transaction(creator, link, click, "60.00")
        session.commit()

        result = runner.invoke(app, ["payout-create", str(creator.id), "--no-disburse"])

        assert result.exit_code == 0
        assert "60.00 USD" in result.stdout
        payout = session.scalar(select(CreatorPayout))
        assert payout.status == PayoutStatus.PENDING.value

    def test_payout_disburse_without_stripe(self, monkeypatch, session, earning_creator, make_transaction):
        """Test a gateway failure leaves a failed payout and exits non-zero."""
        monkeypatch.setattr(settings, "stripe_secret_key", None)
        creator, link, click = earning_creator
        transaction = make_transaction(creator, link, click, "60.00")
        session.commit()

        result = runner.invoke(app, ["payout-create", str(creator.id)])

        assert result.exit_code == 1
        assert "Requires reconciliation" in result.stdout
        payout = session.scalar(select(CreatorPayout))
        assert payout.status == PayoutStatus.FAILED.value
        assert payout.requires_reconciliation
        session.refresh(transaction)
        assert transaction.status == TransactionStatus.PAID.value

    def test_payout_not_eligible(self, earning_creator):
        result = runner.invoke(app, ["payout-create", str(earning_creator[0].id)])

        assert result.exit_code == 1
        assert "not eligible" in result.stdout

    def test_creator_export(self, tmp_path, earning_creator):
        """Test export writes a CSV without payment details."""
        output = tmp_path / "creators.csv"

        result = runner.invoke(app, ["creator-export", str(earning_creator[0].id), "-o", str(output)])

        assert result.exit_code == 0
        with open(output, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert rows[0]["display_name"] == "Ada Lovelace"
        assert "payment_details" not in rows[0]
