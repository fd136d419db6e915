"""Initial referral ledger schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

Creates:
- creators: enrolled creators, rates and metrics
- referral_links / referral_clicks: links and their visit log
- creator_payouts: settlements of approved commissions
- commission_transactions: one row per attributed order (unique order_id)
- unattributed_conversions: orders without a qualifying click
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create referral ledger tables."""

    op.create_table(
        "creators",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("creator_code", sa.String(20), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("minimum_payout", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_clicks", sa.Integer(), nullable=False),
        sa.Column("total_sales", sa.Integer(), nullable=False),
        sa.Column("total_commission", sa.Numeric(12, 2), nullable=False),
        sa.Column("conversion_rate", sa.Numeric(7, 2), nullable=False),
        sa.Column("last_sale_at", sa.DateTime(), nullable=True),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("payment_details", sa.Text(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("suspended_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_creators_creator_code", "creators", ["creator_code"], unique=True)
    op.create_index("ix_creators_email", "creators", ["email"])
    op.create_index("ix_creators_status", "creators", ["status"])

    op.create_table(
        "referral_links",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("creator_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=True),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("destination_url", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("click_count", sa.Integer(), nullable=False),
        sa.Column("conversion_count", sa.Integer(), nullable=False),
        sa.Column("last_clicked_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["creator_id"], ["creators.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_referral_links_creator_id", "referral_links", ["creator_id"])
    op.create_index("ix_referral_links_code", "referral_links", ["code"], unique=True)
    op.create_index("ix_referral_links_is_active", "referral_links", ["is_active"])

    op.create_table(
        "referral_clicks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("link_id", sa.Integer(), nullable=False),
        sa.Column("creator_id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.String(64), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=False),
        sa.Column("user_agent", sa.Text(), nullable=False),
        sa.Column("referrer", sa.Text(), nullable=True),
        sa.Column("device_type", sa.String(20), nullable=False),
        sa.Column("clicked_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["link_id"], ["referral_links.id"]),
        sa.ForeignKeyConstraint(["creator_id"], ["creators.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_referral_clicks_link_id", "referral_clicks", ["link_id"])
    op.create_index("ix_referral_clicks_creator_id", "referral_clicks", ["creator_id"])
    op.create_index("ix_referral_clicks_session_id", "referral_clicks", ["session_id"])
    op.create_index("ix_referral_clicks_clicked_at", "referral_clicks", ["clicked_at"])

    op.create_table(
        "creator_payouts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("creator_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("transaction_ids", sa.JSON(), nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("payment_details", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("requires_reconciliation", sa.Boolean(), nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("payout_date", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["creator_id"], ["creators.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_creator_payouts_creator_id", "creator_payouts", ["creator_id"])
    op.create_index("ix_creator_payouts_status", "creator_payouts", ["status"])
    op.create_index("ix_creator_payouts_payout_date", "creator_payouts", ["payout_date"])

    op.create_table(
        "commission_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("creator_id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.String(128), nullable=False),
        sa.Column("link_id", sa.Integer(), nullable=False),
        sa.Column("click_id", sa.Integer(), nullable=False),
        sa.Column("order_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("commission_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("payout_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["creator_id"], ["creators.id"]),
        sa.ForeignKeyConstraint(["link_id"], ["referral_links.id"]),
        sa.ForeignKeyConstraint(["click_id"], ["referral_clicks.id"]),
        sa.ForeignKeyConstraint(["payout_id"], ["creator_payouts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    # One transaction per order: the ledger's idempotency key
    op.create_index(
        "ix_commission_transactions_order_id", "commission_transactions", ["order_id"], unique=True
    )
    op.create_index("ix_commission_transactions_creator_id", "commission_transactions", ["creator_id"])
    op.create_index("ix_commission_transactions_status", "commission_transactions", ["status"])
    op.create_index("ix_commission_transactions_payout_id", "commission_transactions", ["payout_id"])
    op.create_index("ix_commission_transactions_created_at", "commission_transactions", ["created_at"])

    op.create_table(
        "unattributed_conversions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.String(128), nullable=False),
        sa.Column("order_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("session_id", sa.String(64), nullable=True),
        sa.Column("received_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_unattributed_conversions_order_id", "unattributed_conversions", ["order_id"], unique=True
    )


def downgrade() -> None:
    """Drop referral ledger tables."""
    op.drop_table("unattributed_conversions")
    op.drop_table("commission_transactions")
    op.drop_table("creator_payouts")
    op.drop_table("referral_clicks")
    op.drop_table("referral_links")
    op.drop_table("creators")
