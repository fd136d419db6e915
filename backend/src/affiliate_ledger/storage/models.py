"""Database models for the referral ledger."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class CreatorStatus(str, Enum):
    """Creator lifecycle states."""
    PENDING = "pending"
    APPROVED = "approved"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


class TransactionStatus(str, Enum):
    """Commission transaction states."""
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    REJECTED = "rejected"


class PayoutStatus(str, Enum):
    """Payout disbursement states."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    """Supported payout methods."""
    STRIPE = "stripe"
    PAYPAL = "paypal"
    BANK = "bank"


class Creator(Base):
    """Content creator enrolled in the referral program."""

    __tablename__ = "creators"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    creator_code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CreatorStatus.PENDING.value, index=True
    )
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    minimum_payout: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Denormalized metrics, reconcilable from clicks and transactions
    total_clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sales: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_commission: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    conversion_rate: Mapped[Decimal] = mapped_column(
        Numeric(7, 2), nullable=False, default=Decimal("0.00")
    )
    last_sale_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Payment info (details are opaque, never rendered in listings)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_details: Mapped[str] = mapped_column(Text, nullable=False)

    # Append-only admin audit log
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    suspended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    links: Mapped[list["ReferralLink"]] = relationship("ReferralLink", back_populates="creator")

    def __repr__(self) -> str:
        return f"<Creator(id={self.id}, code='{self.creator_code}', status='{self.status}')>"


class ReferralLink(Base):
    """Shareable link owned by a creator."""

    __tablename__ = "referral_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    creator_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("creators.id"), nullable=False, index=True
    )
    product_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    destination_url: Mapped[str] = mapped_column(Text, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    click_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    conversion_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_clicked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # Relationships
    creator: Mapped["Creator"] = relationship("Creator", back_populates="links")

    def __repr__(self) -> str:
        return f"<ReferralLink(id={self.id}, code='{self.code}', active={self.is_active})>"


class ReferralClick(Base):
    """Immutable record of one inbound link visit."""

    __tablename__ = "referral_clicks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    link_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("referral_links.id"), nullable=False, index=True
    )
    creator_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("creators.id"), nullable=False, index=True
    )
    session_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False)
    user_agent: Mapped[str] = mapped_column(Text, nullable=False)
    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)
    device_type: Mapped[str] = mapped_column(String(20), nullable=False, default="desktop")

    clicked_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<ReferralClick(id={self.id}, link_id={self.link_id}, session='{self.session_id}')>"


class CommissionTransaction(Base):
    """Commission earned on one attributed order.

    ``order_id`` is unique: it is the idempotency key of the whole ledger.
    """

    __tablename__ = "commission_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    creator_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("creators.id"), nullable=False, index=True
    )
    order_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    link_id: Mapped[int] = mapped_column(Integer, ForeignKey("referral_links.id"), nullable=False)
    click_id: Mapped[int] = mapped_column(Integer, ForeignKey("referral_clicks.id"), nullable=False)

    order_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TransactionStatus.PENDING.value, index=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    payout_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("creator_payouts.id"), nullable=True, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False, index=True
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<CommissionTransaction(id={self.id}, order='{self.order_id}', "
            f"amount={self.commission_amount}, status='{self.status}')>"
        )


class UnattributedConversion(Base):
    """Order reported without a qualifying click, kept for funnel diagnostics."""

    __tablename__ = "unattributed_conversions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    order_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    received_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<UnattributedConversion(order='{self.order_id}')>"


class CreatorPayout(Base):
    """Settlement of a set of approved transactions."""

    __tablename__ = "creator_payouts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    creator_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("creators.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    transaction_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)

    # Copied from the creator at payout time
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_details: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PayoutStatus.PENDING.value, index=True
    )
    requires_reconciliation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    payout_date: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False, index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<CreatorPayout(id={self.id}, amount={self.amount}, status='{self.status}')>"
