"""Creator tier classification from trailing sales."""

from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from sqlalchemy.orm import Session

from affiliate_ledger.commission.calculator import to_decimal
from affiliate_ledger.storage.models import utcnow
from affiliate_ledger.storage.repo import TransactionRepository

TIER_LOOKBACK = timedelta(days=30)


class CreatorTier(str, Enum):
    """Creator tiers by trailing 30-day revenue."""

    BRONZE = "bronze"      # < 1,000
    SILVER = "silver"      # 1,000 - 4,999.99
    GOLD = "gold"          # 5,000 - 9,999.99
    PLATINUM = "platinum"  # >= 10,000

    @classmethod
    def from_revenue(cls, revenue: Decimal | float | int | str) -> "CreatorTier":
        """Get tier from revenue. Lower bounds are inclusive."""
        revenue = to_decimal(revenue)
        if revenue >= TIER_THRESHOLDS[cls.PLATINUM]:
            return cls.PLATINUM
        elif revenue >= TIER_THRESHOLDS[cls.GOLD]:
            return cls.GOLD
        elif revenue >= TIER_THRESHOLDS[cls.SILVER]:
            return cls.SILVER
        else:
            return cls.BRONZE


TIER_THRESHOLDS: dict[CreatorTier, Decimal] = {
    CreatorTier.BRONZE: Decimal("0"),
    CreatorTier.SILVER: Decimal("1000"),
    CreatorTier.GOLD: Decimal("5000"),
    CreatorTier.PLATINUM: Decimal("10000"),
}


def classify_tier(revenue: Decimal | float | int | str) -> CreatorTier:
    return CreatorTier.from_revenue(revenue)


def trailing_revenue(session: Session, creator_id: int, now: datetime | None = None) -> Decimal:
    """Order revenue of approved and paid transactions in the last 30 days."""
    now = now or utcnow()
    return TransactionRepository(session).revenue_since(creator_id, now - TIER_LOOKBACK)


def trailing_revenue_by_creator(session: Session, now: datetime | None = None) -> dict[int, Decimal]:
    now = now or utcnow()
    return TransactionRepository(session).revenue_since_by_creator(now - TIER_LOOKBACK)
