"""Reconciliation of denormalized creator and link counters."""

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.orm import Session

from affiliate_ledger.commission.calculator import CENT, HUNDRED, round_money
from affiliate_ledger.errors import CreatorNotFoundError
from affiliate_ledger.logging_config import get_logger
from affiliate_ledger.storage.models import Creator
from affiliate_ledger.storage.repo import (
    ClickRepository,
    CreatorRepository,
    LinkRepository,
    TransactionRepository,
)

logger = get_logger(__name__)


def recompute_creator_metrics(session: Session, creator_id: int) -> Creator:
    """Rebuild a creator's metrics from the click and transaction tables.

    Sales and commission count approved and paid transactions only; the
    conversion rate is sales per click in percent.
    """
    creator = CreatorRepository(session).get_by_id(creator_id)
    if creator is None:
        raise CreatorNotFoundError(creator_id)

    clicks = ClickRepository(session).count_for_creator(creator_id)
    settled = TransactionRepository(session).settled_for_creator(creator_id)

    total_commission = sum((round_money(t.commission_amount) for t in settled), Decimal("0.00"))
    sales = len(settled)
    if clicks > 0:
        conversion_rate = (Decimal(sales) / Decimal(clicks) * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    else:
        conversion_rate = Decimal("0.00")

    creator.total_clicks = clicks
    creator.total_sales = sales
    creator.total_commission = total_commission
    creator.conversion_rate = conversion_rate
    creator.last_sale_at = settled[-1].created_at if settled else None
    session.flush()

    logger.info(
        "creator_metrics_recomputed",
        creator_id=creator_id,
        clicks=clicks,
        sales=sales,
        commission=str(total_commission),
    )
    return creator


def recompute_link_counters(session: Session, creator_id: int) -> int:
    """Reset every link's click and conversion counters from the event tables.

    Returns:
        Number of links whose counters were out of date
    """
    click_counts = ClickRepository(session).counts_by_link(creator_id)
    conversion_counts = TransactionRepository(session).conversion_counts_by_link(creator_id)

    repaired = 0
    for link in LinkRepository(session).list_for_creator(creator_id):
        clicks = click_counts.get(link.id, 0)
        conversions = conversion_counts.get(link.id, 0)
        if link.click_count != clicks or link.conversion_count != conversions:
            logger.warning(
                "link_counters_drifted",
                link_id=link.id,
                click_count=link.click_count,
                actual_clicks=clicks,
                conversion_count=link.conversion_count,
                actual_conversions=conversions,
            )
            link.click_count = clicks
            link.conversion_count = conversions
            repaired += 1
    session.flush()
    return repaired
