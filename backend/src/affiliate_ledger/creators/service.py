"""Single-creator administration: enrollment, status, profile, notes and views."""

import json
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from affiliate_ledger.commission.calculator import round_money, to_decimal
from affiliate_ledger.commission.metrics import recompute_creator_metrics, recompute_link_counters
from affiliate_ledger.commission.tiers import (
    CreatorTier,
    classify_tier,
    trailing_revenue,
    trailing_revenue_by_creator,
)
from affiliate_ledger.creators.status import check_transition
from affiliate_ledger.errors import (
    CreatorNotFoundError,
    InvalidCommissionRateError,
    InvalidInputError,
    InvalidMinimumPayoutError,
    InvalidStatusTransitionError,
)
from affiliate_ledger.logging_config import get_logger
from affiliate_ledger.payouts.gateway import mask_payment_details
from affiliate_ledger.referral.links import ReferralLinkRegistry, generate_code
from affiliate_ledger.settings import settings
from affiliate_ledger.storage.models import Creator, CreatorStatus, PaymentMethod, utcnow
from affiliate_ledger.storage.repo import (
    ClickRepository,
    CreatorRepository,
    LinkRepository,
    PayoutRepository,
    TransactionRepository,
)

logger = get_logger(__name__)

MAX_COMMISSION_RATE = Decimal("50")
MIN_PAYOUT_FLOOR = Decimal("10")
MAX_PAGE_SIZE = 100
CREATOR_CODE_LENGTH = 8
USER_AGENT_PREVIEW = 50
PERFORMANCE_WINDOW = timedelta(days=30)

_IPV4_TAIL = re.compile(r"\.\d+$")


def validate_commission_rate(rate: Any) -> Decimal:
    """Commission rates are percentages in [0, 50]."""
    if rate is None or isinstance(rate, bool):
        raise InvalidCommissionRateError(rate)
    try:
        value = to_decimal(rate)
    except InvalidInputError:
        raise InvalidCommissionRateError(rate) from None
    if value < 0 or value > MAX_COMMISSION_RATE:
        raise InvalidCommissionRateError(rate)
    return round_money(value)


def validate_minimum_payout(amount: Any) -> Decimal:
    """Minimum payouts are at least 10 currency units."""
    if amount is None or isinstance(amount, bool):
        raise InvalidMinimumPayoutError(amount)
    try:
        value = to_decimal(amount)
    except InvalidInputError:
        raise InvalidMinimumPayoutError(amount) from None
    if value < MIN_PAYOUT_FLOOR:
        raise InvalidMinimumPayoutError(amount)
    return round_money(value)


def mask_ip(ip_address: str | None) -> str:
    if not ip_address:
        return ""
    if _IPV4_TAIL.search(ip_address):
        return _IPV4_TAIL.sub(".***", ip_address)
    if ":" in ip_address:
        return ip_address.rsplit(":", 1)[0] + ":***"
    return ip_address


def format_note(actor: str, text: str) -> str:
    return f"[{utcnow().isoformat()}] {actor}: {text}"


def _append_note(existing: str | None, entry: str) -> str:
    return f"{existing}\n{entry}" if existing else entry


@dataclass
class CreatorListing:
    """One page of the admin creator listing."""
    creators: list[dict[str, Any]]
    total: int
    page: int
    limit: int
    pages: int
    status_distribution: dict[str, int]


class CreatorService:
    """Admin operations on one creator at a time.

    Status changes go through the transition table in ``creators.status`` and
    are applied with compare-and-swap on the current status, so a concurrent
    change makes this one fail instead of overwriting it.
    """

    def __init__(self, session: Session):
        self.session = session
        self.creators = CreatorRepository(session)
        self.registry = ReferralLinkRegistry(session)
        self.links = LinkRepository(session)
        self.clicks = ClickRepository(session)
        self.transactions = TransactionRepository(session)
        self.payouts = PayoutRepository(session)

    def get(self, creator_id: int) -> Creator:
        creator = self.creators.get_by_id(creator_id)
        if creator is None:
            raise CreatorNotFoundError(creator_id)
        return creator

    def apply(
        self,
        display_name: str,
        email: str,
        payment_method: PaymentMethod | str,
        payment_details: dict[str, Any] | str,
        commission_rate: Any = None,
        minimum_payout: Any = None,
    ) -> Creator:
        """Enroll a new creator in ``pending`` status.

        Args:
            display_name: Public name
            email: Contact email
            payment_method: stripe, paypal or bank
            payment_details: Opaque account details (dict or JSON string)
            commission_rate: Percent, defaults to the program rate
            minimum_payout: Threshold, defaults to the program minimum

        Returns:
            The new creator
        """
        display_name = (display_name or "").strip()
        email = (email or "").strip().lower()
        if not display_name:
            raise InvalidInputError("display_name is required")
        if "@" not in email:
            raise InvalidInputError("A valid email is required")
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise InvalidInputError(f"Unsupported payment method: {payment_method}") from None

        rate = validate_commission_rate(
            settings.default_commission_rate if commission_rate is None else commission_rate
        )
        minimum = validate_minimum_payout(
            settings.default_minimum_payout if minimum_payout is None else minimum_payout
        )
        if isinstance(payment_details, dict):
            payment_details = json.dumps(payment_details, sort_keys=True)

        code = generate_code(CREATOR_CODE_LENGTH)
        attempts = 0
        while attempts < 10 and self.creators.code_exists(code):
            code = generate_code(CREATOR_CODE_LENGTH)
            attempts += 1

        return self.creators.create(
            creator_code=code,
            display_name=display_name,
            email=email,
            status=CreatorStatus.PENDING.value,
            commission_rate=rate,
            minimum_payout=minimum,
            payment_method=method.value,
            payment_details=payment_details or "",
        )

    def transition(
        self,
        creator_id: int,
        target: CreatorStatus | str,
        actor: str,
        reason: str | None = None,
    ) -> Creator:
        """Change a creator's status along the transition table.

        Suspending or deactivating turns the creator's links off; reactivating
        from ``suspended`` turns them back on.

        Raises:
            InvalidStatusTransitionError: Edge not in the table, or the status
                changed concurrently
        """
        creator = self.get(creator_id)
        target = CreatorStatus(target)
        current = CreatorStatus(creator.status)
        check_transition(current, target)

        now = utcnow()
        values: dict[str, Any] = {"updated_at": now}
        if target == CreatorStatus.APPROVED and current == CreatorStatus.PENDING:
            values["approved_at"] = now
        elif target == CreatorStatus.APPROVED and current == CreatorStatus.SUSPENDED:
            values["suspended_at"] = None
        elif target == CreatorStatus.SUSPENDED:
            values["suspended_at"] = now

        self._swap_status(creator, current, target, values)

        if target == CreatorStatus.APPROVED and current == CreatorStatus.SUSPENDED:
            self.registry.set_active(creator_id, True)
        elif target in (CreatorStatus.SUSPENDED, CreatorStatus.INACTIVE):
            self.registry.set_active(creator_id, False)

        entry = f"status changed from {current.value} to {target.value}"
        if reason:
            entry = f"{entry}: {reason}"
        creator.notes = _append_note(creator.notes, format_note(actor, entry))
        self.session.flush()

        logger.info(
            "creator_status_changed",
            creator_id=creator_id,
            old=current.value,
            new=target.value,
            actor=actor,
        )
        return creator

    def reinstate(self, creator_id: int, actor: str, reason: str | None = None) -> Creator:
        """Bring an inactive creator back to ``approved`` and reactivate links."""
        creator = self.get(creator_id)
        current = CreatorStatus(creator.status)
        if current != CreatorStatus.INACTIVE:
            raise InvalidStatusTransitionError("creator", current.value, CreatorStatus.APPROVED.value)

        now = utcnow()
        self._swap_status(
            creator,
            current,
            CreatorStatus.APPROVED,
            {"updated_at": now, "approved_at": now, "suspended_at": None},
        )
        self.registry.set_active(creator_id, True)

        entry = "reinstated"
        if reason:
            entry = f"{entry}: {reason}"
        creator.notes = _append_note(creator.notes, format_note(actor, entry))
        self.session.flush()

        logger.info("creator_reinstated", creator_id=creator_id, actor=actor)
        return creator

    def _swap_status(
        self,
        creator: Creator,
        current: CreatorStatus,
        target: CreatorStatus,
        values: dict[str, Any],
    ) -> None:
        if not self.creators.compare_and_swap_status(creator.id, current.value, target.value, **values):
            self.session.refresh(creator)
            raise InvalidStatusTransitionError("creator", creator.status, target.value)

    def update_profile(
        self,
        creator_id: int,
        commission_rate: Any = None,
        minimum_payout: Any = None,
        display_name: str | None = None,
    ) -> Creator:
        """Update rate, threshold or name. Validation happens before any write."""
        creator = self.get(creator_id)
        rate = validate_commission_rate(commission_rate) if commission_rate is not None else None
        minimum = validate_minimum_payout(minimum_payout) if minimum_payout is not None else None
        if display_name is not None and not display_name.strip():
            raise InvalidInputError("display_name cannot be empty")

        if rate is not None:
            creator.commission_rate = rate
        if minimum is not None:
            creator.minimum_payout = minimum
        if display_name is not None:
            creator.display_name = display_name.strip()
        creator.updated_at = utcnow()
        self.session.flush()

        logger.info(
            "creator_profile_updated",
            creator_id=creator_id,
            commission_rate=str(rate) if rate is not None else None,
            minimum_payout=str(minimum) if minimum is not None else None,
        )
        return creator

    def add_note(self, creator_id: int, actor: str, note: str) -> Creator:
        """Append a timestamped entry to the creator's audit notes."""
        note = (note or "").strip()
        if not note:
            raise InvalidInputError("Note content required")

        creator = self.get(creator_id)
        creator.notes = _append_note(creator.notes, format_note(actor, note))
        creator.updated_at = utcnow()
        self.session.flush()

        logger.info("creator_note_added", creator_id=creator_id, actor=actor)
        return creator

    def refresh_metrics(self, creator_id: int) -> Creator:
        """Rebuild creator metrics and link counters from the event tables."""
        self.get(creator_id)
        repaired = recompute_link_counters(self.session, creator_id)
        creator = recompute_creator_metrics(self.session, creator_id)
        logger.info("creator_metrics_refreshed", creator_id=creator_id, links_repaired=repaired)
        return creator

    def list_creators(
        self,
        status: CreatorStatus | str | None = None,
        tier: CreatorTier | str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> CreatorListing:
        """Paginated creator listing with per-creator stats."""
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        status_value = CreatorStatus(status).value if status else None
        search = (search or "").strip() or None

        revenue = trailing_revenue_by_creator(self.session)
        creator_ids = None
        if tier:
            tier = CreatorTier(tier)
            creator_ids = [
                creator_id
                for creator_id in self.creators.ids_matching(status_value, search)
                if classify_tier(revenue.get(creator_id, Decimal("0"))) == tier
            ]

        creators, total = self.creators.search(
            status=status_value,
            text=search,
            creator_ids=creator_ids,
            offset=(page - 1) * limit,
            limit=limit,
        )

        ids = [creator.id for creator in creators]
        link_stats = self.links.stats_by_creator(ids) if ids else {}
        commission_stats = self.transactions.stats_by_creator(ids) if ids else {}
        payout_stats = self.payouts.stats_by_creator(ids) if ids else {}

        rows = []
        for creator in creators:
            row = self._summary(creator, revenue.get(creator.id, Decimal("0.00")))
            row["stats"] = {
                "total_links": 0,
                "total_clicks": 0,
                "total_conversions": 0,
                "pending_commissions": Decimal("0.00"),
                "approved_commissions": Decimal("0.00"),
                "paid_commissions": Decimal("0.00"),
                "total_commissions": Decimal("0.00"),
                "total_payouts": Decimal("0.00"),
                "last_payout_date": None,
                **link_stats.get(creator.id, {}),
                **commission_stats.get(creator.id, {}),
                **payout_stats.get(creator.id, {}),
            }
            rows.append(row)

        return CreatorListing(
            creators=rows,
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit) if total else 0,
            status_distribution=self.creators.status_distribution(),
        )

    def summary(self, creator_id: int) -> dict[str, Any]:
        creator = self.get(creator_id)
        return self._summary(creator, trailing_revenue(self.session, creator_id))

    def get_detail(self, creator_id: int, now: datetime | None = None) -> dict[str, Any]:
        """Full admin view of one creator with sensitive fields masked.

        Includes a per-status commission breakdown and the daily performance
        series for the last 30 days.
        """
        creator = self.get(creator_id)
        now = now or utcnow()
        links = self.links.list_for_creator(creator_id)
        revenue = trailing_revenue(self.session, creator_id)
        balance = self.transactions.sum_approved_by_creator(creator_id)

        detail = self._summary(creator, revenue)
        detail.update(
            {
                "payment_details": mask_payment_details(creator.payment_details),
                "notes": creator.notes,
                "suspended_at": creator.suspended_at,
                "available_for_payout": balance.total,
                "payout_eligible": balance.total >= round_money(creator.minimum_payout)
                and bool(balance.transaction_ids),
                "links": [
                    {
                        "id": link.id,
                        "code": link.code,
                        "product_id": link.product_id,
                        "destination_url": link.destination_url,
                        "is_active": link.is_active,
                        "click_count": link.click_count,
                        "conversion_count": link.conversion_count,
                        "last_clicked_at": link.last_clicked_at,
                        "created_at": link.created_at,
                    }
                    for link in links
                ],
                "total_links": len(links),
                "active_links": sum(1 for link in links if link.is_active),
                "commission_breakdown": self.transactions.breakdown_by_status(creator_id),
                "performance_30d": self.transactions.daily_performance(
                    creator_id, now - PERFORMANCE_WINDOW
                ),
                "recent_clicks": [
                    {
                        "id": click.id,
                        "link_id": click.link_id,
                        "ip_address": mask_ip(click.ip_address),
                        "user_agent": (click.user_agent or "")[:USER_AGENT_PREVIEW],
                        "device_type": click.device_type,
                        "referrer": click.referrer,
                        "clicked_at": click.clicked_at,
                    }
                    for click in self.clicks.recent_for_creator(creator_id)
                ],
                "recent_transactions": self.transactions.list_for_creator(creator_id),
                "payouts": self.payouts.list_for_creator(creator_id),
            }
        )
        return detail

    @staticmethod
    def _summary(creator: Creator, revenue: Decimal) -> dict[str, Any]:
        return {
            "id": creator.id,
            "creator_code": creator.creator_code,
            "display_name": creator.display_name,
            "email": creator.email,
            "status": creator.status,
            "commission_rate": creator.commission_rate,
            "minimum_payout": creator.minimum_payout,
            "payment_method": creator.payment_method,
            "tier": classify_tier(revenue).value,
            "revenue_30d": revenue,
            "metrics": {
                "total_clicks": creator.total_clicks,
                "total_sales": creator.total_sales,
                "total_commission": creator.total_commission,
                "conversion_rate": creator.conversion_rate,
                "last_sale_at": creator.last_sale_at,
            },
            "created_at": creator.created_at,
            "approved_at": creator.approved_at,
        }
