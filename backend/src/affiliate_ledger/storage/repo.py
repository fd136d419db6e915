"""Repository layer for data access.

The repositories are the only place that issues SQL. Uniqueness and guarded
status changes live here so every caller gets the same guarantees.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from affiliate_ledger.logging_config import get_logger
from affiliate_ledger.storage.models import (
    CommissionTransaction,
    Creator,
    CreatorPayout,
    CreatorStatus,
    ReferralClick,
    ReferralLink,
    TransactionStatus,
    UnattributedConversion,
)

logger = get_logger(__name__)

ZERO = Decimal("0.00")


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(Decimal("0.01"))


@dataclass
class ApprovedBalance:
    """Approved, unsettled commission owed to a creator."""
    total: Decimal = ZERO
    transaction_ids: list[int] = field(default_factory=list)


class CreatorRepository:
    """Repository for Creator entities."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, **values: Any) -> Creator:
        creator = Creator(**values)
        self.session.add(creator)
        self.session.flush()
        logger.info("creator_created", creator_id=creator.id, code=creator.creator_code)
        return creator

    def get_by_id(self, creator_id: int) -> Creator | None:
        """Get creator by ID."""
        return self.session.get(Creator, creator_id)

    def get_many(self, creator_ids: Iterable[int]) -> list[Creator]:
        ids = list(creator_ids)
        if not ids:
            return []
        return list(self.session.scalars(select(Creator).where(Creator.id.in_(ids))))

    def code_exists(self, code: str) -> bool:
        return self.session.scalar(
            select(func.count()).select_from(Creator).where(Creator.creator_code == code)
        ) > 0

    def compare_and_swap_status(
        self,
        creator_id: int,
        expected: str,
        new: str,
        **values: Any,
    ) -> bool:
        """Move a creator to ``new`` only if its status is still ``expected``.

        Returns:
            True if the row changed
        """
        result = self.session.execute(
            update(Creator)
            .where(Creator.id == creator_id, Creator.status == expected)
            .values(status=new, **values)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            return False
        # the loaded instance, if any, must reflect the new row
        self.session.get(Creator, creator_id, populate_existing=True)
        return True

    def ids_matching(self, status: str | None = None, text: str | None = None) -> list[int]:
        stmt = self._filtered(select(Creator.id), status, text)
        return list(self.session.scalars(stmt))

    def search(
        self,
        status: str | None = None,
        text: str | None = None,
        creator_ids: list[int] | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Creator], int]:
        """Filtered, paginated creator listing.

        Returns:
            (page of creators, total matching count)
        """
        stmt = self._filtered(select(Creator), status, text)
        if creator_ids is not None:
            stmt = stmt.where(Creator.id.in_(creator_ids))

        total = self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        page = self.session.scalars(
            stmt.order_by(Creator.created_at.desc(), Creator.id.desc()).offset(offset).limit(limit)
        )
        return list(page), total

    @staticmethod
    def _filtered(stmt, status: str | None, text: str | None):
        if status:
            stmt = stmt.where(Creator.status == status)
        if text:
            pattern = f"%{text}%"
            stmt = stmt.where(
                or_(
                    Creator.display_name.ilike(pattern),
                    Creator.email.ilike(pattern),
                    Creator.creator_code.ilike(pattern),
                )
            )
        return stmt

    def status_distribution(self) -> dict[str, int]:
        rows = self.session.execute(
            select(Creator.status, func.count()).group_by(Creator.status)
        )
        return {status: count for status, count in rows}


class LinkRepository:
    """Repository for ReferralLink entities."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, **values: Any) -> ReferralLink:
        link = ReferralLink(**values)
        self.session.add(link)
        self.session.flush()
        return link

    def get_by_id(self, link_id: int) -> ReferralLink | None:
        return self.session.get(ReferralLink, link_id)

    def get_by_code(self, code: str) -> ReferralLink | None:
        return self.session.scalar(select(ReferralLink).where(ReferralLink.code == code))

    def code_exists(self, code: str) -> bool:
        return self.get_by_code(code) is not None

    def list_for_creator(self, creator_id: int) -> list[ReferralLink]:
        return list(
            self.session.scalars(
                select(ReferralLink)
                .where(ReferralLink.creator_id == creator_id)
                .order_by(ReferralLink.created_at.desc(), ReferralLink.id.desc())
            )
        )

    def set_active_for_creator(self, creator_id: int, active: bool) -> int:
        """Activate or deactivate every link owned by a creator."""
        result = self.session.execute(
            update(ReferralLink)
            .where(ReferralLink.creator_id == creator_id, ReferralLink.is_active != active)
            .values(is_active=active)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def record_click(self, link_id: int, clicked_at: datetime) -> None:
        self.session.execute(
            update(ReferralLink)
            .where(ReferralLink.id == link_id)
            .values(
                click_count=ReferralLink.click_count + 1,
                last_clicked_at=clicked_at,
            )
            .execution_options(synchronize_session="fetch")
        )

    def increment_conversions(self, link_id: int) -> None:
        self.session.execute(
            update(ReferralLink)
            .where(ReferralLink.id == link_id)
            .values(conversion_count=ReferralLink.conversion_count + 1)
            .execution_options(synchronize_session="fetch")
        )

    def stats_by_creator(self, creator_ids: list[int]) -> dict[int, dict[str, int]]:
        rows = self.session.execute(
            select(
                ReferralLink.creator_id,
                func.count(ReferralLink.id),
                func.coalesce(func.sum(ReferralLink.click_count), 0),
                func.coalesce(func.sum(ReferralLink.conversion_count), 0),
            )
            .where(ReferralLink.creator_id.in_(creator_ids))
            .group_by(ReferralLink.creator_id)
        )
        return {
            creator_id: {
                "total_links": links,
                "total_clicks": int(clicks),
                "total_conversions": int(conversions),
            }
            for creator_id, links, clicks, conversions in rows
        }


class ClickRepository:
    """Repository for ReferralClick entities (append-only)."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, click: ReferralClick) -> ReferralClick:
        self.session.add(click)
        self.session.flush()
        return click

    def latest_qualifying(
        self,
        session_id: str,
        since: datetime,
        until: datetime,
    ) -> ReferralClick | None:
        """Most recent click of a session on an active link of an approved creator."""
        stmt = (
            select(ReferralClick)
            .join(ReferralLink, ReferralLink.id == ReferralClick.link_id)
            .join(Creator, Creator.id == ReferralLink.creator_id)
            .where(
                ReferralClick.session_id == session_id,
                ReferralClick.clicked_at >= since,
                ReferralClick.clicked_at <= until,
                ReferralLink.is_active.is_(True),
                Creator.status == CreatorStatus.APPROVED.value,
            )
            .order_by(ReferralClick.clicked_at.desc(), ReferralClick.id.desc())
            .limit(1)
        )
        return self.session.scalar(stmt)

    def count_for_creator(self, creator_id: int) -> int:
        return self.session.scalar(
            select(func.count()).select_from(ReferralClick).where(ReferralClick.creator_id == creator_id)
        ) or 0

    def counts_by_link(self, creator_id: int) -> dict[int, int]:
        rows = self.session.execute(
            select(ReferralClick.link_id, func.count())
            .where(ReferralClick.creator_id == creator_id)
            .group_by(ReferralClick.link_id)
        )
        return {link_id: count for link_id, count in rows}

    def recent_for_creator(self, creator_id: int, limit: int = 100) -> list[ReferralClick]:
        return list(
            self.session.scalars(
                select(ReferralClick)
                .where(ReferralClick.creator_id == creator_id)
                .order_by(ReferralClick.clicked_at.desc(), ReferralClick.id.desc())
                .limit(limit)
            )
        )


class TransactionRepository:
    """Repository for CommissionTransaction entities."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, transaction_id: int) -> CommissionTransaction | None:
        return self.session.get(CommissionTransaction, transaction_id)

    def get_by_order_id(self, order_id: str) -> CommissionTransaction | None:
        return self.session.scalar(
            select(CommissionTransaction).where(CommissionTransaction.order_id == order_id)
        )

    def get_many(self, transaction_ids: Iterable[int]) -> list[CommissionTransaction]:
        ids = list(transaction_ids)
        if not ids:
            return []
        return list(
            self.session.scalars(
                select(CommissionTransaction)
                .where(CommissionTransaction.id.in_(ids))
                .order_by(CommissionTransaction.id)
            )
        )

    def insert_if_absent(
        self,
        transaction: CommissionTransaction,
    ) -> tuple[CommissionTransaction, bool]:
        """Insert a transaction unless its order id is already recorded.

        The unique index on ``order_id`` decides; a losing insert is rolled
        back to its savepoint and the winning row is returned.

        Returns:
            (stored transaction, True if this call created it)
        """
        try:
            with self.session.begin_nested():
                self.session.add(transaction)
        except IntegrityError:
            existing = self.get_by_order_id(transaction.order_id)
            if existing is None:
                raise
            logger.info("duplicate_conversion_absorbed", order_id=transaction.order_id)
            return existing, False
        return transaction, True

    def compare_and_swap_status(
        self,
        transaction_id: int,
        expected: Iterable[str],
        new: str,
        **values: Any,
    ) -> bool:
        """Move a transaction to ``new`` only if its status is one of ``expected``."""
        result = self.session.execute(
            update(CommissionTransaction)
            .where(
                CommissionTransaction.id == transaction_id,
                CommissionTransaction.status.in_(list(expected)),
            )
            .values(status=new, **values)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            return False
        # the loaded instance, if any, must reflect the new row
        self.session.get(CommissionTransaction, transaction_id, populate_existing=True)
        return True

    def sum_approved_by_creator(self, creator_id: int) -> ApprovedBalance:
        """Approved transactions not yet claimed by any payout."""
        rows = self.session.execute(
            select(CommissionTransaction.id, CommissionTransaction.commission_amount)
            .where(
                CommissionTransaction.creator_id == creator_id,
                CommissionTransaction.status == TransactionStatus.APPROVED.value,
                CommissionTransaction.payout_id.is_(None),
            )
            .order_by(CommissionTransaction.id)
        ).all()
        balance = ApprovedBalance()
        for transaction_id, amount in rows:
            balance.total += _to_decimal(amount)
            balance.transaction_ids.append(transaction_id)
        return balance

    def claim_for_payout(self, transaction_id: int, payout_id: int, paid_at: datetime) -> bool:
        """Mark one approved, unclaimed transaction as paid by ``payout_id``."""
        result = self.session.execute(
            update(CommissionTransaction)
            .where(
                CommissionTransaction.id == transaction_id,
                CommissionTransaction.status == TransactionStatus.APPROVED.value,
                CommissionTransaction.payout_id.is_(None),
            )
            .values(
                status=TransactionStatus.PAID.value,
                payout_id=payout_id,
                paid_at=paid_at,
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def revenue_since(self, creator_id: int, since: datetime) -> Decimal:
        """Order revenue of approved and paid transactions created since ``since``."""
        total = self.session.scalar(
            select(func.sum(CommissionTransaction.order_amount)).where(
                CommissionTransaction.creator_id == creator_id,
                CommissionTransaction.status.in_(
                    [TransactionStatus.APPROVED.value, TransactionStatus.PAID.value]
                ),
                CommissionTransaction.created_at >= since,
            )
        )
        return _to_decimal(total)

    def revenue_since_by_creator(self, since: datetime) -> dict[int, Decimal]:
        rows = self.session.execute(
            select(CommissionTransaction.creator_id, func.sum(CommissionTransaction.order_amount))
            .where(
                CommissionTransaction.status.in_(
                    [TransactionStatus.APPROVED.value, TransactionStatus.PAID.value]
                ),
                CommissionTransaction.created_at >= since,
            )
            .group_by(CommissionTransaction.creator_id)
        )
        return {creator_id: _to_decimal(total) for creator_id, total in rows}

    def settled_for_creator(self, creator_id: int) -> list[CommissionTransaction]:
        """Approved and paid transactions, oldest first."""
        return list(
            self.session.scalars(
                select(CommissionTransaction)
                .where(
                    CommissionTransaction.creator_id == creator_id,
                    CommissionTransaction.status.in_(
                        [TransactionStatus.APPROVED.value, TransactionStatus.PAID.value]
                    ),
                )
                .order_by(CommissionTransaction.created_at, CommissionTransaction.id)
            )
        )

    def breakdown_by_status(self, creator_id: int) -> dict[str, dict[str, Any]]:
        """Count and commission total per transaction status."""
        rows = self.session.execute(
            select(
                CommissionTransaction.status,
                func.count(),
                func.coalesce(func.sum(CommissionTransaction.commission_amount), 0),
            )
            .where(CommissionTransaction.creator_id == creator_id)
            .group_by(CommissionTransaction.status)
        )
        return {
            status: {"count": count, "total": _to_decimal(total)}
            for status, count, total in rows
        }

    def daily_performance(self, creator_id: int, since: datetime) -> list[dict[str, Any]]:
        """Sales, order revenue and commission per calendar day since ``since``, oldest first."""
        day = func.date(CommissionTransaction.created_at)
        rows = self.session.execute(
            select(
                day,
                func.count(),
                func.coalesce(func.sum(CommissionTransaction.order_amount), 0),
                func.coalesce(func.sum(CommissionTransaction.commission_amount), 0),
            )
            .where(
                CommissionTransaction.creator_id == creator_id,
                CommissionTransaction.created_at >= since,
            )
            .group_by(day)
            .order_by(day)
        )
        return [
            {
                "date": str(date),
                "sales": sales,
                "revenue": _to_decimal(revenue),
                "commission": _to_decimal(commission),
            }
            for date, sales, revenue, commission in rows
        ]

    def conversion_counts_by_link(self, creator_id: int) -> dict[int, int]:
        rows = self.session.execute(
            select(CommissionTransaction.link_id, func.count())
            .where(CommissionTransaction.creator_id == creator_id)
            .group_by(CommissionTransaction.link_id)
        )
        return {link_id: count for link_id, count in rows}

    def list_for_creator(
        self,
        creator_id: int,
        status: str | None = None,
        limit: int = 50,
    ) -> list[CommissionTransaction]:
        stmt = select(CommissionTransaction).where(CommissionTransaction.creator_id == creator_id)
        if status:
            stmt = stmt.where(CommissionTransaction.status == status)
        stmt = stmt.order_by(CommissionTransaction.created_at.desc(), CommissionTransaction.id.desc())
        return list(self.session.scalars(stmt.limit(limit)))

    def stats_by_creator(self, creator_ids: list[int]) -> dict[int, dict[str, Decimal]]:
        def _sum_for(status: TransactionStatus):
            return func.coalesce(
                func.sum(
                    case(
                        (CommissionTransaction.status == status.value, CommissionTransaction.commission_amount),
                        else_=0,
                    )
                ),
                0,
            )

        rows = self.session.execute(
            select(
                CommissionTransaction.creator_id,
                _sum_for(TransactionStatus.PENDING),
                _sum_for(TransactionStatus.APPROVED),
                _sum_for(TransactionStatus.PAID),
                func.coalesce(func.sum(CommissionTransaction.commission_amount), 0),
            )
            .where(CommissionTransaction.creator_id.in_(creator_ids))
            .group_by(CommissionTransaction.creator_id)
        )
        return {
            creator_id: {
                "pending_commissions": _to_decimal(pending),
                "approved_commissions": _to_decimal(approved),
                "paid_commissions": _to_decimal(paid),
                "total_commissions": _to_decimal(total),
            }
            for creator_id, pending, approved, paid, total in rows
        }


class PayoutRepository:
    """Repository for CreatorPayout entities."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, **values: Any) -> CreatorPayout:
        payout = CreatorPayout(**values)
        self.session.add(payout)
        self.session.flush()
        return payout

    def get_by_id(self, payout_id: int) -> CreatorPayout | None:
        return self.session.get(CreatorPayout, payout_id)

    def list_for_creator(self, creator_id: int, limit: int = 20) -> list[CreatorPayout]:
        return list(
            self.session.scalars(
                select(CreatorPayout)
                .where(CreatorPayout.creator_id == creator_id)
                .order_by(CreatorPayout.payout_date.desc(), CreatorPayout.id.desc())
                .limit(limit)
            )
        )

    def stats_by_creator(self, creator_ids: list[int]) -> dict[int, dict[str, Any]]:
        rows = self.session.execute(
            select(
                CreatorPayout.creator_id,
                func.coalesce(func.sum(CreatorPayout.amount), 0),
                func.max(CreatorPayout.payout_date),
            )
            .where(CreatorPayout.creator_id.in_(creator_ids))
            .group_by(CreatorPayout.creator_id)
        )
        return {
            creator_id: {"total_payouts": _to_decimal(total), "last_payout_date": last}
            for creator_id, total, last in rows
        }


class ConversionObservationRepository:
    """Repository for UnattributedConversion entities."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_order_id(self, order_id: str) -> UnattributedConversion | None:
        return self.session.scalar(
            select(UnattributedConversion).where(UnattributedConversion.order_id == order_id)
        )

    def insert_if_absent(self, observation: UnattributedConversion) -> tuple[UnattributedConversion, bool]:
        try:
            with self.session.begin_nested():
                self.session.add(observation)
        except IntegrityError:
            existing = self.get_by_order_id(observation.order_id)
            if existing is None:
                raise
            return existing, False
        return observation, True
