"""Commission transaction ledger.

One transaction per order id, enforced by the unique index on
``commission_transactions.order_id``. The first report of an order wins;
later reports return the stored record untouched.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from affiliate_ledger.commission.calculator import calculate, round_money
from affiliate_ledger.commission.metrics import recompute_creator_metrics
from affiliate_ledger.errors import (
    InvalidInputError,
    InvalidTransactionTransitionError,
    TransactionNotFoundError,
)
from affiliate_ledger.logging_config import get_logger
from affiliate_ledger.referral.attribution import AttributionResolver
from affiliate_ledger.storage.models import (
    CommissionTransaction,
    TransactionStatus,
    UnattributedConversion,
    utcnow,
)
from affiliate_ledger.storage.repo import (
    ConversionObservationRepository,
    CreatorRepository,
    LinkRepository,
    TransactionRepository,
)

logger = get_logger(__name__)

# approved -> paid is only reachable through a payout claim
TRANSACTION_TRANSITIONS: dict[TransactionStatus, set[TransactionStatus]] = {
    TransactionStatus.PENDING: {TransactionStatus.APPROVED, TransactionStatus.REJECTED},
    TransactionStatus.APPROVED: {TransactionStatus.REJECTED},
    TransactionStatus.PAID: set(),
    TransactionStatus.REJECTED: set(),
}


@dataclass
class ConversionOutcome:
    """What happened to a reported order."""
    transaction: CommissionTransaction | None
    unattributed: bool = False
    duplicate: bool = False


def _append_note(existing: str | None, note: str) -> str:
    return f"{existing}\n{note}" if existing else note


class TransactionLedger:
    """Records conversions and moves commission transactions through their states."""

    def __init__(self, session: Session, resolver: AttributionResolver | None = None):
        self.session = session
        self.resolver = resolver or AttributionResolver(session)
        self.transactions = TransactionRepository(session)
        self.observations = ConversionObservationRepository(session)
        self.creators = CreatorRepository(session)
        self.links = LinkRepository(session)

    def record_conversion(
        self,
        order_id: str,
        order_amount: Decimal | float | int | str,
        session_id: str | None,
        received_at: datetime | None = None,
    ) -> ConversionOutcome:
        """Record a confirmed order.

        Args:
            order_id: Storefront order id (idempotency key)
            order_amount: Order total
            session_id: Visitor session id from the referral cookie
            received_at: When the order was reported (defaults to now)

        Returns:
            ConversionOutcome with the stored transaction, or ``unattributed``
        """
        order_id = (order_id or "").strip()
        if not order_id:
            raise InvalidInputError("order_id is required")
        amount = round_money(order_amount)
        if amount <= 0:
            raise InvalidInputError("order_amount must be positive")
        received_at = received_at or utcnow()

        existing = self.transactions.get_by_order_id(order_id)
        if existing is not None:
            self._warn_on_mismatch(existing, amount, session_id, received_at)
            return ConversionOutcome(transaction=existing, duplicate=True)

        # an order first seen without attribution stays unattributed
        observed = self.observations.get_by_order_id(order_id)
        if observed is not None:
            self._warn_on_observation_mismatch(observed, amount, session_id)
            return ConversionOutcome(transaction=None, unattributed=True, duplicate=True)

        attribution = self.resolver.resolve(session_id, received_at)
        if attribution is None:
            observed, created = self.observations.insert_if_absent(
                UnattributedConversion(
                    order_id=order_id,
                    order_amount=amount,
                    session_id=session_id,
                    received_at=received_at,
                )
            )
            if not created:
                self._warn_on_observation_mismatch(observed, amount, session_id)
                return ConversionOutcome(transaction=None, unattributed=True, duplicate=True)
            logger.info("conversion_unattributed", order_id=order_id, session_id=session_id)
            return ConversionOutcome(transaction=None, unattributed=True)

        creator = self.creators.get_by_id(attribution.creator_id)
        rate = creator.commission_rate
        transaction, created = self.transactions.insert_if_absent(
            CommissionTransaction(
                creator_id=attribution.creator_id,
                order_id=order_id,
                link_id=attribution.link_id,
                click_id=attribution.click_id,
                order_amount=amount,
                commission_rate=rate,
                commission_amount=calculate(amount, rate),
                status=TransactionStatus.PENDING.value,
                created_at=received_at,
            )
        )
        if not created:
            self._warn_on_mismatch(transaction, amount, session_id, received_at)
            return ConversionOutcome(transaction=transaction, duplicate=True)

        self.links.increment_conversions(attribution.link_id)
        logger.info(
            "commission_recorded",
            order_id=order_id,
            transaction_id=transaction.id,
            creator_id=transaction.creator_id,
            link_id=transaction.link_id,
            commission=str(transaction.commission_amount),
        )
        return ConversionOutcome(transaction=transaction)

    def _warn_on_mismatch(
        self,
        existing: CommissionTransaction,
        amount: Decimal,
        session_id: str | None,
        received_at: datetime,
    ) -> None:
        attribution = self.resolver.resolve(session_id, received_at)
        link_id = attribution.link_id if attribution else None
        if round_money(existing.order_amount) != amount or link_id != existing.link_id:
            logger.warning(
                "conversion_mismatch_ignored",
                order_id=existing.order_id,
                stored_amount=str(existing.order_amount),
                reported_amount=str(amount),
                stored_link_id=existing.link_id,
                reported_link_id=link_id,
            )

    def _warn_on_observation_mismatch(
        self,
        observed: UnattributedConversion,
        amount: Decimal,
        session_id: str | None,
    ) -> None:
        if round_money(observed.order_amount) != amount or observed.session_id != session_id:
            logger.warning(
                "conversion_mismatch_ignored",
                order_id=observed.order_id,
                stored_amount=str(observed.order_amount),
                reported_amount=str(amount),
                stored_session_id=observed.session_id,
                reported_session_id=session_id,
            )

    def transition(self, transaction_id: int, new_status: TransactionStatus | str) -> CommissionTransaction:
        """Move one transaction to a new status.

        Raises:
            InvalidTransactionTransitionError: Edge not allowed, or the row
                changed underneath us
        """
        target = TransactionStatus(new_status)
        transaction = self.transactions.get_by_id(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)

        current = TransactionStatus(transaction.status)
        if target not in TRANSACTION_TRANSITIONS[current]:
            raise InvalidTransactionTransitionError(transaction_id, current.value, target.value)

        values = {"processed_at": utcnow()}
        if not self.transactions.compare_and_swap_status(transaction_id, [current.value], target.value, **values):
            self.session.refresh(transaction)
            raise InvalidTransactionTransitionError(transaction_id, transaction.status, target.value)

        logger.info("transaction_transitioned", transaction_id=transaction_id, old=current.value, new=target.value)
        if TransactionStatus.APPROVED in (current, target):
            recompute_creator_metrics(self.session, transaction.creator_id)
        return transaction

    def approve(self, transaction_ids: Iterable[int]) -> int:
        """Approve pending transactions. Others are skipped.

        Returns:
            Number of transactions approved
        """
        approved = 0
        creators: set[int] = set()
        now = utcnow()
        for transaction in self.transactions.get_many(transaction_ids):
            if self.transactions.compare_and_swap_status(
                transaction.id,
                [TransactionStatus.PENDING.value],
                TransactionStatus.APPROVED.value,
                processed_at=now,
            ):
                approved += 1
                creators.add(transaction.creator_id)
            else:
                logger.info("transaction_approval_skipped", transaction_id=transaction.id, status=transaction.status)

        for creator_id in creators:
            recompute_creator_metrics(self.session, creator_id)
        logger.info("commissions_approved", count=approved)
        return approved

    def reject(self, transaction_ids: Iterable[int], reason: str) -> int:
        """Reject pending or approved transactions, recording the reason.

        Returns:
            Number of transactions rejected
        """
        rejected = 0
        creators: set[int] = set()
        now = utcnow()
        for transaction in self.transactions.get_many(transaction_ids):
            current = transaction.status
            if TransactionStatus.REJECTED not in TRANSACTION_TRANSITIONS[TransactionStatus(current)]:
                logger.info("transaction_rejection_skipped", transaction_id=transaction.id, status=current)
                continue
            note = f"[{now.isoformat()}] rejected: {reason}"
            if self.transactions.compare_and_swap_status(
                transaction.id,
                [current],
                TransactionStatus.REJECTED.value,
                processed_at=now,
                notes=_append_note(transaction.notes, note),
            ):
                rejected += 1
                if current == TransactionStatus.APPROVED.value:
                    creators.add(transaction.creator_id)

        for creator_id in creators:
            recompute_creator_metrics(self.session, creator_id)
        logger.info("commissions_rejected", count=rejected, reason=reason)
        return rejected

    def get_by_order_id(self, order_id: str) -> CommissionTransaction | None:
        return self.transactions.get_by_order_id(order_id.strip())

    def list_for_creator(
        self,
        creator_id: int,
        status: TransactionStatus | str | None = None,
        limit: int = 50,
    ) -> list[CommissionTransaction]:
        status_value = TransactionStatus(status).value if status else None
        return self.transactions.list_for_creator(creator_id, status=status_value, limit=limit)
