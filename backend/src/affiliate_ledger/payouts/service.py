"""Payout eligibility, creation and disbursement."""

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.orm import Session

from affiliate_ledger.commission.calculator import round_money
from affiliate_ledger.errors import CreatorNotFoundError, PayoutNotEligibleError, PayoutNotFoundError
from affiliate_ledger.logging_config import get_logger
from affiliate_ledger.payouts.gateway import GatewayResult, PayoutGateway, StripeConnectGateway
from affiliate_ledger.settings import settings
from affiliate_ledger.storage.models import CreatorPayout, PayoutStatus, utcnow
from affiliate_ledger.storage.repo import CreatorRepository, PayoutRepository, TransactionRepository

logger = get_logger(__name__)


@dataclass
class PayoutEligibility:
    """Approved, unsettled balance of a creator against their threshold."""
    creator_id: int
    is_eligible: bool
    available_amount: Decimal
    minimum_payout: Decimal
    transaction_ids: list[int] = field(default_factory=list)


class PayoutService:
    """Evaluates and settles creator payouts.

    Claiming a transaction is a guarded update that only matches rows still
    ``approved`` and unclaimed, so two payouts racing for the same creator
    cannot both take the same transaction. The loser rolls back its savepoint
    and recomputes from what is left.
    """

    def __init__(self, session: Session, gateway: PayoutGateway | None = None):
        self.session = session
        self.gateway = gateway or StripeConnectGateway()
        self.creators = CreatorRepository(session)
        self.transactions = TransactionRepository(session)
        self.payouts = PayoutRepository(session)

    def evaluate(self, creator_id: int) -> PayoutEligibility:
        """Check whether a creator's approved balance reaches their minimum payout."""
        creator = self.creators.get_by_id(creator_id)
        if creator is None:
            raise CreatorNotFoundError(creator_id)

        balance = self.transactions.sum_approved_by_creator(creator_id)
        minimum = round_money(creator.minimum_payout)
        return PayoutEligibility(
            creator_id=creator_id,
            is_eligible=bool(balance.transaction_ids) and balance.total >= minimum,
            available_amount=balance.total,
            minimum_payout=minimum,
            transaction_ids=balance.transaction_ids,
        )

    def create_payout(self, creator_id: int) -> CreatorPayout:
        """Create a pending payout for every approved, unclaimed transaction.

        Raises:
            PayoutNotEligibleError: Balance below the creator's minimum payout
        """
        creator = self.creators.get_by_id(creator_id)
        if creator is None:
            raise CreatorNotFoundError(creator_id)

        for attempt in range(1, settings.payout_claim_attempts + 1):
            eligibility = self.evaluate(creator_id)
            if not eligibility.is_eligible:
                raise PayoutNotEligibleError(
                    creator_id, eligibility.available_amount, eligibility.minimum_payout
                )

            savepoint = self.session.begin_nested()
            payout = self.payouts.create(
                creator_id=creator_id,
                amount=eligibility.available_amount,
                currency=settings.payout_currency,
                transaction_ids=list(eligibility.transaction_ids),
                payment_method=creator.payment_method,
                payment_details=creator.payment_details,
                status=PayoutStatus.PENDING.value,
            )
            paid_at = utcnow()
            claimed = all(
                self.transactions.claim_for_payout(transaction_id, payout.id, paid_at)
                for transaction_id in eligibility.transaction_ids
            )
            if claimed:
                savepoint.commit()
                logger.info(
                    "payout_created",
                    payout_id=payout.id,
                    creator_id=creator_id,
                    amount=str(payout.amount),
                    transactions=len(payout.transaction_ids),
                )
                return payout

            savepoint.rollback()
            logger.warning("payout_claim_conflict", creator_id=creator_id, attempt=attempt)

        eligibility = self.evaluate(creator_id)
        raise PayoutNotEligibleError(creator_id, eligibility.available_amount, eligibility.minimum_payout)

    def disburse(self, payout_id: int) -> CreatorPayout:
        """Send a pending payout through the gateway.

        A failed disbursement leaves the transactions ``paid`` and flags the
        payout for manual reconciliation. It is never retried automatically.
        """
        payout = self.payouts.get_by_id(payout_id)
        if payout is None:
            raise PayoutNotFoundError(payout_id)
        if payout.status != PayoutStatus.PENDING.value:
            logger.info("payout_already_processed", payout_id=payout_id, status=payout.status)
            return payout

        try:
            result = self.gateway.disburse(
                payout_id=payout.id,
                amount=round_money(payout.amount),
                currency=payout.currency,
                payment_method=payout.payment_method,
                payment_details=payout.payment_details,
            )
        except Exception as e:
            logger.exception("payout_gateway_error", payout_id=payout_id)
            result = GatewayResult(success=False, error=f"Gateway error: {e}")

        if result.success:
            payout.status = PayoutStatus.COMPLETED.value
            payout.payment_reference = result.reference
            payout.completed_at = utcnow()
            logger.info("payout_completed", payout_id=payout_id, reference=result.reference)
        else:
            payout.status = PayoutStatus.FAILED.value
            payout.requires_reconciliation = True
            payout.failure_reason = result.error
            logger.error("payout_failed", payout_id=payout_id, reason=result.error)

        self.session.flush()
        return payout

    def create_and_disburse(self, creator_id: int) -> CreatorPayout:
        """Create a payout, commit it, then disburse it."""
        payout = self.create_payout(creator_id)
        self.session.commit()
        payout = self.disburse(payout.id)
        self.session.commit()
        return payout

    def list_for_creator(self, creator_id: int, limit: int = 20) -> list[CreatorPayout]:
        return self.payouts.list_for_creator(creator_id, limit=limit)
