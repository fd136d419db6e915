"""Payment gateways used to disburse creator payouts."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

import stripe
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from affiliate_ledger.logging_config import get_logger
from affiliate_ledger.settings import settings
from affiliate_ledger.storage.models import PaymentMethod

logger = get_logger(__name__)

# Initialize Stripe
stripe.api_key = settings.stripe_secret_key
stripe.default_http_client = stripe.RequestsClient(timeout=settings.payout_gateway_timeout_seconds)


@dataclass
class GatewayResult:
    """Outcome of one disbursement attempt."""
    success: bool
    reference: str | None = None
    error: str | None = None


class PayoutGateway(ABC):
    """Base class for payout gateways."""

    @abstractmethod
    def disburse(
        self,
        payout_id: int,
        amount: Decimal,
        currency: str,
        payment_method: str,
        payment_details: str,
    ) -> GatewayResult:
        """Send money to a creator.

        Implementations must not raise for gateway-side failures; they
        report them through ``GatewayResult.error``.
        """
        pass


def parse_payment_details(payment_details: str) -> dict:
    """Decode the opaque payment details stored on a creator."""
    try:
        details = json.loads(payment_details)
    except (TypeError, ValueError):
        return {"raw": payment_details}
    return details if isinstance(details, dict) else {"raw": payment_details}


def mask_payment_details(payment_details: str) -> str:
    """Show only the last four characters of an account identifier."""
    details = parse_payment_details(payment_details)
    identifier = (
        details.get("stripeAccountId")
        or details.get("paypalEmail")
        or details.get("accountNumber")
        or details.get("raw")
        or ""
    )
    identifier = str(identifier)
    return f"***{identifier[-4:]}" if identifier else "***"


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


class StripeConnectGateway(PayoutGateway):
    """Disburses payouts as Stripe Connect transfers.

    Connection errors are retried with exponential backoff; every other
    Stripe error fails the attempt immediately.
    """

    def __init__(self, max_attempts: int | None = None, wait=None):
        self._retrying = Retrying(
            stop=stop_after_attempt(max_attempts or settings.payout_gateway_max_retries),
            wait=wait or wait_exponential(multiplier=1, min=1, max=8),
            retry=retry_if_exception_type(stripe.APIConnectionError),
            reraise=True,
        )

    def disburse(
        self,
        payout_id: int,
        amount: Decimal,
        currency: str,
        payment_method: str,
        payment_details: str,
    ) -> GatewayResult:
        if payment_method != PaymentMethod.STRIPE.value:
            return GatewayResult(success=False, error=f"Unsupported payout method: {payment_method}")
        if not settings.stripe_secret_key:
            return GatewayResult(success=False, error="Stripe is not configured")

        account_id = parse_payment_details(payment_details).get("stripeAccountId")
        if not account_id:
            return GatewayResult(success=False, error="Missing Stripe account id")

        try:
            transfer = self._retrying(
                stripe.Transfer.create,
                amount=to_cents(amount),
                currency=currency,
                destination=account_id,
                description=f"Creator payout {payout_id}",
                metadata={"payout_id": str(payout_id)},
                idempotency_key=f"payout-{payout_id}",
            )
        except stripe.StripeError as e:
            logger.error("stripe_transfer_failed", payout_id=payout_id, error=str(e))
            return GatewayResult(success=False, error=str(e))

        logger.info("stripe_transfer_created", payout_id=payout_id, transfer_id=transfer.id)
        return GatewayResult(success=True, reference=transfer.id)


def get_gateway() -> PayoutGateway:
    """FastAPI dependency returning the configured gateway."""
    return StripeConnectGateway()
