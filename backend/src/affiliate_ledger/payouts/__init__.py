"""Creator payouts: eligibility, settlement and disbursement."""

from affiliate_ledger.payouts.gateway import GatewayResult, PayoutGateway, StripeConnectGateway
from affiliate_ledger.payouts.service import PayoutEligibility, PayoutService

__all__ = [
    "GatewayResult",
    "PayoutGateway",
    "StripeConnectGateway",
    "PayoutEligibility",
    "PayoutService",
]
