"""Commission calculation, transaction ledger and creator tiers."""

from affiliate_ledger.commission.calculator import calculate
from affiliate_ledger.commission.ledger import ConversionOutcome, TransactionLedger
from affiliate_ledger.commission.tiers import CreatorTier, classify_tier, trailing_revenue

__all__ = [
    "calculate",
    "ConversionOutcome",
    "TransactionLedger",
    "CreatorTier",
    "classify_tier",
    "trailing_revenue",
]
