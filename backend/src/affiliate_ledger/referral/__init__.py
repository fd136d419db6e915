"""Referral links, click tracking and last-click attribution."""

from affiliate_ledger.referral.attribution import Attribution, AttributionResolver
from affiliate_ledger.referral.clicks import ClickTracker, TrackedClick
from affiliate_ledger.referral.links import ReferralLinkRegistry

__all__ = [
    "Attribution",
    "AttributionResolver",
    "ClickTracker",
    "TrackedClick",
    "ReferralLinkRegistry",
]
