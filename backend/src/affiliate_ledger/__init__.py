"""Creator referral attribution and commission ledger."""

__version__ = "0.1.0"
