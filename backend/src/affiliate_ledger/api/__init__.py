"""HTTP surface of the referral ledger."""
