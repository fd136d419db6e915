"""Creator administration: status machine, single and bulk operations."""

from affiliate_ledger.creators.bulk import AdminBulkOperationCoordinator, BulkAction, BulkResult
from affiliate_ledger.creators.service import CreatorListing, CreatorService
from affiliate_ledger.creators.status import CREATOR_TRANSITIONS, check_transition

__all__ = [
    "AdminBulkOperationCoordinator",
    "BulkAction",
    "BulkResult",
    "CreatorListing",
    "CreatorService",
    "CREATOR_TRANSITIONS",
    "check_transition",
]
