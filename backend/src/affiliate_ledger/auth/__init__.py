"""Bearer token capabilities for the admin and storefront APIs."""

from affiliate_ledger.auth.middleware import TokenCapability, require_admin, require_storefront

__all__ = ["TokenCapability", "require_admin", "require_storefront"]
