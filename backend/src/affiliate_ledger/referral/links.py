"""Referral link registry."""

import secrets

from sqlalchemy.orm import Session

from affiliate_ledger.errors import CreatorNotApprovedError, CreatorNotFoundError, LinkNotFoundError
from affiliate_ledger.logging_config import get_logger
from affiliate_ledger.storage.models import CreatorStatus, ReferralLink
from affiliate_ledger.storage.repo import CreatorRepository, LinkRepository

logger = get_logger(__name__)

LINK_CODE_LENGTH = 10
CODE_ATTEMPTS = 10


def generate_code(length: int = 8) -> str:
    """Generate a readable random code.

    Uses uppercase letters and digits, avoiding confusing characters.
    Format: ABC12XYZ (8 chars by default)
    """
    # Exclude confusing characters: 0, O, I, l, 1
    alphabet = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
    return "".join(secrets.choice(alphabet) for _ in range(length))


def normalize_code(code: str | None) -> str:
    return (code or "").strip()


class ReferralLinkRegistry:
    """Lookup and lifecycle of referral links."""

    def __init__(self, session: Session):
        self.session = session
        self.links = LinkRepository(session)
        self.creators = CreatorRepository(session)

    def find_by_code(self, code: str) -> ReferralLink | None:
        """Find a link by code, active or not."""
        code = normalize_code(code)
        if not code:
            return None
        return self.links.get_by_code(code)

    def resolve(self, code: str) -> ReferralLink:
        """Resolve a code to an active link.

        Raises:
            LinkNotFoundError: Unknown code or deactivated link
        """
        link = self.find_by_code(code)
        if link is None or not link.is_active:
            raise LinkNotFoundError(normalize_code(code))
        return link

    def is_active(self, link_id: int) -> bool:
        link = self.links.get_by_id(link_id)
        return bool(link and link.is_active)

    def set_active(self, creator_id: int, active: bool) -> int:
        """Activate or deactivate all links of a creator.

        Returns:
            Number of links whose state changed
        """
        changed = self.links.set_active_for_creator(creator_id, active)
        logger.info("creator_links_toggled", creator_id=creator_id, active=active, changed=changed)
        return changed

    def create_link(
        self,
        creator_id: int,
        destination_url: str,
        product_id: str | None = None,
    ) -> ReferralLink:
        """Create a new link for an approved creator.

        Args:
            creator_id: Owning creator
            destination_url: Where the redirect lands
            product_id: Optional product the link promotes

        Returns:
            The new link
        """
        creator = self.creators.get_by_id(creator_id)
        if creator is None:
            raise CreatorNotFoundError(creator_id)
        if creator.status != CreatorStatus.APPROVED.value:
            raise CreatorNotApprovedError(creator_id, creator.status)

        code = generate_code(LINK_CODE_LENGTH)
        attempts = 0
        while attempts < CODE_ATTEMPTS and self.links.code_exists(code):
            code = generate_code(LINK_CODE_LENGTH)
            attempts += 1

        link = self.links.create(
            creator_id=creator_id,
            product_id=product_id,
            code=code,
            destination_url=destination_url,
        )
        logger.info("referral_link_created", creator_id=creator_id, link_id=link.id, code=code)
        return link
