"""Click recording for referral links."""

import re
import secrets
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from affiliate_ledger.errors import LinkNotFoundError
from affiliate_ledger.logging_config import get_logger
from affiliate_ledger.referral.links import ReferralLinkRegistry, normalize_code
from affiliate_ledger.storage.models import Creator, ReferralClick, ReferralLink, utcnow
from affiliate_ledger.storage.repo import ClickRepository, LinkRepository

logger = get_logger(__name__)

_TABLET_PATTERN = re.compile(r"ipad|tablet|kindle|silk|playbook|(android(?!.*mobile))", re.IGNORECASE)
_MOBILE_PATTERN = re.compile(r"mobi|iphone|ipod|android|blackberry|opera mini|iemobile", re.IGNORECASE)

MAX_SESSION_ID_LENGTH = 64


def detect_device_type(user_agent: str | None) -> str:
    """Classify a user agent as desktop, mobile or tablet."""
    if not user_agent:
        return "desktop"
    if _TABLET_PATTERN.search(user_agent):
        return "tablet"
    if _MOBILE_PATTERN.search(user_agent):
        return "mobile"
    return "desktop"


def new_session_id() -> str:
    return secrets.token_urlsafe(24)


@dataclass
class TrackedClick:
    """Result of recording a click.

    ``eligible`` is False when the link exists but is deactivated: the click
    is still stored, but no redirect should happen.
    """
    click: ReferralClick
    link: ReferralLink
    session_id: str
    eligible: bool


class ClickTracker:
    """Records inbound link visits."""

    def __init__(self, session: Session):
        self.session = session
        self.registry = ReferralLinkRegistry(session)
        self.links = LinkRepository(session)
        self.clicks = ClickRepository(session)

    def track(
        self,
        code: str,
        ip_address: str,
        user_agent: str,
        referrer: str | None = None,
        session_id: str | None = None,
        clicked_at: datetime | None = None,
    ) -> TrackedClick:
        """Record a click on a referral link.

        Args:
            code: Link code from the URL
            ip_address: Visitor IP
            user_agent: Visitor user agent
            referrer: Referring page, if any
            session_id: Existing visitor session id (from cookie)
            clicked_at: Click time (defaults to now)

        Returns:
            TrackedClick with the session id to hand back to the visitor

        Raises:
            LinkNotFoundError: Unknown link code (nothing is written)
        """
        link = self.registry.find_by_code(code)
        if link is None:
            raise LinkNotFoundError(normalize_code(code))

        session_id = (session_id or "").strip()
        if not session_id or len(session_id) > MAX_SESSION_ID_LENGTH:
            session_id = new_session_id()
        clicked_at = clicked_at or utcnow()

        click = self.clicks.add(
            ReferralClick(
                link_id=link.id,
                creator_id=link.creator_id,
                session_id=session_id,
                ip_address=ip_address or "unknown",
                user_agent=user_agent or "",
                referrer=referrer,
                device_type=detect_device_type(user_agent),
                clicked_at=clicked_at,
            )
        )
        self.links.record_click(link.id, clicked_at)
        self.session.execute(
            update(Creator)
            .where(Creator.id == link.creator_id)
            .values(total_clicks=Creator.total_clicks + 1)
            .execution_options(synchronize_session="fetch")
        )

        logger.info(
            "referral_click_tracked",
            link_id=link.id,
            creator_id=link.creator_id,
            click_id=click.id,
            eligible=link.is_active,
        )
        return TrackedClick(click=click, link=link, session_id=session_id, eligible=link.is_active)
