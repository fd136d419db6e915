"""Last-click attribution of conversions to referral clicks."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from affiliate_ledger.logging_config import get_logger
from affiliate_ledger.settings import settings
from affiliate_ledger.storage.models import utcnow
from affiliate_ledger.storage.repo import ClickRepository

logger = get_logger(__name__)


@dataclass(frozen=True)
class Attribution:
    """The click a conversion is credited to."""
    creator_id: int
    link_id: int
    click_id: int
    clicked_at: datetime


class AttributionResolver:
    """Finds the most recent qualifying click for a visitor session.

    A click qualifies when its link is active, its creator is approved and it
    happened within the attribution window before the conversion (both ends
    inclusive). Ties on ``clicked_at`` go to the later-recorded click.
    """

    def __init__(self, session: Session, window: timedelta | None = None):
        self.clicks = ClickRepository(session)
        self.window = window if window is not None else timedelta(days=settings.attribution_window_days)

    def resolve(self, session_id: str | None, received_at: datetime | None = None) -> Attribution | None:
        session_id = (session_id or "").strip()
        if not session_id:
            return None

        received_at = received_at or utcnow()
        click = self.clicks.latest_qualifying(
            session_id=session_id,
            since=received_at - self.window,
            until=received_at,
        )
        if click is None:
            logger.debug("attribution_not_found", session_id=session_id)
            return None

        return Attribution(
            creator_id=click.creator_id,
            link_id=click.link_id,
            click_id=click.id,
            clicked_at=click.clicked_at,
        )
