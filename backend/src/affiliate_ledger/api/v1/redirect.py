"""Referral link redirect endpoint."""

from fastapi import APIRouter, Cookie, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from affiliate_ledger.api.rate_limit import limiter
from affiliate_ledger.errors import LinkNotFoundError
from affiliate_ledger.logging_config import get_logger
from affiliate_ledger.referral.clicks import ClickTracker
from affiliate_ledger.settings import settings
from affiliate_ledger.storage.db import get_session

logger = get_logger(__name__)

router = APIRouter(tags=["referral"])

SESSION_COOKIE = "ref_session"
LINK_COOKIE = "ref_link"


@router.get("/r/{code}", status_code=307)
@limiter.limit("120/minute")
def follow_referral_link(
    request: Request,
    code: str,
    ref_session: str | None = Cookie(default=None),
    session: Session = Depends(get_session),
):
    """Record a click and redirect to the link destination.

    Clicks on deactivated links are still recorded, then answered with 404.
    """
    tracked = ClickTracker(session).track(
        code,
        ip_address=request.client.host if request.client else "unknown",
        user_agent=request.headers.get("user-agent", ""),
        referrer=request.headers.get("referer"),
        session_id=ref_session,
    )
    session.commit()

    if not tracked.eligible:
        raise LinkNotFoundError(tracked.link.code)

    secure = settings.env == "production"
    response = RedirectResponse(tracked.link.destination_url, status_code=307)
    response.set_cookie(
        SESSION_COOKIE,
        tracked.session_id,
        max_age=settings.session_cookie_ttl_days * 24 * 3600,
        httponly=True,
        samesite="lax",
        secure=secure,
    )
    response.set_cookie(
        LINK_COOKIE,
        str(tracked.link.id),
        max_age=settings.link_cookie_ttl_hours * 3600,
        httponly=True,
        samesite="lax",
        secure=secure,
    )
    return response
