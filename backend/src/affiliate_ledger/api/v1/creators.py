"""Creator administration API v1 endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from affiliate_ledger.api.v1.transactions import TransactionResponse
from affiliate_ledger.auth.middleware import require_admin
from affiliate_ledger.commission.tiers import CreatorTier
from affiliate_ledger.creators.bulk import AdminBulkOperationCoordinator
from affiliate_ledger.creators.service import CreatorService
from affiliate_ledger.logging_config import get_logger
from affiliate_ledger.payouts.gateway import PayoutGateway, get_gateway
from affiliate_ledger.payouts.service import PayoutService
from affiliate_ledger.referral.links import ReferralLinkRegistry
from affiliate_ledger.storage.db import get_session
from affiliate_ledger.storage.models import CreatorStatus, PaymentMethod

logger = get_logger(__name__)

router = APIRouter(prefix="/creators", tags=["creators"])


# ==================== MODELS ====================


class CreatorMetrics(BaseModel):
    total_clicks: int
    total_sales: int
    total_commission: Decimal
    conversion_rate: Decimal
    last_sale_at: datetime | None = None


class CreatorStats(BaseModel):
    total_links: int = 0
    total_clicks: int = 0
    total_conversions: int = 0
    pending_commissions: Decimal = Decimal("0.00")
    approved_commissions: Decimal = Decimal("0.00")
    paid_commissions: Decimal = Decimal("0.00")
    total_commissions: Decimal = Decimal("0.00")
    total_payouts: Decimal = Decimal("0.00")
    last_payout_date: datetime | None = None


class CreatorSummary(BaseModel):
    """Creator as shown in listings. Payment details are never included."""
    id: int
    creator_code: str
    display_name: str
    email: str
    status: str
    commission_rate: Decimal
    minimum_payout: Decimal
    payment_method: str
    tier: str
    revenue_30d: Decimal
    metrics: CreatorMetrics
    created_at: datetime
    approved_at: datetime | None = None
    stats: CreatorStats | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class CreatorListResponse(BaseModel):
    creators: list[CreatorSummary]
    pagination: Pagination
    status_distribution: dict[str, int]


class LinkResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    product_id: str | None = None
    destination_url: str
    is_active: bool
    click_count: int
    conversion_count: int
    last_clicked_at: datetime | None = None
    created_at: datetime


class ClickResponse(BaseModel):
    id: int
    link_id: int
    ip_address: str
    user_agent: str
    device_type: str
    referrer: str | None = None
    clicked_at: datetime


class PayoutResponse(BaseModel):
    """Creator payout (payment details are not exposed)."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    creator_id: int
    amount: Decimal
    currency: str
    transaction_ids: list[int]
    payment_method: str
    status: str
    requires_reconciliation: bool
    failure_reason: str | None = None
    payment_reference: str | None = None
    payout_date: datetime
    completed_at: datetime | None = None


class StatusBreakdown(BaseModel):
    count: int
    total: Decimal


class DailyPerformance(BaseModel):
    date: str
    sales: int
    revenue: Decimal
    commission: Decimal


class CreatorDetailResponse(CreatorSummary):
    payment_details: str
    notes: str | None = None
    suspended_at: datetime | None = None
    available_for_payout: Decimal
    payout_eligible: bool
    links: list[LinkResponse]
    total_links: int
    active_links: int
    commission_breakdown: dict[str, StatusBreakdown]
    performance_30d: list[DailyPerformance]
    recent_clicks: list[ClickResponse]
    recent_transactions: list[TransactionResponse]
    payouts: list[PayoutResponse]


class CreatorApplication(BaseModel):
    """Request to enroll a creator."""
    model_config = ConfigDict(populate_by_name=True)

    display_name: str = Field(alias="displayName", min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    payment_method: PaymentMethod = Field(alias="paymentMethod")
    payment_details: dict[str, Any] = Field(alias="paymentDetails")
    commission_rate: Decimal | None = Field(default=None, alias="commissionRate")
    minimum_payout: Decimal | None = Field(default=None, alias="minimumPayout")


class BulkUpdates(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    commission_rate: Decimal | None = Field(default=None, alias="commissionRate")
    minimum_payout: Decimal | None = Field(default=None, alias="minimumPayout")
    reason: str | None = None
    notes: str | None = None


class BulkRequest(BaseModel):
    """Bulk admin action over a set of creators."""
    model_config = ConfigDict(populate_by_name=True)

    action: str
    creator_ids: list[int] = Field(default_factory=list, alias="creatorIds")
    updates: BulkUpdates | None = None


class BulkResponse(BaseModel):
    action: str
    modified_count: int
    skipped_ids: list[int]
    export_rows: list[dict[str, Any]] = []
    csv: str | None = None


class StatusUpdateRequest(BaseModel):
    status: CreatorStatus
    reason: str | None = Field(default=None, max_length=500)


class ReinstateRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class NoteRequest(BaseModel):
    note: str = Field(min_length=1, max_length=2000)


class LinkCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    destination_url: str = Field(alias="destinationUrl", min_length=1)
    product_id: str | None = Field(default=None, alias="productId", max_length=64)


class EligibilityResponse(BaseModel):
    creator_id: int
    is_eligible: bool
    available_amount: Decimal
    minimum_payout: Decimal
    transaction_ids: list[int]


# ==================== ENDPOINTS ====================


@router.get("", response_model=CreatorListResponse)
def list_creators(
    status: CreatorStatus | None = None,
    tier: CreatorTier | None = None,
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1),
    _: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """List creators with stats. ``limit`` is capped at 100."""
    listing = CreatorService(session).list_creators(
        status=status, tier=tier, search=search, page=page, limit=limit
    )
    return CreatorListResponse(
        creators=[CreatorSummary(**row) for row in listing.creators],
        pagination=Pagination(
            page=listing.page, limit=listing.limit, total=listing.total, pages=listing.pages
        ),
        status_distribution=listing.status_distribution,
    )


@router.post("", response_model=CreatorSummary, status_code=201)
def enroll_creator(
    body: CreatorApplication,
    _: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Enroll a creator in pending status."""
    service = CreatorService(session)
    creator = service.apply(
        display_name=body.display_name,
        email=body.email,
        payment_method=body.payment_method,
        payment_details=body.payment_details,
        commission_rate=body.commission_rate,
        minimum_payout=body.minimum_payout,
    )
    session.commit()
    return CreatorSummary(**service.summary(creator.id))


@router.put("", response_model=BulkResponse)
def bulk_update_creators(
    body: BulkRequest,
    actor: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Apply one action to many creators. Ineligible creators are skipped."""
    updates = body.updates.model_dump(exclude_none=True) if body.updates else {}
    result = AdminBulkOperationCoordinator(session).apply(
        body.action, body.creator_ids, updates=updates, actor=actor
    )
    session.commit()
    return BulkResponse(
        action=result.action,
        modified_count=result.modified_count,
        skipped_ids=result.skipped_ids,
        export_rows=result.export_rows,
        csv=result.csv,
    )


@router.get("/{creator_id}", response_model=CreatorDetailResponse)
def get_creator(
    creator_id: int,
    _: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Creator detail with masked payment details and recent activity."""
    detail = CreatorService(session).get_detail(creator_id)
    return CreatorDetailResponse(
        **{
            **detail,
            "links": [LinkResponse(**link) for link in detail["links"]],
            "recent_clicks": [ClickResponse(**click) for click in detail["recent_clicks"]],
            "recent_transactions": [
                TransactionResponse.model_validate(t) for t in detail["recent_transactions"]
            ],
            "payouts": [PayoutResponse.model_validate(p) for p in detail["payouts"]],
        }
    )


@router.put("/{creator_id}/status", response_model=CreatorSummary)
def update_creator_status(
    creator_id: int,
    body: StatusUpdateRequest,
    actor: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Change a creator's status along the transition table."""
    service = CreatorService(session)
    service.transition(creator_id, body.status, actor, reason=body.reason)
    session.commit()
    return CreatorSummary(**service.summary(creator_id))


@router.post("/{creator_id}/reinstate", response_model=CreatorSummary)
def reinstate_creator(
    creator_id: int,
    body: ReinstateRequest | None = None,
    actor: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Bring an inactive creator back to approved."""
    service = CreatorService(session)
    service.reinstate(creator_id, actor, reason=body.reason if body else None)
    session.commit()
    return CreatorSummary(**service.summary(creator_id))


@router.post("/{creator_id}/notes")
def add_creator_note(
    creator_id: int,
    body: NoteRequest,
    actor: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Append an admin note to the creator's audit log."""
    creator = CreatorService(session).add_note(creator_id, actor, body.note)
    session.commit()
    return {"creator_id": creator.id, "notes": creator.notes}


@router.post("/{creator_id}/links", response_model=LinkResponse, status_code=201)
def create_creator_link(
    creator_id: int,
    body: LinkCreateRequest,
    _: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Create a referral link for an approved creator."""
    link = ReferralLinkRegistry(session).create_link(
        creator_id, body.destination_url, product_id=body.product_id
    )
    session.commit()
    return LinkResponse.model_validate(link)


@router.post("/{creator_id}/refresh-metrics", response_model=CreatorSummary)
def refresh_creator_metrics(
    creator_id: int,
    _: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Recompute creator metrics and link counters from the event tables."""
    service = CreatorService(session)
    service.refresh_metrics(creator_id)
    session.commit()
    return CreatorSummary(**service.summary(creator_id))


@router.get("/{creator_id}/payout", response_model=EligibilityResponse)
def get_payout_eligibility(
    creator_id: int,
    _: str = Depends(require_admin),
    session: Session = Depends(get_session),
    gateway: PayoutGateway = Depends(get_gateway),
):
    """Check whether the creator's approved balance can be paid out."""
    eligibility = PayoutService(session, gateway).evaluate(creator_id)
    return EligibilityResponse(**vars(eligibility))


@router.post("/{creator_id}/payout", response_model=PayoutResponse)
def trigger_payout(
    creator_id: int,
    actor: str = Depends(require_admin),
    session: Session = Depends(get_session),
    gateway: PayoutGateway = Depends(get_gateway),
):
    """Create a payout for all approved commissions and disburse it.

    A gateway failure still returns the payout, flagged for reconciliation.
    """
    payout = PayoutService(session, gateway).create_and_disburse(creator_id)
    logger.info("payout_triggered", creator_id=creator_id, payout_id=payout.id, actor=actor)
    return PayoutResponse.model_validate(payout)
