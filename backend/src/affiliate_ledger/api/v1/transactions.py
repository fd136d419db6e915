"""Commission transaction API v1 endpoints."""

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from affiliate_ledger.auth.middleware import require_admin
from affiliate_ledger.commission.ledger import TransactionLedger
from affiliate_ledger.logging_config import get_logger
from affiliate_ledger.storage.db import get_session
from affiliate_ledger.storage.models import TransactionStatus

logger = get_logger(__name__)

router = APIRouter(prefix="/transactions", tags=["transactions"])


# ==================== MODELS ====================


class TransactionResponse(BaseModel):
    """Commission transaction."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    creator_id: int
    order_id: str
    link_id: int
    click_id: int
    order_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    status: str
    notes: str | None = None
    payout_id: int | None = None
    created_at: datetime
    processed_at: datetime | None = None
    paid_at: datetime | None = None


class ApproveRequest(BaseModel):
    """Request to approve pending transactions."""
    model_config = ConfigDict(populate_by_name=True)

    transaction_ids: list[int] = Field(alias="transactionIds", min_length=1)


class RejectRequest(BaseModel):
    """Request to reject transactions."""
    model_config = ConfigDict(populate_by_name=True)

    transaction_ids: list[int] = Field(alias="transactionIds", min_length=1)
    reason: str = Field(min_length=1, max_length=500)


class TransitionRequest(BaseModel):
    """Request to move one transaction to a new status."""
    status: TransactionStatus


# ==================== ENDPOINTS ====================


@router.post("/approve")
def approve_transactions(
    body: ApproveRequest,
    actor: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Approve pending transactions. Non-pending ones are skipped."""
    approved = TransactionLedger(session).approve(body.transaction_ids)
    session.commit()
    logger.info("transactions_approved_via_api", actor=actor, count=approved)
    return {"approved": approved, "requested": len(body.transaction_ids)}


@router.post("/reject")
def reject_transactions(
    body: RejectRequest,
    actor: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Reject pending or approved transactions (fraud, chargeback)."""
    rejected = TransactionLedger(session).reject(body.transaction_ids, f"{body.reason} ({actor})")
    session.commit()
    return {"rejected": rejected, "requested": len(body.transaction_ids)}


@router.put("/{transaction_id}/status", response_model=TransactionResponse)
def update_transaction_status(
    transaction_id: int,
    body: TransitionRequest,
    actor: str = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Move one transaction along its state machine."""
    transaction = TransactionLedger(session).transition(transaction_id, body.status)
    session.commit()
    return TransactionResponse.model_validate(transaction)
