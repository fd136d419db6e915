"""Conversion reporting endpoint for the storefront."""

from decimal import Decimal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from affiliate_ledger.api.rate_limit import limiter
from affiliate_ledger.api.v1.transactions import TransactionResponse
from affiliate_ledger.auth.middleware import require_storefront
from affiliate_ledger.commission.ledger import TransactionLedger
from affiliate_ledger.storage.db import get_session

router = APIRouter(prefix="/conversions", tags=["conversions"])


class ConversionRequest(BaseModel):
    """Confirmed order reported by the storefront."""
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderId", min_length=1, max_length=128)
    order_amount: Decimal = Field(alias="orderAmount", gt=0, max_digits=12, decimal_places=2)
    session_id: str | None = Field(default=None, alias="sessionId", max_length=64)


class ConversionResponse(BaseModel):
    """Outcome of a conversion report."""
    transaction: TransactionResponse | None = None
    unattributed: bool = False
    duplicate: bool = False


@router.post("", response_model=ConversionResponse)
@limiter.limit("600/minute")
def report_conversion(
    request: Request,
    body: ConversionRequest,
    _: str = Depends(require_storefront),
    session: Session = Depends(get_session),
):
    """Record a confirmed order.

    Repeat reports of the same order return the original transaction.
    Orders without a qualifying click come back as ``unattributed``.
    """
    outcome = TransactionLedger(session).record_conversion(
        order_id=body.order_id,
        order_amount=body.order_amount,
        session_id=body.session_id,
    )
    session.commit()

    return ConversionResponse(
        transaction=TransactionResponse.model_validate(outcome.transaction) if outcome.transaction else None,
        unattributed=outcome.unattributed,
        duplicate=outcome.duplicate,
    )
