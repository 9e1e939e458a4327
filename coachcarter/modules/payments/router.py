"""Payments API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from coachcarter.modules.payments.gateway import PaymentGateway, get_payment_gateway
from coachcarter.modules.payments.schemas import CheckoutSessionCreate, CheckoutSessionRead

router = APIRouter(prefix="/checkout", tags=["payments"])


@router.post("/sessions", response_model=CheckoutSessionRead, status_code=status.HTTP_201_CREATED)
async def create_checkout_session(
    payload: CheckoutSessionCreate,
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> CheckoutSessionRead:
    """Create a hosted checkout page for a package purchase."""
    url = await gateway.create_checkout_session(payload)
    return CheckoutSessionRead(url=url)
