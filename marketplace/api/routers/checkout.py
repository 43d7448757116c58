# marketplace/api/routers/checkout.py
from typing import Optional

from fastapi import APIRouter, Depends, Query

from marketplace.api.deps import get_services
from marketplace.domain.schemas import (
    CheckoutIn,
    CheckoutOut,
    CheckoutVerifyOut,
    GroupPaymentIn,
    PaymentOutcomeOut,
    VerifySessionIn,
)
from marketplace.services.container import Services
from marketplace.services.pricing import ShippingQuote, money

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.get("/verify", response_model=CheckoutVerifyOut)
def verify_checkout(
    user_id: str = Query(...),
    address_id: Optional[str] = Query(default=None),
    cart_id: Optional[str] = Query(default=None),
    svc: Services = Depends(get_services),
):
    """Tell the storefront whether this cart can be paid online or needs approval first."""
    result = svc.checkout.verify_checkout(user_id, address_id, cart_id)
    return CheckoutVerifyOut(can_checkout=result.can_checkout, type=result.type, reasons=result.reasons)


@router.post("/", response_model=CheckoutOut, status_code=201)
def create_checkout(payload: CheckoutIn, svc: Services = Depends(get_services)):
    shipping = None
    if payload.shipping_costs is not None:
        shipping = {k: ShippingQuote(total=money(v.total), method=v.method) for k, v in payload.shipping_costs.items()}
    result = svc.checkout.create_checkout(
        payload.user_id,
        address_id=payload.address_id,
        shipping_costs=shipping,
        cart_id=payload.cart_id,
        success_url=payload.success_url,
        cancel_url=payload.cancel_url,
    )
    return CheckoutOut.model_validate(result)


@router.post("/verify-session", response_model=PaymentOutcomeOut)
def verify_session(payload: VerifySessionIn, svc: Services = Depends(get_services)):
    outcome = svc.checkout.verify_session(payload.session_id, payload.user_id)
    return PaymentOutcomeOut.model_validate(outcome)


@router.post("/groups/{order_group_id}/pay", response_model=CheckoutOut, status_code=201)
def pay_order_group(order_group_id: str, payload: GroupPaymentIn, svc: Services = Depends(get_services)):
    """Open a payment session for an approved request or a failed direct payment."""
    result = svc.checkout.create_group_payment_session(
        payload.user_id, order_group_id, success_url=payload.success_url, cancel_url=payload.cancel_url
    )
    return CheckoutOut.model_validate(result)
