# marketplace/api/routers/webhooks.py
from fastapi import APIRouter, Depends, Header, HTTPException, Request

from marketplace.api.deps import get_services
from marketplace.domain.errors import PaymentGatewayError
from marketplace.services.container import Services
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(default="", alias="Stripe-Signature"),
    svc: Services = Depends(get_services),
):
    payload = await request.body()
    try:
        event = svc.checkout.gateway.construct_event(payload, stripe_signature)
    except PaymentGatewayError as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(status_code=400, detail="Invalid webhook signature")
    return svc.checkout.handle_event(event)
