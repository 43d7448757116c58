# marketplace/api/routers/orders.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from marketplace.api.deps import get_services
from marketplace.domain.schemas import OrderOut, StatusUpdateIn
from marketplace.services.container import Services

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/", response_model=List[OrderOut])
def list_orders(
    user_id: str = Query(...),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    svc: Services = Depends(get_services),
):
    return svc.orders.list_orders(user_id, limit, offset)


@router.get("/groups/{order_group_id}", response_model=List[OrderOut])
def get_order_group(
    order_group_id: str,
    user_id: Optional[str] = Query(default=None),
    svc: Services = Depends(get_services),
):
    return svc.orders.get_group_orders(order_group_id, user_id)


@router.patch("/{order_pk}/status", response_model=OrderOut)
def update_status(order_pk: str, payload: StatusUpdateIn, svc: Services = Depends(get_services)):
    return svc.order_status.update_status(
        order_pk,
        payload.actor,
        order_status=payload.order_status,
        payment_status=payload.payment_status,
        shipment_status=payload.shipment_status,
        note=payload.note,
    )
