# marketplace/api/routers/carts.py
from typing import Optional

from fastapi import APIRouter, Depends, Query

from marketplace.api.deps import get_services
from marketplace.domain.schemas import CartOut, CreateCartIn, ItemIn, MergeCartIn, QuantityIn
from marketplace.services.container import Services

router = APIRouter(prefix="/carts", tags=["carts"])


@router.post("/", response_model=CartOut)
def get_or_create_cart(payload: CreateCartIn, svc: Services = Depends(get_services)):
    return svc.carts.get_or_create_cart(user_id=payload.user_id, session_token=payload.session_token)


@router.post("/merge", response_model=CartOut)
def merge_guest_cart(payload: MergeCartIn, svc: Services = Depends(get_services)):
    return svc.carts.merge_guest_cart(payload.session_token, payload.user_id)


@router.get("/{cart_id}", response_model=CartOut)
def get_cart(
    cart_id: str,
    user_id: Optional[str] = Query(default=None),
    session_token: Optional[str] = Query(default=None),
    svc: Services = Depends(get_services),
):
    return svc.carts.get_cart(cart_id, user_id, session_token)


@router.post("/{cart_id}/items", response_model=CartOut)
def add_item(
    cart_id: str,
    payload: ItemIn,
    user_id: Optional[str] = Query(default=None),
    session_token: Optional[str] = Query(default=None),
    svc: Services = Depends(get_services),
):
    return svc.carts.add_product(cart_id, payload.product_id, payload.quantity, user_id, session_token)


@router.put("/{cart_id}/items/{product_id}", response_model=CartOut)
def update_item(
    cart_id: str,
    product_id: str,
    payload: QuantityIn,
    user_id: Optional[str] = Query(default=None),
    session_token: Optional[str] = Query(default=None),
    svc: Services = Depends(get_services),
):
    return svc.carts.update_quantity(cart_id, product_id, payload.quantity, user_id, session_token)


@router.delete("/{cart_id}/items/{product_id}", response_model=CartOut)
def remove_item(
    cart_id: str,
    product_id: str,
    user_id: Optional[str] = Query(default=None),
    session_token: Optional[str] = Query(default=None),
    svc: Services = Depends(get_services),
):
    return svc.carts.remove_product(cart_id, product_id, user_id, session_token)
