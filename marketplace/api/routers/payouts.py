# marketplace/api/routers/payouts.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from marketplace.api.deps import get_services
from marketplace.domain.schemas import PayoutActionIn, PayoutOut, PayoutRequestIn
from marketplace.services.container import Services

router = APIRouter(prefix="/payouts", tags=["payouts"])


@router.post("/", response_model=PayoutOut, status_code=201)
def request_payout(payload: PayoutRequestIn, svc: Services = Depends(get_services)):
    return svc.payouts.request_payout(payload.user_id, payload.amount)


@router.get("/", response_model=List[PayoutOut])
def list_payouts(
    user_id: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    svc: Services = Depends(get_services),
):
    return svc.payouts.list_payouts(user_id, status, limit, offset)


@router.post("/{payout_id}/approve", response_model=PayoutOut)
def approve_payout(payout_id: str, payload: PayoutActionIn, svc: Services = Depends(get_services)):
    return svc.payouts.approve(payout_id, payload.admin_id, payload.note)


@router.post("/{payout_id}/paid", response_model=PayoutOut)
def mark_payout_paid(payout_id: str, payload: PayoutActionIn, svc: Services = Depends(get_services)):
    return svc.payouts.mark_paid(payout_id, payload.admin_id, payload.reference, payload.note)


@router.post("/{payout_id}/reject", response_model=PayoutOut)
def reject_payout(payout_id: str, payload: PayoutActionIn, svc: Services = Depends(get_services)):
    return svc.payouts.reject(payout_id, payload.admin_id, payload.note)
