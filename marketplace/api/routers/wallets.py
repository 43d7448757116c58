# marketplace/api/routers/wallets.py
from fastapi import APIRouter, Depends, Query

from marketplace.api.deps import get_services
from marketplace.domain.schemas import BalanceOut, TransactionPageOut
from marketplace.services.container import Services

router = APIRouter(prefix="/wallets", tags=["wallets"])


@router.get("/{user_id}", response_model=BalanceOut)
def get_balance(user_id: str, svc: Services = Depends(get_services)):
    balance = svc.ledger.get_balance(user_id)
    return BalanceOut(user_id=user_id, available=balance.available, locked=balance.locked)


@router.get("/{user_id}/transactions", response_model=TransactionPageOut)
def get_history(
    user_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    svc: Services = Depends(get_services),
):
    rows, total = svc.ledger.history(user_id, limit, offset)
    return {"items": rows, "total": total}
