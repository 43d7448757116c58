# marketplace/api/routers/cron.py
from fastapi import APIRouter, Depends

from marketplace.api.deps import require_cron_secret
from marketplace.data.database import SessionLocal
from marketplace.domain.schemas import UnlockResultOut
from marketplace.services.unlock_service import UnlockService

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron_secret)])


def get_unlock_service() -> UnlockService:
    return UnlockService(SessionLocal)


@router.post("/unlock-funds", response_model=UnlockResultOut)
def unlock_funds(svc: UnlockService = Depends(get_unlock_service)):
    """Manual trigger for hosts without a Celery beat."""
    return svc.process_unlocks()
