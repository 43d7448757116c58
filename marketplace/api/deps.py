# marketplace/api/deps.py
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from marketplace.data.database import get_db
from marketplace.services.container import Services
from marketplace.utils.settings import CRON_SECRET


def get_services(db: Session = Depends(get_db)) -> Services:
    return Services(db)


def require_cron_secret(authorization: str | None = Header(default=None)):
    if not CRON_SECRET or authorization != f"Bearer {CRON_SECRET}":
        raise HTTPException(status_code=401, detail="Unauthorized")
