# marketplace/repos/settings_repo.py
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from marketplace.data.models.platform_setting import PlatformSettingModel


class SettingsRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_value(self, key: str) -> Optional[str]:
        row = self.db.get(PlatformSettingModel, key)
        return row.value if row else None

    def get_values(self, keys: Iterable[str]) -> Dict[str, str]:
        rows = self.db.execute(
            select(PlatformSettingModel).where(PlatformSettingModel.key.in_(list(keys)))
        ).scalars()
        return {r.key: r.value for r in rows if r.value is not None}

    def set_value(self, key: str, value: str) -> PlatformSettingModel:
        row = self.db.get(PlatformSettingModel, key)
        if row:
            row.value = value
        else:
            row = PlatformSettingModel(key=key, value=value)
            self.db.add(row)
        self.db.flush()
        return row
