from sqlalchemy import Column, String, Text

from marketplace.data.database import Base


class PlatformSettingModel(Base):
    __tablename__ = "platform_settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
