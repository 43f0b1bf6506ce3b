"""Store Setting model."""
import enum
from sqlalchemy import Column, String, Text, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from storefront.database import Base


class SettingType(enum.Enum):
    """How a setting's text value is parsed."""
    STRING = "STRING"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    JSON = "JSON"


class StoreSetting(Base):
    """Store Setting - key/value configuration store (e.g. `tax_rate`)."""

    __tablename__ = 'store_setting'

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
    type = Column(Enum(SettingType, name='setting_type'), nullable=False, default=SettingType.STRING)
    is_public = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<StoreSetting(key='{self.key}', value='{self.value}')>"
