from sqlalchemy import Column, String, Boolean, BigInteger
from brainguard.database import Base


class AppSetting(Base):
    __tablename__ = "app_settings"

    package_name = Column(String(255), primary_key=True)
    app_name = Column(String(255), nullable=False)

    monitored = Column(Boolean, nullable=False, default=True)
    daily_limit_ms = Column(BigInteger, nullable=False, default=2 * 60 * 60 * 1000)
