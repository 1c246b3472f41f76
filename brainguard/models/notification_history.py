from sqlalchemy import Column, Integer, BigInteger, String, Date, DateTime, Enum, func
from brainguard.database import Base


class NotificationHistory(Base):
    __tablename__ = "notification_history"

    noti_id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    package_name = Column(String(255), nullable=False)
    intensity = Column(Enum("mild", "normal", "harsh", "critical", name="intensity_enum"), nullable=False)

    # epoch ms
    sent_at = Column(BigInteger, nullable=False)
    date = Column(Date, nullable=False, index=True)

    created_at = Column(DateTime, server_default=func.now())
