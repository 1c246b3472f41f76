from sqlalchemy import Column, Integer, BigInteger, String, Date, DateTime, func, UniqueConstraint
from brainguard.database import Base


class DailyUsage(Base):
    __tablename__ = "daily_usage"

    # sqlite는 INTEGER PRIMARY KEY 만 자동 증가
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)

    date = Column(Date, nullable=False, index=True)
    package_name = Column(String(255), nullable=False)
    app_name = Column(String(255), nullable=False)

    # 해당 날짜의 누적 사용 시간 (하루 안에서는 감소하지 않음)
    total_ms = Column(BigInteger, nullable=False, default=0)

    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("date", "package_name", name="uix_usage_date_pkg"),
    )
