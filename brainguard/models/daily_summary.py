from sqlalchemy import Column, Integer, BigInteger, Date, DateTime, Text, func
from brainguard.database import Base


class DailySummary(Base):
    __tablename__ = "daily_summary"

    # 날짜당 최대 1개, 지난 날짜는 커밋 후 변경하지 않음
    date = Column(Date, primary_key=True)

    total_screen_time_ms = Column(BigInteger, nullable=False, default=0)
    score = Column(Integer, nullable=False)

    # [{"package_name", "app_name", "total_time_ms"}, ...] 사용량 내림차순
    apps_json = Column(Text, nullable=False, default="[]")

    created_at = Column(DateTime, server_default=func.now())
