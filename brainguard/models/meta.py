from sqlalchemy import Column, String, Text
from brainguard.database import Base


class Meta(Base):
    __tablename__ = "meta"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
