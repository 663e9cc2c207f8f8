from sqlalchemy import Column, DateTime, Integer, String, func
from sqlalchemy.schema import CheckConstraint

from .database import Base


class Flag(Base):
    __tablename__ = "flags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    value = Column(String, unique=True, index=True, nullable=False)
    group_id = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="unsent", index=True)
    timestamp = Column(DateTime, default=func.now())

    __table_args__ = (CheckConstraint("status IN ('unsent', 'sent', 'invalid')"),)
