from datetime import datetime
from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from .base import Base
from riskwatch.risk.constants import SupportFlagStatus, enum_values

FLAG_STATUS_VALUES = enum_values(SupportFlagStatus)


class SupportFlag(Base):
    __tablename__ = "support_flags"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    reason = Column(Text, nullable=True)
    status = Column(Enum(*FLAG_STATUS_VALUES, name="support_flag_status", create_constraint=False), nullable=False, default="OPEN")
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    account = relationship("Account", back_populates="support_flags")
