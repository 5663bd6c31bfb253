from datetime import datetime
from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from .base import Base
from riskwatch.risk.constants import RequestStatus, enum_values

REQUEST_STATUS_VALUES = enum_values(RequestStatus)


class FinancialRequest(Base):
    __tablename__ = "financial_requests"

    id = Column(Integer, primary_key=True)
    request_reference = Column(String(100), unique=True, nullable=False)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    amount = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="PHP")
    country = Column(String(2), nullable=True)
    status = Column(
        Enum(*REQUEST_STATUS_VALUES, name="financial_request_status", create_constraint=False),
        nullable=False,
        default="PENDING_SCAN",
    )
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    account = relationship("Account", back_populates="financial_requests")
