from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import relationship

from .base import Base


class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    account_number = Column(String(50), unique=True, nullable=False)
    customer_name = Column(String(255), nullable=False)
    country = Column(String(2), nullable=True)
    network_risk_score = Column(Float, nullable=True)
    frozen = Column(Boolean, default=False, nullable=False)
    frozen_at = Column(DateTime(timezone=True), nullable=True)
    frozen_reason = Column(Text, nullable=True)
    frozen_by_scan_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    financial_requests = relationship("FinancialRequest", back_populates="account")
    support_flags = relationship("SupportFlag", back_populates="account")
    scans = relationship("RiskScan", back_populates="account")
    alerts = relationship("RiskAlert", back_populates="account")
