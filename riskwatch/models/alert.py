from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from .base import Base
from .scan import RISK_LEVEL_VALUES
from riskwatch.risk.constants import AlertStatus, enum_values

STATUS_VALUES = enum_values(AlertStatus)


class RiskAlert(Base):
    __tablename__ = "risk_alerts"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    scan_id = Column(Integer, ForeignKey("risk_scans.id"), unique=True, nullable=True)
    severity = Column(Enum(*RISK_LEVEL_VALUES, name="risk_alert_severity", create_constraint=False), nullable=False, default="MEDIUM")
    status = Column(Enum(*STATUS_VALUES, name="risk_alert_status", create_constraint=False), nullable=False, default="PENDING")
    failed_checks = Column(JSON, nullable=False, default=list)
    mandatory_review = Column(Boolean, default=False, nullable=False)
    reason = Column(Text, nullable=True)
    evidence = Column(JSON, nullable=True)
    created_by = Column(String(255), nullable=True)
    resolution_note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    account = relationship("Account", back_populates="alerts")
    scan = relationship("RiskScan", back_populates="alert")
