from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, JSON, String, event
from sqlalchemy.orm import relationship

from .base import Base, changed_columns
from riskwatch.risk.constants import RiskLevel, ScanTrigger, enum_values
from riskwatch.risk.errors import ImmutableRecordError

TRIGGER_VALUES = enum_values(ScanTrigger)
RISK_LEVEL_VALUES = enum_values(RiskLevel)


class RiskScan(Base):
    __tablename__ = "risk_scans"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    trigger = Column(Enum(*TRIGGER_VALUES, name="scan_trigger", create_constraint=False), nullable=False)
    checks = Column(JSON, nullable=False, default=dict)
    risk_score = Column(Integer, nullable=False)
    risk_level = Column(Enum(*RISK_LEVEL_VALUES, name="risk_level", create_constraint=False), nullable=False)
    degraded = Column(Boolean, default=False, nullable=False)
    request_key = Column(String(255), unique=True, nullable=True)
    financial_request_id = Column(Integer, ForeignKey("financial_requests.id"), nullable=True)
    requested_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    account = relationship("Account", back_populates="scans")
    alert = relationship("RiskAlert", uselist=False, back_populates="scan")


@event.listens_for(RiskScan, "before_update")
def _scan_is_immutable(mapper, connection, target):
    changed = changed_columns(mapper, target)
    if changed:
        raise ImmutableRecordError(f"risk scan {target.id} is immutable once persisted (changed: {', '.join(changed)})")
