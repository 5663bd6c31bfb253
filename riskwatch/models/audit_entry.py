from datetime import datetime
from sqlalchemy import Column, DateTime, Enum, Integer, JSON, String, event

from .base import Base, changed_columns
from riskwatch.risk.constants import AuditEvent, enum_values
from riskwatch.risk.errors import ImmutableRecordError

EVENT_TYPE_VALUES = enum_values(AuditEvent)


class AuditEntry(Base):
    __tablename__ = "audit_entries"

    id = Column(Integer, primary_key=True)
    event_type = Column(Enum(*EVENT_TYPE_VALUES, name="audit_event_type", create_constraint=False), nullable=False)
    subject_id = Column(String(50), nullable=False, index=True)
    ref_ids = Column(JSON, nullable=False, default=dict)
    payload = Column(JSON, nullable=True)
    actor = Column(String(255), nullable=False, default="system")
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


@event.listens_for(AuditEntry, "before_update")
def _audit_no_update(mapper, connection, target):
    if changed_columns(mapper, target):
        raise ImmutableRecordError(f"audit entry {target.id} is append-only")


@event.listens_for(AuditEntry, "before_delete")
def _audit_no_delete(mapper, connection, target):
    raise ImmutableRecordError(f"audit entry {target.id} is append-only")
