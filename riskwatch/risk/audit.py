"""
Append-only audit trail.

``record`` never commits: the entry joins whatever transaction the caller is
running so a mutation and its audit entry land together or not at all.
"""

from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from riskwatch.db.session import get_session
from riskwatch.logger import get_logger
from riskwatch.models import AuditEntry
from riskwatch.risk.constants import AuditEvent, coerce

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"
DEFAULT_LIST_LIMIT = 100
MAX_LIST_LIMIT = 1000


class AuditLogger:
    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory or get_session

    def record(
        self,
        session: Session,
        event_type: AuditEvent,
        subject_id: str,
        ref_ids: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
        actor: Optional[str] = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            event_type=coerce(AuditEvent, event_type).value,
            subject_id=subject_id,
            ref_ids=ref_ids or {},
            payload=payload,
            actor=actor or SYSTEM_ACTOR,
        )
        session.add(entry)
        session.flush()
        logger.info("audit_recorded", audit_event=entry.event_type, subject_id=subject_id, audit_id=entry.id, **(ref_ids or {}))
        return entry

    def list_entries(
        self,
        subject_id: Optional[str] = None,
        event_type: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> List[AuditEntry]:
        limit = max(1, min(int(limit), MAX_LIST_LIMIT))
        query = select(AuditEntry).order_by(AuditEntry.id.asc())
        if subject_id:
            query = query.where(AuditEntry.subject_id == subject_id)
        if event_type:
            query = query.where(AuditEntry.event_type == coerce(AuditEvent, event_type).value)
        session = self._session_factory()
        try:
            return list(session.execute(query.limit(limit)).scalars())
        finally:
            session.close()
