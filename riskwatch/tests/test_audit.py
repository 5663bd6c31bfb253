import pytest
from sqlalchemy import select

from riskwatch.db.session import get_session
from riskwatch.models import AuditEntry, RiskScan
from riskwatch.risk.audit import AuditLogger
from riskwatch.risk.constants import AuditEvent
from riskwatch.risk.errors import ImmutableRecordError

from conftest import create_account


def _record(audit, subject_id, event_type, **ref_ids):
    session = get_session()
    try:
        entry = audit.record(session, event_type, subject_id, ref_ids=ref_ids, payload={"k": "v"}, actor="tester")
        session.commit()
        return entry
    finally:
        session.close()


def test_record_and_list_entries(db):
    audit = AuditLogger()
    _record(audit, "ACC-1", AuditEvent.SCAN_CREATED, scan_id=1)
    _record(audit, "ACC-1", "ALERT_CREATED", alert_id=2)
    _record(audit, "ACC-2", AuditEvent.SCAN_CREATED, scan_id=3)

    entries = audit.list_entries(subject_id="ACC-1")
    assert [e.event_type for e in entries] == ["SCAN_CREATED", "ALERT_CREATED"]
    assert entries[0].ref_ids == {"scan_id": 1}
    assert entries[0].actor == "tester"

    scans = audit.list_entries(event_type="scan_created")
    assert {e.subject_id for e in scans} == {"ACC-1", "ACC-2"}
    assert len(audit.list_entries(limit=1)) == 1


def test_record_rejects_unknown_event_type(db):
    with pytest.raises(ValueError):
        _record(AuditLogger(), "ACC-1", "SOMETHING_ELSE")


def test_audit_entries_are_append_only(db):
    entry = _record(AuditLogger(), "ACC-1", AuditEvent.SCAN_CREATED)
    session = get_session()
    try:
        row = session.get(AuditEntry, entry.id)
        row.actor = "someone else"
        with pytest.raises(ImmutableRecordError):
            session.commit()
        session.rollback()
        row = session.get(AuditEntry, entry.id)
        session.delete(row)
        with pytest.raises(ImmutableRecordError):
            session.commit()
        session.rollback()
    finally:
        session.close()
    assert AuditLogger().list_entries()[0].actor == "tester"


def test_scans_are_immutable(orchestrator, operators):
    create_account("ACC-IMM")
    outcome = orchestrator.submit_manual_scan("ACC-IMM", "analyst")
    session = get_session()
    try:
        scan = session.execute(select(RiskScan).where(RiskScan.id == outcome.scan.id)).scalar_one()
        scan.risk_score = 99
        with pytest.raises(ImmutableRecordError):
            session.commit()
        session.rollback()
    finally:
        session.close()
