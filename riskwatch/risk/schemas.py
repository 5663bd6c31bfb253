from datetime import datetime
from typing import Any, Dict, Optional


def _ts(val: Optional[datetime]) -> Optional[str]:
    return val.isoformat() if val else None


def scan_to_dict(model, subject_id: Optional[str] = None) -> Dict[str, Any]:
    if model is None:
        return {}
    return {
        "id": model.id,
        "subject_id": subject_id,
        "trigger": model.trigger,
        "checks": model.checks or {},
        "risk_score": model.risk_score,
        "risk_level": model.risk_level,
        "degraded": model.degraded,
        "request_key": model.request_key,
        "financial_request_id": model.financial_request_id,
        "requested_by": model.requested_by,
        "created_at": _ts(model.created_at),
    }


def alert_to_dict(model, subject_id: Optional[str] = None) -> Dict[str, Any]:
    if model is None:
        return {}
    return {
        "id": model.id,
        "subject_id": subject_id,
        "scan_id": model.scan_id,
        "severity": model.severity,
        "status": model.status,
        "failed_checks": model.failed_checks or [],
        "mandatory_review": model.mandatory_review,
        "reason": model.reason,
        "evidence": model.evidence,
        "created_by": model.created_by,
        "resolution_note": model.resolution_note,
        "created_at": _ts(model.created_at),
        "updated_at": _ts(model.updated_at),
    }


def financial_request_to_dict(model, subject_id: Optional[str] = None) -> Dict[str, Any]:
    if model is None:
        return {}
    return {
        "id": model.id,
        "request_reference": model.request_reference,
        "subject_id": subject_id,
        "amount": float(model.amount) if model.amount is not None else None,
        "currency": model.currency,
        "country": model.country,
        "status": model.status,
        "created_at": _ts(model.created_at),
        "updated_at": _ts(model.updated_at),
    }


def account_to_dict(model) -> Dict[str, Any]:
    if model is None:
        return {}
    return {
        "id": model.id,
        "subject_id": model.account_number,
        "customer_name": model.customer_name,
        "country": model.country,
        "frozen": model.frozen,
        "frozen_at": _ts(model.frozen_at),
        "frozen_reason": model.frozen_reason,
        "frozen_by_scan_id": model.frozen_by_scan_id,
    }


def audit_entry_to_dict(model) -> Dict[str, Any]:
    if model is None:
        return {}
    return {
        "id": model.id,
        "event_type": model.event_type,
        "subject_id": model.subject_id,
        "ref_ids": model.ref_ids or {},
        "payload": model.payload,
        "actor": model.actor,
        "created_at": _ts(model.created_at),
    }
