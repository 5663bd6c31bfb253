from flask import Blueprint, jsonify, request
from sqlalchemy import case, desc, select

from riskwatch.db.session import get_session
from riskwatch.models import Account, RiskAlert
from riskwatch.risk.constants import AlertStatus, RiskLevel, coerce
from riskwatch.risk.errors import NotFoundError, ValidationError
from riskwatch.risk.schemas import alert_to_dict
from riskwatch.routes.context import get_orchestrator

alerts_bp = Blueprint("alerts", __name__)

DEFAULT_ALERT_LIMIT = 100
MAX_ALERT_LIMIT = 500


def _filter_value(enum_cls, raw):
    if not raw:
        return None
    try:
        return coerce(enum_cls, raw).value
    except ValueError as exc:
        raise ValidationError(str(exc))


@alerts_bp.route("/alerts", methods=["GET"])
def list_alerts():
    status_filter = _filter_value(AlertStatus, request.args.get("status"))
    severity_filter = _filter_value(RiskLevel, request.args.get("severity"))
    subject_filter = request.args.get("subject_id")
    limit = request.args.get("limit", default=DEFAULT_ALERT_LIMIT, type=int)
    limit = max(1, min(limit, MAX_ALERT_LIMIT))
    session = get_session()
    try:
        severity_order = case(
            (RiskAlert.severity == "CRITICAL", 4),
            (RiskAlert.severity == "HIGH", 3),
            (RiskAlert.severity == "MEDIUM", 2),
            else_=1,
        )
        query = (
            select(RiskAlert, Account.account_number)
            .join(Account, RiskAlert.account_id == Account.id)
            .order_by(desc(severity_order), RiskAlert.created_at.desc(), RiskAlert.id.desc())
        )
        if status_filter:
            query = query.where(RiskAlert.status == status_filter)
        if severity_filter:
            query = query.where(RiskAlert.severity == severity_filter)
        if subject_filter:
            query = query.where(Account.account_number == subject_filter)
        rows = session.execute(query.limit(limit)).all()
        return jsonify([alert_to_dict(alert, subject_id=account_number) for alert, account_number in rows])
    finally:
        session.close()


@alerts_bp.route("/alerts/<int:alert_id>", methods=["GET"])
def get_alert(alert_id: int):
    session = get_session()
    try:
        row = session.execute(
            select(RiskAlert, Account.account_number)
            .join(Account, RiskAlert.account_id == Account.id)
            .where(RiskAlert.id == alert_id)
        ).first()
        if not row:
            raise NotFoundError(f"Alert {alert_id} not found")
        alert, account_number = row
        return jsonify(alert_to_dict(alert, subject_id=account_number))
    finally:
        session.close()


@alerts_bp.route("/alerts/escalate", methods=["POST"])
def escalate():
    payload = request.get_json(force=True, silent=True) or {}
    subject_id = payload.get("subject_id")
    alert = get_orchestrator().dispatcher.escalate(
        subject_id=subject_id,
        reason=payload.get("reason"),
        severity=payload.get("severity"),
        evidence=payload.get("evidence"),
        requested_by=payload.get("requested_by"),
    )
    return jsonify(alert_to_dict(alert, subject_id=subject_id)), 201


@alerts_bp.route("/alerts/<int:alert_id>/status", methods=["POST"])
def update_status(alert_id: int):
    payload = request.get_json(force=True, silent=True) or {}
    alert = get_orchestrator().dispatcher.update_alert_status(
        alert_id,
        payload.get("status"),
        actor=payload.get("actor"),
        note=payload.get("note"),
    )
    session = get_session()
    try:
        subject_id = session.execute(select(Account.account_number).where(Account.id == alert.account_id)).scalar_one()
    finally:
        session.close()
    return jsonify(alert_to_dict(alert, subject_id=subject_id))
