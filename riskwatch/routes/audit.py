from flask import Blueprint, jsonify, request

from riskwatch.risk.errors import ValidationError
from riskwatch.risk.schemas import audit_entry_to_dict
from riskwatch.routes.context import get_orchestrator

audit_bp = Blueprint("audit", __name__)


@audit_bp.route("/audit", methods=["GET"])
def list_audit_entries():
    limit = request.args.get("limit", default=100, type=int)
    try:
        entries = get_orchestrator().audit.list_entries(
            subject_id=request.args.get("subject_id"),
            event_type=request.args.get("event_type"),
            limit=limit,
        )
    except ValueError as exc:
        raise ValidationError(str(exc))
    return jsonify([audit_entry_to_dict(entry) for entry in entries])
