from flask import Blueprint, jsonify, request

from riskwatch.risk.schemas import scan_to_dict
from riskwatch.routes.context import get_orchestrator

scans_bp = Blueprint("scans", __name__)


@scans_bp.route("/scans", methods=["POST"])
def submit_manual_scan():
    payload = request.get_json(force=True, silent=True) or {}
    outcome = get_orchestrator().submit_manual_scan(payload.get("subject_id"), payload.get("requested_by"))
    return jsonify(outcome.to_dict()), 201


@scans_bp.route("/scans/<int:scan_id>", methods=["GET"])
def get_scan(scan_id: int):
    outcome = get_orchestrator().get_scan(scan_id)
    return jsonify(outcome.to_dict())


@scans_bp.route("/accounts/<subject_id>/scans", methods=["GET"])
def list_account_scans(subject_id: str):
    limit = request.args.get("limit", default=50, type=int)
    scans = get_orchestrator().list_scans(subject_id, limit=limit)
    return jsonify([scan_to_dict(scan, subject_id=subject_id) for scan in scans])
