from flask import Blueprint, jsonify, request

from riskwatch.risk.schemas import account_to_dict
from riskwatch.routes.context import get_orchestrator

accounts_bp = Blueprint("accounts", __name__)


@accounts_bp.route("/accounts/<subject_id>/unfreeze", methods=["POST"])
def unfreeze(subject_id: str):
    payload = request.get_json(force=True, silent=True) or {}
    result = get_orchestrator().dispatcher.lift_freeze(subject_id, payload.get("actor"), payload.get("reason"))
    return jsonify(
        {
            "account": account_to_dict(result.account),
            "changed": result.changed,
            "released_request_ids": result.released_request_ids,
        }
    )
