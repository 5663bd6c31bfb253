from flask import Blueprint, jsonify, request

from riskwatch.risk.schemas import financial_request_to_dict
from riskwatch.routes.context import get_orchestrator
from riskwatch.services.financial_requests import create_financial_request, get_financial_request

financial_requests_bp = Blueprint("financial_requests", __name__)


@financial_requests_bp.route("/financial-requests", methods=["POST"])
def create_request():
    payload = request.get_json(force=True, silent=True) or {}
    fin_request = create_financial_request(
        subject_id=payload.get("subject_id"),
        amount=payload.get("amount"),
        currency=payload.get("currency"),
        country=payload.get("country"),
        request_reference=payload.get("request_reference"),
    )
    outcome = get_orchestrator().on_financial_request_created(fin_request.id)
    fin_request, subject_id = get_financial_request(fin_request.id)
    return jsonify({"financial_request": financial_request_to_dict(fin_request, subject_id=subject_id), **outcome.to_dict()}), 201


@financial_requests_bp.route("/financial-requests/<int:request_id>", methods=["GET"])
def read_request(request_id: int):
    fin_request, subject_id = get_financial_request(request_id)
    return jsonify(financial_request_to_dict(fin_request, subject_id=subject_id))
