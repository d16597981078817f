"""
Pricing Decision Blueprint.

Routes:
  POST   /pricing-decisions                            – save a decision (salesperson)
  GET    /pricing-decisions/by-lead/<lead_id>          – latest decision for a lead
  GET    /pricing-decisions/records                    – paged records, optional ?date=
  GET    /pricing-decisions/<rfp_id>                   – by decision id (or approved RFP id)
  PUT    /pricing-decisions/<rfp_id>                   – partial update
  PATCH  /pricing-decisions/<rfp_id>/mark-rfp-created  – flag as escalated to an RFP
"""

from datetime import date

from flask import Blueprint, g, jsonify, request

from rfp_pipeline.blueprints import json_body, page_params, register_error_handlers
from rfp_pipeline.core.exceptions import ValidationError
from rfp_pipeline.middleware.permission_required import require_actor
from rfp_pipeline.services import pricing_decision_service

pricing_decision_bp = Blueprint("pricing_decision_bp", __name__, url_prefix="/api/v1")
register_error_handlers(pricing_decision_bp)


@pricing_decision_bp.route("/pricing-decisions", methods=["POST"])
@require_actor
def create_decision():
    """Body: { leadId, products: [{productSpec, ...}], deliveryTimeline, specialRequirements }"""
    decision = pricing_decision_service.create_decision(g.actor, json_body())
    return jsonify(decision.to_dict()), 201


@pricing_decision_bp.route("/pricing-decisions/by-lead/<int:lead_id>", methods=["GET"])
@require_actor
def get_by_lead(lead_id):
    return jsonify(pricing_decision_service.get_latest_for_lead(lead_id).to_dict())


@pricing_decision_bp.route("/pricing-decisions/records", methods=["GET"])
@require_actor
def list_records():
    """Query: date (YYYY-MM-DD, optional), page, limit"""
    raw_date = request.args.get("date")
    record_date = None
    if raw_date:
        try:
            record_date = date.fromisoformat(raw_date)
        except ValueError:
            raise ValidationError("Date must use the format YYYY-MM-DD", field="date")
    page, limit = page_params()
    return jsonify(pricing_decision_service.list_records(record_date, page=page, limit=limit))


@pricing_decision_bp.route("/pricing-decisions/<rfp_id>", methods=["GET"])
@require_actor
def get_by_rfp_id(rfp_id):
    return jsonify(pricing_decision_service.get_by_rfp_id(rfp_id))


@pricing_decision_bp.route("/pricing-decisions/<rfp_id>", methods=["PUT"])
@require_actor
def update_decision(rfp_id):
    """Body (all optional): { products, deliveryTimeline, specialRequirements }"""
    decision = pricing_decision_service.update_decision(g.actor, rfp_id, json_body())
    return jsonify(decision.to_dict())


@pricing_decision_bp.route("/pricing-decisions/<rfp_id>/mark-rfp-created", methods=["PATCH"])
@require_actor
def mark_rfp_created(rfp_id):
    return jsonify(pricing_decision_service.mark_rfp_created(rfp_id).to_dict())
