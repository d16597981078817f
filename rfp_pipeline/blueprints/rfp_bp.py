"""
RFP Lifecycle Blueprint.

Routes:
  GET    /rfps                                      – list visible RFPs
  POST   /rfps                                      – raise an RFP (salesperson)
  GET    /rfps/<id>                                 – RFP + prices + audit trail
  POST   /rfps/<id>/approve                         – head approval
  POST   /rfps/<id>/reject                          – head rejection
  PUT    /rfps/<id>/product-price                   – set a line's calculator price
  DELETE /rfps/<id>/product-price                   – clear a line's calculator price
  GET    /rfps/<id>/prices                          – price revision history
  POST   /rfps/<id>/prices                          – add a price revision (accounts)
  POST   /rfps/<id>/quotation                       – generate the quotation (sales)
  POST   /rfps/<id>/submit-accounts                 – hand over to accounts (sales)
  POST   /rfps/<id>/accounts-approval               – accounts decision
  POST   /rfps/<id>/senior-approval                 – senior management decision

All routes require a bearer token; capability checks happen in the services.
"""

from flask import Blueprint, g, jsonify, request

from rfp_pipeline.blueprints import json_body, page_params, register_error_handlers
from rfp_pipeline.middleware.permission_required import require_actor
from rfp_pipeline.services import quotation_service, rfp_lifecycle

rfp_bp = Blueprint("rfp_bp", __name__, url_prefix="/api/v1")
register_error_handlers(rfp_bp)


# ═════════════════════════════════════════════════════════════════════════════
# Create / read
# ═════════════════════════════════════════════════════════════════════════════


@rfp_bp.route("/rfps", methods=["GET"])
@require_actor
def list_rfps():
    """List RFPs visible to the caller, newest first.

    Query: status, search, salespersonId, companyName, departmentType, page, limit
    """
    page, limit = page_params()
    filters = {
        "status": request.args.get("status"),
        "search": request.args.get("search"),
        "salesperson_id": request.args.get("salespersonId"),
        "company_name": request.args.get("companyName"),
        "department_type": request.args.get("departmentType"),
    }
    return jsonify(rfp_lifecycle.list_rfps(g.actor, filters, page=page, limit=limit))


@rfp_bp.route("/rfps", methods=["POST"])
@require_actor
def create_rfp():
    """Raise an RFP.

    Body: { leadId, products: [{productSpec, quantity, length, lengthUnit,
            targetPrice, availabilityStatus}], deliveryTimeline,
            specialRequirements, pricingDecisionRfpId, masterRfpId }
      or the legacy { leadId, productSpec, quantity, availabilityStatus, ... }
    """
    rfp = rfp_lifecycle.create_rfp(g.actor, json_body())
    return jsonify(rfp.to_dict()), 201


@rfp_bp.route("/rfps/<int:rfp_request_id>", methods=["GET"])
@require_actor
def get_rfp(rfp_request_id):
    return jsonify(rfp_lifecycle.get_rfp(rfp_request_id))


# ═════════════════════════════════════════════════════════════════════════════
# Head decisions
# ═════════════════════════════════════════════════════════════════════════════


@rfp_bp.route("/rfps/<int:rfp_request_id>/approve", methods=["POST"])
@require_actor
def approve_rfp(rfp_request_id):
    """Body (optional): { calculatorTotalPrice, calculatorDetail }"""
    data = json_body()
    rfp = rfp_lifecycle.approve_rfp(
        g.actor,
        rfp_request_id,
        calculator_total_price=data.get("calculatorTotalPrice"),
        calculator_detail=data.get("calculatorDetail"),
    )
    return jsonify(rfp.to_dict())


@rfp_bp.route("/rfps/<int:rfp_request_id>/reject", methods=["POST"])
@require_actor
def reject_rfp(rfp_request_id):
    """Body (optional): { reason }"""
    rfp = rfp_lifecycle.reject_rfp(g.actor, rfp_request_id, json_body().get("reason"))
    return jsonify(rfp.to_dict())


@rfp_bp.route("/rfps/<int:rfp_request_id>/product-price", methods=["PUT"])
@require_actor
def set_product_price(rfp_request_id):
    """Body: { productSpec, totalPrice, calculatorDetail }"""
    data = json_body()
    rfp = rfp_lifecycle.set_product_price(
        g.actor,
        rfp_request_id,
        data.get("productSpec"),
        data.get("totalPrice"),
        data.get("calculatorDetail"),
    )
    return jsonify(rfp.to_dict())


@rfp_bp.route("/rfps/<int:rfp_request_id>/product-price", methods=["DELETE"])
@require_actor
def clear_product_price(rfp_request_id):
    """Body or query: productSpec"""
    spec = json_body().get("productSpec") or request.args.get("productSpec")
    rfp = rfp_lifecycle.clear_product_price(g.actor, rfp_request_id, spec)
    return jsonify(rfp.to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# Pricing
# ═════════════════════════════════════════════════════════════════════════════


@rfp_bp.route("/rfps/<int:rfp_request_id>/prices", methods=["GET"])
@require_actor
def list_prices(rfp_request_id):
    return jsonify([p.to_dict() for p in rfp_lifecycle.list_prices(rfp_request_id)])


@rfp_bp.route("/rfps/<int:rfp_request_id>/prices", methods=["POST"])
@require_actor
def add_price(rfp_request_id):
    """Body: { rawMaterialPrice, processingCost, margin, validityDate }"""
    result = rfp_lifecycle.add_price_revision(g.actor, rfp_request_id, json_body())
    return jsonify({
        "revision": result["revision"].to_dict(),
        "rfp": result["rfp"].to_dict(),
    }), 201


# ═════════════════════════════════════════════════════════════════════════════
# Quotation & approvals
# ═════════════════════════════════════════════════════════════════════════════


@rfp_bp.route("/rfps/<int:rfp_request_id>/quotation", methods=["POST"])
@require_actor
def generate_quotation(rfp_request_id):
    quotation = quotation_service.generate_quotation(g.actor, rfp_request_id)
    return jsonify(quotation.to_dict()), 201


@rfp_bp.route("/rfps/<int:rfp_request_id>/submit-accounts", methods=["POST"])
@require_actor
def submit_to_accounts(rfp_request_id):
    """Body (optional): { piId, paymentId }"""
    data = json_body()
    rfp = rfp_lifecycle.submit_to_accounts(
        g.actor,
        rfp_request_id,
        pi_id=data.get("piId"),
        payment_id=data.get("paymentId"),
    )
    return jsonify(rfp.to_dict())


@rfp_bp.route("/rfps/<int:rfp_request_id>/accounts-approval", methods=["POST"])
@require_actor
def accounts_approval(rfp_request_id):
    """Body: { status: approved | credit_case, notes }"""
    data = json_body()
    rfp = rfp_lifecycle.decide_accounts(
        g.actor, rfp_request_id, data.get("status"), data.get("notes"),
    )
    return jsonify(rfp.to_dict())


@rfp_bp.route("/rfps/<int:rfp_request_id>/senior-approval", methods=["POST"])
@require_actor
def senior_approval(rfp_request_id):
    """Body: { status: approved | rejected, notes }"""
    data = json_body()
    rfp = rfp_lifecycle.decide_senior(
        g.actor, rfp_request_id, data.get("status"), data.get("notes"),
    )
    return jsonify(rfp.to_dict())
