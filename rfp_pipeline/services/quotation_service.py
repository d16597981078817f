"""
RFP Pipeline — Quotation Generator

generate_quotation(actor, rfp_request_id) turns a pricing-ready RFP into a
customer quotation, one quotation line per RFP product line:

    taxable = quantity × calculated_price      (quantity falls back to 1)
    gst     = taxable × GST rate (18%)
    total   = taxable + gst

All amounts are Decimal, rounded half-up to 2 places.

Preconditions, in order:
    capability GENERATE_QUOTATION     → PermissionDenied (403)
    RFP exists                        → NotFoundError (404)
    no quotation linked yet           → ConflictError (409)
    status == pricing_ready           → TransitionError (409)
    calculated_price present          → ValidationError (400)

The RFP row is re-read FOR UPDATE before the link is written, and
rfp_requests.quotation_id is unique, so a duplicate request racing this one
ends in a 409 rather than a second linked quotation.
"""

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from rfp_pipeline.core.exceptions import CollaboratorError, ConflictError, ValidationError
from rfp_pipeline.models import db
from rfp_pipeline.models.audit import log_action
from rfp_pipeline.models.rfp import RfpRequest
from rfp_pipeline.models.sales import Lead, Quotation, QuotationItem
from rfp_pipeline.services.code_generator import generate_quotation_number
from rfp_pipeline.services.permission import Actor, Capability, check_capability
from rfp_pipeline.services.rfp_lifecycle import TransitionError, load_rfp, validate_transition

logger = logging.getLogger(__name__)

DEFAULT_GST_RATE = Decimal("18")
_CENT = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def gst_rate() -> Decimal:
    if has_app_context():
        return Decimal(str(current_app.config.get("RFP_GST_RATE", DEFAULT_GST_RATE)))
    return DEFAULT_GST_RATE


def price_lines(rfp: RfpRequest, rate: Decimal) -> list[dict]:
    """Priced quotation lines for every product line on ``rfp``."""
    unit_price = Decimal(rfp.calculated_price)
    lines = []
    for order, product in enumerate(rfp.products, start=1):
        quantity = Decimal(product.quantity) if product.quantity else Decimal("1")
        taxable = _money(quantity * unit_price)
        gst = _money(taxable * rate / 100)
        lines.append({
            "item_order": order,
            "product_name": product.product_spec,
            "description": rfp.special_requirements or product.product_spec,
            "quantity": quantity,
            "unit": "Nos",
            "unit_price": _money(unit_price),
            "gst_rate": rate,
            "taxable_amount": taxable,
            "gst_amount": gst,
            "total_amount": taxable + gst,
        })
    return lines


def _check_preconditions(rfp: RfpRequest) -> None:
    if rfp.quotation_id:
        raise ConflictError("Quotation already exists for this RFP",
                            resource="RfpRequest", field="quotation_id")
    validation = validate_transition(rfp, "generate_quotation")
    if not validation["valid"]:
        raise TransitionError(
            rfp.rfp_id or f"#{rfp.id}", "generate_quotation", rfp.status,
            "Quotation can be generated only after pricing is finalized",
        )
    if rfp.calculated_price is None:
        raise ValidationError("Pricing not finalized", field="calculated_price")


def generate_quotation(actor: Actor, rfp_request_id: int) -> Quotation:
    """
    Create the quotation for a pricing-ready RFP and link it.

    Raises:
        PermissionDenied, NotFoundError, ConflictError, TransitionError,
        ValidationError, CollaboratorError
    """
    check_capability(actor, Capability.GENERATE_QUOTATION)
    rfp = load_rfp(rfp_request_id, lock=True)
    _check_preconditions(rfp)

    rate = gst_rate()
    lines = price_lines(rfp, rate)
    lead = db.session.get(Lead, rfp.lead_id)
    snapshot = lead.customer_snapshot() if lead else {}

    subtotal = sum((line["taxable_amount"] for line in lines), Decimal("0"))
    tax_amount = sum((line["gst_amount"] for line in lines), Decimal("0"))

    quotation = Quotation(
        quotation_number=generate_quotation_number(),
        customer_id=rfp.lead_id,
        salesperson_id=rfp.salesperson_id or actor.user_id,
        created_by=actor.display_name,
        status="draft",
        quotation_date=datetime.now(timezone.utc).date(),
        valid_until=rfp.price_valid_until,
        branch="ANODE",
        subtotal=subtotal,
        tax_rate=rate,
        tax_amount=tax_amount,
        discount_rate=0,
        discount_amount=0,
        total_amount=subtotal + tax_amount,
        rfp_request_id=rfp.id,
        rfp_id=rfp.rfp_id,
        **snapshot,
    )
    quotation.items = [QuotationItem(**line) for line in lines]

    try:
        db.session.add(quotation)
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Quotation number was taken concurrently; retry",
                            resource="Quotation", field="quotation_number")
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Quotation insert failed", extra={"rfp_request_id": rfp_request_id})
        raise CollaboratorError("Quotation", "could not persist quotation") from exc

    previous = rfp.status
    rfp.quotation_id = quotation.id
    rfp.quotation_number = quotation.quotation_number
    rfp.status = validate_transition(rfp, "generate_quotation")["to"]

    log_action(rfp.id, "quotation_created", actor, metadata={
        "quotationNumber": quotation.quotation_number,
        "totalAmount": str(quotation.total_amount),
        "itemCount": len(lines),
    })
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Quotation already exists for this RFP",
                            resource="RfpRequest", field="quotation_id")

    logger.info(
        "RFP generate_quotation: %s → %s",
        previous,
        rfp.status,
        extra={
            "rfp_request_id": rfp.id,
            "action": "generate_quotation",
            "quotation_number": quotation.quotation_number,
        },
    )
    return quotation
