"""
RFP Pipeline — RFP Lifecycle Service

Manages RFP status transitions with:
  - Transition validation (RFP_TRANSITIONS)
  - Capability checks (services.permission)
  - Side effects (rfp_id assignment, pricing snapshot, price ledger,
    work order dispatch)
  - Audit trail: exactly one RfpAuditLog row per successful transition,
    written in the same transaction

Order of checks for every transition:
    capability → existence (NotFoundError) → payload (ValidationError)
    → state precondition (TransitionError, a ConflictError)

Transitions:
    create_rfp            —              → pending_dh
    approve_rfp           pending_dh     → approved
    reject_rfp            pending_dh     → rejected
    set_product_price     pending_dh | approved (no status change)
    clear_product_price   pending_dh | approved (no status change)
    add_price_revision    approved | pricing_ready → pricing_ready
    submit_to_accounts    quotation_created → accounts_pending
    decide_accounts       accounts_pending → accounts_approved | credit_case
    decide_senior         credit_case → senior_approved | senior_rejected

Quotation generation lives in services.quotation_service.

Usage:
    from rfp_pipeline.services.rfp_lifecycle import approve_rfp

    rfp = approve_rfp(actor, rfp_request_id=7, calculator_total_price="65000")
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from rfp_pipeline.core.exceptions import (
    CollaboratorError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from rfp_pipeline.models import db
from rfp_pipeline.models.audit import list_for_rfp, log_action
from rfp_pipeline.models.rfp import (
    ACCOUNTS_DECISIONS,
    RFP_TRANSITIONS,
    SENIOR_DECISIONS,
    RfpPriceRevision,
    RfpProductLine,
    RfpRequest,
)
from rfp_pipeline.models.sales import Lead, Quotation
from rfp_pipeline.services import pricing_decision_service
from rfp_pipeline.services.code_generator import generate_rfp_id
from rfp_pipeline.services.permission import (
    Actor,
    Capability,
    Department,
    Role,
    check_capability,
)
from rfp_pipeline.services.rfp_intake import parse_amount, validate_create_request
from rfp_pipeline.services.work_order_service import ensure_work_order

logger = logging.getLogger(__name__)


class TransitionError(ConflictError):
    """Raised when an RFP transition is not allowed from the current status."""

    def __init__(self, rfp_ref, action: str, current: str, reason: str | None = None):
        msg = f"Cannot '{action}' RFP {rfp_ref} (status={current})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, resource="RfpRequest")
        self.rfp_ref = rfp_ref
        self.action = action
        self.current_status = current
        self.reason = reason


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _ref(rfp: RfpRequest) -> str:
    return rfp.rfp_id or f"#{rfp.id}"


_CENT = Decimal("0.01")


def _cents(value: Decimal | None) -> Decimal:
    """Round to the 2 places the price columns store."""
    return (value or Decimal("0")).quantize(_CENT, rounding=ROUND_HALF_UP)


def validate_transition(rfp: RfpRequest, action: str, decision: str | None = None) -> dict:
    """
    Validate whether an action is valid for the current state.

    Returns:
        {"valid": bool, "from": str, "to": str|None, "reason": str|None}
    """
    rule = RFP_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": rfp.status, "to": None,
                "reason": f"Unknown action: {action}"}

    target = rule["to"]
    if isinstance(target, dict):
        target = target.get(decision)

    if rfp.status not in rule["from"]:
        return {"valid": False, "from": rfp.status, "to": target,
                "reason": f"Cannot '{action}' from status '{rfp.status}'"}

    return {"valid": True, "from": rfp.status, "to": target, "reason": None}


def _require(rfp: RfpRequest, action: str, decision: str | None = None,
             reason: str | None = None) -> str | None:
    validation = validate_transition(rfp, action, decision)
    if not validation["valid"]:
        raise TransitionError(_ref(rfp), action, rfp.status, reason or validation["reason"])
    return validation["to"]


def load_rfp(rfp_request_id: int, *, lock: bool = False) -> RfpRequest:
    """Fetch an RFP, optionally re-reading it under a row lock (SELECT … FOR UPDATE)."""
    q = RfpRequest.query.filter_by(id=rfp_request_id)
    if lock:
        q = q.with_for_update()
    rfp = q.first()
    if not rfp:
        raise NotFoundError(resource="RfpRequest", resource_id=rfp_request_id)
    return rfp


def _commit(conflict_message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(conflict_message, resource="RfpRequest")


def _log_transition(rfp: RfpRequest, action: str, previous: str | None, actor: Actor) -> None:
    logger.info(
        "RFP %s %s: %s → %s",
        _ref(rfp),
        action,
        previous,
        rfp.status,
        extra={
            "rfp_request_id": rfp.id,
            "action": action,
            "actor": actor.display_name,
        },
    )


def _parse_date(value, field_name: str) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{field_name} must be a date (YYYY-MM-DD)", field=field_name)


def _text(value) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


# ═════════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════════


def create_rfp(actor: Actor, payload: dict | None) -> RfpRequest:
    """
    Raise a new RFP in ``pending_dh``.

    When the payload carries ``pricingDecisionRfpId`` the referenced snapshot
    is marked ``rfp_created`` in the same transaction.

    Raises:
        PermissionDenied, ValidationError, ConflictError, NotFoundError
    """
    intake = validate_create_request(actor, payload)

    if intake.pricing_decision_rfp_id:
        pricing_decision_service.mark_rfp_created(intake.pricing_decision_rfp_id, commit=False)

    rfp = RfpRequest(
        lead_id=intake.lead_id,
        salesperson_id=actor.user_id,
        created_by=actor.display_name,
        department_type=actor.department_type,
        company_name=actor.company_name,
        status="pending_dh",
        delivery_timeline=intake.delivery_timeline,
        special_requirements=intake.special_requirements,
        pricing_decision_rfp_id=intake.pricing_decision_rfp_id,
        master_rfp_id=intake.master_rfp_id,
    )
    for line_no, line in enumerate(intake.products, start=1):
        rfp.products.append(RfpProductLine(
            line_no=line_no,
            product_spec=line.product_spec,
            quantity=line.quantity,
            length=line.length,
            length_unit=line.length_unit,
            target_price=line.target_price,
            availability_status=line.availability_status,
        ))
    db.session.add(rfp)
    db.session.flush()

    log_action(rfp.id, "rfp_created", actor, metadata={
        "productCount": len(intake.products),
        "products": [line.product_spec for line in intake.products],
        "availabilityStatus": [line.availability_status for line in intake.products],
    })
    db.session.commit()

    _log_transition(rfp, "create", None, actor)
    return rfp


# ═════════════════════════════════════════════════════════════════════════════
# Head decisions
# ═════════════════════════════════════════════════════════════════════════════


def approve_rfp(
    actor: Actor,
    rfp_request_id: int,
    *,
    calculator_total_price=None,
    calculator_detail: dict | None = None,
) -> RfpRequest:
    """
    Approve a pending RFP.

    Assigns the workflow rfp_id (once), optionally records the head's
    calculator total, and snapshots the commercial terms into a new
    PricingDecision with status ``approved``.
    """
    check_capability(actor, Capability.APPROVE_RFP)
    rfp = load_rfp(rfp_request_id, lock=True)

    total = parse_amount(calculator_total_price, "calculatorTotalPrice")
    if calculator_detail is not None and not isinstance(calculator_detail, dict):
        raise ValidationError("calculatorDetail must be an object", field="calculatorDetail")

    target = _require(rfp, "approve")
    if not rfp.products:
        raise ValidationError("An RFP needs at least one product line to be approved",
                              field="products")

    previous = rfp.status
    if rfp.rfp_id is None:
        rfp.rfp_id = generate_rfp_id(rfp.salesperson_id)
    rfp.status = target
    rfp.approved_by = actor.display_name
    rfp.approved_at = _now()
    if total is not None:
        rfp.calculator_total_price = total
    if calculator_detail is not None:
        rfp.calculator_detail = calculator_detail

    try:
        decision = pricing_decision_service.create_from_rfp(rfp, actor)
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("RFP id was assigned concurrently; retry the approval",
                            resource="RfpRequest", field="rfp_id")

    log_action(rfp.id, "rfp_approved", actor, metadata={
        "rfpId": rfp.rfp_id,
        "pricingDecisionId": decision.rfp_id,
        "calculatorTotalPrice": str(total) if total is not None else None,
    })
    _commit("RFP id was assigned concurrently; retry the approval")

    _log_transition(rfp, "approve", previous, actor)
    return rfp


def reject_rfp(actor: Actor, rfp_request_id: int, reason: str | None = None) -> RfpRequest:
    """Reject a pending RFP.  Terminal."""
    check_capability(actor, Capability.APPROVE_RFP)
    rfp = load_rfp(rfp_request_id, lock=True)
    reason = _text(reason)
    target = _require(rfp, "reject")

    previous = rfp.status
    rfp.status = target
    rfp.rejected_by = actor.display_name
    rfp.rejected_at = _now()
    rfp.rejection_reason = reason

    log_action(rfp.id, "rfp_rejected", actor, notes=reason)
    db.session.commit()

    _log_transition(rfp, "reject", previous, actor)
    return rfp


def _find_line(rfp: RfpRequest, product_spec: str) -> RfpProductLine:
    for line in rfp.products:
        if line.product_spec == product_spec:
            return line
    raise NotFoundError(resource="RfpProductLine", resource_id=product_spec)


def set_product_price(
    actor: Actor,
    rfp_request_id: int,
    product_spec: str,
    total_price,
    calculator_detail: dict | None = None,
) -> RfpRequest:
    """Overwrite one product line's calculator price, matched by product spec."""
    check_capability(actor, Capability.SET_PRODUCT_PRICE)
    rfp = load_rfp(rfp_request_id, lock=True)

    spec = _text(product_spec)
    if not spec:
        raise ValidationError("productSpec is required", field="productSpec")
    price = parse_amount(total_price, "totalPrice")
    if price is None:
        raise ValidationError("totalPrice is required", field="totalPrice")
    if calculator_detail is not None and not isinstance(calculator_detail, dict):
        raise ValidationError("calculatorDetail must be an object", field="calculatorDetail")

    _require(rfp, "set_product_price")
    line = _find_line(rfp, spec)
    line.calculator_price = price
    line.calculator_detail = calculator_detail

    log_action(rfp.id, "product_price_set", actor, metadata={
        "productSpec": spec,
        "totalPrice": str(price),
    })
    db.session.commit()

    _log_transition(rfp, "set_product_price", rfp.status, actor)
    return rfp


def clear_product_price(actor: Actor, rfp_request_id: int, product_spec: str) -> RfpRequest:
    """Clear one product line's calculator override."""
    check_capability(actor, Capability.SET_PRODUCT_PRICE)
    rfp = load_rfp(rfp_request_id, lock=True)

    spec = _text(product_spec)
    if not spec:
        raise ValidationError("productSpec is required", field="productSpec")

    _require(rfp, "clear_product_price")
    line = _find_line(rfp, spec)
    line.calculator_price = None
    line.calculator_detail = None

    log_action(rfp.id, "product_price_cleared", actor, metadata={"productSpec": spec})
    db.session.commit()

    _log_transition(rfp, "clear_product_price", rfp.status, actor)
    return rfp


# ═════════════════════════════════════════════════════════════════════════════
# Price Revision Ledger
# ═════════════════════════════════════════════════════════════════════════════


def add_price_revision(actor: Actor, rfp_request_id: int, payload: dict | None) -> dict:
    """
    Append a pricing proposal and mirror it onto the RFP.

    ``calculated_price = raw_material_price + processing_cost + margin``.
    Components are rounded half-up to cents first, so the stored sum matches
    the stored parts. Missing components count as zero.

    Returns:
        {"revision": RfpPriceRevision, "rfp": RfpRequest}
    """
    check_capability(actor, Capability.PRICE_RFP)
    rfp = load_rfp(rfp_request_id)

    payload = payload or {}
    raw = _cents(parse_amount(payload.get("rawMaterialPrice"), "rawMaterialPrice"))
    processing = _cents(parse_amount(payload.get("processingCost"), "processingCost"))
    margin = _cents(parse_amount(payload.get("margin"), "margin"))
    validity = _parse_date(payload.get("validityDate"), "validityDate")

    if not rfp.rfp_id:
        raise TransitionError(_ref(rfp), "add_price", rfp.status,
                              "RFP must be approved by DH before pricing")
    target = _require(rfp, "add_price", reason="RFP must be approved by DH before pricing")

    calculated = raw + processing + margin
    revision = RfpPriceRevision(
        rfp_request_id=rfp.id,
        raw_material_price=raw,
        processing_cost=processing,
        margin=margin,
        calculated_price=calculated,
        validity_date=validity,
        created_by=actor.display_name,
    )
    db.session.add(revision)

    previous = rfp.status
    rfp.raw_material_price = raw
    rfp.processing_cost = processing
    rfp.margin = margin
    rfp.calculated_price = calculated
    rfp.price_valid_until = validity
    rfp.pricing_updated_by = actor.display_name
    rfp.pricing_updated_at = _now()
    rfp.status = target
    db.session.flush()

    log_action(rfp.id, "price_updated", actor, metadata={
        "rawMaterialPrice": str(raw),
        "processingCost": str(processing),
        "margin": str(margin),
        "calculatedPrice": str(calculated),
        "revisionId": revision.id,
    })
    db.session.commit()

    _log_transition(rfp, "add_price", previous, actor)
    return {"revision": revision, "rfp": rfp}


# ═════════════════════════════════════════════════════════════════════════════
# Accounts / senior decisions
# ═════════════════════════════════════════════════════════════════════════════


def submit_to_accounts(
    actor: Actor,
    rfp_request_id: int,
    *,
    pi_id: str | None = None,
    payment_id: str | None = None,
) -> RfpRequest:
    """Hand a quoted RFP to accounts with its proforma / payment references."""
    check_capability(actor, Capability.SUBMIT_TO_ACCOUNTS)
    rfp = load_rfp(rfp_request_id, lock=True)
    pi_id = _text(pi_id)
    payment_id = _text(payment_id)
    target = _require(rfp, "submit_to_accounts")

    previous = rfp.status
    rfp.pi_id = pi_id
    rfp.payment_id = payment_id
    rfp.accounts_approval_status = "pending"
    rfp.status = target

    log_action(rfp.id, "accounts_submitted", actor, metadata={
        "piId": pi_id,
        "paymentId": payment_id,
    })
    db.session.commit()

    _log_transition(rfp, "submit_to_accounts", previous, actor)
    return rfp


def _dispatch_work_order(rfp: RfpRequest, actor: Actor) -> dict:
    """
    Ensure the work order and link it, forcing ``sent_to_operations``.

    Any collaborator failure rolls back the whole transition.
    """
    quotation = db.session.get(Quotation, rfp.quotation_id) if rfp.quotation_id else None
    try:
        work_order, created = ensure_work_order(rfp, quotation, actor.display_name)
    except CollaboratorError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise CollaboratorError("WorkOrder", str(exc.__class__.__name__)) from exc

    rfp.work_order_id = work_order.id
    rfp.work_order_number = work_order.work_order_number
    rfp.status = _require(rfp, "send_to_operations")
    return {
        "workOrderNumber": work_order.work_order_number,
        "workOrderCreated": created,
    }


def decide_accounts(
    actor: Actor,
    rfp_request_id: int,
    decision: str,
    notes: str | None = None,
) -> RfpRequest:
    """
    Accounts decision on a submitted RFP.

    approved     → accounts_approved, senior not_required, work order
                   dispatched, then sent_to_operations
    credit_case  → credit_case, senior pending
    """
    check_capability(actor, Capability.DECIDE_ACCOUNTS)
    rfp = load_rfp(rfp_request_id, lock=True)
    if decision not in ACCOUNTS_DECISIONS:
        raise ValidationError("Invalid status", field="status")
    notes = _text(notes)
    target = _require(rfp, "accounts_decision", decision)

    previous = rfp.status
    rfp.accounts_approval_status = decision
    rfp.accounts_approved_by = actor.display_name
    rfp.accounts_approved_at = _now()
    rfp.accounts_notes = notes
    rfp.senior_approval_status = "not_required" if decision == "approved" else "pending"
    rfp.status = target

    metadata = {"status": decision}
    if decision == "approved":
        metadata.update(_dispatch_work_order(rfp, actor))

    log_action(rfp.id, "accounts_decision", actor, notes=notes, metadata=metadata)
    _commit("Work order link already exists for this RFP")

    _log_transition(rfp, "accounts_decision", previous, actor)
    return rfp


def decide_senior(
    actor: Actor,
    rfp_request_id: int,
    decision: str,
    notes: str | None = None,
) -> RfpRequest:
    """
    Senior management decision on a credit case.

    approved  → senior_approved, work order dispatched, then sent_to_operations
    rejected  → senior_rejected (terminal)
    """
    check_capability(actor, Capability.DECIDE_SENIOR)
    rfp = load_rfp(rfp_request_id, lock=True)
    if decision not in SENIOR_DECISIONS:
        raise ValidationError("Invalid status", field="status")
    notes = _text(notes)
    target = _require(rfp, "senior_decision", decision)

    previous = rfp.status
    rfp.senior_approval_status = decision
    rfp.senior_approved_by = actor.display_name
    rfp.senior_approved_at = _now()
    rfp.senior_notes = notes
    rfp.status = target

    metadata = {"status": decision}
    if decision == "approved":
        metadata.update(_dispatch_work_order(rfp, actor))

    log_action(rfp.id, "senior_decision", actor, notes=notes, metadata=metadata)
    _commit("Work order link already exists for this RFP")

    _log_transition(rfp, "senior_decision", previous, actor)
    return rfp


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


def list_prices(rfp_request_id: int) -> list[RfpPriceRevision]:
    """Price revisions for one RFP, newest first."""
    load_rfp(rfp_request_id)
    return (
        RfpPriceRevision.query
        .filter_by(rfp_request_id=rfp_request_id)
        .order_by(RfpPriceRevision.created_at.desc(), RfpPriceRevision.id.desc())
        .all()
    )


def get_rfp(rfp_request_id: int) -> dict:
    """RFP detail: the aggregate, its price history and its audit trail."""
    rfp = load_rfp(rfp_request_id)
    return {
        "rfp": rfp.to_dict(),
        "prices": [p.to_dict() for p in list_prices(rfp.id)],
        "audit_logs": [log.to_dict() for log in list_for_rfp(rfp.id)],
    }


def _visibility_scope(q, actor: Actor):
    """Restrict an RFP query to what ``actor`` may see."""
    if actor.can(Capability.VIEW_ALL_RFPS):
        return q
    if actor.department is Department.SALES:
        if actor.role is Role.DEPARTMENT_HEAD:
            q = q.filter(RfpRequest.department_type == actor.department_type)
            if actor.company_name:
                q = q.filter(RfpRequest.company_name == actor.company_name)
            return q
        return q.filter(RfpRequest.created_by == actor.display_name)
    if actor.company_name:
        return q.filter(RfpRequest.company_name == actor.company_name)
    return q


def list_rfps(actor: Actor, filters: dict | None = None, *, page: int = 1, limit: int = 50) -> dict:
    """
    List RFPs visible to ``actor``, newest first.

    Filters: status, search (rfp_id / product spec / customer, case-insensitive),
    salesperson_id, company_name, department_type.

    Returns:
        {"items": [...], "total": int, "page": int, "limit": int}
    """
    filters = filters or {}
    q = db.session.query(RfpRequest, Lead).outerjoin(Lead, Lead.id == RfpRequest.lead_id)
    q = _visibility_scope(q, actor)

    if filters.get("status"):
        q = q.filter(RfpRequest.status == filters["status"])
    if filters.get("salesperson_id"):
        q = q.filter(RfpRequest.salesperson_id == str(filters["salesperson_id"]))
    if filters.get("company_name"):
        q = q.filter(RfpRequest.company_name == filters["company_name"])
    if filters.get("department_type"):
        q = q.filter(RfpRequest.department_type == filters["department_type"])
    if filters.get("search"):
        term = filters["search"]
        q = q.filter(or_(
            RfpRequest.rfp_id.icontains(term, autoescape=True),
            RfpRequest.products.any(RfpProductLine.product_spec.icontains(term, autoescape=True)),
            Lead.customer.icontains(term, autoescape=True),
        ))

    total = q.count()
    rows = (
        q.order_by(RfpRequest.created_at.desc(), RfpRequest.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    items = []
    for rfp, lead in rows:
        d = rfp.to_dict(include_products=False)
        d["product_count"] = len(rfp.products)
        d["customer_name"] = lead.customer if lead else None
        d["customer_business"] = lead.business if lead else None
        d["customer_phone"] = lead.phone if lead else None
        d["customer_email"] = lead.email if lead else None
        items.append(d)

    return {"items": items, "total": total, "page": page, "limit": limit}
