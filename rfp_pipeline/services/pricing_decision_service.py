"""
RFP Pipeline — Pricing Decision Snapshot Service

A pricing decision is a document, not a workflow: a point-in-time copy of
the commercial terms agreed for a lead.  Two creation paths:

  (a) create_from_rfp()  — internal, when a sales head approves an RFP
                           (status "approved", source_rfp_request_id set)
  (b) create_decision()  — a salesperson saves terms directly for a lead
                           that never needed RFP escalation (status "saved")

A lead may accumulate several snapshots; get_latest_for_lead() returns the
newest.  The only state change is mark_rfp_created().

Snapshot ids (DecisionSnapshotId, RFP-<YYYYMM>-<seq4>) are a separate
numbering space from workflow RFP ids.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone

from rfp_pipeline.core.exceptions import NotFoundError, ValidationError
from rfp_pipeline.models import db
from rfp_pipeline.models.pricing_decision import DecisionSnapshotId, PricingDecision
from rfp_pipeline.models.rfp import DEFAULT_LENGTH_UNIT, RfpRequest
from rfp_pipeline.models.sales import Lead
from rfp_pipeline.services.code_generator import generate_decision_id
from rfp_pipeline.services.permission import Actor, Capability, check_capability

logger = logging.getLogger(__name__)

_PRODUCT_KEYS = ("productSpec", "quantity", "length", "lengthUnit", "targetPrice")


def _str_or_empty(value) -> str:
    if value is None:
        return ""
    return format(value.normalize(), "f") if hasattr(value, "as_tuple") else str(value)


def _clean_products(products, field_name: str = "products") -> list[dict]:
    if not isinstance(products, list) or not products:
        raise ValidationError("leadId and products array are required", field=field_name)
    cleaned = []
    for i, product in enumerate(products):
        if not isinstance(product, dict) or not str(product.get("productSpec") or "").strip():
            raise ValidationError(
                "All products must have productSpec", field=f"{field_name}[{i}].productSpec",
            )
        item = {key: product.get(key, "") for key in _PRODUCT_KEYS}
        item["productSpec"] = str(product["productSpec"]).strip()
        item["lengthUnit"] = product.get("lengthUnit") or DEFAULT_LENGTH_UNIT
        cleaned.append(item)
    return cleaned


def products_from_lines(lines) -> list[dict]:
    """Project RFP product lines into the snapshot product shape."""
    return [
        {
            "productSpec": line.product_spec,
            "quantity": _str_or_empty(line.quantity),
            "length": line.length or "",
            "lengthUnit": line.length_unit or DEFAULT_LENGTH_UNIT,
            "targetPrice": _str_or_empty(line.target_price),
        }
        for line in lines
    ]


# ═════════════════════════════════════════════════════════════════════════════
# Creation
# ═════════════════════════════════════════════════════════════════════════════


def create_decision(actor: Actor, payload: dict | None) -> PricingDecision:
    """
    Save a pricing decision directly (no RFP escalation).

    Raises:
        PermissionDenied: actor lacks SAVE_PRICING_DECISION.
        ValidationError: leadId missing or products empty / missing productSpec.
    """
    check_capability(actor, Capability.SAVE_PRICING_DECISION)

    payload = payload or {}
    lead_id = payload.get("leadId")
    try:
        lead_id = int(lead_id)
    except (TypeError, ValueError):
        raise ValidationError("leadId and products array are required", field="leadId")
    products = _clean_products(payload.get("products"))

    decision = PricingDecision(
        rfp_id=generate_decision_id(),
        lead_id=lead_id,
        salesperson_id=actor.user_id,
        created_by=actor.display_name,
        department_type=actor.department_type,
        company_name=actor.company_name,
        products=products,
        delivery_timeline=payload.get("deliveryTimeline"),
        special_requirements=payload.get("specialRequirements"),
        status="saved",
        rfp_created=False,
    )
    db.session.add(decision)
    db.session.commit()

    logger.info(
        "Pricing decision saved",
        extra={"decision_id": decision.rfp_id, "lead_id": lead_id},
    )
    return decision


def create_from_rfp(rfp: RfpRequest, actor: Actor) -> PricingDecision:
    """
    Snapshot an RFP's commercial terms at head approval.

    Flushes only: the snapshot commits together with the approval.
    """
    decision = PricingDecision(
        rfp_id=generate_decision_id(),
        lead_id=rfp.lead_id,
        salesperson_id=rfp.salesperson_id,
        created_by=rfp.created_by,
        department_type=rfp.department_type,
        company_name=rfp.company_name,
        products=products_from_lines(rfp.products),
        delivery_timeline=rfp.delivery_timeline,
        special_requirements=rfp.special_requirements,
        status="approved",
        rfp_created=False,
        source_rfp_request_id=rfp.id,
    )
    db.session.add(decision)
    db.session.flush()
    logger.info(
        "Pricing decision snapshotted from RFP",
        extra={"decision_id": decision.rfp_id, "rfp_request_id": rfp.id, "actor": actor.display_name},
    )
    return decision


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


def get_latest_for_lead(lead_id: int) -> PricingDecision:
    decision = (
        PricingDecision.query
        .filter_by(lead_id=lead_id)
        .order_by(PricingDecision.created_at.desc(), PricingDecision.id.desc())
        .first()
    )
    if not decision:
        raise NotFoundError(resource="PricingDecision", resource_id=f"lead={lead_id}")
    return decision


def _find(rfp_id: DecisionSnapshotId) -> PricingDecision | None:
    return PricingDecision.query.filter_by(rfp_id=rfp_id).first()


def _project_rfp(rfp: RfpRequest) -> dict:
    """Decision-shaped view of an approved RFP that has no snapshot of its own id."""
    return {
        "id": None,
        "rfp_id": rfp.rfp_id,
        "lead_id": rfp.lead_id,
        "salesperson_id": rfp.salesperson_id,
        "created_by": rfp.created_by,
        "department_type": rfp.department_type,
        "company_name": rfp.company_name,
        "products": products_from_lines(rfp.products),
        "delivery_timeline": rfp.delivery_timeline,
        "special_requirements": rfp.special_requirements,
        "status": "approved",
        "rfp_created": False,
        "source_rfp_request_id": rfp.id,
        "created_at": rfp.created_at.isoformat() if rfp.created_at else None,
        "updated_at": rfp.updated_at.isoformat() if rfp.updated_at else None,
    }


def get_by_rfp_id(rfp_id: str) -> dict:
    """
    Fetch a decision by snapshot id.

    Falls back to an approved RFP carrying ``rfp_id`` as its workflow id,
    projected into the decision shape, so quotation screens can open either.
    """
    decision = _find(DecisionSnapshotId(rfp_id))
    if decision:
        return decision.to_dict()

    rfp = RfpRequest.query.filter_by(rfp_id=rfp_id).first()
    if rfp and rfp.status == "approved":
        return _project_rfp(rfp)
    raise NotFoundError(resource="PricingDecision", resource_id=rfp_id)


def _utc_day(value: datetime | None) -> date | None:
    if value is None:
        return None
    # SQLite hands back naive datetimes; they were written as UTC
    return (value.astimezone(timezone.utc) if value.tzinfo else value).date()


def _rfps_by_lead_and_day(rows) -> dict:
    """``{(lead_id, day): {rfp_request_id: status}}`` for the leads and days in ``rows``."""
    days = {_utc_day(row.created_at) for row in rows} - {None}
    if not days:
        return {}
    start = datetime.combine(min(days), time.min, tzinfo=timezone.utc)
    end = datetime.combine(max(days), time.min, tzinfo=timezone.utc) + timedelta(days=1)
    rfps = (
        db.session.query(RfpRequest.id, RfpRequest.lead_id, RfpRequest.status, RfpRequest.created_at)
        .filter(
            RfpRequest.lead_id.in_({row.lead_id for row in rows}),
            RfpRequest.created_at >= start,
            RfpRequest.created_at < end,
        )
        .all()
    )
    grouped: dict = {}
    for rfp_request_id, lead_id, status, created_at in rfps:
        grouped.setdefault((lead_id, _utc_day(created_at)), {})[rfp_request_id] = status
    return grouped


def list_records(record_date: date | None = None, page: int = 1, limit: int = 50) -> dict:
    """
    Snapshots newest first, optionally restricted to one calendar day (UTC),
    each enriched with the lead's contact fields and the RFPs raised for the
    same lead on the same day (``rfp_request_count``, ``rfp_statuses``).
    """
    q = PricingDecision.query
    if record_date is not None:
        start = datetime.combine(record_date, time.min, tzinfo=timezone.utc)
        q = q.filter(
            PricingDecision.created_at >= start,
            PricingDecision.created_at < start + timedelta(days=1),
        )
    total = q.count()
    rows = (
        q.order_by(PricingDecision.created_at.desc(), PricingDecision.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    lead_ids = {row.lead_id for row in rows}
    leads = {
        lead.id: lead
        for lead in (Lead.query.filter(Lead.id.in_(lead_ids)).all() if lead_ids else [])
    }
    same_day_rfps = _rfps_by_lead_and_day(rows)
    items = []
    for row in rows:
        d = row.to_dict()
        lead = leads.get(row.lead_id)
        d["lead_name"] = lead.customer if lead else None
        d["lead_business"] = lead.business if lead else None
        d["lead_phone"] = lead.phone if lead else None
        d["lead_email"] = lead.email if lead else None
        statuses = same_day_rfps.get((row.lead_id, _utc_day(row.created_at)), {})
        d["rfp_request_count"] = len(statuses)
        d["rfp_statuses"] = ", ".join(sorted(set(statuses.values()))) or None
        items.append(d)

    return {"items": items, "total": total, "page": page, "limit": limit}


# ═════════════════════════════════════════════════════════════════════════════
# Updates
# ═════════════════════════════════════════════════════════════════════════════


def update_decision(actor: Actor, rfp_id: str, partial: dict | None) -> PricingDecision:
    """
    Partially update products / delivery timeline / special requirements.
    Keys absent from ``partial`` (or null) keep their stored value.
    """
    check_capability(actor, Capability.SAVE_PRICING_DECISION)

    decision = _find(DecisionSnapshotId(rfp_id))
    if not decision:
        raise NotFoundError(resource="PricingDecision", resource_id=rfp_id)

    partial = partial or {}
    if partial.get("products") is not None:
        decision.products = _clean_products(partial["products"])
    if partial.get("deliveryTimeline") is not None:
        decision.delivery_timeline = partial["deliveryTimeline"]
    if partial.get("specialRequirements") is not None:
        decision.special_requirements = partial["specialRequirements"]
    db.session.commit()
    return decision


def mark_rfp_created(rfp_id: str, *, commit: bool = True) -> PricingDecision:
    """Flag a snapshot as escalated into an RFP (status ``rfp_created``)."""
    decision = _find(DecisionSnapshotId(rfp_id))
    if not decision:
        raise NotFoundError(resource="PricingDecision", resource_id=rfp_id)
    decision.rfp_created = True
    decision.status = "rfp_created"
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return decision
