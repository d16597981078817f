"""
RFP Pricing Pipeline
RFP domain model.

Models:
    - RfpRequest: the workflow aggregate (status, provenance, pricing mirror,
      quotation / work-order links, approval bookkeeping).
    - RfpProductLine: 1..N product lines owned by an RfpRequest.
    - RfpPriceRevision: append-only pricing proposals; the aggregate mirrors
      the most recent one.

Two numbering spaces exist for human-facing "RFP IDs":
    - WorkflowRfpId   RFP-<KEY6>-<YYYYMM>-<seq3>  (RfpRequest.rfp_id,
                      salesperson-scoped, assigned at head approval)
    - DecisionSnapshotId  RFP-<YYYYMM>-<seq4>     (PricingDecision.rfp_id,
                      global; see models/pricing_decision.py)
They are typed separately so one is never passed where the other is expected.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import NewType

from sqlalchemy import event

from rfp_pipeline.models import db

WorkflowRfpId = NewType("WorkflowRfpId", str)

# ── Constants ────────────────────────────────────────────────────────────────

RFP_STATUSES = (
    "pending_dh",
    "approved",
    "rejected",
    "pricing_ready",
    "quotation_created",
    "accounts_pending",
    "accounts_approved",
    "credit_case",
    "senior_approved",
    "senior_rejected",
    "sent_to_operations",
)

TERMINAL_STATUSES = frozenset({"rejected", "senior_rejected", "sent_to_operations"})

AVAILABILITY_STATUSES = (
    "custom_product_pricing_needed",
    "in_stock_price_unavailable",
    "not_in_stock_price_unavailable",
)

ACCOUNTS_DECISIONS = ("approved", "credit_case")
SENIOR_DECISIONS = ("approved", "rejected")

DEFAULT_LENGTH_UNIT = "Mtr"

# action → {"from": allowed source statuses, "to": resulting status}
# "to" is None when the transition leaves status untouched, and a dict when
# the resulting status depends on the decision value.
RFP_TRANSITIONS = {
    "approve": {"from": ["pending_dh"], "to": "approved"},
    "reject": {"from": ["pending_dh"], "to": "rejected"},
    "set_product_price": {"from": ["pending_dh", "approved"], "to": None},
    "clear_product_price": {"from": ["pending_dh", "approved"], "to": None},
    "add_price": {"from": ["approved", "pricing_ready"], "to": "pricing_ready"},
    "generate_quotation": {"from": ["pricing_ready"], "to": "quotation_created"},
    "submit_to_accounts": {"from": ["quotation_created"], "to": "accounts_pending"},
    "accounts_decision": {
        "from": ["accounts_pending"],
        "to": {"approved": "accounts_approved", "credit_case": "credit_case"},
    },
    "senior_decision": {
        "from": ["credit_case"],
        "to": {"approved": "senior_approved", "rejected": "senior_rejected"},
    },
    "send_to_operations": {
        "from": ["accounts_approved", "senior_approved"],
        "to": "sent_to_operations",
    },
}


def _utcnow():
    return datetime.now(timezone.utc)


def _num(value):
    """Serialise a Numeric column value for JSON."""
    if value is None:
        return None
    return float(value) if isinstance(value, Decimal) else value


def _ts(value):
    return value.isoformat() if value else None


class RfpRequest(db.Model):
    """
    Request-for-Pricing workflow aggregate.

    ``rfp_id`` stays NULL until the sales head approves and is never
    reassigned afterwards.  ``quotation_id`` and ``work_order_id`` are unique
    so a retried or duplicated side effect cannot link a second document.
    """

    __tablename__ = "rfp_requests"
    __table_args__ = (
        db.Index("ix_rfp_requests_status", "status"),
        db.Index("ix_rfp_requests_lead", "lead_id"),
        db.Index("ix_rfp_requests_company_dept", "company_name", "department_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    rfp_id = db.Column(
        db.String(40), unique=True, nullable=True,
        comment="WorkflowRfpId RFP-<KEY6>-<YYYYMM>-<seq3>; set at head approval",
    )
    master_rfp_id = db.Column(db.String(40), nullable=True)
    pricing_decision_rfp_id = db.Column(
        db.String(40), nullable=True,
        comment="DecisionSnapshotId this RFP was raised from, if any",
    )

    # Provenance (immutable after creation)
    lead_id = db.Column(db.Integer, nullable=False)
    salesperson_id = db.Column(db.String(64), nullable=True)
    created_by = db.Column(db.String(255), nullable=False)
    department_type = db.Column(db.String(60), nullable=True)
    company_name = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(30), nullable=False, default="pending_dh")
    delivery_timeline = db.Column(db.Text, nullable=True)
    special_requirements = db.Column(db.Text, nullable=True)

    # Pricing mirror: projection of the latest RfpPriceRevision
    raw_material_price = db.Column(db.Numeric(14, 2), nullable=True)
    processing_cost = db.Column(db.Numeric(14, 2), nullable=True)
    margin = db.Column(db.Numeric(14, 2), nullable=True)
    calculated_price = db.Column(db.Numeric(14, 2), nullable=True)
    price_valid_until = db.Column(db.Date, nullable=True)
    pricing_updated_by = db.Column(db.String(255), nullable=True)
    pricing_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Head calculator total captured at approval
    calculator_total_price = db.Column(db.Numeric(14, 2), nullable=True)
    calculator_detail = db.Column(db.JSON, nullable=True)

    # Links to collaborator documents
    quotation_id = db.Column(db.Integer, unique=True, nullable=True)
    quotation_number = db.Column(db.String(40), nullable=True)
    work_order_id = db.Column(db.Integer, unique=True, nullable=True)
    work_order_number = db.Column(db.String(40), nullable=True)
    pi_id = db.Column(db.String(64), nullable=True)
    payment_id = db.Column(db.String(64), nullable=True)

    # Head decision
    approved_by = db.Column(db.String(255), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by = db.Column(db.String(255), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    # Accounts / senior decisions
    accounts_approval_status = db.Column(
        db.String(20), nullable=True, comment="pending | approved | credit_case",
    )
    accounts_approved_by = db.Column(db.String(255), nullable=True)
    accounts_approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    accounts_notes = db.Column(db.Text, nullable=True)
    senior_approval_status = db.Column(
        db.String(20), nullable=True, comment="not_required | pending | approved | rejected",
    )
    senior_approved_by = db.Column(db.String(255), nullable=True)
    senior_approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    senior_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    products = db.relationship(
        "RfpProductLine",
        backref="rfp_request",
        cascade="all, delete-orphan",
        order_by="RfpProductLine.line_no",
        lazy="select",
    )
    price_revisions = db.relationship(
        "RfpPriceRevision",
        backref="rfp_request",
        cascade="all, delete-orphan",
        order_by="RfpPriceRevision.id",
        lazy="dynamic",
        passive_deletes=True,
    )

    @property
    def product_spec(self) -> str:
        """Headline spec: the first product line, used for list/search display."""
        return self.products[0].product_spec if self.products else ""

    @property
    def total_quantity(self) -> Decimal:
        return sum((line.quantity or Decimal("0") for line in self.products), Decimal("0"))

    def to_dict(self, include_products: bool = True) -> dict:
        d = {
            "id": self.id,
            "rfp_id": self.rfp_id,
            "master_rfp_id": self.master_rfp_id,
            "pricing_decision_rfp_id": self.pricing_decision_rfp_id,
            "lead_id": self.lead_id,
            "salesperson_id": self.salesperson_id,
            "created_by": self.created_by,
            "department_type": self.department_type,
            "company_name": self.company_name,
            "status": self.status,
            "product_spec": self.product_spec,
            "delivery_timeline": self.delivery_timeline,
            "special_requirements": self.special_requirements,
            "raw_material_price": _num(self.raw_material_price),
            "processing_cost": _num(self.processing_cost),
            "margin": _num(self.margin),
            "calculated_price": _num(self.calculated_price),
            "price_valid_until": _ts(self.price_valid_until),
            "pricing_updated_by": self.pricing_updated_by,
            "pricing_updated_at": _ts(self.pricing_updated_at),
            "calculator_total_price": _num(self.calculator_total_price),
            "calculator_detail": self.calculator_detail,
            "quotation_id": self.quotation_id,
            "quotation_number": self.quotation_number,
            "work_order_id": self.work_order_id,
            "work_order_number": self.work_order_number,
            "pi_id": self.pi_id,
            "payment_id": self.payment_id,
            "approved_by": self.approved_by,
            "approved_at": _ts(self.approved_at),
            "rejected_by": self.rejected_by,
            "rejected_at": _ts(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "accounts_approval_status": self.accounts_approval_status,
            "accounts_approved_by": self.accounts_approved_by,
            "accounts_approved_at": _ts(self.accounts_approved_at),
            "accounts_notes": self.accounts_notes,
            "senior_approval_status": self.senior_approval_status,
            "senior_approved_by": self.senior_approved_by,
            "senior_approved_at": _ts(self.senior_approved_at),
            "senior_notes": self.senior_notes,
            "created_at": _ts(self.created_at),
            "updated_at": _ts(self.updated_at),
        }
        if include_products:
            d["products"] = [p.to_dict() for p in self.products]
        return d

    def __repr__(self):
        return f"<RfpRequest {self.id}: {self.rfp_id or 'unassigned'} [{self.status}]>"


class RfpProductLine(db.Model):
    """One requested product on an RFP."""

    __tablename__ = "rfp_request_products"

    id = db.Column(db.Integer, primary_key=True)
    rfp_request_id = db.Column(
        db.Integer,
        db.ForeignKey("rfp_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_no = db.Column(db.Integer, nullable=False, default=1)
    product_spec = db.Column(db.String(500), nullable=False)
    quantity = db.Column(db.Numeric(14, 3), nullable=True)
    length = db.Column(db.String(40), nullable=True)
    length_unit = db.Column(db.String(20), nullable=False, default=DEFAULT_LENGTH_UNIT)
    target_price = db.Column(db.Numeric(14, 2), nullable=True)
    availability_status = db.Column(
        db.String(40), nullable=False,
        comment="custom_product_pricing_needed | in_stock_price_unavailable | not_in_stock_price_unavailable",
    )

    # Sales-head calculator override
    calculator_price = db.Column(db.Numeric(14, 2), nullable=True)
    calculator_detail = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_no": self.line_no,
            "product_spec": self.product_spec,
            "quantity": _num(self.quantity),
            "length": self.length,
            "length_unit": self.length_unit,
            "target_price": _num(self.target_price),
            "availability_status": self.availability_status,
            "calculator_price": _num(self.calculator_price),
            "calculator_detail": self.calculator_detail,
        }

    def __repr__(self):
        return f"<RfpProductLine {self.id}: {self.product_spec[:30]}>"


class RfpPriceRevision(db.Model):
    """
    Immutable pricing proposal.

    ``calculated_price`` is always ``raw_material_price + processing_cost +
    margin``.  Rows are never updated or deleted; see the mapper guards below.
    """

    __tablename__ = "rfp_price_revisions"

    id = db.Column(db.Integer, primary_key=True)
    rfp_request_id = db.Column(
        db.Integer,
        db.ForeignKey("rfp_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    raw_material_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    processing_cost = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    margin = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    calculated_price = db.Column(db.Numeric(14, 2), nullable=False)
    validity_date = db.Column(db.Date, nullable=True)
    created_by = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rfp_request_id": self.rfp_request_id,
            "raw_material_price": _num(self.raw_material_price),
            "processing_cost": _num(self.processing_cost),
            "margin": _num(self.margin),
            "calculated_price": _num(self.calculated_price),
            "validity_date": _ts(self.validity_date),
            "created_by": self.created_by,
            "created_at": _ts(self.created_at),
        }

    def __repr__(self):
        return f"<RfpPriceRevision {self.id}: rfp={self.rfp_request_id} {self.calculated_price}>"


class LedgerImmutableError(RuntimeError):
    """Raised when code tries to rewrite an append-only ledger row."""


@event.listens_for(RfpPriceRevision, "before_update")
def _block_revision_update(mapper, connection, target):
    raise LedgerImmutableError(f"Price revision {target.id} is append-only")


@event.listens_for(RfpPriceRevision, "before_delete")
def _block_revision_delete(mapper, connection, target):
    raise LedgerImmutableError(f"Price revision {target.id} is append-only")
