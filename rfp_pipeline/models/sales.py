"""
RFP Pricing Pipeline
Sales collaborator models.

The lead and quotation tables belong to the sales subsystem.  The RFP
pipeline only reads leads (customer snapshot fields) and creates quotations
with their line items; it never embeds either in the RFP aggregate.

Models:
    - Lead: department-head lead, read-only from the pipeline's side.
    - Quotation: customer-facing priced document (QT<YYYYMM><seq3>).
    - QuotationItem: one priced line on a quotation.
"""

from datetime import datetime, timezone

from rfp_pipeline.models import db
from rfp_pipeline.models.rfp import _num


def _utcnow():
    return datetime.now(timezone.utc)


class Lead(db.Model):
    """Customer lead (subset of columns the pipeline reads)."""

    __tablename__ = "department_head_leads"

    id = db.Column(db.Integer, primary_key=True)
    customer = db.Column(db.String(255), nullable=True)
    business = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(40), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    gst_no = db.Column(db.String(20), nullable=True)
    state = db.Column(db.String(80), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def customer_snapshot(self) -> dict:
        return {
            "customer_name": self.customer or "",
            "customer_business": self.business or "",
            "customer_phone": self.phone or "",
            "customer_email": self.email or "",
            "customer_address": self.address or "",
            "customer_gst_no": self.gst_no or "",
            "customer_state": self.state or "",
        }

    def __repr__(self):
        return f"<Lead {self.id}: {self.customer}>"


class Quotation(db.Model):
    """Customer-facing quotation header."""

    __tablename__ = "quotations"

    id = db.Column(db.Integer, primary_key=True)
    quotation_number = db.Column(db.String(40), unique=True, nullable=False)
    customer_id = db.Column(db.Integer, nullable=True, comment="lead id")
    salesperson_id = db.Column(db.String(64), nullable=True)
    created_by = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="draft")

    customer_name = db.Column(db.String(255), nullable=True)
    customer_business = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(40), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_address = db.Column(db.Text, nullable=True)
    customer_gst_no = db.Column(db.String(20), nullable=True)
    customer_state = db.Column(db.String(80), nullable=True)

    quotation_date = db.Column(db.Date, nullable=False)
    valid_until = db.Column(db.Date, nullable=True)
    branch = db.Column(db.String(40), nullable=False, default="ANODE")

    subtotal = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=18)
    tax_amount = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    discount_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(16, 2), nullable=False, default=0)

    rfp_request_id = db.Column(
        db.Integer,
        db.ForeignKey("rfp_requests.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    rfp_id = db.Column(db.String(40), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    items = db.relationship(
        "QuotationItem",
        backref="quotation",
        cascade="all, delete-orphan",
        order_by="QuotationItem.item_order",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        d = {
            "id": self.id,
            "quotation_number": self.quotation_number,
            "customer_id": self.customer_id,
            "salesperson_id": self.salesperson_id,
            "created_by": self.created_by,
            "status": self.status,
            "customer_name": self.customer_name,
            "customer_business": self.customer_business,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "customer_address": self.customer_address,
            "customer_gst_no": self.customer_gst_no,
            "customer_state": self.customer_state,
            "quotation_date": self.quotation_date.isoformat() if self.quotation_date else None,
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
            "branch": self.branch,
            "subtotal": _num(self.subtotal),
            "tax_rate": _num(self.tax_rate),
            "tax_amount": _num(self.tax_amount),
            "discount_rate": _num(self.discount_rate),
            "discount_amount": _num(self.discount_amount),
            "total_amount": _num(self.total_amount),
            "rfp_request_id": self.rfp_request_id,
            "rfp_id": self.rfp_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_items:
            d["items"] = [i.to_dict() for i in self.items]
        return d

    def __repr__(self):
        return f"<Quotation {self.quotation_number}: {self.total_amount}>"


class QuotationItem(db.Model):
    """One line on a quotation."""

    __tablename__ = "quotation_items"

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(
        db.Integer,
        db.ForeignKey("quotations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_order = db.Column(db.Integer, nullable=False, default=1)
    product_name = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, nullable=True)
    hsn_code = db.Column(db.String(20), nullable=True)
    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit = db.Column(db.String(20), nullable=False, default="Nos")
    unit_price = db.Column(db.Numeric(14, 2), nullable=False)
    gst_rate = db.Column(db.Numeric(5, 2), nullable=False, default=18)
    taxable_amount = db.Column(db.Numeric(16, 2), nullable=False)
    gst_amount = db.Column(db.Numeric(16, 2), nullable=False)
    total_amount = db.Column(db.Numeric(16, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_order": self.item_order,
            "product_name": self.product_name,
            "description": self.description,
            "hsn_code": self.hsn_code,
            "quantity": _num(self.quantity),
            "unit": self.unit,
            "unit_price": _num(self.unit_price),
            "gst_rate": _num(self.gst_rate),
            "taxable_amount": _num(self.taxable_amount),
            "gst_amount": _num(self.gst_amount),
            "total_amount": _num(self.total_amount),
        }
