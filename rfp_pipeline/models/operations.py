"""
RFP Pricing Pipeline
Operations collaborator model.

WorkOrder belongs to the production/operations subsystem.  The pipeline
only finds one by quotation number or creates one; ``quotation_number`` is
unique so a quotation can never yield two work orders, even when two
approval requests race.
"""

from datetime import datetime, timezone

from rfp_pipeline.models import db
from rfp_pipeline.models.rfp import _num


def _utcnow():
    return datetime.now(timezone.utc)


class WorkOrder(db.Model):
    """Production work order (WO-<YYYY>-<seq3>)."""

    __tablename__ = "work_orders"

    id = db.Column(db.Integer, primary_key=True)
    work_order_number = db.Column(db.String(40), unique=True, nullable=False)
    quotation_number = db.Column(
        db.String(40), unique=True, nullable=False,
        comment="Business number of the source quotation; one work order per quotation",
    )
    quotation_id = db.Column(
        db.Integer,
        db.ForeignKey("quotations.id", ondelete="SET NULL"),
        nullable=True,
    )
    lead_id = db.Column(db.Integer, nullable=True)
    date = db.Column(db.Date, nullable=False)

    customer = db.Column(
        db.JSON, nullable=False, default=dict,
        comment="{businessName, buyerName, gst, contact, state, address, email}",
    )
    order_title = db.Column(db.String(500), nullable=True)
    order_quantity = db.Column(db.String(40), nullable=True)
    order_total = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    items = db.Column(db.JSON, nullable=False, default=list)

    status = db.Column(db.String(30), nullable=False, default="sent_to_operations")
    rfp_request_id = db.Column(
        db.Integer,
        db.ForeignKey("rfp_requests.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    rfp_id = db.Column(db.String(40), nullable=True)
    sent_to_operations_at = db.Column(db.DateTime(timezone=True), nullable=True)
    prepared_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "work_order_number": self.work_order_number,
            "quotation_number": self.quotation_number,
            "quotation_id": self.quotation_id,
            "lead_id": self.lead_id,
            "date": self.date.isoformat() if self.date else None,
            "customer": dict(self.customer or {}),
            "order_title": self.order_title,
            "order_quantity": self.order_quantity,
            "order_total": _num(self.order_total),
            "items": list(self.items or []),
            "status": self.status,
            "rfp_request_id": self.rfp_request_id,
            "rfp_id": self.rfp_id,
            "sent_to_operations_at": (
                self.sent_to_operations_at.isoformat() if self.sent_to_operations_at else None
            ),
            "prepared_by": self.prepared_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<WorkOrder {self.work_order_number}: quotation={self.quotation_number}>"
