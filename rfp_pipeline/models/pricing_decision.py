"""
RFP Pricing Pipeline
Pricing Decision snapshot model.

A PricingDecision is a point-in-time document of a lead's commercial terms
(products, delivery timeline, special requirements).  It is created either
when a sales head approves an RFP, or directly by a salesperson who can price
the products without escalating ("save without RFP").

A lead accumulates one snapshot per negotiation cycle; the latest one is the
current record.  Snapshots carry their own global numbering
(``DecisionSnapshotId``, ``RFP-<YYYYMM>-<seq4>``) which is unrelated to the
salesperson-scoped ``WorkflowRfpId`` on RfpRequest.
"""

from datetime import datetime, timezone
from typing import NewType

from rfp_pipeline.models import db

DecisionSnapshotId = NewType("DecisionSnapshotId", str)

DECISION_STATUSES = ("saved", "approved", "rfp_created")


def _utcnow():
    return datetime.now(timezone.utc)


class PricingDecision(db.Model):
    """Commercial-terms snapshot for a lead."""

    __tablename__ = "pricing_rfp_decisions"
    __table_args__ = (
        db.Index("ix_pricing_decisions_lead_created", "lead_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    rfp_id = db.Column(
        db.String(40), unique=True, nullable=False,
        comment="DecisionSnapshotId RFP-<YYYYMM>-<seq4>",
    )
    lead_id = db.Column(db.Integer, nullable=False)
    salesperson_id = db.Column(db.String(64), nullable=True)
    created_by = db.Column(db.String(255), nullable=False)
    department_type = db.Column(db.String(60), nullable=True)
    company_name = db.Column(db.String(255), nullable=True)

    products = db.Column(
        db.JSON, nullable=False, default=list,
        comment="[{productSpec, quantity, length, lengthUnit, targetPrice}]",
    )
    delivery_timeline = db.Column(db.Text, nullable=True)
    special_requirements = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="saved")
    rfp_created = db.Column(db.Boolean, nullable=False, default=False)
    source_rfp_request_id = db.Column(
        db.Integer,
        db.ForeignKey("rfp_requests.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="RfpRequest whose approval produced this snapshot",
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rfp_id": self.rfp_id,
            "lead_id": self.lead_id,
            "salesperson_id": self.salesperson_id,
            "created_by": self.created_by,
            "department_type": self.department_type,
            "company_name": self.company_name,
            "products": list(self.products or []),
            "delivery_timeline": self.delivery_timeline,
            "special_requirements": self.special_requirements,
            "status": self.status,
            "rfp_created": bool(self.rfp_created),
            "source_rfp_request_id": self.source_rfp_request_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<PricingDecision {self.rfp_id}: lead={self.lead_id} [{self.status}]>"
