"""
RFP Pricing Pipeline
Audit domain model.

Models:
    - RfpAuditLog: immutable, append-only trail of every RFP transition.
"""

from datetime import datetime, timezone

from sqlalchemy import event

from rfp_pipeline.models import db

# ── Constants ────────────────────────────────────────────────────────────────

RFP_AUDIT_ACTIONS = {
    "rfp_created",
    "rfp_approved",
    "rfp_rejected",
    "product_price_set",
    "product_price_cleared",
    "price_updated",
    "quotation_created",
    "accounts_submitted",
    "accounts_decision",
    "senior_decision",
}


class AuditImmutableError(RuntimeError):
    """Raised on any attempt to rewrite or remove an audit row."""


class RfpAuditLog(db.Model):
    """
    Immutable audit trail for RFP lifecycle events.

    One row per transition.  ``details`` (column ``metadata``) carries the
    action-specific payload: product count, calculated price, decision
    status, linked document numbers.
    """

    __tablename__ = "rfp_audit_logs"
    __table_args__ = (
        db.Index("idx_rfp_audit_rfp", "rfp_request_id", "created_at"),
        db.Index("idx_rfp_audit_action", "action"),
    )

    id = db.Column(db.Integer, primary_key=True)
    rfp_request_id = db.Column(
        db.Integer,
        db.ForeignKey("rfp_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    action = db.Column(db.String(40), nullable=False)
    performed_by = db.Column(db.String(255), nullable=False)
    performed_by_role = db.Column(db.String(40), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    details = db.Column("metadata", db.JSON, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rfp_request_id": self.rfp_request_id,
            "action": self.action,
            "performed_by": self.performed_by,
            "performed_by_role": self.performed_by_role,
            "notes": self.notes,
            "metadata": self.details or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<RfpAuditLog {self.id}: {self.action} on rfp/{self.rfp_request_id}>"


@event.listens_for(RfpAuditLog, "before_update")
def _block_update(mapper, connection, target):
    raise AuditImmutableError(f"Audit row {target.id} is append-only")


@event.listens_for(RfpAuditLog, "before_delete")
def _block_delete(mapper, connection, target):
    raise AuditImmutableError(f"Audit row {target.id} is append-only")


# ── Convenience writer / reader ──────────────────────────────────────────────

def log_action(
    rfp_request_id: int,
    action: str,
    actor,
    *,
    notes: str | None = None,
    metadata: dict | None = None,
) -> RfpAuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control: the row commits or rolls back together with the
    transition it records.

    ``actor`` is an :class:`~rfp_pipeline.services.permission.Actor`.
    """
    if action not in RFP_AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")

    log = RfpAuditLog(
        rfp_request_id=rfp_request_id,
        action=action,
        performed_by=actor.display_name,
        performed_by_role=actor.role_name,
        notes=notes,
        details=metadata or {},
    )
    db.session.add(log)
    db.session.flush()
    return log


def list_for_rfp(rfp_request_id: int) -> list[RfpAuditLog]:
    """All audit rows for one RFP, oldest first."""
    return (
        RfpAuditLog.query
        .filter_by(rfp_request_id=rfp_request_id)
        .order_by(RfpAuditLog.created_at.asc(), RfpAuditLog.id.asc())
        .all()
    )
