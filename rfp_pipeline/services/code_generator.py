"""
RFP Pipeline — Business Number Generator

Generates the human-facing identifiers:
  - Workflow RFP ids:     RFP-{KEY6}-{YYYYMM}-{seq3}  (e.g. RFP-S1KEY-202405-001)
                          salesperson-scoped, monthly
  - Decision snapshots:   RFP-{YYYYMM}-{seq4}         (e.g. RFP-202405-0007)
                          global, monthly
  - Quotations:           QT{YYYYMM}{seq3}            (e.g. QT202405012)
  - Work orders:          WO-{YYYY}-{seq3}            (e.g. WO-2024-031)

Each sequence continues from the highest existing number sharing the prefix,
compared numerically so a sequence can outgrow its zero padding.  The
columns holding these numbers are unique, so two writers racing for the same
number fail at commit instead of producing duplicates.
"""

from datetime import datetime, timezone

from rfp_pipeline.models import db
from rfp_pipeline.models.operations import WorkOrder
from rfp_pipeline.models.pricing_decision import DecisionSnapshotId, PricingDecision
from rfp_pipeline.models.rfp import RfpRequest, WorkflowRfpId
from rfp_pipeline.models.sales import Quotation


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _next_seq(column, prefix: str) -> int:
    """One past the highest numeric suffix stored under ``prefix``.

    The prefix is matched literally (``_`` and ``%`` in a salesperson key are
    not wildcards) and suffixes compare as integers, so ``-1000`` follows
    ``-999``.
    """
    values = (
        db.session.query(column)
        .filter(column.startswith(prefix, autoescape=True))
        .all()
    )
    seqs = [
        int(value[len(prefix):])
        for (value,) in values
        if value and value[len(prefix):].isdigit()
    ]
    return max(seqs, default=0) + 1


# ── Workflow RFP id ──────────────────────────────────────────────────────────

def salesperson_key(salesperson_id) -> str:
    """6-character uppercase key: dashes stripped, last six characters."""
    source = str(salesperson_id) if salesperson_id not in (None, "") else "GEN"
    return source.replace("-", "")[-6:].upper()


def generate_rfp_id(salesperson_id, now: datetime | None = None) -> WorkflowRfpId:
    """Next WorkflowRfpId for this salesperson in the current month."""
    now = now or _now()
    prefix = f"RFP-{salesperson_key(salesperson_id)}-{now:%Y%m}"
    seq = _next_seq(RfpRequest.rfp_id, f"{prefix}-")
    return WorkflowRfpId(f"{prefix}-{seq:03d}")


# ── Decision snapshot id ─────────────────────────────────────────────────────

def generate_decision_id(now: datetime | None = None) -> DecisionSnapshotId:
    """Next global DecisionSnapshotId for the current month."""
    now = now or _now()
    prefix = f"RFP-{now:%Y%m}-"
    seq = _next_seq(PricingDecision.rfp_id, prefix)
    return DecisionSnapshotId(f"{prefix}{seq:04d}")


# ── Collaborator document numbers ────────────────────────────────────────────

def generate_quotation_number(now: datetime | None = None) -> str:
    """Next quotation number: QT202405001, QT202405002, ..."""
    now = now or _now()
    prefix = f"QT{now:%Y%m}"
    seq = _next_seq(Quotation.quotation_number, prefix)
    return f"{prefix}{seq:03d}"


def generate_work_order_number(now: datetime | None = None) -> str:
    """Next work order number: WO-2024-001, WO-2024-002, ..."""
    now = now or _now()
    prefix = f"WO-{now:%Y}-"
    seq = _next_seq(WorkOrder.work_order_number, prefix)
    return f"{prefix}{seq:03d}"
