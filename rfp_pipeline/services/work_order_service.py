"""
RFP Pipeline — Work Order Ensurer

Internal side effect of the accounts / senior approvals; never called by a
client directly.  One work order exists per quotation business number:

    ensure_work_order(rfp, quotation, prepared_by)
        1. find by quotation_number  → return it unchanged
        2. otherwise build from the quotation items + customer snapshot
           and insert under a SAVEPOINT
        3. IntegrityError on work_orders.quotation_number means a concurrent
           caller won; roll back the savepoint and return the winner

The caller links the returned work order onto the RFP.  Nothing here
commits.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from rfp_pipeline.core.exceptions import CollaboratorError
from rfp_pipeline.models import db
from rfp_pipeline.models.operations import WorkOrder
from rfp_pipeline.models.rfp import RfpRequest, _num
from rfp_pipeline.models.sales import Quotation
from rfp_pipeline.services.code_generator import generate_work_order_number

logger = logging.getLogger(__name__)


def find_by_quotation_number(quotation_number: str) -> WorkOrder | None:
    return WorkOrder.query.filter_by(quotation_number=quotation_number).first()


def _customer(quotation: Quotation) -> dict:
    return {
        "businessName": quotation.customer_business or "",
        "buyerName": quotation.customer_name or "",
        "gst": quotation.customer_gst_no or "",
        "contact": quotation.customer_phone or "",
        "state": quotation.customer_state or "",
        "address": quotation.customer_address or "",
        "email": quotation.customer_email or "",
    }


def _items(quotation: Quotation) -> list[dict]:
    return [
        {
            "productName": item.product_name,
            "description": item.description or item.product_name,
            "quantity": _num(item.quantity),
            "unit": item.unit or "Nos",
            "unitPrice": _num(item.unit_price),
            "total": _num(item.total_amount),
        }
        for item in quotation.items
    ]


def build_work_order(rfp: RfpRequest, quotation: Quotation, prepared_by: str) -> WorkOrder:
    """Unsaved WorkOrder derived from the quotation."""
    now = datetime.now(timezone.utc)
    quantity = rfp.total_quantity
    return WorkOrder(
        work_order_number=generate_work_order_number(now),
        quotation_number=quotation.quotation_number,
        quotation_id=quotation.id,
        lead_id=rfp.lead_id,
        date=now.date(),
        customer=_customer(quotation),
        order_title=rfp.product_spec,
        order_quantity=format(quantity.normalize(), "f") if quantity else "",
        order_total=quotation.total_amount or 0,
        items=_items(quotation),
        status="sent_to_operations",
        rfp_request_id=rfp.id,
        rfp_id=rfp.rfp_id,
        sent_to_operations_at=now,
        prepared_by=prepared_by,
    )


def ensure_work_order(rfp: RfpRequest, quotation: Quotation | None, prepared_by: str) -> tuple[WorkOrder, bool]:
    """
    Find or create the work order for ``quotation``.

    Returns:
        (work_order, created)

    Raises:
        CollaboratorError: the quotation is missing or the insert failed for
            a reason other than a concurrent creator.
    """
    if quotation is None:
        raise CollaboratorError("WorkOrder", "Quotation not found for work order generation")

    existing = find_by_quotation_number(quotation.quotation_number)
    if existing:
        return existing, False

    work_order = build_work_order(rfp, quotation, prepared_by)
    try:
        with db.session.begin_nested():
            db.session.add(work_order)
            db.session.flush()
    except IntegrityError:
        winner = find_by_quotation_number(quotation.quotation_number)
        if winner is None:
            raise CollaboratorError(
                "WorkOrder", f"could not create work order for {quotation.quotation_number}",
            )
        logger.info(
            "Work order already created concurrently",
            extra={"rfp_request_id": rfp.id, "quotation_number": quotation.quotation_number},
        )
        return winner, False

    logger.info(
        "Work order created",
        extra={
            "rfp_request_id": rfp.id,
            "work_order_number": work_order.work_order_number,
            "quotation_number": quotation.quotation_number,
        },
    )
    return work_order, True
