"""
Quotation Generator Tests.

Covers GST arithmetic, customer snapshotting, precondition ordering and
the one-quotation-per-RFP guarantee.
"""

from decimal import Decimal

import pytest

from rfp_pipeline.core.exceptions import ConflictError, ValidationError
from rfp_pipeline.models import db as _db
from rfp_pipeline.models.audit import list_for_rfp
from rfp_pipeline.models.rfp import RfpRequest
from rfp_pipeline.models.sales import Quotation
from rfp_pipeline.services import rfp_lifecycle
from rfp_pipeline.services.permission import PermissionDenied
from rfp_pipeline.services.quotation_service import generate_quotation, price_lines
from rfp_pipeline.services.rfp_lifecycle import TransitionError


def test_quotation_totals_and_snapshot(priced_rfp, salesperson):
    quotation = generate_quotation(salesperson, priced_rfp.id)

    assert quotation.quotation_number == "QT202405001"
    assert quotation.tax_rate == Decimal("18")
    assert quotation.subtotal == Decimal("65000.00")
    assert quotation.total_amount == Decimal("76700.00")
    assert quotation.customer_business == "Ravi Traders"
    assert quotation.customer_gst_no == "27ABCDE1234F1Z5"
    assert quotation.rfp_id == "RFP-S1KEY-202405-001"

    [item] = quotation.items
    assert item.product_name == "XLPE 3C x 95 sqmm"
    assert item.unit_price == Decimal("130.00")
    assert item.gst_amount == Decimal("11700.00")
    assert item.description == "ISI marked drums"

    log = list_for_rfp(priced_rfp.id)[-1]
    assert log.action == "quotation_created"
    assert log.details == {
        "quotationNumber": "QT202405001",
        "totalAmount": "76700.00",
        "itemCount": 1,
    }


def test_second_quotation_is_a_conflict(quoted_rfp, salesperson):
    with pytest.raises(ConflictError) as exc:
        generate_quotation(salesperson, quoted_rfp.id)
    assert not isinstance(exc.value, TransitionError)
    assert str(exc.value) == "Quotation already exists for this RFP"
    assert Quotation.query.count() == 1


def test_requires_pricing_ready(approved_rfp, salesperson):
    with pytest.raises(TransitionError) as exc:
        generate_quotation(salesperson, approved_rfp.id)
    assert "Quotation can be generated only after pricing is finalized" in str(exc.value)
    assert Quotation.query.count() == 0


def test_requires_calculated_price(priced_rfp, salesperson):
    rfp = _db.session.get(RfpRequest, priced_rfp.id)
    rfp.calculated_price = None
    _db.session.commit()

    with pytest.raises(ValidationError) as exc:
        generate_quotation(salesperson, rfp.id)
    assert exc.value.field == "calculated_price"


def test_accounts_cannot_generate(priced_rfp, accounts):
    with pytest.raises(PermissionDenied):
        generate_quotation(accounts, priced_rfp.id)


def test_sales_head_can_generate(priced_rfp, sales_head):
    quotation = generate_quotation(sales_head, priced_rfp.id)
    assert quotation.created_by == "dh@anode.in"
    assert quotation.salesperson_id == "s1key"


def test_numbers_continue_within_month(frozen_clock, salesperson, sales_head, accounts, lead):
    numbers = []
    for _ in range(2):
        rfp = rfp_lifecycle.create_rfp(salesperson, {
            "leadId": lead.id,
            "products": [{"productSpec": "Control 12C x 1.5",
                          "availabilityStatus": "in_stock_price_unavailable"}],
        })
        rfp_lifecycle.approve_rfp(sales_head, rfp.id)
        rfp_lifecycle.add_price_revision(accounts, rfp.id, {"rawMaterialPrice": 10})
        numbers.append(generate_quotation(salesperson, rfp.id).quotation_number)
    assert numbers == ["QT202405001", "QT202405002"]


class TestPriceLines:
    def _rfp(self, *quantities, price="99.99"):
        from rfp_pipeline.models.rfp import RfpProductLine

        rfp = RfpRequest(calculated_price=Decimal(price), special_requirements=None)
        rfp.products = [
            RfpProductLine(line_no=i, product_spec=f"Spec {i}", quantity=q,
                           availability_status="custom_product_pricing_needed")
            for i, q in enumerate(quantities, start=1)
        ]
        return rfp

    def test_missing_quantity_counts_as_one(self):
        [line] = price_lines(self._rfp(None), Decimal("18"))
        assert line["quantity"] == Decimal("1")
        assert line["taxable_amount"] == Decimal("99.99")
        assert line["gst_amount"] == Decimal("18.00")
        assert line["total_amount"] == Decimal("117.99")

    def test_half_up_rounding(self):
        [line] = price_lines(self._rfp(Decimal("3"), price="0.25"), Decimal("18"))
        # 0.75 × 18% = 0.135 → 0.14
        assert line["gst_amount"] == Decimal("0.14")

    def test_one_line_per_product(self):
        lines = price_lines(self._rfp(Decimal("2"), Decimal("5")), Decimal("12"))
        assert [line["item_order"] for line in lines] == [1, 2]
        assert [line["product_name"] for line in lines] == ["Spec 1", "Spec 2"]
        assert lines[0]["description"] == "Spec 1"
