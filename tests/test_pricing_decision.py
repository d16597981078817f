"""
Pricing Decision Snapshot Tests.

Covers direct saves, snapshots taken at head approval, latest-per-lead
lookup, the approved-RFP fallback, partial updates, dated record listing and
the rfp_created flag.
"""

from datetime import datetime, timezone

import pytest

from rfp_pipeline.core.exceptions import NotFoundError, ValidationError
from rfp_pipeline.models.pricing_decision import PricingDecision
from rfp_pipeline.services import pricing_decision_service as svc
from rfp_pipeline.services.permission import PermissionDenied


def _save(actor, lead, **overrides):
    payload = {
        "leadId": lead.id,
        "products": [{"productSpec": "XLPE 3C x 95 sqmm", "quantity": "500", "targetPrice": "125"}],
        "deliveryTimeline": "3 weeks",
    }
    payload.update(overrides)
    return svc.create_decision(actor, payload)


class TestCreate:
    def test_direct_save(self, frozen_clock, salesperson, lead):
        decision = _save(salesperson, lead)
        assert decision.rfp_id == "RFP-202405-0001"
        assert decision.status == "saved"
        assert decision.rfp_created is False
        assert decision.products == [{
            "productSpec": "XLPE 3C x 95 sqmm",
            "quantity": "500",
            "length": "",
            "lengthUnit": "Mtr",
            "targetPrice": "125",
        }]

    def test_products_required(self, salesperson, lead):
        with pytest.raises(ValidationError) as exc:
            _save(salesperson, lead, products=[])
        assert str(exc.value) == "leadId and products array are required"

    def test_every_product_needs_spec(self, salesperson, lead):
        with pytest.raises(ValidationError) as exc:
            _save(salesperson, lead, products=[{"productSpec": "A"}, {"quantity": 3}])
        assert exc.value.field == "products[1].productSpec"

    def test_lead_required(self, salesperson, lead):
        with pytest.raises(ValidationError) as exc:
            _save(salesperson, lead, leadId=None)
        assert exc.value.field == "leadId"

    def test_only_salespersons_save(self, accounts, lead):
        with pytest.raises(PermissionDenied):
            _save(accounts, lead)

    def test_snapshot_at_head_approval(self, approved_rfp):
        decision = PricingDecision.query.filter_by(source_rfp_request_id=approved_rfp.id).one()
        assert decision.status == "approved"
        assert decision.lead_id == approved_rfp.lead_id
        assert decision.products[0]["productSpec"] == "XLPE 3C x 95 sqmm"
        assert decision.products[0]["quantity"] == "500"
        assert decision.products[0]["targetPrice"] == "125"
        assert decision.delivery_timeline == "4 weeks"


class TestReads:
    def test_latest_for_lead(self, frozen_clock, salesperson, lead):
        _save(salesperson, lead)
        newer = _save(salesperson, lead, deliveryTimeline="1 week")
        assert svc.get_latest_for_lead(lead.id).rfp_id == newer.rfp_id

    def test_latest_for_unknown_lead(self):
        with pytest.raises(NotFoundError):
            svc.get_latest_for_lead(404)

    def test_get_by_snapshot_id(self, frozen_clock, salesperson, lead):
        decision = _save(salesperson, lead)
        assert svc.get_by_rfp_id(decision.rfp_id)["id"] == decision.id

    def test_falls_back_to_approved_rfp(self, approved_rfp):
        view = svc.get_by_rfp_id(approved_rfp.rfp_id)
        assert view["id"] is None
        assert view["rfp_id"] == "RFP-S1KEY-202405-001"
        assert view["status"] == "approved"
        assert view["source_rfp_request_id"] == approved_rfp.id

    def test_no_fallback_once_rfp_moves_on(self, priced_rfp):
        with pytest.raises(NotFoundError):
            svc.get_by_rfp_id(priced_rfp.rfp_id)

    def test_records_filtered_by_day(self, salesperson, lead):
        _save(salesperson, lead)
        today = datetime.now(timezone.utc).date()

        listing = svc.list_records(today)
        assert listing["total"] == 1
        assert listing["items"][0]["lead_name"] == "Ravi Kumar"
        assert listing["items"][0]["lead_business"] == "Ravi Traders"

        assert svc.list_records(today.replace(year=2000))["total"] == 0

    def test_records_report_same_day_rfps(self, pending_rfp, salesperson, sales_head, lead):
        from rfp_pipeline.services import rfp_lifecycle

        second = rfp_lifecycle.create_rfp(salesperson, {
            "leadId": lead.id,
            "products": [{"productSpec": "Solar DC 1C x 4",
                          "availabilityStatus": "in_stock_price_unavailable"}],
        })
        rfp_lifecycle.reject_rfp(sales_head, second.id, "Out of range")
        _save(salesperson, lead)

        record = svc.list_records(datetime.now(timezone.utc).date())["items"][0]
        assert record["rfp_request_count"] == 2
        assert record["rfp_statuses"] == "pending_dh, rejected"

    def test_records_without_rfps(self, salesperson, lead):
        _save(salesperson, lead)
        record = svc.list_records()["items"][0]
        assert record["rfp_request_count"] == 0
        assert record["rfp_statuses"] is None

    def test_records_paginated(self, salesperson, lead):
        for _ in range(3):
            _save(salesperson, lead)
        page = svc.list_records(page=2, limit=2)
        assert page["total"] == 3
        assert len(page["items"]) == 1


class TestUpdates:
    def test_partial_update_keeps_missing_keys(self, frozen_clock, salesperson, lead):
        decision = _save(salesperson, lead, specialRequirements="Red sheath")
        updated = svc.update_decision(salesperson, decision.rfp_id, {
            "deliveryTimeline": "2 weeks",
            "specialRequirements": None,
        })
        assert updated.delivery_timeline == "2 weeks"
        assert updated.special_requirements == "Red sheath"
        assert updated.products[0]["productSpec"] == "XLPE 3C x 95 sqmm"

    def test_update_unknown(self, salesperson):
        with pytest.raises(NotFoundError):
            svc.update_decision(salesperson, "RFP-202405-0999", {})

    def test_mark_rfp_created(self, frozen_clock, salesperson, lead):
        decision = _save(salesperson, lead)
        marked = svc.mark_rfp_created(decision.rfp_id)
        assert marked.rfp_created is True
        assert marked.status == "rfp_created"
