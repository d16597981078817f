"""
RFP Lifecycle Tests — coverage for:
  - End-to-end walk: create → approve → price → quote → accounts → operations
    with the exact audit sequence
  - Credit-case path through senior management
  - Terminal states (rejected, senior_rejected, sent_to_operations)
  - Workflow rfp_id assignment: once, salesperson-scoped monthly sequence
  - Per-line calculator price overrides
  - Price revision ledger (append-only, mirrored onto the RFP)
  - Check ordering: capability → existence → payload → state
"""

import re
from decimal import Decimal

import pytest

from rfp_pipeline.core.exceptions import NotFoundError, ValidationError
from rfp_pipeline.models import db as _db
from rfp_pipeline.models.audit import list_for_rfp
from rfp_pipeline.models.operations import WorkOrder
from rfp_pipeline.models.pricing_decision import PricingDecision
from rfp_pipeline.models.rfp import LedgerImmutableError, RfpPriceRevision, RfpRequest
from rfp_pipeline.models.sales import Quotation
from rfp_pipeline.services import quotation_service, rfp_lifecycle
from rfp_pipeline.services.permission import Actor, PermissionDenied
from rfp_pipeline.services.rfp_lifecycle import TransitionError, validate_transition

PRODUCTS = [
    {
        "productSpec": "XLPE 3C x 95 sqmm",
        "quantity": 500,
        "availabilityStatus": "custom_product_pricing_needed",
    },
]


def _actions(rfp):
    return [log.action for log in list_for_rfp(rfp.id)]


def _raise(actor, lead, **overrides):
    payload = {"leadId": lead.id, "products": [dict(p) for p in PRODUCTS]}
    payload.update(overrides)
    return rfp_lifecycle.create_rfp(actor, payload)


# ═══════════════════════════════════════════════════════════════════════════
# End-to-end
# ═══════════════════════════════════════════════════════════════════════════


class TestEndToEnd:
    def test_full_walk_to_operations(self, frozen_clock, salesperson, sales_head,
                                     accounts, lead):
        rfp = _raise(salesperson, lead)
        assert rfp.status == "pending_dh"
        assert rfp.rfp_id is None
        assert rfp.salesperson_id == "s1key"

        rfp = rfp_lifecycle.approve_rfp(sales_head, rfp.id)
        assert rfp.status == "approved"
        assert rfp.rfp_id == "RFP-S1KEY-202405-001"
        snapshot = PricingDecision.query.filter_by(source_rfp_request_id=rfp.id).one()
        assert snapshot.rfp_id == "RFP-202405-0001"
        assert snapshot.status == "approved"

        result = rfp_lifecycle.add_price_revision(accounts, rfp.id, {
            "rawMaterialPrice": 100, "processingCost": 20, "margin": 10,
        })
        rfp = result["rfp"]
        assert rfp.status == "pricing_ready"
        assert rfp.calculated_price == Decimal("130")

        quotation = quotation_service.generate_quotation(salesperson, rfp.id)
        assert quotation.quotation_number == "QT202405001"
        assert quotation.subtotal == Decimal("65000")
        assert quotation.tax_amount == Decimal("11700")
        assert quotation.total_amount == Decimal("76700")
        assert rfp.status == "quotation_created"
        assert rfp.quotation_id == quotation.id

        rfp = rfp_lifecycle.submit_to_accounts(salesperson, rfp.id, pi_id="PI-1")
        assert rfp.status == "accounts_pending"
        assert rfp.accounts_approval_status == "pending"

        rfp = rfp_lifecycle.decide_accounts(accounts, rfp.id, "approved", "Advance received")
        assert rfp.status == "sent_to_operations"
        assert rfp.accounts_approval_status == "approved"
        assert rfp.senior_approval_status == "not_required"
        assert re.fullmatch(r"WO-\d{4}-001", rfp.work_order_number)

        work_order = _db.session.get(WorkOrder, rfp.work_order_id)
        assert work_order.quotation_number == "QT202405001"
        assert work_order.order_total == Decimal("76700")
        assert work_order.customer["businessName"] == "Ravi Traders"
        assert work_order.items[0]["productName"] == "XLPE 3C x 95 sqmm"

        assert _actions(rfp) == [
            "rfp_created",
            "rfp_approved",
            "price_updated",
            "quotation_created",
            "accounts_submitted",
            "accounts_decision",
        ]
        decision_log = list_for_rfp(rfp.id)[-1]
        assert decision_log.details["status"] == "approved"
        assert decision_log.details["workOrderCreated"] is True
        assert decision_log.details["workOrderNumber"] == rfp.work_order_number

    def test_credit_case_through_senior_approval(self, submitted_rfp, accounts, senior):
        rfp = rfp_lifecycle.decide_accounts(accounts, submitted_rfp.id, "credit_case")
        assert rfp.status == "credit_case"
        assert rfp.senior_approval_status == "pending"
        assert rfp.work_order_id is None

        rfp = rfp_lifecycle.decide_senior(senior, rfp.id, "approved", "Known customer")
        assert rfp.status == "sent_to_operations"
        assert rfp.senior_approval_status == "approved"
        assert rfp.work_order_number is not None
        assert WorkOrder.query.count() == 1
        assert _actions(rfp)[-2:] == ["accounts_decision", "senior_decision"]

    def test_senior_rejection_is_terminal(self, submitted_rfp, accounts, senior):
        rfp_lifecycle.decide_accounts(accounts, submitted_rfp.id, "credit_case")
        rfp = rfp_lifecycle.decide_senior(senior, submitted_rfp.id, "rejected")
        assert rfp.status == "senior_rejected"
        assert WorkOrder.query.count() == 0

        with pytest.raises(TransitionError):
            rfp_lifecycle.decide_senior(senior, rfp.id, "approved")

    def test_sent_to_operations_is_terminal(self, submitted_rfp, accounts):
        rfp_lifecycle.decide_accounts(accounts, submitted_rfp.id, "approved")
        with pytest.raises(TransitionError):
            rfp_lifecycle.decide_accounts(accounts, submitted_rfp.id, "approved")
        assert WorkOrder.query.count() == 1


# ═══════════════════════════════════════════════════════════════════════════
# Create / head decisions
# ═══════════════════════════════════════════════════════════════════════════


class TestCreate:
    def test_create_writes_lines_and_one_audit_row(self, pending_rfp):
        assert [line.product_spec for line in pending_rfp.products] == ["XLPE 3C x 95 sqmm"]
        assert pending_rfp.products[0].quantity == Decimal("500")
        assert pending_rfp.company_name == "Anode Cables"
        logs = list_for_rfp(pending_rfp.id)
        assert [log.action for log in logs] == ["rfp_created"]
        assert logs[0].details["productCount"] == 1
        assert logs[0].performed_by == "s1@anode.in"

    def test_create_from_snapshot_marks_it(self, frozen_clock, salesperson, lead):
        from rfp_pipeline.services import pricing_decision_service

        decision = pricing_decision_service.create_decision(salesperson, {
            "leadId": lead.id, "products": [{"productSpec": "XLPE 3C x 95 sqmm"}],
        })
        rfp = _raise(salesperson, lead, pricingDecisionRfpId=decision.rfp_id)

        assert rfp.pricing_decision_rfp_id == decision.rfp_id
        refreshed = PricingDecision.query.filter_by(rfp_id=decision.rfp_id).one()
        assert refreshed.rfp_created is True
        assert refreshed.status == "rfp_created"

    def test_create_from_unknown_snapshot_persists_nothing(self, salesperson, lead):
        with pytest.raises(NotFoundError):
            _raise(salesperson, lead, pricingDecisionRfpId="RFP-202405-9999")
        _db.session.rollback()
        assert RfpRequest.query.count() == 0


class TestHeadDecisions:
    def test_rfp_id_assigned_once(self, approved_rfp, sales_head):
        assert approved_rfp.rfp_id == "RFP-S1KEY-202405-001"
        with pytest.raises(TransitionError):
            rfp_lifecycle.approve_rfp(sales_head, approved_rfp.id)
        assert _db.session.get(RfpRequest, approved_rfp.id).rfp_id == "RFP-S1KEY-202405-001"

    def test_rfp_id_sequence_per_salesperson(self, frozen_clock, salesperson, sales_head, lead):
        other = Actor.from_claims({
            "sub": "11111111-2222-3333-4444-5555ab12cd34",
            "email": "s2@anode.in",
            "role": "department_user",
            "department_type": "telesales",
        })
        first = _raise(salesperson, lead)
        second = _raise(salesperson, lead)
        third = _raise(other, lead)

        ids = [rfp_lifecycle.approve_rfp(sales_head, r.id).rfp_id for r in (first, second, third)]
        assert ids == [
            "RFP-S1KEY-202405-001",
            "RFP-S1KEY-202405-002",
            "RFP-12CD34-202405-001",
        ]

    def test_approve_records_calculator_total(self, pending_rfp, sales_head):
        rfp = rfp_lifecycle.approve_rfp(
            sales_head, pending_rfp.id,
            calculator_total_price="64000.50",
            calculator_detail={"copper": 410},
        )
        assert rfp.calculator_total_price == Decimal("64000.50")
        assert rfp.calculator_detail == {"copper": 410}
        assert list_for_rfp(rfp.id)[-1].details["calculatorTotalPrice"] == "64000.50"

    def test_approve_without_lines_rejected(self, frozen_clock, sales_head, salesperson, lead):
        rfp = RfpRequest(lead_id=lead.id, created_by=salesperson.display_name,
                         salesperson_id=salesperson.user_id, status="pending_dh")
        _db.session.add(rfp)
        _db.session.commit()

        with pytest.raises(ValidationError) as exc:
            rfp_lifecycle.approve_rfp(sales_head, rfp.id)
        assert exc.value.field == "products"
        _db.session.rollback()
        assert _db.session.get(RfpRequest, rfp.id).rfp_id is None

    def test_reject_is_terminal(self, pending_rfp, sales_head, salesperson, accounts):
        rfp = rfp_lifecycle.reject_rfp(sales_head, pending_rfp.id, "  Not our range  ")
        assert rfp.status == "rejected"
        assert rfp.rejection_reason == "Not our range"
        assert rfp.rfp_id is None

        with pytest.raises(TransitionError) as exc:
            rfp_lifecycle.approve_rfp(sales_head, rfp.id)
        assert exc.value.current_status == "rejected"

        later_steps = [
            lambda: rfp_lifecycle.add_price_revision(accounts, rfp.id, {"margin": 5}),
            lambda: quotation_service.generate_quotation(salesperson, rfp.id),
            lambda: rfp_lifecycle.submit_to_accounts(salesperson, rfp.id),
            lambda: rfp_lifecycle.decide_accounts(accounts, rfp.id, "approved"),
        ]
        for step in later_steps:
            with pytest.raises(TransitionError) as exc:
                step()
            assert exc.value.current_status == "rejected"
            _db.session.rollback()

        rfp = _db.session.get(RfpRequest, pending_rfp.id)
        assert rfp.status == "rejected"
        assert rfp.quotation_id is None
        assert RfpPriceRevision.query.count() == 0
        assert Quotation.query.count() == 0
        assert _actions(rfp) == ["rfp_created", "rfp_rejected"]


# ═══════════════════════════════════════════════════════════════════════════
# Calculator overrides
# ═══════════════════════════════════════════════════════════════════════════


class TestProductPrice:
    def test_set_and_clear(self, pending_rfp, sales_head):
        rfp = rfp_lifecycle.set_product_price(
            sales_head, pending_rfp.id, "XLPE 3C x 95 sqmm", "128.40", {"drum": "wooden"},
        )
        line = rfp.products[0]
        assert line.calculator_price == Decimal("128.40")
        assert line.calculator_detail == {"drum": "wooden"}
        assert rfp.status == "pending_dh"

        rfp = rfp_lifecycle.clear_product_price(sales_head, pending_rfp.id, "XLPE 3C x 95 sqmm")
        assert rfp.products[0].calculator_price is None
        assert _actions(rfp) == ["rfp_created", "product_price_set", "product_price_cleared"]

    def test_unknown_spec(self, pending_rfp, sales_head):
        with pytest.raises(NotFoundError):
            rfp_lifecycle.set_product_price(sales_head, pending_rfp.id, "Nope", 10)

    def test_total_price_required(self, pending_rfp, sales_head):
        with pytest.raises(ValidationError) as exc:
            rfp_lifecycle.set_product_price(sales_head, pending_rfp.id, "XLPE 3C x 95 sqmm", None)
        assert exc.value.field == "totalPrice"

    def test_not_allowed_once_priced(self, priced_rfp, sales_head):
        with pytest.raises(TransitionError):
            rfp_lifecycle.set_product_price(sales_head, priced_rfp.id, "XLPE 3C x 95 sqmm", 10)


# ═══════════════════════════════════════════════════════════════════════════
# Price revision ledger
# ═══════════════════════════════════════════════════════════════════════════


class TestPriceRevisions:
    def test_pricing_before_approval_rejected(self, pending_rfp, accounts):
        with pytest.raises(TransitionError) as exc:
            rfp_lifecycle.add_price_revision(accounts, pending_rfp.id, {"margin": 5})
        assert "RFP must be approved by DH before pricing" in str(exc.value)
        assert RfpPriceRevision.query.count() == 0

    def test_latest_revision_is_mirrored(self, priced_rfp, accounts):
        result = rfp_lifecycle.add_price_revision(accounts, priced_rfp.id, {
            "rawMaterialPrice": "110.25", "margin": "9.75",
        })
        rfp = result["rfp"]
        assert result["revision"].calculated_price == Decimal("120.00")
        assert rfp.calculated_price == Decimal("120.00")
        assert rfp.processing_cost == Decimal("0")
        assert rfp.status == "pricing_ready"

        history = rfp_lifecycle.list_prices(rfp.id)
        assert [r.calculated_price for r in history] == [Decimal("120.00"), Decimal("130.00")]

    def test_sub_cent_components_sum_as_stored(self, approved_rfp, accounts):
        result = rfp_lifecycle.add_price_revision(accounts, approved_rfp.id, {
            "rawMaterialPrice": "0.005", "processingCost": "0.005", "margin": "0",
        })
        revision_id = result["revision"].id
        _db.session.expire_all()

        revision = _db.session.get(RfpPriceRevision, revision_id)
        assert revision.calculated_price == (
            revision.raw_material_price + revision.processing_cost + revision.margin
        )
        assert revision.calculated_price == Decimal("0.02")

        rfp = _db.session.get(RfpRequest, approved_rfp.id)
        assert rfp.calculated_price == rfp.raw_material_price + rfp.processing_cost + rfp.margin
        assert list_for_rfp(rfp.id)[-1].details["calculatedPrice"] == "0.02"

    def test_negative_component_rejected(self, approved_rfp, accounts):
        with pytest.raises(ValidationError) as exc:
            rfp_lifecycle.add_price_revision(accounts, approved_rfp.id, {"margin": -1})
        assert exc.value.field == "margin"

    def test_bad_validity_date(self, approved_rfp, accounts):
        with pytest.raises(ValidationError) as exc:
            rfp_lifecycle.add_price_revision(accounts, approved_rfp.id, {"validityDate": "soon"})
        assert exc.value.field == "validityDate"

    def test_revisions_are_append_only(self, priced_rfp):
        revision = RfpPriceRevision.query.filter_by(rfp_request_id=priced_rfp.id).one()
        revision.margin = Decimal("99")
        with pytest.raises(LedgerImmutableError):
            _db.session.flush()
        _db.session.rollback()

    def test_pricing_closed_after_quotation(self, quoted_rfp, accounts):
        with pytest.raises(TransitionError):
            rfp_lifecycle.add_price_revision(accounts, quoted_rfp.id, {"margin": 1})


# ═══════════════════════════════════════════════════════════════════════════
# Accounts / senior
# ═══════════════════════════════════════════════════════════════════════════


class TestApprovals:
    def test_submit_requires_quotation(self, priced_rfp, salesperson):
        with pytest.raises(TransitionError):
            rfp_lifecycle.submit_to_accounts(salesperson, priced_rfp.id)

    def test_submit_records_references(self, submitted_rfp):
        assert submitted_rfp.pi_id == "PI-77"
        assert submitted_rfp.payment_id == "PAY-9001"

    def test_invalid_accounts_decision(self, submitted_rfp, accounts):
        with pytest.raises(ValidationError) as exc:
            rfp_lifecycle.decide_accounts(accounts, submitted_rfp.id, "maybe")
        assert exc.value.field == "status"
        assert str(exc.value) == "Invalid status"

    def test_senior_decision_needs_credit_case(self, submitted_rfp, senior):
        with pytest.raises(TransitionError):
            rfp_lifecycle.decide_senior(senior, submitted_rfp.id, "approved")

    def test_missing_quotation_rolls_back_accounts_approval(self, submitted_rfp, accounts):
        from rfp_pipeline.core.exceptions import CollaboratorError

        Quotation.query.filter_by(id=submitted_rfp.quotation_id).delete()
        _db.session.commit()

        with pytest.raises(CollaboratorError):
            rfp_lifecycle.decide_accounts(accounts, submitted_rfp.id, "approved")
        rfp = _db.session.get(RfpRequest, submitted_rfp.id)
        assert rfp.status == "accounts_pending"
        assert rfp.work_order_id is None
        assert _actions(rfp)[-1] == "accounts_submitted"


# ═══════════════════════════════════════════════════════════════════════════
# Check ordering & validation helper
# ═══════════════════════════════════════════════════════════════════════════


class TestCheckOrdering:
    def test_capability_before_existence(self, salesperson):
        with pytest.raises(PermissionDenied):
            rfp_lifecycle.approve_rfp(salesperson, 9999)

    def test_existence_before_payload(self, sales_head):
        with pytest.raises(NotFoundError):
            rfp_lifecycle.approve_rfp(sales_head, 9999, calculator_total_price="abc")

    def test_payload_before_state(self, approved_rfp, sales_head):
        with pytest.raises(ValidationError):
            rfp_lifecycle.approve_rfp(sales_head, approved_rfp.id, calculator_total_price="abc")

    def test_system_actor_has_only_granted_capabilities(self, pending_rfp):
        bot = Actor.system("nightly-import")
        with pytest.raises(PermissionDenied):
            rfp_lifecycle.reject_rfp(bot, pending_rfp.id)

    def test_validate_transition_shape(self, pending_rfp):
        assert validate_transition(pending_rfp, "approve") == {
            "valid": True, "from": "pending_dh", "to": "approved", "reason": None,
        }
        result = validate_transition(pending_rfp, "submit_to_accounts")
        assert result["valid"] is False
        assert result["to"] == "accounts_pending"
        assert validate_transition(pending_rfp, "teleport")["reason"] == "Unknown action: teleport"
