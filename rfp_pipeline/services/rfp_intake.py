"""
RFP Pipeline — Intake Validator

Validates an RFP creation request before anything is persisted.

Order of checks:
  1. Capability (CREATE_RFP)             → PermissionDenied
  2. leadId                              → ValidationError(field="leadId")
  3. Product shape (list or legacy)      → ValidationError(field=...)
     legacy availabilityStatus=in_stock  → ConflictError (direct quotation path)

Only the first failing rule is reported.

Two request shapes are accepted and normalised straight away:

    ProductListIntake    {"products": [{"productSpec": ..., ...}, ...]}
    LegacyProductIntake  {"productSpec": ..., "availabilityStatus": ...}

Both collapse into ``RfpIntake.products: list[ProductLineInput]``; nothing
downstream sees the legacy shape.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from rfp_pipeline.core.exceptions import ConflictError, ValidationError
from rfp_pipeline.models.rfp import AVAILABILITY_STATUSES, DEFAULT_LENGTH_UNIT
from rfp_pipeline.services.permission import Actor, Capability, check_capability

MAX_PRODUCT_SPEC_LENGTH = 500


@dataclass(frozen=True)
class ProductLineInput:
    """Canonical product line handed to the aggregate."""

    product_spec: str
    availability_status: str
    quantity: Decimal | None = None
    length: str | None = None
    length_unit: str = DEFAULT_LENGTH_UNIT
    target_price: Decimal | None = None


@dataclass(frozen=True)
class ProductListIntake:
    lines: tuple[ProductLineInput, ...]


@dataclass(frozen=True)
class LegacyProductIntake:
    line: ProductLineInput


@dataclass(frozen=True)
class RfpIntake:
    """A validated, normalised creation request."""

    lead_id: int
    products: list[ProductLineInput]
    delivery_timeline: str | None = None
    special_requirements: str | None = None
    pricing_decision_rfp_id: str | None = None
    master_rfp_id: str | None = None
    shape: str = "products"


def parse_amount(value, field_name: str) -> Decimal | None:
    """Non-negative Decimal from a JSON number or numeric string; blank is None."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number", field=field_name)
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number", field=field_name)
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a number", field=field_name)
    if result < 0:
        raise ValidationError(f"{field_name} cannot be negative", field=field_name)
    return result


def _text(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _lead_id(payload: dict) -> int:
    raw = payload.get("leadId")
    if raw is None or raw == "":
        raise ValidationError("leadId is required", field="leadId")
    if isinstance(raw, bool):
        raise ValidationError("leadId must be a positive integer", field="leadId")
    try:
        lead_id = int(str(raw).strip())
    except ValueError:
        raise ValidationError("leadId must be a positive integer", field="leadId")
    if lead_id < 1:
        raise ValidationError("leadId must be a positive integer", field="leadId")
    return lead_id


def _qualified(prefix: str | None, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name


def _product_line(item, prefix: str | None) -> ProductLineInput:
    if not isinstance(item, dict):
        raise ValidationError("Each product must be an object", field=prefix)

    spec = _text(item.get("productSpec"))
    if not spec:
        raise ValidationError(
            "Product specification is required", field=_qualified(prefix, "productSpec"),
        )
    if len(spec) > MAX_PRODUCT_SPEC_LENGTH:
        raise ValidationError(
            f"Product specification cannot exceed {MAX_PRODUCT_SPEC_LENGTH} characters",
            field=_qualified(prefix, "productSpec"),
        )

    availability = item.get("availabilityStatus")
    if availability not in AVAILABILITY_STATUSES:
        raise ValidationError(
            "Invalid availability status", field=_qualified(prefix, "availabilityStatus"),
        )

    return ProductLineInput(
        product_spec=spec,
        availability_status=availability,
        quantity=parse_amount(item.get("quantity"), _qualified(prefix, "quantity")),
        length=_text(item.get("length")),
        length_unit=_text(item.get("lengthUnit")) or DEFAULT_LENGTH_UNIT,
        target_price=parse_amount(item.get("targetPrice"), _qualified(prefix, "targetPrice")),
    )


def parse_products(payload: dict) -> ProductListIntake | LegacyProductIntake:
    """Recognise which product shape the payload uses and validate it."""
    products = payload.get("products")
    if products is not None:
        if not isinstance(products, list) or not products:
            raise ValidationError("At least one product is required", field="products")
        return ProductListIntake(
            lines=tuple(_product_line(item, f"products[{i}]") for i, item in enumerate(products))
        )

    if payload.get("productSpec") is None and payload.get("availabilityStatus") is None:
        raise ValidationError("At least one product is required", field="products")

    if payload.get("availabilityStatus") == "in_stock":
        raise ConflictError(
            "Products in stock with a known price do not need an RFP; "
            "use the direct quotation workflow",
            field="availabilityStatus",
        )
    return LegacyProductIntake(line=_product_line(payload, None))


def normalise_products(intake: ProductListIntake | LegacyProductIntake) -> list[ProductLineInput]:
    if isinstance(intake, ProductListIntake):
        return list(intake.lines)
    return [intake.line]


def validate_create_request(actor: Actor, payload: dict | None) -> RfpIntake:
    """
    Validate an RFP creation request.

    Returns:
        RfpIntake with the canonical product list.

    Raises:
        PermissionDenied, ValidationError, ConflictError
    """
    check_capability(actor, Capability.CREATE_RFP)

    payload = payload or {}
    lead_id = _lead_id(payload)
    shape = parse_products(payload)

    return RfpIntake(
        lead_id=lead_id,
        products=normalise_products(shape),
        delivery_timeline=_text(payload.get("deliveryTimeline")),
        special_requirements=_text(payload.get("specialRequirements")),
        pricing_decision_rfp_id=_text(payload.get("pricingDecisionRfpId")),
        master_rfp_id=_text(payload.get("masterRfpId")),
        shape="products" if isinstance(shape, ProductListIntake) else "legacy",
    )
