"""
Shared pytest fixtures for the RFP pipeline test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - frozen_clock: pins business-number generation to May 2024
    - salesperson / sales_head / accounts / senior / production_user: Actors
    - auth_headers / headers: bearer-token headers for API tests
    - lead: a customer lead row
    - pending_rfp → approved_rfp → priced_rfp → quoted_rfp → submitted_rfp:
      one RFP walked through the lifecycle step by step
"""

from datetime import datetime, timezone

import pytest

from rfp_pipeline import create_app
from rfp_pipeline.models import db as _db
from rfp_pipeline.models.sales import Lead
from rfp_pipeline.services import code_generator, quotation_service, rfp_lifecycle
from rfp_pipeline.services.jwt_service import generate_access_token
from rfp_pipeline.services.permission import Actor

FROZEN_NOW = datetime(2024, 5, 15, 10, 30, tzinfo=timezone.utc)

SALESPERSON_CLAIMS = {
    "sub": "s1key",
    "email": "s1@anode.in",
    "role": "department_user",
    "department_type": "office_sales",
    "company_name": "Anode Cables",
}
SALES_HEAD_CLAIMS = {
    "sub": "dh-0001",
    "email": "dh@anode.in",
    "role": "department_head",
    "department_type": "office_sales",
    "company_name": "Anode Cables",
}
ACCOUNTS_CLAIMS = {
    "sub": "ac-0001",
    "email": "accounts@anode.in",
    "role": "department_user",
    "department_type": "accounts",
    "company_name": "Anode Cables",
}
SENIOR_CLAIMS = {
    "sub": "sm-0001",
    "email": "md@anode.in",
    "role": "superadmin",
}
PRODUCTION_CLAIMS = {
    "sub": "pr-0001",
    "email": "plant@anode.in",
    "role": "department_user",
    "department_type": "production",
    "company_name": "Anode Cables",
}

DEFAULT_PRODUCTS = [
    {
        "productSpec": "XLPE 3C x 95 sqmm",
        "quantity": 500,
        "length": "500",
        "lengthUnit": "Mtr",
        "targetPrice": 125,
        "availabilityStatus": "custom_product_pricing_needed",
    },
]


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def frozen_clock(monkeypatch):
    """Generate RFP ids, snapshot ids and quotation numbers as of May 2024."""
    monkeypatch.setattr(code_generator, "_now", lambda: FROZEN_NOW)
    return FROZEN_NOW


# ── Actors & tokens ──────────────────────────────────────────────────────


@pytest.fixture()
def salesperson():
    return Actor.from_claims(SALESPERSON_CLAIMS)


@pytest.fixture()
def sales_head():
    return Actor.from_claims(SALES_HEAD_CLAIMS)


@pytest.fixture()
def accounts():
    return Actor.from_claims(ACCOUNTS_CLAIMS)


@pytest.fixture()
def senior():
    return Actor.from_claims(SENIOR_CLAIMS)


@pytest.fixture()
def production_user():
    return Actor.from_claims(PRODUCTION_CLAIMS)


@pytest.fixture()
def auth_headers():
    """Return a factory: claims dict → Authorization header dict."""

    def _headers(claims):
        token = generate_access_token(
            claims["sub"],
            claims.get("email"),
            claims["role"],
            department_type=claims.get("department_type"),
            company_name=claims.get("company_name"),
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def lead():
    """A customer lead with the fields quotations snapshot."""
    row = Lead(
        customer="Ravi Kumar",
        business="Ravi Traders",
        phone="9876543210",
        email="ravi@traders.in",
        address="12 Industrial Estate, Pune",
        gst_no="27ABCDE1234F1Z5",
        state="Maharashtra",
    )
    _db.session.add(row)
    _db.session.commit()
    return row


@pytest.fixture()
def pending_rfp(frozen_clock, salesperson, lead):
    """RFP raised by the salesperson, awaiting the sales head."""
    return rfp_lifecycle.create_rfp(salesperson, {
        "leadId": lead.id,
        "products": [dict(p) for p in DEFAULT_PRODUCTS],
        "deliveryTimeline": "4 weeks",
        "specialRequirements": "ISI marked drums",
    })


@pytest.fixture()
def approved_rfp(pending_rfp, sales_head):
    return rfp_lifecycle.approve_rfp(sales_head, pending_rfp.id)


@pytest.fixture()
def priced_rfp(approved_rfp, accounts):
    result = rfp_lifecycle.add_price_revision(accounts, approved_rfp.id, {
        "rawMaterialPrice": 100,
        "processingCost": 20,
        "margin": 10,
        "validityDate": "2024-06-15",
    })
    return result["rfp"]


@pytest.fixture()
def quoted_rfp(priced_rfp, salesperson):
    quotation_service.generate_quotation(salesperson, priced_rfp.id)
    return priced_rfp


@pytest.fixture()
def submitted_rfp(quoted_rfp, salesperson):
    return rfp_lifecycle.submit_to_accounts(
        salesperson, quoted_rfp.id, pi_id="PI-77", payment_id="PAY-9001",
    )


@pytest.fixture()
def headers(auth_headers):
    """Bearer headers for each standard actor, keyed by a short name."""
    return {
        "sales": auth_headers(SALESPERSON_CLAIMS),
        "head": auth_headers(SALES_HEAD_CLAIMS),
        "accounts": auth_headers(ACCOUNTS_CLAIMS),
        "senior": auth_headers(SENIOR_CLAIMS),
        "production": auth_headers(PRODUCTION_CLAIMS),
    }
