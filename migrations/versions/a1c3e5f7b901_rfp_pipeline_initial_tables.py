"""rfp_pipeline_initial_tables

Create the RFP lifecycle tables: leads, RFP requests with product lines,
price revisions and audit log, pricing decision snapshots, quotations and
work orders.

Revision ID: a1c3e5f7b901
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c3e5f7b901"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "department_head_leads" not in existing_tables:
        op.create_table(
            "department_head_leads",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("customer", sa.String(length=255), nullable=True),
            sa.Column("business", sa.String(length=255), nullable=True),
            sa.Column("phone", sa.String(length=40), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("gst_no", sa.String(length=20), nullable=True),
            sa.Column("state", sa.String(length=80), nullable=True),
            _ts("created_at"),
            sa.PrimaryKeyConstraint("id"),
        )

    if "rfp_requests" not in existing_tables:
        op.create_table(
            "rfp_requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("rfp_id", sa.String(length=40), nullable=True),
            sa.Column("master_rfp_id", sa.String(length=40), nullable=True),
            sa.Column("pricing_decision_rfp_id", sa.String(length=40), nullable=True),
            sa.Column("lead_id", sa.Integer(), nullable=False),
            sa.Column("salesperson_id", sa.String(length=64), nullable=True),
            sa.Column("created_by", sa.String(length=255), nullable=False),
            sa.Column("department_type", sa.String(length=60), nullable=True),
            sa.Column("company_name", sa.String(length=255), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="pending_dh"),
            sa.Column("delivery_timeline", sa.Text(), nullable=True),
            sa.Column("special_requirements", sa.Text(), nullable=True),
            sa.Column("raw_material_price", sa.Numeric(14, 2), nullable=True),
            sa.Column("processing_cost", sa.Numeric(14, 2), nullable=True),
            sa.Column("margin", sa.Numeric(14, 2), nullable=True),
            sa.Column("calculated_price", sa.Numeric(14, 2), nullable=True),
            sa.Column("price_valid_until", sa.Date(), nullable=True),
            sa.Column("pricing_updated_by", sa.String(length=255), nullable=True),
            _ts("pricing_updated_at", nullable=True),
            sa.Column("calculator_total_price", sa.Numeric(14, 2), nullable=True),
            sa.Column("calculator_detail", sa.JSON(), nullable=True),
            sa.Column("quotation_id", sa.Integer(), nullable=True),
            sa.Column("quotation_number", sa.String(length=40), nullable=True),
            sa.Column("work_order_id", sa.Integer(), nullable=True),
            sa.Column("work_order_number", sa.String(length=40), nullable=True),
            sa.Column("pi_id", sa.String(length=64), nullable=True),
            sa.Column("payment_id", sa.String(length=64), nullable=True),
            sa.Column("approved_by", sa.String(length=255), nullable=True),
            _ts("approved_at", nullable=True),
            sa.Column("rejected_by", sa.String(length=255), nullable=True),
            _ts("rejected_at", nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("accounts_approval_status", sa.String(length=20), nullable=True),
            sa.Column("accounts_approved_by", sa.String(length=255), nullable=True),
            _ts("accounts_approved_at", nullable=True),
            sa.Column("accounts_notes", sa.Text(), nullable=True),
            sa.Column("senior_approval_status", sa.String(length=20), nullable=True),
            sa.Column("senior_approved_by", sa.String(length=255), nullable=True),
            _ts("senior_approved_at", nullable=True),
            sa.Column("senior_notes", sa.Text(), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("rfp_id", name="uq_rfp_requests_rfp_id"),
            sa.UniqueConstraint("quotation_id", name="uq_rfp_requests_quotation_id"),
            sa.UniqueConstraint("work_order_id", name="uq_rfp_requests_work_order_id"),
        )
        op.create_index("ix_rfp_requests_status", "rfp_requests", ["status"])
        op.create_index("ix_rfp_requests_lead", "rfp_requests", ["lead_id"])
        op.create_index(
            "ix_rfp_requests_company_dept", "rfp_requests", ["company_name", "department_type"],
        )

    if "rfp_request_products" not in existing_tables:
        op.create_table(
            "rfp_request_products",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("rfp_request_id", sa.Integer(), nullable=False),
            sa.Column("line_no", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("product_spec", sa.String(length=500), nullable=False),
            sa.Column("quantity", sa.Numeric(14, 3), nullable=True),
            sa.Column("length", sa.String(length=40), nullable=True),
            sa.Column("length_unit", sa.String(length=20), nullable=False, server_default="Mtr"),
            sa.Column("target_price", sa.Numeric(14, 2), nullable=True),
            sa.Column("availability_status", sa.String(length=40), nullable=False),
            sa.Column("calculator_price", sa.Numeric(14, 2), nullable=True),
            sa.Column("calculator_detail", sa.JSON(), nullable=True),
            sa.ForeignKeyConstraint(["rfp_request_id"], ["rfp_requests.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_rfp_request_products_rfp_request_id", "rfp_request_products", ["rfp_request_id"],
        )

    if "rfp_price_revisions" not in existing_tables:
        op.create_table(
            "rfp_price_revisions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("rfp_request_id", sa.Integer(), nullable=False),
            sa.Column("raw_material_price", sa.Numeric(14, 2), nullable=False),
            sa.Column("processing_cost", sa.Numeric(14, 2), nullable=False),
            sa.Column("margin", sa.Numeric(14, 2), nullable=False),
            sa.Column("calculated_price", sa.Numeric(14, 2), nullable=False),
            sa.Column("validity_date", sa.Date(), nullable=True),
            sa.Column("created_by", sa.String(length=255), nullable=False),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["rfp_request_id"], ["rfp_requests.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_rfp_price_revisions_rfp_request_id", "rfp_price_revisions", ["rfp_request_id"],
        )

    if "rfp_audit_logs" not in existing_tables:
        op.create_table(
            "rfp_audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("rfp_request_id", sa.Integer(), nullable=False),
            sa.Column("action", sa.String(length=40), nullable=False),
            sa.Column("performed_by", sa.String(length=255), nullable=False),
            sa.Column("performed_by_role", sa.String(length=40), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["rfp_request_id"], ["rfp_requests.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_rfp_audit_rfp", "rfp_audit_logs", ["rfp_request_id", "created_at"])
        op.create_index("idx_rfp_audit_action", "rfp_audit_logs", ["action"])

    if "pricing_rfp_decisions" not in existing_tables:
        op.create_table(
            "pricing_rfp_decisions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("rfp_id", sa.String(length=40), nullable=False),
            sa.Column("lead_id", sa.Integer(), nullable=False),
            sa.Column("salesperson_id", sa.String(length=64), nullable=True),
            sa.Column("created_by", sa.String(length=255), nullable=False),
            sa.Column("department_type", sa.String(length=60), nullable=True),
            sa.Column("company_name", sa.String(length=255), nullable=True),
            sa.Column("products", sa.JSON(), nullable=False),
            sa.Column("delivery_timeline", sa.Text(), nullable=True),
            sa.Column("special_requirements", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="saved"),
            sa.Column("rfp_created", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("source_rfp_request_id", sa.Integer(), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
            sa.ForeignKeyConstraint(
                ["source_rfp_request_id"], ["rfp_requests.id"], ondelete="SET NULL",
            ),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("rfp_id", name="uq_pricing_rfp_decisions_rfp_id"),
        )
        op.create_index(
            "ix_pricing_decisions_lead_created", "pricing_rfp_decisions", ["lead_id", "created_at"],
        )
        op.create_index(
            "ix_pricing_rfp_decisions_source_rfp_request_id",
            "pricing_rfp_decisions",
            ["source_rfp_request_id"],
        )

    if "quotations" not in existing_tables:
        op.create_table(
            "quotations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("quotation_number", sa.String(length=40), nullable=False),
            sa.Column("customer_id", sa.Integer(), nullable=True),
            sa.Column("salesperson_id", sa.String(length=64), nullable=True),
            sa.Column("created_by", sa.String(length=255), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("customer_name", sa.String(length=255), nullable=True),
            sa.Column("customer_business", sa.String(length=255), nullable=True),
            sa.Column("customer_phone", sa.String(length=40), nullable=True),
            sa.Column("customer_email", sa.String(length=255), nullable=True),
            sa.Column("customer_address", sa.Text(), nullable=True),
            sa.Column("customer_gst_no", sa.String(length=20), nullable=True),
            sa.Column("customer_state", sa.String(length=80), nullable=True),
            sa.Column("quotation_date", sa.Date(), nullable=False),
            sa.Column("valid_until", sa.Date(), nullable=True),
            sa.Column("branch", sa.String(length=40), nullable=False, server_default="ANODE"),
            sa.Column("subtotal", sa.Numeric(16, 2), nullable=False),
            sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False),
            sa.Column("tax_amount", sa.Numeric(16, 2), nullable=False),
            sa.Column("discount_rate", sa.Numeric(5, 2), nullable=False),
            sa.Column("discount_amount", sa.Numeric(16, 2), nullable=False),
            sa.Column("total_amount", sa.Numeric(16, 2), nullable=False),
            sa.Column("rfp_request_id", sa.Integer(), nullable=True),
            sa.Column("rfp_id", sa.String(length=40), nullable=True),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["rfp_request_id"], ["rfp_requests.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("quotation_number", name="uq_quotations_quotation_number"),
        )
        op.create_index("ix_quotations_rfp_request_id", "quotations", ["rfp_request_id"])

    if "quotation_items" not in existing_tables:
        op.create_table(
            "quotation_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("quotation_id", sa.Integer(), nullable=False),
            sa.Column("item_order", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("product_name", sa.String(length=500), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("hsn_code", sa.String(length=20), nullable=True),
            sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
            sa.Column("unit", sa.String(length=20), nullable=False, server_default="Nos"),
            sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
            sa.Column("gst_rate", sa.Numeric(5, 2), nullable=False),
            sa.Column("taxable_amount", sa.Numeric(16, 2), nullable=False),
            sa.Column("gst_amount", sa.Numeric(16, 2), nullable=False),
            sa.Column("total_amount", sa.Numeric(16, 2), nullable=False),
            sa.ForeignKeyConstraint(["quotation_id"], ["quotations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_quotation_items_quotation_id", "quotation_items", ["quotation_id"])

    if "work_orders" not in existing_tables:
        op.create_table(
            "work_orders",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("work_order_number", sa.String(length=40), nullable=False),
            sa.Column("quotation_number", sa.String(length=40), nullable=False),
            sa.Column("quotation_id", sa.Integer(), nullable=True),
            sa.Column("lead_id", sa.Integer(), nullable=True),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("customer", sa.JSON(), nullable=False),
            sa.Column("order_title", sa.String(length=500), nullable=True),
            sa.Column("order_quantity", sa.String(length=40), nullable=True),
            sa.Column("order_total", sa.Numeric(16, 2), nullable=False),
            sa.Column("items", sa.JSON(), nullable=False),
            sa.Column(
                "status", sa.String(length=30), nullable=False, server_default="sent_to_operations",
            ),
            sa.Column("rfp_request_id", sa.Integer(), nullable=True),
            sa.Column("rfp_id", sa.String(length=40), nullable=True),
            _ts("sent_to_operations_at", nullable=True),
            sa.Column("prepared_by", sa.String(length=255), nullable=True),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["quotation_id"], ["quotations.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["rfp_request_id"], ["rfp_requests.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("work_order_number", name="uq_work_orders_work_order_number"),
            sa.UniqueConstraint("quotation_number", name="uq_work_orders_quotation_number"),
        )
        op.create_index("ix_work_orders_rfp_request_id", "work_orders", ["rfp_request_id"])


def downgrade():
    for table in (
        "work_orders",
        "quotation_items",
        "quotations",
        "pricing_rfp_decisions",
        "rfp_audit_logs",
        "rfp_price_revisions",
        "rfp_request_products",
        "rfp_requests",
        "department_head_leads",
    ):
        op.drop_table(table)
