"""initial marketplace schema: orders, quotes, payments, commissions, riders, outbox

Revision ID: 3c1d2e4f5a60
Revises:
Create Date: 2026-10-12 10:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "3c1d2e4f5a60"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(bind, table_name: str) -> bool:
    return sa.inspect(bind).has_table(table_name)


def _index(table: str, column: str, *, unique: bool = False) -> None:
    op.create_index(f"ix_{table}_{column}", table, [column], unique=unique)


def upgrade():
    bind = op.get_bind()

    if not _table_exists(bind, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("phone", sa.String(length=32), nullable=True),
            sa.Column("role", sa.String(length=32), nullable=False, server_default="customer"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        _index("users", "email", unique=True)
        _index("users", "phone", unique=True)

    if not _table_exists(bind, "vendors"):
        op.create_table(
            "vendors",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("business_name", sa.String(length=160), nullable=False, server_default=""),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("phone", sa.String(length=32), nullable=True),
            sa.Column("whatsapp", sa.String(length=32), nullable=True),
            sa.Column("service_areas_json", sa.Text(), nullable=True),
            sa.Column("referral_code", sa.String(length=32), nullable=True),
            sa.Column("affiliate_commission_rate", sa.Float(), nullable=False, server_default="20"),
            sa.Column("discounted_commissions_used", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("affiliate_initialized_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        _index("vendors", "user_id", unique=True)
        _index("vendors", "email")
        _index("vendors", "referral_code", unique=True)

    if not _table_exists(bind, "riders"):
        op.create_table(
            "riders",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("name", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("phone", sa.String(length=32), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("vehicle_type", sa.String(length=32), nullable=True),
            sa.Column("max_weight_kg", sa.Float(), nullable=True),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
            sa.Column("current_lat", sa.Float(), nullable=True),
            sa.Column("current_lon", sa.Float(), nullable=True),
            sa.Column("location_updated_at", sa.DateTime(), nullable=True),
            sa.Column("completed_deliveries", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("rating", sa.Float(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        _index("riders", "user_id", unique=True)
        _index("riders", "status")

    if not _table_exists(bind, "pincodes"):
        op.create_table(
            "pincodes",
            sa.Column("code", sa.String(length=12), primary_key=True),
            sa.Column("city", sa.String(length=80), nullable=True),
            sa.Column("state", sa.String(length=80), nullable=True),
            sa.Column("latitude", sa.Float(), nullable=True),
            sa.Column("longitude", sa.Float(), nullable=True),
        )

    if not _table_exists(bind, "orders"):
        op.create_table(
            "orders",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("order_number", sa.String(length=24), nullable=False),
            sa.Column("user_email", sa.String(length=255), nullable=False),
            sa.Column("order_type", sa.String(length=16), nullable=False, server_default="move"),
            sa.Column("pickup_pincode", sa.String(length=12), nullable=True),
            sa.Column("destination_pincode", sa.String(length=12), nullable=True),
            sa.Column("pickup_address", sa.String(length=400), nullable=True),
            sa.Column("destination_address", sa.String(length=400), nullable=True),
            sa.Column("pickup_lat", sa.Float(), nullable=True),
            sa.Column("pickup_lon", sa.Float(), nullable=True),
            sa.Column("move_size", sa.String(length=40), nullable=True),
            sa.Column("move_date", sa.DateTime(), nullable=True),
            sa.Column("package_weight_kg", sa.Float(), nullable=True),
            sa.Column("distance_category", sa.String(length=24), nullable=True),
            sa.Column("status", sa.String(length=32), nullable=False, server_default="Initiated"),
            sa.Column("vendor_requests_json", sa.Text(), nullable=True),
            sa.Column("selected_vendor_id", sa.String(length=36), sa.ForeignKey("vendors.id"), nullable=True),
            sa.Column("selected_quote_id", sa.String(length=36), nullable=True),
            sa.Column("is_cross_lead", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("referring_vendor_id", sa.String(length=36), sa.ForeignKey("vendors.id"), nullable=True),
            sa.Column("cross_lead_status", sa.String(length=16), nullable=True),
            sa.Column("commission_rate", sa.Float(), nullable=True),
            sa.Column("rider_id", sa.String(length=36), sa.ForeignKey("riders.id"), nullable=True),
            sa.Column("delivery_status", sa.String(length=32), nullable=True),
            sa.Column("needs_manual_assignment", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("cancel_reason", sa.String(length=240), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        _index("orders", "order_number", unique=True)
        for col in (
            "user_email",
            "order_type",
            "pickup_pincode",
            "status",
            "selected_vendor_id",
            "is_cross_lead",
            "referring_vendor_id",
            "rider_id",
            "created_at",
        ):
            _index("orders", col)

    if not _table_exists(bind, "quotes"):
        op.create_table(
            "quotes",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("order_id", sa.String(length=36), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("vendor_id", sa.String(length=36), sa.ForeignKey("vendors.id"), nullable=False),
            sa.Column("amount", sa.Float(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("valid_until", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        _index("quotes", "order_id")
        _index("quotes", "vendor_id")

    if not _table_exists(bind, "order_status_history"):
        op.create_table(
            "order_status_history",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.String(length=36), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("status", sa.String(length=32), nullable=False),
            sa.Column("notes", sa.String(length=240), nullable=True),
            sa.Column("created_by", sa.String(length=120), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        _index("order_status_history", "order_id")
        _index("order_status_history", "created_at")

    if not _table_exists(bind, "payment_intents"):
        op.create_table(
            "payment_intents",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.String(length=36), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("vendor_id", sa.String(length=36), nullable=False),
            sa.Column("quote_id", sa.String(length=36), sa.ForeignKey("quotes.id"), nullable=True),
            sa.Column("provider", sa.String(length=32), nullable=False, server_default="mock"),
            sa.Column("remote_order_id", sa.String(length=80), nullable=False),
            sa.Column("amount_minor", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("currency", sa.String(length=8), nullable=False, server_default="INR"),
            sa.Column("status", sa.String(length=24), nullable=False, server_default="initialized"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.Column("paid_at", sa.DateTime(), nullable=True),
        )
        _index("payment_intents", "order_id")
        _index("payment_intents", "vendor_id")
        _index("payment_intents", "remote_order_id", unique=True)
        _index("payment_intents", "status")

    if not _table_exists(bind, "payment_intent_transitions"):
        op.create_table(
            "payment_intent_transitions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("intent_id", sa.Integer(), sa.ForeignKey("payment_intents.id"), nullable=False),
            sa.Column("from_status", sa.String(length=32), nullable=False, server_default=""),
            sa.Column("to_status", sa.String(length=32), nullable=False),
            sa.Column("actor_type", sa.String(length=32), nullable=False, server_default="system"),
            sa.Column("actor_id", sa.String(length=64), nullable=True),
            sa.Column("idempotency_key", sa.String(length=160), nullable=False),
            sa.Column("reason", sa.String(length=240), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("intent_id", "idempotency_key", name="uq_pi_transition_intent_key"),
        )
        _index("payment_intent_transitions", "intent_id")

    if not _table_exists(bind, "payments"):
        op.create_table(
            "payments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.String(length=36), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("vendor_id", sa.String(length=36), nullable=False),
            sa.Column("quote_id", sa.String(length=36), nullable=True),
            sa.Column("provider", sa.String(length=32), nullable=False, server_default="mock"),
            sa.Column("remote_order_id", sa.String(length=80), nullable=True),
            sa.Column("remote_payment_id", sa.String(length=80), nullable=False),
            sa.Column("signature", sa.String(length=128), nullable=True),
            sa.Column("amount", sa.Float(), nullable=False),
            sa.Column("amount_minor", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("currency", sa.String(length=8), nullable=False, server_default="INR"),
            sa.Column("paid_at", sa.DateTime(), nullable=False),
            sa.Column("applied_commission_discount", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("commission_rate", sa.Float(), nullable=False, server_default="20"),
            sa.Column("refunded_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("refund_status", sa.String(length=24), nullable=True),
        )
        _index("payments", "order_id", unique=True)
        _index("payments", "vendor_id")
        _index("payments", "remote_order_id")
        _index("payments", "remote_payment_id", unique=True)

    if not _table_exists(bind, "refunds"):
        op.create_table(
            "refunds",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("payment_id", sa.Integer(), sa.ForeignKey("payments.id"), nullable=False),
            sa.Column("order_id", sa.String(length=36), nullable=False),
            sa.Column("refund_id", sa.String(length=80), nullable=False),
            sa.Column("amount", sa.Float(), nullable=False),
            sa.Column("status", sa.String(length=24), nullable=False, server_default="processed"),
            sa.Column("reason", sa.String(length=240), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        _index("refunds", "payment_id")
        _index("refunds", "order_id")
        _index("refunds", "refund_id", unique=True)

    if not _table_exists(bind, "commission_records"):
        op.create_table(
            "commission_records",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("referring_vendor_id", sa.String(length=36), sa.ForeignKey("vendors.id"), nullable=False),
            sa.Column("selected_vendor_id", sa.String(length=36), nullable=False),
            sa.Column("order_id", sa.String(length=36), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("base_amount", sa.Float(), nullable=False),
            sa.Column("commission_rate", sa.Float(), nullable=False),
            sa.Column("amount", sa.Float(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("referring_vendor_id", "order_id", name="uq_commission_referrer_order"),
        )
        _index("commission_records", "referring_vendor_id")
        _index("commission_records", "order_id")
        _index("commission_records", "created_at")

    if not _table_exists(bind, "delivery_transitions"):
        op.create_table(
            "delivery_transitions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.String(length=36), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("rider_id", sa.String(length=36), nullable=True),
            sa.Column("from_status", sa.String(length=32), nullable=False, server_default=""),
            sa.Column("to_status", sa.String(length=32), nullable=False),
            sa.Column("actor_type", sa.String(length=32), nullable=False, server_default="system"),
            sa.Column("actor_id", sa.String(length=64), nullable=True),
            sa.Column("notes", sa.String(length=240), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        _index("delivery_transitions", "order_id")
        _index("delivery_transitions", "rider_id")

    if not _table_exists(bind, "notifications"):
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("recipient", sa.String(length=255), nullable=False),
            sa.Column("recipient_type", sa.String(length=16), nullable=False, server_default="customer"),
            sa.Column("type", sa.String(length=16), nullable=False, server_default="email"),
            sa.Column("event_type", sa.String(length=64), nullable=False, server_default="generic"),
            sa.Column("subject", sa.String(length=200), nullable=True),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
            sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("next_attempt_at", sa.DateTime(), nullable=True),
            sa.Column("last_error", sa.String(length=240), nullable=True),
            sa.Column("provider", sa.String(length=32), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("sent_at", sa.DateTime(), nullable=True),
            sa.Column("meta", sa.Text(), nullable=True),
        )
        for col in ("recipient", "event_type", "status", "next_attempt_at", "created_at"):
            _index("notifications", col)

    if not _table_exists(bind, "platform_events"):
        op.create_table(
            "platform_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("event_type", sa.String(length=80), nullable=False),
            sa.Column("actor_type", sa.String(length=32), nullable=True),
            sa.Column("actor_id", sa.String(length=64), nullable=True),
            sa.Column("subject_type", sa.String(length=80), nullable=True),
            sa.Column("subject_id", sa.String(length=120), nullable=True),
            sa.Column("request_id", sa.String(length=80), nullable=True),
            sa.Column("idempotency_key", sa.String(length=180), nullable=True),
            sa.Column("severity", sa.String(length=16), nullable=False, server_default="INFO"),
            sa.Column("metadata_json", sa.Text(), nullable=True),
        )
        for col in ("created_at", "event_type", "actor_id", "subject_type", "subject_id", "request_id"):
            _index("platform_events", col)
        _index("platform_events", "idempotency_key", unique=True)

    if not _table_exists(bind, "job_runs"):
        op.create_table(
            "job_runs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("job_name", sa.String(length=64), nullable=False),
            sa.Column("ran_at", sa.DateTime(), nullable=False),
            sa.Column("ok", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("duration_ms", sa.Integer(), nullable=True),
            sa.Column("summary_json", sa.Text(), nullable=True),
            sa.Column("error", sa.Text(), nullable=True),
        )
        _index("job_runs", "job_name")
        _index("job_runs", "ran_at")


def downgrade():
    for table in (
        "job_runs",
        "platform_events",
        "notifications",
        "delivery_transitions",
        "commission_records",
        "refunds",
        "payments",
        "payment_intent_transitions",
        "payment_intents",
        "order_status_history",
        "quotes",
        "orders",
        "pincodes",
        "riders",
        "vendors",
        "users",
    ):
        op.drop_table(table)
