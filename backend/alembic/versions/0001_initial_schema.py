"""Initial schema — identities, batches, reviews, transport log,
transactions and the activity log.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-19

Run with:
    alembic upgrade head
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


IDENTITY_ROLES = ("farmer", "distributor", "retailer", "consumer", "government", "admin")


def upgrade() -> None:
    # ── Participants ─────────────────────────────────────────

    op.create_table(
        "identities",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(20)),
        sa.Column("role", sa.Enum(*IDENTITY_ROLES, name="identityrole"), nullable=False),
        sa.Column("rating", sa.Float(), server_default="0"),
        sa.Column("rating_count", sa.Integer(), server_default="0"),
        sa.Column("is_approved", sa.Boolean(), server_default=sa.true()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_identities_email", "identities", ["email"], unique=True)
    op.create_index("ix_identities_role", "identities", ["role"])

    # ── Batches ──────────────────────────────────────────────

    op.create_table(
        "batches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("batch_code", sa.String(50), nullable=False),
        sa.Column("farmer_id", sa.String(36), sa.ForeignKey("identities.id"), nullable=False),
        sa.Column("origin_longitude", sa.Float(), nullable=False),
        sa.Column("origin_latitude", sa.Float(), nullable=False),
        sa.Column("origin_address", sa.JSON()),
        sa.Column("crop", sa.String(30), nullable=False),
        sa.Column("variety", sa.String(100), nullable=False),
        sa.Column("harvest_date", sa.Date(), nullable=False),
        sa.Column("unit", sa.String(20), nullable=False, server_default="kg"),
        sa.Column("initial_quantity", sa.Float(), nullable=False),
        sa.Column("quantity_remaining", sa.Float(), nullable=False),
        sa.Column("expected_price", sa.Float(), nullable=False),
        sa.Column("quality_grade", sa.String(1), server_default="A"),
        sa.Column("quality_moisture", sa.Float()),
        sa.Column("quality_purity", sa.Float()),
        sa.Column("quality_defects", sa.Float()),
        sa.Column("certifications", sa.JSON()),
        sa.Column("status", sa.String(20), nullable=False, server_default="harvested"),
        sa.Column("current_owner_id", sa.String(36), sa.ForeignKey("identities.id"), nullable=False),
        sa.Column("current_longitude", sa.Float()),
        sa.Column("current_latitude", sa.Float()),
        sa.Column("current_address", sa.String(500)),
        sa.Column("location_updated_at", sa.DateTime()),
        sa.Column("average_rating", sa.Float(), nullable=False, server_default="0"),
        sa.Column("review_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint("quantity_remaining >= 0", name="ck_batches_quantity_non_negative"),
    )
    op.create_index("ix_batches_batch_code", "batches", ["batch_code"], unique=True)
    op.create_index("ix_batches_farmer_id", "batches", ["farmer_id"])
    op.create_index("ix_batches_current_owner_id", "batches", ["current_owner_id"])
    op.create_index("ix_batches_status", "batches", ["status"])
    op.create_index("ix_batches_is_active", "batches", ["is_active"])
    op.create_index("ix_batches_created_at", "batches", ["created_at"])
    op.create_index("ix_batches_farmer_status", "batches", ["farmer_id", "status"])
    op.create_index("ix_batches_crop_status", "batches", ["crop", "status"])

    op.create_table(
        "batch_reviews",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("batch_id", sa.String(36), sa.ForeignKey("batches.id"), nullable=False),
        sa.Column("reviewer_id", sa.String(36), sa.ForeignKey("identities.id"), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("batch_id", "reviewer_id", name="uq_batch_reviews_batch_reviewer"),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_batch_reviews_rating_range"),
    )
    op.create_index("ix_batch_reviews_batch_id", "batch_reviews", ["batch_id"])

    op.create_table(
        "transport_conditions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("batch_id", sa.String(36), sa.ForeignKey("batches.id"), nullable=False),
        sa.Column("temperature", sa.Float()),
        sa.Column("humidity", sa.Float()),
        sa.Column("longitude", sa.Float()),
        sa.Column("latitude", sa.Float()),
        sa.Column("notes", sa.Text()),
        sa.Column("recorded_by", sa.String(36)),
        sa.Column("recorded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_transport_conditions_batch_id", "transport_conditions", ["batch_id"])
    op.create_index("ix_transport_conditions_recorded_at", "transport_conditions", ["recorded_at"])

    # ── Ledger ───────────────────────────────────────────────

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("transaction_code", sa.String(50), nullable=False),
        sa.Column("batch_id", sa.String(36), sa.ForeignKey("batches.id"), nullable=False),
        sa.Column("from_id", sa.String(36), sa.ForeignKey("identities.id"), nullable=False),
        sa.Column("to_id", sa.String(36), sa.ForeignKey("identities.id"), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(20), nullable=False),
        sa.Column("price_per_unit", sa.Float(), nullable=False),
        sa.Column("total_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("payment_method", sa.String(20), nullable=False, server_default="cash"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("status", sa.String(20), nullable=False, server_default="initiated"),
        sa.Column("notes", sa.Text()),
        sa.Column("dispute_reason", sa.Text()),
        sa.Column("resolution", sa.Text()),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("qc_grade", sa.String(1)),
        sa.Column("qc_moisture", sa.Float()),
        sa.Column("qc_purity", sa.Float()),
        sa.Column("qc_defects", sa.Float()),
        sa.Column("qc_notes", sa.Text()),
        sa.Column("qc_performed_by", sa.String(36), sa.ForeignKey("identities.id")),
        sa.Column("qc_checked_at", sa.DateTime()),
        sa.Column("longitude", sa.Float()),
        sa.Column("latitude", sa.Float()),
        sa.Column("address", sa.String(500)),
        sa.Column("city", sa.String(100)),
        sa.Column("state", sa.String(100)),
        sa.Column("vehicle_number", sa.String(30)),
        sa.Column("driver_name", sa.String(100)),
        sa.Column("driver_phone", sa.String(20)),
        sa.Column("estimated_arrival", sa.DateTime()),
        sa.Column("actual_arrival", sa.DateTime()),
        sa.Column("transport_cost", sa.Float()),
        sa.Column("documents", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint("quantity > 0", name="ck_transactions_quantity_positive"),
        sa.CheckConstraint("price_per_unit >= 0", name="ck_transactions_price_non_negative"),
    )
    op.create_index("ix_transactions_transaction_code", "transactions", ["transaction_code"], unique=True)
    op.create_index("ix_transactions_batch_id", "transactions", ["batch_id"])
    op.create_index("ix_transactions_from_id", "transactions", ["from_id"])
    op.create_index("ix_transactions_to_id", "transactions", ["to_id"])
    op.create_index("ix_transactions_status", "transactions", ["status"])
    op.create_index("ix_transactions_created_at", "transactions", ["created_at"])
    op.create_index("ix_transactions_batch_created", "transactions", ["batch_id", "created_at"])
    op.create_index("ix_transactions_type_status", "transactions", ["type", "status"])

    # ── Audit ────────────────────────────────────────────────

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("actor_id", sa.String(36), nullable=False),
        sa.Column("actor_name", sa.String(255), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36)),
        sa.Column("entity_code", sa.String(100)),
        sa.Column("summary", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_actor_id", "activity_logs", ["actor_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity_type", "activity_logs", ["entity_type"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("transactions")
    op.drop_table("transport_conditions")
    op.drop_table("batch_reviews")
    op.drop_table("batches")
    op.drop_table("identities")
    sa.Enum(name="identityrole").drop(op.get_bind(), checkfirst=True)
