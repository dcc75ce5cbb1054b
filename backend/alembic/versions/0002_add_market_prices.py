"""Add the market_prices board.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19
"""

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    op.create_table(
        "market_prices",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("crop", sa.String(30), nullable=False),
        sa.Column("variety", sa.String(100), nullable=False),
        # Market
        sa.Column("market_name", sa.String(255), nullable=False),
        sa.Column("market_city", sa.String(100)),
        sa.Column("market_state", sa.String(100)),
        sa.Column("market_address", sa.String(500)),
        sa.Column("market_longitude", sa.Float()),
        sa.Column("market_latitude", sa.Float()),
        # Price per unit
        sa.Column("price_min", sa.Float(), nullable=False),
        sa.Column("price_max", sa.Float(), nullable=False),
        sa.Column("price_average", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(20), nullable=False),
        # Supply and quality
        sa.Column("quantity_available", sa.Float(), server_default="0"),
        sa.Column("quantity_unit", sa.String(20), nullable=False),
        sa.Column("quality_grade", sa.String(1), server_default="A"),
        sa.Column("quality_moisture", sa.Float()),
        sa.Column("quality_purity", sa.Float()),
        # Source
        sa.Column("source", sa.String(20), nullable=False, server_default="mandi"),
        sa.Column("recorded_by", sa.String(36), sa.ForeignKey("identities.id"), nullable=False),
        sa.Column("observed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint(
            "price_min >= 0 AND price_max >= price_min", name="ck_market_prices_range",
        ),
    )
    op.create_index("ix_market_prices_market_name", "market_prices", ["market_name"])
    op.create_index("ix_market_prices_crop_observed", "market_prices", ["crop", "observed_at"])
    op.create_index(
        "ix_market_prices_crop_variety_observed", "market_prices",
        ["crop", "variety", "observed_at"],
    )
    op.create_index(
        "ix_market_prices_observed_active", "market_prices", ["observed_at", "is_active"],
    )


def downgrade() -> None:
    op.drop_table("market_prices")
