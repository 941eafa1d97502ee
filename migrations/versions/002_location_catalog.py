"""Location catalog: named locations and the routes each realm offers.

Revision ID: 002
Revises: 001
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "locations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), unique=True, nullable=False),
        sa.Column("type", sa.String(40), nullable=True),
    )

    op.create_table(
        "valid_routes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("realm_id", sa.String(64), nullable=False),
        sa.Column(
            "from_location_id",
            sa.Integer,
            sa.ForeignKey("locations.id"),
            nullable=False,
        ),
        sa.Column(
            "to_location_id",
            sa.Integer,
            sa.ForeignKey("locations.id"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.UniqueConstraint(
            "realm_id", "from_location_id", "to_location_id", name="uq_valid_routes_pair"
        ),
    )
    op.create_index(
        "idx_valid_routes_realm_from", "valid_routes", ["realm_id", "from_location_id"]
    )


def downgrade() -> None:
    op.drop_index("idx_valid_routes_realm_from", table_name="valid_routes")
    op.drop_table("valid_routes")
    op.drop_table("locations")
