"""Initial schema: rides, participants, chat messages and the user directory.

Revision ID: 001
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("realm_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("department", sa.String(120), nullable=True),
        sa.Column("year", sa.String(16), nullable=True),
        sa.Column("gender", sa.String(16), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )
    op.create_index("idx_users_realm", "users", ["realm_id"])

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("creator_id", sa.String(64), nullable=False),
        sa.Column("creator_realm_id", sa.String(64), nullable=False),
        sa.Column("from_location", sa.String(120), nullable=False),
        sa.Column("to_location", sa.String(120), nullable=False),
        sa.Column("total_seats", sa.Integer, nullable=False),
        sa.Column("available_seats", sa.Integer, nullable=False),
        sa.Column(
            "preferred_gender",
            sa.Enum("Any", "Male", "Female", name="genderpreference"),
            nullable=False,
        ),
        sa.Column("luggage_space", sa.Boolean, nullable=False),
        sa.Column("time_negotiation", sa.Boolean, nullable=False),
        sa.Column("additional_notes", sa.String(500), nullable=False),
        sa.Column("allow_chat", sa.Boolean, nullable=False),
        sa.Column(
            "status",
            sa.Enum("OPEN", "FULL", "CLOSED", name="ridestatus"),
            nullable=False,
        ),
        sa.Column("date_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("available_seats >= 0", name="ck_rides_seats_non_negative"),
        sa.CheckConstraint(
            "available_seats <= total_seats", name="ck_rides_seats_within_capacity"
        ),
    )
    op.create_index(
        "idx_rides_realm_status_time",
        "rides",
        ["creator_realm_id", "status", "date_time"],
    )
    op.create_index("idx_rides_creator", "rides", ["creator_id"])
    op.create_index("idx_rides_expires", "rides", ["expires_at"])

    # ── ride_participants ─────────────────────────────────────────────
    op.create_table(
        "ride_participants",
        sa.Column(
            "ride_id",
            sa.String(32),
            sa.ForeignKey("rides.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column(
            "state",
            sa.Enum("PENDING", "CONFIRMED", name="participantstate"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )
    op.create_index("idx_participants_user", "ride_participants", ["user_id"])

    # ── chat_messages ─────────────────────────────────────────────────
    op.create_table(
        "chat_messages",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "ride_id",
            sa.String(32),
            sa.ForeignKey("rides.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sender_id", sa.String(64), nullable=False),
        sa.Column("sender_name", sa.String(120), nullable=False),
        sa.Column("message", sa.Text, nullable=True),
        sa.Column("ciphertext", sa.Text, nullable=True),
        sa.Column("nonce", sa.String(128), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_chat_messages_ride", "chat_messages", ["ride_id", "sent_at"]
    )


def downgrade() -> None:
    op.drop_table("chat_messages")
    op.drop_table("ride_participants")
    op.drop_table("rides")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS participantstate")
    op.execute("DROP TYPE IF EXISTS ridestatus")
    op.execute("DROP TYPE IF EXISTS genderpreference")
