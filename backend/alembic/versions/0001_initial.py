"""initial: agent availability, date overrides, appointments

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_SLOT_WHERE = "status IN ('pending', 'confirmed')"


def upgrade() -> None:
    op.create_table(
        "agent_availability",
        sa.Column("agent_id", sa.Integer(), nullable=False, unique=True),
        sa.Column("weekly_schedule", sa.Text(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("default_duration", sa.Integer(), nullable=False, server_default=sa.text("60")),
        sa.Column("buffer_time", sa.Integer(), nullable=False, server_default=sa.text("15")),
        sa.Column("max_appointments_per_day", sa.Integer(), nullable=False, server_default=sa.text("8")),
        sa.Column("advance_booking_days", sa.Integer(), nullable=False, server_default=sa.text("60")),
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("timezone", sa.Text()),
        sa.Column("created_at", sa.Text(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.Text(), server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    op.create_table(
        "date_overrides",
        sa.Column(
            "availability_id",
            sa.Integer(),
            sa.ForeignKey("agent_availability.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Text(), nullable=False),
        sa.Column("is_available", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slots", sa.Text()),
        sa.Column("reason", sa.Text()),
        sa.Column("created_at", sa.Text(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("availability_id", "date"),
    )

    op.create_table(
        "appointments",
        sa.Column("agent_id", sa.Integer(), nullable=False),
        sa.Column("appointment_type", sa.Text(), nullable=False),
        sa.Column("scheduled_date", sa.Text(), nullable=False),
        sa.Column("scheduled_time", sa.Text(), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False, server_default=sa.text("60")),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("contact_name", sa.Text(), nullable=False),
        sa.Column("contact_email", sa.Text(), nullable=False),
        sa.Column("contact_phone", sa.Text(), nullable=False),
        sa.Column("is_guest_booking", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_rescheduled", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.Text(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.Text(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("client_id", sa.Integer()),
        sa.Column("property_details", sa.Text()),
        sa.Column("notes", sa.Text()),
        sa.Column("agent_notes", sa.Text()),
        sa.Column("reschedule_reason", sa.Text()),
        sa.Column("original_scheduled_date", sa.Text()),
        sa.Column("original_scheduled_time", sa.Text()),
        sa.Column("cancellation_reason", sa.Text()),
        sa.Column("cancelled_by", sa.Integer()),
        sa.Column("cancelled_at", sa.Text()),
        sa.Column("responded_at", sa.Text()),
        sa.Column("idempotency_key", sa.Text(), unique=True),
    )
    op.create_index("ix_appointments_agent_date", "appointments", ["agent_id", "scheduled_date"])
    op.create_index("ix_appointments_client_status", "appointments", ["client_id", "status"])
    op.create_index(
        "uq_appointments_active_slot",
        "appointments",
        ["agent_id", "scheduled_date", "scheduled_time"],
        unique=True,
        sqlite_where=sa.text(ACTIVE_SLOT_WHERE),
        postgresql_where=sa.text(ACTIVE_SLOT_WHERE),
    )


def downgrade() -> None:
    op.drop_index("uq_appointments_active_slot", table_name="appointments")
    op.drop_index("ix_appointments_client_status", table_name="appointments")
    op.drop_index("ix_appointments_agent_date", table_name="appointments")
    op.drop_table("appointments")
    op.drop_table("date_overrides")
    op.drop_table("agent_availability")
