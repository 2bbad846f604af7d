"""Interview reservations: workspace availability, reservations, slot blocks, slot occupancy ledger

Revision ID: 001_interview_reservations
Revises:
Create Date: 2025-12-15 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_interview_reservations"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "workspace_availability",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("workspace_id", sa.String(length=64), nullable=False),
        sa.Column("timezone", sa.String(), nullable=False),
        sa.Column("slot_minutes", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("weekly_availability", sa.JSON(), nullable=True),
        sa.Column("exceptions", sa.JSON(), nullable=True),
        sa.Column("locations", sa.JSON(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_workspace_availability_workspace_id", "workspace_availability", ["workspace_id"], unique=True
    )

    op.create_table(
        "interviewreservation",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("conversation_id", sa.String(length=64), nullable=False),
        sa.Column("contact_id", sa.String(length=64), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("timezone", sa.String(), nullable=False),
        sa.Column("location", sa.String(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("active_key", sa.String(length=8), nullable=True, server_default="ACTIVE"),
        sa.Column("previous_reservation_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["previous_reservation_id"], ["interviewreservation.id"]),
        # NULL active_key never collides, so both only bind in-flight rows
        sa.UniqueConstraint("day", "start_time", "location", "active_key", name="uq_reservation_slot_active"),
        sa.UniqueConstraint("conversation_id", "active_key", name="uq_reservation_conversation_active"),
    )
    op.create_index("ix_interviewreservation_conversation_id", "interviewreservation", ["conversation_id"])
    op.create_index("ix_interviewreservation_contact_id", "interviewreservation", ["contact_id"])
    op.create_index("ix_interviewreservation_day", "interviewreservation", ["day"])
    op.create_index("ix_interviewreservation_start_at", "interviewreservation", ["start_at"])

    op.create_table(
        "slotblock",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("location", sa.String(), nullable=False),
        sa.Column("tag", sa.String(), nullable=True),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("active_key", sa.String(length=8), nullable=True, server_default="ACTIVE"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("archived_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("day", "start_time", "location", "active_key", name="uq_slotblock_slot_active"),
    )
    op.create_index("ix_slotblock_day", "slotblock", ["day"])
    op.create_index("ix_slotblock_tag", "slotblock", ["tag"])
    op.create_index("ix_slotblock_archived_at", "slotblock", ["archived_at"])

    op.create_table(
        "slotoccupancy",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("location", sa.String(), nullable=False),
        sa.Column("active_key", sa.String(length=8), nullable=True, server_default="ACTIVE"),
        sa.Column("reservation_id", sa.Integer(), nullable=True),
        sa.Column("slot_block_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["reservation_id"], ["interviewreservation.id"]),
        sa.ForeignKeyConstraint(["slot_block_id"], ["slotblock.id"]),
        sa.UniqueConstraint("day", "start_time", "location", "active_key", name="uq_occupancy_slot_active"),
    )
    op.create_index("ix_slotoccupancy_day", "slotoccupancy", ["day"])
    op.create_index("ix_slotoccupancy_reservation_id", "slotoccupancy", ["reservation_id"])
    op.create_index("ix_slotoccupancy_slot_block_id", "slotoccupancy", ["slot_block_id"])


def downgrade() -> None:
    op.drop_table("slotoccupancy")
    op.drop_table("slotblock")
    op.drop_table("interviewreservation")
    op.drop_table("workspace_availability")
