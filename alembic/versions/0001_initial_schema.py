"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-16

Creates all tables of the guest-list backend: events, sectors, suppliers,
attendees, wristband_assignments, access_tokens, status_changes,
access_records.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# SAEnum stores member names
STATUS_NAMES = (
    "pending", "checked_in", "checked_out", "cancelled", "missed", "substitution",
    "substitution_request", "sector_change_request", "pending_approval", "blocked", "rejected",
)
ACTIONS = (
    "register", "check_in", "revert_check_in", "check_out", "update_wristbands", "update_details",
    "request_substitution", "approve_substitution", "reject_substitution",
    "request_sector_change", "approve_sector_change", "reject_sector_change",
    "request_removal", "approve_pending", "reject_pending",
    "block", "set_status", "mark_missed", "reassign_sectors", "delete",
)


def upgrade() -> None:
    # --- events ---
    op.create_table(
        "events",
        sa.Column("event_id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("modules", sa.JSON, nullable=False),
        sa.Column("allow_photo_change", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("allow_guest_uploads", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- sectors ---
    op.create_table(
        "sectors",
        sa.Column("sector_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False),
        sa.Column("label", sa.String(100), nullable=False),
        sa.Column("color", sa.String(20), nullable=False, server_default="#4f46e5"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_sectors_event_id", "sectors", ["event_id"])

    # --- suppliers ---
    op.create_table(
        "suppliers",
        sa.Column("supplier_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("sector_ids", sa.JSON, nullable=False),
        sa.Column("registration_limit", sa.Integer, nullable=False, server_default="0"),
        sa.Column("sub_companies", sa.JSON, nullable=False),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("admin_token", sa.String(64), nullable=True),
        sa.Column("registration_token", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_suppliers_event_id", "suppliers", ["event_id"])

    # --- attendees ---
    op.create_table(
        "attendees",
        sa.Column("attendee_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("cpf", sa.String(11), nullable=False),
        sa.Column("photo", sa.String(500), nullable=True),
        sa.Column("sector_ids", sa.JSON, nullable=False),
        sa.Column("sub_company", sa.String(150), nullable=True),
        sa.Column("supplier_id", sa.String(36), sa.ForeignKey("suppliers.supplier_id"), nullable=True),
        sa.Column("status", sa.Enum(*STATUS_NAMES, name="attendeestatus"), nullable=False),
        sa.Column("checkin_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checked_in_by", sa.String(100), nullable=True),
        sa.Column("checkout_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checked_out_by", sa.String(100), nullable=True),
        sa.Column("block_reason", sa.String(500), nullable=True),
        sa.Column("substitution_data", sa.JSON, nullable=True),
        sa.Column("sector_change_data", sa.JSON, nullable=True),
        sa.Column("removal_reason", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "cpf", name="uq_attendee_event_cpf"),
    )
    op.create_index("ix_attendees_event_id", "attendees", ["event_id"])
    op.create_index("ix_attendees_supplier_id", "attendees", ["supplier_id"])

    # --- wristband_assignments ---
    op.create_table(
        "wristband_assignments",
        sa.Column("assignment_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False),
        sa.Column("sector_id", sa.String(36), nullable=False),
        sa.Column("attendee_id", sa.String(36), sa.ForeignKey("attendees.attendee_id", ondelete="CASCADE"),
                  nullable=False),
        sa.Column("code", sa.String(100), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "sector_id", "code", name="uq_wristband_event_sector_code"),
        sa.UniqueConstraint("attendee_id", "sector_id", name="uq_wristband_attendee_sector"),
    )
    op.create_index("ix_wristband_assignments_event_id", "wristband_assignments", ["event_id"])

    # --- access_tokens ---
    op.create_table(
        "access_tokens",
        sa.Column("token", sa.String(64), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False),
        sa.Column("supplier_id", sa.String(36), sa.ForeignKey("suppliers.supplier_id", ondelete="CASCADE"),
                  nullable=False),
        sa.Column("purpose", sa.Enum("registration", "admin", name="tokenpurpose"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_access_tokens_event_id", "access_tokens", ["event_id"])
    op.create_index("ix_access_tokens_supplier_id", "access_tokens", ["supplier_id"])

    # --- status_changes (lifecycle ledger) ---
    op.create_table(
        "status_changes",
        sa.Column("change_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False),
        sa.Column("attendee_id", sa.String(36), nullable=False),
        sa.Column("action", sa.Enum(*ACTIONS, name="lifecycleaction"), nullable=False),
        sa.Column("actor", sa.String(100), nullable=False),
        sa.Column("from_status", sa.Enum(*STATUS_NAMES, name="attendeestatus", create_type=False), nullable=True),
        sa.Column("to_status", sa.Enum(*STATUS_NAMES, name="attendeestatus", create_type=False), nullable=True),
        sa.Column("details", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_status_changes_event_id", "status_changes", ["event_id"])
    op.create_index("ix_status_changes_attendee_id", "status_changes", ["attendee_id"])

    # --- access_records ---
    op.create_table(
        "access_records",
        sa.Column("record_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False),
        sa.Column("attendee_id", sa.String(36), nullable=False),
        sa.Column("sector_id", sa.String(36), nullable=False),
        sa.Column("wristband_code", sa.String(100), nullable=False),
        sa.Column("scanned_by", sa.String(100), nullable=False),
        sa.Column("scanned_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_access_records_event_id", "access_records", ["event_id"])
    op.create_index("ix_access_records_attendee_id", "access_records", ["attendee_id"])


def downgrade() -> None:
    op.drop_table("access_records")
    op.drop_table("status_changes")
    op.drop_table("access_tokens")
    op.drop_table("wristband_assignments")
    op.drop_table("attendees")
    op.drop_table("suppliers")
    op.drop_table("sectors")
    op.drop_table("events")
