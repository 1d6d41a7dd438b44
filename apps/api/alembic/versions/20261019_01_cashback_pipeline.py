"""Cashback notification queue, lots and ledger.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


notification_status = sa.Enum(
    "pending",
    "processing",
    "sent",
    "skipped",
    "failed",
    name="cashback_notification_status",
)
lot_state = sa.Enum("active", "expired", "redeemed", name="cashback_lot_state")
ledger_entry_type = sa.Enum("earn", "redeem", "expire", name="cashback_ledger_entry_type")


def upgrade() -> None:
    op.create_table(
        "cashback_notification_queue",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("customer_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("recipient_phone", sa.String(length=32), nullable=True),
        sa.Column("message_body", sa.Text(), nullable=True),
        sa.Column("status", notification_status, nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("claim_token", sa.String(length=36), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "ix_cashback_notification_queue_status_created_at",
        "cashback_notification_queue",
        ["status", "created_at"],
    )
    op.create_index(
        "ix_cashback_notification_queue_customer_id",
        "cashback_notification_queue",
        ["customer_id"],
    )

    op.create_table(
        "cashback_lots",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("customer_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("state", lot_state, nullable=False, server_default="active"),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_cashback_lots_state_expires_at", "cashback_lots", ["state", "expires_at"])
    op.create_index("ix_cashback_lots_customer_id", "cashback_lots", ["customer_id"])

    op.create_table(
        "cashback_ledger_entries",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "lot_id",
            sa.dialects.postgresql.UUID(as_uuid=True),
            sa.ForeignKey("cashback_lots.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("customer_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("entry_type", ledger_entry_type, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_cashback_ledger_entries_lot_id", "cashback_ledger_entries", ["lot_id"])
    op.create_index("ix_cashback_ledger_entries_customer_id", "cashback_ledger_entries", ["customer_id"])


def downgrade() -> None:
    op.drop_index("ix_cashback_ledger_entries_customer_id", table_name="cashback_ledger_entries")
    op.drop_index("ix_cashback_ledger_entries_lot_id", table_name="cashback_ledger_entries")
    op.drop_table("cashback_ledger_entries")
    op.drop_index("ix_cashback_lots_customer_id", table_name="cashback_lots")
    op.drop_index("ix_cashback_lots_state_expires_at", table_name="cashback_lots")
    op.drop_table("cashback_lots")
    op.drop_index("ix_cashback_notification_queue_customer_id", table_name="cashback_notification_queue")
    op.drop_index("ix_cashback_notification_queue_status_created_at", table_name="cashback_notification_queue")
    op.drop_table("cashback_notification_queue")

    bind = op.get_bind()
    ledger_entry_type.drop(bind, checkfirst=True)
    lot_state.drop(bind, checkfirst=True)
    notification_status.drop(bind, checkfirst=True)
