"""create devices and messages tables

Revision ID: 20261018_create_devices_and_messages
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_create_devices_and_messages"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "devices",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("pairing_code", sa.String(length=16), nullable=True),
        sa.Column("pairing_code_created_at", sa.DateTime(), nullable=True),
        sa.Column("peer_id", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("last_heartbeat", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("pairing_code"),
    )
    op.create_index("ix_devices_id", "devices", ["id"])
    op.create_index("ix_device_peer", "devices", ["peer_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("device_id", sa.String(length=64), nullable=False),
        sa.Column("sender_from", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["device_id"], ["devices.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_messages_device_id", "messages", ["device_id"])
    op.create_index("ix_message_device_time", "messages", ["device_id", "timestamp"])


def downgrade() -> None:
    op.drop_index("ix_message_device_time", table_name="messages")
    op.drop_index("ix_messages_device_id", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_device_peer", table_name="devices")
    op.drop_index("ix_devices_id", table_name="devices")
    op.drop_table("devices")
