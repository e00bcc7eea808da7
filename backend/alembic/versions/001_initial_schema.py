"""Create user_preferences and delivery_logs tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

frequency = sa.Enum("daily", "weekly", "monthly", "never", name="preference_frequency")
notification_type = sa.Enum("marketing", "newsletter", "updates", name="notification_type")
delivery_channel = sa.Enum("email", "sms", "push", name="delivery_channel")
delivery_status = sa.Enum("pending", "sent", "failed", name="delivery_status")


def upgrade() -> None:
    op.create_table(
        "user_preferences",
        sa.Column("user_id", sa.String(255), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("marketing", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("newsletter", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("updates", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("frequency", frequency, nullable=False, server_default="weekly"),
        sa.Column("channel_email", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("channel_sms", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("channel_push", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "delivery_logs",
        sa.Column("seq", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("id", UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("notification_type", notification_type, nullable=False),
        sa.Column("channel", delivery_channel, nullable=False),
        sa.Column("status", delivery_status, nullable=False, server_default="pending"),
        sa.Column("metadata", sa.JSON, nullable=False),
        sa.Column("failure_reason", sa.Text, nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_delivery_logs_user_id", "delivery_logs", ["user_id"])
    op.create_index("idx_delivery_logs_user_seq", "delivery_logs", ["user_id", "seq"])


def downgrade() -> None:
    op.drop_index("idx_delivery_logs_user_seq", table_name="delivery_logs")
    op.drop_index("ix_delivery_logs_user_id", table_name="delivery_logs")
    op.drop_table("delivery_logs")
    op.drop_table("user_preferences")

    bind = op.get_bind()
    for enum_type in (delivery_status, delivery_channel, notification_type, frequency):
        enum_type.drop(bind, checkfirst=True)
