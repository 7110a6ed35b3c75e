"""Notification routing & escalation engine tables.

Revision ID: 001
Revises:
"""

from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False, index=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False),
        sa.Column("priority_score", sa.Integer, default=0),
        sa.Column("metadata", sa.Text, nullable=True),
        sa.Column("actions", sa.Text, nullable=True),
        sa.Column("deep_link", sa.String(500), nullable=True),
        sa.Column("deadline", sa.DateTime, nullable=True),
        sa.Column("read_at", sa.DateTime, nullable=True),
        sa.Column("acted_at", sa.DateTime, nullable=True),
        sa.Column("is_digest", sa.Boolean, default=False),
        sa.Column("digest_items", sa.Text, nullable=True),
        sa.Column("scheduled_for", sa.DateTime, nullable=True),
        sa.Column("delegated_from", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "read_at"])

    op.create_table(
        "notification_preferences",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("digest_frequency", sa.String(20), nullable=False),
        sa.Column("quiet_hours_start", sa.String(5), nullable=False),
        sa.Column("quiet_hours_end", sa.String(5), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False),
        sa.Column("weekend_mode", sa.Boolean, default=False),
        sa.Column("vacation_mode", sa.Boolean, default=False),
        sa.Column("vacation_delegate", sa.String(64), nullable=True),
        sa.Column("channels", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )

    op.create_table(
        "notification_rules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("trigger_event", sa.String(40), nullable=False),
        sa.Column("delay_hours", sa.Integer, nullable=False),
        sa.Column("escalation_chain", sa.Text, nullable=False),
        sa.Column("active", sa.Boolean, nullable=False, index=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )

    op.create_table(
        "escalation_history",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("notification_id", sa.String(36), nullable=False),
        sa.Column("rule_id", sa.String(36), nullable=False),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("from_user_id", sa.String(64), nullable=True),
        sa.Column("to_user_id", sa.String(64), nullable=False),
        sa.Column("escalation_level", sa.Integer, nullable=False),
        sa.Column("reason", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.UniqueConstraint(
            "rule_id",
            "entity_type",
            "entity_id",
            "escalation_level",
            "to_user_id",
            name="uq_escalation_history_step",
        ),
    )
    op.create_index(
        "ix_escalation_history_scope",
        "escalation_history",
        ["rule_id", "entity_type", "entity_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_escalation_history_scope", table_name="escalation_history")
    op.drop_table("escalation_history")
    op.drop_table("notification_rules")
    op.drop_table("notification_preferences")
    op.drop_index("ix_notifications_user_read", table_name="notifications")
    op.drop_table("notifications")
