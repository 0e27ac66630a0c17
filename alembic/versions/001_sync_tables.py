"""Sync-owned tables: sync_tasks, oauth_credentials, inventory_sync_logs.

Revision ID: 001_sync_tables
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSON, UUID

# revision identifiers, used by Alembic.
revision: str = "001_sync_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "sync_tasks",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(100), nullable=False),
        sa.Column("operation", sa.String(20), nullable=False),
        sa.Column("target_service", sa.String(20), nullable=False),
        sa.Column("target_entity_type", sa.String(50), nullable=False, server_default=""),
        sa.Column("external_id", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("request_payload", JSON(), nullable=True),
        sa.Column("response_payload", JSON(), nullable=True),
        sa.Column("claimed_by", sa.String(100), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("attempt_count <= max_attempts", name="ck_sync_tasks_attempts"),
        sa.CheckConstraint(
            "status IN ('pending', 'retrying', 'success', 'failed')",
            name="ck_sync_tasks_status",
        ),
    )
    op.create_index("ix_sync_tasks_status_next_retry", "sync_tasks", ["status", "next_retry_at"])
    op.create_index("ix_sync_tasks_entity", "sync_tasks", ["entity_type", "entity_id"])
    op.create_index("ix_sync_tasks_created_at", "sync_tasks", ["created_at"])

    op.create_table(
        "oauth_credentials",
        sa.Column("service", sa.String(50), primary_key=True),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("token_type", sa.String(50), server_default="Bearer"),
        sa.Column("scope", sa.Text(), server_default=""),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    )

    op.create_table(
        "inventory_sync_logs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("variant_id", sa.String(100), nullable=False),
        sa.Column("operation", sa.String(20), nullable=False),
        sa.Column("local_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("remote_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("difference", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_inventory_sync_logs_variant_id", "inventory_sync_logs", ["variant_id"])
    op.create_index("ix_inventory_sync_logs_created_at", "inventory_sync_logs", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_inventory_sync_logs_created_at", table_name="inventory_sync_logs")
    op.drop_index("ix_inventory_sync_logs_variant_id", table_name="inventory_sync_logs")
    op.drop_table("inventory_sync_logs")
    op.drop_table("oauth_credentials")
    op.drop_index("ix_sync_tasks_created_at", table_name="sync_tasks")
    op.drop_index("ix_sync_tasks_entity", table_name="sync_tasks")
    op.drop_index("ix_sync_tasks_status_next_retry", table_name="sync_tasks")
    op.drop_table("sync_tasks")
