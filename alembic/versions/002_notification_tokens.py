"""Device push tokens registered per user (ios, android, web).

Revision ID: 002_notification_tokens
Revises: 001_social_core
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_notification_tokens"
down_revision: str | None = "001_social_core"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_tokens (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token VARCHAR(255) NOT NULL UNIQUE,
            platform VARCHAR(8) NOT NULL,
            device_id VARCHAR(255),
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ,
            last_used_at TIMESTAMPTZ
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_notification_tokens_user_id ON notification_tokens(user_id)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notification_tokens CASCADE")
