"""Social core: users, follows, trusted contacts, groups, messages, reactions, notifications, badges.

Also creates the minimal counter-source tables (posts, comments, likes,
events, event_signups, incident_reports) read by badge evaluation.

Revision ID: 001_social_core
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_social_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            username VARCHAR(100) UNIQUE NOT NULL,
            display_name VARCHAR(100) NOT NULL,
            profile_image_url VARCHAR(500),
            verification_status VARCHAR(16) NOT NULL DEFAULT 'unverified',
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # --- Social graph ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS follows (
            id SERIAL PRIMARY KEY,
            follower_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            followed_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_follows_pair UNIQUE (follower_id, followed_id),
            CONSTRAINT ck_follows_no_self_follow CHECK (follower_id != followed_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_follows_follower_id ON follows(follower_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_follows_followed_id ON follows(followed_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS trusted_contacts (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            trusted_user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            source VARCHAR(16) NOT NULL DEFAULT 'request',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_trusted_contacts_pair UNIQUE (user_id, trusted_user_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_trusted_contacts_user_id ON trusted_contacts(user_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_trusted_contacts_trusted_user_id ON trusted_contacts(trusted_user_id)")

    # --- Groups ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_groups (
            id SERIAL PRIMARY KEY,
            name VARCHAR(100) NOT NULL,
            description TEXT,
            group_type VARCHAR(16) NOT NULL DEFAULT 'street',
            street_name VARCHAR(100),
            is_private BOOLEAN NOT NULL DEFAULT true,
            created_by INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            member_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_groups_group_type ON user_groups(group_type)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS group_memberships (
            id SERIAL PRIMARY KEY,
            group_id INTEGER NOT NULL REFERENCES user_groups(id) ON DELETE CASCADE,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            role VARCHAR(16) NOT NULL DEFAULT 'member',
            status VARCHAR(16) NOT NULL DEFAULT 'active',
            invited_by INTEGER REFERENCES users(id),
            invite_id VARCHAR(128),
            invite_created_at TIMESTAMPTZ,
            joined_at TIMESTAMPTZ,
            CONSTRAINT uq_group_memberships_pair UNIQUE (group_id, user_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_group_memberships_group_id ON group_memberships(group_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_group_memberships_user_id ON group_memberships(user_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_group_memberships_invite_id ON group_memberships(invite_id)")

    # --- Messages ---
    message_columns = """
            content TEXT NOT NULL,
            media_url VARCHAR(500),
            media_type VARCHAR(50),
            media_size INTEGER,
            thumbnail_url VARCHAR(500),
            duration INTEGER,
            caption TEXT,
            is_read BOOLEAN NOT NULL DEFAULT false,
            is_edited BOOLEAN NOT NULL DEFAULT false,
            edited_at TIMESTAMPTZ,
            reply_to_content TEXT,
            reply_to_author_id INTEGER,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    """
    op.execute(f"""
        CREATE TABLE IF NOT EXISTS direct_messages (
            id SERIAL PRIMARY KEY,
            sender_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            receiver_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            reply_to_message_id INTEGER REFERENCES direct_messages(id) ON DELETE SET NULL,
            {message_columns}
        )
    """)  # noqa: S608
    op.execute("CREATE INDEX IF NOT EXISTS ix_direct_messages_pair ON direct_messages(sender_id, receiver_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_direct_messages_sender_id ON direct_messages(sender_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_direct_messages_receiver_id ON direct_messages(receiver_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_direct_messages_created_at ON direct_messages(created_at)")

    op.execute(f"""
        CREATE TABLE IF NOT EXISTS chat_messages (
            id SERIAL PRIMARY KEY,
            group_id INTEGER NOT NULL REFERENCES user_groups(id) ON DELETE CASCADE,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            message_type VARCHAR(16) NOT NULL DEFAULT 'text',
            reply_to_message_id INTEGER REFERENCES chat_messages(id) ON DELETE SET NULL,
            {message_columns}
        )
    """)  # noqa: S608
    op.execute("CREATE INDEX IF NOT EXISTS ix_chat_messages_group_id ON chat_messages(group_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_chat_messages_created_at ON chat_messages(created_at)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS message_reactions (
            id SERIAL PRIMARY KEY,
            message_id INTEGER NOT NULL,
            message_type VARCHAR(8) NOT NULL,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            emoji VARCHAR(10) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_message_reactions_key UNIQUE (message_id, message_type, user_id, emoji)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_message_reactions_message ON message_reactions(message_id, message_type)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_message_reactions_user_id ON message_reactions(user_id)")

    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL,
            title VARCHAR(255) NOT NULL,
            content TEXT,
            related_id INTEGER,
            related_type VARCHAR(16),
            is_read BOOLEAN NOT NULL DEFAULT false,
            priority VARCHAR(8) NOT NULL DEFAULT 'normal',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_notifications_user_id ON notifications(user_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_notifications_is_read ON notifications(is_read)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_notifications_created_at ON notifications(created_at)")

    # --- Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badges (
            id SERIAL PRIMARY KEY,
            name VARCHAR(100) UNIQUE NOT NULL,
            description TEXT,
            icon VARCHAR(10),
            category VARCHAR(16) NOT NULL DEFAULT 'participation',
            points_value INTEGER NOT NULL DEFAULT 0,
            criteria_type VARCHAR(50),
            criteria_value INTEGER,
            tier VARCHAR(16) NOT NULL DEFAULT 'bronze',
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_id INTEGER NOT NULL REFERENCES badges(id) ON DELETE CASCADE,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            is_displayed BOOLEAN NOT NULL DEFAULT true,
            CONSTRAINT uq_user_badges_pair UNIQUE (user_id, badge_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_badges_user_id ON user_badges(user_id)")

    # --- Counter sources (owned by posts/events modules) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS posts (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            content TEXT NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'active',
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_posts_user_id ON posts(user_id)")
    op.execute("""
        CREATE TABLE IF NOT EXISTS comments (
            id SERIAL PRIMARY KEY,
            post_id INTEGER NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            content TEXT NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_comments_user_id ON comments(user_id)")
    op.execute("""
        CREATE TABLE IF NOT EXISTS likes (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            post_id INTEGER NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_likes_user_post UNIQUE (user_id, post_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_likes_post_id ON likes(post_id)")
    op.execute("""
        CREATE TABLE IF NOT EXISTS events (
            id SERIAL PRIMARY KEY,
            organizer_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title VARCHAR(200) NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_events_organizer_id ON events(organizer_id)")
    op.execute("""
        CREATE TABLE IF NOT EXISTS event_signups (
            id SERIAL PRIMARY KEY,
            event_id INTEGER NOT NULL REFERENCES events(id) ON DELETE CASCADE,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_event_signups_pair UNIQUE (event_id, user_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_event_signups_user_id ON event_signups(user_id)")
    op.execute("""
        CREATE TABLE IF NOT EXISTS incident_reports (
            id SERIAL PRIMARY KEY,
            post_id INTEGER NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
            verification_status VARCHAR(16) NOT NULL DEFAULT 'pending',
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_incident_reports_post_id ON incident_reports(post_id)")


def downgrade() -> None:
    for table in [
        "incident_reports",
        "event_signups",
        "events",
        "likes",
        "comments",
        "posts",
        "user_badges",
        "badges",
        "notifications",
        "message_reactions",
        "chat_messages",
        "direct_messages",
        "group_memberships",
        "user_groups",
        "trusted_contacts",
        "follows",
        "users",
    ]:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")  # noqa: S608
