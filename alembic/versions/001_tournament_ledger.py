"""Tournament gift ledger and verification badge rewards.

Creates users (verification columns), gifts, tournaments,
tournament_participants, tournament_gifts and verification_badge_rewards.
Money columns are BIGINT minor units.

Revision ID: 001_tournament_ledger
Revises: None
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_tournament_ledger"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            username VARCHAR(64) UNIQUE NOT NULL,
            display_name VARCHAR(64),
            is_admin BOOLEAN NOT NULL DEFAULT false,
            is_banned BOOLEAN NOT NULL DEFAULT false,
            is_verified BOOLEAN NOT NULL DEFAULT false,
            verified_at TIMESTAMPTZ,
            verification_expires_at TIMESTAMPTZ,
            verified_by BIGINT REFERENCES users(id) ON DELETE SET NULL,
            verification_method VARCHAR(32),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Gift catalog ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS gifts (
            id BIGSERIAL PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            price BIGINT NOT NULL CHECK (price >= 0),
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Tournaments ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS tournaments (
            id BIGSERIAL PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            description TEXT,
            type VARCHAR(32) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'upcoming',
            start_date TIMESTAMPTZ NOT NULL,
            end_date TIMESTAMPTZ NOT NULL,
            registration_deadline TIMESTAMPTZ NOT NULL,
            max_participants INTEGER NOT NULL DEFAULT 100,
            entry_fee BIGINT NOT NULL DEFAULT 0,
            minimum_gift_value BIGINT NOT NULL,
            reward_tiers JSONB NOT NULL,
            reward_metric VARCHAR(32) NOT NULL DEFAULT 'ranking',
            is_public BOOLEAN NOT NULL DEFAULT true,
            created_by BIGINT REFERENCES users(id) ON DELETE SET NULL,
            total_participants INTEGER NOT NULL DEFAULT 0,
            total_gifts_value BIGINT NOT NULL DEFAULT 0,
            total_gifts_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_tournaments_status
        ON tournaments(status)
    """)

    # --- Participants ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS tournament_participants (
            id BIGSERIAL PRIMARY KEY,
            tournament_id BIGINT NOT NULL REFERENCES tournaments(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            room_id BIGINT,
            status VARCHAR(16) NOT NULL DEFAULT 'registered',
            gifts_sent INTEGER NOT NULL DEFAULT 0,
            gifts_received INTEGER NOT NULL DEFAULT 0,
            total_gift_value_sent BIGINT NOT NULL DEFAULT 0,
            total_gift_value_received BIGINT NOT NULL DEFAULT 0,
            current_rank INTEGER,
            best_rank INTEGER,
            has_earned_verification_badge BOOLEAN NOT NULL DEFAULT false,
            verification_badge_duration INTEGER,
            verification_badge_earned_at TIMESTAMPTZ,
            registered_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            completed_at TIMESTAMPTZ,
            CONSTRAINT uq_tournament_participants_tournament_user UNIQUE (tournament_id, user_id)
        )
    """)

    # --- Ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS tournament_gifts (
            id BIGSERIAL PRIMARY KEY,
            tournament_id BIGINT NOT NULL REFERENCES tournaments(id) ON DELETE CASCADE,
            sender_id BIGINT NOT NULL REFERENCES users(id),
            recipient_id BIGINT NOT NULL REFERENCES users(id),
            gift_id BIGINT NOT NULL REFERENCES gifts(id),
            quantity INTEGER NOT NULL CHECK (quantity BETWEEN 1 AND 100),
            unit_price BIGINT NOT NULL,
            total_value BIGINT NOT NULL,
            message TEXT,
            leaderboard_points_awarded BIGINT NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_tournament_gifts_tournament_sender
        ON tournament_gifts(tournament_id, sender_id)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_tournament_gifts_tournament_recipient
        ON tournament_gifts(tournament_id, recipient_id)
    """)

    # --- Verification badge rewards ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS verification_badge_rewards (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            reward_type VARCHAR(32) NOT NULL DEFAULT 'tournament_gifts',
            trigger_amount BIGINT NOT NULL,
            badge_duration INTEGER NOT NULL,
            tournament_id BIGINT REFERENCES tournaments(id) ON DELETE SET NULL,
            was_applied BOOLEAN NOT NULL DEFAULT false,
            applied_at TIMESTAMPTZ,
            old_verification_expires_at TIMESTAMPTZ,
            new_verification_expires_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_verification_badge_rewards_user_tournament_duration
                UNIQUE (user_id, tournament_id, badge_duration)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_verification_badge_rewards_user_tournament
        ON verification_badge_rewards(user_id, tournament_id)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS verification_badge_rewards CASCADE")
    op.execute("DROP TABLE IF EXISTS tournament_gifts CASCADE")
    op.execute("DROP TABLE IF EXISTS tournament_participants CASCADE")
    op.execute("DROP TABLE IF EXISTS tournaments CASCADE")
    op.execute("DROP TABLE IF EXISTS gifts CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
