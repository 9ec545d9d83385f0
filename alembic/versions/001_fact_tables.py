"""Fact tables read by the badge engine.

Creates users, authenticators, rounds, prophecies and ratings.

Revision ID: 001_fact_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_fact_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            username VARCHAR(64) UNIQUE NOT NULL,
            display_name VARCHAR(128),
            avatar_url VARCHAR(512),
            is_bot BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Passkeys ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS authenticators (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            credential_id VARCHAR(512) UNIQUE NOT NULL,
            name VARCHAR(128),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_authenticators_user ON authenticators(user_id)")

    # --- Rounds ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS rounds (
            id SERIAL PRIMARY KEY,
            title VARCHAR(256) NOT NULL,
            submission_deadline TIMESTAMPTZ NOT NULL,
            rating_deadline TIMESTAMPTZ NOT NULL,
            fulfillment_date TIMESTAMPTZ NOT NULL,
            results_published_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_rounds_published
        ON rounds(results_published_at DESC)
        WHERE results_published_at IS NOT NULL
    """)

    # --- Prophecies ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS prophecies (
            id SERIAL PRIMARY KEY,
            round_id INTEGER NOT NULL REFERENCES rounds(id) ON DELETE CASCADE,
            creator_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title VARCHAR(256) NOT NULL,
            description TEXT,
            fulfilled BOOLEAN,
            resolved_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_prophecies_round ON prophecies(round_id, created_at)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_prophecies_creator ON prophecies(creator_id)")

    # --- Ratings ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS ratings (
            id SERIAL PRIMARY KEY,
            prophecy_id INTEGER NOT NULL REFERENCES prophecies(id) ON DELETE CASCADE,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            value SMALLINT NOT NULL CHECK (value BETWEEN -10 AND 10),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ratings_prophecy_id_user_id_key UNIQUE (prophecy_id, user_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_ratings_user ON ratings(user_id)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ratings CASCADE")
    op.execute("DROP TABLE IF EXISTS prophecies CASCADE")
    op.execute("DROP TABLE IF EXISTS rounds CASCADE")
    op.execute("DROP TABLE IF EXISTS authenticators CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
