"""
Schema migrations for the SQLite store.

Migrations are applied in order and recorded in ``schema_migrations`` so
running them again is a no-op.
"""

import logging
from pathlib import Path
from typing import List, Tuple

import aiosqlite

logger = logging.getLogger(__name__)

MIGRATIONS: List[Tuple[int, str, str]] = [
    (1, "create_summaries", """
        CREATE TABLE IF NOT EXISTS summaries (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            organization_id TEXT,
            title TEXT NOT NULL,
            summary_text TEXT NOT NULL,
            skills TEXT NOT NULL DEFAULT '[]',
            red_flags TEXT NOT NULL DEFAULT '[]',
            action_items TEXT NOT NULL DEFAULT '[]',
            sentiment TEXT NOT NULL DEFAULT 'neutral'
                CHECK (sentiment IN ('positive', 'neutral', 'negative')),
            confidence_score REAL NOT NULL DEFAULT 0
                CHECK (confidence_score >= 0 AND confidence_score <= 1),
            source_channel_id TEXT NOT NULL,
            source_message_ts TEXT,
            model TEXT NOT NULL,
            created_at TEXT NOT NULL,
            source_type TEXT NOT NULL DEFAULT 'slack',
            draft_kind TEXT NOT NULL DEFAULT 'structured',
            raw_transcript TEXT,
            message_count INTEGER NOT NULL DEFAULT 0,
            rating INTEGER CHECK (rating IS NULL OR (rating >= 1 AND rating <= 5)),
            tags TEXT NOT NULL DEFAULT '[]'
        );
        CREATE INDEX IF NOT EXISTS idx_summaries_owner_created
            ON summaries(owner_id, created_at DESC);
        CREATE INDEX IF NOT EXISTS idx_summaries_org_created
            ON summaries(organization_id, created_at DESC);
    """),
    (2, "create_delivery_attempts", """
        CREATE TABLE IF NOT EXISTS delivery_attempts (
            id TEXT PRIMARY KEY,
            summary_id TEXT NOT NULL REFERENCES summaries(id) ON DELETE CASCADE,
            target TEXT NOT NULL,
            owner_id TEXT NOT NULL DEFAULT '',
            organization_id TEXT,
            status TEXT NOT NULL CHECK (status IN ('pending', 'posted', 'failed')),
            error_message TEXT,
            posted_at TEXT,
            platform_message_ts TEXT,
            platform_channel_id TEXT,
            retry_count INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        CREATE UNIQUE INDEX IF NOT EXISTS idx_delivery_one_live_per_summary
            ON delivery_attempts(summary_id) WHERE status IN ('pending', 'posted');
        CREATE INDEX IF NOT EXISTS idx_delivery_status_created
            ON delivery_attempts(status, created_at);
    """),
    (3, "create_rate_limits", """
        CREATE TABLE IF NOT EXISTS rate_limits (
            key TEXT PRIMARY KEY,
            count INTEGER NOT NULL,
            window_reset_at REAL NOT NULL,
            admitted INTEGER NOT NULL DEFAULT 1
        );
    """),
]


async def run_migrations(db_path: str) -> int:
    """Apply pending migrations to the database at ``db_path``.

    Returns:
        Number of migrations applied
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    applied = 0

    async with aiosqlite.connect(db_path) as conn:
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        cursor = await conn.execute("SELECT version FROM schema_migrations")
        done = {row[0] for row in await cursor.fetchall()}

        for version, name, sql in MIGRATIONS:
            if version in done:
                continue
            logger.info(f"Applying migration {version}: {name}")
            await conn.executescript(sql)
            await conn.execute(
                "INSERT INTO schema_migrations (version, name) VALUES (?, ?)",
                (version, name)
            )
            await conn.commit()
            applied += 1

    if applied:
        logger.info(f"Applied {applied} migration(s) to {db_path}")
    return applied
