"""
aiosqlite-backed summary store, delivery records and connection pool.

This module provides SQLite support with connection pooling and async
database operations. Status transitions are single-statement
compare-and-set updates; no operation needs a multi-row transaction.
"""

import json
import logging
import aiosqlite
from typing import List, Optional, Dict, Any, Tuple
from datetime import datetime
from pathlib import Path
import asyncio
from contextlib import asynccontextmanager

from .base import SummaryRepository, DeliveryRepository, DatabaseConnection
from ..models.base import ensure_utc, generate_id, utc_now
from ..models.delivery import DeliveryAttempt, DeliveryStatus
from ..models.summary import (
    Sentiment, SourceType, Summary, SummaryDraft, SummaryFilter, SummaryPatch
)
from ..exceptions import PersistenceError, SummaryNotFoundError, create_error_context

logger = logging.getLogger(__name__)


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as a sortable UTC ISO string."""
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))


class SQLiteConnection(DatabaseConnection):
    """A fixed pool of aiosqlite connections to one database file (WAL mode)."""

    def __init__(self, db_path: str, pool_size: int = 5):
        self.db_path = db_path
        self.pool_size = pool_size
        self._connections: List[aiosqlite.Connection] = []
        self._available: asyncio.Queue = asyncio.Queue(maxsize=pool_size)
        self._lock = asyncio.Lock()
        self._initialized = False

    async def connect(self) -> None:
        """Open ``pool_size`` connections; a second call is a no-op."""
        async with self._lock:
            if self._initialized:
                return

            # Ensure database directory exists
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            for _ in range(self.pool_size):
                conn = await aiosqlite.connect(self.db_path)
                conn.row_factory = aiosqlite.Row
                # Enable WAL mode for better concurrency
                await conn.execute("PRAGMA journal_mode=WAL")
                await conn.execute("PRAGMA foreign_keys=ON")
                await conn.execute("PRAGMA busy_timeout=5000")
                self._connections.append(conn)
                await self._available.put(conn)

            self._initialized = True
            logger.debug(f"Opened {self.pool_size} SQLite connections to {self.db_path}")

    async def disconnect(self) -> None:
        """Close every pooled connection."""
        async with self._lock:
            if not self._initialized:
                return

            for conn in self._connections:
                await conn.close()

            self._connections.clear()
            self._available = asyncio.Queue(maxsize=self.pool_size)
            self._initialized = False

    @asynccontextmanager
    async def _get_connection(self):
        """Borrow a connection, waiting while all are in use."""
        if not self._initialized:
            await self.connect()

        conn = await self._available.get()
        try:
            yield conn
        finally:
            await self._available.put(conn)

    async def execute(self, query: str, params: Optional[tuple] = None) -> Any:
        """Run one statement and commit; roll back on failure."""
        async with self._get_connection() as conn:
            try:
                cursor = await conn.execute(query, params or ())
                await conn.commit()
            except aiosqlite.Error:
                await conn.rollback()
                raise
            return cursor

    async def execute_returning(self, query: str,
                                params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """Execute a write with RETURNING; rows are read before the commit."""
        async with self._get_connection() as conn:
            try:
                cursor = await conn.execute(query, params or ())
                rows = await cursor.fetchall()
                await conn.commit()
            except aiosqlite.Error:
                await conn.rollback()
                raise
            return [dict(row) for row in rows]

    async def fetch_one(self, query: str, params: Optional[tuple] = None) -> Optional[Dict[str, Any]]:
        """First row as a dict, or None."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(query, params or ())
            row = await cursor.fetchone()
            if row:
                return dict(row)
            return None

    async def fetch_all(self, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """All rows as dicts."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(query, params or ())
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]


class SQLiteSummaryRepository(SummaryRepository):
    """Summary store over one ``summaries`` table; tags and lists are JSON columns."""

    def __init__(self, connection: DatabaseConnection):
        self.connection = connection

    async def create(
        self,
        draft: SummaryDraft,
        *,
        owner_id: str,
        source_channel_id: str,
        organization_id: Optional[str] = None,
        source_message_ts: Optional[str] = None,
        source_type: SourceType = SourceType.SLACK,
        raw_transcript: Optional[str] = None,
        message_count: int = 0,
    ) -> Summary:
        """Persist a new summary from a draft."""
        summary = Summary(
            id=generate_id(),
            owner_id=owner_id,
            organization_id=organization_id,
            title=draft.title,
            summary_text=draft.summary_text,
            skills=list(draft.skills),
            red_flags=list(draft.red_flags),
            action_items=list(draft.action_items),
            sentiment=draft.sentiment,
            confidence_score=draft.confidence_score,
            source_channel_id=source_channel_id,
            source_message_ts=source_message_ts,
            model=draft.model,
            created_at=utc_now(),
            source_type=source_type,
            draft_kind=draft.kind,
            raw_transcript=raw_transcript,
            message_count=message_count,
        )

        query = """
        INSERT INTO summaries (
            id, owner_id, organization_id, title, summary_text, skills, red_flags,
            action_items, sentiment, confidence_score, source_channel_id,
            source_message_ts, model, created_at, source_type, draft_kind,
            raw_transcript, message_count, rating, tags
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """

        params = (
            summary.id,
            summary.owner_id,
            summary.organization_id,
            summary.title,
            summary.summary_text,
            json.dumps(summary.skills),
            json.dumps(summary.red_flags),
            json.dumps(summary.action_items),
            summary.sentiment.value,
            summary.confidence_score,
            summary.source_channel_id,
            summary.source_message_ts,
            summary.model,
            to_db_time(summary.created_at),
            summary.source_type.value,
            summary.draft_kind,
            summary.raw_transcript,
            summary.message_count,
            None,
            json.dumps([]),
        )

        try:
            await self.connection.execute(query, params)
        except aiosqlite.Error as e:
            logger.error(f"Failed to store summary for channel {source_channel_id}: {e}")
            raise PersistenceError(
                f"Failed to store summary: {e}",
                operation="create_summary",
                context=create_error_context(operation="create_summary",
                                             channel_id=source_channel_id),
                cause=e
            )

        logger.info(f"Stored summary {summary.id} for channel {source_channel_id} ({draft.kind})")
        return summary

    async def get(self, summary_id: str) -> Summary:
        """Raises SummaryNotFoundError when no row matches."""
        try:
            row = await self.connection.fetch_one("SELECT * FROM summaries WHERE id = ?", (summary_id,))
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to read summary {summary_id}: {e}",
                                   operation="get_summary", cause=e)

        if not row:
            raise SummaryNotFoundError(summary_id)

        return self._row_to_summary(row)

    async def list(self, summary_filter: SummaryFilter) -> Tuple[List[Summary], int]:
        """Find summaries matching the filter, newest first by default."""
        where_clause, params = self._build_where(summary_filter)

        # order_by and order_direction are whitelisted by SummaryFilter
        query = f"""
        SELECT * FROM summaries
        {where_clause}
        ORDER BY {summary_filter.order_by} {summary_filter.order_direction}, id {summary_filter.order_direction}
        LIMIT ? OFFSET ?
        """
        count_query = f"SELECT COUNT(*) as count FROM summaries {where_clause}"

        try:
            rows = await self.connection.fetch_all(
                query, tuple(params + [summary_filter.effective_limit, summary_filter.offset])
            )
            count_row = await self.connection.fetch_one(count_query, tuple(params))
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to list summaries: {e}",
                                   operation="list_summaries", cause=e)

        total = count_row['count'] if count_row else 0
        return [self._row_to_summary(row) for row in rows], total

    async def update(self, summary_id: str, patch: SummaryPatch) -> Summary:
        """Apply rating/tags; AI-derived fields are not writable here."""
        assignments = []
        params: List[Any] = []

        if patch.rating is not None:
            assignments.append("rating = ?")
            params.append(patch.rating)

        if patch.tags is not None:
            assignments.append("tags = ?")
            params.append(json.dumps(patch.tags))

        if not assignments:
            return await self.get(summary_id)

        query = f"UPDATE summaries SET {', '.join(assignments)} WHERE id = ?"
        params.append(summary_id)

        try:
            cursor = await self.connection.execute(query, tuple(params))
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to update summary {summary_id}: {e}",
                                   operation="update_summary", cause=e)

        if cursor.rowcount == 0:
            raise SummaryNotFoundError(summary_id)

        return await self.get(summary_id)

    @staticmethod
    def _build_where(summary_filter: SummaryFilter) -> Tuple[str, List[Any]]:
        conditions = []
        params: List[Any] = []

        if summary_filter.owner_id:
            conditions.append("owner_id = ?")
            params.append(summary_filter.owner_id)

        if summary_filter.organization_id:
            conditions.append("organization_id = ?")
            params.append(summary_filter.organization_id)

        if summary_filter.source_type:
            conditions.append("source_type = ?")
            params.append(summary_filter.source_type.value)

        if summary_filter.search:
            pattern = f"%{_escape_like(summary_filter.search.strip())}%"
            conditions.append("(summary_text LIKE ? ESCAPE '\\' OR title LIKE ? ESCAPE '\\')")
            params.extend([pattern, pattern])

        # Tag intersection: every requested tag must be present
        for tag in summary_filter.tags:
            conditions.append("EXISTS (SELECT 1 FROM json_each(summaries.tags) WHERE json_each.value = ?)")
            params.append(tag)

        if summary_filter.created_after:
            conditions.append("created_at >= ?")
            params.append(to_db_time(summary_filter.created_after))

        if summary_filter.created_before:
            conditions.append("created_at <= ?")
            params.append(to_db_time(summary_filter.created_before))

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        return where_clause, params

    def _row_to_summary(self, row: Dict[str, Any]) -> Summary:
        """Convert database row to Summary object."""
        return Summary(
            id=row['id'],
            owner_id=row['owner_id'],
            organization_id=row['organization_id'],
            title=row['title'],
            summary_text=row['summary_text'],
            skills=json.loads(row['skills'] or '[]'),
            red_flags=json.loads(row['red_flags'] or '[]'),
            action_items=json.loads(row['action_items'] or '[]'),
            sentiment=Sentiment.coerce(row['sentiment']),
            confidence_score=row['confidence_score'],
            source_channel_id=row['source_channel_id'],
            source_message_ts=row['source_message_ts'],
            model=row['model'],
            created_at=from_db_time(row['created_at']),
            source_type=SourceType(row['source_type']),
            draft_kind=row['draft_kind'],
            raw_transcript=row['raw_transcript'],
            message_count=row['message_count'],
            rating=row['rating'],
            tags=json.loads(row['tags'] or '[]'),
        )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# Statuses that make an attempt authoritative (posted) or in flight (pending)
_LIVE_STATUSES = "('pending', 'posted')"


class SQLiteDeliveryRepository(DeliveryRepository):
    """SQLite implementation of delivery attempt records."""

    def __init__(self, connection: DatabaseConnection):
        self.connection = connection

    async def _execute(self, query: str, params: tuple) -> Any:
        """Run a write. Integrity errors propagate so callers can treat them as a lost race."""
        try:
            return await self.connection.execute(query, params)
        except aiosqlite.IntegrityError:
            raise
        except aiosqlite.Error as e:
            raise PersistenceError(f"Delivery store write failed: {e}",
                                   operation="write_delivery", cause=e)

    async def _fetch_one(self, query: str, params: tuple) -> Optional[Dict[str, Any]]:
        try:
            return await self.connection.fetch_one(query, params)
        except aiosqlite.Error as e:
            raise PersistenceError(f"Delivery store read failed: {e}",
                                   operation="read_delivery", cause=e)

    async def _fetch_all(self, query: str, params: tuple) -> List[Dict[str, Any]]:
        try:
            return await self.connection.fetch_all(query, params)
        except aiosqlite.Error as e:
            raise PersistenceError(f"Delivery store read failed: {e}",
                                   operation="read_delivery", cause=e)

    async def create_pending(self, attempt: DeliveryAttempt) -> Optional[DeliveryAttempt]:
        """Insert a pending attempt unless the summary already has a live one."""
        query = f"""
        INSERT INTO delivery_attempts (
            id, summary_id, target, owner_id, organization_id, status,
            error_message, posted_at, platform_message_ts, platform_channel_id,
            retry_count, created_at, updated_at
        )
        SELECT ?, ?, ?, ?, ?, 'pending', NULL, NULL, NULL, NULL, 0, ?, ?
        WHERE NOT EXISTS (
            SELECT 1 FROM delivery_attempts
            WHERE summary_id = ? AND status IN {_LIVE_STATUSES}
        )
        """
        now = to_db_time(attempt.created_at)
        params = (
            attempt.id, attempt.summary_id, attempt.target, attempt.owner_id,
            attempt.organization_id, now, now, attempt.summary_id,
        )

        try:
            cursor = await self._execute(query, params)
        except aiosqlite.IntegrityError:
            # Lost the race against a concurrent insert for the same summary
            return None

        if cursor.rowcount == 0:
            return None
        return attempt

    async def get(self, attempt_id: str) -> Optional[DeliveryAttempt]:
        row = await self._fetch_one(
            "SELECT * FROM delivery_attempts WHERE id = ?", (attempt_id,)
        )
        return self._row_to_attempt(row) if row else None

    async def find_live(self, summary_id: str) -> Optional[DeliveryAttempt]:
        row = await self._fetch_one(
            f"""
            SELECT * FROM delivery_attempts
            WHERE summary_id = ? AND status IN {_LIVE_STATUSES}
            ORDER BY CASE status WHEN 'posted' THEN 0 ELSE 1 END, created_at DESC
            LIMIT 1
            """,
            (summary_id,)
        )
        return self._row_to_attempt(row) if row else None

    async def list_for_summary(self, summary_id: str) -> List[DeliveryAttempt]:
        rows = await self._fetch_all(
            "SELECT * FROM delivery_attempts WHERE summary_id = ? ORDER BY created_at ASC",
            (summary_id,)
        )
        return [self._row_to_attempt(row) for row in rows]

    async def mark_posted(self, attempt_id: str, posted_at: datetime,
                          message_ts: Optional[str], channel_id: Optional[str]) -> bool:
        cursor = await self._execute(
            """
            UPDATE delivery_attempts
            SET status = 'posted', posted_at = ?, platform_message_ts = ?,
                platform_channel_id = ?, error_message = NULL, updated_at = ?
            WHERE id = ? AND status = 'pending'
            """,
            (to_db_time(posted_at), message_ts, channel_id, to_db_time(utc_now()), attempt_id)
        )
        return cursor.rowcount == 1

    async def mark_failed(self, attempt_id: str, error_message: str) -> bool:
        cursor = await self._execute(
            """
            UPDATE delivery_attempts
            SET status = 'failed', error_message = ?, updated_at = ?
            WHERE id = ? AND status = 'pending'
            """,
            (error_message, to_db_time(utc_now()), attempt_id)
        )
        return cursor.rowcount == 1

    async def find_retryable(self, max_retries: int, created_after: datetime,
                             stale_before: datetime, limit: int) -> List[DeliveryAttempt]:
        rows = await self._fetch_all(
            f"""
            SELECT * FROM delivery_attempts AS d
            WHERE d.retry_count < ?
              AND d.created_at >= ?
              AND (
                (d.status = 'failed' AND NOT EXISTS (
                    SELECT 1 FROM delivery_attempts AS other
                    WHERE other.summary_id = d.summary_id
                      AND other.id != d.id
                      AND other.status IN {_LIVE_STATUSES}
                ))
                OR (d.status = 'pending' AND d.updated_at < ?)
              )
            ORDER BY d.created_at ASC
            LIMIT ?
            """,
            (max_retries, to_db_time(created_after), to_db_time(stale_before), limit)
        )
        return [self._row_to_attempt(row) for row in rows]

    async def claim_for_retry(self, attempt_id: str, max_retries: int,
                              stale_before: datetime) -> bool:
        try:
            cursor = await self._execute(
                f"""
                UPDATE delivery_attempts
                SET status = 'pending', retry_count = retry_count + 1,
                    error_message = NULL, updated_at = ?
                WHERE id = ?
                  AND retry_count < ?
                  AND (
                    (status = 'failed' AND NOT EXISTS (
                        SELECT 1 FROM delivery_attempts AS other
                        WHERE other.summary_id = delivery_attempts.summary_id
                          AND other.id != delivery_attempts.id
                          AND other.status IN {_LIVE_STATUSES}
                    ))
                    OR (status = 'pending' AND updated_at < ?)
                  )
                """,
                (to_db_time(utc_now()), attempt_id, max_retries, to_db_time(stale_before))
            )
        except aiosqlite.IntegrityError:
            return False
        return cursor.rowcount == 1

    def _row_to_attempt(self, row: Dict[str, Any]) -> DeliveryAttempt:
        return DeliveryAttempt(
            id=row['id'],
            summary_id=row['summary_id'],
            target=row['target'],
            owner_id=row['owner_id'],
            organization_id=row['organization_id'],
            status=DeliveryStatus(row['status']),
            error_message=row['error_message'],
            posted_at=from_db_time(row['posted_at']),
            platform_message_ts=row['platform_message_ts'],
            platform_channel_id=row['platform_channel_id'],
            retry_count=row['retry_count'],
            created_at=from_db_time(row['created_at']),
            updated_at=from_db_time(row['updated_at']),
        )
