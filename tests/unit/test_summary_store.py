"""
Tests for the SQLite summary store, migrations and the repository factory.
"""

from datetime import timedelta

import aiosqlite
import pytest

from summary_scribe.data import (
    RepositoryFactory, SQLiteDeliveryRepository, SQLiteSummaryRepository, get_delivery_repository,
    get_summary_repository, initialize_repositories, run_migrations
)
from summary_scribe.exceptions import ImmutableFieldError, PersistenceError, SummaryNotFoundError
from summary_scribe.models import (
    PlainTextDraft, Sentiment, SourceType, StructuredDraft, SummaryFilter, SummaryPatch, utc_now
)


def make_draft(title: str = "Weekly sync", text: str = "We planned the sprint.", **kwargs) -> StructuredDraft:
    defaults = dict(
        skills=["planning"],
        red_flags=["scope creep"],
        action_items=["Write tickets (alice)"],
        sentiment=Sentiment.POSITIVE,
        confidence_score=0.9,
        model="claude-3-5-haiku-20241022",
    )
    defaults.update(kwargs)
    return StructuredDraft(title=title, summary_text=text, **defaults)


class TestMigrations:
    """Tests for run_migrations."""

    @pytest.mark.asyncio
    async def test_migrations_are_idempotent(self, db_path):
        first = await run_migrations(db_path)
        second = await run_migrations(db_path)

        assert first == 3
        assert second == 0

        async with aiosqlite.connect(db_path) as conn:
            cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            tables = {row[0] for row in await cursor.fetchall()}

        assert {"summaries", "delivery_attempts", "rate_limits"} <= tables


class TestSQLiteSummaryRepository:
    """Tests for SQLiteSummaryRepository."""

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_created_at(self, connection):
        repo = SQLiteSummaryRepository(connection)
        before = utc_now()

        summary = await repo.create(
            make_draft(), owner_id="U1", source_channel_id="C1", organization_id="T1",
            raw_transcript="# Slack Channel: #eng", message_count=3,
        )

        assert summary.id
        assert summary.created_at >= before
        stored = await repo.get(summary.id)
        assert stored == summary
        assert stored.action_items == ["Write tickets (alice)"]
        assert stored.sentiment == Sentiment.POSITIVE
        assert stored.draft_kind == "structured"
        assert stored.message_count == 3

    @pytest.mark.asyncio
    async def test_create_ignores_draft_identity(self, connection):
        repo = SQLiteSummaryRepository(connection)

        first = await repo.create(make_draft(), owner_id="U1", source_channel_id="C1")
        second = await repo.create(make_draft(), owner_id="U1", source_channel_id="C1")

        assert first.id != second.id

    @pytest.mark.asyncio
    async def test_plain_text_draft_is_stored_with_kind(self, connection):
        repo = SQLiteSummaryRepository(connection)
        draft = PlainTextDraft(title="Conversation Summary", summary_text="raw text",
                               confidence_score=0.3, model="m")

        summary = await repo.create(draft, owner_id="U1", source_channel_id="C1")

        assert (await repo.get(summary.id)).draft_kind == "plain_text"

    @pytest.mark.asyncio
    async def test_get_missing_raises(self, connection):
        repo = SQLiteSummaryRepository(connection)

        with pytest.raises(SummaryNotFoundError):
            await repo.get("does-not-exist")

    @pytest.mark.asyncio
    async def test_failed_insert_raises_persistence_error(self, connection):
        repo = SQLiteSummaryRepository(connection)
        # Violates the confidence_score CHECK constraint
        draft = make_draft(confidence_score=1.5)

        with pytest.raises(PersistenceError):
            await repo.create(draft, owner_id="U1", source_channel_id="C1")

        items, total = await repo.list(SummaryFilter())
        assert total == 0

    @pytest.mark.asyncio
    async def test_list_filters_by_owner_and_source(self, connection):
        repo = SQLiteSummaryRepository(connection)
        await repo.create(make_draft(), owner_id="U1", source_channel_id="C1")
        await repo.create(make_draft(), owner_id="U2", source_channel_id="C1")
        await repo.create(make_draft(), owner_id="U1", source_channel_id="C1",
                          source_type=SourceType.MANUAL)

        items, total = await repo.list(SummaryFilter(owner_id="U1", source_type=SourceType.SLACK))

        assert total == 1
        assert items[0].owner_id == "U1"
        assert items[0].source_type == SourceType.SLACK

    @pytest.mark.asyncio
    async def test_list_search_matches_title_and_text(self, connection):
        repo = SQLiteSummaryRepository(connection)
        await repo.create(make_draft(title="Incident review"), owner_id="U1", source_channel_id="C1")
        await repo.create(make_draft(text="The incident is closed"), owner_id="U1", source_channel_id="C1")
        await repo.create(make_draft(title="Lunch", text="Tacos"), owner_id="U1", source_channel_id="C1")
        await repo.create(make_draft(title="100% done"), owner_id="U1", source_channel_id="C1")

        _, incident_total = await repo.list(SummaryFilter(search="incident"))
        percent_items, percent_total = await repo.list(SummaryFilter(search="100%"))

        assert incident_total == 2
        assert percent_total == 1
        assert percent_items[0].title == "100% done"

    @pytest.mark.asyncio
    async def test_list_requires_every_tag(self, connection):
        repo = SQLiteSummaryRepository(connection)
        both = await repo.create(make_draft(), owner_id="U1", source_channel_id="C1")
        one = await repo.create(make_draft(), owner_id="U1", source_channel_id="C1")
        await repo.update(both.id, SummaryPatch(tags=["Release", "urgent"]))
        await repo.update(one.id, SummaryPatch(tags=["release"]))

        items, total = await repo.list(SummaryFilter(tags=["release", "URGENT"]))

        assert total == 1
        assert items[0].id == both.id

    @pytest.mark.asyncio
    async def test_list_limit_is_capped_and_total_is_unpaged(self, connection):
        repo = SQLiteSummaryRepository(connection)
        for i in range(105):
            await repo.create(make_draft(title=f"Summary {i:03d}"), owner_id="U1", source_channel_id="C1")

        items, total = await repo.list(SummaryFilter(limit=500))

        assert total == 105
        assert len(items) == 100

    @pytest.mark.asyncio
    async def test_list_orders_and_pages(self, connection):
        repo = SQLiteSummaryRepository(connection)
        for title in ("charlie", "alpha", "bravo"):
            await repo.create(make_draft(title=title), owner_id="U1", source_channel_id="C1")

        first_page, total = await repo.list(SummaryFilter(order_by="title", order_direction="asc", limit=2))
        second_page, _ = await repo.list(SummaryFilter(order_by="title", order_direction="asc",
                                                       limit=2, offset=2))

        assert total == 3
        assert [s.title for s in first_page] == ["alpha", "bravo"]
        assert [s.title for s in second_page] == ["charlie"]

    @pytest.mark.asyncio
    async def test_list_by_created_range(self, connection):
        repo = SQLiteSummaryRepository(connection)
        summary = await repo.create(make_draft(), owner_id="U1", source_channel_id="C1")

        _, in_range = await repo.list(SummaryFilter(created_after=summary.created_at - timedelta(minutes=1)))
        _, after = await repo.list(SummaryFilter(created_after=summary.created_at + timedelta(minutes=1)))

        assert in_range == 1
        assert after == 0

    def test_unknown_order_column_is_rejected(self):
        with pytest.raises(ValueError):
            SummaryFilter(order_by="summary_text; DROP TABLE summaries")

    @pytest.mark.asyncio
    async def test_update_changes_only_rating_and_tags(self, connection):
        repo = SQLiteSummaryRepository(connection)
        summary = await repo.create(make_draft(), owner_id="U1", source_channel_id="C1")

        updated = await repo.update(summary.id, SummaryPatch(rating=4, tags=[" Ops ", "ops", "Q1"]))

        assert updated.rating == 4
        assert updated.tags == ["ops", "q1"]
        assert updated.summary_text == summary.summary_text
        assert updated.confidence_score == summary.confidence_score
        assert updated.created_at == summary.created_at

    @pytest.mark.asyncio
    async def test_update_missing_summary_raises(self, connection):
        repo = SQLiteSummaryRepository(connection)

        with pytest.raises(SummaryNotFoundError):
            await repo.update("missing", SummaryPatch(rating=3))

    @pytest.mark.asyncio
    async def test_empty_patch_returns_summary_unchanged(self, connection):
        repo = SQLiteSummaryRepository(connection)
        summary = await repo.create(make_draft(), owner_id="U1", source_channel_id="C1")

        assert await repo.update(summary.id, SummaryPatch()) == summary


class TestSummaryPatch:
    """Tests for SummaryPatch validation."""

    def test_rating_must_be_one_to_five(self):
        with pytest.raises(ValueError):
            SummaryPatch(rating=0)
        with pytest.raises(ValueError):
            SummaryPatch(rating=6)

    def test_protected_fields_are_rejected(self):
        with pytest.raises(ImmutableFieldError) as exc_info:
            SummaryPatch.from_dict({"rating": 5, "summary_text": "edited", "confidence_score": 1})

        assert exc_info.value.fields == ["confidence_score", "summary_text"]

    def test_from_dict_accepts_mutable_fields(self):
        patch = SummaryPatch.from_dict({"rating": 2, "tags": ["A"]})

        assert patch.rating == 2
        assert patch.tags == ["a"]


class TestRepositoryFactory:
    """Tests for the module-level repository factory."""

    @pytest.mark.asyncio
    async def test_initialize_and_get_repository(self, db_path):
        await run_migrations(db_path)
        factory = initialize_repositories(backend="sqlite", db_path=db_path, pool_size=1)
        try:
            repo = await get_summary_repository()
            summary = await repo.create(make_draft(), owner_id="U1", source_channel_id="C1")

            assert (await repo.get(summary.id)).id == summary.id
            assert isinstance(await get_delivery_repository(), SQLiteDeliveryRepository)
        finally:
            await factory.close()

    @pytest.mark.asyncio
    async def test_unsupported_backend(self):
        factory = RepositoryFactory(backend="postgres")

        with pytest.raises(ValueError):
            await factory.get_summary_repository()
