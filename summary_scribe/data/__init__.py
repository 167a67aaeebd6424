"""
Data access layer for Slack Summary Scribe.

Example Usage:
    ```python
    from summary_scribe.data import initialize_repositories, get_summary_repository, run_migrations

    await run_migrations("data/summary_scribe.db")
    initialize_repositories(backend="sqlite", db_path="data/summary_scribe.db")

    summary_repo = await get_summary_repository()
    summary = await summary_repo.create(draft, owner_id="U1", source_channel_id="C1")
    ```
"""

from .base import SummaryRepository, DeliveryRepository, DatabaseConnection
from .sqlite import SQLiteConnection, SQLiteSummaryRepository, SQLiteDeliveryRepository
from .repositories import (
    RepositoryFactory,
    initialize_repositories,
    get_repository_factory,
    get_summary_repository,
    get_delivery_repository,
)
from .migrations import run_migrations, MIGRATIONS

__all__ = [
    "SummaryRepository",
    "DeliveryRepository",
    "DatabaseConnection",
    "SQLiteConnection",
    "SQLiteSummaryRepository",
    "SQLiteDeliveryRepository",
    "RepositoryFactory",
    "initialize_repositories",
    "get_repository_factory",
    "get_summary_repository",
    "get_delivery_repository",
    "run_migrations",
    "MIGRATIONS",
]
