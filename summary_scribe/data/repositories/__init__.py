"""
Repository factory.

One factory owns the pooled connection shared by the summary store, the
delivery records and (optionally) the SQLite rate-limit counters. A
process-wide default factory is set up by ``initialize_repositories``.
"""

from typing import Optional

from ..base import SummaryRepository, DeliveryRepository
from ..sqlite import SQLiteConnection, SQLiteSummaryRepository, SQLiteDeliveryRepository
from ...config.constants import DEFAULT_DB_PATH

SUPPORTED_BACKENDS = ("sqlite",)


class RepositoryFactory:
    """Builds repositories over one lazily opened connection pool."""

    def __init__(self, backend: str = "sqlite", db_path: str = DEFAULT_DB_PATH, pool_size: int = 5):
        self.backend = backend
        self.db_path = db_path
        self.pool_size = pool_size
        self._connection: Optional[SQLiteConnection] = None

    async def get_connection(self) -> SQLiteConnection:
        """Open the pool on first use.

        Raises:
            ValueError: If the backend is not supported
        """
        if self.backend not in SUPPORTED_BACKENDS:
            raise ValueError(
                f"Unsupported backend: {self.backend} (expected one of {', '.join(SUPPORTED_BACKENDS)})"
            )

        if self._connection is None:
            connection = SQLiteConnection(self.db_path, self.pool_size)
            await connection.connect()
            self._connection = connection
        return self._connection

    async def get_summary_repository(self) -> SummaryRepository:
        return SQLiteSummaryRepository(await self.get_connection())

    async def get_delivery_repository(self) -> DeliveryRepository:
        return SQLiteDeliveryRepository(await self.get_connection())

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.disconnect()
            self._connection = None


_default_factory: Optional[RepositoryFactory] = None


def initialize_repositories(backend: str = "sqlite", db_path: str = DEFAULT_DB_PATH,
                            pool_size: int = 5) -> RepositoryFactory:
    """Replace the process-wide factory and return it."""
    global _default_factory
    _default_factory = RepositoryFactory(backend, db_path=db_path, pool_size=pool_size)
    return _default_factory


def get_repository_factory() -> RepositoryFactory:
    """
    Raises:
        RuntimeError: If ``initialize_repositories`` has not been called
    """
    if _default_factory is None:
        raise RuntimeError("Repositories not initialized; call initialize_repositories() first")
    return _default_factory


async def get_summary_repository() -> SummaryRepository:
    return await get_repository_factory().get_summary_repository()


async def get_delivery_repository() -> DeliveryRepository:
    return await get_repository_factory().get_delivery_repository()
