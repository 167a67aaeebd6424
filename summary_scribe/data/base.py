"""
Storage contracts: the summary store, delivery attempt records and the
connection they run on. The SQLite implementations live in ``sqlite.py``.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..models.delivery import DeliveryAttempt
from ..models.summary import SourceType, Summary, SummaryDraft, SummaryFilter, SummaryPatch


class SummaryRepository(ABC):
    """Persisted summaries. AI-derived fields are written once by ``create``."""

    @abstractmethod
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
        """
        Persist a new summary from a draft.

        The repository assigns ``id`` and ``created_at``; nothing else writes them.

        Returns:
            The stored summary

        Raises:
            PersistenceError: If the insert fails (nothing is stored)
        """
        pass

    @abstractmethod
    async def get(self, summary_id: str) -> Summary:
        """
        Retrieve a summary by its ID.

        Raises:
            SummaryNotFoundError: If no summary has this ID
        """
        pass

    @abstractmethod
    async def list(self, summary_filter: SummaryFilter) -> Tuple[List[Summary], int]:
        """
        Find summaries matching a filter.

        Returns:
            The requested page of summaries and the total number of matches
        """
        pass

    @abstractmethod
    async def update(self, summary_id: str, patch: SummaryPatch) -> Summary:
        """
        Apply user annotations (rating, tags) to a summary.

        Raises:
            SummaryNotFoundError: If no summary has this ID
            PersistenceError: If the update fails
        """
        pass


class DeliveryRepository(ABC):
    """Abstract repository for delivery attempt records.

    Every status transition is a single-row compare-and-set; methods return
    ``None``/``False`` when the guarded row was not in the expected state.
    """

    @abstractmethod
    async def create_pending(self, attempt: DeliveryAttempt) -> Optional[DeliveryAttempt]:
        """Insert a pending attempt unless the summary already has a pending or posted one."""
        pass

    @abstractmethod
    async def get(self, attempt_id: str) -> Optional[DeliveryAttempt]:
        pass

    @abstractmethod
    async def find_live(self, summary_id: str) -> Optional[DeliveryAttempt]:
        """Return the summary's posted attempt, or its in-flight pending attempt."""
        pass

    @abstractmethod
    async def list_for_summary(self, summary_id: str) -> List[DeliveryAttempt]:
        pass

    @abstractmethod
    async def mark_posted(self, attempt_id: str, posted_at: datetime,
                          message_ts: Optional[str], channel_id: Optional[str]) -> bool:
        """Transition ``pending -> posted``."""
        pass

    @abstractmethod
    async def mark_failed(self, attempt_id: str, error_message: str) -> bool:
        """Transition ``pending -> failed``."""
        pass

    @abstractmethod
    async def find_retryable(self, max_retries: int, created_after: datetime,
                             stale_before: datetime, limit: int) -> List[DeliveryAttempt]:
        """Failed (or stale pending) attempts eligible for another try, oldest first."""
        pass

    @abstractmethod
    async def claim_for_retry(self, attempt_id: str, max_retries: int,
                              stale_before: datetime) -> bool:
        """Transition ``failed -> pending`` (or refresh a stale pending) and bump ``retry_count``."""
        pass


class DatabaseConnection(ABC):
    """Async SQL connection (pool) the repositories execute against."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying connection(s); safe to call twice."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close every pooled connection."""
        pass

    @abstractmethod
    async def execute(self, query: str, params: Optional[tuple] = None) -> Any:
        """Execute a database query and commit."""
        pass

    @abstractmethod
    async def execute_returning(self, query: str,
                                params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """Execute a write with a RETURNING clause, collect the rows, then commit."""
        pass

    @abstractmethod
    async def fetch_one(self, query: str, params: Optional[tuple] = None) -> Optional[Dict[str, Any]]:
        """First row as a dict, or None."""
        pass

    @abstractmethod
    async def fetch_all(self, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """All rows as dicts."""
        pass
