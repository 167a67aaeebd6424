"""
Rate limiting for summarization requests.
"""

from .limiter import RateLimiter
from .store import CounterStore, InMemoryCounterStore, SQLiteCounterStore

__all__ = ['RateLimiter', 'CounterStore', 'InMemoryCounterStore', 'SQLiteCounterStore']
