"""
Message processing: fetching, filtering, cleaning and transcript formatting.
"""

from .fetcher import ChannelActivityFetcher
from .filter import MessageFilter, SYSTEM_SUBTYPES
from .cleaner import MessageCleaner
from .formatter import TranscriptFormatter

__all__ = [
    'ChannelActivityFetcher',
    'MessageFilter',
    'SYSTEM_SUBTYPES',
    'MessageCleaner',
    'TranscriptFormatter',
]
