"""
Slack Web API access.
"""

from .client import SlackClient, SlackAPIError, mask_token

__all__ = ['SlackClient', 'SlackAPIError', 'mask_token']
