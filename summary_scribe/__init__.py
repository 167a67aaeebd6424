"""
Slack Summary Scribe.

Fetches Slack channel activity, normalizes it into a transcript, summarizes
it with an AI model, stores the result and delivers it back to Slack.
"""

__version__ = "1.0.0"
