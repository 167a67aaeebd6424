"""
Constants for Slack Summary Scribe.
"""

# AI models
DEFAULT_SUMMARIZATION_MODEL = "claude-3-5-haiku-20241022"
FALLBACK_SUMMARIZATION_MODEL = "claude-3-haiku-20240307"
DEFAULT_MAX_OUTPUT_TOKENS = 2000
DEFAULT_TEMPERATURE = 0.3
DEFAULT_AI_TIMEOUT_SECONDS = 120

# Response parsing
DEFAULT_CONFIDENCE = 0.8
PLAIN_TEXT_CONFIDENCE_PENALTY = 0.5
MAX_TITLE_LENGTH = 60
DEFAULT_SUMMARY_TITLE = "Conversation Summary"

# Rate limiting
DEFAULT_RATE_LIMIT_CEILING = 10
DEFAULT_RATE_LIMIT_WINDOW_SECONDS = 3600
RATE_LIMIT_SCOPE = "summary"

# Fetching
DEFAULT_FETCH_WINDOW_HOURS = 24
DEFAULT_FETCH_CONCURRENCY = 5
DEFAULT_FETCH_MAX_MESSAGES = 1000
SLACK_PAGE_SIZE = 100
SLACK_API_BASE_URL = "https://slack.com/api"

# Summary store
DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 100
SORTABLE_SUMMARY_COLUMNS = ("created_at", "confidence_score", "title")

# Delivery
DEFAULT_DELIVERY_MAX_RETRIES = 3
DEFAULT_DELIVERY_BATCH_SIZE = 10
DEFAULT_DELIVERY_MAX_AGE_HOURS = 72
DEFAULT_STALE_PENDING_MINUTES = 15
SLACK_MAX_SECTION_CHARS = 3000
DM_TARGET_PREFIX = "dm:"

# Scheduling
DEFAULT_RETRY_SWEEP_INTERVAL_MINUTES = 10

# Database
DEFAULT_DB_PATH = "data/summary_scribe.db"
