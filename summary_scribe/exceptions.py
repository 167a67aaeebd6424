"""
Exception hierarchy for Slack Summary Scribe.

Every error carries a machine-readable code, a context dict for logs and a
message that can be shown to the end user. ``retryable`` tells the caller
whether asking the user to try again later makes sense.
"""

from datetime import datetime
from typing import Any, Dict, Optional


def create_error_context(**kwargs) -> Dict[str, Any]:
    """Build an error context dict, dropping ``None`` values."""
    context = {key: value for key, value in kwargs.items() if value is not None}
    context.setdefault("timestamp", datetime.utcnow().isoformat())
    return context


class ScribeException(Exception):
    """Base exception for all Slack Summary Scribe errors."""

    default_user_message = "Something went wrong. Please try again later."

    def __init__(self,
                 message: str,
                 error_code: str = "SCRIBE_ERROR",
                 context: Optional[Dict[str, Any]] = None,
                 user_message: Optional[str] = None,
                 retryable: bool = False,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or self.default_user_message
        self.retryable = retryable
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "user_message": self.user_message,
            "retryable": self.retryable,
            "context": self.context,
        }

    def to_log_string(self) -> str:
        """Format for log output."""
        parts = [f"[{self.error_code}] {self.message}"]
        if self.context:
            parts.append(f"context={self.context}")
        if self.cause is not None:
            parts.append(f"cause={type(self.cause).__name__}: {self.cause}")
        return " | ".join(parts)


class ConfigurationError(ScribeException):
    """Invalid or missing configuration."""

    default_user_message = "The service is misconfigured. Please contact an administrator."


class RateLimitedError(ScribeException):
    """Identity exceeded its summarization ceiling for the current window."""

    def __init__(self, identity: str, reset_at: datetime, retry_after_seconds: int,
                 limit: int, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Rate limit exceeded for {identity}",
            error_code="RATE_LIMITED",
            context=create_error_context(
                identity=identity,
                reset_at=reset_at.isoformat(),
                limit=limit,
                **(context or {})
            ),
            user_message=(
                f"You have reached the limit of {limit} summaries per window. "
                f"Try again in {retry_after_seconds} seconds."
            ),
            retryable=True,
        )
        self.identity = identity
        self.reset_at = reset_at
        self.retry_after_seconds = retry_after_seconds
        self.limit = limit


# Fetch errors

class FetchError(ScribeException):
    """Base class for errors reading from the chat platform."""

    default_user_message = "Could not read messages from Slack."


class FetchUnauthorizedError(FetchError):
    """Token revoked, expired or missing scopes. Never retried."""

    default_user_message = "Your Slack connection is no longer valid. Please reconnect the integration."

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "FETCH_UNAUTHORIZED")
        kwargs["retryable"] = False
        super().__init__(message, **kwargs)


class FetchTransientError(FetchError):
    """Platform rate limit, 5xx or network failure. Caller may retry with backoff."""

    default_user_message = "Slack is temporarily unavailable. Please try again in a moment."

    def __init__(self, message: str, retry_after: Optional[int] = None, **kwargs):
        kwargs.setdefault("error_code", "FETCH_TRANSIENT")
        kwargs["retryable"] = True
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ChannelAccessError(FetchError):
    """Channel missing or the bot is not a member."""

    default_user_message = "The channel could not be found, or the app has not been added to it."

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "CHANNEL_ACCESS")
        kwargs["retryable"] = False
        super().__init__(message, **kwargs)


# Summarization errors

class SummarizationError(ScribeException):
    """Base class for AI layer failures."""

    default_user_message = "The summary could not be generated."


class UpstreamUnavailableError(SummarizationError):
    """AI endpoint unreachable, timed out or returned 5xx."""

    default_user_message = "The AI service is temporarily unavailable. Please try again later."

    def __init__(self, message: str, model: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "UPSTREAM_UNAVAILABLE")
        kwargs["retryable"] = True
        super().__init__(message, **kwargs)
        self.model = model


class UpstreamRejectedError(SummarizationError):
    """AI endpoint rejected the request with a 4xx."""

    default_user_message = "The AI service rejected the request."

    def __init__(self, message: str, model: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "UPSTREAM_REJECTED")
        kwargs["retryable"] = False
        super().__init__(message, **kwargs)
        self.model = model


class ModelUnavailableError(UpstreamRejectedError):
    """Requested model does not exist or is not served."""

    default_user_message = "The selected AI model is not available."

    def __init__(self, model: str, context: Optional[Dict[str, Any]] = None, **kwargs):
        kwargs.setdefault("error_code", "MODEL_UNAVAILABLE")
        super().__init__(
            f"Model {model} is unavailable",
            model=model,
            context=create_error_context(model=model, **(context or {})),
            **kwargs
        )


class QuotaExceededError(SummarizationError):
    """Provider quota or credit exhausted for the model/tier."""

    default_user_message = "AI quota exceeded. Try another model or upgrade your plan."

    def __init__(self, message: str, model: Optional[str] = None,
                 retry_after: Optional[int] = None, **kwargs):
        kwargs.setdefault("error_code", "QUOTA_EXCEEDED")
        kwargs["retryable"] = False
        super().__init__(message, **kwargs)
        self.model = model
        self.retry_after = retry_after


class NothingToSummarizeError(ScribeException):
    """The requested window holds no human messages."""

    default_user_message = "There are no messages to summarize in this time range."

    def __init__(self, channel_id: str, **kwargs):
        kwargs.setdefault("error_code", "NOTHING_TO_SUMMARIZE")
        kwargs.setdefault("context", create_error_context(channel_id=channel_id))
        super().__init__(f"No messages to summarize in channel {channel_id}", **kwargs)
        self.channel_id = channel_id


class PipelineTimeoutError(ScribeException):
    """Pipeline deadline expired before the summary was produced."""

    default_user_message = "Summarization took too long. Please try again."

    def __init__(self, timeout_seconds: float, **kwargs):
        kwargs.setdefault("error_code", "PIPELINE_TIMEOUT")
        kwargs["retryable"] = True
        super().__init__(f"Pipeline exceeded deadline of {timeout_seconds}s", **kwargs)
        self.timeout_seconds = timeout_seconds


# Store errors

class PersistenceError(ScribeException):
    """Store write or read failed."""

    default_user_message = "The summary could not be saved."

    def __init__(self, message: str, operation: str = "", **kwargs):
        kwargs.setdefault("error_code", "PERSISTENCE_FAILURE")
        kwargs.setdefault("context", create_error_context(operation=operation))
        super().__init__(message, **kwargs)


class SummaryNotFoundError(ScribeException):
    """No summary with the given id."""

    default_user_message = "Summary not found."

    def __init__(self, summary_id: str):
        super().__init__(
            f"Summary {summary_id} not found",
            error_code="SUMMARY_NOT_FOUND",
            context=create_error_context(summary_id=summary_id),
        )
        self.summary_id = summary_id


class ImmutableFieldError(ScribeException):
    """Update attempted to change AI-derived or server-assigned fields."""

    default_user_message = "Only rating and tags can be changed on a summary."

    def __init__(self, fields):
        fields = sorted(fields)
        super().__init__(
            f"Fields cannot be updated: {', '.join(fields)}",
            error_code="IMMUTABLE_FIELD",
            context=create_error_context(fields=fields),
        )
        self.fields = fields


# Delivery errors

class DeliveryError(ScribeException):
    """Posting a summary back to Slack failed."""

    default_user_message = "The summary was saved but could not be posted to Slack."

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "DELIVERY_FAILURE")
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)


class DeliveryInProgressError(DeliveryError):
    """Another delivery of the same summary is still pending."""

    default_user_message = "This summary is already being posted."

    def __init__(self, summary_id: str, attempt_id: str):
        super().__init__(
            f"Delivery {attempt_id} for summary {summary_id} is still pending",
            error_code="DELIVERY_IN_PROGRESS",
            context=create_error_context(summary_id=summary_id, attempt_id=attempt_id),
        )
        self.summary_id = summary_id
        self.attempt_id = attempt_id


def handle_unexpected_error(error: BaseException) -> ScribeException:
    """Wrap an arbitrary exception so it can be logged uniformly."""
    if isinstance(error, ScribeException):
        return error
    return ScribeException(
        message=f"Unexpected error: {error}",
        error_code="UNEXPECTED_ERROR",
        context=create_error_context(error_type=type(error).__name__),
        cause=error,
    )
