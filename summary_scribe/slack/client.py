"""
Minimal async Slack Web API client built on httpx.

Only the methods the pipeline needs are wrapped. Every call returns the
decoded JSON payload or raises ``SlackAPIError`` classified as an auth
failure, a transient failure, or a plain API error.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ..config.constants import SLACK_API_BASE_URL, SLACK_PAGE_SIZE

logger = logging.getLogger(__name__)

AUTH_ERRORS = frozenset({
    "invalid_auth",
    "not_authed",
    "token_revoked",
    "token_expired",
    "account_inactive",
    "missing_scope",
    "no_permission",
    "ekm_access_denied",
})

TRANSIENT_ERRORS = frozenset({
    "ratelimited",
    "rate_limited",
    "internal_error",
    "fatal_error",
    "service_unavailable",
    "request_timeout",
    "timeout",
    "network_error",
})


def mask_token(token: str) -> str:
    """Mask a token for log output."""
    if not token or len(token) < 12:
        return "***"
    return f"{token[:5]}...{token[-4:]}"


class SlackAPIError(Exception):
    """A Slack Web API call failed."""

    def __init__(self, method: str, error: str, status_code: Optional[int] = None,
                 retry_after: Optional[int] = None):
        super().__init__(f"Slack {method} failed: {error}")
        self.method = method
        self.error = error
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def is_auth_error(self) -> bool:
        return self.error in AUTH_ERRORS or self.status_code in (401, 403)

    @property
    def is_transient(self) -> bool:
        if self.is_auth_error:
            return False
        if self.error in TRANSIENT_ERRORS:
            return True
        return self.status_code is not None and (self.status_code == 429 or self.status_code >= 500)


class SlackClient:
    """Client for the subset of the Slack Web API used by the pipeline."""

    def __init__(self, base_url: str = SLACK_API_BASE_URL, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize Slack client.

        Args:
            base_url: Web API root, e.g. ``https://slack.com/api``
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            kwargs: Dict[str, Any] = {"timeout": self.timeout}
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._http_client = httpx.AsyncClient(**kwargs)
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def call(self, method: str, token: str, params: Optional[Dict[str, Any]] = None,
                   json_body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Invoke a Web API method.

        Reads go out as GET with query parameters, writes as POST with a JSON body.

        Raises:
            SlackAPIError: On HTTP failure, network failure or ``ok: false``
        """
        client = await self._get_http_client()
        url = f"{self.base_url}/{method}"
        headers = {"Authorization": f"Bearer {token}"}

        try:
            if json_body is not None:
                headers["Content-Type"] = "application/json; charset=utf-8"
                response = await client.post(url, json=json_body, headers=headers)
            else:
                response = await client.get(url, params=params or {}, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning(f"Slack {method} timed out: {e}")
            raise SlackAPIError(method, "timeout") from e
        except httpx.RequestError as e:
            logger.warning(f"Slack {method} request failed: {e}")
            raise SlackAPIError(method, "network_error") from e

        if response.status_code == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            raise SlackAPIError(method, "ratelimited", 429, retry_after)

        if response.status_code >= 400:
            raise SlackAPIError(method, f"http_{response.status_code}", response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise SlackAPIError(method, "invalid_response", response.status_code) from e

        if not data.get("ok"):
            error = data.get("error", "unknown_error")
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            logger.debug(f"Slack {method} returned error={error} for token {mask_token(token)}")
            raise SlackAPIError(method, error, response.status_code, retry_after)

        return data

    async def paginate(self, method: str, token: str, key: str,
                       params: Optional[Dict[str, Any]] = None) -> AsyncIterator[List[Dict[str, Any]]]:
        """Yield successive pages of ``key`` following ``response_metadata.next_cursor``."""
        page_params = dict(params or {})
        page_params.setdefault("limit", SLACK_PAGE_SIZE)

        while True:
            data = await self.call(method, token, params=page_params)
            yield data.get(key, [])

            cursor = (data.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                break
            page_params["cursor"] = cursor

    async def conversations_list(self, token: str,
                                 types: str = "public_channel,private_channel") -> List[Dict[str, Any]]:
        channels: List[Dict[str, Any]] = []
        async for page in self.paginate("conversations.list", token, "channels",
                                        {"types": types, "exclude_archived": "true"}):
            channels.extend(page)
        return channels

    async def conversations_info(self, token: str, channel_id: str) -> Dict[str, Any]:
        data = await self.call("conversations.info", token, params={"channel": channel_id})
        return data["channel"]

    def conversations_history(self, token: str, channel_id: str,
                              oldest: str, latest: str) -> AsyncIterator[List[Dict[str, Any]]]:
        return self.paginate("conversations.history", token, "messages", {
            "channel": channel_id,
            "oldest": oldest,
            "latest": latest,
            "inclusive": "true",
        })

    async def conversations_replies(self, token: str, channel_id: str,
                                    thread_ts: str) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        async for page in self.paginate("conversations.replies", token, "messages",
                                        {"channel": channel_id, "ts": thread_ts}):
            messages.extend(page)
        return messages

    async def users_info(self, token: str, user_id: str) -> Dict[str, Any]:
        data = await self.call("users.info", token, params={"user": user_id})
        return data["user"]

    async def conversations_open(self, token: str, user_id: str) -> str:
        """Open (or reuse) a DM with a user and return its channel id."""
        data = await self.call("conversations.open", token, json_body={"users": user_id})
        return data["channel"]["id"]

    async def chat_post_message(self, token: str, channel_id: str, text: str,
                                blocks: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "channel": channel_id,
            "text": text,
            "unfurl_links": False,
            "unfurl_media": False,
        }
        if blocks:
            body["blocks"] = blocks
        return await self.call("chat.postMessage", token, json_body=body)


def _parse_retry_after(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None
