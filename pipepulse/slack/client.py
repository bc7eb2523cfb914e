"""Slack SDK wrapper with retry logic for PipePulse."""

import logging
import os
import time
from typing import Optional, List, Any

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError, SlackClientError


logger = logging.getLogger("pipepulse.slack")


class SlackDeliveryError(Exception):
    """Raised when a Slack call still fails after all retries."""
    pass


def format_thread_root(title: str, body: str) -> str:
    """Text of a thread root message: bold title, then body."""
    return f"*{title}*\n{body}"


class SlackClient:
    """Slack client with automatic retry and rate limit handling."""

    DEFAULT_MAX_RETRIES = 3
    DEFAULT_BACKOFF_SECONDS = [1, 2, 4]

    def __init__(
        self,
        bot_token: Optional[str] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_seconds: Optional[List[float]] = None
    ):
        """Initialize Slack client.

        Args:
            bot_token: Slack bot token (reads from env if not provided)
            max_retries: Maximum retry attempts
            backoff_seconds: List of backoff delays for retries
        """
        self.bot_token = bot_token or os.environ.get('SLACK_BOT_TOKEN')
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds or self.DEFAULT_BACKOFF_SECONDS

        self.client = None
        if self.bot_token:
            self.client = WebClient(token=self.bot_token)

    def is_configured(self) -> bool:
        """Check if client is properly configured."""
        return self.client is not None

    def test_connection(self) -> bool:
        """Test Slack API connection."""
        if not self.is_configured():
            return False

        try:
            self.client.auth_test()
            return True
        except SlackApiError:
            return False

    def _backoff_for(self, attempt: int, error: Exception) -> float:
        """Delay before the next attempt, honouring Retry-After on 429."""
        response = getattr(error, 'response', None)
        if response is not None and getattr(response, 'status_code', None) == 429:
            retry_after = response.headers.get('Retry-After') if response.headers else None
            if retry_after:
                try:
                    return float(retry_after)
                except ValueError:
                    pass
        return self.backoff_seconds[attempt % len(self.backoff_seconds)]

    def _make_request_with_retry(self, method_name: str, *args, **kwargs) -> Any:
        """Make API request with retry logic.

        Args:
            method_name: Name of the WebClient method to call
            *args: Positional arguments for method
            **kwargs: Keyword arguments for method

        Returns:
            Method response

        Raises:
            SlackDeliveryError: If the client is not configured or all retries failed
        """
        if not self.is_configured():
            raise SlackDeliveryError("Slack client not configured")

        method = getattr(self.client, method_name)

        for attempt in range(self.max_retries):
            try:
                return method(*args, **kwargs)
            except (SlackClientError, OSError) as e:
                if attempt < self.max_retries - 1:
                    backoff = self._backoff_for(attempt, e)
                    logger.warning(f"Slack call failed ({e}), retrying in {backoff}s")
                    time.sleep(backoff)
                else:
                    raise SlackDeliveryError(f"Slack call failed: {e}") from e

        raise SlackDeliveryError("Slack call failed: no attempts made")

    def open_thread(self, channel_id: str, title: str, body: str) -> str:
        """Post a thread root message.

        Args:
            channel_id: Channel to post into
            title: Thread title, shown in bold
            body: Text under the title

        Returns:
            Timestamp of the root message (the thread id)
        """
        response = self._make_request_with_retry(
            'chat_postMessage',
            channel=channel_id,
            text=format_thread_root(title, body),
            unfurl_links=False,
        )
        return response['ts']

    def post_message(self, channel_id: str, thread_ts: Optional[str], text: str) -> str:
        """Post a message, in a thread when ``thread_ts`` is given.

        Returns:
            Timestamp of the new message
        """
        kwargs = {
            'channel': channel_id,
            'text': text,
            'unfurl_links': False,
        }
        if thread_ts:
            kwargs['thread_ts'] = thread_ts

        response = self._make_request_with_retry('chat_postMessage', **kwargs)
        return response['ts']

    def update_message(self, channel_id: str, ts: str, text: str) -> None:
        """Replace the text of a previously posted message."""
        self._make_request_with_retry(
            'chat_update',
            channel=channel_id,
            ts=ts,
            text=text,
        )

    def update_thread_title(self, channel_id: str, thread_ts: str, title: str, body: str) -> None:
        """Rewrite a thread root message with a new title."""
        self.update_message(channel_id, thread_ts, format_thread_root(title, body))
