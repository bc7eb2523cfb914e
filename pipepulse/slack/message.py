"""Live, editable Slack message with debounced updates."""

import logging
import threading
from typing import Optional

from ..utils.decorators import Debouncer
from .client import SlackClient, SlackDeliveryError


logger = logging.getLogger("pipepulse.slack")


class UpdatableMessage:
    """A message posted once and then edited in place until closed.

    Edits arriving faster than ``min_update_interval`` are coalesced: the
    latest text is kept pending and flushed by a timer. Re-sending the text
    already shown is skipped. ``close()`` flushes whatever is pending and
    turns later edits into no-ops.
    """

    def __init__(
        self,
        slack_client: SlackClient,
        channel_id: str,
        thread_ts: Optional[str],
        text: str,
        thread_title: Optional[str] = None,
        thread_body: str = '',
        min_update_interval: float = 0.0
    ):
        """Initialize the message handle (nothing is posted yet).

        Args:
            slack_client: SlackClient used for every call
            channel_id: Channel the message lives in
            thread_ts: Root message of the thread to post into
            text: Initial body
            thread_title: Title currently shown on the thread root
            thread_body: Body of the thread root, kept when the title changes
            min_update_interval: Minimum seconds between two edits
        """
        self.slack_client = slack_client
        self.channel_id = channel_id
        self.thread_ts = thread_ts
        self.thread_body = thread_body
        self.ts: Optional[str] = None

        self._text = text
        self._title = thread_title
        self._sent_text: Optional[str] = None
        self._sent_title = thread_title
        self._closed = False

        self._update_lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._debouncer = Debouncer(min_update_interval)

    @property
    def is_sent(self) -> bool:
        return self.ts is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def text(self) -> str:
        """Latest body, sent or pending."""
        return self._text

    def _has_changes(self) -> bool:
        return self._text != self._sent_text or self._title != self._sent_title

    def _post(self) -> bool:
        """Post the message body. Caller holds the update lock."""
        try:
            self.ts = self.slack_client.post_message(self.channel_id, self.thread_ts, self._text)
        except SlackDeliveryError as e:
            logger.warning(f"Failed to send message to {self.channel_id}: {e}")
            return False

        self._sent_text = self._text
        self._debouncer.mark_called()
        if self._title != self._sent_title:
            self._flush()
        return True

    def _flush(self) -> bool:
        """Push pending body and title edits. Caller holds the update lock."""
        success = True

        if self._text != self._sent_text:
            try:
                self.slack_client.update_message(self.channel_id, self.ts, self._text)
                self._sent_text = self._text
            except SlackDeliveryError as e:
                logger.warning(f"Failed to edit message {self.ts}: {e}")
                success = False

        if self._title != self._sent_title and self.thread_ts:
            try:
                self.slack_client.update_thread_title(
                    self.channel_id, self.thread_ts, self._title, self.thread_body
                )
                self._sent_title = self._title
            except SlackDeliveryError as e:
                logger.warning(f"Failed to retitle thread {self.thread_ts}: {e}")
                success = False

        self._debouncer.mark_called()
        return success

    def _cancel_pending_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _process_scheduled_update(self):
        """Flush a debounced edit."""
        with self._update_lock:
            self._timer = None
            if self._closed or not self.is_sent:
                return
            if self._has_changes():
                self._flush()

    def send(self) -> bool:
        """Post the initial body.

        Returns:
            True if Slack accepted the message
        """
        with self._update_lock:
            if self.is_sent:
                return True
            return self._post()

    def edit_text(self, text: str, title: Optional[str] = None) -> bool:
        """Replace the message body (and optionally the thread title).

        A message whose first post failed is posted now instead.

        Args:
            text: New body
            title: New thread title

        Returns:
            True if the edit reached Slack immediately (or nothing changed),
            False if it failed, was deferred or the message is closed
        """
        with self._update_lock:
            if self._closed:
                logger.debug(f"Ignoring edit on closed message {self.ts}")
                return False

            self._text = text
            if title is not None:
                self._title = title

            if not self.is_sent:
                return self._post()

            if not self._has_changes():
                return True

            if self._debouncer.should_call():
                self._cancel_pending_timer()
                return self._flush()

            if self._timer is None:
                self._timer = threading.Timer(
                    self._debouncer.remaining(), self._process_scheduled_update
                )
                self._timer.daemon = True
                self._timer.start()
            return False

    def close(self):
        """Flush any pending edit and stop accepting new ones."""
        with self._update_lock:
            if self._closed:
                return
            self._cancel_pending_timer()
            if self.is_sent and self._has_changes():
                self._flush()
            self._closed = True
