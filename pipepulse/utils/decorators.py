"""Decorators for PipePulse utility functions."""

import hmac
import time
import threading
from typing import Optional, List, Callable
from flask import current_app, request
from functools import wraps

from ..api.errors import error_response


WEBHOOK_TOKEN_HEADER = 'X-Gitlab-Token'


def require_webhook_token(f: Callable) -> Callable:
    """Decorator to require the shared GitLab webhook token.

    GitLab sends the secret configured on the webhook in the
    ``X-Gitlab-Token`` header.

    Args:
        f: Function to decorate

    Returns:
        Decorated function
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        token = request.headers.get(WEBHOOK_TOKEN_HEADER, '')
        if not token:
            return error_response('MISSING_AUTH')

        expected_token = current_app.config.get('WEBHOOK_TOKEN')
        if not expected_token:
            return error_response('CONFIG_ERROR')

        if not hmac.compare_digest(token.encode(), expected_token.encode()):
            return error_response('INVALID_KEY')

        return f(*args, **kwargs)

    return decorated


def retry(
    max_attempts: int = 3,
    backoff_seconds: Optional[List[float]] = None,
    exceptions: tuple = (Exception,)
) -> Callable:
    """Decorator to retry function on specified exceptions.

    Args:
        max_attempts: Maximum number of attempts
        backoff_seconds: List of delays between attempts
        exceptions: Tuple of exception types to catch

    Returns:
        Decorated function
    """
    backoff_seconds = backoff_seconds or [1, 2, 4]

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e

                    if attempt < max_attempts - 1:
                        delay = backoff_seconds[attempt % len(backoff_seconds)]
                        time.sleep(delay)
                    else:
                        raise

            raise last_exception

        return wrapper

    return decorator


class Debouncer:
    """Tracks the minimum interval between two calls."""

    def __init__(self, min_interval: float = 2.0):
        """Initialize debouncer.

        Args:
            min_interval: Minimum seconds between calls
        """
        self.min_interval = min_interval
        self._last_call: Optional[float] = None
        self._lock = threading.Lock()

    def should_call(self) -> bool:
        """Check if function should be called.

        Returns:
            True if should call, False if should defer
        """
        with self._lock:
            if self._last_call is None:
                return True
            current_time = time.monotonic()
            return (current_time - self._last_call) >= self.min_interval

    def remaining(self) -> float:
        """Seconds left until the next call is allowed."""
        with self._lock:
            if self._last_call is None:
                return 0.0
            elapsed = time.monotonic() - self._last_call
            return max(0.0, self.min_interval - elapsed)

    def mark_called(self) -> None:
        with self._lock:
            self._last_call = time.monotonic()
