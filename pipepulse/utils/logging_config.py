"""JSON line logging for PipePulse.

Every record is one JSON object; fields passed to ``log_with_fields``
(pipeline_id, job_id, channel_id...) become top-level keys so log
aggregators can filter on a single pipeline.
"""

import logging
import json
import sys
import os
from typing import Optional


# Chatty third-party loggers kept at WARNING unless we run at DEBUG
NOISY_LOGGERS = ('urllib3', 'slack_sdk', 'werkzeug')


class JSONFormatter(logging.Formatter):
    """Formats records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'logger': record.name,
            'thread': record.threadName,
            'message': record.getMessage(),
        }

        fields = getattr(record, 'extra_fields', None)
        if fields:
            log_data.update(fields)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(
    level: Optional[str] = None,
    handler: Optional[logging.Handler] = None,
    log_file: Optional[str] = None
) -> logging.Logger:
    """Configure the ``pipepulse`` logger hierarchy.

    Args:
        level: Level name, falls back to PIPEPULSE_LOG_LEVEL then INFO
        handler: Handler to use instead of stdout
        log_file: Also append JSON lines to this file

    Returns:
        The ``pipepulse`` root logger
    """
    level_name = (level or os.environ.get('PIPEPULSE_LOG_LEVEL', 'INFO')).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger('pipepulse')
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers = []

    handlers = [handler or logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    formatter = JSONFormatter()
    for h in handlers:
        h.setFormatter(formatter)
        logger.addHandler(h)

    library_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    return logger


def log_with_fields(
    logger: logging.Logger,
    level: str,
    message: str,
    **fields
):
    """Log ``message`` with ``fields`` as top-level JSON keys."""
    extra = {'extra_fields': fields} if fields else None

    log_func = getattr(logger, level.lower(), logger.info)
    log_func(message, extra=extra)
