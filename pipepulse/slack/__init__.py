# PipePulse Slack Integration
"""Slack integration for PipePulse."""

from .client import SlackClient, SlackDeliveryError
from .message import UpdatableMessage
from .render import render_pipeline_message, render_title, STATUS_ICONS

__all__ = [
    "SlackClient",
    "SlackDeliveryError",
    "UpdatableMessage",
    "render_pipeline_message",
    "render_title",
    "STATUS_ICONS",
]
