# PipePulse - CI Pipeline Status Relay
""" PipePulse: CI pipeline status relay.

This module relays GitLab pipeline and job webhooks into a live Slack
status message per pipeline, tailing the running job's log into it.

Core Components:
- State Management: in-memory pipeline registry with per-pipeline locks
- API Layer: Flask webhook receiver with Pydantic validation
- Slack Integration: threaded status messages with debounced edits
- Watcher: per-pipeline timer loop tailing GitLab job logs
"""
