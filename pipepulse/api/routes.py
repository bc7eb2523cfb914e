"""Flask routes for PipePulse API."""

import logging

from flask import Blueprint, jsonify, request, current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from pydantic import ValidationError

from ..relay import PipelineRelay
from ..utils.decorators import require_webhook_token
from .validators import JOB_HOOK, PIPELINE_HOOK, JobHookPayload, PipelineHookPayload
from .errors import error_response


logger = logging.getLogger("pipepulse.api")

# Create API blueprint
api_v1 = Blueprint('api_v1', __name__, url_prefix='/api/v1')

# Bound to the app by the app factory
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    strategy="fixed-window",
    headers_enabled=True,
)


def _webhook_limit() -> str:
    return current_app.config.get('RATELIMIT_WEBHOOK', '600 per minute')


def _read_limit() -> str:
    return current_app.config.get('RATELIMIT_READ', '100 per minute')


def _get_relay() -> PipelineRelay:
    """Get the relay attached to the running app."""
    return current_app.extensions['pipepulse']


def _validation_details(error: ValidationError) -> list:
    return [
        {
            'field': '.'.join(str(part) for part in e.get('loc', ())),
            'message': e.get('msg', 'Invalid value'),
        }
        for e in error.errors()
    ]


@api_v1.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    relay = _get_relay()
    checks = {
        'slack_api': 'ok' if relay.slack_client.is_configured() else 'not_configured',
        'gitlab_api': 'ok' if relay.log_provider.is_configured() else 'not_configured',
        'bound_projects': len(relay.bindings),
        'tracked_pipelines': len(relay.registry),
    }

    all_healthy = checks['slack_api'] == 'ok' and checks['gitlab_api'] == 'ok'

    return jsonify({
        'success': True,
        'data': {
            'status': 'healthy' if all_healthy else 'degraded',
            'checks': checks
        }
    }), 200


@api_v1.route('/webhooks/gitlab', methods=['POST'])
@require_webhook_token
@limiter.limit(_webhook_limit)
def gitlab_webhook():
    """Receive GitLab pipeline and job webhook deliveries."""
    event_type = request.headers.get('X-Gitlab-Event', '')

    data = request.get_json(silent=True)
    if data is None:
        return error_response('INVALID_REQUEST', 'Invalid JSON payload')

    if event_type not in (PIPELINE_HOOK, JOB_HOOK):
        return jsonify({
            'success': True,
            'data': {
                'status': 'ignored',
                'event': event_type,
            }
        }), 200

    try:
        if event_type == PIPELINE_HOOK:
            event = PipelineHookPayload.model_validate(data).to_event()
        else:
            event = JobHookPayload.model_validate(data).to_event()
    except ValidationError as e:
        logger.warning(f"Rejected malformed {event_type} payload: {e.error_count()} errors")
        return error_response(
            'INVALID_PAYLOAD',
            f'Invalid {event_type} payload',
            {'errors': _validation_details(e)}
        )

    relay = _get_relay()
    try:
        if event_type == PIPELINE_HOOK:
            pipeline = relay.handle_pipeline_event(event)
            tracked = pipeline.id in relay.registry
        else:
            pipeline = relay.handle_job_event(event)
            tracked = pipeline is not None
    except Exception as e:
        logger.exception(f"Failed to relay {event_type} for pipeline {event.pipeline_id}")
        return error_response('INTERNAL_ERROR', f'Failed to relay event: {e}')

    return jsonify({
        'success': True,
        'data': {
            'status': 'processed' if pipeline is not None else 'ignored',
            'event': event_type,
            'pipeline_id': event.pipeline_id,
            'tracked': tracked,
            'finished': bool(pipeline and pipeline.finished),
        }
    }), 200


@api_v1.route('/pipelines', methods=['GET'])
@require_webhook_token
@limiter.limit(_read_limit)
def list_pipelines():
    """Get all tracked pipelines."""
    pipelines = _get_relay().registry.snapshot()
    return jsonify({
        'success': True,
        'data': {
            'count': len(pipelines),
            'pipelines': pipelines
        }
    }), 200


@api_v1.route('/pipelines/<int:pipeline_id>', methods=['GET'])
@require_webhook_token
@limiter.limit(_read_limit)
def get_pipeline(pipeline_id: int):
    """Get one tracked pipeline."""
    registry = _get_relay().registry
    lock = registry.existing_lock(pipeline_id)
    pipeline = registry.get(pipeline_id)
    if lock is None or pipeline is None:
        return error_response('NOT_FOUND', f'Pipeline {pipeline_id} is not tracked')

    with lock:
        data = pipeline.to_dict()

    return jsonify({
        'success': True,
        'data': data
    }), 200
