"""Flask application factory for PipePulse."""

import atexit
import logging

from flask import Flask
from typing import Optional

from .config import Config, ProjectBindings, load_config
from .api.routes import api_v1, limiter
from .api.errors import register_error_handlers
from .gitlab.client import GitLabClient
from .relay import PipelineRelay
from .slack.client import SlackClient
from .state.registry import PipelineRegistry
from .utils.logging_config import setup_logging


logger = logging.getLogger("pipepulse")


def build_relay(config: Config) -> PipelineRelay:
    """Wire the registry and collaborators into a relay.

    Args:
        config: Service configuration

    Returns:
        Relay with an empty registry
    """
    slack_client = SlackClient(
        bot_token=config.slack.bot_token,
        max_retries=config.slack.max_retries,
        backoff_seconds=config.slack.retry_backoff_sec,
    )
    return PipelineRelay(
        registry=PipelineRegistry(),
        slack_client=slack_client,
        log_provider=GitLabClient.from_config(config.gitlab),
        bindings=ProjectBindings.from_file(config.bindings.projects_file),
        config=config,
    )


def create_app(
    test_config: Optional[dict] = None,
    config: Optional[Config] = None,
    relay: Optional[PipelineRelay] = None
) -> Flask:
    """Create and configure the PipePulse Flask application.

    Args:
        test_config: Optional Flask config overrides
        config: Service configuration (see load_config if None)
        relay: Pre-built relay (built from config if None)

    Returns:
        Configured Flask application
    """
    config = config or load_config()

    app = Flask(__name__, instance_relative_config=True)

    # Default configuration
    app.config.from_mapping(
        WEBHOOK_TOKEN=config.api.webhook_token,
        RATELIMIT_WEBHOOK=config.api.rate_limit_webhook,
        RATELIMIT_READ=config.api.rate_limit_get,
        MAX_CONTENT_LENGTH=1024 * 1024,  # pipeline hooks with many jobs get large
    )

    # Load test config if provided
    if test_config:
        app.config.update(test_config)

    limiter.init_app(app)

    app.extensions['pipepulse'] = relay or build_relay(config)

    # Register API-blueprint
    app.register_blueprint(api_v1)

    # Register error handlers
    register_error_handlers(app)

    # Health check at root (Flask-specific)
    @app.route('/health')
    def root_health():
        return {'status': 'healthy'}, 200

    return app


def main():
    """Run the relay with Flask's threaded server."""
    config = load_config()
    setup_logging(config.logging.level, log_file=config.logging.file)

    for error in config.validate():
        logger.warning(f"Configuration problem: {error}")

    app = create_app(config=config)
    relay = app.extensions['pipepulse']
    atexit.register(relay.shutdown)

    logger.info(f"Starting PipePulse on {config.api.host}:{config.api.port}")
    app.run(host=config.api.host, port=config.api.port, debug=config.api.debug, threaded=True)


if __name__ == '__main__':
    main()
